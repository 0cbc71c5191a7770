import logging
from typing import Union, List, Sequence

import numpy as np

from spatialqc_toolkit.flags import Flag
from spatialqc_toolkit.spatialindex import SpatialIndex
from spatialqc_toolkit.backend_collection.argumentcheckers import (
    StationParameter,
    fmt_values_arg,
    fmt_obs_to_check_arg,
    check_minimum,
    check_finite,
    check_integer,
)
from spatialqc_toolkit.backend_collection.errorclasses import (
    SpatialQCInvalidInputShape,
)
from spatialqc_toolkit.backend_collection.loggingmodule import log_entry

logger = logging.getLogger("<spatialqc_toolkit>")


def init_flags(values: np.ndarray, missing: np.ndarray) -> np.ndarray:
    """
    Create the initial flags of a spatial check.

    Missing observations are flagged DATA_MISSING, present but non-finite
    observations are flagged FAIL, all others PASS.

    Returns
    -------
    numpy.ndarray
        Array (dtype object) of Flag members, one per station.
    """
    flags = np.full(values.size, Flag.PASS, dtype=object)
    flags[~np.isfinite(values)] = Flag.FAIL
    flags[missing] = Flag.DATA_MISSING
    return flags


def _find_spatial_buddies(
    index: SpatialIndex, refidx: int, buddy_radius: float, flags: np.ndarray
) -> np.ndarray:
    """
    Get the neighbouring stations of a station that are currently PASS.

    Parameters
    ----------
    index : SpatialIndex
        The spatial index of all stations.
    refidx : int
        Index of the reference station.
    buddy_radius : float
        Maximum distance (in meters) to consider as a buddy.
    flags : numpy.ndarray
        The current flags of all stations.

    Returns
    -------
    numpy.ndarray
        Indices of the buddies (the reference station is excluded).
    """
    lat, lon, _elev = index.get_coords_at_index(refidx)
    neighbours = index.neighbours(lat, lon, buddy_radius, include_self=False)
    return neighbours[flags[neighbours] == Flag.PASS]


def _filter_to_altitude_buddies(
    index: SpatialIndex,
    refidx: int,
    buddies: np.ndarray,
    max_altitude_diff: float,
) -> np.ndarray:
    """Keep the buddies within max_altitude_diff of the reference station."""
    alt_diff = np.abs(index.elevs[refidx] - index.elevs[buddies])
    return buddies[alt_diff <= max_altitude_diff]


@log_entry
def buddy_check(
    values: Sequence[Union[float, None]],
    index: SpatialIndex,
    radii: Union[float, Sequence[float]],
    min_neighbour_counts: Union[int, Sequence[int]],
    threshold: float,
    max_elev_diff: float,
    elev_gradient: float,
    min_std: float,
    num_iterations: int,
    obs_to_check: Union[Sequence[bool], None] = None,
) -> List[Flag]:
    """
    Spatial buddy check.

    The buddy check compares an observation against its neighbours (i.e.
    buddies). The buddies of the observation at index i are all stations
    (currently flagged PASS) within `radii[i]` meters. At least
    `min_neighbour_counts[i]` buddies are required, otherwise the observation
    is not tested (it stays PASS).

    An observation is flagged FAIL if the absolute difference with the mean of
    its buddies, normalized by the standard deviation of the buddies, is
    larger than `threshold`. The standard deviation is inflated with a factor
    sqrt(1 + 1/n) to account for the estimation error of the buddy mean, and
    is never taken smaller than `min_std`. `min_std` should be roughly equal
    to the standard deviation of the error of a typical observation.

    If `max_elev_diff` is positive, buddies with a larger elevation difference
    are ignored and the values of the buddies are projected to the elevation
    of the reference station using `elev_gradient` (-0.0065 °C/m for
    temperature). If `max_elev_diff` is zero or negative, elevations are
    ignored.

    The check is repeated for `num_iterations` sweeps over all stations, or
    until a sweep flags no new observations. Stations are processed in index
    order and flags are updated in place, so an observation flagged earlier in
    a sweep is no longer used as a buddy later in that same sweep.

    Parameters
    ----------
    values : sequence of float or None
        The observation of each station, None for missing observations.
    index : SpatialIndex
        The spatial index of the stations (same order as values).
    radii : float or sequence of float
        Search radius (m) in which buddies are found, per station or one for all.
    min_neighbour_counts : int or sequence of int
        The minimum number of buddies, per station or one for all.
    threshold : float
        The threshold in standard deviations for flagging an observation.
    max_elev_diff : float
        The maximum elevation difference (m) for a buddy. If <= 0, elevation
        is not taken into account.
    elev_gradient : float
        Linear change of the observed quantity with elevation (units/m).
    min_std : float
        Minimum standard deviation of the buddies.
    num_iterations : int
        Maximum number of sweeps.
    obs_to_check : sequence of bool or None, optional
        If given, only the stations marked True are checked. All stations are
        used as buddies. The default is None (check all).

    Returns
    -------
    list of Flag
        The flag of each observation.

    Raises
    ------
    SpatialQCInvalidInputShape
        If an array argument does not match the number of stations.
    SpatialQCInvalidArg
        If an argument is outside its valid domain.
    """
    # ---- Validation -----
    values, missing = fmt_values_arg(values)
    n = values.size
    if len(index) != n:
        raise SpatialQCInvalidInputShape("index")

    radii = StationParameter(radii, "radii")
    radii.check_size(n)
    check_finite(radii, "radii")
    check_minimum(radii, 0.0, "radii")

    min_neighbour_counts = StationParameter(
        min_neighbour_counts, "min_neighbour_counts"
    )
    min_neighbour_counts.check_size(n)
    check_integer(min_neighbour_counts, 0, "min_neighbour_counts")

    obs_to_check = fmt_obs_to_check_arg(obs_to_check, n)

    check_minimum(threshold, 0.0, "threshold")
    check_minimum(min_std, 0.0, "min_std", inclusive=False)
    check_integer(num_iterations, 1, "num_iterations")
    check_finite(max_elev_diff, "max_elev_diff")
    check_finite(elev_gradient, "elev_gradient")

    # ---- Initialise the flags -----
    use_elevation = max_elev_diff > 0.0
    flags = init_flags(values, missing)
    if use_elevation:
        flags[(flags == Flag.PASS) & ~np.isfinite(index.elevs)] = Flag.INVALID

    # ---- Iterate -----
    for iteration in range(int(num_iterations)):
        num_failed_before = np.count_nonzero(flags == Flag.FAIL)

        for i in range(n):
            if flags[i] != Flag.PASS or not obs_to_check[i]:
                continue

            buddies = _find_spatial_buddies(
                index=index, refidx=i, buddy_radius=radii[i], flags=flags
            )
            if buddies.size < min_neighbour_counts[i]:
                continue

            if use_elevation:
                buddies = _filter_to_altitude_buddies(
                    index=index,
                    refidx=i,
                    buddies=buddies,
                    max_altitude_diff=max_elev_diff,
                )
                # project the buddy values to the elevation of the station
                buddy_values = values[buddies] + elev_gradient * (
                    index.elevs[i] - index.elevs[buddies]
                )
            else:
                buddy_values = values[buddies]

            count = buddy_values.size
            if count == 0 or count < min_neighbour_counts[i]:
                continue

            mean = buddy_values.mean()
            variance = (buddy_values**2).mean() - mean**2
            # negative variances can only originate from rounding errors
            variance = max(variance, 0.0)
            std_adjusted = max(np.sqrt(variance * (1.0 + 1.0 / count)), min_std)

            if abs(values[i] - mean) / std_adjusted > threshold:
                flags[i] = Flag.FAIL

        num_new_failed = np.count_nonzero(flags == Flag.FAIL) - num_failed_before
        logger.debug(
            f"Buddy check iteration {iteration + 1}/{num_iterations}: {num_new_failed} new outliers."
        )
        if num_new_failed == 0:
            logger.debug("No new outliers found, the buddy check has converged.")
            break

    return list(flags)
