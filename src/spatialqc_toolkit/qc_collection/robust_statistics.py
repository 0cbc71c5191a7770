"""
Robust statistics used to construct the background of the spatial consistency test.
"""

import logging
from typing import Sequence

import numpy as np

from spatialqc_toolkit.backend_collection.errorclasses import SpatialQCInvalidArg
from spatialqc_toolkit.backend_collection.loggingmodule import log_entry

logger = logging.getLogger("<spatialqc_toolkit>")

# ICAO standard atmosphere lapse rate (units per meter)
DEFAULT_LAPSE_RATE = -0.0065


def compute_quantile(quantile: float, values: Sequence[float]) -> float:
    """
    Compute a quantile of the valid (finite) values.

    The values are sorted and the quantile is linearly interpolated between
    the two closest ranks.

    Parameters
    ----------
    quantile : float
        The quantile to compute, in [0, 1].
    values : sequence of float
        The sample. Non-finite values are ignored.

    Returns
    -------
    float
        The quantile value.

    Raises
    ------
    ValueError
        If there are no valid values in the sample.

    Examples
    --------
    >>> compute_quantile(0.5, [1.0, 2.0, 3.0, 4.0])
    2.5
    """
    if not 0.0 <= quantile <= 1.0:
        raise SpatialQCInvalidArg("quantile", "must be in [0, 1]")

    arr = np.asarray(values, dtype=float)
    arr = np.sort(arr[np.isfinite(arr)])
    n = arr.size
    if n == 0:
        raise ValueError("Cannot compute a quantile without any valid values.")

    position = quantile * (n - 1)
    lower_index = int(np.floor(position))
    upper_index = int(np.ceil(position))
    lower_value = arr[lower_index]
    if lower_index == upper_index:
        return float(lower_value)

    upper_value = arr[upper_index]
    fraction = position - lower_index
    return float(lower_value + (upper_value - lower_value) * fraction)


@log_entry
def compute_vertical_profile_theil_sen(
    elevs: Sequence[float],
    values: Sequence[float],
    num_min_prof: int,
    min_elev_diff: float,
) -> np.ndarray:
    """
    Compute the expected value at each point from a robust vertical profile.

    The profile is a straight line (value as a function of elevation). The
    slope is the Theil-Sen estimate: the median of the slopes between all
    pairs of points (Wilks (2019), p. 284). Pairs with less than 1 m
    elevation difference contribute a slope of 0.

    If there are too few points (< num_min_prof) or the terrain is too flat
    (difference between the 95th and 5th elevation percentiles <
    min_elev_diff), the slope is fixed to the standard atmosphere lapse rate.
    If all elevations are equal, the profile is the mean of the values.

    Parameters
    ----------
    elevs : sequence of float
        Elevation of each point (m).
    values : sequence of float
        Observed value at each point.
    num_min_prof : int
        Minimum number of points to estimate the slope.
    min_elev_diff : float
        Minimum elevation range (m) to estimate the slope.

    Returns
    -------
    numpy.ndarray
        The profile value at the elevation of each point.
    """
    elevs = np.asarray(elevs, dtype=float)
    values = np.asarray(values, dtype=float)
    n = values.size

    # special case: all observations at the same elevation
    if elevs.min() == elevs.max():
        return np.full(n, values.mean())

    # is the terrain too flat?
    z05 = compute_quantile(0.05, elevs)
    z95 = compute_quantile(0.95, elevs)
    use_basic = n < num_min_prof or (z95 - z05) < min_elev_diff

    if use_basic:
        slope = DEFAULT_LAPSE_RATE
    else:
        i, j = np.triu_indices(n, k=1)
        elev_diff = elevs[i] - elevs[j]
        value_diff = values[i] - values[j]
        slopes = np.zeros(elev_diff.size)
        separated = np.abs(elev_diff) >= 1.0
        slopes[separated] = value_diff[separated] / elev_diff[separated]
        slope = compute_quantile(0.5, slopes)

    intercept = compute_quantile(0.5, values - slope * elevs)
    logger.debug(
        f"Vertical profile on {n} points: slope={slope}, intercept={intercept} (basic={use_basic})"
    )
    return intercept + slope * elevs
