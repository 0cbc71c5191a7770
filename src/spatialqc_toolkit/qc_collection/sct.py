import logging
from typing import Union, List, Sequence, Tuple

import numpy as np

from spatialqc_toolkit.flags import Flag
from spatialqc_toolkit.spatialindex import SpatialIndex
from spatialqc_toolkit.qc_collection.buddy_check import init_flags
from spatialqc_toolkit.qc_collection.robust_statistics import (
    compute_quantile,
    compute_vertical_profile_theil_sen,
)
from spatialqc_toolkit.qc_collection.linear_solver import LinearSolver, LUSolver
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
    SpatialQCSingularMatrix,
)
from spatialqc_toolkit.backend_collection.loggingmodule import log_entry

logger = logging.getLogger("<spatialqc_toolkit>")


def _find_box(
    index: SpatialIndex,
    refidx: int,
    outer_radius: float,
    num_max: int,
    flags: np.ndarray,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Get the stations (currently PASS) in the outer circle of a station.

    The reference station itself is included. If there are more than num_max
    stations, only the num_max closest are kept.

    Returns
    -------
    numpy.ndarray
        The station indices of the box, sorted by distance.
    numpy.ndarray
        The distance of each box member to the reference station.
    """
    lat, lon, _elev = index.get_coords_at_index(refidx)
    neighbours, distances = index.neighbours_with_distance(
        lat, lon, outer_radius, include_self=True
    )
    is_pass = flags[neighbours] == Flag.PASS
    neighbours, distances = neighbours[is_pass], distances[is_pass]

    order = np.argsort(distances, kind="stable")[:num_max]
    return neighbours[order], distances[order]


def _horizontal_scale(disth: np.ndarray, min_horizontal_scale: float) -> float:
    """
    Adaptive horizontal decorrelation length of a box.

    For each member, the 10th percentile of its distances to the other
    members is computed. The scale is the mean of these, but at least
    min_horizontal_scale.
    """
    box_size = disth.shape[0]
    offdiag = disth[~np.eye(box_size, dtype=bool)].reshape(box_size, box_size - 1)
    dh = [compute_quantile(0.10, row) for row in offdiag]
    return max(min_horizontal_scale, float(np.mean(dh)))


def _optimal_interpolation(
    disth: np.ndarray,
    distz: np.ndarray,
    d: np.ndarray,
    eps2_box: np.ndarray,
    dh_mean: float,
    vertical_scale: float,
    solver: LinearSolver,
) -> Tuple[np.ndarray, np.ndarray, float]:
    """
    Cross-validate the background deviations of a box with optimal interpolation.

    Parameters
    ----------
    disth : numpy.ndarray
        Pairwise horizontal distances (m).
    distz : numpy.ndarray
        Pairwise absolute elevation differences (m).
    d : numpy.ndarray
        Deviation of each observation from the background (vertical profile).
    eps2_box : numpy.ndarray
        Ratio of observation error variance to background variance.
    dh_mean : float
        Horizontal decorrelation length (m).
    vertical_scale : float
        Vertical decorrelation length (m).
    solver : LinearSolver
        Backend used to invert the covariance matrix.

    Returns
    -------
    numpy.ndarray
        The analysis residuals.
    numpy.ndarray
        The cross-validation residuals.
    float
        The estimated observation error variance.

    Raises
    ------
    SpatialQCSingularMatrix
        If the covariance matrix cannot be inverted.
    """
    # background error correlations
    s = np.exp(-0.5 * (disth / dh_mean) ** 2 - 0.5 * (distz / vertical_scale) ** 2)

    s_inv = solver.invert(s + np.diag(eps2_box))

    s_inv_d = s_inv @ d
    ares = s @ s_inv_d - d
    z_inv = 1.0 / np.diag(s_inv)
    cvres = -1.0 * z_inv * s_inv_d
    sig2o = max(0.01, float(np.mean(d * -1.0 * ares)))

    return ares, cvres, sig2o


@log_entry
def sct(
    values: Sequence[Union[float, None]],
    index: SpatialIndex,
    num_min: int,
    num_max: int,
    inner_radius: float,
    outer_radius: float,
    num_iterations: int,
    num_min_prof: int,
    min_elev_diff: float,
    min_horizontal_scale: float,
    vertical_scale: float,
    pos: Union[float, Sequence[float]],
    neg: Union[float, Sequence[float]],
    eps2: Union[float, Sequence[float]],
    obs_to_check: Union[Sequence[bool], None] = None,
    solver: Union[LinearSolver, None] = None,
) -> Tuple[List[Flag], np.ndarray]:
    """
    Spatial consistency test (SCT).

    The SCT compares each observation to what is expected given the other
    observations in the nearby area. If the deviation is large, the
    observation is removed. The SCT uses optimal interpolation (OI) to
    compute an expected value for each observation. The background for the
    OI is computed from a robust vertical profile of the observations in the
    area.

    A schematic step-by-step description of the SCT, for each station that
    is not yet checked in the current sweep:

    #. The stations (flagged PASS) within the `outer_radius` form the box.
       Only the `num_max` closest are used. If there are fewer than
       `num_min`, the station is flagged ISOLATED.
    #. A vertical profile (Theil-Sen) is fitted on the box, and the deviation
       of each observation from the profile is computed.
    #. An adaptive horizontal decorrelation length is computed (mean of the
       10th percentile distances of the box members, at least
       `min_horizontal_scale`). Together with the `vertical_scale`, this
       defines the gaussian background correlations.
    #. The OI gives the cross-validation (leave-one-out) residual and the
       analysis residual of each box member, from which a gross-error
       probability is derived.
    #. All box members within the `inner_radius` are finalized: they are
       flagged FAIL if the gross-error probability exceeds `pos` (observation
       above expectation) or `neg` (observation below expectation).

    Sweeps are repeated `num_iterations` times, or until a sweep rejects no
    observations. Rejected observations are not used in later computations.

    If the covariance matrix of a box cannot be inverted, the station for
    which the box was built is flagged INCONCLUSIVE.

    Parameters
    ----------
    values : sequence of float or None
        The observation of each station, None for missing observations.
    index : SpatialIndex
        The spatial index of the stations (same order as values).
    num_min : int
        Minimum number of observations in the outer circle (>= 2).
    num_max : int
        Maximum number of observations used from the outer circle.
    inner_radius : float
        Radius (m) in which the OI results are reused.
    outer_radius : float
        Radius (m) for computing the OI and the background.
    num_iterations : int
        Maximum number of sweeps.
    num_min_prof : int
        Minimum number of observations to compute the vertical profile slope.
    min_elev_diff : float
        Minimum elevation range (m) to compute the vertical profile slope.
    min_horizontal_scale : float
        Minimum horizontal decorrelation length (m).
    vertical_scale : float
        Vertical decorrelation length (m).
    pos : float or sequence of float
        Allowed positive deviation (σ), per station or one for all.
    neg : float or sequence of float
        Allowed negative deviation (σ), per station or one for all.
    eps2 : float or sequence of float
        Ratio of observation error variance to background variance.
    obs_to_check : sequence of bool or None, optional
        If given, only the stations marked True are checked. All stations are
        used to check the others. The default is None (check all).
    solver : LinearSolver or None, optional
        Matrix inversion backend. If None, a LUSolver is used.

    Returns
    -------
    list of Flag
        The flag of each observation.
    numpy.ndarray
        The (maximum) gross-error probability of each observation. Stations
        that are never evaluated have a probability of 0.

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

    pos = StationParameter(pos, "pos")
    neg = StationParameter(neg, "neg")
    eps2 = StationParameter(eps2, "eps2")
    for param in (pos, neg, eps2):
        param.check_size(n)
    obs_to_check = fmt_obs_to_check_arg(obs_to_check, n)

    check_minimum(pos, 0.0, "pos")
    check_minimum(neg, 0.0, "neg")
    check_minimum(eps2, 0.0, "eps2", inclusive=False)
    check_integer(num_min, 2, "num_min")
    check_integer(num_max, num_min, "num_max")
    check_integer(num_iterations, 1, "num_iterations")
    num_min, num_max, num_iterations = int(num_min), int(num_max), int(num_iterations)
    check_minimum(min_elev_diff, 0.0, "min_elev_diff", inclusive=False)
    check_minimum(min_horizontal_scale, 0.0, "min_horizontal_scale", inclusive=False)
    check_minimum(vertical_scale, 0.0, "vertical_scale", inclusive=False)
    check_minimum(inner_radius, 0.0, "inner_radius")
    check_minimum(outer_radius, inner_radius, "outer_radius")
    check_finite(outer_radius, "outer_radius")

    if solver is None:
        solver = LUSolver()

    # ---- Initialise the flags -----
    flags = init_flags(values, missing)
    flags[(flags == Flag.PASS) & ~np.isfinite(index.elevs)] = Flag.INVALID
    prob_gross_error = np.zeros(n)

    # ---- Iterate -----
    for iteration in range(num_iterations):
        num_thrown_out = 0
        checked = np.zeros(n, dtype=bool)

        for i in range(n):
            if not obs_to_check[i] or flags[i] != Flag.PASS:
                checked[i] = True
                continue
            if checked[i]:
                continue

            box, distances = _find_box(
                index=index,
                refidx=i,
                outer_radius=outer_radius,
                num_max=num_max,
                flags=flags,
            )
            if box.size < num_min:
                flags[i] = Flag.ISOLATED
                checked[i] = True
                continue

            elevs_box = index.elevs[box]
            values_box = values[box]
            eps2_box = eps2.subset(box)

            # background and deviations from it
            vertical_profile = compute_vertical_profile_theil_sen(
                elevs=elevs_box,
                values=values_box,
                num_min_prof=num_min_prof,
                min_elev_diff=min_elev_diff,
            )
            d = values_box - vertical_profile

            disth = index.distance_matrix(box)
            distz = np.abs(elevs_box[:, None] - elevs_box[None, :])
            dh_mean = _horizontal_scale(disth, min_horizontal_scale)

            try:
                ares, cvres, sig2o = _optimal_interpolation(
                    disth=disth,
                    distz=distz,
                    d=d,
                    eps2_box=eps2_box,
                    dh_mean=dh_mean,
                    vertical_scale=vertical_scale,
                    solver=solver,
                )
            except SpatialQCSingularMatrix as err:
                logger.warning(
                    f"SCT box of station {i} ({box.size} members) could not be solved, the station is flagged {Flag.INCONCLUSIVE.value}: {err}"
                )
                flags[i] = Flag.INCONCLUSIVE
                checked[i] = True
                continue

            # finalize all box members within the inner circle
            for k, member in enumerate(box):
                if not obs_to_check[member] or distances[k] > inner_radius:
                    continue

                pog = cvres[k] * ares[k] / sig2o
                checked[member] = True
                if not np.isfinite(pog):
                    flags[member] = Flag.INCONCLUSIVE
                    continue

                prob_gross_error[member] = max(pog, prob_gross_error[member])
                if (cvres[k] < 0.0 and pog > pos[member]) or (
                    cvres[k] >= 0.0 and pog > neg[member]
                ):
                    flags[member] = Flag.FAIL
                    num_thrown_out += 1

        logger.debug(
            f"SCT iteration {iteration + 1}/{num_iterations}: {num_thrown_out} observations rejected."
        )
        if num_thrown_out == 0:
            logger.debug("No observations rejected, the SCT has converged.")
            break

    num_isolated = np.count_nonzero(flags == Flag.ISOLATED)
    if num_isolated > 0:
        logger.info(f"{num_isolated} stations are isolated in the SCT.")

    return list(flags), prob_gross_error
