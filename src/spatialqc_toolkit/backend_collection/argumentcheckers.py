"""Collection of functions that checks/formats
arguments and input passed by the user."""

import logging
from typing import Union, Sequence, Tuple

import numpy as np

from spatialqc_toolkit.backend_collection.errorclasses import (
    SpatialQCInvalidArg,
    SpatialQCInvalidInputShape,
)
from spatialqc_toolkit.backend_collection.loggingmodule import log_entry

logger = logging.getLogger("<spatialqc_toolkit>")


class StationParameter:
    """
    A check parameter with one value for all stations, or one value per station.

    Parameters
    ----------
    value : int, float or array-like
        A scalar is used for every station, a 1D array-like holds a value
        for each station (in the order of the spatial index).
    name : str
        Name of the parameter, used in error messages.
    """

    def __init__(self, value: Union[int, float, Sequence, np.ndarray], name: str):
        if isinstance(value, StationParameter):
            value = value.value
        arr = np.asarray(value)
        if arr.ndim > 1:
            raise SpatialQCInvalidInputShape(name)
        if not (
            np.issubdtype(arr.dtype, np.number) or np.issubdtype(arr.dtype, np.bool_)
        ):
            raise SpatialQCInvalidArg(name, "must be numeric")

        self.name = name
        self.value = arr.item() if arr.ndim == 0 else arr

    @property
    def is_single(self) -> bool:
        return not isinstance(self.value, np.ndarray)

    def __getitem__(self, i: int):
        if self.is_single:
            return self.value
        return self.value[i]

    def __repr__(self) -> str:
        if self.is_single:
            return f"StationParameter({self.name}={self.value})"
        return f"StationParameter({self.name}=<{len(self.value)} values>)"

    def check_size(self, n: int) -> None:
        """Raise SpatialQCInvalidInputShape if a per-station array has not length n."""
        if not self.is_single and len(self.value) != n:
            raise SpatialQCInvalidInputShape(self.name)

    def subset(self, indices: Sequence[int]) -> np.ndarray:
        """Return the values for the given station indices as an array."""
        if self.is_single:
            return np.full(len(indices), self.value, dtype=float)
        return np.asarray(self.value[np.asarray(indices, dtype=int)], dtype=float)

    def as_array(self, n: int) -> np.ndarray:
        """Return the values for all n stations."""
        return self.subset(np.arange(n))


@log_entry
def fmt_values_arg(values: Sequence) -> Tuple[np.ndarray, np.ndarray]:
    """Format observation values given by a user.

    Parameters
    ----------
    values : sequence
        One value per station. None marks a missing observation.

    Returns
    -------
    numpy.ndarray
        The values as floats, missing observations are NaN.
    numpy.ndarray
        Boolean mask, True where the observation is missing (None).
    """
    if isinstance(values, np.ndarray) and values.ndim != 1:
        raise SpatialQCInvalidInputShape("values")

    missing = np.array([val is None for val in values], dtype=bool)
    try:
        arr = np.array(
            [np.nan if val is None else float(val) for val in values], dtype=float
        )
    except (TypeError, ValueError) as err:
        raise SpatialQCInvalidArg("values", f"could not be converted to float ({err})")

    return arr, missing


@log_entry
def fmt_obs_to_check_arg(obs_to_check, n: int) -> np.ndarray:
    """Return a boolean mask of the stations to check (default: all)."""
    if obs_to_check is None:
        return np.ones(n, dtype=bool)

    mask = np.asarray(obs_to_check, dtype=bool)
    if mask.ndim != 1 or len(mask) != n:
        raise SpatialQCInvalidInputShape("obs_to_check")
    return mask


def _to_float_array(value) -> np.ndarray:
    if isinstance(value, StationParameter):
        value = value.value
    try:
        return np.atleast_1d(np.asarray(value, dtype=float))
    except (TypeError, ValueError):
        return np.array([np.nan])


def check_minimum(
    value: Union[int, float, StationParameter],
    minimum: Union[int, float],
    name: str,
    inclusive: bool = True,
) -> None:
    """Raise SpatialQCInvalidArg if (any element of) value is below the minimum."""
    arr = _to_float_array(value)

    if inclusive:
        ok = np.all(arr >= minimum)
        reason = f"must be >= {minimum}"
    else:
        ok = np.all(arr > minimum)
        reason = f"must be > {minimum}"

    if not ok:
        raise SpatialQCInvalidArg(name, reason)


def check_finite(value: Union[int, float, StationParameter], name: str) -> None:
    """Raise SpatialQCInvalidArg if (any element of) value is NaN or infinite."""
    if not np.all(np.isfinite(_to_float_array(value))):
        raise SpatialQCInvalidArg(name, "must be finite")


def check_integer(
    value: Union[int, float, StationParameter], minimum: int, name: str
) -> None:
    """Raise SpatialQCInvalidArg if (any element of) value is not a whole number >= minimum."""
    check_finite(value, name)
    arr = _to_float_array(value)
    if np.any(arr != np.floor(arr)):
        raise SpatialQCInvalidArg(name, "must be an integer")
    check_minimum(value, minimum, name)
