"""
Dense matrix inversion backends for the spatial consistency test.

The SCT only talks to the LinearSolver interface, so an other numerical
backend can be used by passing a different solver to sct().
"""

import logging
import warnings

import numpy as np
import scipy.linalg

from spatialqc_toolkit.backend_collection.errorclasses import (
    SpatialQCInvalidInputShape,
    SpatialQCSingularMatrix,
)

logger = logging.getLogger("<spatialqc_toolkit>")


def _check_square(matrix) -> np.ndarray:
    matrix = np.asarray(matrix, dtype=float)
    if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
        raise SpatialQCInvalidInputShape("matrix")
    return matrix


class LinearSolver:
    """Interface of a matrix inversion backend."""

    def invert(self, matrix: np.ndarray) -> np.ndarray:
        """
        Invert a square matrix.

        Parameters
        ----------
        matrix : numpy.ndarray
            A square (n, n) matrix.

        Returns
        -------
        numpy.ndarray
            The (n, n) inverse.

        Raises
        ------
        SpatialQCSingularMatrix
            If the matrix is singular or too ill-conditioned to invert.
        """
        raise NotImplementedError


class LUSolver(LinearSolver):
    """
    Matrix inversion by LU decomposition with partial pivoting (LAPACK getrf).

    Parameters
    ----------
    rcond : float or None, optional
        A matrix is considered singular if the smallest absolute pivot is
        smaller than rcond times the largest absolute pivot. If None,
        n * machine-epsilon is used. The default is None.
    """

    def __init__(self, rcond: float = None):
        self.rcond = rcond

    def __repr__(self) -> str:
        return f"LUSolver(rcond={self.rcond})"

    def invert(self, matrix: np.ndarray) -> np.ndarray:
        matrix = _check_square(matrix)
        n = matrix.shape[0]
        if n == 0:
            return np.empty((0, 0))
        if not np.all(np.isfinite(matrix)):
            raise SpatialQCSingularMatrix("The matrix contains non-finite values.")

        with warnings.catch_warnings():
            # a zero pivot is detected below
            warnings.simplefilter("ignore", scipy.linalg.LinAlgWarning)
            lu, piv = scipy.linalg.lu_factor(matrix, check_finite=False)

        pivots = np.abs(np.diag(lu))
        rcond = self.rcond if self.rcond is not None else n * np.finfo(float).eps
        if pivots.max() == 0.0 or pivots.min() <= rcond * pivots.max():
            raise SpatialQCSingularMatrix(
                f"The ({n}x{n}) matrix is singular or ill-conditioned."
            )

        inverse = scipy.linalg.lu_solve((lu, piv), np.eye(n), check_finite=False)
        if not np.all(np.isfinite(inverse)):
            raise SpatialQCSingularMatrix(
                f"The inverse of the ({n}x{n}) matrix is not finite."
            )
        return inverse


class NumpySolver(LinearSolver):
    """Matrix inversion with numpy.linalg.inv."""

    def __repr__(self) -> str:
        return "NumpySolver()"

    def invert(self, matrix: np.ndarray) -> np.ndarray:
        matrix = _check_square(matrix)
        try:
            inverse = np.linalg.inv(matrix)
        except np.linalg.LinAlgError as err:
            raise SpatialQCSingularMatrix(str(err))

        if not np.all(np.isfinite(inverse)):
            raise SpatialQCSingularMatrix("The inverse of the matrix is not finite.")
        return inverse


def invert_matrix(matrix: np.ndarray, solver: LinearSolver = None) -> np.ndarray:
    """Invert a square matrix with the given solver (default: LUSolver)."""
    if solver is None:
        solver = LUSolver()
    return solver.invert(matrix)
