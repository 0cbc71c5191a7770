# flake8: noqa: F401

from .buddy_check import buddy_check
from .sct import sct
from .robust_statistics import compute_quantile, compute_vertical_profile_theil_sen
from .linear_solver import LinearSolver, LUSolver, NumpySolver, invert_matrix
