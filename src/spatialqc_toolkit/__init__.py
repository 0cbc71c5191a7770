#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# flake8: noqa: F401

import logging

# =============================================================================
# Import classes and function to be used by the user
# =============================================================================

from spatialqc_toolkit.flags import Flag
from spatialqc_toolkit.spatialindex import SpatialIndex, calc_distance
from spatialqc_toolkit.network import StationNetwork

from spatialqc_toolkit.qc_collection import (
    buddy_check,
    sct,
    compute_quantile,
    compute_vertical_profile_theil_sen,
    LinearSolver,
    LUSolver,
    NumpySolver,
    invert_matrix,
)

from spatialqc_toolkit.qc_statistics import (
    flags_to_labels,
    get_qc_stats,
    get_outliers,
)

from spatialqc_toolkit.settings_collection import check_settings

from spatialqc_toolkit.backend_collection.loggingmodule import (
    add_FileHandler,
    add_StreamHandler,
)

# =============================================================================
# Setup logs
# =============================================================================

# Create the Root logger
rootlog = logging.getLogger("<spatialqc_toolkit>")
rootlog.setLevel(logging.DEBUG)  # set rootlogger on debug
rootlog.handlers.clear()  # clear all handlers

# Set the default handler
console_handler = logging.StreamHandler()
console_handler.setLevel("WARNING")
formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
console_handler.setFormatter(formatter)
rootlog.addHandler(console_handler)


# =============================================================================
# Version
# =============================================================================

from spatialqc_toolkit.settings_collection.version import __version__
