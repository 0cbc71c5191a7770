#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Default settings of the spatial checks, per check and per observation type.
"""

# Numeric settings on how the checks performs
check_settings = {
    "buddy_check": {
        "temp": {
            "radius": 15000,  # m  Search radius
            "num_min": 2,  # The minimum number of buddies a station can have
            "threshold": 1.5,  # σ  the variance threshold for flagging a station
            "max_elev_diff": 200,  # m  the maximum difference in elevation for a buddy (if <= 0, elevation is not used)
            "elev_gradient": -0.0065,  # ou/m  linear elevation gradient with height
            "min_std": 1.0,  # If the std of the buddies is less than min_std, min_std will be used instead
            "num_iterations": 2,  # The number of iterations to perform
        },
    },
    "sct": {
        "temp": {
            "num_min": 5,  # Minimal points in outer circle
            "num_max": 100,  # Maximal points in outer circle
            "inner_radius": 50000,  # m  Radius in which the OI is reused
            "outer_radius": 150000,  # m  Radius for computing OI and background
            "num_iterations": 5,  # Number of iterations
            "num_min_prof": 20,  # Minimum number of observations to compute vertical profile
            "min_elev_diff": 200,  # m  Minimal elevation range to compute vertical profile
            "min_horizontal_scale": 10000,  # m  Minimal horizontal decorrelation length
            "vertical_scale": 200,  # m  Vertical decorrelation length
            "pos": 4,  # σ  Positive deviation allowed
            "neg": 8,  # σ  Negative deviation allowed
            "eps2": 0.5,  # Ratio of observation error variance to background variance
        },
    },
}
