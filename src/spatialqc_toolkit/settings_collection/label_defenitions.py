#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Label color and name defenitions for the spatialqc_toolkit.
"""

from spatialqc_toolkit.flags import Flag

# =============================================================================
# Defenition of labels
# =============================================================================
# Every flag must be defined here:
label_def = {
    # --- Good records --------
    Flag.PASS.value: {"label": "ok", "color": "#07f72b", "numeric_val": 0},
    # ------ QC labels ---------------
    Flag.FAIL.value: {"label": "outlier", "color": "#f20000", "numeric_val": 1},
    Flag.WARN.value: {"label": "suspect", "color": "#f7cf07", "numeric_val": 2},
    Flag.INCONCLUSIVE.value: {
        "label": "inconclusive",
        "color": "#05d4f0",
        "numeric_val": 3,
    },
    # ----- Not checked ----------
    Flag.INVALID.value: {
        "label": "invalid metadata",
        "color": "#a32a1f",
        "numeric_val": 4,
    },
    Flag.DATA_MISSING.value: {
        "label": "missing observation",
        "color": "#f00592",
        "numeric_val": 5,
    },
    Flag.ISOLATED.value: {
        "label": "isolated station",
        "color": "#8300c4",
        "numeric_val": 6,
    },
}

flag_to_label_map = {Flag(key): group["label"] for key, group in label_def.items()}
label_to_color_map = {group["label"]: group["color"] for group in label_def.values()}
label_to_numeric_map = {
    group["label"]: group["numeric_val"] for group in label_def.values()
}

# flags that mark an observation as rejected by a check
outlier_flag_group = [Flag.FAIL]
# flags for which the check could not be evaluated
unchecked_flag_group = [
    Flag.INCONCLUSIVE,
    Flag.INVALID,
    Flag.DATA_MISSING,
    Flag.ISOLATED,
]
