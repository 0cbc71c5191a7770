# flake8: noqa: F401

from .label_defenitions import (
    label_def,
    flag_to_label_map,
    label_to_color_map,
    label_to_numeric_map,
    outlier_flag_group,
    unchecked_flag_group,
)
from .qc_settings import check_settings
