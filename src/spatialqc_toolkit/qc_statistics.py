#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Functions to summarize the flags of the spatial checks.
"""

import logging

import pandas as pd

from spatialqc_toolkit.settings_collection import (
    flag_to_label_map,
    label_to_numeric_map,
    outlier_flag_group,
)
from spatialqc_toolkit.backend_collection.loggingmodule import log_entry

logger = logging.getLogger("<spatialqc_toolkit>")


def flags_to_labels(flagdf: pd.DataFrame) -> pd.DataFrame:
    """
    Convert a frame of Flags to their labels (e.g. Flag.FAIL -> "outlier").

    Parameters
    ----------
    flagdf : pandas.DataFrame
        Frame of Flags, as returned by StationNetwork.buddy_check() or
        StationNetwork.sct().

    Returns
    -------
    pandas.DataFrame
        Frame with the same shape, holding the labels.
    """
    return flagdf.apply(lambda col: col.map(flag_to_label_map))


@log_entry
def get_qc_stats(flagdf: pd.DataFrame) -> pd.DataFrame:
    """
    Count the flags of each station.

    Parameters
    ----------
    flagdf : pandas.DataFrame
        Frame of Flags, with a column per station.

    Returns
    -------
    pandas.DataFrame
        The number of occurrences of each label (columns) for each station
        (index). All labels are present as a column.
    """
    labeldf = flags_to_labels(flagdf)
    counts = {sta: labeldf[sta].value_counts() for sta in labeldf.columns}
    statsdf = (
        pd.DataFrame(counts, columns=labeldf.columns)
        .transpose()
        .reindex(columns=list(label_to_numeric_map.keys()))
        .fillna(0)
        .astype(int)
    )
    statsdf.index.name = "name"
    return statsdf


def get_outliers(flagdf: pd.DataFrame) -> pd.DataFrame:
    """
    Get all observations that are rejected by a check.

    Parameters
    ----------
    flagdf : pandas.DataFrame
        Frame of Flags, with a datetime index and a column per station.

    Returns
    -------
    pandas.DataFrame
        A frame with a ["datetime", "name"] multi-index and a "label" column,
        one row per outlier.
    """
    longdf = (
        flagdf.rename_axis(index="datetime", columns="name")
        .reset_index()
        .melt(id_vars="datetime", var_name="name", value_name="flag")
    )
    is_outlier = longdf["flag"].map(lambda flag: flag in outlier_flag_group)
    outliersdf = longdf.loc[is_outlier.astype(bool)].copy()
    outliersdf["label"] = outliersdf["flag"].map(flag_to_label_map)
    return outliersdf.set_index(["datetime", "name"])[["label"]].sort_index()
