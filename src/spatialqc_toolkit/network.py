#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
The StationNetwork class applies the spatial checks on timeseries of a fixed
set of stations.
"""

import copy
import logging
import concurrent.futures
from typing import Union, List, Tuple

import numpy as np
import pandas as pd

from spatialqc_toolkit.spatialindex import SpatialIndex
from spatialqc_toolkit.flags import Flag
from spatialqc_toolkit.qc_collection.buddy_check import buddy_check
from spatialqc_toolkit.qc_collection.sct import sct
from spatialqc_toolkit.qc_collection.linear_solver import LinearSolver
from spatialqc_toolkit.settings_collection import check_settings
from spatialqc_toolkit.backend_collection.errorclasses import (
    SpatialQCInvalidArg,
    SpatialQCMetadataNotFound,
    SpatialQCStationNotFound,
)
from spatialqc_toolkit.backend_collection.loggingmodule import log_entry

logger = logging.getLogger("<spatialqc_toolkit>")

# settings that can have a value per station
station_settings = {
    "buddy_check": ["radius", "num_min"],
    "sct": ["pos", "neg", "eps2"],
}


class StationNetwork:
    """
    A fixed set of stations, with their location and altitude.

    The spatial index is built once and reused for every timestamp that is
    checked.

    Parameters
    ----------
    metadf : pandas.DataFrame
        The metadata of the stations, indexed by (unique) station name.
    lat_col : str, optional
        The column with the latitudes. The default is "lat".
    lon_col : str, optional
        The column with the longitudes. The default is "lon".
    altitude_col : str, optional
        The column with the altitudes (m). The default is "altitude".
    coordinate_type : "geodetic" or "cartesian", optional
        The coordinate convention of the lat and lon columns. The default is
        "geodetic".

    Examples
    --------
    >>> import pandas as pd
    >>> import spatialqc_toolkit
    >>> metadf = pd.DataFrame(
    ...     {"lat": [51.0, 51.05, 51.1], "lon": [3.7, 3.75, 3.8],
    ...      "altitude": [10.0, 12.0, 8.0]},
    ...     index=["sta_A", "sta_B", "sta_C"])
    >>> network = spatialqc_toolkit.StationNetwork(metadf)
    >>> network
    StationNetwork of 3 stations
    """

    @log_entry
    def __init__(
        self,
        metadf: pd.DataFrame,
        lat_col: str = "lat",
        lon_col: str = "lon",
        altitude_col: str = "altitude",
        coordinate_type: str = "geodetic",
    ):
        for col in (lat_col, lon_col, altitude_col):
            if col not in metadf.columns:
                raise SpatialQCMetadataNotFound(
                    f"{col} is not a column in the metadata ({list(metadf.columns)})."
                )
        if not metadf.index.is_unique:
            dups = metadf.index[metadf.index.duplicated()].unique().to_list()
            raise SpatialQCInvalidArg("metadf", f"duplicated station names: {dups}")

        metadf = metadf[[lat_col, lon_col, altitude_col]].rename(
            columns={lat_col: "lat", lon_col: "lon", altitude_col: "altitude"}
        )
        metadf.index = metadf.index.rename("name")
        self._metadf = metadf.astype(float)

        self._spatial_index = SpatialIndex(
            lats=self._metadf["lat"].to_numpy(),
            lons=self._metadf["lon"].to_numpy(),
            elevs=self._metadf["altitude"].to_numpy(),
            coordinate_type=coordinate_type,
        )

    def __repr__(self) -> str:
        return f"StationNetwork of {len(self)} stations"

    def __len__(self) -> int:
        return self._metadf.shape[0]

    @property
    def stations(self) -> List[str]:
        """The station names, in the order of the spatial index."""
        return self._metadf.index.to_list()

    @property
    def metadf(self) -> pd.DataFrame:
        return self._metadf.copy()

    @property
    def spatial_index(self) -> SpatialIndex:
        return self._spatial_index

    # ------------------------------------------
    #    Formatting helpers
    # ------------------------------------------

    def _check_station_names(self, names) -> None:
        unknown = [name for name in names if name not in self._metadf.index]
        if unknown:
            raise SpatialQCStationNotFound(
                f"{unknown} are not stations of the {self}."
            )

    def _align_obsdf(self, obsdf: pd.DataFrame) -> pd.DataFrame:
        """Reindex the columns of a wide observation frame to the stations."""
        self._check_station_names(obsdf.columns)
        return obsdf.reindex(columns=self.stations)

    def _fmt_obs_to_check(self, obs_to_check) -> Union[np.ndarray, None]:
        if obs_to_check is None:
            return None
        if isinstance(obs_to_check, str):
            obs_to_check = [obs_to_check]
        self._check_station_names(obs_to_check)
        return self._metadf.index.isin(list(obs_to_check))

    def _fmt_station_setting(self, checkname: str, name: str, value):
        """Convert a per-station setting (pandas.Series) to an array."""
        if not isinstance(value, pd.Series):
            return value
        if name not in station_settings[checkname]:
            raise SpatialQCInvalidArg(name, "must be a single value for all stations")
        self._check_station_names(value.index)
        missing = [sta for sta in self.stations if sta not in value.index]
        if missing:
            raise SpatialQCInvalidArg(name, f"no value for stations {missing}")
        return value.reindex(self.stations).to_numpy(dtype=float)

    def _get_check_settings(self, checkname: str, obstype: str, overrides: dict):
        """Get the settings of a check, updated with the user overrides."""
        known_keys = set()
        for obstype_settings in check_settings[checkname].values():
            known_keys.update(obstype_settings.keys())

        unknown = set(overrides.keys()) - known_keys
        if unknown:
            raise SpatialQCInvalidArg(
                str(sorted(unknown)),
                f"unknown {checkname} settings (known are {sorted(known_keys)})",
            )

        settings = copy.deepcopy(check_settings[checkname].get(obstype, {}))
        settings.update(overrides)
        missing = known_keys - set(settings.keys())
        if missing:
            raise SpatialQCInvalidArg(
                "obstype",
                f"no default {checkname} settings for {obstype}, specify {sorted(missing)}",
            )

        return {
            key: self._fmt_station_setting(checkname, key, val)
            for key, val in settings.items()
        }

    # ------------------------------------------
    #    Quality control
    # ------------------------------------------

    @log_entry
    def buddy_check(
        self,
        obsdf: pd.DataFrame,
        obstype: str = "temp",
        obs_to_check: Union[List[str], None] = None,
        use_mp: bool = False,
        **overrides,
    ) -> pd.DataFrame:
        """
        Apply the buddy check on each timestamp of a wide observation frame.

        See spatialqc_toolkit.buddy_check() for a description of the check.

        Parameters
        ----------
        obsdf : pandas.DataFrame
            The observations with a datetime index and a column per station.
            NaN values are missing observations. Stations of the network that
            are not a column are missing observations too.
        obstype : str, optional
            The observation type, used to select the default settings. The
            default is "temp".
        obs_to_check : list of str or None, optional
            The names of the stations to check. All stations are used as
            buddies. If None, all stations are checked. The default is None.
        use_mp : bool, optional
            If True, the timestamps are distributed over multiple processes.
            The default is False.
        **overrides :
            Settings that overrule the defaults for the obstype: radius,
            num_min, threshold, max_elev_diff, elev_gradient, min_std and
            num_iterations. radius and num_min can be a pandas.Series
            indexed by station name.

        Returns
        -------
        pandas.DataFrame
            The Flag of each observation, with the index of obsdf and a column
            per station.
        """
        settings = self._get_check_settings("buddy_check", obstype, overrides)
        obsdf = self._align_obsdf(obsdf)

        func_feed_list = _create_check_arg_set(
            obsdf=obsdf,
            index=self.spatial_index,
            radii=settings["radius"],
            min_neighbour_counts=settings["num_min"],
            threshold=settings["threshold"],
            max_elev_diff=settings["max_elev_diff"],
            elev_gradient=settings["elev_gradient"],
            min_std=settings["min_std"],
            num_iterations=settings["num_iterations"],
            obs_to_check=self._fmt_obs_to_check(obs_to_check),
        )
        flags = _map_check(_buddy_check_generatorfunc, func_feed_list, use_mp)

        flagdf = pd.DataFrame(flags, index=obsdf.index, columns=obsdf.columns)
        logger.info(
            f"Buddy check on {obstype}: {_count_flag(flagdf, Flag.FAIL)} outliers in {flagdf.shape[0]} timestamps."
        )
        return flagdf

    @log_entry
    def sct(
        self,
        obsdf: pd.DataFrame,
        obstype: str = "temp",
        obs_to_check: Union[List[str], None] = None,
        use_mp: bool = False,
        solver: Union[LinearSolver, None] = None,
        **overrides,
    ) -> Tuple[pd.DataFrame, pd.DataFrame]:
        """
        Apply the spatial consistency test on each timestamp of a wide observation frame.

        See spatialqc_toolkit.sct() for a description of the check.

        Parameters
        ----------
        obsdf : pandas.DataFrame
            The observations with a datetime index and a column per station.
            NaN values are missing observations. Stations of the network that
            are not a column are missing observations too.
        obstype : str, optional
            The observation type, used to select the default settings. The
            default is "temp".
        obs_to_check : list of str or None, optional
            The names of the stations to check. All stations are used to
            check the others. If None, all stations are checked. The default
            is None.
        use_mp : bool, optional
            If True, the timestamps are distributed over multiple processes.
            The default is False.
        solver : LinearSolver or None, optional
            Matrix inversion backend. If None, a LUSolver is used.
        **overrides :
            Settings that overrule the defaults for the obstype: num_min,
            num_max, inner_radius, outer_radius, num_iterations, num_min_prof,
            min_elev_diff, min_horizontal_scale, vertical_scale, pos, neg and
            eps2. pos, neg and eps2 can be a pandas.Series indexed by station
            name.

        Returns
        -------
        flagdf : pandas.DataFrame
            The Flag of each observation, with the index of obsdf and a column
            per station.
        probdf : pandas.DataFrame
            The gross-error probability of each observation.
        """
        settings = self._get_check_settings("sct", obstype, overrides)
        obsdf = self._align_obsdf(obsdf)

        func_feed_list = _create_check_arg_set(
            obsdf=obsdf,
            index=self.spatial_index,
            obs_to_check=self._fmt_obs_to_check(obs_to_check),
            solver=solver,
            **settings,
        )
        results = _map_check(_sct_generatorfunc, func_feed_list, use_mp)

        flagdf = pd.DataFrame(
            [flags for flags, _prob in results],
            index=obsdf.index,
            columns=obsdf.columns,
        )
        probdf = pd.DataFrame(
            [prob for _flags, prob in results],
            index=obsdf.index,
            columns=obsdf.columns,
            dtype=float,
        )
        logger.info(
            f"SCT on {obstype}: {_count_flag(flagdf, Flag.FAIL)} outliers in {flagdf.shape[0]} timestamps."
        )
        return flagdf, probdf


# =============================================================================
# Helpers
# =============================================================================


def _obsrow_to_values(row: pd.Series) -> list:
    return [None if pd.isna(val) else float(val) for val in row.to_numpy()]


def _create_check_arg_set(obsdf: pd.DataFrame, **checkkwargs) -> list:
    return [
        ([_obsrow_to_values(row), dict(**checkkwargs)])
        for _dt, row in obsdf.iterrows()
    ]


def _map_check(func, func_feed_list: list, use_mp: bool) -> list:
    if use_mp:
        with concurrent.futures.ProcessPoolExecutor() as executor:
            return list(executor.map(func, func_feed_list))
    return list(map(func, func_feed_list))


def _buddy_check_generatorfunc(input: list) -> List[Flag]:
    values, kwargs = input
    return buddy_check(values=values, **kwargs)


def _sct_generatorfunc(input: list) -> Tuple[List[Flag], np.ndarray]:
    values, kwargs = input
    return sct(values=values, **kwargs)


def _count_flag(flagdf: pd.DataFrame, flag: Flag) -> int:
    return int(np.count_nonzero(flagdf.to_numpy() == flag))
