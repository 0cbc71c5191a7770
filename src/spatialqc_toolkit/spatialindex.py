#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Spatial index over station positions, used to find the neighbours of a station.

The stations are converted to 3D cartesian points on a sphere (the earth) and
stored in a KDTree. Radius queries on these points are equivalent to
great-circle radius queries (up to negligible differences for radii that are
much smaller than the earth radius).
"""

import logging
from typing import Sequence, Tuple, Union

import numpy as np
from sklearn.neighbors import KDTree

from spatialqc_toolkit.backend_collection.errorclasses import (
    SpatialQCInvalidArg,
    SpatialQCInvalidInputShape,
)
from spatialqc_toolkit.backend_collection.loggingmodule import log_entry

logger = logging.getLogger("<spatialqc_toolkit>")

RADIUS_EARTH = 6371000.0  # m
COORDINATE_TYPES = ("geodetic", "cartesian")


def _validate_latlons(
    lats: np.ndarray, lons: np.ndarray, coordinate_type: str = "geodetic"
) -> None:
    if coordinate_type not in COORDINATE_TYPES:
        raise SpatialQCInvalidArg(
            "coordinate_type", f"must be one of {COORDINATE_TYPES}"
        )
    if not np.all(np.isfinite(lats)):
        raise SpatialQCInvalidArg("lats", "all values must be finite")
    if not np.all(np.isfinite(lons)):
        raise SpatialQCInvalidArg("lons", "all values must be finite")

    if coordinate_type == "geodetic":
        if np.any(np.abs(lats) > 90.0):
            raise SpatialQCInvalidArg("lats", "outside valid range [-90, 90]")
        # Checked against 360, not 180, since both the 0 -> 360 and the
        # -360 -> 0 conventions are in use.
        if np.any(np.abs(lons) > 360.0):
            raise SpatialQCInvalidArg("lons", "outside valid range [-360, 360]")


def convert_coordinates(
    lats: Union[float, np.ndarray],
    lons: Union[float, np.ndarray],
    coordinate_type: str = "geodetic",
) -> np.ndarray:
    """
    Convert latitudes and longitudes to xyz coordinates.

    Parameters
    ----------
    lats : float or numpy.ndarray
        Latitudes in degrees (or y in meters for cartesian coordinates).
    lons : float or numpy.ndarray
        Longitudes in degrees (or x in meters for cartesian coordinates).
    coordinate_type : "geodetic" or "cartesian", optional
        If "geodetic", the points are placed on a sphere with radius
        RADIUS_EARTH. If "cartesian", lats and lons are used as planar
        coordinates. The default is "geodetic".

    Returns
    -------
    numpy.ndarray
        Array of shape (n, 3) with the xyz coordinates in meters.
    """
    lats = np.atleast_1d(np.asarray(lats, dtype=float))
    lons = np.atleast_1d(np.asarray(lons, dtype=float))

    if coordinate_type == "cartesian":
        return np.column_stack([lats, lons, np.zeros_like(lats)])

    latr = np.radians(lats)
    lonr = np.radians(lons)
    return np.column_stack(
        [
            np.cos(latr) * np.cos(lonr) * RADIUS_EARTH,
            np.cos(latr) * np.sin(lonr) * RADIUS_EARTH,
            np.sin(latr) * RADIUS_EARTH,
        ]
    )


def calc_distance(
    lat1: float, lon1: float, lat2: float, lon2: float, coordinate_type="geodetic"
) -> float:
    """
    Compute the distance (in meters) between two points.

    For geodetic coordinates the great-circle distance is computed with the
    spherical law of cosines. For cartesian coordinates the planar distance is
    returned.

    Parameters
    ----------
    lat1, lon1 : float
        Coordinates of the first point.
    lat2, lon2 : float
        Coordinates of the second point.
    coordinate_type : "geodetic" or "cartesian", optional
        The coordinate convention. The default is "geodetic".

    Returns
    -------
    float
        The distance in meters.

    Raises
    ------
    SpatialQCInvalidArg
        If a latitude or longitude is outside its valid range.
    """
    _validate_latlons(
        np.array([lat1, lat2], dtype=float),
        np.array([lon1, lon2], dtype=float),
        coordinate_type=coordinate_type,
    )
    if lat1 == lat2 and lon1 == lon2:
        return 0.0

    if coordinate_type == "cartesian":
        return float(np.hypot(lat1 - lat2, lon1 - lon2))

    lat1r, lon1r, lat2r, lon2r = np.radians([lat1, lon1, lat2, lon2])
    ratio = (
        np.cos(lat1r) * np.cos(lon1r) * np.cos(lat2r) * np.cos(lon2r)
        + np.cos(lat1r) * np.sin(lon1r) * np.cos(lat2r) * np.sin(lon2r)
        + np.sin(lat1r) * np.sin(lat2r)
    )
    # floating point drift can push the ratio just outside the arccos domain
    ratio = np.clip(ratio, -1.0, 1.0)
    return float(np.arccos(ratio) * RADIUS_EARTH)


class SpatialIndex:
    """
    Spatial index over a set of stations.

    The index is immutable once built, and can be reused for all checks on the
    same set of stations (e.g. for every timestamp of a timeseries).

    Parameters
    ----------
    lats : array-like
        Latitude of each station in degrees.
    lons : array-like
        Longitude of each station in degrees.
    elevs : array-like
        Elevation of each station in meters. Elevations are not used for the
        spatial indexing, only by the checks. Non-finite elevations are
        allowed here.
    coordinate_type : "geodetic" or "cartesian", optional
        The coordinate convention, see convert_coordinates(). The default is
        "geodetic".

    Examples
    --------
    >>> from spatialqc_toolkit import SpatialIndex
    >>> index = SpatialIndex(lats=[50.0, 50.01, 51.0],
    ...                      lons=[4.0, 4.0, 4.0],
    ...                      elevs=[10.0, 12.0, 30.0])
    >>> index.neighbours(lat=50.0, lon=4.0, radius=5000.0)
    array([1])
    """

    @log_entry
    def __init__(
        self,
        lats: Sequence[float],
        lons: Sequence[float],
        elevs: Sequence[float],
        coordinate_type: str = "geodetic",
    ):
        lats = np.array(lats, dtype=float)
        lons = np.array(lons, dtype=float)
        elevs = np.array(elevs, dtype=float)

        if lats.ndim != 1:
            raise SpatialQCInvalidInputShape("lats")
        if lons.shape != lats.shape:
            raise SpatialQCInvalidInputShape("lons")
        if elevs.shape != lats.shape:
            raise SpatialQCInvalidInputShape("elevs")

        _validate_latlons(lats, lons, coordinate_type=coordinate_type)

        for arr in (lats, lons, elevs):
            arr.setflags(write=False)

        self._lats = lats
        self._lons = lons
        self._elevs = elevs
        self._coordinate_type = coordinate_type

        self._points = convert_coordinates(lats, lons, coordinate_type)
        self._points.setflags(write=False)
        if len(lats) > 0:
            self._tree = KDTree(self._points)
        else:
            self._tree = None

        logger.debug(f"{self} is created.")

    def __repr__(self) -> str:
        return f"SpatialIndex of {len(self)} stations ({self.coordinate_type})"

    def __len__(self) -> int:
        return len(self._lats)

    @property
    def lats(self) -> np.ndarray:
        return self._lats

    @property
    def lons(self) -> np.ndarray:
        return self._lons

    @property
    def elevs(self) -> np.ndarray:
        return self._elevs

    @property
    def coordinate_type(self) -> str:
        return self._coordinate_type

    def get_coords_at_index(self, i: int) -> Tuple[float, float, float]:
        """Return the (lat, lon, elev) of the station at index i."""
        return float(self._lats[i]), float(self._lons[i]), float(self._elevs[i])

    def neighbours(
        self, lat: float, lon: float, radius: float, include_self: bool = False
    ) -> np.ndarray:
        """
        Get all stations within a radius of a point.

        Parameters
        ----------
        lat : float
            Latitude of the query point.
        lon : float
            Longitude of the query point.
        radius : float
            The search radius in meters.
        include_self : bool, optional
            If False, stations located exactly at the query point are
            excluded. The default is False.

        Returns
        -------
        numpy.ndarray
            The (sorted) indices of the stations within the radius.
        """
        indices, _distances = self.neighbours_with_distance(
            lat=lat, lon=lon, radius=radius, include_self=include_self
        )
        return indices

    def neighbours_with_distance(
        self, lat: float, lon: float, radius: float, include_self: bool = False
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Get all stations within a radius of a point, with their distance.

        The distance is the straight-line distance between the points in the
        index space (the space the radius is tested in), so all distances are
        smaller than or equal to the radius.

        Parameters
        ----------
        lat : float
            Latitude of the query point.
        lon : float
            Longitude of the query point.
        radius : float
            The search radius in meters.
        include_self : bool, optional
            If False, stations located exactly at the query point are
            excluded. The default is False.

        Returns
        -------
        numpy.ndarray
            The (sorted) indices of the stations within the radius.
        numpy.ndarray
            The distance (in meters) of each station to the query point.
        """
        if not np.isfinite(radius) or radius < 0:
            raise SpatialQCInvalidArg("radius", "must be finite and >= 0")

        if self._tree is None:
            return np.array([], dtype=int), np.array([], dtype=float)

        _validate_latlons(
            np.array([lat], dtype=float),
            np.array([lon], dtype=float),
            coordinate_type=self.coordinate_type,
        )
        query = convert_coordinates(lat, lon, self.coordinate_type)

        indices, distances = self._tree.query_radius(
            query, r=radius, return_distance=True
        )
        indices = np.asarray(indices[0], dtype=int)
        distances = np.asarray(distances[0], dtype=float)

        is_match = (self._lats[indices] == lat) & (self._lons[indices] == lon)
        if include_self:
            distances[is_match] = 0.0
        else:
            indices = indices[~is_match]
            distances = distances[~is_match]

        order = np.argsort(indices)
        return indices[order], distances[order]

    def distance_matrix(self, indices: Sequence[int]) -> np.ndarray:
        """
        Compute the pairwise distances between a subset of stations.

        For geodetic coordinates these are great-circle distances (spherical
        law of cosines), for cartesian coordinates planar distances.

        Parameters
        ----------
        indices : sequence of int
            The indices of the stations.

        Returns
        -------
        numpy.ndarray
            Symmetric (n, n) matrix with distances in meters, zeros on the
            diagonal.
        """
        indices = np.asarray(indices, dtype=int)
        if self.coordinate_type == "cartesian":
            dlat = self._lats[indices][:, None] - self._lats[indices][None, :]
            dlon = self._lons[indices][:, None] - self._lons[indices][None, :]
            return np.hypot(dlat, dlon)

        unitpoints = self._points[indices] / RADIUS_EARTH
        ratio = np.clip(unitpoints @ unitpoints.T, -1.0, 1.0)
        distances = np.arccos(ratio) * RADIUS_EARTH
        np.fill_diagonal(distances, 0.0)
        return distances
