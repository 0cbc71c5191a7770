import pickle
import sys
from pathlib import Path

import numpy as np
import pytest

# Add the local source directory to Python path for development
libfolder = Path(str(Path(__file__).resolve())).parent.parent
sys.path.insert(0, str(libfolder / "src"))

import spatialqc_toolkit
from spatialqc_toolkit.spatialindex import RADIUS_EARTH, convert_coordinates
from spatialqc_toolkit.backend_collection.errorclasses import (
    SpatialQCInvalidArg,
    SpatialQCInvalidInputShape,
)

from scenarios import random_network


def get_random_index(n=200):
    lats, lons, elevs, _values = random_network(n=n, seed=7)
    return spatialqc_toolkit.SpatialIndex(lats=lats, lons=lons, elevs=elevs)


class TestNeighbours:
    def test_neighbours_with_distance_matches_neighbours(self):
        index = get_random_index()
        radius = 8000.0
        for i in range(0, len(index), 17):
            lat, lon, _elev = index.get_coords_at_index(i)
            indices = index.neighbours(lat, lon, radius)
            indices_wd, distances = index.neighbours_with_distance(lat, lon, radius)

            assert set(indices) == set(indices_wd)
            assert len(indices_wd) == len(distances)
            assert np.all(distances <= radius * (1.0 + 1e-9))
            assert i not in indices

    def test_distances_are_close_to_great_circle(self):
        index = get_random_index()
        lat, lon, _elev = index.get_coords_at_index(0)
        indices, distances = index.neighbours_with_distance(lat, lon, 20000.0)
        for idx, dist in zip(indices, distances):
            great_circle = spatialqc_toolkit.calc_distance(
                lat, lon, index.lats[idx], index.lons[idx]
            )
            # chord length is never longer than the arc
            assert dist <= great_circle * (1.0 + 1e-9) + 1e-3
            assert dist == pytest.approx(great_circle, rel=1e-5)

    def test_include_self(self):
        index = spatialqc_toolkit.SpatialIndex(
            lats=[50.0, 50.0, 50.01], lons=[4.0, 4.001, 4.0], elevs=[0.0, 0.0, 0.0]
        )
        assert index.neighbours(50.0, 4.0, 5000.0).tolist() == [1, 2]

        indices, distances = index.neighbours_with_distance(
            50.0, 4.0, 5000.0, include_self=True
        )
        assert indices.tolist() == [0, 1, 2]
        assert distances[0] == 0.0
        assert np.all(distances[1:] > 0.0)

    def test_colocated_stations_are_excluded(self):
        index = spatialqc_toolkit.SpatialIndex(
            lats=[50.0, 50.0, 50.01], lons=[4.0, 4.0, 4.0], elevs=[0.0, 5.0, 0.0]
        )
        assert index.neighbours(50.0, 4.0, 5000.0).tolist() == [2]
        assert index.neighbours(50.0, 4.0, 5000.0, include_self=True).tolist() == [
            0,
            1,
            2,
        ]

    def test_query_point_not_in_index(self):
        index = spatialqc_toolkit.SpatialIndex(
            lats=[50.0, 50.01, 52.0], lons=[4.0, 4.0, 4.0], elevs=[0.0, 0.0, 0.0]
        )
        assert index.neighbours(50.005, 4.0, 1000.0).tolist() == [0, 1]
        assert index.neighbours(50.005, 4.0, 0.0).tolist() == []

    def test_empty_index(self):
        index = spatialqc_toolkit.SpatialIndex(lats=[], lons=[], elevs=[])
        assert len(index) == 0
        indices, distances = index.neighbours_with_distance(50.0, 4.0, 1000.0)
        assert indices.size == 0
        assert distances.size == 0

    def test_cartesian_coordinates(self):
        index = spatialqc_toolkit.SpatialIndex(
            lats=[0.0, 3.0, 30.0],
            lons=[0.0, 4.0, 40.0],
            elevs=[0.0, 0.0, 0.0],
            coordinate_type="cartesian",
        )
        indices, distances = index.neighbours_with_distance(0.0, 0.0, 5.5)
        assert indices.tolist() == [1]
        assert distances[0] == pytest.approx(5.0)
        assert index.distance_matrix([0, 1, 2])[0, 2] == pytest.approx(50.0)


class TestDistances:
    def test_calc_distance_one_degree(self):
        dist = spatialqc_toolkit.calc_distance(0.0, 0.0, 0.0, 1.0)
        assert dist == pytest.approx(np.pi / 180.0 * RADIUS_EARTH, rel=1e-6)
        assert spatialqc_toolkit.calc_distance(51.0, 4.0, 51.0, 4.0) == 0.0

    def test_calc_distance_antipodes(self):
        dist = spatialqc_toolkit.calc_distance(0.0, 0.0, 0.0, 180.0)
        assert dist == pytest.approx(np.pi * RADIUS_EARTH, rel=1e-9)

    def test_distance_matrix(self):
        index = spatialqc_toolkit.SpatialIndex(
            lats=[50.0, 51.0, 50.5], lons=[3.0, 4.0, 5.0], elevs=[0.0, 0.0, 0.0]
        )
        distmat = index.distance_matrix([0, 1, 2])
        assert distmat.shape == (3, 3)
        assert np.all(np.diag(distmat) == 0.0)
        assert np.allclose(distmat, distmat.T)
        for i in range(3):
            for j in range(3):
                if i == j:
                    continue
                expected = spatialqc_toolkit.calc_distance(
                    index.lats[i], index.lons[i], index.lats[j], index.lons[j]
                )
                assert distmat[i, j] == pytest.approx(expected, rel=1e-6)

    def test_convert_coordinates_on_sphere(self):
        points = convert_coordinates(np.array([0.0, 90.0]), np.array([0.0, 0.0]))
        assert points.shape == (2, 3)
        assert np.allclose(np.linalg.norm(points, axis=1), RADIUS_EARTH)
        assert points[0] == pytest.approx([RADIUS_EARTH, 0.0, 0.0])


class TestValidation:
    def test_invalid_latitude(self):
        with pytest.raises(SpatialQCInvalidArg):
            spatialqc_toolkit.SpatialIndex(
                lats=[50.0, 91.0], lons=[4.0, 4.0], elevs=[0.0, 0.0]
            )
        with pytest.raises(SpatialQCInvalidArg):
            spatialqc_toolkit.calc_distance(-95.0, 0.0, 0.0, 0.0)

    def test_invalid_longitude(self):
        with pytest.raises(SpatialQCInvalidArg):
            spatialqc_toolkit.SpatialIndex(
                lats=[50.0, 50.0], lons=[4.0, 361.0], elevs=[0.0, 0.0]
            )
        index = spatialqc_toolkit.SpatialIndex(lats=[50.0], lons=[4.0], elevs=[0.0])
        with pytest.raises(SpatialQCInvalidArg):
            index.neighbours(50.0, np.nan, 1000.0)

    def test_negative_longitudes_are_valid(self):
        index = spatialqc_toolkit.SpatialIndex(
            lats=[50.0, 50.0], lons=[-4.0, 356.0], elevs=[0.0, 0.0]
        )
        # both conventions describe the same location
        assert index.neighbours(50.0, -4.0, 1.0, include_self=True).tolist() == [
            0,
            1,
        ]

    def test_invalid_radius(self):
        index = spatialqc_toolkit.SpatialIndex(lats=[50.0], lons=[4.0], elevs=[0.0])
        with pytest.raises(SpatialQCInvalidArg):
            index.neighbours(50.0, 4.0, -1.0)
        with pytest.raises(SpatialQCInvalidArg):
            index.neighbours(50.0, 4.0, np.inf)

    def test_invalid_shapes(self):
        with pytest.raises(SpatialQCInvalidInputShape) as excinfo:
            spatialqc_toolkit.SpatialIndex(
                lats=[50.0, 51.0], lons=[4.0], elevs=[0.0, 0.0]
            )
        assert excinfo.value.field_name == "lons"

        with pytest.raises(SpatialQCInvalidInputShape) as excinfo:
            spatialqc_toolkit.SpatialIndex(
                lats=[50.0, 51.0], lons=[4.0, 4.0], elevs=[0.0]
            )
        assert excinfo.value.field_name == "elevs"

    def test_non_finite_elevations_are_accepted(self):
        index = spatialqc_toolkit.SpatialIndex(
            lats=[50.0, 51.0], lons=[4.0, 4.0], elevs=[np.nan, 0.0]
        )
        assert np.isnan(index.elevs[0])


class TestIndexObject:
    def test_index_is_immutable(self):
        lats = np.array([50.0, 51.0])
        index = spatialqc_toolkit.SpatialIndex(
            lats=lats, lons=[4.0, 4.0], elevs=[0.0, 0.0]
        )
        with pytest.raises(ValueError):
            index.lats[0] = 10.0
        # the input array of the user is not touched
        lats[0] = 10.0
        assert index.lats[0] == 50.0

    def test_pickle(self):
        index = get_random_index(n=50)
        restored = pickle.loads(pickle.dumps(index))
        lat, lon, _elev = index.get_coords_at_index(3)
        assert len(restored) == len(index)
        assert (
            restored.neighbours(lat, lon, 10000.0).tolist()
            == index.neighbours(lat, lon, 10000.0).tolist()
        )

    def test_repr(self):
        index = get_random_index(n=5)
        assert repr(index) == "SpatialIndex of 5 stations (geodetic)"


if __name__ == "__main__":
    t = TestNeighbours()
    t.test_neighbours_with_distance_matches_neighbours()
