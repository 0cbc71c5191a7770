import sys
import logging
from pathlib import Path

import numpy as np
import pytest

# Add the local source directory to Python path for development
libfolder = Path(str(Path(__file__).resolve())).parent.parent
sys.path.insert(0, str(libfolder / "src"))

import spatialqc_toolkit
from spatialqc_toolkit import Flag
from spatialqc_toolkit.backend_collection.errorclasses import (
    SpatialQCInvalidArg,
    SpatialQCInvalidInputShape,
    SpatialQCSingularMatrix,
)

from scenarios import three_stations_on_a_hill, hill_sct_kwargs, random_network


class SingularSolver(spatialqc_toolkit.LinearSolver):
    """A solver that can not invert anything."""

    def invert(self, matrix):
        raise SpatialQCSingularMatrix("fake singular matrix")


class CountingSolver(spatialqc_toolkit.LUSolver):
    """An LUSolver that counts the matrices it inverts."""

    def __init__(self):
        super().__init__()
        self.num_inversions = 0

    def invert(self, matrix):
        self.num_inversions += 1
        return super().invert(matrix)


def get_hill_index(elevs=None):
    lats, lons, hill_elevs, values = three_stations_on_a_hill()
    if elevs is None:
        elevs = hill_elevs
    index = spatialqc_toolkit.SpatialIndex(lats=lats, lons=lons, elevs=elevs)
    return index, values


def count_sweeps(caplog):
    return len(
        [rec for rec in caplog.records if rec.getMessage().startswith("SCT iteration")]
    )


sct_kwargs = dict(
    num_min=5,
    num_max=50,
    inner_radius=5000.0,
    outer_radius=20000.0,
    num_min_prof=10,
    min_elev_diff=100.0,
    min_horizontal_scale=1000.0,
    vertical_scale=200.0,
    pos=3.0,
    neg=3.0,
    eps2=0.5,
)


class TestSCTScenarios:
    def test_three_stations_on_a_hill(self):
        index, values = get_hill_index()
        flags, prob_gross_error = spatialqc_toolkit.sct(
            values=values, index=index, **hill_sct_kwargs
        )
        # the station at 100 m deviates from the vertical profile
        assert flags == [Flag.PASS, Flag.PASS, Flag.FAIL]
        assert prob_gross_error.shape == (3,)
        assert prob_gross_error[2] > hill_sct_kwargs["pos"]
        assert np.all(prob_gross_error[:2] < hill_sct_kwargs["pos"])

    def test_solvers_give_the_same_flags(self):
        index, values = get_hill_index()
        lu_flags, lu_prob = spatialqc_toolkit.sct(
            values=values,
            index=index,
            solver=spatialqc_toolkit.LUSolver(),
            **hill_sct_kwargs
        )
        np_flags, np_prob = spatialqc_toolkit.sct(
            values=values,
            index=index,
            solver=spatialqc_toolkit.NumpySolver(),
            **hill_sct_kwargs
        )
        assert lu_flags == np_flags
        assert np.allclose(lu_prob, np_prob)

    def test_higher_thresholds_accept_the_observation(self):
        index, values = get_hill_index()
        kwargs = dict(hill_sct_kwargs, pos=10.0, neg=10.0)
        flags, _prob = spatialqc_toolkit.sct(values=values, index=index, **kwargs)
        assert flags == [Flag.PASS] * 3

    def test_isolated_stations(self):
        index, values = get_hill_index()
        kwargs = dict(hill_sct_kwargs, num_min=4, num_max=10)
        flags, prob_gross_error = spatialqc_toolkit.sct(
            values=values, index=index, **kwargs
        )
        assert flags == [Flag.ISOLATED] * 3
        assert np.all(prob_gross_error == 0.0)

    def test_missing_observation(self):
        index, values = get_hill_index()
        values[1] = None
        flags, _prob = spatialqc_toolkit.sct(
            values=values, index=index, **hill_sct_kwargs
        )
        assert flags[1] == Flag.DATA_MISSING
        # too few remaining stations
        assert flags[0] == Flag.ISOLATED
        assert flags[2] == Flag.ISOLATED

    def test_invalid_elevation(self):
        index, values = get_hill_index(elevs=[0.0, 1.0, np.nan])
        flags, _prob = spatialqc_toolkit.sct(
            values=values, index=index, **hill_sct_kwargs
        )
        assert flags == [Flag.ISOLATED, Flag.ISOLATED, Flag.INVALID]

    def test_obs_to_check(self):
        index, values = get_hill_index()
        flags, prob_gross_error = spatialqc_toolkit.sct(
            values=values,
            index=index,
            obs_to_check=[True, True, False],
            **hill_sct_kwargs
        )
        # station 2 is used in the box, but not checked
        assert flags == [Flag.PASS] * 3
        assert prob_gross_error[2] == 0.0
        assert prob_gross_error[0] > 0.0

    def test_singular_box_is_inconclusive(self, caplog):
        index, values = get_hill_index()
        flags, _prob = spatialqc_toolkit.sct(
            values=values, index=index, solver=SingularSolver(), **hill_sct_kwargs
        )
        # station 0 is set aside, so the others have too small a box
        assert flags == [Flag.INCONCLUSIVE, Flag.ISOLATED, Flag.ISOLATED]
        assert "could not be solved" in caplog.text

    def test_inner_radius_limits_finalization(self):
        # two clusters 30 km apart, each cluster is finalized by its own box
        lats = [50.0, 50.001, 50.002, 50.27, 50.271, 50.272]
        lons = [4.0] * 6
        elevs = [0.0, 1.0, 100.0, 0.0, 1.0, 100.0]
        values = [60.0] * 6
        index = spatialqc_toolkit.SpatialIndex(lats=lats, lons=lons, elevs=elevs)
        flags, _prob = spatialqc_toolkit.sct(
            values=values, index=index, **hill_sct_kwargs
        )
        assert flags == [Flag.PASS, Flag.PASS, Flag.FAIL] * 2

    def test_one_box_finalizes_the_inner_circle(self):
        index, values = get_hill_index()
        solver = CountingSolver()
        flags, _prob = spatialqc_toolkit.sct(
            values=values, index=index, solver=solver, **hill_sct_kwargs
        )
        # all stations are within the inner circle of station 0
        assert solver.num_inversions == 1
        assert flags == [Flag.PASS, Flag.PASS, Flag.FAIL]

    def test_stations_beyond_the_inner_circle_get_their_own_box(self):
        index, values = get_hill_index()
        solver = CountingSolver()
        kwargs = dict(hill_sct_kwargs, inner_radius=150.0)
        flags, prob_gross_error = spatialqc_toolkit.sct(
            values=values, index=index, solver=solver, **kwargs
        )
        # station 2 is ~222 m from station 0, so it is not finalized by that box
        assert solver.num_inversions == 2
        assert flags == [Flag.PASS, Flag.PASS, Flag.FAIL]
        assert prob_gross_error[2] > kwargs["pos"]

    def test_inner_circle_skips_unchecked_stations(self):
        index, values = get_hill_index()
        solver = CountingSolver()
        kwargs = dict(hill_sct_kwargs, inner_radius=150.0)
        flags, prob_gross_error = spatialqc_toolkit.sct(
            values=values,
            index=index,
            solver=solver,
            obs_to_check=[False, True, True],
            **kwargs
        )
        # the box of station 1 reaches both others within 150 m
        assert solver.num_inversions == 1
        assert flags == [Flag.PASS, Flag.PASS, Flag.FAIL]
        assert prob_gross_error[0] == 0.0

    @pytest.mark.parametrize(
        "pos, neg, expected",
        [
            (10.0, 2.0, Flag.PASS),
            (2.0, 10.0, Flag.FAIL),
        ],
    )
    def test_positive_deviation_uses_pos(self, pos, neg, expected):
        # station 2 is warmer than the vertical profile predicts
        index, values = get_hill_index()
        kwargs = dict(hill_sct_kwargs, pos=pos, neg=neg)
        flags, prob_gross_error = spatialqc_toolkit.sct(
            values=values, index=index, **kwargs
        )
        assert flags == [Flag.PASS, Flag.PASS, expected]
        assert prob_gross_error[2] == pytest.approx(3.0, abs=0.05)

    @pytest.mark.parametrize(
        "pos, neg, expected",
        [
            (10.0, 2.0, Flag.FAIL),
            (2.0, 10.0, Flag.PASS),
        ],
    )
    def test_negative_deviation_uses_neg(self, pos, neg, expected):
        # station 2 is colder than the vertical profile predicts
        index, _values = get_hill_index()
        values = [60.0, 60.0, 58.7]
        kwargs = dict(hill_sct_kwargs, pos=pos, neg=neg)
        flags, prob_gross_error = spatialqc_toolkit.sct(
            values=values, index=index, **kwargs
        )
        assert flags == [Flag.PASS, Flag.PASS, expected]
        assert prob_gross_error[2] == pytest.approx(3.0, abs=0.05)


class TestSCTProperties:
    def get_network(self):
        lats, lons, elevs, values = random_network(n=80, seed=11, num_outliers=6)
        index = spatialqc_toolkit.SpatialIndex(lats=lats, lons=lons, elevs=elevs)
        return index, values

    def test_idempotence_of_convergence(self, caplog):
        index, values = self.get_network()
        caplog.set_level(logging.DEBUG, logger="<spatialqc_toolkit>")
        converged, _prob = spatialqc_toolkit.sct(
            values=values, index=index, num_iterations=200, **sct_kwargs
        )
        num_sweeps = count_sweeps(caplog)
        assert num_sweeps < 200

        rerun, _prob = spatialqc_toolkit.sct(
            values=values, index=index, num_iterations=num_sweeps, **sct_kwargs
        )
        assert rerun == converged

    def test_monotonic_rejection(self):
        index, values = self.get_network()
        previous_fails = set()
        for num_iterations in range(1, 5):
            flags, _prob = spatialqc_toolkit.sct(
                values=values,
                index=index,
                num_iterations=num_iterations,
                **sct_kwargs
            )
            fails = {i for i, flag in enumerate(flags) if flag == Flag.FAIL}
            assert previous_fails <= fails
            previous_fails = fails

    def test_every_station_gets_a_flag(self):
        index, values = self.get_network()
        values[0] = None
        flags, prob_gross_error = spatialqc_toolkit.sct(
            values=values, index=index, num_iterations=3, **sct_kwargs
        )
        assert len(flags) == len(values)
        assert all(isinstance(flag, Flag) for flag in flags)
        assert flags[0] == Flag.DATA_MISSING
        assert np.all(np.isfinite(prob_gross_error))
        assert np.all(prob_gross_error >= 0.0)

    def test_per_station_thresholds(self):
        index, values = self.get_network()
        n = len(values)
        scalar_flags, _prob = spatialqc_toolkit.sct(
            values=values, index=index, num_iterations=3, **sct_kwargs
        )
        kwargs = dict(sct_kwargs, pos=np.full(n, 3.0), neg=[3.0] * n, eps2=np.full(n, 0.5))
        array_flags, _prob = spatialqc_toolkit.sct(
            values=values, index=index, num_iterations=3, **kwargs
        )
        assert scalar_flags == array_flags


class TestSCTValidation:
    def get_args(self, **kwargs):
        index, values = get_hill_index()
        args = dict(values=values, index=index, **hill_sct_kwargs)
        args.update(kwargs)
        return args

    @pytest.mark.parametrize(
        "field_name, value",
        [
            ("num_min", 1),
            ("num_max", 2),
            ("num_iterations", 0),
            ("num_iterations", np.nan),
            ("num_iterations", np.inf),
            ("num_min", np.nan),
            ("num_max", np.inf),
            ("pos", -1.0),
            ("neg", -0.5),
            ("eps2", 0.0),
            ("min_elev_diff", 0.0),
            ("min_horizontal_scale", -10.0),
            ("vertical_scale", 0.0),
            ("inner_radius", -1.0),
            ("outer_radius", 5000.0),
        ],
    )
    def test_invalid_arguments(self, field_name, value):
        with pytest.raises(SpatialQCInvalidArg) as excinfo:
            spatialqc_toolkit.sct(**self.get_args(**{field_name: value}))
        assert excinfo.value.field_name == field_name

    def test_infinite_outer_radius(self):
        with pytest.raises(SpatialQCInvalidArg):
            spatialqc_toolkit.sct(**self.get_args(outer_radius=np.inf))

    def test_per_station_length_mismatch(self):
        with pytest.raises(SpatialQCInvalidInputShape) as excinfo:
            spatialqc_toolkit.sct(**self.get_args(eps2=[0.5, 0.5]))
        assert excinfo.value.field_name == "eps2"

    def test_values_do_not_match_index(self):
        with pytest.raises(SpatialQCInvalidInputShape):
            spatialqc_toolkit.sct(**self.get_args(values=[60.0, 60.0]))
