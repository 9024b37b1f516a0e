import numpy as np

from socdepth.harmonize.bootstrap import bootstrap_ci, combined_se, core_seed_sequence, measurement_cv
from socdepth.samples import CoreType

DEPTHS = np.array([2.0, 8.0, 15.0, 25.0, 40.0, 60.0, 90.0])
SOC = np.array([55.0, 50.0, 44.0, 37.0, 30.0, 24.0, 20.0])
TARGETS = [7.5, 22.5, 40.0, 75.0]


def _run(seed=42, core_id="core_1", jobs=1, n_boot=200, method="linear"):
    rng = np.random.default_rng(core_seed_sequence(seed, core_id))
    return bootstrap_ci(DEPTHS, SOC, TARGETS, method, CoreType.HR, n_boot, 0.95, rng, jobs=jobs)


def test_no_iterations_means_no_interval():
    rng = np.random.default_rng(0)
    assert bootstrap_ci(DEPTHS, SOC, TARGETS, "linear", CoreType.HR, 0, 0.95, rng) is None


def test_interval_is_ordered():
    result = _run()
    assert result.lower.shape == (4,)
    assert np.all(result.lower <= result.upper)
    assert np.all(result.se >= 0)
    assert 0 < result.n_success <= result.n_boot


def test_spline_interval_with_failed_resamples():
    result = _run(method="equal_area_spline", n_boot=300)
    assert result.n_success <= 300
    finite = np.isfinite(result.lower) & np.isfinite(result.upper)
    assert finite.all()
    assert np.all(result.lower <= result.upper)


def test_reproducible_for_fixed_seed():
    first = _run()
    second = _run()
    assert np.array_equal(first.lower, second.lower)
    assert np.array_equal(first.upper, second.upper)
    assert np.array_equal(first.se, second.se)


def test_thread_count_does_not_change_result():
    serial = _run(jobs=1)
    parallel = _run(jobs=4)
    assert np.array_equal(serial.lower, parallel.lower)
    assert np.array_equal(serial.se, parallel.se)


def test_core_streams_are_independent():
    a = np.random.default_rng(core_seed_sequence(42, "core_1")).integers(0, 1_000_000, 5)
    b = np.random.default_rng(core_seed_sequence(42, "core_2")).integers(0, 1_000_000, 5)
    c = np.random.default_rng(core_seed_sequence(42, "core_1")).integers(0, 1_000_000, 5)
    assert not np.array_equal(a, b)
    assert np.array_equal(a, c)


def test_measurement_cv():
    assert np.isclose(measurement_cv([10.0, 20.0, 30.0]), 0.5)
    assert np.isnan(measurement_cv([0.0, 0.0]))
    assert np.isnan(measurement_cv([12.0]))


def test_combined_se():
    assert np.allclose(combined_se(np.array([3.0]), np.array([10.0]), 0.4), [5.0])
