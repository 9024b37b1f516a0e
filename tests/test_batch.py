import json
import threading

import numpy as np
import pandas as pd
import pytest

from conftest import build_samples
from socdepth import batch as batch_module
from socdepth.batch import ci_enabled, harmonize_batch, harmonize_stratum, run_harmonization
from socdepth.config import BootstrapConfig, HarmonizationConfig
from socdepth.harmonize.core import CI_COLUMNS
from socdepth.samples import group_cores

STANDARD_DEPTHS = [7.5, 22.5, 40.0, 75.0]


def _scenario():
    return build_samples(
        {
            "core_1": ("A", [0.0, 10.0, 30.0, 50.0], [60.0, 40.0, 25.0, 15.0]),
            "core_2": ("A", [0.0, 10.0, 30.0, 50.0], [61.0, 41.0, 24.0, 16.0]),
            "core_3": ("A", [10.0], [40.0]),
            "core_4": ("A", [0.0, 10.0, 30.0, 50.0], [30.0, 30.0, 30.0, 30.0]),
        }
    )


def _bootstrap_scenario():
    depths = [2.0, 8.0, 15.0, 25.0, 40.0, 60.0, 90.0]
    return build_samples(
        {
            "core_a": ("Low Marsh", depths, [55.0, 50.0, 44.0, 37.0, 30.0, 24.0, 20.0]),
            "core_b": ("Low Marsh", depths, [70.0, 66.0, 52.0, 45.0, 33.0, 30.0, 21.0]),
            "core_c": ("High Marsh", depths, [40.0, 41.0, 35.0, 29.0, 25.0, 19.0, 18.0]),
            "core_d": ("High Marsh", depths[:3], [40.0, 35.0, 30.0]),
        }
    )


def test_end_to_end_linear_without_bootstrap():
    config = HarmonizationConfig(method="linear", bootstrap=BootstrapConfig(iterations=0), jobs=2)
    result = harmonize_batch(_scenario(), config)
    preds = result.predictions

    assert len(preds) == 12
    assert set(preds["core_id"]) == {"core_1", "core_2", "core_4"}
    assert np.allclose(preds.loc[preds["core_id"] == "core_4", "soc_harmonized"], 30.0)
    assert list(result.failures["core_id"]) == ["core_3"]
    assert not set(CI_COLUMNS) & set(preds.columns)

    core_1 = preds[preds["core_id"] == "core_1"]
    assert np.allclose(core_1["soc_harmonized"], [45.0, 30.625, 20.0, 15.0])
    assert list(core_1["is_interpolated"]) == [True, True, True, False]

    summary = result.stratum_summary.iloc[0]
    assert (summary["n_cores"], summary["n_success"], summary["n_failed"]) == (4, 3, 1)


def test_constant_core_is_flagged_non_monotonic():
    config = HarmonizationConfig(method="linear", bootstrap=BootstrapConfig(iterations=0))
    result = harmonize_batch(_scenario(), config)
    flags = result.predictions.groupby("core_id")["qa_monotonic"].agg(["min", "max"])
    assert not flags.loc["core_4", "max"]
    assert flags.loc["core_1", "min"]
    assert result.predictions["qa_realistic"].all()


def test_output_invariants_with_bootstrap():
    config = HarmonizationConfig(bootstrap=BootstrapConfig(iterations=40), jobs=2)
    result = harmonize_batch(_bootstrap_scenario(), config)
    preds = result.predictions

    assert set(CI_COLUMNS) <= set(preds.columns)
    assert (preds["soc_harmonized"] >= 0).all()
    assert set(preds["depth_cm"]) <= set(STANDARD_DEPTHS)
    ordered = preds.sort_values(["stratum", "core_id", "depth_cm"]).reset_index(drop=True)
    pd.testing.assert_frame_equal(preds, ordered)

    boot_rows = preds[preds["core_id"] != "core_d"]
    assert (boot_rows["soc_lower"] <= boot_rows["soc_upper"]).all()
    assert preds.loc[preds["core_id"] == "core_d", "soc_lower"].isna().all()
    assert len(result.diagnostics) == 4


def test_results_do_not_depend_on_worker_count():
    serial = HarmonizationConfig(bootstrap=BootstrapConfig(iterations=40, jobs=1), jobs=1)
    parallel = HarmonizationConfig(bootstrap=BootstrapConfig(iterations=40, jobs=3), jobs=4)
    first = harmonize_batch(_bootstrap_scenario(), serial)
    second = harmonize_batch(_bootstrap_scenario(), parallel)
    pd.testing.assert_frame_equal(first.predictions, second.predictions)
    pd.testing.assert_frame_equal(first.diagnostics, second.diagnostics)


def test_harmonize_stratum_keeps_core_order():
    strata = group_cores(_bootstrap_scenario())
    outcomes = harmonize_stratum(strata["Low Marsh"], HarmonizationConfig(jobs=2))
    assert [o.core_id for o in outcomes] == ["core_a", "core_b"]
    assert all(o.ok for o in outcomes)


def test_strata_share_one_worker_pool(monkeypatch):
    samples = build_samples(
        {
            "core_a": ("Low Marsh", [5.0, 15.0, 30.0], [50.0, 40.0, 30.0]),
            "core_b": ("Mid Marsh", [5.0, 15.0, 30.0], [45.0, 38.0, 31.0]),
            "core_c": ("High Marsh", [5.0, 15.0, 30.0], [40.0, 33.0, 27.0]),
        }
    )
    # Each core waits until all three are running, which only happens when
    # cores from different strata are in flight at the same time.
    barrier = threading.Barrier(3, timeout=10)
    real_harmonize_core = batch_module.harmonize_core

    def _wait_for_all(core, config):
        barrier.wait()
        return real_harmonize_core(core, config)

    monkeypatch.setattr(batch_module, "harmonize_core", _wait_for_all)
    config = HarmonizationConfig(method="linear", bootstrap=BootstrapConfig(iterations=0), jobs=3)
    result = harmonize_batch(samples, config)
    assert list(result.stratum_summary["stratum"]) == ["Low Marsh", "Mid Marsh", "High Marsh"]
    assert list(result.stratum_summary["n_success"]) == [1, 1, 1]
    assert [o.core_id for o in result.outcomes] == ["core_a", "core_b", "core_c"]


def test_ci_enabled():
    assert ci_enabled(HarmonizationConfig())
    assert not ci_enabled(HarmonizationConfig(bootstrap=BootstrapConfig(iterations=0)))
    assert not ci_enabled(HarmonizationConfig(bootstrap=BootstrapConfig(enabled=False)))


def test_run_harmonization_writes_outputs(tmp_path):
    input_path = tmp_path / "cores_clean.csv"
    _scenario().to_csv(input_path, index=False)
    config = HarmonizationConfig(
        method="linear",
        input_path=input_path,
        output_dir=tmp_path / "out",
        bootstrap=BootstrapConfig(iterations=0),
    )
    result = run_harmonization(config)

    out = tmp_path / "out"
    for name in (
        "cores_harmonized.parquet",
        "cores_harmonized.csv",
        "harmonization_diagnostics.csv",
        "monotonicity_summary.csv",
        "core_failures.csv",
        "harmonization_metadata.json",
        "config_used.yaml",
        "RUN_SUMMARY.md",
        "logs.txt",
    ):
        assert (out / name).exists(), name

    written = pd.read_parquet(out / "cores_harmonized.parquet")
    assert len(written) == len(result.predictions) == 12
    metadata = json.loads((out / "harmonization_metadata.json").read_text())
    assert metadata["method"] == "linear"
    assert metadata["n_cores_harmonized"] == 3


def test_run_harmonization_missing_input(tmp_path):
    config = HarmonizationConfig(input_path=tmp_path / "missing.csv", output_dir=tmp_path / "out")
    with pytest.raises(FileNotFoundError):
        run_harmonization(config)
    assert not (tmp_path / "out").exists()
