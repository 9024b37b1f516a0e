from __future__ import annotations

import logging
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import pandas as pd

from socdepth.config import HarmonizationConfig
from socdepth.harmonize.core import CI_COLUMNS, CoreOutcome, harmonize_core
from socdepth.io.samples import load_samples
from socdepth.io.tables import write_outputs
from socdepth.qa import CORE_QA_COLUMNS, apply_qa
from socdepth.report.summary import build_run_summary, print_run_summary
from socdepth.samples import Core, group_cores
from socdepth.utils.logging import setup_logging

logger = logging.getLogger(__name__)

PREDICTION_COLUMNS = [
    "core_id",
    "stratum",
    "depth_cm",
    "soc_harmonized",
    "longitude",
    "latitude",
    "scenario_type",
    "monitoring_year",
    "core_type",
    "interpolation_method",
    "is_interpolated",
    "measurement_cv",
    "metadata_consistent",
]

DIAGNOSTICS_COLUMNS = [
    "core_id",
    "stratum",
    "core_type",
    "rmse",
    "mae",
    "mape",
    "r2",
    "mean_bias",
    "bias_direction",
    "loo_rmse",
    "n_samples",
    "depth_range_cm",
    "soc_range",
    "metadata_consistent",
]


@dataclass
class BatchResult:
    predictions: pd.DataFrame
    diagnostics: pd.DataFrame
    core_qa: pd.DataFrame
    stratum_summary: pd.DataFrame
    failures: pd.DataFrame
    outcomes: List[CoreOutcome] = field(default_factory=list)

    @property
    def n_cores_harmonized(self) -> int:
        return int(self.predictions["core_id"].nunique()) if not self.predictions.empty else 0


def ci_enabled(config: HarmonizationConfig) -> bool:
    return config.bootstrap.enabled and config.bootstrap.iterations > 0


def harmonize_stratum(
    cores: List[Core],
    config: HarmonizationConfig,
    executor: Optional[Executor] = None,
) -> List[CoreOutcome]:
    """Harmonize the cores of one stratum; outcomes keep the input order."""
    if executor is None:
        with ThreadPoolExecutor(max_workers=config.jobs) as pool:
            return list(pool.map(lambda core: harmonize_core(core, config), cores))
    return list(executor.map(lambda core: harmonize_core(core, config), cores))


def _prediction_table(outcomes: List[CoreOutcome], config: HarmonizationConfig) -> pd.DataFrame:
    columns = PREDICTION_COLUMNS + (CI_COLUMNS if ci_enabled(config) else [])
    frames = [o.predictions for o in outcomes if o.ok and o.predictions is not None]
    if not frames:
        return pd.DataFrame(columns=columns)
    table = pd.concat(frames, ignore_index=True).reindex(columns=columns)
    return table.sort_values(["stratum", "core_id", "depth_cm"], kind="mergesort").reset_index(drop=True)


def _diagnostics_table(outcomes: List[CoreOutcome], cores: Dict[str, Core]) -> pd.DataFrame:
    rows = []
    for outcome in outcomes:
        if outcome.diagnostics is None:
            continue
        core = cores[outcome.core_id]
        rows.append(
            outcome.diagnostics.to_row(
                core_id=core.core_id,
                stratum=core.stratum,
                core_type=core.core_type.value,
                metadata_consistent=core.metadata_consistent,
            )
        )
    table = pd.DataFrame(rows, columns=DIAGNOSTICS_COLUMNS)
    return table.sort_values(["stratum", "core_id"], kind="mergesort").reset_index(drop=True)


def harmonize_batch(samples: pd.DataFrame, config: HarmonizationConfig) -> BatchResult:
    """Harmonize every core of a cleaned sample table and apply batch QA."""
    logger.info("Using interpolation method: %s", config.method)
    logger.info("Target depths: %s", ", ".join(f"{d:g}" for d in config.standard_depths))
    strata = group_cores(samples)
    cores = {core.core_id: core for stratum_cores in strata.values() for core in stratum_cores}

    outcomes: List[CoreOutcome] = []
    summary_rows = []
    with ThreadPoolExecutor(max_workers=config.jobs) as executor:
        # Every core of every stratum is queued before any result is collected.
        pending = {}
        for stratum, stratum_cores in strata.items():
            logger.info("Processing stratum %s: %d cores", stratum, len(stratum_cores))
            pending[stratum] = [executor.submit(harmonize_core, core, config) for core in stratum_cores]
        for stratum, futures in pending.items():
            stratum_outcomes = [future.result() for future in futures]
            n_success = sum(o.ok for o in stratum_outcomes)
            n_failed = len(stratum_outcomes) - n_success
            logger.info("%s: %d successful, %d failed", stratum, n_success, n_failed)
            summary_rows.append(
                {
                    "stratum": stratum,
                    "n_cores": len(stratum_outcomes),
                    "n_success": n_success,
                    "n_failed": n_failed,
                    "n_diagnostics": sum(o.diagnostics is not None for o in stratum_outcomes),
                }
            )
            outcomes.extend(stratum_outcomes)

    predictions = _prediction_table(outcomes, config)
    predictions, core_qa = apply_qa(predictions, config.qa)
    diagnostics = _diagnostics_table(outcomes, cores)
    failures = pd.DataFrame(
        [{"core_id": o.core_id, "stratum": o.stratum, "reason": o.reason} for o in outcomes if not o.ok],
        columns=["core_id", "stratum", "reason"],
    )
    core_qa = core_qa.reindex(columns=CORE_QA_COLUMNS)
    logger.info(
        "Total harmonized predictions: %d from %d cores",
        len(predictions),
        predictions["core_id"].nunique() if not predictions.empty else 0,
    )
    return BatchResult(
        predictions=predictions,
        diagnostics=diagnostics,
        core_qa=core_qa,
        stratum_summary=pd.DataFrame(
            summary_rows, columns=["stratum", "n_cores", "n_success", "n_failed", "n_diagnostics"]
        ),
        failures=failures,
        outcomes=outcomes,
    )


def run_harmonization(config: HarmonizationConfig) -> BatchResult:
    """Load, harmonize, write and summarize one batch described by ``config``."""
    if not config.input_path.exists():
        raise FileNotFoundError(f"Cleaned sample table not found: {config.input_path}")
    run_dir = config.output_dir
    log_path = setup_logging(run_dir)
    logger.info("Logging to %s", log_path)

    samples = load_samples(config.input_path)
    result = harmonize_batch(samples, config)
    write_outputs(result, config, run_dir)
    build_run_summary(run_dir, result, config)
    print_run_summary(result, config)
    logger.info("Depth harmonization complete")
    return result
