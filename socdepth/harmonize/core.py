from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
import pandas as pd

from socdepth.config import HarmonizationConfig
from socdepth.harmonize.bootstrap import bootstrap_ci, combined_se, core_seed_sequence, measurement_cv
from socdepth.harmonize.diagnostics import DiagnosticsRecord, diagnose
from socdepth.harmonize.methods import interpolate, min_samples
from socdepth.samples import Core

logger = logging.getLogger(__name__)

CI_COLUMNS = ["soc_lower", "soc_upper", "soc_se", "soc_se_combined"]


@dataclass
class CoreOutcome:
    core_id: str
    stratum: str
    status: str
    reason: str = ""
    predictions: Optional[pd.DataFrame] = None
    diagnostics: Optional[DiagnosticsRecord] = None

    @property
    def ok(self) -> bool:
        return self.status == "success"


def bootstrap_iterations(core: Core, config: HarmonizationConfig) -> int:
    if config.bootstrap.enabled and core.n_samples >= config.bootstrap.min_samples:
        return config.bootstrap.iterations
    return 0


def _failed(core: Core, reason: str) -> CoreOutcome:
    logger.warning("Core %s: %s", core.core_id, reason)
    return CoreOutcome(core_id=core.core_id, stratum=core.stratum, status="failed", reason=reason)


def _run_core(core: Core, config: HarmonizationConfig) -> CoreOutcome:
    method = config.method
    needed = min_samples(method)
    if core.n_samples < needed:
        return _failed(core, f"insufficient samples (n={core.n_samples}, need {needed})")

    try:
        diagnostics = diagnose(core.depths, core.values, method, core.core_type, config.smoothing)
    except Exception:  # noqa: BLE001
        logger.exception("Core %s: diagnostics failed", core.core_id)
        diagnostics = None
    if diagnostics is None:
        logger.info("Core %s: diagnostics unavailable", core.core_id)

    n_boot = bootstrap_iterations(core, config)
    targets = np.asarray(config.standard_depths, dtype=float)
    predictions = interpolate(core.depths, core.values, targets, method, core.core_type, config.smoothing)
    if predictions is None:
        return _failed(core, "interpolation failed")

    rng = np.random.default_rng(core_seed_sequence(config.seed, core.core_id))
    boot = bootstrap_ci(
        core.depths,
        core.values,
        targets,
        method,
        core.core_type,
        n_boot,
        config.bootstrap.confidence_level,
        rng,
        jobs=config.bootstrap.jobs,
        smoothing=config.smoothing,
    )

    cv = measurement_cv(core.values)
    lo, hi = float(core.depths.min()), float(core.depths.max())
    rows = pd.DataFrame(
        {
            "core_id": core.core_id,
            "stratum": core.stratum,
            "depth_cm": targets,
            "soc_harmonized": predictions,
        }
    )
    for key, value in core.metadata().items():
        rows[key] = value
    rows["interpolation_method"] = method
    rows["is_interpolated"] = (targets >= lo) & (targets <= hi)
    rows["measurement_cv"] = cv
    rows["metadata_consistent"] = core.metadata_consistent
    if boot is not None:
        rows["soc_lower"] = boot.lower
        rows["soc_upper"] = boot.upper
        rows["soc_se"] = boot.se
        rows["soc_se_combined"] = combined_se(boot.se, predictions, cv)
        logger.debug("Core %s: bootstrap %d/%d resamples fitted", core.core_id, boot.n_success, boot.n_boot)

    logger.info("Core %s: harmonized %d depths (n=%d, bootstrap=%d)", core.core_id, targets.size, core.n_samples, n_boot)
    return CoreOutcome(
        core_id=core.core_id,
        stratum=core.stratum,
        status="success",
        predictions=rows,
        diagnostics=diagnostics,
    )


def harmonize_core(core: Core, config: HarmonizationConfig) -> CoreOutcome:
    """Harmonize one core to the configured standard depths.

    Never raises: every failure, expected or not, becomes a failed outcome so
    one core cannot abort its stratum.
    """
    try:
        return _run_core(core, config)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Core %s: unexpected error", core.core_id)
        return CoreOutcome(
            core_id=core.core_id,
            stratum=core.stratum,
            status="failed",
            reason=f"unexpected error: {exc}",
        )
