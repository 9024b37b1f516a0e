from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Dict, Optional, Sequence

import numpy as np

from socdepth.config import SmoothingConfig
from socdepth.harmonize.methods import interpolate
from socdepth.samples import CoreType

LOO_MIN_SAMPLES = 4


@dataclass
class DiagnosticsRecord:
    rmse: float
    mae: float
    mape: float
    r2: float
    mean_bias: float
    bias_direction: str
    loo_rmse: float
    n_samples: int
    depth_range_cm: float
    soc_range: float

    def to_row(self, **extra: object) -> Dict[str, object]:
        row: Dict[str, object] = dict(extra)
        row.update(asdict(self))
        return row


def _mape(values: np.ndarray, residuals: np.ndarray) -> float:
    nonzero = values != 0
    if not nonzero.any():
        return float("nan")
    return float(np.mean(np.abs(residuals[nonzero] / values[nonzero])) * 100.0)


def _r2(values: np.ndarray, residuals: np.ndarray) -> float:
    ss_total = float(np.sum((values - values.mean()) ** 2))
    if ss_total == 0.0:
        return float("nan")
    return 1.0 - float(np.sum(residuals**2)) / ss_total


def loo_rmse(
    depths: np.ndarray,
    values: np.ndarray,
    method: str,
    core_type: CoreType,
    smoothing: Optional[SmoothingConfig] = None,
) -> float:
    """Leave-one-out RMSE; folds that fail to fit are skipped."""
    n = depths.size
    if n < LOO_MIN_SAMPLES:
        return float("nan")
    errors = np.full(n, np.nan)
    for i in range(n):
        train = np.arange(n) != i
        pred = interpolate(depths[train], values[train], depths[i : i + 1], method, core_type, smoothing)
        if pred is not None:
            errors[i] = values[i] - pred[0]
    if np.all(np.isnan(errors)):
        return float("nan")
    return float(np.sqrt(np.nanmean(errors**2)))


def diagnose(
    depths: Sequence[float],
    values: Sequence[float],
    method: str = "equal_area_spline",
    core_type: CoreType = CoreType.UNKNOWN,
    smoothing: Optional[SmoothingConfig] = None,
) -> Optional[DiagnosticsRecord]:
    """Goodness of fit of ``method`` at the observed depths of one core."""
    depths = np.asarray(depths, dtype=float)
    values = np.asarray(values, dtype=float)
    fitted = interpolate(depths, values, depths, method, core_type, smoothing)
    if fitted is None:
        return None

    residuals = values - fitted
    mean_bias = float(np.mean(residuals))
    return DiagnosticsRecord(
        rmse=float(np.sqrt(np.mean(residuals**2))),
        mae=float(np.mean(np.abs(residuals))),
        mape=_mape(values, residuals),
        r2=_r2(values, residuals),
        mean_bias=mean_bias,
        bias_direction="overprediction" if mean_bias > 0 else "underprediction",
        loo_rmse=loo_rmse(depths, values, method, core_type, smoothing),
        n_samples=int(depths.size),
        depth_range_cm=float(np.ptp(depths)),
        soc_range=float(np.ptp(values)),
    )
