from __future__ import annotations

import zlib
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from socdepth.config import SmoothingConfig
from socdepth.harmonize.methods import interpolate
from socdepth.samples import CoreType


@dataclass
class BootstrapResult:
    lower: np.ndarray
    upper: np.ndarray
    se: np.ndarray
    n_success: int
    n_boot: int


def core_seed_sequence(seed: int, core_id: str) -> np.random.SeedSequence:
    """Independent seed stream for one core, stable across runs and worker order."""
    return np.random.SeedSequence(entropy=seed, spawn_key=(zlib.crc32(str(core_id).encode("utf-8")),))


def measurement_cv(values: Sequence[float]) -> float:
    values = np.asarray(values, dtype=float)
    if values.size < 2:
        return float("nan")
    mean = float(np.mean(values))
    if mean == 0.0:
        return float("nan")
    return float(np.std(values, ddof=1) / mean)


def combined_se(se: np.ndarray, predicted: np.ndarray, cv: float) -> np.ndarray:
    """Fold measurement variability into the bootstrap standard error."""
    return np.sqrt(np.asarray(se) ** 2 + (np.asarray(predicted) * cv) ** 2)


def bootstrap_ci(
    depths: Sequence[float],
    values: Sequence[float],
    targets: Sequence[float],
    method: str,
    core_type: CoreType,
    n_boot: int,
    confidence_level: float,
    rng: np.random.Generator,
    jobs: int = 1,
    smoothing: Optional[SmoothingConfig] = None,
) -> Optional[BootstrapResult]:
    """Percentile bootstrap of the interpolated profile at ``targets``.

    Resample indices are drawn up front from ``rng`` so results do not depend
    on how the refits are scheduled. Failed refits contribute NaN and are
    left out of the quantiles and the standard error.
    """
    if n_boot <= 0:
        return None
    depths = np.asarray(depths, dtype=float)
    values = np.asarray(values, dtype=float)
    targets = np.asarray(targets, dtype=float)
    n = depths.size
    indices = rng.integers(0, n, size=(n_boot, n))

    def _refit(idx: np.ndarray) -> np.ndarray:
        pred = interpolate(depths[idx], values[idx], targets, method, core_type, smoothing)
        if pred is None:
            return np.full(targets.size, np.nan)
        return pred

    with ThreadPoolExecutor(max_workers=max(1, jobs)) as executor:
        predictions = np.vstack(list(executor.map(_refit, indices)))

    ok = ~np.isnan(predictions).any(axis=1)
    alpha = 1.0 - confidence_level
    if not ok.any():
        nan = np.full(targets.size, np.nan)
        return BootstrapResult(lower=nan, upper=nan.copy(), se=nan.copy(), n_success=0, n_boot=n_boot)

    good = predictions[ok]
    lower = np.quantile(good, alpha / 2.0, axis=0)
    upper = np.quantile(good, 1.0 - alpha / 2.0, axis=0)
    se = np.std(good, axis=0, ddof=1) if good.shape[0] > 1 else np.full(targets.size, np.nan)
    return BootstrapResult(lower=lower, upper=upper, se=se, n_success=int(ok.sum()), n_boot=n_boot)
