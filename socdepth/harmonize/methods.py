from __future__ import annotations

from typing import Callable, Optional, Sequence, Tuple

import numpy as np
from scipy.interpolate import CubicSpline, UnivariateSpline

from socdepth.config import METHODS, SmoothingConfig
from socdepth.samples import CoreType

_FIT_ERRORS = (ValueError, RuntimeError, ZeroDivisionError, np.linalg.LinAlgError)


def min_samples(method: str) -> int:
    if method not in METHODS:
        raise ValueError(f"Unknown interpolation method: {method}")
    return 2 if method == "linear" else 3


def collapse_ties(depths: Sequence[float], values: Sequence[float]) -> Tuple[np.ndarray, np.ndarray]:
    """Sort a profile by depth and average values that share a depth."""
    depths = np.asarray(depths, dtype=float)
    values = np.asarray(values, dtype=float)
    if depths.shape != values.shape:
        raise ValueError("depths and values must have the same length")
    keep = np.isfinite(depths) & np.isfinite(values)
    unique, inverse = np.unique(depths[keep], return_inverse=True)
    if unique.size == 0:
        return unique, unique.copy()
    sums = np.bincount(inverse, weights=values[keep])
    counts = np.bincount(inverse)
    return unique, sums / counts


def _with_linear_tails(
    curve: Callable[[np.ndarray], np.ndarray],
    slope: Callable[[np.ndarray], np.ndarray],
    lo: float,
    hi: float,
    targets: np.ndarray,
) -> np.ndarray:
    """Evaluate a spline inside [lo, hi] and continue it linearly outside."""
    inside = np.clip(targets, lo, hi)
    pred = np.asarray(curve(inside), dtype=float)
    pred = pred + np.where(targets < lo, float(slope(np.array([lo]))[0]) * (targets - lo), 0.0)
    pred = pred + np.where(targets > hi, float(slope(np.array([hi]))[0]) * (targets - hi), 0.0)
    return pred


def _natural_spline(x: np.ndarray, y: np.ndarray, targets: np.ndarray) -> np.ndarray:
    spline = CubicSpline(x, y, bc_type="natural")
    return _with_linear_tails(spline, lambda t: spline(t, 1), x[0], x[-1], targets)


def _linear(x: np.ndarray, y: np.ndarray, targets: np.ndarray) -> np.ndarray:
    return np.interp(targets, x, y)


def _smoothing_spline(x: np.ndarray, y: np.ndarray, strength: float, targets: np.ndarray) -> np.ndarray:
    degree = min(3, x.size - 1)
    budget = strength * x.size * float(np.var(y))
    spline = UnivariateSpline(x, y, k=degree, s=budget)
    derivative = spline.derivative()
    return _with_linear_tails(spline, derivative, x[0], x[-1], targets)


def select_smoothing(x: np.ndarray, y: np.ndarray, grid: Sequence[float]) -> float:
    """Pick the smoothing strength with the lowest leave-one-out squared error.

    ``x`` must already be sorted and free of ties. Profiles with fewer than
    four depths are interpolated exactly.
    """
    n = x.size
    if n < 4:
        return 0.0
    best_strength = 0.0
    best_error = np.inf
    for strength in grid:
        errors = []
        for i in range(n):
            train = np.arange(n) != i
            try:
                pred = _smoothing_spline(x[train], y[train], strength, x[i : i + 1])
            except _FIT_ERRORS:
                continue
            if np.isfinite(pred[0]):
                errors.append((y[i] - pred[0]) ** 2)
        if errors and np.mean(errors) < best_error:
            best_error = float(np.mean(errors))
            best_strength = float(strength)
    return best_strength


def interpolate(
    depths: Sequence[float],
    values: Sequence[float],
    targets: Sequence[float],
    method: str = "equal_area_spline",
    core_type: CoreType = CoreType.UNKNOWN,
    smoothing: Optional[SmoothingConfig] = None,
) -> Optional[np.ndarray]:
    """Predict a depth profile at ``targets``.

    Returns None when the profile cannot be fitted by ``method`` (too few
    distinct depths, degenerate input, solver failure). Predictions are
    clamped at zero.
    """
    if method not in METHODS:
        raise ValueError(f"Unknown interpolation method: {method}")
    x, y = collapse_ties(depths, values)
    targets = np.atleast_1d(np.asarray(targets, dtype=float))
    if x.size < min_samples(method):
        return None

    try:
        if method == "equal_area_spline":
            pred = _natural_spline(x, y, targets)
        elif method == "linear":
            pred = _linear(x, y, targets)
        else:
            smoothing = smoothing or SmoothingConfig()
            strength = smoothing.strength_for(core_type)
            if strength is None:
                strength = select_smoothing(x, y, smoothing.cv_grid)
            pred = _smoothing_spline(x, y, strength, targets)
    except _FIT_ERRORS:
        return None

    if not np.all(np.isfinite(pred)):
        return None
    return np.clip(pred, 0.0, None)
