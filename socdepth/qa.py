from __future__ import annotations

import logging
from typing import Dict, Tuple

import numpy as np
import pandas as pd

from socdepth.config import QAConfig

logger = logging.getLogger(__name__)

CORE_QA_COLUMNS = [
    "core_id",
    "cor_with_depth",
    "max_increase_pct",
    "max_decrease_pct",
    "monotonic",
    "unusual_pattern",
]


def adjacent_pct_changes(values: np.ndarray) -> np.ndarray:
    """Percent change between consecutive values; 0 where the upper value is not positive."""
    values = np.asarray(values, dtype=float)
    upper = values[:-1]
    changes = np.zeros(upper.size)
    positive = upper > 0
    changes[positive] = (values[1:][positive] - upper[positive]) / upper[positive] * 100.0
    return changes


def _depth_correlation(depths: np.ndarray, values: np.ndarray) -> float:
    if np.ptp(depths) == 0 or np.ptp(values) == 0:
        return float("nan")
    return float(np.corrcoef(depths, values)[0, 1])


def assess_profile(depths: np.ndarray, values: np.ndarray, config: QAConfig) -> Dict[str, object]:
    """Monotonicity and spike checks for one core's harmonized profile."""
    order = np.argsort(depths, kind="mergesort")
    depths = np.asarray(depths, dtype=float)[order]
    values = np.asarray(values, dtype=float)[order]
    if values.size < 2:
        return {
            "cor_with_depth": float("nan"),
            "max_increase_pct": 0.0,
            "max_decrease_pct": 0.0,
            "monotonic": True,
            "unusual_pattern": False,
        }

    changes = adjacent_pct_changes(values)
    cor = _depth_correlation(depths, values)
    if config.monotonic_policy == "tolerant":
        monotonic = bool(cor < 0 and not np.any(changes > config.max_increase_pct))
    else:
        monotonic = bool(cor < config.strict_correlation)
    return {
        "cor_with_depth": cor,
        "max_increase_pct": float(max(changes.max(), 0.0)),
        "max_decrease_pct": float(min(changes.min(), 0.0)),
        "monotonic": monotonic,
        "unusual_pattern": bool(np.any(np.abs(changes) > config.unusual_change_pct)),
    }


def compute_core_qa(predictions: pd.DataFrame, config: QAConfig) -> pd.DataFrame:
    rows = []
    for core_id, frame in predictions.groupby("core_id", sort=False):
        result = assess_profile(frame["depth_cm"].to_numpy(), frame["soc_harmonized"].to_numpy(), config)
        result["core_id"] = core_id
        rows.append(result)
    return pd.DataFrame(rows, columns=CORE_QA_COLUMNS)


def apply_qa(predictions: pd.DataFrame, config: QAConfig) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Attach row-level and core-level QA flags to a prediction table.

    Core-level flags are joined on core_id, so every row of a core carries
    the same qa_monotonic and qa_unusual_pattern values.
    """
    core_qa = compute_core_qa(predictions, config)
    if predictions.empty:
        out = predictions.copy()
        for column in ("qa_realistic", "qa_monotonic", "qa_unusual_pattern"):
            out[column] = pd.Series(dtype=bool)
        return out, core_qa
    flags = core_qa[["core_id", "monotonic", "unusual_pattern"]].rename(
        columns={"monotonic": "qa_monotonic", "unusual_pattern": "qa_unusual_pattern"}
    )
    base = predictions.drop(columns=["qa_realistic", "qa_monotonic", "qa_unusual_pattern"], errors="ignore")
    out = base.merge(flags, on="core_id", how="left", validate="many_to_one")
    soc = out["soc_harmonized"]
    out.insert(len(base.columns), "qa_realistic", (soc >= 0) & (soc <= config.soc_max))
    out["qa_monotonic"] = out["qa_monotonic"].astype(bool)
    out["qa_unusual_pattern"] = out["qa_unusual_pattern"].astype(bool)

    n_unrealistic = int((~out["qa_realistic"]).sum())
    n_non_monotonic = int((~core_qa["monotonic"]).sum())
    n_unusual = int(core_qa["unusual_pattern"].sum())
    if n_unrealistic:
        logger.warning("%d unrealistic predictions (outside 0-%g)", n_unrealistic, config.soc_max)
    if n_non_monotonic:
        logger.warning("%d cores with non-monotonic profiles", n_non_monotonic)
    if n_unusual:
        logger.warning(
            "%d cores with unusual patterns (>%g%% change between depths)", n_unusual, config.unusual_change_pct
        )
    return out, core_qa
