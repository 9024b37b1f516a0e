from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
import pandas as pd

from socdepth.samples import SAMPLE_COLUMNS, CoreType, ScenarioType

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = set(SAMPLE_COLUMNS)

COLUMN_ALIASES = {"soc_g_kg": "soc_value"}

_CORE_TYPE_LABELS = {
    "hr": CoreType.HR,
    "high-res": CoreType.HR,
    "high res": CoreType.HR,
    "high resolution": CoreType.HR,
    "paired composite": CoreType.PAIRED_COMPOSITE,
    "paired comp": CoreType.PAIRED_COMPOSITE,
    "paired": CoreType.PAIRED_COMPOSITE,
    "unpaired composite": CoreType.UNPAIRED_COMPOSITE,
    "unpaired comp": CoreType.UNPAIRED_COMPOSITE,
    "unpaired": CoreType.UNPAIRED_COMPOSITE,
    "composite": CoreType.UNPAIRED_COMPOSITE,
    "comp": CoreType.UNPAIRED_COMPOSITE,
    "unknown": CoreType.UNKNOWN,
}


def normalize_core_type(label: object) -> str:
    if label is None or (isinstance(label, float) and pd.isna(label)):
        return CoreType.UNKNOWN.value
    key = str(label).strip().lower()
    return _CORE_TYPE_LABELS.get(key, CoreType.UNKNOWN).value


def normalize_scenario(label: object) -> str:
    value = str(label).strip().upper()
    try:
        return ScenarioType(value).value
    except ValueError:
        raise ValueError(f"Unknown scenario type {label!r}") from None


_QA_PASS_LABELS = {
    "true": True,
    "t": True,
    "yes": True,
    "y": True,
    "pass": True,
    "1": True,
    "1.0": True,
    "false": False,
    "f": False,
    "no": False,
    "n": False,
    "fail": False,
    "0": False,
    "0.0": False,
}


def normalize_qa_pass(label: object) -> bool:
    """Parse a qa_pass flag; missing or unrecognized values raise ValueError."""
    if isinstance(label, (bool, np.bool_)):
        return bool(label)
    if label is None or (isinstance(label, float) and np.isnan(label)):
        raise ValueError("qa_pass is missing")
    key = str(label).strip().lower()
    if key not in _QA_PASS_LABELS:
        raise ValueError(f"Unrecognized qa_pass value {label!r}")
    return _QA_PASS_LABELS[key]


def _read_table(path: Path) -> pd.DataFrame:
    if path.suffix == ".parquet":
        df = pd.read_parquet(path)
    else:
        df = pd.read_csv(path)
    df = df.rename(columns={k: v for k, v in COLUMN_ALIASES.items() if k in df.columns and v not in df.columns})
    missing = REQUIRED_COLUMNS - set(df.columns)
    if missing:
        raise ValueError(f"Missing columns {sorted(missing)} in {path}")
    return df


def prepare_samples(df: pd.DataFrame) -> pd.DataFrame:
    """Canonicalize labels and keep the QA-passed samples."""
    out = df.copy()
    out["core_id"] = out["core_id"].astype(str)
    out["stratum"] = out["stratum"].astype(str)
    out["core_type"] = out["core_type"].map(normalize_core_type)
    out["scenario_type"] = out["scenario_type"].map(normalize_scenario)
    out["qa_pass"] = out["qa_pass"].map(normalize_qa_pass).astype(bool)
    n_total = len(out)
    out = out[out["qa_pass"]].reset_index(drop=True)
    if (out["soc_value"] < 0).any():
        raise ValueError("soc_value must be non-negative")
    logger.info(
        "Loaded %d QA-passed samples (of %d) from %d cores across %d strata",
        len(out),
        n_total,
        out["core_id"].nunique(),
        out["stratum"].nunique(),
    )
    return out


def load_samples(path: Path) -> pd.DataFrame:
    if not path.exists():
        raise FileNotFoundError(f"Cleaned sample table not found: {path}")
    return prepare_samples(_read_table(path))
