from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

SAMPLE_COLUMNS = [
    "core_id",
    "stratum",
    "core_type",
    "longitude",
    "latitude",
    "scenario_type",
    "monitoring_year",
    "depth_cm",
    "soc_value",
    "qa_pass",
]

CORE_METADATA = ["stratum", "core_type", "longitude", "latitude", "scenario_type", "monitoring_year"]


class CoreType(str, Enum):
    HR = "HR"
    PAIRED_COMPOSITE = "Paired Composite"
    UNPAIRED_COMPOSITE = "Unpaired Composite"
    UNKNOWN = "Unknown"


class ScenarioType(str, Enum):
    PROJECT = "PROJECT"
    BASELINE = "BASELINE"
    CONTROL = "CONTROL"
    DEGRADED = "DEGRADED"


@dataclass
class Core:
    core_id: str
    stratum: str
    core_type: CoreType
    longitude: float
    latitude: float
    scenario_type: ScenarioType
    monitoring_year: int
    depths: np.ndarray
    values: np.ndarray
    metadata_consistent: bool = True

    @property
    def n_samples(self) -> int:
        return int(self.depths.size)

    def metadata(self) -> Dict[str, object]:
        return {
            "longitude": self.longitude,
            "latitude": self.latitude,
            "scenario_type": self.scenario_type.value,
            "monitoring_year": self.monitoring_year,
            "core_type": self.core_type.value,
        }


def _first(series: pd.Series):
    return series.iloc[0]


def _is_consistent(frame: pd.DataFrame) -> bool:
    for column in CORE_METADATA:
        if frame[column].nunique(dropna=False) > 1:
            return False
    return True


def build_core(core_id: str, frame: pd.DataFrame) -> Core:
    """Build a depth-sorted Core from the rows of one core_id.

    Core-level metadata is taken from the first row seen; cores whose rows
    disagree are kept but marked ``metadata_consistent=False``.
    """
    consistent = _is_consistent(frame)
    if not consistent:
        logger.warning("Core %s: inconsistent metadata across samples, using first-seen values", core_id)
    ordered = frame.sort_values("depth_cm", kind="mergesort")
    return Core(
        core_id=str(core_id),
        stratum=str(_first(frame["stratum"])),
        core_type=CoreType(_first(frame["core_type"])),
        longitude=float(_first(frame["longitude"])),
        latitude=float(_first(frame["latitude"])),
        scenario_type=ScenarioType(_first(frame["scenario_type"])),
        monitoring_year=int(_first(frame["monitoring_year"])),
        depths=ordered["depth_cm"].to_numpy(dtype=float),
        values=ordered["soc_value"].to_numpy(dtype=float),
        metadata_consistent=consistent,
    )


def group_cores(samples: pd.DataFrame) -> Dict[str, List[Core]]:
    """Group samples into cores by stratum, both in first-seen order.

    A core belongs to the stratum of its first sample.
    """
    strata: Dict[str, List[Core]] = {}
    for core_id, frame in samples.groupby("core_id", sort=False):
        core = build_core(core_id, frame)
        strata.setdefault(core.stratum, []).append(core)
    return strata
