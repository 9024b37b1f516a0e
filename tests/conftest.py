from typing import Dict, Sequence, Tuple

import numpy as np
import pandas as pd
import pytest

from socdepth.samples import Core, CoreType, ScenarioType


def build_samples(
    profiles: Dict[str, Tuple[str, Sequence[float], Sequence[float]]],
    core_type: str = "HR",
) -> pd.DataFrame:
    """profiles maps core_id -> (stratum, depths, values)."""
    rows = []
    for i, (core_id, (stratum, depths, values)) in enumerate(profiles.items()):
        for depth, value in zip(depths, values):
            rows.append(
                {
                    "core_id": core_id,
                    "stratum": stratum,
                    "core_type": core_type,
                    "longitude": -123.7 + 0.01 * i,
                    "latitude": 48.9 + 0.01 * i,
                    "scenario_type": "PROJECT",
                    "monitoring_year": 2024,
                    "depth_cm": float(depth),
                    "soc_value": float(value),
                    "qa_pass": True,
                }
            )
    return pd.DataFrame(rows)


@pytest.fixture
def make_samples():
    return build_samples


@pytest.fixture
def make_core():
    def _make(depths, values, core_id="core_1", stratum="Mid Marsh", core_type=CoreType.HR):
        return Core(
            core_id=core_id,
            stratum=stratum,
            core_type=core_type,
            longitude=-123.7,
            latitude=48.9,
            scenario_type=ScenarioType.PROJECT,
            monitoring_year=2024,
            depths=np.asarray(depths, dtype=float),
            values=np.asarray(values, dtype=float),
        )

    return _make
