from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from socdepth.samples import CoreType

METHODS = ("equal_area_spline", "linear", "smoothing_spline")

# VM0033 reporting intervals (cm) whose midpoints are the default standard depths.
VM0033_DEPTH_INTERVALS: Dict[str, List[float]] = {
    "0-15": [0.0, 15.0],
    "15-30": [15.0, 30.0],
    "30-50": [30.0, 50.0],
    "50-100": [50.0, 100.0],
}


class SmoothingConfig(BaseModel):
    hr: Optional[float] = Field(0.1, description="Smoothing strength for HR cores (None = cross-validated).")
    composite: Optional[float] = Field(0.3, description="Smoothing strength for paired/unpaired composites.")
    unknown: Optional[float] = Field(None, description="Smoothing strength for cores of unknown type.")
    cv_grid: List[float] = Field(
        default_factory=lambda: [0.0, 0.01, 0.03, 0.1, 0.3, 1.0],
        description="Candidate strengths scanned by leave-one-out cross-validation.",
    )

    @field_validator("hr", "composite", "unknown")
    @classmethod
    def _non_negative(cls, value: Optional[float]) -> Optional[float]:
        if value is not None and value < 0:
            raise ValueError("smoothing strength must be >= 0")
        return value

    @field_validator("cv_grid")
    @classmethod
    def _grid_not_empty(cls, value: List[float]) -> List[float]:
        if not value or any(v < 0 for v in value):
            raise ValueError("cv_grid must be a non-empty list of non-negative strengths")
        return value

    def strength_for(self, core_type: CoreType) -> Optional[float]:
        if core_type == CoreType.HR:
            return self.hr
        if core_type in (CoreType.PAIRED_COMPOSITE, CoreType.UNPAIRED_COMPOSITE):
            return self.composite
        return self.unknown


class BootstrapConfig(BaseModel):
    enabled: bool = Field(True, description="Run bootstrap confidence intervals.")
    iterations: int = Field(100, description="Bootstrap resamples per core.")
    confidence_level: float = Field(0.95, description="Two-sided confidence level for the CI.")
    min_samples: int = Field(5, description="Minimum samples in a core before bootstrapping.")
    jobs: int = Field(1, description="Worker threads for the refits of a single core.")

    @field_validator("iterations")
    @classmethod
    def _iterations(cls, value: int) -> int:
        if value < 0:
            raise ValueError("iterations must be >= 0")
        return value

    @field_validator("confidence_level")
    @classmethod
    def _confidence(cls, value: float) -> float:
        if not 0.0 < value < 1.0:
            raise ValueError("confidence_level must be in (0, 1)")
        return value


class QAConfig(BaseModel):
    soc_max: float = Field(500.0, description="Upper plausibility bound for harmonized SOC.")
    monotonic_policy: Literal["strict", "tolerant"] = Field(
        "strict", description="strict: correlation test only; tolerant: allow small increases."
    )
    strict_correlation: float = Field(-0.3, description="Depth correlation below which a profile is monotonic.")
    max_increase_pct: float = Field(10.0, description="Largest adjacent increase (%) tolerated by the tolerant policy.")
    unusual_change_pct: float = Field(50.0, description="Adjacent absolute change (%) flagged as an unusual pattern.")


class HarmonizationConfig(BaseModel):
    seed: int = 42
    jobs: int = 4
    method: str = Field("equal_area_spline", description="equal_area_spline, linear or smoothing_spline.")
    standard_depths: List[float] = Field(
        default_factory=lambda: [7.5, 22.5, 40.0, 75.0],
        description="Target depths (cm) at which every core is predicted.",
    )
    input_path: Path = Path("data_processed/cores_clean.csv")
    output_dir: Path = Path("results")
    smoothing: SmoothingConfig = Field(default_factory=SmoothingConfig)
    bootstrap: BootstrapConfig = Field(default_factory=BootstrapConfig)
    qa: QAConfig = Field(default_factory=QAConfig)

    @field_validator("method")
    @classmethod
    def _method(cls, value: str) -> str:
        if value not in METHODS:
            raise ValueError(f"Unknown interpolation method {value!r}; expected one of {', '.join(METHODS)}")
        return value

    @field_validator("standard_depths")
    @classmethod
    def _depths(cls, value: List[float]) -> List[float]:
        if not value:
            raise ValueError("standard_depths must not be empty")
        if any(d < 0 for d in value):
            raise ValueError("standard_depths must be >= 0")
        if any(b <= a for a, b in zip(value, value[1:])):
            raise ValueError("standard_depths must be strictly increasing")
        return value

    @field_validator("jobs")
    @classmethod
    def _jobs(cls, value: int) -> int:
        if value < 1:
            raise ValueError("jobs must be >= 1")
        return value


def load_config(
    default_path: Path | None,
    override_path: Path | None = None,
    overrides: Dict[str, object] | None = None,
) -> HarmonizationConfig:
    data: Dict[str, object] = {}
    if default_path:
        if not default_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {default_path}")
        data.update(yaml.safe_load(default_path.read_text()) or {})
    if override_path:
        data.update(yaml.safe_load(override_path.read_text()) or {})
    data.update({k: v for k, v in (overrides or {}).items() if v is not None})
    return HarmonizationConfig(**data)
