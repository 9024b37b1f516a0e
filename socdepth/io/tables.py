from __future__ import annotations

import json
from datetime import date
from pathlib import Path
from typing import TYPE_CHECKING, Dict

import pandas as pd
import yaml

from socdepth.config import VM0033_DEPTH_INTERVALS, HarmonizationConfig

if TYPE_CHECKING:
    from socdepth.batch import BatchResult


def write_table(df: pd.DataFrame, out_dir: Path, stem: str) -> Dict[str, Path]:
    """Write a table as Parquet and CSV under ``out_dir``."""
    out_dir.mkdir(parents=True, exist_ok=True)
    parquet_path = out_dir / f"{stem}.parquet"
    csv_path = out_dir / f"{stem}.csv"
    df.to_parquet(parquet_path, index=False)
    df.to_csv(csv_path, index=False)
    return {"parquet": parquet_path, "csv": csv_path}


def harmonization_metadata(result: "BatchResult", config: HarmonizationConfig) -> Dict[str, object]:
    bootstrap_iterations = config.bootstrap.iterations if config.bootstrap.enabled else 0
    return {
        "method": config.method,
        "standard_depths": list(config.standard_depths),
        "vm0033_intervals": VM0033_DEPTH_INTERVALS,
        "monotonic_policy": config.qa.monotonic_policy,
        "max_increase_pct": config.qa.max_increase_pct,
        "unusual_change_pct": config.qa.unusual_change_pct,
        "soc_max": config.qa.soc_max,
        "bootstrap_iterations": bootstrap_iterations,
        "confidence_level": config.bootstrap.confidence_level,
        "smoothing_hr": config.smoothing.hr,
        "smoothing_composite": config.smoothing.composite,
        "smoothing_unknown": config.smoothing.unknown,
        "seed": config.seed,
        "processing_date": date.today().isoformat(),
        "n_cores_harmonized": result.n_cores_harmonized,
    }


def write_outputs(result: "BatchResult", config: HarmonizationConfig, run_dir: Path) -> Dict[str, Path]:
    paths: Dict[str, Path] = {}
    for stem, table in (
        ("cores_harmonized", result.predictions),
        ("harmonization_diagnostics", result.diagnostics),
    ):
        written = write_table(table, run_dir, stem)
        paths[f"{stem}_parquet"] = written["parquet"]
        paths[f"{stem}_csv"] = written["csv"]

    monotonicity_path = run_dir / "monotonicity_summary.csv"
    result.core_qa.to_csv(monotonicity_path, index=False)
    paths["monotonicity_summary"] = monotonicity_path

    if not result.failures.empty:
        failures_path = run_dir / "core_failures.csv"
        result.failures.to_csv(failures_path, index=False)
        paths["core_failures"] = failures_path

    metadata_path = run_dir / "harmonization_metadata.json"
    metadata_path.write_text(json.dumps(harmonization_metadata(result, config), indent=2))
    paths["metadata"] = metadata_path

    config_path = run_dir / "config_used.yaml"
    config_path.write_text(yaml.safe_dump(config.model_dump(mode="json")))
    paths["config"] = config_path
    return paths
