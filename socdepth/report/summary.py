from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Dict

import pandas as pd
from rich.console import Console
from rich.table import Table

from socdepth.config import HarmonizationConfig

if TYPE_CHECKING:
    from socdepth.batch import BatchResult

console = Console()


def summarize_by_depth(predictions: pd.DataFrame) -> pd.DataFrame:
    realistic = predictions[predictions["qa_realistic"].astype(bool)]
    return (
        realistic.groupby("depth_cm")
        .agg(
            n_cores=("core_id", "nunique"),
            mean_soc=("soc_harmonized", "mean"),
            sd_soc=("soc_harmonized", "std"),
            min_soc=("soc_harmonized", "min"),
            max_soc=("soc_harmonized", "max"),
            pct_interpolated=("is_interpolated", lambda s: 100.0 * s.astype(float).mean()),
        )
        .reset_index()
    )


def summarize_by_stratum(predictions: pd.DataFrame) -> pd.DataFrame:
    realistic = predictions[predictions["qa_realistic"].astype(bool)]
    return (
        realistic.groupby(["stratum", "depth_cm"])
        .agg(
            n_cores=("core_id", "nunique"),
            mean_soc=("soc_harmonized", "mean"),
            sd_soc=("soc_harmonized", "std"),
        )
        .reset_index()
    )


def summarize_by_core_type(predictions: pd.DataFrame) -> pd.DataFrame:
    realistic = predictions[predictions["qa_realistic"].astype(bool)]
    return (
        realistic.groupby("core_type")
        .agg(
            n_cores=("core_id", "nunique"),
            n_depths=("depth_cm", "size"),
            mean_soc=("soc_harmonized", "mean"),
        )
        .reset_index()
    )


def summarize_diagnostics(diagnostics: pd.DataFrame, by: str) -> pd.DataFrame:
    return (
        diagnostics.groupby(by)
        .agg(
            n_cores=("core_id", "size"),
            mean_rmse=("rmse", "mean"),
            mean_r2=("r2", "mean"),
            mean_loo_rmse=("loo_rmse", "mean"),
        )
        .reset_index()
    )


def qa_pass_rates(result: "BatchResult") -> Dict[str, float]:
    predictions = result.predictions
    core_qa = result.core_qa
    n_rows = len(predictions)
    n_cores = len(core_qa)
    return {
        "realistic_rows": float(predictions["qa_realistic"].astype(bool).mean()) if n_rows else float("nan"),
        "monotonic_cores": float(core_qa["monotonic"].astype(bool).mean()) if n_cores else float("nan"),
        "unusual_cores": int(core_qa["unusual_pattern"].astype(bool).sum()) if n_cores else 0,
    }


def build_run_summary(run_dir: Path, result: "BatchResult", config: HarmonizationConfig) -> Path:
    rates = qa_pass_rates(result)
    lines = [
        "# RUN_SUMMARY",
        "",
        "## Depth Harmonization",
        f"- Method: {config.method}",
        f"- Standard depths (cm): {', '.join(f'{d:g}' for d in config.standard_depths)}",
        f"- Cores harmonized: {result.n_cores_harmonized}",
        f"- Total predictions: {len(result.predictions)}",
    ]
    if "soc_lower" in result.predictions.columns:
        lines.append(
            f"- Bootstrap CI: {config.bootstrap.iterations} iterations "
            f"({config.bootstrap.confidence_level * 100:.0f}% CI)"
        )
    lines.extend(
        [
            "",
            "## Quality Checks",
            f"- Realistic predictions: {rates['realistic_rows'] * 100:.1f}%",
            f"- Monotonic profiles ({config.qa.monotonic_policy}): {rates['monotonic_cores'] * 100:.1f}%",
            f"- Cores with unusual patterns: {rates['unusual_cores']}",
            "",
            "## Strata",
            "",
            result.stratum_summary.to_string(index=False),
        ]
    )
    if not result.failures.empty:
        lines.extend(["", "## Failed Cores", "", result.failures.to_string(index=False)])
    if not result.predictions.empty:
        lines.extend(["", "## SOC by Depth", "", summarize_by_depth(result.predictions).to_string(index=False)])
        lines.extend(["", "## SOC by Stratum", "", summarize_by_stratum(result.predictions).to_string(index=False)])
        lines.extend(["", "## SOC by Core Type", "", summarize_by_core_type(result.predictions).to_string(index=False)])
    if not result.diagnostics.empty:
        lines.extend(
            [
                "",
                "## Fit Quality by Stratum",
                "",
                summarize_diagnostics(result.diagnostics, "stratum").to_string(index=False),
                "",
                "## Fit Quality by Core Type",
                "",
                summarize_diagnostics(result.diagnostics, "core_type").to_string(index=False),
            ]
        )
    path = run_dir / "RUN_SUMMARY.md"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(lines))
    return path


def print_run_summary(result: "BatchResult", config: HarmonizationConfig) -> None:
    table = Table(title=f"Depth harmonization ({config.method})")
    table.add_column("Stratum")
    table.add_column("Cores", justify="right")
    table.add_column("Success", justify="right")
    table.add_column("Failed", justify="right")
    for row in result.stratum_summary.itertuples(index=False):
        table.add_row(str(row.stratum), str(row.n_cores), str(row.n_success), str(row.n_failed))
    console.print(table)

    rates = qa_pass_rates(result)
    console.print(f"Realistic predictions: {rates['realistic_rows'] * 100:.1f}%")
    console.print(f"Monotonic profiles: {rates['monotonic_cores'] * 100:.1f}%")
    if rates["unusual_cores"]:
        console.print(f"[yellow]Cores with unusual patterns: {rates['unusual_cores']}[/yellow]")
