#!/usr/bin/env python3
"""
Run depth harmonization for one batch of cleaned core samples.

Settings come from default_config.yaml, optionally merged with an override
file. Outputs land in the configured output_dir.
"""
import argparse
import sys
import time
from pathlib import Path
from typing import List, Optional

from socdepth.batch import run_harmonization
from socdepth.config import load_config

DEFAULT_CONFIG = Path(__file__).parent / "default_config.yaml"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Harmonize soil-core SOC profiles to standard depths")
    parser.add_argument("override", nargs="?", type=Path, default=None, help="YAML merged over the defaults")
    parser.add_argument("--config", type=Path, default=DEFAULT_CONFIG, help="Default configuration YAML")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = load_config(args.config, args.override)

    start_time = time.time()
    result = run_harmonization(config)
    elapsed = time.time() - start_time

    print(f"\nHarmonized {result.n_cores_harmonized} cores in {elapsed:.1f}s")
    print(f"Outputs: {config.output_dir}")
    return 0 if result.n_cores_harmonized else 1


if __name__ == "__main__":
    sys.exit(main())
