#!/usr/bin/env python3
"""Write the default simulation parameters as an editable YAML file."""
from __future__ import annotations

import argparse
import sys
from dataclasses import asdict
from pathlib import Path

import yaml

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT / "src") not in sys.path:
    sys.path.insert(0, str(ROOT / "src"))

from wiggle.sim.core.config import SimulationConfig  # noqa: E402


def _plain(value: object) -> object:
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, (tuple, list)):
        return [_plain(item) for item in value]
    return value


def render_config(config: SimulationConfig) -> str:
    return yaml.safe_dump(_plain(asdict(config)), sort_keys=False)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Write the default simulation config as YAML.")
    parser.add_argument(
        "--output",
        type=Path,
        default=Path("config/default.yaml"),
        help="File to write the configuration into.",
    )
    parser.add_argument("--seed", type=int, default=None, help="Override the seed in the written file.")
    parser.add_argument("--overwrite", action="store_true", help="Overwrite an existing file.")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    output: Path = args.output
    if output.exists() and not args.overwrite:
        raise FileExistsError(f"{output} already exists. Use --overwrite to replace.")
    config = SimulationConfig()
    if args.seed is not None:
        config.seed = args.seed
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(render_config(config))
    print(f"Wrote default config to {output}")


if __name__ == "__main__":
    main()
