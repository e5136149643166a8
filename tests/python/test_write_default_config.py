from __future__ import annotations

import subprocess
import sys
from pathlib import Path

import yaml

from wiggle.sim.core.config import SimulationConfig, load_config

SCRIPT = Path(__file__).resolve().parents[2] / "scripts" / "write_default_config.py"


def test_write_default_config(tmp_path: Path) -> None:
    output = tmp_path / "default.yaml"
    result = subprocess.run(
        [sys.executable, str(SCRIPT), "--output", str(output), "--seed", "11"],
        check=True,
        capture_output=True,
        text=True,
    )
    assert "Wrote default config" in result.stdout

    config = load_config(yaml.safe_load(output.read_text()))
    expected = SimulationConfig()
    expected.seed = 11
    assert config == expected


def test_write_default_config_refuses_to_overwrite(tmp_path: Path) -> None:
    output = tmp_path / "default.yaml"
    output.write_text("seed: 1\n")
    result = subprocess.run(
        [sys.executable, str(SCRIPT), "--output", str(output)],
        capture_output=True,
        text=True,
    )
    assert result.returncode != 0
    assert "already exists" in result.stderr
    assert output.read_text() == "seed: 1\n"
