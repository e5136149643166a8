from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml


@dataclass
class OrganismConfig:
    segment_length: float = 10.0
    # degrees; segment angles are drawn from [-movement_limit, movement_limit]
    movement_limit: float = 0.01
    min_segments: int = 2
    max_segments: int = 6
    min_starting_energy: int = 10_000
    max_starting_energy: int = 100_000
    replenish_energy: int = 10_000
    division_jitter: float = 10.0
    duplicate_offset: tuple[float, float] = (50.0, 50.0)


@dataclass
class ShelterConfig:
    count: int = 10
    min_size: float = 10.0
    max_size: float = 50.0
    energy_gain_rate: int = 1
    reset_interval: int = 0
    dead_organisms_become_shelters: bool = False


@dataclass
class KernelConfig:
    iteration_count: int = 1000
    occupancy_check_interval: int = 10
    boundary_check_interval: int = 100
    # 0 uses os.cpu_count()
    max_workers: int = 0
    parallel_threshold: int = 64


@dataclass
class SimulationConfig:
    boundary: tuple[float, float] = (800.0, 500.0)
    organism_count: int = 100
    min_organism_count: int = 100
    division_threshold: int = 200_000
    mps_interval: float = 1.0
    seed: int = 42
    config_version: str = "v1"
    organisms: OrganismConfig = field(default_factory=OrganismConfig)
    shelters: ShelterConfig = field(default_factory=ShelterConfig)
    kernel: KernelConfig = field(default_factory=KernelConfig)

    @staticmethod
    def from_yaml(path: Path) -> "SimulationConfig":
        data = yaml.safe_load(Path(path).read_text()) or {}
        return load_config(data)


def load_config(raw: dict) -> SimulationConfig:
    defaults = SimulationConfig()

    def _pair(value: tuple[float, float] | list[float] | None, default: tuple[float, float]) -> tuple[float, float]:
        if isinstance(value, (tuple, list)) and len(value) == 2:
            return (float(value[0]), float(value[1]))
        return default

    organisms_raw = dict(raw.get("organisms", {}))
    organisms_raw["duplicate_offset"] = _pair(
        organisms_raw.get("duplicate_offset"), defaults.organisms.duplicate_offset
    )
    organisms = OrganismConfig(**organisms_raw)
    shelters = ShelterConfig(**raw.get("shelters", {}))
    kernel = KernelConfig(**raw.get("kernel", {}))
    sim_values = {k: v for k, v in raw.items() if k not in {"organisms", "shelters", "kernel", "boundary"}}
    return SimulationConfig(
        boundary=_pair(raw.get("boundary"), defaults.boundary),
        organisms=organisms,
        shelters=shelters,
        kernel=kernel,
        **sim_values,
    )
