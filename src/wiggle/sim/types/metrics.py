from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class StepMetrics:
    step: int
    move_counter: int
    population: int
    births: int
    deaths: int
    shelters_created: int
    replenished: int
    shelter_count: int
    shelters_reset: bool
    average_energy: float
    step_duration_ms: float = 0.0
    moves_per_second: int = 0
