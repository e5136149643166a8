from __future__ import annotations

from time import perf_counter
from typing import Callable, Sequence

from ..types.metrics import StepMetrics


class MovesPerSecondMeter:
    """Samples throughput whenever at least ``interval`` seconds have passed.

    Between samples the previous value is reported unchanged.
    """

    def __init__(self, interval: float = 1.0, clock: Callable[[], float] = perf_counter):
        self.interval = interval
        self._clock = clock
        self._last_time = clock()
        self._last_counter = 0
        self._value = 0

    @property
    def value(self) -> int:
        return self._value

    def reset(self, move_counter: int = 0, interval: float | None = None) -> None:
        if interval is not None:
            self.interval = interval
        self._last_time = self._clock()
        self._last_counter = move_counter
        self._value = 0

    def sample(self, move_counter: int) -> int:
        now = self._clock()
        elapsed = now - self._last_time
        if elapsed >= self.interval and elapsed > 0.0:
            self._value = int((move_counter - self._last_counter) / elapsed)
            self._last_counter = move_counter
            self._last_time = now
        return self._value


def create_metrics(
    step: int,
    move_counter: int,
    energies: Sequence[int],
    births: int,
    deaths: int,
    shelters_created: int,
    replenished: int,
    shelter_count: int,
    shelters_reset: bool,
    duration_ms: float,
    moves_per_second: int,
) -> StepMetrics:
    population = len(energies)
    average_energy = 0.0 if population == 0 else sum(energies) / population
    return StepMetrics(
        step=step,
        move_counter=move_counter,
        population=population,
        births=births,
        deaths=deaths,
        shelters_created=shelters_created,
        replenished=replenished,
        shelter_count=shelter_count,
        shelters_reset=shelters_reset,
        average_energy=average_energy,
        step_duration_ms=duration_ms,
        moves_per_second=moves_per_second,
    )
