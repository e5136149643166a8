from __future__ import annotations

import argparse
import csv
import json
import logging
import math
from pathlib import Path
from typing import Optional

from ..sim.core.config import SimulationConfig
from ..sim.core.ecosystem import Ecosystem
from ..sim.types.metrics import StepMetrics
from ..sim.utils.math2d import bounding_box

logger = logging.getLogger(__name__)


_BASIC_HEADER = [
    "step",
    "move_counter",
    "population",
    "births",
    "deaths",
    "shelters",
    "avg_energy",
    "step_ms",
]

_DETAILED_HEADER = [
    "step",
    "move_counter",
    "population",
    "births",
    "deaths",
    "shelters",
    "shelters_created",
    "shelters_reset",
    "replenished",
    "avg_energy",
    "min_energy",
    "max_energy",
    "step_ms",
    "moves_per_second",
    "avg_segments",
    "avg_extent",
    "sheltered_ratio",
    "births_per_organism",
    "deaths_per_organism",
    "step_ms_per_organism",
]


def _format_basic_row(metrics: StepMetrics, step_ms: float) -> list[object]:
    return [
        metrics.step,
        metrics.move_counter,
        metrics.population,
        metrics.births,
        metrics.deaths,
        metrics.shelter_count,
        f"{metrics.average_energy:.4f}",
        f"{step_ms:.3f}",
    ]


def _format_detailed_row(ecosystem: Ecosystem, metrics: StepMetrics, step_ms: float, mps: int) -> list[object]:
    population = metrics.population
    organisms = ecosystem.organisms
    shelters = ecosystem.shelters
    if population <= 0:
        min_energy = 0
        max_energy = 0
        avg_segments = 0.0
        avg_extent = 0.0
        sheltered_ratio = 0.0
        births_per_organism = 0.0
        deaths_per_organism = 0.0
        step_ms_per_organism = 0.0
    else:
        energies = [organism.energy for organism in organisms]
        min_energy = min(energies)
        max_energy = max(energies)
        segment_sum = 0
        extent_sum = 0.0
        sheltered = 0
        for organism in organisms:
            segment_sum += len(organism.segments)
            min_x, min_y, max_x, max_y = bounding_box(organism.points)
            extent_sum += math.hypot(max_x - min_x, max_y - min_y)
            if any(shelter.contains(point.x, point.y) for shelter in shelters for point in organism.points):
                sheltered += 1
        avg_segments = segment_sum / population
        avg_extent = extent_sum / population
        sheltered_ratio = sheltered / population
        births_per_organism = metrics.births / population
        deaths_per_organism = metrics.deaths / population
        step_ms_per_organism = step_ms / population

    return [
        metrics.step,
        metrics.move_counter,
        population,
        metrics.births,
        metrics.deaths,
        metrics.shelter_count,
        metrics.shelters_created,
        int(metrics.shelters_reset),
        metrics.replenished,
        f"{metrics.average_energy:.4f}",
        min_energy,
        max_energy,
        f"{step_ms:.3f}",
        mps,
        f"{avg_segments:.4f}",
        f"{avg_extent:.4f}",
        f"{sheltered_ratio:.4f}",
        f"{births_per_organism:.4f}",
        f"{deaths_per_organism:.4f}",
        f"{step_ms_per_organism:.4f}",
    ]


def _percentile(sorted_values: list[float], percentile: float) -> float:
    if not sorted_values:
        return 0.0
    if len(sorted_values) == 1:
        return float(sorted_values[0])
    pos = (len(sorted_values) - 1) * percentile
    low = int(math.floor(pos))
    high = int(math.ceil(pos))
    if low == high:
        return float(sorted_values[low])
    weight = pos - low
    return float(sorted_values[low] + (sorted_values[high] - sorted_values[low]) * weight)


def _summary_stats(values: list[float]) -> dict[str, float]:
    if not values:
        return {"min": 0.0, "max": 0.0, "avg": 0.0, "p50": 0.0, "p90": 0.0, "p95": 0.0, "p99": 0.0}
    sorted_values = sorted(values)
    total = sum(values)
    count = len(values)
    return {
        "min": float(sorted_values[0]),
        "max": float(sorted_values[-1]),
        "avg": float(total / count),
        "p50": _percentile(sorted_values, 0.50),
        "p90": _percentile(sorted_values, 0.90),
        "p95": _percentile(sorted_values, 0.95),
        "p99": _percentile(sorted_values, 0.99),
    }


def run_headless(
    steps: int,
    seed: Optional[int],
    log_path: Optional[Path],
    deterministic_log: bool = False,
    log_format: str = "detailed",
    summary_path: Optional[Path] = None,
    summary_window: int = 500,
    config_path: Optional[Path] = None,
    iteration_count: Optional[int] = None,
) -> StepMetrics | None:
    config = SimulationConfig.from_yaml(config_path) if config_path else SimulationConfig()
    if seed is not None:
        config.seed = seed

    log_mode = log_format.lower().strip()
    if log_mode not in {"basic", "detailed"}:
        raise ValueError(f"Unknown log format: {log_format}")

    ecosystem = Ecosystem(config)
    writer = None
    csv_file = None
    if log_path:
        csv_file = Path(log_path).open("w", newline="")
        writer = csv.writer(csv_file)
        writer.writerow(_DETAILED_HEADER if log_mode == "detailed" else _BASIC_HEADER)

    step_ms_series: list[float] = []
    population_series: list[int] = []
    energy_series: list[float] = []
    max_step_ms = (-1.0, -1)
    max_population = (-1, -1)
    metrics: StepMetrics | None = None

    try:
        for _ in range(steps):
            metrics = ecosystem.step(iteration_count)
            step_ms = 0.0 if deterministic_log else metrics.step_duration_ms
            mps = 0 if deterministic_log else metrics.moves_per_second

            if summary_path:
                step_ms_series.append(step_ms)
                population_series.append(metrics.population)
                energy_series.append(metrics.average_energy)
                if step_ms > max_step_ms[0]:
                    max_step_ms = (step_ms, metrics.step)
                if metrics.population > max_population[0]:
                    max_population = (metrics.population, metrics.step)

            if writer:
                if log_mode == "detailed":
                    writer.writerow(_format_detailed_row(ecosystem, metrics, step_ms, mps))
                else:
                    writer.writerow(_format_basic_row(metrics, step_ms))
    finally:
        if csv_file:
            csv_file.close()
        ecosystem.close()

    if metrics is not None:
        logger.info(
            f"Headless run finished: {steps} steps, {metrics.move_counter} moves, "
            f"population {metrics.population}"
        )

    if summary_path:
        window = max(1, int(summary_window))
        tail_slice = slice(max(0, len(step_ms_series) - window), len(step_ms_series))
        summary = {
            "steps": steps,
            "seed": config.seed,
            "log_format": log_mode,
            "deterministic_log": deterministic_log,
            "move_counter": ecosystem.move_counter,
            "step_ms": _summary_stats(step_ms_series),
            "population": _summary_stats([float(v) for v in population_series]),
            "average_energy": _summary_stats(energy_series),
            "peaks": {
                "step_ms": {"value": float(max_step_ms[0]), "step": max_step_ms[1]},
                "population": {"value": max_population[0], "step": max_population[1]},
            },
            "tail_window": {
                "window": window,
                "step_ms": _summary_stats(step_ms_series[tail_slice]),
                "population": _summary_stats([float(v) for v in population_series[tail_slice]]),
                "average_energy": _summary_stats(energy_series[tail_slice]),
            },
        }
        Path(summary_path).write_text(json.dumps(summary, indent=2))
    return metrics


def main() -> None:
    parser = argparse.ArgumentParser(description="Headless wiggle ecosystem simulation")
    parser.add_argument("--steps", type=int, default=100)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--config", type=Path, default=None, help="YAML file with simulation parameters")
    parser.add_argument(
        "--iterations",
        type=int,
        default=None,
        help="Kernel iterations per step (defaults to kernel.iteration_count from the config).",
    )
    parser.add_argument("--log", type=Path, default=None, help="CSV file to write metrics")
    parser.add_argument(
        "--log-format",
        choices=["basic", "detailed"],
        default="detailed",
        help="CSV format to write when --log is provided.",
    )
    parser.add_argument(
        "--summary",
        type=Path,
        default=None,
        help="Optional JSON file to write summary stats for the run.",
    )
    parser.add_argument(
        "--summary-window",
        type=int,
        default=500,
        help="Tail window size (steps) for summary stats.",
    )
    parser.add_argument(
        "--deterministic-log",
        action="store_true",
        help="Write deterministic CSV (timing columns are forced to 0 so identical seeds match).",
    )
    parser.add_argument("--log-level", default="INFO", help="Python logging level")
    args = parser.parse_args()
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    run_headless(
        args.steps,
        args.seed,
        args.log,
        deterministic_log=args.deterministic_log,
        log_format=args.log_format,
        summary_path=args.summary,
        summary_window=args.summary_window,
        config_path=args.config,
        iteration_count=args.iterations,
    )


if __name__ == "__main__":
    main()
