from __future__ import annotations

import logging
import math
import os
from concurrent.futures import BrokenExecutor, Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, List

from pygame.math import Vector2

from ..core.segment import Segment
from .movement import KernelParams, LayoutError, move_organism

if TYPE_CHECKING:
    from ..core.organism import Organism

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class FlatPopulation:
    """Whole population laid out as contiguous buffers plus offset tables.

    Organism ``i`` owns ``points[point_offsets[i]:point_offsets[i + 1]]`` and
    ``segments[segment_offsets[i]:segment_offsets[i + 1]]``.
    """

    points: List[Vector2]
    segments: List[Segment]
    point_offsets: List[int]
    segment_offsets: List[int]
    energy: List[int]

    @property
    def organism_count(self) -> int:
        return len(self.energy)


@dataclass(slots=True)
class DispatchResult:
    points: List[Vector2]
    energy: List[int]


def flatten(organisms: Iterable[Organism]) -> FlatPopulation:
    points: List[Vector2] = []
    segments: List[Segment] = []
    point_offsets = [0]
    segment_offsets = [0]
    energy: List[int] = []
    for organism in organisms:
        points.extend(organism.points)
        point_offsets.append(len(points))
        segments.extend(organism.segments)
        segment_offsets.append(len(segments))
        energy.append(organism.energy)
    return FlatPopulation(points, segments, point_offsets, segment_offsets, energy)


class BatchDispatcher:
    """Runs the movement kernel over every organism of a flattened population.

    Organism indices are split into contiguous chunks, one per worker thread.
    Workers only touch their own slices of the point buffer and energy array,
    so no locking is needed; shelters and boundary travel inside the frozen
    :class:`KernelParams`.
    """

    def __init__(self, max_workers: int = 0, parallel_threshold: int = 64, strict: bool = __debug__):
        self.max_workers = max_workers if max_workers > 0 else (os.cpu_count() or 1)
        self.parallel_threshold = max(0, parallel_threshold)
        self.strict = strict
        self._executor: ThreadPoolExecutor | None = None
        self._closed = False

    def close(self) -> None:
        self._closed = True
        if self._executor is not None:
            self._executor.shutdown(wait=True)

    def run(self, batch: FlatPopulation, params: KernelParams) -> DispatchResult:
        count = batch.organism_count
        if (
            count == 0
            or not batch.points
            or not batch.segments
            or len(batch.point_offsets) < 2
            or len(batch.segment_offsets) < 2
        ):
            return DispatchResult(batch.points, batch.energy)
        if not self.validate(batch):
            return DispatchResult(batch.points, batch.energy)

        out_points = list(batch.points)
        out_energy = list(batch.energy)
        chunks = self._chunks(count)
        if len(chunks) == 1 or count < self.parallel_threshold:
            self._run_range(batch, params, out_points, out_energy, 0, count)
            return DispatchResult(out_points, out_energy)

        try:
            executor = self._ensure_executor()
            futures: List[Future] = [
                executor.submit(self._run_range, batch, params, out_points, out_energy, start, end)
                for start, end in chunks
            ]
        except (RuntimeError, BrokenExecutor) as exc:
            logger.warning(f"Parallel executor unavailable, movement skipped for this step: {exc}")
            return DispatchResult(batch.points, batch.energy)
        logger.debug(f"Dispatched {count} organisms across {len(futures)} chunks")
        try:
            for future in futures:
                future.result()
        except BrokenExecutor as exc:
            logger.warning(f"Parallel executor failed mid-dispatch, movement skipped for this step: {exc}")
            return DispatchResult(batch.points, batch.energy)
        return DispatchResult(out_points, out_energy)

    def _ensure_executor(self) -> ThreadPoolExecutor:
        if self._closed:
            raise RuntimeError("dispatcher is closed")
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="wiggle-kernel")
        return self._executor

    def _chunks(self, count: int) -> List[tuple[int, int]]:
        size = max(1, math.ceil(count / self.max_workers))
        return [(start, min(count, start + size)) for start in range(0, count, size)]

    @staticmethod
    def _run_range(
        batch: FlatPopulation,
        params: KernelParams,
        out_points: List[Vector2],
        out_energy: List[int],
        start: int,
        end: int,
    ) -> None:
        point_offsets = batch.point_offsets
        segment_offsets = batch.segment_offsets
        for index in range(start, end):
            point_start = point_offsets[index]
            point_end = point_offsets[index + 1]
            points, energy = move_organism(
                batch.points[point_start:point_end],
                batch.segments[segment_offsets[index] : segment_offsets[index + 1]],
                batch.energy[index],
                params,
            )
            out_points[point_start:point_end] = points
            out_energy[index] = energy

    def validate(self, batch: FlatPopulation) -> bool:
        """Check the offset tables; raises ``LayoutError`` when strict."""
        problem = _layout_problem(batch)
        if problem is None:
            return True
        if self.strict:
            raise LayoutError(problem)
        logger.error(f"Inconsistent population layout, movement skipped for this step: {problem}")
        return False


def _layout_problem(batch: FlatPopulation) -> str | None:
    count = batch.organism_count
    point_offsets = batch.point_offsets
    segment_offsets = batch.segment_offsets
    if len(point_offsets) != count + 1 or len(segment_offsets) != count + 1:
        return (
            f"offset tables of length {len(point_offsets)}/{len(segment_offsets)} "
            f"for {count} organisms"
        )
    if point_offsets[0] != 0 or segment_offsets[0] != 0:
        return "offset tables must start at 0"
    if point_offsets[-1] != len(batch.points) or segment_offsets[-1] != len(batch.segments):
        return "offset tables do not cover the buffers"
    for index in range(count):
        point_count = point_offsets[index + 1] - point_offsets[index]
        segment_count = segment_offsets[index + 1] - segment_offsets[index]
        if segment_count < 1 or point_count != segment_count + 1:
            return f"organism {index} has {point_count} points for {segment_count} segments"
    return None
