from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence, Tuple

from pygame.math import Vector2

from ..core.segment import Segment
from ..core.shelter import Shelter
from ..utils.math2d import boundary_translation, bounding_box_xy, rotate_xy

DEFAULT_OCCUPANCY_CHECK_INTERVAL = 10
DEFAULT_BOUNDARY_CHECK_INTERVAL = 100

_TrigRow = Tuple[float, float, float, float]


class LayoutError(ValueError):
    """Raised when point and segment buffers do not line up."""


@dataclass(frozen=True, slots=True)
class KernelParams:
    shelters: Tuple[Shelter, ...]
    boundary: Tuple[float, float]
    iteration_count: int
    energy_gain_rate: int = 1
    occupancy_check_interval: int = DEFAULT_OCCUPANCY_CHECK_INTERVAL
    boundary_check_interval: int = DEFAULT_BOUNDARY_CHECK_INTERVAL


def move_organism(
    points: Sequence[Vector2],
    segments: Sequence[Segment],
    energy: int,
    params: KernelParams,
) -> tuple[List[Vector2], int]:
    """Run ``params.iteration_count`` wiggle iterations for one organism.

    Reads only its own points and segments plus the shared, immutable
    ``params``; returns new point objects and the updated energy.

    Each iteration bends the chain joint by joint from head to tail, then
    applies the inverse bend from tail to head around the next joint, so the
    chain oscillates instead of drifting. Occupancy is sampled at the start
    of every ``occupancy_check_interval`` window (and on the last iteration)
    and reused in between; energy is settled once per window, when it closes.
    The boundary clamp runs every ``boundary_check_interval`` iterations and
    on the last one.
    """
    if len(points) != len(segments) + 1:
        raise LayoutError(f"{len(points)} points for {len(segments)} segments")
    iteration_count = params.iteration_count
    if iteration_count <= 0:
        return [Vector2(point) for point in points], energy

    xs = [point.x for point in points]
    ys = [point.y for point in points]
    shelters = params.shelters
    width, height = params.boundary
    gain = params.energy_gain_rate
    occupancy_interval = max(1, params.occupancy_check_interval)
    boundary_interval = max(1, params.boundary_check_interval)
    free_rows = _trig_rows(segments, sheltered=False)
    shelter_rows = _trig_rows(segments, sheltered=True)
    last = iteration_count - 1

    sheltered = False
    for iteration in range(iteration_count):
        final = iteration == last
        if final or iteration % occupancy_interval == 0:
            sheltered = _is_sheltered(xs, ys, shelters)
        rows = shelter_rows if sheltered else free_rows
        _forward_pass(xs, ys, rows)
        _backward_pass(xs, ys, rows)
        if final or (iteration + 1) % occupancy_interval == 0:
            if _is_sheltered(xs, ys, shelters):
                energy = max(0, energy + gain)
            else:
                energy = max(0, energy - 1)
        if final or iteration % boundary_interval == 0:
            _clamp_xy(xs, ys, width, height)

    return [Vector2(x, y) for x, y in zip(xs, ys)], energy


def clamp_to_boundary(points: Sequence[Vector2], boundary: Tuple[float, float]) -> List[Vector2]:
    xs = [point.x for point in points]
    ys = [point.y for point in points]
    if xs:
        _clamp_xy(xs, ys, boundary[0], boundary[1])
    return [Vector2(x, y) for x, y in zip(xs, ys)]


def is_sheltered(points: Sequence[Vector2], shelters: Sequence[Shelter]) -> bool:
    return _is_sheltered([point.x for point in points], [point.y for point in points], shelters)


def _trig_rows(segments: Sequence[Segment], sheltered: bool) -> List[_TrigRow]:
    rows = []
    for segment in segments:
        profile = segment.profile(sheltered)
        rows.append(
            (profile.cos_angle, profile.sin_angle, profile.negative_cos_angle, profile.negative_sin_angle)
        )
    return rows


def _is_sheltered(xs: List[float], ys: List[float], shelters: Sequence[Shelter]) -> bool:
    for shelter in shelters:
        for x, y in zip(xs, ys):
            if shelter.contains(x, y):
                return True
    return False


def _forward_pass(xs: List[float], ys: List[float], rows: List[_TrigRow]) -> None:
    count = len(xs)
    for index, (cos_angle, sin_angle, _, _) in enumerate(rows):
        pivot_x = xs[index]
        pivot_y = ys[index]
        for point_index in range(index + 1, count):
            xs[point_index], ys[point_index] = rotate_xy(
                xs[point_index], ys[point_index], pivot_x, pivot_y, cos_angle, sin_angle
            )


def _backward_pass(xs: List[float], ys: List[float], rows: List[_TrigRow]) -> None:
    for index in range(len(rows) - 1, -1, -1):
        _, _, cos_angle, sin_angle = rows[index]
        pivot_x = xs[index + 1]
        pivot_y = ys[index + 1]
        for point_index in range(index + 1):
            xs[point_index], ys[point_index] = rotate_xy(
                xs[point_index], ys[point_index], pivot_x, pivot_y, cos_angle, sin_angle
            )


def _clamp_xy(xs: List[float], ys: List[float], width: float, height: float) -> None:
    dx, dy = boundary_translation(bounding_box_xy(xs, ys), width, height)
    if dx == 0.0 and dy == 0.0:
        return
    for index in range(len(xs)):
        xs[index] += dx
        ys[index] += dy
