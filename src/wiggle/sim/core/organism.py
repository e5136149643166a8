from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import List

from pygame.math import Vector2

from ..utils.math2d import BoundingBox, bounding_box
from .ids import SimId
from .segment import Segment

DEFAULT_GROWTH_ANGLE = math.radians(45.0)
DEFAULT_GROWTH_LENGTH = 10.0


@dataclass(slots=True)
class Organism:
    """A chain of segments sharing one point buffer.

    ``points`` has one more entry than ``segments``: ``points[0]`` is the head
    of the first segment and ``points[i + 1]`` the tail of segment ``i``. The
    point buffer is authoritative once the organism starts moving; segment
    heads and tails are re-derived from it with :meth:`sync_segments`.
    """

    id: SimId
    segments: List[Segment]
    energy: int = 0
    points: List[Vector2] = field(init=False)

    def __post_init__(self) -> None:
        if not self.segments:
            raise ValueError("an organism needs at least one segment")
        self.points = [Vector2(self.segments[0].head)] + [Vector2(segment.tail) for segment in self.segments]

    def is_consistent(self) -> bool:
        return len(self.points) == len(self.segments) + 1

    def frame(self) -> BoundingBox:
        return bounding_box(self.points)

    def sync_segments(self) -> None:
        points = self.points
        for index, segment in enumerate(self.segments):
            segment.head = Vector2(points[index])
            segment.tail = Vector2(points[index + 1])

    def translate(self, vector: Vector2) -> None:
        self.points = [point + vector for point in self.points]
        self.sync_segments()

    def grow(
        self,
        angle: float | None = None,
        shelter_angle: float | None = None,
        length: float | None = None,
    ) -> Segment:
        angle = DEFAULT_GROWTH_ANGLE if angle is None else angle
        length = DEFAULT_GROWTH_LENGTH if length is None else length
        segment = Segment.from_head(self.points[-1], length, angle, shelter_angle)
        self.segments.append(segment)
        self.points.append(Vector2(segment.tail))
        return segment

    def divide(self, child_id: SimId, translation: Vector2) -> "Organism":
        # Floor halving on both sides: an odd energy loses one unit overall.
        half = self.energy // 2
        self.energy = half
        return Organism(
            id=child_id,
            segments=[segment.duplicate(translation) for segment in self.segments],
            energy=half,
        )
