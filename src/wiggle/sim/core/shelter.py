from __future__ import annotations

from dataclasses import dataclass

from pygame.math import Vector2

from ..utils.math2d import BoundingBox


@dataclass(frozen=True, slots=True)
class Shelter:
    """Axis-aligned rectangle anchored at its top-left corner."""

    x: float
    y: float
    width: float
    height: float

    @classmethod
    def at(cls, position: Vector2, size: Vector2) -> "Shelter":
        return cls(float(position.x), float(position.y), float(size.x), float(size.y))

    @classmethod
    def from_bounds(cls, box: BoundingBox) -> "Shelter":
        min_x, min_y, max_x, max_y = box
        return cls(min_x, min_y, max_x - min_x, max_y - min_y)

    @property
    def position(self) -> Vector2:
        return Vector2(self.x, self.y)

    @property
    def size(self) -> Vector2:
        return Vector2(self.width, self.height)

    def contains(self, x: float, y: float) -> bool:
        return self.x <= x <= self.x + self.width and self.y <= y <= self.y + self.height
