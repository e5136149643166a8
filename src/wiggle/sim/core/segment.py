from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

from pygame.math import Vector2

from ..utils.math2d import _polar

if TYPE_CHECKING:
    from .rng import DeterministicRng


@dataclass(frozen=True, slots=True)
class Movement:
    """Rotation applied at one joint, with its trig pairs computed once."""

    angle: float
    cos_angle: float
    sin_angle: float
    negative_cos_angle: float
    negative_sin_angle: float

    @classmethod
    def from_angle(cls, angle: float) -> "Movement":
        return cls(
            angle=angle,
            cos_angle=math.cos(angle),
            sin_angle=math.sin(angle),
            negative_cos_angle=math.cos(-angle),
            negative_sin_angle=math.sin(-angle),
        )

    @classmethod
    def random(cls, rng: DeterministicRng, limit_degrees: float) -> "Movement":
        limit = abs(limit_degrees)
        return cls.from_angle(math.radians(rng.next_range(-limit, limit)))


@dataclass(slots=True)
class Segment:
    head: Vector2
    tail: Vector2
    movement: Movement
    shelter_movement: Movement

    @classmethod
    def from_head(
        cls,
        head: Vector2,
        length: float,
        angle: float,
        shelter_angle: float | None = None,
    ) -> "Segment":
        shelter_angle = angle if shelter_angle is None else shelter_angle
        start = Vector2(head)
        return cls(
            head=start,
            tail=start + _polar(length, angle),
            movement=Movement.from_angle(angle),
            shelter_movement=Movement.from_angle(shelter_angle),
        )

    @classmethod
    def random(cls, rng: DeterministicRng, head: Vector2, length: float, movement_limit: float) -> "Segment":
        movement = Movement.random(rng, movement_limit)
        shelter_movement = Movement.random(rng, movement_limit)
        start = Vector2(head)
        return cls(
            head=start,
            tail=start + _polar(length, movement.angle),
            movement=movement,
            shelter_movement=shelter_movement,
        )

    @property
    def length(self) -> float:
        return self.head.distance_to(self.tail)

    def profile(self, sheltered: bool) -> Movement:
        return self.shelter_movement if sheltered else self.movement

    def duplicate(self, translation: Vector2) -> "Segment":
        return Segment(
            head=self.head + translation,
            tail=self.tail + translation,
            movement=self.movement,
            shelter_movement=self.shelter_movement,
        )
