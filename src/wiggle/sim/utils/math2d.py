from __future__ import annotations

import math
from typing import Iterable, Sequence, Tuple

from pygame.math import Vector2

BoundingBox = Tuple[float, float, float, float]


def rotate(point: Vector2, pivot: Vector2, cos_angle: float, sin_angle: float) -> Vector2:
    x, y = rotate_xy(point.x, point.y, pivot.x, pivot.y, cos_angle, sin_angle)
    return Vector2(x, y)


def rotate_xy(
    x: float, y: float, pivot_x: float, pivot_y: float, cos_angle: float, sin_angle: float
) -> tuple[float, float]:
    dx = x - pivot_x
    dy = y - pivot_y
    return dx * cos_angle - dy * sin_angle + pivot_x, dx * sin_angle + dy * cos_angle + pivot_y


def union_bounding_box(box: BoundingBox, x: float, y: float) -> BoundingBox:
    min_x, min_y, max_x, max_y = box
    return (
        x if x < min_x else min_x,
        y if y < min_y else min_y,
        x if x > max_x else max_x,
        y if y > max_y else max_y,
    )


def bounding_box(points: Iterable[Vector2]) -> BoundingBox:
    box: BoundingBox | None = None
    for point in points:
        if box is None:
            box = (point.x, point.y, point.x, point.y)
        else:
            box = union_bounding_box(box, point.x, point.y)
    if box is None:
        raise ValueError("bounding box of an empty point set")
    return box


def bounding_box_xy(xs: Sequence[float], ys: Sequence[float]) -> BoundingBox:
    if not xs:
        raise ValueError("bounding box of an empty point set")
    return min(xs), min(ys), max(xs), max(ys)


def boundary_translation(box: BoundingBox, width: float, height: float) -> tuple[float, float]:
    min_x, min_y, max_x, max_y = box
    if min_x < 0.0:
        dx = -min_x
    elif max_x > width:
        dx = width - max_x
    else:
        dx = 0.0
    if min_y < 0.0:
        dy = -min_y
    elif max_y > height:
        dy = height - max_y
    else:
        dy = 0.0
    return dx, dy


def _polar(length: float, angle: float) -> Vector2:
    return Vector2(length * math.cos(angle), length * math.sin(angle))
