from __future__ import annotations

import math
from typing import Iterable, NamedTuple, Optional, Protocol, Sequence

from pygame.math import Vector3

from .layout import VenueLayout, WallBox

_AXES = ("x", "y", "z")


class RayHit(NamedTuple):
    point: Vector3
    normal: Vector3


class CollisionProbe(Protocol):
    def __call__(self, origin: Vector3, direction: Vector3, max_distance: float) -> Optional[RayHit]:
        ...


class WallProbe:
    """
    Ray query against a venue's axis-aligned wall boxes.

    Stands in for the scene ray caster when the simulation runs without a
    renderer. Rays that start inside a box report the nearest face at the
    origin so the resolver pushes the agent back out.
    """

    def __init__(self, walls: Iterable[WallBox]) -> None:
        self._boxes: list[tuple[Vector3, Vector3]] = [(wall.min_corner, wall.max_corner) for wall in walls]

    @classmethod
    def from_layout(cls, layout: VenueLayout) -> "WallProbe":
        return cls(layout.walls)

    @property
    def box_count(self) -> int:
        return len(self._boxes)

    def __call__(self, origin: Vector3, direction: Vector3, max_distance: float) -> Optional[RayHit]:
        if max_distance <= 0.0 or direction.length_squared() < 1e-12:
            return None
        unit = direction.normalize()
        best: Optional[RayHit] = None
        best_dist = max_distance
        for low, high in self._boxes:
            hit = _intersect_box(origin, unit, low, high)
            if hit is None:
                continue
            dist, normal = hit
            if dist < best_dist:
                best_dist = dist
                best = RayHit(point=origin + unit * dist, normal=normal)
        return best


def _inside_face_normal(origin: Vector3, low: Vector3, high: Vector3) -> Vector3:
    # Ground-plane faces only: walls are vertical and agents live at y == 0.
    candidates: Sequence[tuple[float, Vector3]] = (
        (origin.x - low.x, Vector3(-1.0, 0.0, 0.0)),
        (high.x - origin.x, Vector3(1.0, 0.0, 0.0)),
        (origin.z - low.z, Vector3(0.0, 0.0, -1.0)),
        (high.z - origin.z, Vector3(0.0, 0.0, 1.0)),
    )
    return min(candidates, key=lambda item: item[0])[1]


def _intersect_box(
    origin: Vector3, direction: Vector3, low: Vector3, high: Vector3
) -> Optional[tuple[float, Vector3]]:
    t_near = -math.inf
    t_far = math.inf
    near_normal = Vector3()
    for axis_index, axis in enumerate(_AXES):
        o = getattr(origin, axis)
        d = getattr(direction, axis)
        lo = getattr(low, axis)
        hi = getattr(high, axis)
        if abs(d) < 1e-12:
            if o < lo or o > hi:
                return None
            continue
        t1 = (lo - o) / d
        t2 = (hi - o) / d
        # Entering through the low face means the outward normal points to -axis.
        sign = -1.0
        if t1 > t2:
            t1, t2 = t2, t1
            sign = 1.0
        if t1 > t_near:
            t_near = t1
            near_normal = Vector3()
            near_normal[axis_index] = sign
        t_far = min(t_far, t2)
        if t_near > t_far:
            return None
    if t_far < 0.0:
        return None
    if t_near < 0.0:
        return 0.0, _inside_face_normal(origin, low, high)
    return t_near, near_normal
