from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Tuple

from pygame.math import Vector3

logger = logging.getLogger(__name__)

DEFAULT_LAYOUT_ID = "EMPTY"


@dataclass(frozen=True)
class WallBox:
    position: Tuple[float, float, float]
    size: Tuple[float, float, float]

    @property
    def min_corner(self) -> Vector3:
        return Vector3(
            self.position[0] - self.size[0] * 0.5,
            self.position[1] - self.size[1] * 0.5,
            self.position[2] - self.size[2] * 0.5,
        )

    @property
    def max_corner(self) -> Vector3:
        return Vector3(
            self.position[0] + self.size[0] * 0.5,
            self.position[1] + self.size[1] * 0.5,
            self.position[2] + self.size[2] * 0.5,
        )


@dataclass(frozen=True)
class SpawnRegion:
    min: Tuple[float, float]
    max: Tuple[float, float]


@dataclass(frozen=True)
class VenueLayout:
    id: str
    name: str
    description: str
    walls: Tuple[WallBox, ...] = ()
    exits: Tuple[Tuple[float, float, float], ...] = ()
    spawn_regions: Tuple[SpawnRegion, ...] = field(default_factory=tuple)

    def exit_points(self) -> List[Vector3]:
        return [Vector3(x, y, z) for x, y, z in self.exits]


_CORNER_EXITS = ((-45.0, 0.0, -45.0), (45.0, 0.0, -45.0), (-45.0, 0.0, 45.0), (45.0, 0.0, 45.0))

LAYOUTS: Dict[str, VenueLayout] = {
    layout.id: layout
    for layout in (
        VenueLayout(
            id="EMPTY",
            name="Empty Space (Open)",
            description="Open 100x100m plaza with exits at corners.",
            exits=_CORNER_EXITS,
            spawn_regions=(SpawnRegion((-40.0, -40.0), (40.0, 40.0)),),
        ),
        VenueLayout(
            id="GALLERY",
            name="Art Gallery",
            description="Partition walls creating a flow.",
            walls=(
                WallBox((0.0, 2.5, 0.0), (2.0, 5.0, 60.0)),
                WallBox((-20.0, 2.5, 10.0), (15.0, 5.0, 2.0)),
                WallBox((20.0, 2.5, -10.0), (15.0, 5.0, 2.0)),
                WallBox((-20.0, 2.5, -30.0), (15.0, 5.0, 2.0)),
                WallBox((20.0, 2.5, 30.0), (15.0, 5.0, 2.0)),
            ),
            exits=((0.0, 0.0, -48.0), (0.0, 0.0, 48.0)),
            spawn_regions=(SpawnRegion((-40.0, -40.0), (40.0, 40.0)),),
        ),
        VenueLayout(
            id="OFFICE",
            name="Office Floor",
            description="Central corridor with rooms.",
            walls=(
                WallBox((-10.0, 2.5, 0.0), (2.0, 5.0, 90.0)),
                WallBox((10.0, 2.5, 0.0), (2.0, 5.0, 90.0)),
                WallBox((-25.0, 2.5, -15.0), (30.0, 5.0, 2.0)),
                WallBox((-25.0, 2.5, 15.0), (30.0, 5.0, 2.0)),
                WallBox((25.0, 2.5, -15.0), (30.0, 5.0, 2.0)),
                WallBox((25.0, 2.5, 15.0), (30.0, 5.0, 2.0)),
            ),
            exits=((0.0, 0.0, -48.0), (0.0, 0.0, 48.0), (-48.0, 0.0, 0.0), (48.0, 0.0, 0.0)),
            spawn_regions=(SpawnRegion((-5.0, -40.0), (5.0, 40.0)),),
        ),
        VenueLayout(
            id="AUDITORIUM",
            name="Auditorium",
            description="Large hall with specific exits.",
            walls=(
                WallBox((0.0, 2.5, -40.0), (60.0, 5.0, 2.0)),
                WallBox((-30.0, 2.5, 0.0), (2.0, 5.0, 80.0)),
                WallBox((30.0, 2.5, 0.0), (2.0, 5.0, 80.0)),
            ),
            exits=((-20.0, 0.0, 48.0), (20.0, 0.0, 48.0), (-35.0, 0.0, 0.0), (35.0, 0.0, 0.0)),
            spawn_regions=(SpawnRegion((-25.0, -30.0), (25.0, 30.0)),),
        ),
    )
}


def default_exits() -> List[Vector3]:
    return [Vector3(x, y, z) for x, y, z in _CORNER_EXITS]


def get_layout(layout_id: str) -> VenueLayout:
    layout = LAYOUTS.get(layout_id)
    if layout is None:
        logger.warning("Unknown layout %r, falling back to %s", layout_id, DEFAULT_LAYOUT_ID)
        return LAYOUTS[DEFAULT_LAYOUT_ID]
    return layout


def select_exits(layout: VenueLayout, active_indices: Iterable[int]) -> List[Vector3]:
    """Exits enabled by ``active_indices``, in layout order; all exits when none are enabled."""
    active = set(active_indices)
    exits = [point for index, point in enumerate(layout.exit_points()) if index in active]
    if not exits:
        return layout.exit_points()
    return exits
