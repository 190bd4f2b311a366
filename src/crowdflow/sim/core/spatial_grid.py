from __future__ import annotations

import math
from typing import TYPE_CHECKING, Dict, Iterable, List, Tuple

from pygame.math import Vector3

if TYPE_CHECKING:
    from .agent import Agent


class SpatialGrid:
    """Uniform ground-plane (x/z) bucket grid for neighbour candidate lookup."""

    def __init__(self, cell_size: float) -> None:
        self._cell_size = cell_size
        self._cells: Dict[Tuple[int, int], List["Agent"]] = {}
        self._active_keys: List[Tuple[int, int]] = []

    def build_neighbor_cell_offsets(self, radius: float) -> List[Tuple[int, int]]:
        cell_range = int(math.ceil(radius / self._cell_size))
        return [(dx, dz) for dx in range(-cell_range, cell_range + 1) for dz in range(-cell_range, cell_range + 1)]

    def clear(self) -> None:
        for key in self._active_keys:
            bucket = self._cells.get(key)
            if bucket:
                bucket.clear()
        self._active_keys.clear()

    def insert(self, agent: "Agent") -> None:
        key = self._cell_key(agent.position)
        bucket = self._cells.get(key)
        if bucket is None:
            bucket = []
            self._cells[key] = bucket
            self._active_keys.append(key)
        elif not bucket:
            # Bucket exists but was cleared; mark it active again.
            self._active_keys.append(key)
        bucket.append(agent)

    def rebuild(self, agents: Iterable["Agent"]) -> None:
        self.clear()
        for agent in agents:
            self.insert(agent)

    def collect_candidates(
        self,
        position: Vector3,
        cell_offsets: List[Tuple[int, int]],
        radius_sq: float,
        out_agents: List["Agent"],
    ) -> None:
        """
        Fill ``out_agents`` with every agent within ``radius_sq`` of ``position``.

        Includes the agent at ``position`` itself; the caller filters by id.
        """

        out_agents.clear()
        base_x, base_z = self._cell_key(position)
        pos_x = position.x
        pos_z = position.z
        cells = self._cells
        append_agent = out_agents.append

        for dx, dz in cell_offsets:
            bucket = cells.get((base_x + dx, base_z + dz))
            if not bucket:
                continue
            for agent in bucket:
                pos = agent.position
                offset_x = pos.x - pos_x
                offset_z = pos.z - pos_z
                if offset_x * offset_x + offset_z * offset_z <= radius_sq:
                    append_agent(agent)

    def _cell_key(self, position: Vector3) -> Tuple[int, int]:
        return (int(position.x // self._cell_size), int(position.z // self._cell_size))
