from __future__ import annotations

import logging
from time import perf_counter
from typing import Any, Dict, Iterable, List

from pygame.math import Vector3

from .agent import Agent, AgentState
from .collision import WallProbe
from .config import SimulationConfig
from .layout import VenueLayout, get_layout, select_exits
from .rng import DeterministicRng
from ..systems import integrator, metrics as metrics_system
from ..types.metrics import TickMetrics, TickStats
from ..types.snapshot import Snapshot, SnapshotMetadata, SnapshotVenue

logger = logging.getLogger(__name__)


class World:
    """
    Caller-side owner of the visitor population.

    Snapshots the control inputs (evacuation flag, active exits, time scale),
    runs one frame through :func:`integrator.advance` and commits the result
    wholesale, so readers only ever see a completed tick.
    """

    def __init__(self, config: SimulationConfig):
        self._config = config
        self._rng = DeterministicRng(config.seed)
        self._agents: List[Agent] = []
        self._next_id = 0
        self._tick = 0
        self._evacuation = False
        self._time_scale = config.time_scale
        self._metrics: TickMetrics | None = None
        self._set_layout(config.layout_id)
        self.spawn(config.initial_population)

    @property
    def config(self) -> SimulationConfig:
        return self._config

    @property
    def agents(self) -> List[Agent]:
        return self._agents

    @property
    def metrics(self) -> TickMetrics | None:
        return self._metrics

    @property
    def tick(self) -> int:
        return self._tick

    @property
    def layout(self) -> VenueLayout:
        return self._layout

    @property
    def active_exit_indices(self) -> List[int]:
        return sorted(self._active_exits)

    @property
    def evacuation(self) -> bool:
        return self._evacuation

    @property
    def time_scale(self) -> float:
        return self._time_scale

    @time_scale.setter
    def time_scale(self, value: float) -> None:
        self._time_scale = max(0.0, float(value))

    def reset(self) -> None:
        self._agents = []
        self._rng.reset()
        self._tick = 0
        self._evacuation = False
        self._metrics = None
        self._set_layout(self._layout.id)
        self.spawn(self._config.initial_population)

    def spawn(self, count: int) -> List[Agent]:
        spawn = self._config.spawn
        spawned: List[Agent] = []
        for _ in range(max(0, int(count))):
            agent = Agent(
                id=self._next_id,
                position=self._sample_spawn_position(),
                velocity=Vector3(),
                goal=None,
                state=AgentState.IDLE,
                speed=spawn.base_speed_min + self._rng.next_float() * spawn.base_speed_jitter,
            )
            self._next_id += 1
            spawned.append(agent)
        self._agents = self._agents + spawned
        return spawned

    def clear(self) -> None:
        self._agents = []

    def set_layout(self, layout_id: str) -> VenueLayout:
        layout = self._set_layout(layout_id)
        if self._agents:
            logger.info("Switched to layout %s; removed %d visitors", layout.id, len(self._agents))
        self._agents = []
        return layout

    def toggle_exit(self, index: int) -> List[int]:
        if not 0 <= index < len(self._layout.exits):
            raise IndexError(f"Exit index {index} out of range for layout {self._layout.id}")
        if index in self._active_exits:
            self._active_exits.discard(index)
        else:
            self._active_exits.add(index)
        return self.active_exit_indices

    def set_active_exits(self, indices: Iterable[int]) -> List[int]:
        self._active_exits = {index for index in indices if 0 <= index < len(self._layout.exits)}
        return self.active_exit_indices

    def set_evacuation(self, enabled: bool) -> None:
        if enabled != self._evacuation:
            logger.info("Evacuation %s at tick %d", "started" if enabled else "cleared", self._tick)
        self._evacuation = bool(enabled)

    def toggle_evacuation(self) -> bool:
        self.set_evacuation(not self._evacuation)
        return self._evacuation

    def step(self, frame_delta: float | None = None) -> TickMetrics:
        start = perf_counter()
        delta = self._config.time_step if frame_delta is None else frame_delta
        delta *= self._time_scale
        cap = self._config.integrator.max_frame_delta
        if delta > cap:
            logger.warning("Frame delta %.4fs exceeds %.4fs; clamping", delta, cap)
        delta = min(max(delta, 0.0), cap)
        stats = TickStats()
        exits = select_exits(self._layout, self._active_exits)
        self._agents = integrator.advance(
            self._agents,
            delta,
            self._probe,
            self._evacuation,
            exits,
            self._config,
            rng=self._rng,
            stats=stats,
        )
        elapsed_ms = (perf_counter() - start) * 1000.0
        metrics = metrics_system.create_metrics(self._tick, self._agents, stats, self._evacuation, elapsed_ms)
        logger.debug(
            "tick=%d idle=%d walking=%d panic=%d probe_hits=%d",
            metrics.tick,
            metrics.idle,
            metrics.walking,
            metrics.panic,
            metrics.probe_hits,
        )
        self._metrics = metrics
        self._tick += 1
        return metrics

    def snapshot(self) -> Snapshot:
        metrics = self._metrics
        if metrics is None:
            metrics = metrics_system.create_metrics(self._tick, self._agents, TickStats(), self._evacuation, 0.0)
        venue = SnapshotVenue(
            layout_id=self._layout.id,
            bounds=self._config.integrator.bounds,
            walls=[{"position": list(wall.position), "size": list(wall.size)} for wall in self._layout.walls],
            exits=[list(point) for point in self._layout.exits],
            active_exits=self.active_exit_indices,
        )
        metadata = SnapshotMetadata(
            sim_dt=self._config.time_step,
            time_scale=self._time_scale,
            evacuation=self._evacuation,
            seed=self._config.seed,
            config_version=self._config.config_version,
        )
        return Snapshot(
            tick=self._tick,
            metrics=metrics,
            agents=[self._agent_snapshot(agent) for agent in self._agents],
            venue=venue,
            metadata=metadata,
        )

    def _set_layout(self, layout_id: str) -> VenueLayout:
        self._layout = get_layout(layout_id)
        self._probe = WallProbe.from_layout(self._layout)
        self._active_exits = set(range(len(self._layout.exits)))
        return self._layout

    def _sample_spawn_position(self) -> Vector3:
        spawn = self._config.spawn
        regions = self._layout.spawn_regions
        if spawn.use_layout_spawn and regions:
            region = regions[self._rng.next_index(len(regions))]
            return self._rng.next_ground_point(region.min[0], region.max[0], region.min[1], region.max[1])
        extent = spawn.spawn_range
        return self._rng.next_ground_point(-extent, extent, -extent, extent)

    @staticmethod
    def _agent_snapshot(agent: Agent) -> Dict[str, Any]:
        return {
            "id": agent.id,
            "x": agent.position.x,
            "y": agent.position.y,
            "z": agent.position.z,
            "vx": agent.velocity.x,
            "vy": agent.velocity.y,
            "vz": agent.velocity.z,
            "goal": None if agent.goal is None else [agent.goal.x, agent.goal.y, agent.goal.z],
            "state": agent.state.value,
            "kind": agent.kind.value,
            "speed": agent.speed,
        }
