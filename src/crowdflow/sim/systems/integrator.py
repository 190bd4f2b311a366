from __future__ import annotations

from dataclasses import replace
from typing import List, Optional, Sequence

from pygame.math import Vector3

from ..core.agent import Agent, AgentState
from ..core.collision import CollisionProbe
from ..core.config import SimulationConfig
from ..core.rng import DeterministicRng
from ..core.spatial_grid import SpatialGrid
from ..types.metrics import TickStats
from ..utils.math3d import _clamp_length, _clamp_value
from .constraints import resolve
from .perception import visible_agents
from .steering import compute_desired_velocity


def integrate(agent: Agent, velocity: Vector3, sub_delta: float, bounds: float) -> Agent:
    moved = agent.position + velocity * sub_delta
    position = Vector3(
        _clamp_value(moved.x, -bounds, bounds),
        0.0,
        _clamp_value(moved.z, -bounds, bounds),
    )
    return replace(agent, position=position, velocity=Vector3(velocity))


def settle(agent: Agent, bounds: float) -> Agent:
    position = agent.position
    if position.y == 0.0 and -bounds <= position.x <= bounds and -bounds <= position.z <= bounds:
        return agent
    return integrate(agent, agent.velocity, 0.0, bounds)


def step_generation(
    generation: Sequence[Agent],
    sub_delta: float,
    probe: Optional[CollisionProbe],
    is_evacuation: bool,
    exits: Sequence[Vector3],
    config: SimulationConfig,
    grid: SpatialGrid | None = None,
    stats: TickStats | None = None,
) -> List[Agent]:
    """
    Compute one complete next generation from ``generation``.

    Every agent perceives the previous generation only, so the result does
    not depend on iteration order.
    """

    perception = config.perception
    view_distance = perception.view_distance
    stats = stats if stats is not None else TickStats()
    candidates: List[Agent] = []
    order: dict[int, int] = {}
    cell_offsets: list[tuple[int, int]] = []
    if grid is not None:
        grid.rebuild(generation)
        cell_offsets = grid.build_neighbor_cell_offsets(view_distance)
        order = {agent.id: index for index, agent in enumerate(generation)}

    next_generation: List[Agent] = []
    for agent in generation:
        if grid is not None:
            grid.collect_candidates(agent.position, cell_offsets, view_distance * view_distance, candidates)
            # Keep population order so force sums match the brute-force scan.
            candidates.sort(key=lambda other: order[other.id])
            pool: Sequence[Agent] = candidates
        else:
            pool = generation
        neighbors = visible_agents(agent, pool, view_distance, perception.view_angle)
        stats.neighbor_checks += len(neighbors)

        result = compute_desired_velocity(agent, neighbors, is_evacuation, exits, config.steering)
        if result.arrived:
            stats.arrivals += 1
        if not result.integrate:
            next_generation.append(settle(result.agent, config.integrator.bounds))
            continue

        velocity = resolve(
            result.agent, result.velocity, probe, is_evacuation, config.collision, config.steering, stats
        )
        velocity = _clamp_length(velocity, result.speed_cap)
        next_generation.append(integrate(result.agent, velocity, sub_delta, config.integrator.bounds))
    return next_generation


def assign_idle_goals(population: Sequence[Agent], rng: DeterministicRng, goal_range: float) -> List[Agent]:
    assigned: List[Agent] = []
    for agent in population:
        if agent.state == AgentState.IDLE and agent.goal is None:
            goal = rng.next_ground_point(-goal_range, goal_range, -goal_range, goal_range)
            agent = replace(agent, goal=goal, state=AgentState.WALKING)
        assigned.append(agent)
    return assigned


def advance(
    population: Sequence[Agent],
    frame_delta: float,
    probe: Optional[CollisionProbe],
    is_evacuation: bool,
    exits: Sequence[Vector3],
    config: SimulationConfig | None = None,
    rng: DeterministicRng | None = None,
    stats: TickStats | None = None,
    reassign_idle: bool = True,
) -> List[Agent]:
    """
    Advance ``population`` by one frame and return the new population.

    The frame is split into ``config.integrator.sub_steps`` equal sub-steps.
    Outside evacuation, idle agents without a goal are then handed a random
    wandering goal drawn from ``rng``. The input sequence and its agents are
    left untouched; the result has the same length, order and ids.
    """

    config = config if config is not None else SimulationConfig()
    integrator = config.integrator
    # Bounding large deltas is the caller's job; see World.step.
    sub_delta = max(0.0, frame_delta) / integrator.sub_steps
    grid = SpatialGrid(config.perception.cell_size) if config.perception.use_spatial_grid else None

    current = list(population)
    for _ in range(integrator.sub_steps):
        current = step_generation(current, sub_delta, probe, is_evacuation, exits, config, grid, stats)

    if is_evacuation or not reassign_idle:
        return current
    return assign_idle_goals(current, rng if rng is not None else DeterministicRng(None), integrator.goal_range)
