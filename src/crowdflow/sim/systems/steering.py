from __future__ import annotations

from dataclasses import dataclass, replace
from typing import List, Sequence

from pygame.math import Vector3

from ..core.agent import Agent, AgentKind, AgentState
from ..core.config import SteeringConfig
from ..core.layout import default_exits
from ..utils.math3d import _clamp_length, _safe_normalize


@dataclass(frozen=True, slots=True)
class SteeringResult:
    agent: Agent
    velocity: Vector3
    speed_cap: float
    integrate: bool = True
    arrived: bool = False


def nearest_exit(position: Vector3, exits: Sequence[Vector3]) -> Vector3:
    candidates = exits if exits else default_exits()
    best = candidates[0]
    best_dist_sq = position.distance_squared_to(best)
    for exit_point in candidates[1:]:
        dist_sq = position.distance_squared_to(exit_point)
        if dist_sq < best_dist_sq:
            best_dist_sq = dist_sq
            best = exit_point
    return Vector3(best)


def effective_speed(agent: Agent, neighbor_count: int, is_evacuation: bool, config: SteeringConfig) -> float:
    if is_evacuation:
        return config.evacuation_speed
    speed = agent.speed
    if neighbor_count > config.crowd_threshold:
        if agent.kind == AgentKind.VISITOR:
            speed = config.max_speed * config.crowd_boost_multiplier
        speed *= config.crowd_slowdown
    return speed


def seek_force(agent: Agent, goal: Vector3, speed: float, config: SteeringConfig) -> Vector3:
    desired = _safe_normalize(goal - agent.position) * speed
    return _clamp_length(desired - agent.velocity, config.max_force)


def separation_force(
    agent: Agent, neighbors: List[Agent], is_evacuation: bool, config: SteeringConfig
) -> Vector3:
    accum = Vector3()
    count = 0
    for other in neighbors:
        offset = agent.position - other.position
        dist = offset.length()
        if dist >= config.separation_distance or dist < 1e-9:
            continue
        accum += offset / (dist * dist)
        count += 1
    if count == 0:
        return Vector3()
    scale = config.evacuation_separation_force_scale if is_evacuation else config.separation_force_scale
    steer = _safe_normalize(accum / count) * config.max_speed - agent.velocity
    return _clamp_length(steer, config.max_force * scale)


def compute_desired_velocity(
    agent: Agent,
    neighbors: List[Agent],
    is_evacuation: bool,
    exits: Sequence[Vector3],
    config: SteeringConfig,
) -> SteeringResult:
    if is_evacuation:
        if agent.state != AgentState.PANIC or agent.goal is None:
            target = nearest_exit(agent.position, exits)
            arrived = agent.position.distance_to(target) < config.evacuation_arrival_threshold
            if agent.state == AgentState.IDLE and arrived:
                # Already evacuated: stays at the exit instead of re-entering panic.
                settled = replace(agent, velocity=Vector3(), goal=None)
                return SteeringResult(settled, settled.velocity, config.evacuation_speed, integrate=False)
            panicked = replace(agent, state=AgentState.PANIC, goal=target, speed=config.evacuation_speed)
            return SteeringResult(panicked, Vector3(agent.velocity), config.evacuation_speed, integrate=False)
    elif agent.state == AgentState.PANIC:
        calmed = replace(agent, state=AgentState.IDLE, goal=None, velocity=Vector3())
        return SteeringResult(calmed, calmed.velocity, agent.speed, integrate=False)

    speed = effective_speed(agent, len(neighbors), is_evacuation, config)

    if agent.goal is None and agent.state != AgentState.IDLE:
        return SteeringResult(agent, Vector3(agent.velocity), speed, integrate=False)

    desired = Vector3(agent.velocity)

    if agent.goal is not None:
        dist_to_goal = agent.position.distance_to(agent.goal)
        threshold = config.evacuation_arrival_threshold if is_evacuation else config.arrival_threshold
        if dist_to_goal < threshold:
            stopped = replace(agent, state=AgentState.IDLE, velocity=Vector3(), goal=None)
            return SteeringResult(stopped, stopped.velocity, speed, integrate=False, arrived=True)
        desired += seek_force(agent, agent.goal, speed, config)

    desired += separation_force(agent, neighbors, is_evacuation, config)

    return SteeringResult(agent, _clamp_length(desired, speed), speed)
