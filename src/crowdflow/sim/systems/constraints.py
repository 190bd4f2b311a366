from __future__ import annotations

from typing import Optional

from pygame.math import Vector3

from ..core.agent import Agent
from ..core.collision import CollisionProbe
from ..core.config import CollisionConfig, SteeringConfig
from ..types.metrics import TickStats
from ..utils.math3d import FORWARD, _safe_normalize


def look_direction(desired_velocity: Vector3) -> Vector3:
    if desired_velocity.length() <= 0.01:
        return FORWARD.copy()
    return _safe_normalize(desired_velocity, FORWARD)


def resolve(
    agent: Agent,
    desired_velocity: Vector3,
    probe: Optional[CollisionProbe],
    is_evacuation: bool,
    collision: CollisionConfig,
    steering: SteeringConfig,
    stats: Optional[TickStats] = None,
) -> Vector3:
    """
    Adjust ``desired_velocity`` against the nearest wall ahead of ``agent``.

    A missing probe or a miss leaves the velocity unchanged. Inputs are never
    mutated.
    """

    velocity = Vector3(desired_velocity)
    if probe is None:
        return velocity

    distance = collision.evacuation_look_ahead if is_evacuation else collision.look_ahead
    hit = probe(agent.position, look_direction(velocity), distance)
    if hit is None:
        return velocity
    if stats is not None:
        stats.probe_hits += 1

    normal = _safe_normalize(Vector3(hit.normal))
    if normal.length_squared() < 0.5:
        return velocity

    # Slide: drop the component driving into the surface.
    into = velocity.dot(normal)
    if into < 0.0:
        velocity -= normal * into

    hit_distance = Vector3(hit.point).distance_to(agent.position)
    if hit_distance < collision.push_out_distance:
        if stats is not None:
            stats.push_outs += 1
        velocity += normal * ((collision.push_out_distance - hit_distance) * collision.push_out_stiffness)
        if agent.velocity.length_squared() < collision.stuck_speed_sq:
            tangent = Vector3(-normal.z, 0.0, normal.x)
            velocity += tangent * steering.max_speed
    return velocity
