from __future__ import annotations

import math
from typing import Iterable, List

from pygame.math import Vector3

from ..core.agent import Agent
from ..utils.math3d import FORWARD, _safe_normalize

DEFAULT_VIEW_DISTANCE = 10.0
DEFAULT_VIEW_ANGLE = 120.0


def facing(agent: Agent) -> Vector3:
    """Normalized velocity, or +Z when the agent is (nearly) stationary."""
    if agent.velocity.length_squared() < 0.1 * 0.1:
        return FORWARD.copy()
    return _safe_normalize(agent.velocity, FORWARD)


def visible_agents(
    agent: Agent,
    population: Iterable[Agent],
    view_distance: float = DEFAULT_VIEW_DISTANCE,
    view_angle: float = DEFAULT_VIEW_ANGLE,
) -> List[Agent]:
    forward = facing(agent)
    cos_half_fov = math.cos(math.radians(view_angle * 0.5))
    origin = agent.position
    visible: List[Agent] = []
    for other in population:
        if other.id == agent.id:
            continue
        to_other = other.position - origin
        dist_sq = to_other.length_squared()
        if dist_sq >= view_distance * view_distance or dist_sq < 1e-12:
            continue
        inv = 1.0 / math.sqrt(dist_sq)
        dot = (forward.x * to_other.x + forward.y * to_other.y + forward.z * to_other.z) * inv
        if dot > cos_half_fov:
            visible.append(other)
    return visible
