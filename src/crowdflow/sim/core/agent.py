from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from pygame.math import Vector3


class AgentState(str, Enum):
    IDLE = "IDLE"
    WALKING = "WALKING"
    PANIC = "PANIC"


class AgentKind(str, Enum):
    VISITOR = "VISITOR"


@dataclass(frozen=True, slots=True)
class Agent:
    """Immutable visitor record; every tick replaces agents wholesale via ``dataclasses.replace``."""

    id: int
    position: Vector3
    velocity: Vector3 = field(default_factory=Vector3)
    goal: Vector3 | None = None
    state: AgentState = AgentState.IDLE
    speed: float = 1.5
    kind: AgentKind = AgentKind.VISITOR
