from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class TickMetrics:
    tick: int
    population: int
    idle: int
    walking: int
    panic: int
    evacuated: int
    neighbor_checks: int
    probe_hits: int
    push_outs: int
    arrivals: int
    average_speed: float
    evacuation: bool
    tick_duration_ms: float = 0.0


@dataclass(slots=True)
class TickStats:
    neighbor_checks: int = 0
    probe_hits: int = 0
    push_outs: int = 0
    arrivals: int = 0
