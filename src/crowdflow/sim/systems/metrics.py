from __future__ import annotations

from typing import Sequence

from ..core.agent import Agent, AgentState
from ..types.metrics import TickMetrics, TickStats


def create_metrics(
    tick: int,
    agents: Sequence[Agent],
    stats: TickStats,
    evacuation: bool,
    duration_ms: float,
) -> TickMetrics:
    idle = walking = panic = 0
    speed_sum = 0.0
    for agent in agents:
        if agent.state == AgentState.IDLE:
            idle += 1
        elif agent.state == AgentState.WALKING:
            walking += 1
        else:
            panic += 1
        speed_sum += agent.velocity.length()
    population = len(agents)
    return TickMetrics(
        tick=tick,
        population=population,
        idle=idle,
        walking=walking,
        panic=panic,
        evacuated=idle if evacuation else 0,
        neighbor_checks=stats.neighbor_checks,
        probe_hits=stats.probe_hits,
        push_outs=stats.push_outs,
        arrivals=stats.arrivals,
        average_speed=0.0 if population == 0 else speed_sum / population,
        evacuation=evacuation,
        tick_duration_ms=duration_ms,
    )
