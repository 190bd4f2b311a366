from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List

from .metrics import TickMetrics


@dataclass(slots=True)
class Snapshot:
    tick: int
    metrics: TickMetrics
    agents: List[Dict[str, Any]]
    venue: "SnapshotVenue"
    metadata: "SnapshotMetadata"


@dataclass(slots=True)
class SnapshotVenue:
    layout_id: str
    bounds: float
    walls: List[Dict[str, Any]]
    exits: List[List[float]]
    active_exits: List[int]


@dataclass(slots=True)
class SnapshotMetadata:
    sim_dt: float
    time_scale: float
    evacuation: bool
    seed: int
    config_version: str
