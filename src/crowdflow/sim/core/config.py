from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml


@dataclass
class SteeringConfig:
    max_speed: float = 2.0
    max_force: float = 0.1
    separation_distance: float = 1.0
    separation_force_scale: float = 1.5
    evacuation_separation_force_scale: float = 0.8
    evacuation_speed_multiplier: float = 2.5
    crowd_threshold: int = 4
    crowd_boost_multiplier: float = 1.5
    crowd_slowdown: float = 0.8
    arrival_threshold: float = 0.5
    evacuation_arrival_threshold: float = 2.0

    @property
    def evacuation_speed(self) -> float:
        return self.max_speed * self.evacuation_speed_multiplier


@dataclass
class PerceptionConfig:
    view_distance: float = 10.0
    view_angle: float = 120.0
    # Candidates are pre-filtered through a uniform grid; visibility is unchanged.
    use_spatial_grid: bool = True
    cell_size: float = 10.0


@dataclass
class CollisionConfig:
    look_ahead: float = 2.5
    evacuation_look_ahead: float = 2.0
    push_out_distance: float = 0.8
    push_out_stiffness: float = 10.0
    stuck_speed_sq: float = 0.01


@dataclass
class IntegratorConfig:
    sub_steps: int = 5
    bounds: float = 50.0
    goal_range: float = 40.0
    max_frame_delta: float = 0.1


@dataclass
class SpawnConfig:
    spawn_range: float = 20.0
    base_speed_min: float = 1.5
    base_speed_jitter: float = 1.0
    use_layout_spawn: bool = False


@dataclass
class SimulationConfig:
    time_step: float = 1.0 / 60.0
    time_scale: float = 1.0
    initial_population: int = 50
    layout_id: str = "EMPTY"
    seed: int = 42
    config_version: str = "v1"
    steering: SteeringConfig = field(default_factory=SteeringConfig)
    perception: PerceptionConfig = field(default_factory=PerceptionConfig)
    collision: CollisionConfig = field(default_factory=CollisionConfig)
    integrator: IntegratorConfig = field(default_factory=IntegratorConfig)
    spawn: SpawnConfig = field(default_factory=SpawnConfig)

    def __post_init__(self) -> None:
        if self.integrator.sub_steps < 1:
            raise ValueError(f"sub_steps must be at least 1, got {self.integrator.sub_steps}")
        if self.perception.view_distance < 0.0:
            raise ValueError(f"view_distance must be non-negative, got {self.perception.view_distance}")
        if self.perception.cell_size <= 0.0:
            raise ValueError(f"cell_size must be positive, got {self.perception.cell_size}")
        if self.integrator.bounds <= 0.0:
            raise ValueError(f"bounds must be positive, got {self.integrator.bounds}")

    @staticmethod
    def from_yaml(path: Path) -> "SimulationConfig":
        data = yaml.safe_load(Path(path).read_text()) or {}
        return load_config(data)


@dataclass
class AppConfig:
    simulation: SimulationConfig = field(default_factory=SimulationConfig)
    broadcast_interval: int = 2
    max_queued_snapshots: int = 256


def load_config(raw: dict) -> SimulationConfig:
    steering = SteeringConfig(**raw.get("steering", {}))
    perception = PerceptionConfig(**raw.get("perception", {}))
    collision = CollisionConfig(**raw.get("collision", {}))
    integrator = IntegratorConfig(**raw.get("integrator", {}))
    spawn = SpawnConfig(**raw.get("spawn", {}))
    sim_values = {
        k: v
        for k, v in raw.items()
        if k not in {"steering", "perception", "collision", "integrator", "spawn"}
    }
    return SimulationConfig(
        steering=steering,
        perception=perception,
        collision=collision,
        integrator=integrator,
        spawn=spawn,
        **sim_values,
    )
