from __future__ import annotations

import argparse
import csv
import json
import logging
import math
from dataclasses import replace
from pathlib import Path
from typing import Optional

from ..sim.core.config import SimulationConfig
from ..sim.core.world import World
from ..sim.types.metrics import TickMetrics

logger = logging.getLogger(__name__)

_LOG_FORMATS = ("basic", "detailed")

_BASIC_HEADER = [
    "tick",
    "population",
    "idle",
    "walking",
    "panic",
    "arrivals",
    "neighbor_checks",
    "tick_ms",
]

# Detailed rows extend the basic row with crowd and wall-contact columns.
_DETAILED_HEADER = _BASIC_HEADER + [
    "evacuation",
    "evacuated",
    "probe_hits",
    "push_outs",
    "avg_speed",
    "max_speed",
    "neighbor_checks_per_agent",
    "tick_ms_per_agent",
    "occupied_cells",
    "avg_agents_per_cell",
    "max_cell_occupancy",
    "population_density",
]


def _basic_row(metrics: TickMetrics, tick_ms: float) -> list[object]:
    return [
        metrics.tick,
        metrics.population,
        metrics.idle,
        metrics.walking,
        metrics.panic,
        metrics.arrivals,
        metrics.neighbor_checks,
        f"{tick_ms:.3f}",
    ]


def _crowd_occupancy(world: World) -> tuple[float, dict[tuple[int, int], int]]:
    """Fastest ground speed and per-cell head counts on the perception grid."""
    cell_size = world.config.perception.cell_size
    fastest = 0.0
    occupancy: dict[tuple[int, int], int] = {}
    for agent in world.agents:
        fastest = max(fastest, math.hypot(agent.velocity.x, agent.velocity.z))
        key = (int(agent.position.x // cell_size), int(agent.position.z // cell_size))
        occupancy[key] = occupancy.get(key, 0) + 1
    return fastest, occupancy


def _detailed_row(world: World, metrics: TickMetrics, tick_ms: float) -> list[object]:
    population = metrics.population
    fastest, occupancy = _crowd_occupancy(world)
    venue_side = world.config.integrator.bounds * 2.0

    def per_agent(value: float) -> float:
        return value / population if population > 0 else 0.0

    return _basic_row(metrics, tick_ms) + [
        int(metrics.evacuation),
        metrics.evacuated,
        metrics.probe_hits,
        metrics.push_outs,
        f"{metrics.average_speed:.4f}",
        f"{fastest:.4f}",
        f"{per_agent(metrics.neighbor_checks):.4f}",
        f"{per_agent(tick_ms):.4f}",
        len(occupancy),
        f"{(population / len(occupancy) if occupancy else 0.0):.4f}",
        max(occupancy.values(), default=0),
        f"{population / (venue_side * venue_side):.6f}",
    ]


def _percentile(ordered: list[float], fraction: float) -> float:
    """Linear interpolation between closest ranks of an already sorted list."""
    if not ordered:
        return 0.0
    rank = (len(ordered) - 1) * fraction
    lower = math.floor(rank)
    upper = min(lower + 1, len(ordered) - 1)
    return float(ordered[lower] + (ordered[upper] - ordered[lower]) * (rank - lower))


def _describe(values: list[float]) -> dict[str, float]:
    ordered = sorted(values)
    stats = {
        "min": float(ordered[0]) if ordered else 0.0,
        "max": float(ordered[-1]) if ordered else 0.0,
        "avg": float(sum(ordered) / len(ordered)) if ordered else 0.0,
    }
    for label, fraction in (("p50", 0.50), ("p90", 0.90), ("p95", 0.95), ("p99", 0.99)):
        stats[label] = _percentile(ordered, fraction)
    return stats


def _pearson(xs: list[float], ys: list[float]) -> float:
    if len(xs) < 2 or len(xs) != len(ys):
        return 0.0
    mean_x = math.fsum(xs) / len(xs)
    mean_y = math.fsum(ys) / len(ys)
    cov = math.fsum((x - mean_x) * (y - mean_y) for x, y in zip(xs, ys))
    spread = math.sqrt(math.fsum((x - mean_x) ** 2 for x in xs) * math.fsum((y - mean_y) ** 2 for y in ys))
    return float(cov / spread) if spread > 0.0 else 0.0


class _RunSummary:
    """Per-tick series collected for the JSON run summary."""

    def __init__(self, window: int) -> None:
        self.window = max(1, int(window))
        self.tick_ms: list[float] = []
        self.neighbor_checks: list[float] = []
        self.checks_per_agent: list[float] = []
        self.average_speed: list[float] = []
        self.panic: list[float] = []
        self.push_outs: list[float] = []

    def record(self, metrics: TickMetrics, tick_ms: float) -> None:
        self.tick_ms.append(tick_ms)
        self.neighbor_checks.append(float(metrics.neighbor_checks))
        self.checks_per_agent.append(
            metrics.neighbor_checks / metrics.population if metrics.population > 0 else 0.0
        )
        self.average_speed.append(metrics.average_speed)
        self.panic.append(float(metrics.panic))
        self.push_outs.append(float(metrics.push_outs))

    @staticmethod
    def _peak(series: list[float]) -> dict[str, float | int]:
        if not series:
            return {"value": -1.0, "tick": -1}
        tick = max(range(len(series)), key=series.__getitem__)
        return {"value": series[tick], "tick": tick}

    def as_dict(self) -> dict[str, object]:
        tail = slice(-self.window, None)
        return {
            "tick_ms": _describe(self.tick_ms),
            "neighbor_checks": _describe(self.neighbor_checks),
            "neighbor_checks_per_agent": _describe(self.checks_per_agent),
            "average_speed": _describe(self.average_speed),
            "panic": _describe(self.panic),
            "push_outs": _describe(self.push_outs),
            "correlations": {
                "tick_ms_vs_neighbor_checks": _pearson(self.tick_ms, self.neighbor_checks),
                "tick_ms_vs_push_outs": _pearson(self.tick_ms, self.push_outs),
            },
            "over_threshold": {
                "tick_ms_gt_16": sum(1 for value in self.tick_ms if value > 16.0),
                "tick_ms_gt_33": sum(1 for value in self.tick_ms if value > 33.0),
            },
            "peaks": {
                "tick_ms": self._peak(self.tick_ms),
                "neighbor_checks": self._peak(self.neighbor_checks),
            },
            "tail_window": {
                "window": self.window,
                "tick_ms": _describe(self.tick_ms[tail]),
                "neighbor_checks": _describe(self.neighbor_checks[tail]),
                "average_speed": _describe(self.average_speed[tail]),
            },
        }


def run_headless(
    steps: int,
    seed: Optional[int],
    log_path: Optional[Path],
    deterministic_log: bool = False,
    log_format: str = "detailed",
    summary_path: Optional[Path] = None,
    summary_window: int = 5000,
    config: Optional[SimulationConfig] = None,
    layout_id: Optional[str] = None,
    population: Optional[int] = None,
    evacuate_at: Optional[int] = None,
) -> World:
    """
    Run the venue simulation without a renderer for ``steps`` ticks.

    Writes an optional CSV metrics log and JSON summary. ``evacuate_at`` switches
    evacuation on before that tick is stepped. Returns the final world.
    """

    log_mode = log_format.lower().strip()
    if log_mode not in _LOG_FORMATS:
        raise ValueError(f"Unknown log format: {log_format}")

    overrides = {
        name: value
        for name, value in (("seed", seed), ("layout_id", layout_id), ("initial_population", population))
        if value is not None
    }
    config = replace(config if config is not None else SimulationConfig(), **overrides)
    world = World(config)
    logger.info(
        "Running %d steps on layout %s with %d visitors (seed=%d)",
        steps,
        world.layout.id,
        len(world.agents),
        config.seed,
    )

    summary = _RunSummary(summary_window) if summary_path else None
    evacuated_at: Optional[int] = None
    csv_file = Path(log_path).open("w", newline="") if log_path else None
    writer = csv.writer(csv_file) if csv_file else None
    try:
        if writer:
            writer.writerow(_DETAILED_HEADER if log_mode == "detailed" else _BASIC_HEADER)
        for tick in range(steps):
            if tick == evacuate_at:
                world.set_evacuation(True)
            metrics = world.step()
            tick_ms = 0.0 if deterministic_log else metrics.tick_duration_ms

            if evacuated_at is None and metrics.evacuation and 0 < metrics.population == metrics.evacuated:
                evacuated_at = tick
            if summary is not None:
                summary.record(metrics, tick_ms)
            if writer:
                row = _detailed_row(world, metrics, tick_ms) if log_mode == "detailed" else _basic_row(metrics, tick_ms)
                writer.writerow(row)
    finally:
        if csv_file:
            csv_file.close()

    if evacuate_at is not None:
        if evacuated_at is None:
            logger.info("Evacuation started at tick %d did not complete", evacuate_at)
        else:
            logger.info("Evacuation started at tick %d completed at tick %d", evacuate_at, evacuated_at)

    if summary is not None and summary_path:
        payload: dict[str, object] = {
            "steps": steps,
            "seed": config.seed,
            "layout": world.layout.id,
            "population": len(world.agents),
            "log_format": log_mode,
            "deterministic_log": deterministic_log,
            "evacuation": {"started_at": evacuate_at, "completed_at": evacuated_at},
        }
        payload.update(summary.as_dict())
        Path(summary_path).write_text(json.dumps(payload, indent=2))

    return world


def main() -> None:
    parser = argparse.ArgumentParser(description="Headless venue crowd simulation")
    parser.add_argument("--steps", type=int, default=3000)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--config", type=Path, default=None, help="YAML simulation config")
    parser.add_argument("--layout", default=None, help="Venue layout id (EMPTY, GALLERY, OFFICE, AUDITORIUM)")
    parser.add_argument("--population", type=int, default=None, help="Number of visitors to spawn")
    parser.add_argument("--evacuate-at", type=int, default=None, help="Tick that switches evacuation on")
    parser.add_argument("--log", type=Path, default=None, help="CSV file for per-tick metrics")
    parser.add_argument("--log-format", choices=_LOG_FORMATS, default="detailed")
    parser.add_argument("--summary", type=Path, default=None, help="JSON file for run statistics")
    parser.add_argument("--summary-window", type=int, default=5000, help="Tail window (ticks) in the summary")
    parser.add_argument(
        "--deterministic-log",
        action="store_true",
        help="Force tick_ms to 0.000 so runs with the same seed produce identical CSV files.",
    )
    parser.add_argument("--log-level", default="INFO", help="Python logging level")
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = SimulationConfig.from_yaml(args.config) if args.config else None
    run_headless(
        args.steps,
        args.seed,
        args.log,
        deterministic_log=args.deterministic_log,
        log_format=args.log_format,
        summary_path=args.summary,
        summary_window=args.summary_window,
        config=config,
        layout_id=args.layout,
        population=args.population,
        evacuate_at=args.evacuate_at,
    )


if __name__ == "__main__":
    main()
