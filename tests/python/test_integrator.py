from __future__ import annotations

from pygame.math import Vector3
from pytest import approx

from crowdflow.sim.core.agent import Agent, AgentState
from crowdflow.sim.core.collision import WallProbe
from crowdflow.sim.core.config import PerceptionConfig, SimulationConfig
from crowdflow.sim.core.layout import LAYOUTS, WallBox, default_exits
from crowdflow.sim.core.rng import DeterministicRng
from crowdflow.sim.systems.integrator import advance, assign_idle_goals
from crowdflow.sim.types.metrics import TickStats

DT = 1.0 / 60.0


def _population(count: int, seed: int = 11, extent: float = 20.0) -> list[Agent]:
    rng = DeterministicRng(seed)
    return [
        Agent(
            id=idx,
            position=rng.next_ground_point(-extent, extent, -extent, extent),
            speed=1.5 + rng.next_float(),
        )
        for idx in range(count)
    ]


def _positions(agents: list[Agent]) -> list[tuple[float, float, float]]:
    return [(a.position.x, a.position.y, a.position.z) for a in agents]


def test_agents_stay_in_bounds_on_ground_and_under_speed_cap():
    config = SimulationConfig()
    rng = DeterministicRng(5)
    probe = WallProbe.from_layout(LAYOUTS["OFFICE"])
    exits = LAYOUTS["OFFICE"].exit_points()
    population = _population(40, extent=45.0)

    for tick in range(240):
        evacuating = tick >= 120
        population = advance(population, DT, probe, evacuating, exits, config, rng)
        for agent in population:
            assert -50.0 <= agent.position.x <= 50.0
            assert -50.0 <= agent.position.z <= 50.0
            assert agent.position.y == 0.0
            cap = 5.0 if evacuating else max(agent.speed, 2.4)
            assert agent.velocity.length() <= cap + 1e-6


def test_output_preserves_length_order_and_ids():
    population = _population(25)

    result = advance(population, DT, None, False, [], SimulationConfig(), DeterministicRng(1))

    assert [a.id for a in result] == [a.id for a in population]
    assert result is not population


def test_inputs_are_not_mutated():
    population = _population(10)
    before = [(tuple(a.position), tuple(a.velocity), a.state, a.goal) for a in population]

    advance(population, DT, None, False, [], SimulationConfig(), DeterministicRng(1))

    assert [(tuple(a.position), tuple(a.velocity), a.state, a.goal) for a in population] == before


def test_zero_delta_keeps_positions():
    population = _population(20, extent=3.0)

    result = advance(population, 0.0, None, False, [], SimulationConfig(), reassign_idle=False)

    assert _positions(result) == _positions(population)
    assert all(a.state == AgentState.IDLE and a.goal is None for a in result)


def test_negative_delta_is_treated_as_zero():
    population = _population(5)

    result = advance(population, -1.0, None, False, [], SimulationConfig(), reassign_idle=False)

    assert _positions(result) == _positions(population)


def test_large_delta_is_integrated_as_given():
    agent = Agent(id=0, position=Vector3(), velocity=Vector3(1.0, 0.0, 0.0), state=AgentState.WALKING,
                  goal=Vector3(40.0, 0.0, 0.0), speed=1.0)

    result = advance([agent], 0.5, None, False, [], SimulationConfig(), reassign_idle=False)

    assert result[0].position.x == approx(0.5)
    assert result[0].position.z == approx(0.0)


def test_idle_goal_assignment_is_seeded():
    population = _population(8)

    first = advance(population, DT, None, False, [], SimulationConfig(), DeterministicRng(99))
    second = advance(population, DT, None, False, [], SimulationConfig(), DeterministicRng(99))

    assert [tuple(a.goal) for a in first] == [tuple(a.goal) for a in second]
    for agent in first:
        assert agent.state == AgentState.WALKING
        assert -40.0 <= agent.goal.x <= 40.0
        assert -40.0 <= agent.goal.z <= 40.0
        assert agent.goal.y == 0.0


def test_assign_idle_goals_skips_busy_agents():
    busy = Agent(id=1, position=Vector3(), state=AgentState.WALKING, goal=Vector3(1.0, 0.0, 1.0))
    idle = Agent(id=2, position=Vector3(5.0, 0.0, 5.0))

    assigned = assign_idle_goals([busy, idle], DeterministicRng(3), 40.0)

    assert assigned[0] is busy
    assert assigned[1].state == AgentState.WALKING
    assert assigned[1].goal is not None


def test_no_idle_reassignment_during_evacuation():
    population = _population(15)

    result = advance(population, DT, None, True, default_exits(), SimulationConfig(), DeterministicRng(2))

    assert all(a.state == AgentState.PANIC for a in result)
    assert not any(a.state == AgentState.WALKING for a in result)


def test_empty_exit_list_behaves_like_default_exits():
    population = _population(12)
    config = SimulationConfig()

    fallback = population
    explicit = population
    for _ in range(30):
        fallback = advance(fallback, DT, None, True, [], config)
        explicit = advance(explicit, DT, None, True, default_exits(), config)

    assert _positions(fallback) == _positions(explicit)
    assert [tuple(a.goal) for a in fallback] == [tuple(a.goal) for a in explicit]


def test_evacuating_agent_converges_on_exit_and_stays():
    exit_point = Vector3(45.0, 0.0, 45.0)
    population = [Agent(id=0, position=Vector3())]
    config = SimulationConfig()

    distance = population[0].position.distance_to(exit_point)
    arrived_at = None
    for tick in range(2000):
        population = advance(population, DT, None, True, [exit_point], config)
        current = population[0].position.distance_to(exit_point)
        assert current <= distance + 1e-9
        distance = current
        if population[0].state == AgentState.IDLE:
            arrived_at = tick
            break

    assert arrived_at is not None
    assert distance < 2.0

    for _ in range(30):
        population = advance(population, DT, None, True, [exit_point], config)
        assert population[0].state == AgentState.IDLE
        assert population[0].position.distance_to(exit_point) < 2.0


def test_walking_agent_never_enters_wall():
    wall = WallBox((0.0, 2.5, 5.0), (20.0, 5.0, 2.0))
    probe = WallProbe([wall])
    population = [
        Agent(id=0, position=Vector3(0.0, 0.0, 0.0), state=AgentState.WALKING, goal=Vector3(0.0, 0.0, 15.0)),
        Agent(id=1, position=Vector3(3.0, 0.0, -2.0), state=AgentState.WALKING, goal=Vector3(4.0, 0.0, 20.0)),
    ]
    config = SimulationConfig()

    for _ in range(600):
        population = advance(population, DT, probe, False, [], config, reassign_idle=False)
        for agent in population:
            inside = -10.0 < agent.position.x < 10.0 and 4.0 < agent.position.z < 6.0
            assert not inside


def test_spatial_grid_matches_brute_force():
    crowd = _population(60, extent=6.0)
    grid_config = SimulationConfig()
    brute_config = SimulationConfig(perception=PerceptionConfig(use_spatial_grid=False))

    with_grid = crowd
    without_grid = crowd
    for tick in range(20):
        with_grid = advance(with_grid, DT, None, tick > 10, [], grid_config, DeterministicRng(tick))
        without_grid = advance(without_grid, DT, None, tick > 10, [], brute_config, DeterministicRng(tick))

    assert _positions(with_grid) == _positions(without_grid)


def test_stats_accumulate_across_sub_steps():
    stats = TickStats()
    crowd = [
        Agent(id=0, position=Vector3(0.0, 0.0, 0.0)),
        Agent(id=1, position=Vector3(0.0, 0.0, 2.0)),
    ]

    advance(crowd, DT, None, False, [], SimulationConfig(), stats=stats, reassign_idle=False)

    # Only agent 0 faces agent 1; five sub-steps.
    assert stats.neighbor_checks == 5
    assert stats.probe_hits == 0
