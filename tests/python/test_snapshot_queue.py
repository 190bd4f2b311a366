import asyncio
import json

from crowdflow.app.server import SimulationController
from crowdflow.sim.core.config import SimulationConfig


def test_snapshot_queue_ack_cleanup() -> None:
    controller = SimulationController(SimulationConfig(initial_population=5))

    async def exercise() -> None:
        await controller.step_once()
        await controller.step_once()
        async with controller._queue_lock:
            queued_ticks = [item.tick for item in controller._snapshot_queue]
        assert queued_ticks == [1, 2]
        await controller.acknowledge(1)
        async with controller._queue_lock:
            remaining_ticks = [item.tick for item in controller._snapshot_queue]
        assert remaining_ticks == [2]

    asyncio.run(exercise())


def test_broadcast_interval_skips_ticks() -> None:
    controller = SimulationController(SimulationConfig(initial_population=3), broadcast_interval=2)

    async def exercise() -> list[int]:
        for _ in range(4):
            await controller.step_once()
        return [item.tick for item in controller._snapshot_queue]

    assert asyncio.run(exercise()) == [2, 4]


def test_serialized_snapshot_payload() -> None:
    controller = SimulationController(SimulationConfig(initial_population=4, layout_id="GALLERY", seed=8))

    queued = controller._serialize_snapshot()
    message = json.loads(queued.payload)

    assert message["type"] == "snapshot"
    assert message["tick"] == queued.tick == 0
    payload = message["payload"]
    assert len(payload["agents"]) == 4
    for key in ["id", "x", "y", "z", "vx", "vz", "goal", "state", "kind", "speed"]:
        assert key in payload["agents"][0]
    assert payload["venue"]["layout_id"] == "GALLERY"
    assert len(payload["venue"]["walls"]) == 5
    assert payload["venue"]["active_exits"] == [0, 1]
    assert payload["metadata"]["seed"] == 8
    assert payload["metrics"]["population"] == 4


def test_reset_clears_queue_and_rewinds_tick() -> None:
    controller = SimulationController(SimulationConfig(initial_population=2))

    async def exercise() -> list[int]:
        await controller.step_once()
        await controller.step_once()
        await controller.reset()
        return [item.tick for item in controller._snapshot_queue]

    assert asyncio.run(exercise()) == [0]
    assert controller.tick == 0


def test_queue_is_bounded_without_acks() -> None:
    controller = SimulationController(SimulationConfig(initial_population=1), max_queued=3)

    async def exercise() -> list[int]:
        for _ in range(6):
            await controller.step_once()
        return [item.tick for item in controller._snapshot_queue]

    assert asyncio.run(exercise()) == [4, 5, 6]


def test_client_messages_drive_controls() -> None:
    controller = SimulationController(SimulationConfig(initial_population=1, layout_id="OFFICE"))

    async def exercise() -> None:
        await controller.handle_message({"type": "evacuation"})
        assert controller.world.evacuation
        await controller.handle_message({"type": "evacuation", "enabled": False})
        assert not controller.world.evacuation
        await controller.handle_message({"type": "toggle_exit", "index": 1})
        assert controller.world.active_exit_indices == [0, 2, 3]
        await controller.handle_message({"type": "toggle_exit", "index": 12})
        await controller.handle_message({"type": "toggle_exit"})
        assert controller.world.active_exit_indices == [0, 2, 3]
        await controller.handle_message({"type": "unknown"})

    asyncio.run(exercise())
