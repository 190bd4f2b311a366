from __future__ import annotations

import argparse
import asyncio
import json
import logging
from collections import deque
from dataclasses import asdict, dataclass
from typing import Any, Dict, Set

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from ..sim.core.config import AppConfig, SimulationConfig
from ..sim.core.layout import LAYOUTS
from ..sim.core.world import World

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueuedSnapshot:
    tick: int
    payload: str


class SimulationController:
    """
    Frame clock around a :class:`World`.

    Ticks run under one lock so control requests never interleave with a
    step. Snapshots are queued until clients acknowledge them; the queue is
    bounded so a silent client cannot grow it without limit.
    """

    def __init__(self, config: SimulationConfig, broadcast_interval: int = 1, max_queued: int = 256):
        self.config = config
        self.world = World(config)
        self.broadcast_interval = max(1, broadcast_interval)
        self.running = False
        self.speed_multiplier = 1.0
        self.clients: Set[WebSocket] = set()
        self._client_last_sent: Dict[WebSocket, int] = {}
        self._snapshot_queue: deque[QueuedSnapshot] = deque(maxlen=max(1, max_queued))
        self._lock = asyncio.Lock()
        self._queue_lock = asyncio.Lock()
        self._clock_task: asyncio.Task | None = None

    @classmethod
    def from_app_config(cls, app_config: AppConfig) -> "SimulationController":
        return cls(
            app_config.simulation,
            broadcast_interval=app_config.broadcast_interval,
            max_queued=app_config.max_queued_snapshots,
        )

    @property
    def tick(self) -> int:
        return self.world.tick

    async def start(self) -> None:
        if self._clock_task is None:
            self._clock_task = asyncio.create_task(self._run_clock())
        self.running = True

    async def stop(self) -> None:
        self.running = False

    async def reset(self) -> None:
        async with self._lock:
            self.world.reset()
        async with self._queue_lock:
            self._snapshot_queue.clear()
        self._client_last_sent = {client: -1 for client in self._client_last_sent}
        await self._broadcast_snapshot()

    async def step_once(self) -> None:
        """Advance one frame at the current speed multiplier and broadcast on schedule."""
        async with self._lock:
            self.world.time_scale = self.speed_multiplier
            self.world.step(self.config.time_step)
        if self.tick % self.broadcast_interval == 0:
            await self._broadcast_snapshot()

    async def _run_clock(self) -> None:
        while True:
            await asyncio.sleep(self.config.time_step)
            if self.running:
                await self.step_once()

    async def acknowledge(self, tick: int) -> None:
        async with self._queue_lock:
            while self._snapshot_queue and self._snapshot_queue[0].tick <= tick:
                self._snapshot_queue.popleft()

    async def set_evacuation(self, enabled: bool | None = None) -> bool:
        """Switch evacuation on or off; ``None`` toggles it."""
        async with self._lock:
            if enabled is None:
                return self.world.toggle_evacuation()
            self.world.set_evacuation(enabled)
            return self.world.evacuation

    async def toggle_exit(self, index: int) -> list[int]:
        async with self._lock:
            return self.world.toggle_exit(index)

    async def handle_message(self, message: Dict[str, Any]) -> None:
        kind = message.get("type")
        if kind == "ack":
            tick = message.get("tick")
            if isinstance(tick, int):
                await self.acknowledge(tick)
        elif kind == "evacuation":
            enabled = message.get("enabled")
            await self.set_evacuation(None if enabled is None else bool(enabled))
        elif kind == "toggle_exit":
            index = message.get("index")
            try:
                await self.toggle_exit(int(index))
            except (TypeError, ValueError, IndexError):
                logger.warning("Ignoring exit toggle with index %r", index)
        else:
            logger.debug("Ignoring client message of type %r", kind)

    def _serialize_snapshot(self) -> QueuedSnapshot:
        snapshot = self.world.snapshot()
        message = {
            "type": "snapshot",
            "tick": snapshot.tick,
            "payload": {
                "tick": snapshot.tick,
                "metrics": asdict(snapshot.metrics),
                "agents": snapshot.agents,
                "venue": asdict(snapshot.venue),
                "metadata": asdict(snapshot.metadata),
            },
        }
        return QueuedSnapshot(tick=snapshot.tick, payload=json.dumps(message))

    async def _send_pending_snapshots(self, client: WebSocket) -> None:
        last_sent = self._client_last_sent.get(client, -1)
        async with self._queue_lock:
            pending = [item for item in self._snapshot_queue if item.tick > last_sent]
        for item in pending:
            await client.send_text(item.payload)
            self._client_last_sent[client] = item.tick

    async def _broadcast_snapshot(self) -> None:
        queued = self._serialize_snapshot()
        async with self._queue_lock:
            self._snapshot_queue.append(queued)
        disconnected: Set[WebSocket] = set()
        for client in list(self.clients):
            try:
                await self._send_pending_snapshots(client)
            except WebSocketDisconnect:
                disconnected.add(client)
        for client in disconnected:
            self.disconnect(client)

    def connect(self, client: WebSocket) -> None:
        self.clients.add(client)
        self._client_last_sent[client] = -1

    def disconnect(self, client: WebSocket) -> None:
        if client in self.clients:
            logger.info("Client disconnected at tick %d", self.tick)
        self.clients.discard(client)
        self._client_last_sent.pop(client, None)


app = FastAPI(title="Crowdflow Venue Simulation")
controller = SimulationController.from_app_config(AppConfig())


@app.on_event("startup")
async def _startup() -> None:
    await controller.start()


@app.get("/api/status")
async def status() -> JSONResponse:
    snapshot = controller.world.snapshot()
    return JSONResponse(
        {
            "running": controller.running,
            "tick": controller.tick,
            "population": len(controller.world.agents),
            "evacuation": controller.world.evacuation,
            "layout": controller.world.layout.id,
            "active_exits": controller.world.active_exit_indices,
            "metrics": asdict(snapshot.metrics),
        }
    )


@app.get("/api/layouts")
async def layouts() -> JSONResponse:
    return JSONResponse(
        [
            {"id": layout.id, "name": layout.name, "description": layout.description, "exits": len(layout.exits)}
            for layout in LAYOUTS.values()
        ]
    )


@app.post("/api/control/start")
async def start_simulation() -> JSONResponse:
    controller.running = True
    return JSONResponse({"running": True})


@app.post("/api/control/stop")
async def stop_simulation() -> JSONResponse:
    controller.running = False
    return JSONResponse({"running": False})


@app.post("/api/control/reset")
async def reset_simulation() -> JSONResponse:
    await controller.reset()
    return JSONResponse({"running": controller.running, "tick": controller.tick})


@app.post("/api/control/speed")
async def set_speed(payload: dict) -> JSONResponse:
    speed = float(payload.get("multiplier", 1.0))
    controller.speed_multiplier = max(0.1, min(5.0, speed))
    return JSONResponse({"multiplier": controller.speed_multiplier})


@app.post("/api/agents/spawn")
async def spawn_agents(payload: dict) -> JSONResponse:
    try:
        count = int(payload.get("count", 1))
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=400, detail="count must be an integer") from exc
    if count < 0 or count > 1000:
        raise HTTPException(status_code=400, detail="count must be between 0 and 1000")
    async with controller._lock:
        spawned = controller.world.spawn(count)
    return JSONResponse({"spawned": len(spawned), "population": len(controller.world.agents)})


@app.post("/api/agents/clear")
async def clear_agents() -> JSONResponse:
    async with controller._lock:
        controller.world.clear()
    return JSONResponse({"population": 0})


@app.post("/api/control/evacuation")
async def set_evacuation(payload: dict) -> JSONResponse:
    enabled = payload.get("enabled")
    evacuation = await controller.set_evacuation(None if enabled is None else bool(enabled))
    return JSONResponse({"evacuation": evacuation})


@app.post("/api/venue/layout")
async def set_layout(payload: dict) -> JSONResponse:
    layout_id = str(payload.get("id", ""))
    if layout_id not in LAYOUTS:
        raise HTTPException(status_code=404, detail=f"Unknown layout {layout_id!r}")
    async with controller._lock:
        layout = controller.world.set_layout(layout_id)
    return JSONResponse(
        {
            "layout": layout.id,
            "active_exits": controller.world.active_exit_indices,
            "population": len(controller.world.agents),
        }
    )


@app.post("/api/venue/exits/{index}/toggle")
async def toggle_exit(index: int) -> JSONResponse:
    try:
        active = await controller.toggle_exit(index)
    except IndexError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return JSONResponse({"active_exits": active})


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    await websocket.accept()
    controller.connect(websocket)
    await controller._send_pending_snapshots(websocket)
    try:
        while True:
            text = await websocket.receive_text()
            try:
                message = json.loads(text)
            except json.JSONDecodeError:
                logger.debug("Ignoring non-JSON client message")
                continue
            if isinstance(message, dict):
                await controller.handle_message(message)
    except WebSocketDisconnect:
        controller.disconnect(websocket)


def main() -> None:
    import uvicorn

    parser = argparse.ArgumentParser(description="Venue crowd simulation server")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--log-level", default="INFO", help="Python logging level")
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level.lower())


__all__ = ["app", "controller", "main"]


if __name__ == "__main__":
    main()
