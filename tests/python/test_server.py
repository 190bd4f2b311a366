import sys

import pytest
from fastapi.testclient import TestClient

from crowdflow.app.server import app, controller, main

client = TestClient(app)


def test_status_reports_world_state():
    response = client.get("/api/status")

    assert response.status_code == 200
    body = response.json()
    assert body["population"] == len(controller.world.agents)
    assert body["layout"] == controller.world.layout.id
    assert "metrics" in body


def test_layouts_are_listed():
    response = client.get("/api/layouts")

    assert response.status_code == 200
    assert {item["id"] for item in response.json()} == {"EMPTY", "GALLERY", "OFFICE", "AUDITORIUM"}


def test_spawn_and_clear_agents():
    client.post("/api/agents/clear")

    response = client.post("/api/agents/spawn", json={"count": 7})
    assert response.json() == {"spawned": 7, "population": 7}

    assert client.post("/api/agents/spawn", json={"count": 5000}).status_code == 400
    assert client.post("/api/agents/spawn", json={"count": "many"}).status_code == 400
    assert client.post("/api/agents/spawn", json={"count": None}).status_code == 400
    assert client.post("/api/agents/clear").json() == {"population": 0}
    assert controller.world.agents == []


def test_evacuation_toggle_and_explicit_flag():
    client.post("/api/control/evacuation", json={"enabled": False})

    assert client.post("/api/control/evacuation", json={}).json() == {"evacuation": True}
    assert client.post("/api/control/evacuation", json={"enabled": False}).json() == {"evacuation": False}


def test_speed_is_clamped():
    assert client.post("/api/control/speed", json={"multiplier": 50}).json() == {"multiplier": 5.0}
    assert client.post("/api/control/speed", json={"multiplier": 0.5}).json() == {"multiplier": 0.5}
    client.post("/api/control/speed", json={"multiplier": 1.0})


def test_layout_switch_and_exit_toggle():
    client.post("/api/agents/spawn", json={"count": 4})

    response = client.post("/api/venue/layout", json={"id": "OFFICE"})
    assert response.json() == {"layout": "OFFICE", "active_exits": [0, 1, 2, 3], "population": 0}
    assert controller.world.agents == []

    assert client.post("/api/venue/exits/2/toggle").json() == {"active_exits": [0, 1, 3]}
    assert client.post("/api/venue/exits/9/toggle").status_code == 400
    assert client.post("/api/venue/layout", json={"id": "ARENA"}).status_code == 404

    client.post("/api/venue/layout", json={"id": "EMPTY"})


def test_main_serves_app_with_uvicorn(monkeypatch):
    uvicorn = pytest.importorskip("uvicorn")
    calls = []
    monkeypatch.setattr(uvicorn, "run", lambda target, **kwargs: calls.append((target, kwargs)))
    monkeypatch.setattr(sys, "argv", ["crowdflow-server", "--port", "9123", "--log-level", "warning"])

    main()

    assert calls == [(app, {"host": "127.0.0.1", "port": 9123, "log_level": "warning"})]
