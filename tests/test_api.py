import pytest
from fastapi.testclient import TestClient

from conftest import FakeNotifier
from powerhub.gateway import PowerGateway
from powerhub.main import create_app


@pytest.fixture
def gateway(settings):
    return PowerGateway(settings, notifier=FakeNotifier())


@pytest.fixture
def client(settings, gateway):
    with TestClient(create_app(settings, gateway=gateway)) as c:
        yield c


def test_register_and_list(client):
    resp = client.post("/api/nodes", json={"nodeId": "n1", "name": "Kitchen"})
    assert resp.status_code == 201
    assert resp.json() == {"message": "Node added successfully", "nodeId": "n1"}

    resp = client.post("/api/nodes", json={"nodeId": "n1", "name": "Again"})
    assert resp.status_code == 409

    nodes = client.get("/api/nodes").json()
    assert nodes["n1"]["name"] == "Kitchen"
    assert nodes["n1"]["autoCutoff"] is False


def test_register_requires_node_id(client):
    assert client.post("/api/nodes", json={"name": "x"}).status_code == 400
    assert client.post("/api/nodes", json={"nodeId": 5}).status_code == 400


def test_settings_and_rename(client):
    assert client.post("/api/nodes/ghost/settings", json={"threshold": 10}).status_code == 404
    client.post("/api/nodes", json={"nodeId": "n1"})

    resp = client.post("/api/nodes/n1/settings", json={"threshold": 50, "autoCutoff": True})
    assert resp.json() == {"success": True, "message": "Settings updated"}
    assert client.post("/api/nodes/n1/name", json={"name": "Garage"}).status_code == 200
    assert client.post("/api/nodes/n1/name", json={}).status_code == 400

    node = client.get("/api/sensor/n1").json()
    assert node["threshold"] == 50.0
    assert node["autoCutoff"] is True
    assert node["name"] == "Garage"

    client.post("/api/nodes/n1/settings", json={"threshold": None})
    node = client.get("/api/sensor/n1").json()
    assert node["threshold"] is None
    assert node["autoCutoff"] is True


def test_telemetry_for_unknown_node(client):
    assert client.get("/api/sensor/dev-9").status_code == 404

    resp = client.post("/api/sensor/dev-9", json={"voltage": 230.2, "current": 0.5, "power": 115.1})
    assert resp.json() == {"success": True}
    assert client.get("/api/sensor/dev-9").json()["power"] == 115.1

    relay = client.get("/api/relay/dev-9").json()
    assert relay["state"] == "off"
    assert isinstance(relay["timestamp"], int)


def test_telemetry_missing_field(client):
    resp = client.post("/api/sensor/n1", json={"voltage": 230, "current": 1})
    assert resp.status_code == 400
    assert client.get("/api/sensor/n1").status_code == 404


def test_relay_set_and_get(client):
    assert client.post("/api/relay/n1", json={"state": "dim"}).status_code == 400
    assert client.post("/api/relay/n1", json={}).status_code == 400

    resp = client.post("/api/relay/n1", json={"state": "on"})
    assert resp.json() == {"success": True, "message": "Relay on for node n1"}
    assert client.get("/api/relay/n1").json()["state"] == "on"


def test_auto_cutoff_over_http(client, gateway):
    client.post("/api/nodes", json={"nodeId": "n1"})
    client.post("/api/nodes/n1/settings", json={"threshold": 50, "autoCutoff": True})
    client.post("/api/relay/n1", json={"state": "on"})

    client.post("/api/sensor/n1", json={"voltage": 230, "current": 0.33, "power": 75})
    assert client.get("/api/relay/n1").json()["state"] == "off"
    assert len(gateway.notifier.sent) == 1


def test_schedule_crud(client):
    client.post("/api/nodes", json={"nodeId": "n1"})
    assert client.post("/api/schedules/n1", json={"time": "24:00", "action": "on"}).status_code == 400
    assert client.post("/api/schedules/n1", json={"time": "14:30", "action": "flip"}).status_code == 400

    resp = client.post("/api/schedules/n1", json={"time": "14:30", "action": "on"})
    schedule = resp.json()["schedule"]
    assert schedule["enabled"] is True

    resp = client.patch(f"/api/schedules/n1/{schedule['id']}", json={"enabled": False})
    assert resp.json()["schedule"]["enabled"] is False
    assert client.get("/api/schedules/n1").json() == [{**schedule, "enabled": False}]

    assert client.delete(f"/api/schedules/n1/{schedule['id']}").json() == {"success": True}
    assert client.delete(f"/api/schedules/n1/{schedule['id']}").status_code == 404
    assert client.patch("/api/schedules/ghost/1", json={"enabled": True}).status_code == 404
    assert client.get("/api/schedules/n1").json() == []


def test_timer_lifecycle(client):
    assert client.post("/api/timer/n1", json={"duration": 0, "action": "on"}).status_code == 400
    assert client.post("/api/timer/n1", json={"duration": 5, "action": "maybe"}).status_code == 400

    assert client.post("/api/timer/n1", json={"duration": 30, "action": "on"}).json() == {"success": True}
    status = client.get("/api/timer/n1").json()
    assert status["active"] is True
    assert 29 <= status["remainingTime"] <= 30
    assert status["action"] == "on"

    assert client.delete("/api/timer/n1").json() == {"success": True}
    assert client.get("/api/timer/n1").json() == {"active": False, "remainingTime": 0}


def test_log_download_and_removal(client, gateway):
    assert client.get("/api/logs/n1").status_code == 404

    client.post("/api/nodes", json={"nodeId": "n1"})
    client.post("/api/sensor/n1", json={"voltage": 230, "current": 1, "power": 230})
    gateway.recorder.write("n1")

    resp = client.get("/api/logs/n1")
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/csv")
    assert "attachment" in resp.headers["content-disposition"]
    assert resp.text.splitlines()[0] == "Timestamp,Voltage (V),Current (A),Power (W)"

    assert client.delete("/api/nodes/n1").status_code == 200
    assert client.delete("/api/nodes/n1").status_code == 404
    assert client.get("/api/nodes").json() == {}
    assert client.get("/api/logs/n1").status_code == 200


def test_manual_alert(client, gateway):
    assert client.post("/api/alert", json={"nodeId": "n1", "power": 130}).json() == {"success": True}
    assert gateway.notifier.sent[-1][0] == "n1"


def test_websocket_receives_sensor_data(client):
    with client.websocket_connect("/ws") as ws:
        client.post("/api/sensor/n1", json={"voltage": 230, "current": 1, "power": 230})
        assert ws.receive_json() == {
            "type": "sensor_data", "nodeId": "n1", "voltage": 230.0, "current": 1.0, "power": 230.0,
        }


def test_health(client):
    body = client.get("/health").json()
    assert body["status"] == "healthy"
    assert "threshold" in body["tickers"]
