import pytest
from fastapi.testclient import TestClient

from node_agent.app import create_app
from node_agent.connection.gateway import GatewayConnection
from node_agent.tests.fakes import FakeAppFactory, FakeProvider, make_context


@pytest.fixture
def factory():
    return FakeAppFactory()


@pytest.fixture
def connection(factory):
    return GatewayConnection(make_context(FakeProvider(level=34)), app_factory=factory)


@pytest.fixture
def client(connection):
    return TestClient(create_app(connection))


def test_health(client):
    resp = client.get("/")

    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_status_reports_connection_and_capability(client):
    body = client.get("/api/status").json()

    assert body["connection"]["status"] == "disconnected"
    assert body["capability"] == "ready"
    assert "tap" in body["commands"]


def test_connect_requires_address(client, factory):
    resp = client.post("/api/connect", json={"address": "   "})

    assert resp.status_code == 400
    assert resp.json()["detail"] == "Enter gateway address"
    assert factory.apps == []


def test_connect_then_disconnect(client, factory):
    resp = client.post("/api/connect", json={"address": "10.0.0.2:8080"})

    assert resp.status_code == 200
    assert resp.json()["connection"]["status"] == "connecting"
    assert factory.last.url == "ws://10.0.0.2:8080"

    factory.last.fire_open()
    assert client.get("/api/status").json()["connection"]["status"] == "connected"

    resp = client.post("/api/disconnect")
    assert resp.json()["connection"]["status"] == "disconnected"


def test_local_command_runs_through_dispatcher(client):
    resp = client.post("/api/command", json={"command": "home", "requestId": "local-1"})

    assert resp.status_code == 200
    assert resp.json() == {"type": "response", "requestId": "local-1", "success": True, "message": "home success"}


def test_local_command_generates_request_id(client):
    body = client.post("/api/command", json={"command": "nope"}).json()

    assert body["requestId"]
    assert body["success"] is False
    assert body["message"] == "Unknown command: nope"


def test_local_command_with_overflowing_number_returns_failure(client):
    resp = client.post("/api/command", json={"command": "swipe", "params": {"duration": "1e400"}, "requestId": "big"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["requestId"] == "big"
    assert body["success"] is False
    assert body["message"].startswith("Invalid params for swipe:")
