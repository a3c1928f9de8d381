import json

import pytest

from node_agent.connection.gateway import NORMAL_CLOSURE, GatewayConnection, normalize_address
from node_agent.connection.state import ConnectionStatus
from node_agent.tests.fakes import FakeAppFactory, FakeProvider, make_context


@pytest.fixture
def factory():
    return FakeAppFactory()


@pytest.fixture
def provider():
    return FakeProvider(level=34)


@pytest.fixture
def connection(factory, provider):
    return GatewayConnection(make_context(provider), app_factory=factory)


def _frames(app):
    return [json.loads(text) for text in app.sent]


def _open(connection, factory, address="10.0.0.2:8080"):
    connection.connect(address)
    app = factory.last
    app.fire_open()
    return app


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("10.0.0.2:8080", "ws://10.0.0.2:8080"),
        ("ws://host:1", "ws://host:1"),
        ("wss://host/path", "wss://host/path"),
        ("  gw.local:9000 ", "ws://gw.local:9000"),
    ],
)
def test_normalize_address(raw, expected):
    assert normalize_address(raw) == expected


def test_connect_moves_to_connecting_with_raw_address(connection, factory):
    connection.connect("10.0.0.2:8080")

    state = connection.state.value
    assert state.status == ConnectionStatus.CONNECTING
    assert state.gateway_address == "10.0.0.2:8080"
    assert factory.last.url == "ws://10.0.0.2:8080"


def test_transport_loop_uses_ping_interval_without_auto_reconnect(connection, factory):
    connection.connect("gw:1")
    connection._thread.join(timeout=2)

    assert factory.last.run_kwargs == {"ping_interval": 30.0, "reconnect": 0}


def test_connect_is_ignored_while_connecting_or_connected(connection, factory):
    connection.connect("gw:1")
    connection.connect("gw:2")
    factory.last.fire_open()
    connection.connect("gw:3")

    assert len(factory.apps) == 1
    assert connection.state.value.status == ConnectionStatus.CONNECTED
    assert connection.state.value.gateway_address == "gw:1"


def test_open_sends_device_info_first(connection, factory):
    app = _open(connection, factory)

    frames = _frames(app)
    assert len(frames) == 1
    info = frames[0]
    assert info["type"] == "device_info"
    assert info["model"] == "Pixel 7"
    assert info["androidVersion"] == "14"
    assert info["sdkVersion"] == 34
    assert info["packageName"] == "com.openclaw.node"


def test_command_frame_gets_matching_response(connection, factory, provider):
    app = _open(connection, factory)

    app.fire_message(json.dumps({"type": "command", "command": "tap", "params": {"x": 540, "y": 1200}, "requestId": "r1"}))

    response = _frames(app)[-1]
    assert response == {"type": "response", "requestId": "r1", "success": True, "message": "tap at (540, 1200) success"}
    assert len(provider.gestures) == 1


def test_responses_follow_request_order(connection, factory):
    app = _open(connection, factory)

    for index in range(3):
        app.fire_message(json.dumps({"type": "command", "command": "home", "requestId": f"r{index}"}))

    assert [f["requestId"] for f in _frames(app)[1:]] == ["r0", "r1", "r2"]


def test_malformed_frame_is_dropped_and_connection_survives(connection, factory):
    app = _open(connection, factory)

    app.fire_message("{not json")
    app.fire_message("[1, 2]")
    app.fire_message(b"\x00\x01")
    app.fire_message(json.dumps({"type": "command", "command": "home", "requestId": "after"}))

    frames = _frames(app)
    assert frames[-1]["requestId"] == "after"
    assert len(frames) == 2
    assert connection.state.value.status == ConnectionStatus.CONNECTED


def test_ping_is_answered_and_pong_ignored(connection, factory):
    app = _open(connection, factory)

    app.fire_message(json.dumps({"type": "ping"}))
    app.fire_message(json.dumps({"type": "pong"}))
    app.fire_message(json.dumps({"type": "hello"}))

    assert _frames(app)[1:] == [{"type": "pong"}]


def test_send_ping_only_when_connected(connection, factory):
    assert connection.send_ping() is False

    app = _open(connection, factory)

    assert connection.send_ping() is True
    assert _frames(app)[-1] == {"type": "ping"}


def test_remote_close_marks_failed(connection, factory):
    app = _open(connection, factory)

    app.fire_close(1006, "")

    state = connection.state.value
    assert state.status == ConnectionStatus.FAILED
    assert state.error == "Connection closed: 1006"
    assert state.gateway_address == "10.0.0.2:8080"


def test_error_message_survives_following_close(connection, factory):
    connection.connect("gw:1")
    app = factory.last

    app.fire_error(ConnectionRefusedError("Connection refused"))
    app.fire_close(None, None)

    state = connection.state.value
    assert state.status == ConnectionStatus.FAILED
    assert state.error == "Connection refused"


def test_reconnect_allowed_after_failure(connection, factory):
    _open(connection, factory).fire_close(1011, "server error")

    connection.connect("gw:2")

    assert len(factory.apps) == 2
    assert connection.state.value.status == ConnectionStatus.CONNECTING


def test_factory_error_marks_failed(provider):
    def broken_factory(url, **callbacks):
        raise ValueError("bad url")

    connection = GatewayConnection(make_context(provider), app_factory=broken_factory)
    connection.connect("::::")

    assert connection.state.value.status == ConnectionStatus.FAILED
    assert connection.state.value.error == "bad url"


def test_disconnect_closes_socket_with_normal_closure(connection, factory):
    app = _open(connection, factory)

    connection.disconnect()

    assert connection.state.value.status == ConnectionStatus.DISCONNECTED
    assert app.close_kwargs == {"status": NORMAL_CLOSURE, "reason": b"User disconnect"}


def test_disconnect_is_idempotent(connection, factory):
    app = _open(connection, factory)
    seen = []
    connection.state.subscribe(lambda state: seen.append(state.status))

    connection.disconnect()
    connection.disconnect()

    assert seen == [ConnectionStatus.CONNECTED, ConnectionStatus.DISCONNECTED]
    assert app.close_kwargs is not None


def test_callbacks_from_stale_socket_are_ignored(connection, factory):
    old = _open(connection, factory)
    connection.disconnect()

    old.fire_close(1000, "User disconnect")
    old.fire_message(json.dumps({"type": "command", "command": "home", "requestId": "late"}))

    assert connection.state.value.status == ConnectionStatus.DISCONNECTED
    assert len(_frames(old)) == 1


def test_failed_send_does_not_raise(connection, factory):
    app = _open(connection, factory)
    app.fail_send = True

    app.fire_message(json.dumps({"type": "command", "command": "home", "requestId": "r1"}))

    assert connection.state.value.status == ConnectionStatus.CONNECTED
