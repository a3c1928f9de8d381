from node_agent.connection.state import ConnectionState, ConnectionStateStore, ConnectionStatus


def test_default_state_is_disconnected():
    state = ConnectionState.disconnected()

    assert state.status == ConnectionStatus.DISCONNECTED
    assert state.gateway_address == ""
    assert state.error is None
    assert not state.is_busy


def test_failed_state_keeps_address_and_reason():
    state = ConnectionState.failed("10.0.0.2:8080", "Connection refused")

    assert state.status == ConnectionStatus.FAILED
    assert state.gateway_address == "10.0.0.2:8080"
    assert state.error == "Connection refused"
    assert not state.is_connected


def test_equality_ignores_timestamp():
    assert ConnectionState.connected("gw") == ConnectionState.connected("gw")


def test_to_dict_flattens_status():
    payload = ConnectionState.connecting("gw").to_dict()

    assert payload["status"] == "connecting"
    assert payload["is_connecting"] is True
    assert payload["is_connected"] is False
    assert payload["gateway_address"] == "gw"


def test_subscribe_replays_current_and_receives_updates():
    store = ConnectionStateStore()
    seen = []

    unsubscribe = store.subscribe(lambda state: seen.append(state.status))
    store.set(ConnectionState.connecting("gw"))
    unsubscribe()
    store.set(ConnectionState.connected("gw"))

    assert seen == [ConnectionStatus.DISCONNECTED, ConnectionStatus.CONNECTING]


def test_failing_subscriber_does_not_block_others():
    store = ConnectionStateStore()
    seen = []

    def broken(state):
        if state.is_connecting:
            raise RuntimeError("boom")

    store.subscribe(broken)
    store.subscribe(lambda state: seen.append(state.status))
    store.set(ConnectionState.connecting("gw"))

    assert seen[-1] == ConnectionStatus.CONNECTING
    assert store.value.is_connecting
