import json

from node_agent.contracts.envelopes import CommandEnvelope
from node_agent.executor.dispatch import SERVICE_NOT_READY, CommandDispatcher
from node_agent.providers.base import GlobalAction
from node_agent.tests.fakes import FakeNode, FakeProvider, make_context


def _dispatch(provider, command, params=None, request_id="r1", ready=True):
    dispatcher = CommandDispatcher(make_context(provider, ready=ready))
    envelope = CommandEnvelope.model_validate(
        {"type": "command", "command": command, "params": params or {}, "requestId": request_id}
    )
    return dispatcher.dispatch(envelope).to_wire()


def test_tap_command_round_trip():
    provider = FakeProvider(level=34)

    response = _dispatch(provider, "tap", {"x": 540, "y": 1200}, request_id="r1")

    assert response == {
        "type": "response",
        "requestId": "r1",
        "success": True,
        "message": "tap at (540, 1200) success",
    }
    assert provider.gestures[0][0].start == (540.0, 1200.0)


def test_unknown_command_fails_with_request_id():
    response = _dispatch(FakeProvider(), "explode", request_id="r2")

    assert response["requestId"] == "r2"
    assert response["success"] is False
    assert response["message"] == "Unknown command: explode"


def test_lock_screen_below_level_28():
    provider = FakeProvider(level=27)

    response = _dispatch(provider, "lockScreen", request_id="r3")

    assert response["requestId"] == "r3"
    assert response["success"] is False
    assert response["message"] == "Requires Android 9.0+"
    assert provider.global_actions == []


def test_not_ready_rejects_every_command():
    provider = FakeProvider()

    response = _dispatch(provider, "tap", {"x": 1, "y": 1}, ready=False)

    assert response["success"] is False
    assert response["message"] == SERVICE_NOT_READY
    assert provider.gestures == []


def test_missing_request_id_round_trips_as_empty_string():
    dispatcher = CommandDispatcher(make_context(FakeProvider()))
    envelope = CommandEnvelope.model_validate({"type": "command", "command": "home"})

    response = dispatcher.dispatch(envelope)

    assert response.request_id == ""
    assert response.to_wire()["requestId"] == ""


def test_numeric_strings_and_missing_coordinates_are_coerced():
    provider = FakeProvider()

    response = _dispatch(provider, "tap", {"x": "12.7"})

    assert response["success"] is True
    assert provider.gestures[0][0].start == (12.0, 0.0)


def test_invalid_params_are_reported():
    provider = FakeProvider()

    response = _dispatch(provider, "swipe", {"startX": 1, "duration": 0})

    assert response["success"] is False
    assert response["message"].startswith("Invalid params for swipe:")
    assert "duration" in response["message"]
    assert provider.gestures == []


def test_swipe_uses_default_duration():
    provider = FakeProvider()

    response = _dispatch(provider, "swipe", {"startX": 10, "startY": 900, "endX": 10, "endY": 100})

    assert response["message"] == "swipe success"
    assert provider.gestures[0][1] == 300


def test_provider_exception_becomes_failure_response():
    class ExplodingProvider(FakeProvider):
        def perform_global_action(self, action):
            raise RuntimeError("service died")

    response = _dispatch(ExplodingProvider(), "back", request_id="r9")

    assert response["requestId"] == "r9"
    assert response["success"] is False
    assert response["message"] == "back error: service died"


def test_aliases_route_to_canonical_handlers():
    field = FakeNode("", editable=True)
    provider = FakeProvider(root=FakeNode("root", children=[field]))
    provider.focused = field

    typed = _dispatch(provider, "typeText", {"text": "hi"})
    dumped = _dispatch(provider, "dumpTree")

    assert typed["message"] == "type: hi success"
    assert dumped["message"] == "UI dumped"
    assert len(dumped["data"]["nodes"]) == 2


def test_every_global_action_is_dispatchable():
    provider = FakeProvider(level=34)

    for action in GlobalAction:
        response = _dispatch(provider, action.value)
        assert response["success"] is True, action

    assert provider.global_actions == list(GlobalAction)


def test_commands_lists_wire_names():
    dispatcher = CommandDispatcher(make_context(FakeProvider()))

    commands = dispatcher.commands()

    assert {"tap", "swipe", "type", "screenshot", "dump", "lockScreen"} <= set(commands)


def test_non_finite_numbers_are_rejected_as_invalid_params():
    provider = FakeProvider()
    dispatcher = CommandDispatcher(make_context(provider))
    frames = [
        '{"type":"command","command":"tap","params":{"x":Infinity,"y":1},"requestId":"r1"}',
        '{"type":"command","command":"tap","params":{"x":"inf","y":1},"requestId":"r2"}',
        '{"type":"command","command":"swipe","params":{"duration":"1e400"},"requestId":"r3"}',
        '{"type":"command","command":"swipe","params":{"startX":NaN},"requestId":"r4"}',
    ]

    for frame in frames:
        envelope = CommandEnvelope.model_validate(json.loads(frame))
        response = dispatcher.dispatch(envelope).to_wire()
        assert response["requestId"] == envelope.request_id
        assert response["success"] is False
        assert response["message"].startswith(f"Invalid params for {envelope.command}:")

    assert provider.gestures == []
