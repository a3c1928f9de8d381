from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, Mapping, Optional

from node_agent.contracts.envelopes import CommandEnvelope, CommandResult, ResponseEnvelope
from node_agent.executor.commands_schema import (
    SwipeParams,
    TapParams,
    TypeParams,
    canonical_command,
    parse_params,
)
from node_agent.executor.engine import AutomationEngine
from node_agent.executor.runtime_context import AgentContext
from node_agent.logging_utils import log_event, summarize_response
from node_agent.providers.base import GlobalAction

logger = logging.getLogger(__name__)

SERVICE_NOT_READY = "Accessibility service not ready"

Handler = Callable[[AutomationEngine, Any], CommandResult]


def handle_tap(engine: AutomationEngine, params: TapParams) -> CommandResult:
    return engine.tap(params.x, params.y)


def handle_swipe(engine: AutomationEngine, params: SwipeParams) -> CommandResult:
    return engine.swipe(params.start_x, params.start_y, params.end_x, params.end_y, params.duration)


def handle_type(engine: AutomationEngine, params: TypeParams) -> CommandResult:
    return engine.type_text(params.text)


def handle_screenshot(engine: AutomationEngine, _params: Any) -> CommandResult:
    return engine.screenshot()


def handle_dump(engine: AutomationEngine, _params: Any) -> CommandResult:
    return engine.dump_tree()


def _global_action_handler(action: GlobalAction) -> Handler:
    def _handler(engine: AutomationEngine, _params: Any) -> CommandResult:
        return engine.global_action(action)

    _handler.__name__ = f"handle_{action.value}"
    return _handler


DEFAULT_HANDLERS: Dict[str, Handler] = {
    "tap": handle_tap,
    "swipe": handle_swipe,
    "type": handle_type,
    "screenshot": handle_screenshot,
    "dump": handle_dump,
    **{action.value: _global_action_handler(action) for action in GlobalAction},
}


class CommandDispatcher:
    """
    Route one command envelope to the automation engine.

    The contract is total: every envelope yields exactly one ResponseEnvelope
    carrying the request id verbatim, whether the command succeeded, was
    unknown, lacked a capability, or raised inside the platform provider.
    Dispatch is synchronous; callers see commands complete in arrival order.
    """

    def __init__(
        self,
        context: AgentContext,
        engine: Optional[AutomationEngine] = None,
        handlers: Optional[Mapping[str, Handler]] = None,
    ) -> None:
        self.context = context
        self.engine = engine or AutomationEngine(context)
        self._handlers: Dict[str, Handler] = dict(handlers or DEFAULT_HANDLERS)
        # Commands from the gateway and the local control API never overlap.
        self._serial = threading.Lock()

    def get_handler(self, command: str) -> Optional[Handler]:
        return self._handlers.get(canonical_command(command))

    def commands(self) -> list[str]:
        return sorted(self._handlers)

    def execute(self, command: str, params: Dict[str, Any]) -> CommandResult:
        if not self.context.is_ready():
            return CommandResult.fail(SERVICE_NOT_READY)

        handler = self.get_handler(command)
        if handler is None:
            return CommandResult.fail(f"Unknown command: {command}")

        try:
            parsed = parse_params(command, params)
        except Exception as exc:  # noqa: BLE001
            return CommandResult.fail(f"Invalid params for {command}: {exc}")

        try:
            with self._serial:
                return handler(self.engine, parsed)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Command %s raised", command)
            return CommandResult.fail(f"{command} error: {exc}")

    def dispatch(self, envelope: CommandEnvelope) -> ResponseEnvelope:
        start = time.monotonic()
        logger.info("Execute: %s (requestId=%r)", envelope.command, envelope.request_id)
        result = self.execute(envelope.command, dict(envelope.params))
        response = ResponseEnvelope.for_result(envelope.request_id, result)
        log_event(
            "command_dispatched",
            envelope.request_id,
            {
                "command": envelope.command,
                "params": dict(envelope.params),
                "elapsed_ms": round((time.monotonic() - start) * 1000.0, 1),
                "response": summarize_response(response.to_wire()),
            },
        )
        return response


__all__ = [
    "SERVICE_NOT_READY",
    "DEFAULT_HANDLERS",
    "CommandDispatcher",
    "handle_tap",
    "handle_swipe",
    "handle_type",
    "handle_screenshot",
    "handle_dump",
]
