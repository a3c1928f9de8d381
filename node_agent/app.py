"""Local control API: connection status and connect/disconnect for the agent."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from node_agent.connection.gateway import GatewayConnection
from node_agent.contracts.envelopes import CommandEnvelope
from node_agent.logging_utils import generate_request_id, log_event


class ConnectRequest(BaseModel):
    address: str


class LocalCommandRequest(BaseModel):
    command: str
    params: Dict[str, Any] = {}
    requestId: Optional[str] = None


def _status_payload(connection: GatewayConnection) -> Dict[str, Any]:
    return {
        "connection": connection.state.value.to_dict(),
        "capability": connection.context.capability_state.value,
        "commands": connection.dispatcher.commands(),
    }


def create_app(connection: GatewayConnection) -> FastAPI:
    app = FastAPI(title="node-agent")
    app.state.connection = connection

    @app.get("/")
    async def read_root():
        return {"status": "ok"}

    @app.get("/api/status")
    async def get_status():
        return _status_payload(connection)

    @app.post("/api/connect")
    def connect(payload: ConnectRequest):
        address = (payload.address or "").strip()
        if not address:
            raise HTTPException(status_code=400, detail="Enter gateway address")
        log_event("control_connect", generate_request_id(), {"address": address})
        connection.connect(address)
        return _status_payload(connection)

    @app.post("/api/disconnect")
    def disconnect():
        log_event("control_disconnect", generate_request_id())
        connection.disconnect()
        return _status_payload(connection)

    # Sync handler: FastAPI runs it in a worker thread, so blocking commands
    # (screenshot, root retries) do not stall the event loop.
    @app.post("/api/command")
    def run_command(payload: LocalCommandRequest):
        envelope = CommandEnvelope(
            command=payload.command,
            params=payload.params,
            request_id=payload.requestId if payload.requestId is not None else generate_request_id(),
        )
        return connection.dispatcher.dispatch(envelope).to_wire()

    return app


__all__ = ["ConnectRequest", "LocalCommandRequest", "create_app"]
