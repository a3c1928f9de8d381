"""
Wire models for the gateway protocol (one JSON object per text frame).

- device_info: agent -> gateway, once after the socket opens.
- command: gateway -> agent, {command, params, requestId}.
- response: agent -> gateway, {requestId, success, message, data?}.
- ping / pong: either direction, no payload.
"""

from __future__ import annotations

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

MessageType = Literal["device_info", "command", "response", "ping", "pong"]


class CommandResult(BaseModel):
    """Outcome of one automation command before it is wrapped for the wire."""

    success: bool
    message: str
    data: Optional[Dict[str, Any]] = None

    @classmethod
    def ok(cls, message: str, data: Optional[Dict[str, Any]] = None) -> "CommandResult":
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(cls, message: str) -> "CommandResult":
        return cls(success=False, message=message)

    @classmethod
    def from_flag(cls, performed: bool, action: str) -> "CommandResult":
        if performed:
            return cls(success=True, message=f"{action} success")
        return cls(success=False, message=f"{action} failed")


class CommandEnvelope(BaseModel):
    """Inbound command; lenient like the gateway's loosely typed JSON."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: str = "command"
    command: str = ""
    params: Dict[str, Any] = Field(default_factory=dict)
    request_id: str = Field(default="", alias="requestId")

    @field_validator("command", mode="before")
    @classmethod
    def _coerce_command(cls, value: Any) -> str:
        if value is None:
            return ""
        return value if isinstance(value, str) else str(value)

    @field_validator("params", mode="before")
    @classmethod
    def _coerce_params(cls, value: Any) -> Dict[str, Any]:
        return value if isinstance(value, dict) else {}

    @field_validator("request_id", mode="before")
    @classmethod
    def _coerce_request_id(cls, value: Any) -> str:
        if value is None:
            return ""
        return value if isinstance(value, str) else str(value)


class ResponseEnvelope(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["response"] = "response"
    request_id: str = Field(default="", alias="requestId")
    success: bool
    message: str
    data: Optional[Dict[str, Any]] = None

    @classmethod
    def for_result(cls, request_id: str, result: CommandResult) -> "ResponseEnvelope":
        return cls(request_id=request_id, success=result.success, message=result.message, data=result.data)

    def to_wire(self) -> Dict[str, Any]:
        payload = self.model_dump(by_alias=True)
        if payload.get("data") is None:
            payload.pop("data", None)
        return payload


class DeviceInfo(BaseModel):
    """Static descriptor sent once after the gateway connection opens."""

    manufacturer: str = ""
    model: str = ""
    os_version: str = ""
    api_level: int = 0
    app_id: str = ""

    def to_wire(self) -> Dict[str, Any]:
        # Both key sets: the original agent's names and the platform-neutral ones.
        return {
            "type": "device_info",
            "manufacturer": self.manufacturer,
            "model": self.model,
            "androidVersion": self.os_version,
            "sdkVersion": self.api_level,
            "packageName": self.app_id,
            "osVersion": self.os_version,
            "apiLevel": self.api_level,
            "appId": self.app_id,
        }


PING: Dict[str, Any] = {"type": "ping"}
PONG: Dict[str, Any] = {"type": "pong"}


__all__ = [
    "MessageType",
    "CommandResult",
    "CommandEnvelope",
    "ResponseEnvelope",
    "DeviceInfo",
    "PING",
    "PONG",
]
