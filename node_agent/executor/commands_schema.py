"""
Schemas and validation helpers for gateway commands.

Supported commands and expected params:
- tap: {"x": <int>, "y": <int>}.
- swipe: {"startX": <int>, "startY": <int>, "endX": <int>, "endY": <int>, "duration": <ms, default 300>}.
- type (alias typeText): {"text": "<text to set on the focused input>"}.
- screenshot: {}.
- dump (alias dumpTree): {}.
- back, home, recent, notifications, quickSettings, powerDialog, lockScreen, takeScreenshot: {}.

Missing coordinates default to 0, matching the gateway's loosely typed JSON.
"""

from typing import Any, Dict, Literal, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

CommandName = Literal[
    "tap",
    "swipe",
    "type",
    "screenshot",
    "dump",
    "back",
    "home",
    "recent",
    "notifications",
    "quickSettings",
    "powerDialog",
    "lockScreen",
    "takeScreenshot",
]

COMMAND_ALIASES: Dict[str, str] = {
    "typeText": "type",
    "dumpTree": "dump",
}

DEFAULT_SWIPE_DURATION_MS = 300


def _to_int(value: Any) -> Any:
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, float):
        try:
            return int(value)
        except (ValueError, OverflowError):
            # inf/nan: let pydantic reject the raw value.
            return value
    if isinstance(value, str):
        try:
            return int(float(value.strip()))
        except (ValueError, OverflowError):
            return value
    return value


class _Params(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class TapParams(_Params):
    """Single-point tap in screen coordinates."""

    x: int = 0
    y: int = 0

    @field_validator("x", "y", mode="before")
    @classmethod
    def _coerce(cls, value: Any) -> Any:
        return _to_int(value)


class SwipeParams(_Params):
    """Straight-line swipe between two screen points."""

    start_x: int = Field(default=0, alias="startX")
    start_y: int = Field(default=0, alias="startY")
    end_x: int = Field(default=0, alias="endX")
    end_y: int = Field(default=0, alias="endY")
    duration: int = Field(
        default=DEFAULT_SWIPE_DURATION_MS,
        gt=0,
        le=60_000,
        description="Stroke duration in milliseconds.",
    )

    @field_validator("start_x", "start_y", "end_x", "end_y", mode="before")
    @classmethod
    def _coerce(cls, value: Any) -> Any:
        return _to_int(value)

    @field_validator("duration", mode="before")
    @classmethod
    def _coerce_duration(cls, value: Any) -> Any:
        if value is None:
            return DEFAULT_SWIPE_DURATION_MS
        return _to_int(value)


class TypeParams(_Params):
    text: str = ""

    @field_validator("text", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> Any:
        if value is None:
            return ""
        if isinstance(value, (int, float)):
            return str(value)
        return value


class EmptyParams(_Params):
    pass


PARAM_MODELS: Dict[str, Type[_Params]] = {
    "tap": TapParams,
    "swipe": SwipeParams,
    "type": TypeParams,
}


def canonical_command(name: str) -> str:
    return COMMAND_ALIASES.get(name, name)


def parse_params(command: str, params: Dict[str, Any]) -> _Params:
    """
    Validate raw params for a command.

    Raises:
        ValueError: with a readable message when validation fails.
    """
    model = PARAM_MODELS.get(canonical_command(command), EmptyParams)
    try:
        return model.model_validate(params or {})
    except ValidationError as exc:
        reasons = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ())) or 'params'}: {err.get('msg')}"
            for err in exc.errors()
        )
        raise ValueError(reasons or str(exc)) from exc


__all__ = [
    "CommandName",
    "COMMAND_ALIASES",
    "DEFAULT_SWIPE_DURATION_MS",
    "TapParams",
    "SwipeParams",
    "TypeParams",
    "EmptyParams",
    "PARAM_MODELS",
    "canonical_command",
    "parse_params",
]
