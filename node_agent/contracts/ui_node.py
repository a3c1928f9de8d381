from __future__ import annotations

from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field


class Bounds(BaseModel):
    left: int = 0
    top: int = 0
    right: int = 0
    bottom: int = 0


class UINode(BaseModel):
    """One flattened record of a UI tree dump; depth 0 is the root."""

    model_config = ConfigDict(populate_by_name=True)

    class_name: str = Field(default="", alias="className")
    text: str = ""
    content_description: str = Field(default="", alias="contentDescription")
    resource_id: str = Field(default="", alias="resourceId")
    bounds: Bounds = Field(default_factory=Bounds)
    clickable: bool = False
    enabled: bool = True
    focusable: bool = False
    scrollable: bool = False
    editable: bool = False
    depth: int = 0

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


__all__ = ["Bounds", "UINode"]
