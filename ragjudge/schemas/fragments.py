"""Source document fragments shared by generation and relationship discovery."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class Fragment(BaseModel):
    """A source document fragment (chunk)."""

    model_config = {"frozen": True}

    id: str
    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)
