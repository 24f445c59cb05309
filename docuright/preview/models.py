"""Live preview models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


@dataclass(frozen=True)
class PreviewSnapshot:
    """Form state captured when a debounce window closes."""
    sequence_id: int
    fields: dict[str, Any] = field(default_factory=dict)


class PreviewResult(BaseModel):
    """Body of ``POST /preview/{documentType}``."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    html_content: str
    word_count: int = Field(default=0, ge=0)
    page_count: int = Field(default=0, ge=0)


@dataclass(frozen=True)
class PreviewView:
    """What the preview pane renders."""
    html: str = ""
    word_count: int = 0
    page_count: int = 0
    is_loading: bool = False
    sequence_id: int = 0  # Snapshot the displayed output came from
