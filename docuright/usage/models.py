"""Anonymous usage ledger models."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class PromptType(str, Enum):
    """Registration prompt to surface, derived from the ledger on each query."""
    NONE = "none"
    BANNER = "banner"  # After the first generation
    MODAL = "modal"  # After the second
    GATE = "gate"  # Allowance used up; registration required


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Generation(_CamelModel):
    """One anonymous document generation."""
    id: str
    document_type: str
    timestamp: int  # Epoch milliseconds
    form_data: dict[str, Any] = Field(default_factory=dict)


class UsageRecord(_CamelModel):
    """Append-only ledger of anonymous generations plus prompt flags."""
    generation_count: int = Field(default=0, ge=0)
    generations: list[Generation] = Field(default_factory=list)
    has_seen_banner: bool = False
    has_seen_modal: bool = False
    last_prompt_shown: str | None = None

    @model_validator(mode="after")
    def _count_matches_history(self) -> UsageRecord:
        if self.generation_count != len(self.generations):
            raise ValueError(
                f"generationCount {self.generation_count} != {len(self.generations)} generations"
            )
        return self


@dataclass(frozen=True)
class UsageView:
    """What the presentation layer sees of the anonymous allowance."""
    generation_count: int
    remaining: int
    prompt_type: PromptType
    has_reached_limit: bool
