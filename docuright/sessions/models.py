"""Session data models.

Security contract:
- Tokens live only in Session (memory) and the session storage entry
- Tokens are never logged or included in SessionView
- Wire and storage share one camelCase shape, validated on every read
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class SessionState(str, Enum):
    """Token lifecycle states."""
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    REFRESHING = "refreshing"  # A refresh call is in flight


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class User(_CamelModel):
    """Authenticated user as returned by the auth endpoints."""
    id: int | str
    email: str
    full_name: str | None = None
    email_verified: bool = False
    auth_provider: str = "local"


class Session(_CamelModel):
    """Access/refresh token pair plus the user they belong to."""
    access_token: str = Field(min_length=1)
    refresh_token: str = Field(min_length=1)
    user: User


@dataclass(frozen=True)
class Credentials:
    email: str
    password: str


@dataclass(frozen=True)
class Profile:
    full_name: str | None = None


@dataclass(frozen=True)
class SessionView:
    """What the presentation layer sees of the session."""
    user: User | None
    is_authenticated: bool
    is_loading: bool
    state: SessionState
