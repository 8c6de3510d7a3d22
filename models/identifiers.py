"""
Entity identifiers.

An entity is either confirmed by the server (stable opaque id) or pending
(client-side placeholder awaiting a create response, found again by its
correlation token).
"""

import time
from typing import Annotated, Any, Callable, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

OPTIMISTIC_PREFIX = "optimistic-"


class Pending(BaseModel):
    """Placeholder id of an optimistic create."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["pending"] = "pending"
    token: int

    def __str__(self) -> str:
        return f"{OPTIMISTIC_PREFIX}{self.token}"


class Confirmed(BaseModel):
    """Server-assigned id."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["confirmed"] = "confirmed"
    value: str = Field(..., min_length=1)

    def __str__(self) -> str:
        return self.value


EntityId = Annotated[Union[Pending, Confirmed], Field(discriminator="kind")]


def coerce_entity_id(value: Any) -> Any:
    """
    Accept a raw server id string wherever an EntityId is expected.

    Strings carrying the optimistic prefix come back from our own
    serialization of placeholders and are parsed back to Pending.
    """
    if isinstance(value, str):
        if value.startswith(OPTIMISTIC_PREFIX):
            suffix = value[len(OPTIMISTIC_PREFIX):]
            if suffix.isdigit():
                return Pending(token=int(suffix))
        return Confirmed(value=value)
    return value


class CorrelationClock:
    """
    Issues correlation tokens for optimistic creates.

    Tokens are millisecond timestamps, bumped when two creates land in
    the same millisecond so every token is distinct.
    """

    def __init__(self, now: Callable[[], float] = time.time):
        self._now = now
        self._last = 0

    def next_token(self) -> int:
        token = max(int(self._now() * 1000), self._last + 1)
        self._last = token
        return token
