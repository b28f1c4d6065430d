"""Shared types of the optimistic mutation cycle.

A mutation moves through ``CREATED -> IN_FLIGHT -> CONFIRMED | ROLLED_BACK``.
There is no cancelled state: once submitted, a mutation is only awaited.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any
from uuid import UUID, uuid4

type CacheKey = str
type Mutator[T] = Callable[[T], T]
type Fetcher = Callable[[], Awaitable[Any]]


class MutationState(StrEnum):
    CREATED = "created"
    IN_FLIGHT = "in_flight"
    CONFIRMED = "confirmed"
    ROLLED_BACK = "rolled_back"

    @property
    def is_terminal(self) -> bool:
        return self in {MutationState.CONFIRMED, MutationState.ROLLED_BACK}


class SameKeyPolicy(StrEnum):
    """How overlapping mutations on one cache key are handled."""

    LAST_WRITE_WINS = "last-write-wins"
    SERIALIZED = "serialized"


@dataclass(frozen=True, slots=True)
class RollbackContext:
    """Opaque handle returned by ``apply_optimistic``."""

    cache_key: CacheKey
    mutation_id: UUID = field(default_factory=uuid4)
    applied: bool = True
    invalidates: tuple[CacheKey, ...] = ()


@dataclass(slots=True, kw_only=True)
class PendingMutation:
    """Book-keeping for one in-flight optimistic change."""

    context: RollbackContext
    mutator: Mutator[Any]
    snapshot: Any
    sequence: int
    state: MutationState = MutationState.CREATED
    error: BaseException | None = None
    finished: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def cache_key(self) -> CacheKey:
        return self.context.cache_key


@dataclass(frozen=True, slots=True)
class RemoteOperation[T]:
    """Side-effecting remote call submitted after the optimistic patch."""

    description: str
    run: Callable[[], Awaitable[T]]


class MutationStatus(StrEnum):
    CONFIRMED = "confirmed"
    ROLLED_BACK = "rolled_back"


@dataclass(frozen=True, slots=True, kw_only=True)
class MutationResult[T]:
    """Outcome reported back to the caller, who decides how to present it."""

    status: MutationStatus
    context: RollbackContext
    description: str
    value: T | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.status is MutationStatus.CONFIRMED

    def raise_for_error(self) -> T | None:
        if self.error is not None:
            raise self.error
        return self.value


__all__ = [
    "CacheKey",
    "Fetcher",
    "MutationResult",
    "MutationState",
    "MutationStatus",
    "Mutator",
    "PendingMutation",
    "RemoteOperation",
    "RollbackContext",
    "SameKeyPolicy",
]
