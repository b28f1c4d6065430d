"""Optimistic mutation cache shared by the dashboards."""

from __future__ import annotations

from .cache import DEFAULT_STALE_AFTER, CacheClosedError, CacheEntry, QueryCache
from .contracts import (
    CacheKey,
    MutationResult,
    MutationState,
    MutationStatus,
    Mutator,
    PendingMutation,
    RemoteOperation,
    RollbackContext,
    SameKeyPolicy,
)
from .reconciler import OptimisticReconciler

__all__ = [
    "DEFAULT_STALE_AFTER",
    "CacheClosedError",
    "CacheEntry",
    "CacheKey",
    "MutationResult",
    "MutationState",
    "MutationStatus",
    "Mutator",
    "OptimisticReconciler",
    "PendingMutation",
    "QueryCache",
    "RemoteOperation",
    "RollbackContext",
    "SameKeyPolicy",
]
