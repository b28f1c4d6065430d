"""Optimistic mutation cycle on top of :class:`QueryCache`.

Every user action runs ``apply_optimistic -> submit_remote -> confirm | rollback``.
Only ``submit_remote`` suspends; the other steps are plain synchronous calls on
the event-loop thread, so readers of the cache see either the value before a
mutation or the fully patched one.

Two policies cover overlapping mutations on the same key:

``LAST_WRITE_WINS``
    Submissions are not serialised and a rollback restores its own snapshot
    verbatim, even if a newer optimistic change was layered on top since.
``SERIALIZED``
    Remote calls on one key run one at a time in apply order: a submission
    waits until every earlier mutation on its key is confirmed or rolled back,
    so a patch applied but never submitted holds back later ones. The cache
    value is rebuilt from the last server value plus the mutators still
    outstanding, so a rollback or refetch never drops another mutation's patch.
"""

from __future__ import annotations

import asyncio
import copy
import itertools
from logging import getLogger
from typing import TYPE_CHECKING, Any

from .contracts import (
    MutationResult,
    MutationState,
    MutationStatus,
    PendingMutation,
    RollbackContext,
    SameKeyPolicy,
)

if TYPE_CHECKING:
    from collections.abc import Iterable
    from uuid import UUID

    from .cache import QueryCache
    from .contracts import CacheKey, Mutator, RemoteOperation

log = getLogger(__name__)


class OptimisticReconciler:
    def __init__(
        self,
        cache: QueryCache,
        *,
        policy: SameKeyPolicy = SameKeyPolicy.LAST_WRITE_WINS,
    ) -> None:
        self.cache = cache
        self.policy = policy
        self._pending: dict[CacheKey, dict[UUID, PendingMutation]] = {}
        self._bases: dict[CacheKey, Any] = {}
        self._sequence = itertools.count()
        if policy is SameKeyPolicy.SERIALIZED:
            cache.set_fetch_transform(self._layer_outstanding)

    def pending(self, cache_key: CacheKey) -> tuple[RollbackContext, ...]:
        """Outstanding rollback contexts for ``cache_key``, oldest first."""

        return tuple(item.context for item in self._pending.get(cache_key, {}).values())

    def state_of(self, context: RollbackContext) -> MutationState | None:
        pending = self._lookup(context)
        return None if pending is None else pending.state

    def apply_optimistic[T](
        self,
        cache_key: CacheKey,
        mutator: Mutator[T],
        *,
        invalidates: Iterable[CacheKey] = (),
    ) -> RollbackContext:
        """Show ``mutator``'s result immediately and remember how to undo it.

        With no cached value there is nothing to patch: the returned context is
        marked ``applied=False`` and confirm/rollback still accept it.
        """

        extra_keys = tuple(invalidates)
        current = self.cache.get(cache_key)
        if current is None:
            log.debug("No cached value for %s; skipping optimistic patch", cache_key)
            context = RollbackContext(cache_key, applied=False, invalidates=extra_keys)
            self._track(
                PendingMutation(
                    context=context,
                    mutator=mutator,
                    snapshot=None,
                    sequence=next(self._sequence),
                )
            )
            return context

        snapshot = copy.deepcopy(current)
        patched = mutator(copy.deepcopy(current))
        self.cache.cancel_refetch(cache_key)

        context = RollbackContext(cache_key, invalidates=extra_keys)
        if self.policy is SameKeyPolicy.SERIALIZED and not self._applied_outstanding(cache_key):
            self._bases[cache_key] = snapshot
        self._track(
            PendingMutation(
                context=context,
                mutator=mutator,
                snapshot=snapshot,
                sequence=next(self._sequence),
            )
        )
        self.cache.set(cache_key, patched)
        log.debug("Applied optimistic patch %s to %s", context.mutation_id, cache_key)
        return context

    async def submit_remote[T](
        self,
        context: RollbackContext,
        operation: RemoteOperation[T],
    ) -> MutationResult[T]:
        """Run the remote call, then confirm or roll back.

        Remote failures come back as a rolled-back :class:`MutationResult`
        carrying the error; presenting it is left to the caller.
        """

        pending = self._lookup(context)
        if pending is None or pending.state is not MutationState.CREATED:
            raise ValueError(f"Mutation {context.mutation_id} was already submitted")
        pending.state = MutationState.IN_FLIGHT

        try:
            if self.policy is SameKeyPolicy.SERIALIZED:
                await self._wait_turn(pending)
            value = await operation.run()
        except asyncio.CancelledError:
            self.rollback(context.cache_key, context)
            raise
        except Exception as exc:
            log.warning(
                "%s failed, rolling back %s: %s",
                operation.description,
                context.cache_key,
                exc,
            )
            pending.error = exc
            self.rollback(context.cache_key, context)
            return MutationResult(
                status=MutationStatus.ROLLED_BACK,
                context=context,
                description=operation.description,
                error=exc,
            )

        self.confirm(context.cache_key, context)
        log.info("%s confirmed", operation.description)
        return MutationResult(
            status=MutationStatus.CONFIRMED,
            context=context,
            description=operation.description,
            value=value,
        )

    def confirm(self, cache_key: CacheKey, context: RollbackContext | None = None) -> bool:
        """Discard rollback state and refetch so the cache converges on server truth.

        Without ``context`` every outstanding mutation on ``cache_key`` is
        discarded. Returns ``False`` (and does nothing) when there is nothing
        left to confirm.
        """

        if context is None:
            targets = list(self._pending.get(cache_key, {}).values())
        else:
            pending = self._lookup(context)
            targets = [] if pending is None else [pending]
        if not targets:
            return False

        keys: list[CacheKey] = [cache_key]
        for pending in targets:
            if self.policy is SameKeyPolicy.SERIALIZED and cache_key in self._bases:
                self._fold_into_base(pending)
            self._finish(pending, MutationState.CONFIRMED)
            keys.extend(key for key in pending.context.invalidates if key not in keys)
        self._drop_base_if_settled(cache_key)

        if self.cache.closed:
            return True
        for key in keys:
            self.cache.invalidate(key)
        return True

    def rollback(self, cache_key: CacheKey, context: RollbackContext) -> bool:
        """Undo the optimistic patch behind ``context``; a second call is a no-op."""

        pending = self._lookup(context)
        if pending is None:
            log.debug("Rollback context %s already discarded", context.mutation_id)
            return False

        superseded = any(
            other.sequence > pending.sequence and other.context.applied
            for other in self._pending.get(cache_key, {}).values()
        )
        snapshot = pending.snapshot
        self._finish(pending, MutationState.ROLLED_BACK)

        if not context.applied or self.cache.closed:
            self._drop_base_if_settled(cache_key)
            return True

        if self.policy is SameKeyPolicy.SERIALIZED and cache_key in self._bases:
            self.cache.set(cache_key, self._layer(cache_key, self._bases[cache_key]))
            self._drop_base_if_settled(cache_key)
        else:
            if superseded:
                log.warning(
                    "Rolling back %s on %s discards newer optimistic changes",
                    context.mutation_id,
                    cache_key,
                )
            self.cache.set(cache_key, snapshot)
        log.debug("Rolled back %s on %s", context.mutation_id, cache_key)
        return True

    def invalidate(self, *cache_keys: CacheKey) -> None:
        """Refetch keys touched by an operation that had no optimistic patch."""

        for key in cache_keys:
            self.cache.invalidate(key)

    async def mutate[T](
        self,
        cache_key: CacheKey,
        mutator: Mutator[Any],
        operation: RemoteOperation[T],
        *,
        invalidates: Iterable[CacheKey] = (),
    ) -> MutationResult[T]:
        """Run one full optimistic cycle for a user action."""

        context = self.apply_optimistic(cache_key, mutator, invalidates=invalidates)
        return await self.submit_remote(context, operation)

    # internals -------------------------------------------------------------

    def _track(self, pending: PendingMutation) -> None:
        self._pending.setdefault(pending.cache_key, {})[pending.context.mutation_id] = pending

    def _lookup(self, context: RollbackContext) -> PendingMutation | None:
        return self._pending.get(context.cache_key, {}).get(context.mutation_id)

    def _finish(self, pending: PendingMutation, state: MutationState) -> None:
        pending.state = state
        pending.snapshot = None
        pending.finished.set()
        by_id = self._pending.get(pending.cache_key)
        if by_id is None:
            return
        by_id.pop(pending.context.mutation_id, None)
        if not by_id:
            del self._pending[pending.cache_key]

    def _applied_outstanding(self, cache_key: CacheKey) -> list[PendingMutation]:
        return [item for item in self._pending.get(cache_key, {}).values() if item.context.applied]

    async def _wait_turn(self, pending: PendingMutation) -> None:
        # sequences only grow, so no earlier mutation can appear while waiting
        earlier = [
            other
            for other in self._pending.get(pending.cache_key, {}).values()
            if other.sequence < pending.sequence
        ]
        for other in earlier:
            await other.finished.wait()

    def _layer(self, cache_key: CacheKey, base: Any) -> Any:
        value = copy.deepcopy(base)
        for pending in self._applied_outstanding(cache_key):
            try:
                value = pending.mutator(value)
            except Exception:
                log.exception(
                    "Could not replay %s on %s; leaving it out",
                    pending.context.mutation_id,
                    cache_key,
                )
        return value

    def _layer_outstanding(self, cache_key: CacheKey, fetched: Any) -> Any:
        if cache_key not in self._bases:
            return fetched
        self._bases[cache_key] = fetched
        return self._layer(cache_key, fetched)

    def _fold_into_base(self, pending: PendingMutation) -> None:
        if not pending.context.applied:
            return
        base = self._bases[pending.cache_key]
        try:
            self._bases[pending.cache_key] = pending.mutator(copy.deepcopy(base))
        except Exception:
            log.exception("Could not fold confirmed %s into base", pending.context.mutation_id)

    def _drop_base_if_settled(self, cache_key: CacheKey) -> None:
        if not self._applied_outstanding(cache_key):
            self._bases.pop(cache_key, None)


__all__ = ["OptimisticReconciler"]
