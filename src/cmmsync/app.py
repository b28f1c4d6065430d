"""Application orchestration entry points."""

from __future__ import annotations

import asyncio
import contextlib
from logging import getLogger
from typing import TYPE_CHECKING

from cmmsync.adapters.cmms import HttpWorkOrderStore
from cmmsync.config import get_cmms_config
from cmmsync.domain.actions import (
    ALL_WORK_ORDERS,
    PARTS,
    TECHNICIAN_WORK_ORDERS,
    WORK_ORDERS,
    WorkOrderActions,
)
from cmmsync.domain.model import CheckoutLine, PartCheckout, TimeEntry
from cmmsync.domain.reconciliation import (
    DEFAULT_STALE_AFTER,
    OptimisticReconciler,
    QueryCache,
    SameKeyPolicy,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
    from datetime import timedelta
    from types import TracebackType

    from cmmsync.config import CmmsConfig
    from cmmsync.domain.model import Part, WorkOrder, WorkOrderStatus
    from cmmsync.domain.ports import WorkOrderStore
    from cmmsync.domain.reconciliation import MutationResult

log = getLogger(__name__)

POLLED_KEYS: tuple[str, ...] = (ALL_WORK_ORDERS, PARTS)


class DashboardSession:
    """Cache, reconciler and actions for one signed-in user.

    Created once at start, closed on logout. Closing drops every cached value
    and stops polling; mutations still in flight finish without touching the
    cache.
    """

    def __init__(
        self,
        store: WorkOrderStore,
        *,
        user_id: int | None = None,
        stale_after: timedelta = DEFAULT_STALE_AFTER,
        poll_interval: timedelta | None = None,
        policy: SameKeyPolicy = SameKeyPolicy.LAST_WRITE_WINS,
        preload: Sequence[str] = POLLED_KEYS,
    ) -> None:
        self.store = store
        self.preload = tuple(preload)
        self.user_id = user_id
        self.poll_interval = poll_interval
        self.cache = QueryCache(stale_after=stale_after)
        self.reconciler = OptimisticReconciler(self.cache, policy=policy)
        self.actions = WorkOrderActions(self.reconciler, store)
        self._poller: asyncio.Task[None] | None = None
        self._register_fetchers()

    async def __aenter__(self) -> DashboardSession:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def start(self) -> None:
        if self.cache.closed:
            self.cache.open()
            self._register_fetchers()
        for key in self.preload:
            await self.cache.ensure(key)
        if self.poll_interval is not None and self._poller is None:
            self._poller = asyncio.create_task(
                self._poll(self.poll_interval.total_seconds()),
                name="dashboard-poller",
            )
        log.info("Dashboard session started for user %s", self.user_id)

    async def close(self) -> None:
        if self._poller is not None:
            self._poller.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._poller
            self._poller = None
        self.cache.close()
        log.info("Dashboard session closed")

    def work_orders(self) -> tuple[WorkOrder, ...]:
        return self.cache.get(ALL_WORK_ORDERS) or ()

    def parts(self) -> tuple[Part, ...]:
        return self.cache.get(PARTS) or ()

    def assigned_work_orders(self) -> tuple[WorkOrder, ...]:
        return tuple(order for order in self.work_orders() if order.assigned_to_id == self.user_id)

    def unassigned_work_orders(self) -> tuple[WorkOrder, ...]:
        return tuple(order for order in self.work_orders() if not order.is_assigned)

    def _register_fetchers(self) -> None:
        self.cache.register_fetcher(ALL_WORK_ORDERS, self._fetch_work_orders)
        self.cache.register_fetcher(WORK_ORDERS, self._fetch_work_orders)
        self.cache.register_fetcher(PARTS, self._fetch_parts)
        if self.user_id is not None:
            self.cache.register_fetcher(TECHNICIAN_WORK_ORDERS, self._fetch_assigned)

    async def _fetch_work_orders(self) -> tuple[WorkOrder, ...]:
        return tuple(await self.store.fetch_work_orders())

    async def _fetch_assigned(self) -> tuple[WorkOrder, ...]:
        return tuple(await self.store.fetch_work_orders({"assignedTo": str(self.user_id)}))

    async def _fetch_parts(self) -> tuple[Part, ...]:
        return tuple(await self.store.fetch_parts())

    async def _poll(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            for key in POLLED_KEYS:
                # leave keys alone while an optimistic patch is waiting on the server
                if not self.reconciler.pending(key):
                    self.cache.invalidate(key)


@contextlib.asynccontextmanager
async def open_dashboard(
    *,
    config: CmmsConfig | None = None,
    store: WorkOrderStore | None = None,
    user_id: int | None = None,
    poll: bool = False,
    preload: Sequence[str] = POLLED_KEYS,
) -> AsyncIterator[DashboardSession]:
    """Open an HTTP-backed session unless a ``store`` is supplied.

    Only the ``preload`` keys are fetched before the session is handed out.
    """

    owned_store: HttpWorkOrderStore | None = None
    if store is None:
        config = config or get_cmms_config()
        owned_store = HttpWorkOrderStore(config=config)
        store = owned_store

    if config is None:
        session = DashboardSession(store, user_id=user_id, preload=preload)
    else:
        session = DashboardSession(
            store,
            user_id=user_id,
            stale_after=config.stale_after,
            poll_interval=config.poll_interval if poll else None,
            policy=config.same_key_policy,
            preload=preload,
        )
    try:
        async with session:
            yield session
            await session.cache.wait_idle()
    finally:
        if owned_store is not None:
            await owned_store.aclose()


def _run_in_session[T](
    action: Callable[[DashboardSession], Awaitable[T]],
    *,
    store: WorkOrderStore | None = None,
    user_id: int | None = None,
    preload: Sequence[str] = (ALL_WORK_ORDERS,),
) -> T:
    async def runner() -> T:
        async with open_dashboard(store=store, user_id=user_id, preload=preload) as session:
            return await action(session)

    return asyncio.run(runner())


def list_work_orders(
    *,
    status: WorkOrderStatus | None = None,
    user_id: int | None = None,
    store: WorkOrderStore | None = None,
) -> tuple[WorkOrder, ...]:
    """Fetch work orders, optionally narrowed to one status or assignee."""

    async def action(session: DashboardSession) -> tuple[WorkOrder, ...]:
        orders = session.assigned_work_orders() if user_id is not None else session.work_orders()
        if status is not None:
            orders = tuple(order for order in orders if order.status is status)
        return orders

    return _run_in_session(action, store=store, user_id=user_id)


def change_work_order_status(
    work_order_id: int,
    status: WorkOrderStatus,
    *,
    store: WorkOrderStore | None = None,
) -> MutationResult[WorkOrder]:
    async def action(session: DashboardSession) -> MutationResult[WorkOrder]:
        return await session.actions.update_status(work_order_id, status)

    return _run_in_session(action, store=store)


def claim_work_order(
    work_order_id: int,
    user_id: int,
    *,
    store: WorkOrderStore | None = None,
) -> MutationResult[WorkOrder]:
    async def action(session: DashboardSession) -> MutationResult[WorkOrder]:
        return await session.actions.claim(work_order_id, user_id)

    return _run_in_session(action, store=store, user_id=user_id)


def log_work_time(
    work_order_id: int,
    hours: float,
    description: str,
    *,
    category: str = "LABOR",
    billable: bool = True,
    store: WorkOrderStore | None = None,
) -> MutationResult[None]:
    entry = TimeEntry(
        work_order_id=work_order_id,
        hours=hours,
        description=description,
        category=category,
        billable=billable,
    )

    async def action(session: DashboardSession) -> MutationResult[None]:
        return await session.actions.log_time(entry)

    return _run_in_session(action, store=store)


def checkout_parts(
    lines: Sequence[tuple[int, int]],
    *,
    requested_by: str = "Unknown User",
    reason: str = "Work order materials",
    notes: str | None = None,
    work_order_id: int | None = None,
    store: WorkOrderStore | None = None,
) -> MutationResult[None]:
    checkout = PartCheckout(
        lines=tuple(CheckoutLine(part_id, quantity) for part_id, quantity in lines),
        requested_by=requested_by,
        reason=reason,
        notes=notes,
        work_order_id=work_order_id,
    )

    async def action(session: DashboardSession) -> MutationResult[None]:
        return await session.actions.checkout_parts(checkout)

    return _run_in_session(action, store=store, preload=(PARTS,))
