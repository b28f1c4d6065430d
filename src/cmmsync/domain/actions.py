"""Dashboard actions expressed as optimistic mutations.

The mutators here are pure: they take the cached collection and return a new
tuple with one record replaced. ``WorkOrderActions`` pairs each of them with
the matching remote call.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING, Final

from cmmsync.domain.reconciliation import RemoteOperation

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence

    from cmmsync.domain.model import (
        CheckoutLine,
        Part,
        PartCheckout,
        TimeEntry,
        WorkOrder,
        WorkOrderStatus,
    )
    from cmmsync.domain.ports import WorkOrderStore
    from cmmsync.domain.reconciliation import MutationResult, Mutator, OptimisticReconciler

log = getLogger(__name__)

ALL_WORK_ORDERS: Final[str] = "all-work-orders"
WORK_ORDERS: Final[str] = "work-orders"
TECHNICIAN_WORK_ORDERS: Final[str] = "technician-work-orders"
PARTS: Final[str] = "parts"

WORK_ORDER_KEYS: Final[tuple[str, ...]] = (ALL_WORK_ORDERS, WORK_ORDERS, TECHNICIAN_WORK_ORDERS)
DASHBOARD_KEYS: Final[tuple[str, ...]] = (*WORK_ORDER_KEYS, PARTS)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _patch_work_order(
    orders: Sequence[WorkOrder],
    work_order_id: int,
    patch: Callable[[WorkOrder], WorkOrder],
) -> tuple[WorkOrder, ...]:
    return tuple(patch(order) if order.id == work_order_id else order for order in orders)


def set_status(
    work_order_id: int,
    status: WorkOrderStatus,
    *,
    now: datetime,
) -> Mutator[Sequence[WorkOrder]]:
    def mutator(orders: Sequence[WorkOrder]) -> tuple[WorkOrder, ...]:
        return _patch_work_order(
            orders,
            work_order_id,
            lambda order: replace(order, status=status, updated_at=now),
        )

    return mutator


def assign_to(work_order_id: int, user_id: int, *, now: datetime) -> Mutator[Sequence[WorkOrder]]:
    def mutator(orders: Sequence[WorkOrder]) -> tuple[WorkOrder, ...]:
        return _patch_work_order(
            orders,
            work_order_id,
            lambda order: replace(order, assigned_to_id=user_id, updated_at=now),
        )

    return mutator


def add_logged_hours(
    work_order_id: int,
    hours: float,
    *,
    now: datetime,
) -> Mutator[Sequence[WorkOrder]]:
    def mutator(orders: Sequence[WorkOrder]) -> tuple[WorkOrder, ...]:
        return _patch_work_order(
            orders,
            work_order_id,
            lambda order: replace(
                order,
                total_logged_hours=order.total_logged_hours + hours,
                started_at=order.started_at or now,
                updated_at=now,
            ),
        )

    return mutator


def decrement_stock(lines: Iterable[CheckoutLine]) -> Mutator[Sequence[Part]]:
    taken: dict[int, int] = {}
    for line in lines:
        taken[line.part_id] = taken.get(line.part_id, 0) + line.quantity

    def mutator(parts: Sequence[Part]) -> tuple[Part, ...]:
        return tuple(
            replace(part, stock_level=max(part.stock_level - taken[part.id], 0))
            if part.id in taken
            else part
            for part in parts
        )

    return mutator


@dataclass(slots=True)
class WorkOrderActions:
    """Entry points the technician dashboard calls on user actions."""

    reconciler: OptimisticReconciler
    store: WorkOrderStore
    clock: Callable[[], datetime] = field(default=_utcnow)

    async def update_status(
        self,
        work_order_id: int,
        status: WorkOrderStatus,
    ) -> MutationResult[WorkOrder]:
        log.info("Updating work order %s status to %s", work_order_id, status)
        return await self.reconciler.mutate(
            ALL_WORK_ORDERS,
            set_status(work_order_id, status, now=self.clock()),
            RemoteOperation(
                f"Update work order {work_order_id} status to {status}",
                lambda: self.store.update_status(work_order_id, status),
            ),
            invalidates=(WORK_ORDERS, TECHNICIAN_WORK_ORDERS),
        )

    async def claim(self, work_order_id: int, user_id: int) -> MutationResult[WorkOrder]:
        return await self.reconciler.mutate(
            ALL_WORK_ORDERS,
            assign_to(work_order_id, user_id, now=self.clock()),
            RemoteOperation(
                f"Assign work order {work_order_id} to user {user_id}",
                lambda: self.store.assign(work_order_id, user_id),
            ),
            invalidates=(WORK_ORDERS, TECHNICIAN_WORK_ORDERS),
        )

    async def log_time(self, entry: TimeEntry) -> MutationResult[None]:
        return await self.reconciler.mutate(
            ALL_WORK_ORDERS,
            add_logged_hours(entry.work_order_id, entry.hours, now=self.clock()),
            RemoteOperation(
                f"Log {entry.hours}h on work order {entry.work_order_id}",
                lambda: self.store.log_time(entry),
            ),
            invalidates=(WORK_ORDERS, TECHNICIAN_WORK_ORDERS),
        )

    async def checkout_parts(self, checkout: PartCheckout) -> MutationResult[None]:
        # checkouts can change work-order costs, so the work-order view is refreshed too
        return await self.reconciler.mutate(
            PARTS,
            decrement_stock(checkout.lines),
            RemoteOperation(
                f"Check out {len(checkout.lines)} part line(s)",
                lambda: self.store.checkout_parts(checkout),
            ),
            invalidates=(ALL_WORK_ORDERS,),
        )

    def refresh_all(self) -> None:
        log.info("Refreshing all dashboard data")
        self.reconciler.invalidate(*DASHBOARD_KEYS)


__all__ = [
    "ALL_WORK_ORDERS",
    "DASHBOARD_KEYS",
    "PARTS",
    "TECHNICIAN_WORK_ORDERS",
    "WORK_ORDERS",
    "WORK_ORDER_KEYS",
    "WorkOrderActions",
    "add_logged_hours",
    "assign_to",
    "decrement_stock",
    "set_status",
]
