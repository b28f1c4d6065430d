"""Work-order and inventory records as the dashboards see them."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime


class WorkOrderStatus(StrEnum):
    OPEN = "OPEN"
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    ON_HOLD = "ON_HOLD"
    COMPLETED = "COMPLETED"
    CANCELED = "CANCELED"


class WorkOrderPriority(StrEnum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


@dataclass(frozen=True, slots=True, kw_only=True)
class WorkOrder:
    """Snapshot of one work order as last reported by the server (or patched locally)."""

    id: int
    title: str
    status: WorkOrderStatus = WorkOrderStatus.OPEN
    priority: WorkOrderPriority = WorkOrderPriority.MEDIUM
    updated_at: datetime | None = None
    assigned_to_id: int | None = None
    total_logged_hours: float = 0.0
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def is_assigned(self) -> bool:
        return self.assigned_to_id is not None


@dataclass(frozen=True, slots=True, kw_only=True)
class Part:
    id: int
    name: str
    sku: str | None = None
    stock_level: int = 0
    reorder_point: int = 0
    unit_cost: float | None = None

    @property
    def is_low_stock(self) -> bool:
        return self.stock_level <= self.reorder_point


@dataclass(frozen=True, slots=True, kw_only=True)
class TimeEntry:
    work_order_id: int
    hours: float
    description: str
    category: str = "LABOR"
    billable: bool = True

    def __post_init__(self) -> None:
        if self.hours <= 0:
            raise ValueError("Logged hours must be positive")


@dataclass(frozen=True, slots=True)
class CheckoutLine:
    part_id: int
    quantity: int

    def __post_init__(self) -> None:
        if self.quantity <= 0:
            raise ValueError("Checkout quantity must be positive")


@dataclass(frozen=True, slots=True, kw_only=True)
class PartCheckout:
    """Parts pulled from inventory in one cart submission."""

    lines: tuple[CheckoutLine, ...]
    requested_by: str = "Unknown User"
    reason: str = "Work order materials"
    notes: str | None = None
    work_order_id: int | None = None

    def __post_init__(self) -> None:
        if not self.lines:
            raise ValueError("Checkout must include at least one part")


__all__ = [
    "CheckoutLine",
    "Part",
    "PartCheckout",
    "TimeEntry",
    "WorkOrder",
    "WorkOrderPriority",
    "WorkOrderStatus",
]
