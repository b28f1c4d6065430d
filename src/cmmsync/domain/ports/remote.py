"""Port for the remote CMMS store the dashboards mutate."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from cmmsync.domain.model import Part, PartCheckout, TimeEntry, WorkOrder, WorkOrderStatus


class RemoteOperationError(RuntimeError):
    """A remote call failed: network error or non-2xx response."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@runtime_checkable
class WorkOrderStore(Protocol):
    """Async access to work orders and parts; every failure raises ``RemoteOperationError``."""

    async def fetch_work_orders(
        self,
        filters: Mapping[str, str] | None = None,
    ) -> Sequence[WorkOrder]: ...

    async def update_status(self, work_order_id: int, status: WorkOrderStatus) -> WorkOrder: ...

    async def assign(self, work_order_id: int, user_id: int) -> WorkOrder: ...

    async def log_time(self, entry: TimeEntry) -> None: ...

    async def fetch_parts(self) -> Sequence[Part]: ...

    async def checkout_parts(self, checkout: PartCheckout) -> None: ...


__all__ = ["RemoteOperationError", "WorkOrderStore"]
