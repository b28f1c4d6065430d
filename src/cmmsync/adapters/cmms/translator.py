"""Translate CMMS payloads into domain records and request bodies."""

from __future__ import annotations

from typing import TYPE_CHECKING

from cmmsync.domain.model import Part, WorkOrder

from .schema import PartPayload, WorkOrderPayload

if TYPE_CHECKING:
    from cmmsync.domain.model import PartCheckout, TimeEntry


def parse_work_order(payload: object) -> WorkOrder:
    model = WorkOrderPayload.model_validate(payload)
    assigned_to_id = model.assigned_to_id
    if assigned_to_id is None and model.assigned_to is not None:
        assigned_to_id = model.assigned_to.id
    return WorkOrder(
        id=model.id,
        title=model.title,
        status=model.status,
        priority=model.priority,
        updated_at=model.updated_at,
        assigned_to_id=assigned_to_id,
        total_logged_hours=model.total_logged_hours,
        started_at=model.started_at,
        completed_at=model.completed_at,
    )


def parse_part(payload: object) -> Part:
    model = PartPayload.model_validate(payload)
    return Part(
        id=model.id,
        name=model.name,
        sku=model.sku,
        stock_level=model.stock_level,
        reorder_point=model.reorder_point,
        unit_cost=model.unit_cost,
    )


def time_entry_body(entry: TimeEntry) -> dict[str, object]:
    return {
        "description": entry.description,
        "hours": entry.hours,
        "category": entry.category,
        "billable": entry.billable,
    }


def checkout_body(checkout: PartCheckout) -> dict[str, object]:
    body: dict[str, object] = {
        "items": [{"id": line.part_id, "quantity": line.quantity} for line in checkout.lines],
        "requestedBy": checkout.requested_by,
        "reason": checkout.reason,
    }
    if checkout.notes:
        body["notes"] = checkout.notes
    if checkout.work_order_id is not None:
        body["workOrderId"] = checkout.work_order_id
    return body
