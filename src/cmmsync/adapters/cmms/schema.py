"""Pydantic models describing the CMMS REST payloads."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime  # noqa: TC003
from typing import cast

from pydantic import BaseModel, ConfigDict, Field, field_validator

from cmmsync.domain.model import WorkOrderPriority, WorkOrderStatus


def _upper(value: object) -> object:
    if isinstance(value, str):
        return value.strip().upper()
    return value


def _none_to_zero(value: object) -> object:
    return 0 if value is None else value


class CmmsBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class AssignedUserPayload(CmmsBaseModel):
    id: int
    email: str | None = None
    name: str | None = None


class WorkOrderPayload(CmmsBaseModel):
    id: int
    title: str
    status: WorkOrderStatus = WorkOrderStatus.OPEN
    priority: WorkOrderPriority = WorkOrderPriority.MEDIUM
    updated_at: datetime | None = Field(default=None, alias="updatedAt")
    assigned_to_id: int | None = Field(default=None, alias="assignedToId")
    assigned_to: AssignedUserPayload | None = Field(default=None, alias="assignedTo")
    total_logged_hours: float = Field(default=0.0, alias="totalLoggedHours")
    started_at: datetime | None = Field(default=None, alias="startedAt")
    completed_at: datetime | None = Field(default=None, alias="completedAt")

    _normalize_status = field_validator("status", "priority", mode="before")(_upper)
    _normalize_hours = field_validator("total_logged_hours", mode="before")(_none_to_zero)


class PartPayload(CmmsBaseModel):
    id: int
    name: str
    sku: str | None = None
    stock_level: int = Field(default=0, alias="stockLevel")
    reorder_point: int = Field(default=0, alias="reorderPoint")
    unit_cost: float | None = Field(default=None, alias="unitCost")

    _normalize_counts = field_validator("stock_level", "reorder_point", mode="before")(
        _none_to_zero
    )


class ErrorDetail(CmmsBaseModel):
    message: str | None = None


class ErrorResponse(CmmsBaseModel):
    message: str | None = None
    error: ErrorDetail | str | None = None

    @property
    def text(self) -> str | None:
        if isinstance(self.error, ErrorDetail) and self.error.message:
            return self.error.message
        if self.message:
            return self.message
        if isinstance(self.error, str):
            return self.error
        return None


def unwrap_collection(payload: object) -> list[object]:
    """Accept either a bare JSON array or an object wrapping it under ``data``."""

    if isinstance(payload, list):
        return cast(list[object], payload)
    if isinstance(payload, Mapping):
        data = cast(Mapping[str, object], payload).get("data")
        if isinstance(data, list):
            return cast(list[object], data)
    raise ValueError("Expected a JSON array of records")


__all__ = [
    "AssignedUserPayload",
    "ErrorResponse",
    "PartPayload",
    "WorkOrderPayload",
    "unwrap_collection",
]
