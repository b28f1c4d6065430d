"""Public interface for the CMMS REST adapter."""

from __future__ import annotations

from .client import HttpWorkOrderStore
from .schema import ErrorResponse, PartPayload, WorkOrderPayload
from .translator import checkout_body, parse_part, parse_work_order, time_entry_body

__all__ = [
    "ErrorResponse",
    "HttpWorkOrderStore",
    "PartPayload",
    "WorkOrderPayload",
    "checkout_body",
    "parse_part",
    "parse_work_order",
    "time_entry_body",
]
