"""Ports connecting the domain to external services."""

from __future__ import annotations

from .remote import RemoteOperationError, WorkOrderStore

__all__ = ["RemoteOperationError", "WorkOrderStore"]
