"""HTTP implementation of the ``WorkOrderStore`` port."""

from __future__ import annotations

from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, Unpack

import httpx
from pydantic import ValidationError

from cmmsync.adapters.http_resilience import ResilientClient
from cmmsync.config import CmmsConfig, get_cmms_config
from cmmsync.domain.ports import RemoteOperationError

from .schema import ErrorResponse, unwrap_collection
from .translator import checkout_body, parse_part, parse_work_order, time_entry_body

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping
    from types import TracebackType

    from cmmsync.adapters.http_resilience import RequestOptions
    from cmmsync.domain.model import Part, PartCheckout, TimeEntry, WorkOrder, WorkOrderStatus
    from cmmsync.domain.ports import WorkOrderStore

log = getLogger(__name__)

_STATUS_MESSAGES: dict[int, str] = {
    400: "Invalid request. Please check your input.",
    401: "You are not authorized. Please log in again.",
    403: "You do not have permission to perform this action.",
    404: "The requested resource was not found.",
    409: "There was a conflict with your request.",
    422: "The data provided is invalid.",
    429: "Too many requests. Please try again later.",
    500: "Internal server error. Please try again.",
    502: "Service temporarily unavailable.",
    503: "Service temporarily unavailable.",
}


def _default_client_factory(config: CmmsConfig) -> ResilientClient:
    return ResilientClient(config.resilience)


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        try:
            text = ErrorResponse.model_validate(payload).text
        except ValidationError:
            text = None
        if text:
            return text
    return _STATUS_MESSAGES.get(
        response.status_code,
        f"Request failed with status {response.status_code}",
    )


@dataclass(slots=True)
class HttpWorkOrderStore:
    """Talks to the CMMS REST API; one client is kept open for the store's lifetime."""

    config: CmmsConfig = field(default_factory=get_cmms_config)
    client_factory: Callable[[CmmsConfig], ResilientClient] = field(
        default=_default_client_factory
    )
    _client: ResilientClient | None = field(default=None, init=False, repr=False)

    async def __aenter__(self) -> HttpWorkOrderStore:
        self._ensure_client()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def fetch_work_orders(
        self,
        filters: Mapping[str, str] | None = None,
    ) -> list[WorkOrder]:
        payload = await self._request_json("GET", "/api/work-orders", params=dict(filters or {}))
        orders = self._records(payload, parse_work_order, "work orders")
        log.debug("Fetched %d work orders", len(orders))
        return orders

    async def update_status(self, work_order_id: int, status: WorkOrderStatus) -> WorkOrder:
        payload = await self._request_json(
            "PUT",
            f"/api/work-orders/{work_order_id}/status",
            json={"status": str(status)},
        )
        return self._record(payload, parse_work_order)

    async def assign(self, work_order_id: int, user_id: int) -> WorkOrder:
        payload = await self._request_json(
            "PUT",
            f"/api/work-orders/{work_order_id}",
            json={"assignedToId": user_id},
        )
        return self._record(payload, parse_work_order)

    async def log_time(self, entry: TimeEntry) -> None:
        await self._request_json(
            "POST",
            f"/api/work-orders/{entry.work_order_id}/time",
            json=time_entry_body(entry),
        )

    async def fetch_parts(self) -> list[Part]:
        payload = await self._request_json("GET", "/api/parts")
        return self._records(payload, parse_part, "parts")

    async def checkout_parts(self, checkout: PartCheckout) -> None:
        await self._request_json("POST", "/api/parts/checkout", json=checkout_body(checkout))

    def _ensure_client(self) -> ResilientClient:
        if self._client is None:
            self._client = self.client_factory(self.config)
        return self._client

    async def _request_json(
        self,
        method: str,
        path: str,
        **kwargs: Unpack[RequestOptions],
    ) -> object:
        client = self._ensure_client()
        headers = {"Authorization": f"Bearer {self.config.api_token}"}
        try:
            response = await client.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            raise RemoteOperationError(f"{method} {path} failed: {exc}") from exc

        if response.is_error:
            message = _error_message(response)
            log.error(f"CMMS API error {response.status_code} on {method} {path}: {message}")
            raise RemoteOperationError(message, status_code=response.status_code)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteOperationError(f"{method} {path} returned invalid JSON") from exc

    @staticmethod
    def _records[T](payload: object, parse: Callable[[object], T], what: str) -> list[T]:
        try:
            return [parse(item) for item in unwrap_collection(payload)]
        except ValueError as exc:
            raise RemoteOperationError(f"Unexpected {what} payload") from exc

    @staticmethod
    def _record[T](payload: object, parse: Callable[[object], T]) -> T:
        if isinstance(payload, dict) and "data" in payload:
            payload = payload["data"]
        try:
            return parse(payload)
        except ValidationError as exc:
            raise RemoteOperationError("Unexpected record payload") from exc


if TYPE_CHECKING:
    _store_check: WorkOrderStore = HttpWorkOrderStore()
