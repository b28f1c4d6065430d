from __future__ import annotations

import asyncio
import json
from collections.abc import Callable  # noqa: TC003
from datetime import UTC, datetime

import httpx
import pytest

from cmmsync.adapters.cmms import HttpWorkOrderStore, parse_part, parse_work_order
from cmmsync.config import MissingConfigurationError
from cmmsync.domain.model import (
    CheckoutLine,
    PartCheckout,
    TimeEntry,
    WorkOrderPriority,
    WorkOrderStatus,
)
from cmmsync.domain.ports import RemoteOperationError

type StoreFactory = Callable[[Callable[[httpx.Request], httpx.Response]], HttpWorkOrderStore]

WORK_ORDER_PAYLOAD: dict[str, object] = {
    "id": 12,
    "title": "Replace pump seal",
    "status": "in_progress",
    "priority": "high",
    "assignedTo": {"id": 7, "name": "Sam Tech"},
    "totalLoggedHours": None,
    "updatedAt": "2025-03-01T12:00:00Z",
    "location": {"name": "Boiler room"},
}


def test_parse_work_order_reads_camel_case_fields() -> None:
    order = parse_work_order(WORK_ORDER_PAYLOAD)

    assert order.id == 12
    assert order.status is WorkOrderStatus.IN_PROGRESS
    assert order.priority is WorkOrderPriority.HIGH
    assert order.assigned_to_id == 7
    assert order.total_logged_hours == 0.0
    assert order.updated_at == datetime(2025, 3, 1, 12, tzinfo=UTC)


def test_parse_work_order_prefers_assigned_to_id() -> None:
    order = parse_work_order({**WORK_ORDER_PAYLOAD, "assignedToId": 3})

    assert order.assigned_to_id == 3


def test_parse_part_reads_stock_fields() -> None:
    part = parse_part(
        {"id": 4, "name": "Seal kit", "stockLevel": 2, "reorderPoint": 3, "unitCost": 12.5}
    )

    assert part.stock_level == 2
    assert part.is_low_stock
    assert part.unit_cost == 12.5


def test_fetch_work_orders_sends_token_and_filters(make_store: StoreFactory) -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"data": [WORK_ORDER_PAYLOAD]})

    async def scenario() -> list:
        async with make_store(handler) as store:
            return await store.fetch_work_orders({"assignedTo": "7"})

    orders = asyncio.run(scenario())

    assert [order.id for order in orders] == [12]
    (request,) = requests
    assert request.url.path == "/api/work-orders"
    assert request.url.params["assignedTo"] == "7"
    assert request.headers["Authorization"] == "Bearer test-token"


def test_update_status_puts_status_body(make_store: StoreFactory) -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={**WORK_ORDER_PAYLOAD, "status": "COMPLETED"})

    async def scenario():
        async with make_store(handler) as store:
            return await store.update_status(12, WorkOrderStatus.COMPLETED)

    order = asyncio.run(scenario())

    assert order.status is WorkOrderStatus.COMPLETED
    (request,) = requests
    assert request.method == "PUT"
    assert request.url.path == "/api/work-orders/12/status"
    assert json.loads(request.content) == {"status": "COMPLETED"}


def test_assign_puts_assignee(make_store: StoreFactory) -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"data": {**WORK_ORDER_PAYLOAD, "assignedToId": 9}})

    async def scenario():
        async with make_store(handler) as store:
            return await store.assign(12, 9)

    order = asyncio.run(scenario())

    assert order.assigned_to_id == 9
    assert requests[0].url.path == "/api/work-orders/12"
    assert json.loads(requests[0].content) == {"assignedToId": 9}


def test_log_time_and_checkout_bodies(make_store: StoreFactory) -> None:
    bodies: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        bodies[request.url.path] = json.loads(request.content)
        return httpx.Response(201, json={"success": True})

    async def scenario() -> None:
        async with make_store(handler) as store:
            await store.log_time(
                TimeEntry(work_order_id=12, hours=1.5, description="Swapped seal")
            )
            await store.checkout_parts(
                PartCheckout(
                    lines=(CheckoutLine(4, 2),),
                    requested_by="Sam Tech",
                    work_order_id=12,
                )
            )

    asyncio.run(scenario())

    assert bodies["/api/work-orders/12/time"] == {
        "description": "Swapped seal",
        "hours": 1.5,
        "category": "LABOR",
        "billable": True,
    }
    assert bodies["/api/parts/checkout"] == {
        "items": [{"id": 4, "quantity": 2}],
        "requestedBy": "Sam Tech",
        "reason": "Work order materials",
        "workOrderId": 12,
    }


def test_server_error_message_is_surfaced(make_store: StoreFactory) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(409, json={"error": {"message": "Work order is already closed"}})

    async def scenario() -> None:
        async with make_store(handler) as store:
            await store.update_status(12, WorkOrderStatus.IN_PROGRESS)

    with pytest.raises(RemoteOperationError) as exc:
        asyncio.run(scenario())

    assert exc.value.status_code == 409
    assert str(exc.value) == "Work order is already closed"


def test_status_code_message_used_without_body(make_store: StoreFactory) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404)

    async def scenario() -> None:
        async with make_store(handler) as store:
            await store.assign(99, 1)

    with pytest.raises(RemoteOperationError, match="was not found") as exc:
        asyncio.run(scenario())

    assert exc.value.status_code == 404


def test_network_failure_on_mutation_is_not_retried(make_store: StoreFactory) -> None:
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.method)
        raise httpx.ConnectError("connection refused", request=request)

    async def scenario() -> None:
        async with make_store(handler) as store:
            await store.update_status(12, WorkOrderStatus.ON_HOLD)

    with pytest.raises(RemoteOperationError) as exc:
        asyncio.run(scenario())

    assert exc.value.status_code is None
    assert calls == ["PUT"]


def test_mutation_with_server_error_is_sent_once(make_store: StoreFactory) -> None:
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.method)
        return httpx.Response(503)

    async def scenario() -> None:
        async with make_store(handler) as store:
            await store.checkout_parts(PartCheckout(lines=(CheckoutLine(4, 1),)))

    with pytest.raises(RemoteOperationError, match="temporarily unavailable"):
        asyncio.run(scenario())

    assert calls == ["POST"]


def test_reads_are_retried_on_unavailable(make_store: StoreFactory) -> None:
    responses = iter(
        [
            httpx.Response(503),
            httpx.Response(200, json=[{"id": 4, "name": "Seal kit", "stockLevel": 5}]),
        ]
    )
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.method)
        return next(responses)

    async def scenario():
        async with make_store(handler) as store:
            return await store.fetch_parts()

    parts = asyncio.run(scenario())

    assert [part.stock_level for part in parts] == [5]
    assert calls == ["GET", "GET"]


def test_unexpected_payload_raises_remote_error(make_store: StoreFactory) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"items": []})

    async def scenario() -> None:
        async with make_store(handler) as store:
            await store.fetch_work_orders()

    with pytest.raises(RemoteOperationError, match="Unexpected work orders payload"):
        asyncio.run(scenario())


def test_invalid_record_raises_remote_error(make_store: StoreFactory) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[{"id": "not-a-number"}])

    async def scenario() -> None:
        async with make_store(handler) as store:
            await store.fetch_parts()

    with pytest.raises(RemoteOperationError):
        asyncio.run(scenario())


def test_store_requires_configuration() -> None:
    with pytest.raises(MissingConfigurationError) as exc:
        HttpWorkOrderStore()

    assert "CMMS_API_TOKEN" in str(exc.value)
    assert "CMMS_API_URL" in str(exc.value)
