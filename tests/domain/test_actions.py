from __future__ import annotations

import asyncio

import pytest

from cmmsync.domain.actions import (
    ALL_WORK_ORDERS,
    PARTS,
    WORK_ORDERS,
    WorkOrderActions,
    add_logged_hours,
    assign_to,
    decrement_stock,
    set_status,
)
from cmmsync.domain.model import CheckoutLine, PartCheckout, TimeEntry, WorkOrderStatus
from cmmsync.domain.reconciliation import MutationStatus, OptimisticReconciler, QueryCache
from tests.helpers.work_orders import (
    CLIENT_NOW,
    SERVER_NOW,
    FakeClock,
    FakeWorkOrderStore,
    make_part,
    make_work_order,
    server_error,
)


def _wire(store: FakeWorkOrderStore) -> tuple[QueryCache, WorkOrderActions]:
    cache = QueryCache(clock=FakeClock())

    async def fetch_work_orders() -> tuple:
        return tuple(await store.fetch_work_orders())

    async def fetch_parts() -> tuple:
        return tuple(await store.fetch_parts())

    cache.register_fetcher(ALL_WORK_ORDERS, fetch_work_orders)
    cache.register_fetcher(WORK_ORDERS, fetch_work_orders)
    cache.register_fetcher(PARTS, fetch_parts)
    actions = WorkOrderActions(OptimisticReconciler(cache), store, clock=FakeClock())
    return cache, actions


def test_set_status_replaces_only_target_record() -> None:
    orders = (make_work_order(1), make_work_order(2))

    patched = set_status(2, WorkOrderStatus.IN_PROGRESS, now=CLIENT_NOW)(orders)

    assert patched[0] is orders[0]
    assert patched[1].status is WorkOrderStatus.IN_PROGRESS
    assert patched[1].updated_at == CLIENT_NOW
    assert orders[1].status is WorkOrderStatus.PENDING


def test_set_status_on_unknown_id_changes_nothing() -> None:
    orders = (make_work_order(1),)

    assert set_status(99, WorkOrderStatus.COMPLETED, now=CLIENT_NOW)(orders) == orders


def test_assign_to_sets_assignee() -> None:
    patched = assign_to(1, 42, now=CLIENT_NOW)((make_work_order(1),))

    assert patched[0].assigned_to_id == 42
    assert patched[0].is_assigned


def test_add_logged_hours_accumulates_and_marks_start() -> None:
    order = make_work_order(1, total_logged_hours=1.5)

    patched = add_logged_hours(1, 2.0, now=CLIENT_NOW)((order,))
    again = add_logged_hours(1, 0.5, now=SERVER_NOW)(patched)

    assert patched[0].total_logged_hours == pytest.approx(3.5)
    assert patched[0].started_at == CLIENT_NOW
    assert again[0].started_at == CLIENT_NOW
    assert again[0].total_logged_hours == pytest.approx(4.0)


def test_decrement_stock_aggregates_lines_and_clamps() -> None:
    parts = (make_part(1, stock_level=10), make_part(2, stock_level=1), make_part(3))
    lines = (CheckoutLine(1, 2), CheckoutLine(1, 3), CheckoutLine(2, 5))

    patched = decrement_stock(lines)(parts)

    assert [part.stock_level for part in patched] == [5, 0, 10]
    assert patched[2] is parts[2]


def test_update_status_is_visible_before_server_answers() -> None:
    store = FakeWorkOrderStore([make_work_order(1)])

    async def scenario() -> None:
        cache, actions = _wire(store)
        await cache.ensure(ALL_WORK_ORDERS)
        gate = store.hold()

        task = asyncio.create_task(actions.update_status(1, WorkOrderStatus.IN_PROGRESS))
        await asyncio.sleep(0)
        assert cache.get(ALL_WORK_ORDERS)[0].status is WorkOrderStatus.IN_PROGRESS
        assert store.work_orders[1].status is WorkOrderStatus.PENDING

        gate.set()
        result = await task
        await cache.wait_idle()

        assert result.ok
        assert result.value is not None
        assert result.value.status is WorkOrderStatus.IN_PROGRESS
        assert cache.get(ALL_WORK_ORDERS)[0].updated_at == SERVER_NOW

    asyncio.run(scenario())
    assert store.calls == [("update_status", (1, WorkOrderStatus.IN_PROGRESS))]
    assert store.fetches["work_orders"] >= 2


def test_update_status_failure_reverts_cache() -> None:
    store = FakeWorkOrderStore([make_work_order(1)])

    async def scenario() -> None:
        cache, actions = _wire(store)
        before = await cache.ensure(ALL_WORK_ORDERS)
        store.fail_next = server_error()

        result = await actions.update_status(1, WorkOrderStatus.COMPLETED)

        assert result.status is MutationStatus.ROLLED_BACK
        assert result.error is not None
        assert cache.get(ALL_WORK_ORDERS) == before
        assert not actions.reconciler.pending(ALL_WORK_ORDERS)

    asyncio.run(scenario())


def test_claim_and_log_time_converge_on_server_state() -> None:
    store = FakeWorkOrderStore([make_work_order(1)])

    async def scenario() -> None:
        cache, actions = _wire(store)
        await cache.ensure(ALL_WORK_ORDERS)

        claimed = await actions.claim(1, 7)
        logged = await actions.log_time(TimeEntry(work_order_id=1, hours=1.25, description="Pump"))
        await cache.wait_idle()

        assert claimed.ok
        assert logged.ok
        (order,) = cache.get(ALL_WORK_ORDERS)
        assert order.assigned_to_id == 7
        assert order.total_logged_hours == pytest.approx(1.25)
        assert order.started_at == SERVER_NOW

    asyncio.run(scenario())


def test_checkout_patches_parts_and_refreshes_work_orders() -> None:
    store = FakeWorkOrderStore([make_work_order(1)], [make_part(1, stock_level=4)])

    async def scenario() -> None:
        cache, actions = _wire(store)
        await cache.ensure(ALL_WORK_ORDERS)
        await cache.ensure(PARTS)
        gate = store.hold()

        checkout = PartCheckout(lines=(CheckoutLine(1, 3),), work_order_id=1)
        task = asyncio.create_task(actions.checkout_parts(checkout))
        await asyncio.sleep(0)
        assert cache.get(PARTS)[0].stock_level == 1

        gate.set()
        result = await task
        await cache.wait_idle()

        assert result.ok
        assert cache.get(PARTS)[0].stock_level == 1

    asyncio.run(scenario())
    assert store.fetches == {"work_orders": 2, "parts": 2}


def test_refresh_all_refetches_dashboard_keys() -> None:
    store = FakeWorkOrderStore([make_work_order(1)], [make_part(1)])

    async def scenario() -> None:
        cache, actions = _wire(store)
        await cache.ensure(ALL_WORK_ORDERS)
        await cache.ensure(PARTS)
        store.work_orders[1] = make_work_order(1, status=WorkOrderStatus.ON_HOLD)

        actions.refresh_all()
        await cache.wait_idle()

        assert cache.get(ALL_WORK_ORDERS)[0].status is WorkOrderStatus.ON_HOLD

    asyncio.run(scenario())
    # all-work-orders, work-orders and parts each refetch once
    assert store.fetches == {"work_orders": 3, "parts": 2}
