"""
支付失败对账测试
"""
from datetime import timedelta

from sf_core.models import OrderStatus
from sf_core.tasks.reconciliation import run_reconciliation


async def _failed_order(container, place_order, user_id="u1", quantity=2):
    container.payment_gateway.configure(should_succeed=False)
    order = await place_order(user_id, {"A": quantity})
    await container.dispatcher.drain()
    container.payment_gateway.configure(should_succeed=True)
    return order


async def test_cancels_stale_failed_orders(orchestrator, ledger, container, place_order):
    await ledger.adjust("A", 5, "restock")
    failed = await _failed_order(container, place_order)
    paid = await place_order("u2", {"A": 1})
    await container.dispatcher.drain()

    cancelled = await orchestrator.reconcile_failed_payments(timedelta(0))

    assert cancelled == [failed.id]
    assert (await orchestrator.get_order(failed.id)).status == OrderStatus.CANCELLED
    assert (await orchestrator.get_order(paid.id)).status == OrderStatus.PAID
    assert await ledger.get_available("A") == 4


async def test_recent_failures_are_left_alone(orchestrator, ledger, container, place_order):
    await ledger.adjust("A", 5, "restock")
    failed = await _failed_order(container, place_order)

    cancelled = await orchestrator.reconcile_failed_payments(timedelta(hours=1))

    assert cancelled == []
    assert (await orchestrator.get_order(failed.id)).status == OrderStatus.PENDING


async def test_run_reconciliation_with_container(orchestrator, ledger, container, place_order):
    await ledger.adjust("A", 5, "restock")
    failed = await _failed_order(container, place_order)

    result = await run_reconciliation(0, container=container)

    assert result == {"cancelled": 1, "order_ids": [failed.id]}
    # 传入的容器不会被关闭
    assert await container.db_manager.check_connection()
    assert await run_reconciliation(0, container=container) == {"cancelled": 0, "order_ids": []}


def test_task_is_on_beat_schedule():
    from sf_core.tasks.celery_app import celery_app
    from sf_core.tasks.reconciliation import reconcile_failed_payments

    assert reconcile_failed_payments.name == "sf.core.reconcile_failed_payments"
    entry = celery_app.conf.beat_schedule["reconcile-failed-payments"]
    assert entry["task"] == reconcile_failed_payments.name
