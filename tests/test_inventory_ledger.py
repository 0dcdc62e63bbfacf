"""
库存台账测试
"""
import asyncio

import pytest

from sf_core.event_bus import INVENTORY_LOW_STOCK, INVENTORY_UPDATED
from sf_core.utils.errors import (
    ConflictError, InvalidQuantityError, NotFoundError, ValidationError
)


async def test_first_adjust_creates_record(ledger, settings):
    record = await ledger.adjust("A", 20, "restock")

    assert record.quantity == 20
    assert record.reserved == 0
    assert record.available == 20
    assert record.low_stock_threshold == settings.inventory_default_threshold
    assert record.version == 1


async def test_first_adjust_with_negative_delta_creates_empty_record(ledger, container):
    record = await ledger.adjust("A", -5, "damage")

    assert record.quantity == 0
    changes = await container.change_log.query(product_id="A")
    assert [c.quantity_change for c in changes] == [0]


async def test_restock_then_sale_restores_quantity(ledger):
    await ledger.adjust("A", 10, "restock")
    await ledger.adjust("A", 4, "restock")
    record = await ledger.adjust("A", -4, "sale")

    assert record.quantity == 10
    assert record.version == 3


async def test_adjust_never_drops_below_reserved(ledger, container):
    await ledger.adjust("A", 5, "restock")
    assert await ledger.reserve("A", 3) is True

    record = await ledger.adjust("A", -10, "damage")

    assert record.quantity == 3
    assert record.reserved == 3
    assert record.available == 0
    changes = await container.change_log.query(product_id="A")
    assert changes[-1].reason == "damage"
    assert changes[-1].quantity_change == -2


async def test_adjust_rejects_unknown_reason(ledger):
    with pytest.raises(ValidationError) as exc_info:
        await ledger.adjust("A", 5, "reservation")
    assert exc_info.value.code == "INVALID_REASON"
    assert await ledger.get_inventory("A") is None


async def test_reserve_reduces_available(ledger):
    await ledger.adjust("A", 5, "restock")

    assert await ledger.reserve("A", 2) is True

    record = await ledger.get_inventory("A")
    assert record.quantity == 5
    assert record.reserved == 2
    assert await ledger.get_available("A") == 3


async def test_reserve_insufficient_returns_false(ledger):
    await ledger.adjust("A", 1, "restock")

    assert await ledger.reserve("A", 2) is False

    record = await ledger.get_inventory("A")
    assert record.reserved == 0


async def test_reserve_unknown_product_returns_false(ledger):
    assert await ledger.reserve("missing", 1) is False
    assert await ledger.get_available("missing") == 0


@pytest.mark.parametrize("quantity", [0, -1])
async def test_reserve_rejects_non_positive_quantity(ledger, quantity):
    await ledger.adjust("A", 5, "restock")
    with pytest.raises(InvalidQuantityError):
        await ledger.reserve("A", quantity)


async def test_concurrent_reserve_of_last_unit(ledger):
    await ledger.adjust("A", 1, "restock")

    results = await asyncio.gather(ledger.reserve("A", 1), ledger.reserve("A", 1))

    assert sorted(results) == [False, True]
    record = await ledger.get_inventory("A")
    assert record.reserved == 1
    assert record.available == 0


async def test_concurrent_reserves_never_oversell(ledger):
    await ledger.adjust("A", 5, "restock")

    results = await asyncio.gather(*(ledger.reserve("A", 1) for _ in range(10)))

    assert results.count(True) == 5
    record = await ledger.get_inventory("A")
    assert record.reserved == 5
    assert record.quantity == 5


async def test_concurrent_reserves_all_succeed_while_stock_remains(ledger, settings):
    assert settings.reservation_max_retries == 5
    await ledger.adjust("A", 100, "restock")

    results = await asyncio.gather(*(ledger.reserve("A", 1) for _ in range(30)))

    assert all(results)
    record = await ledger.get_inventory("A")
    assert record.reserved == 30
    assert record.available == 70


async def test_concurrent_commits_and_restocks_do_not_conflict(ledger):
    await ledger.adjust("A", 50, "restock")
    for _ in range(20):
        await ledger.reserve("A", 1)

    await asyncio.gather(
        *(ledger.commit("A", 1) for _ in range(20)),
        *(ledger.adjust("A", 1, "restock") for _ in range(10)),
    )

    record = await ledger.get_inventory("A")
    assert record.quantity == 40
    assert record.reserved == 0


async def test_release_returns_units_to_available(ledger):
    await ledger.adjust("A", 5, "restock")
    await ledger.reserve("A", 3)

    await ledger.release("A", 2)

    record = await ledger.get_inventory("A")
    assert record.reserved == 1
    assert record.available == 4


async def test_release_is_floored_at_zero(ledger):
    await ledger.adjust("A", 5, "restock")
    await ledger.reserve("A", 1)

    await ledger.release("A", 4)

    record = await ledger.get_inventory("A")
    assert record.reserved == 0
    assert record.quantity == 5


async def test_release_unknown_product_is_noop(ledger):
    await ledger.release("missing", 1)
    assert await ledger.get_inventory("missing") is None


async def test_commit_converts_reservation_into_sale(ledger, container):
    await ledger.adjust("A", 5, "restock")
    await ledger.reserve("A", 2)

    record = await ledger.commit("A", 2, reference="order-1", actor="user-1")

    assert record.quantity == 3
    assert record.reserved == 0
    assert record.available == 3
    sale = (await container.change_log.query(product_id="A"))[-1]
    assert sale.reason == "sale"
    assert sale.quantity_change == -2
    assert sale.reference == "order-1"
    assert sale.performed_by == "user-1"


async def test_commit_without_reservation_is_rejected(ledger):
    await ledger.adjust("A", 5, "restock")

    with pytest.raises(ConflictError) as exc_info:
        await ledger.commit("A", 1)
    assert exc_info.value.code == "RESERVATION_MISSING"

    record = await ledger.get_inventory("A")
    assert record.quantity == 5


async def test_commit_unknown_product_is_not_found(ledger):
    with pytest.raises(NotFoundError):
        await ledger.commit("missing", 1)


async def test_counters_stay_consistent_under_mixed_operations(ledger):
    await ledger.adjust("A", 8, "restock")

    await asyncio.gather(
        ledger.reserve("A", 3),
        ledger.reserve("A", 3),
        ledger.adjust("A", -6, "damage"),
        ledger.adjust("A", 2, "restock"),
        ledger.reserve("A", 2),
    )

    record = await ledger.get_inventory("A")
    assert 0 <= record.reserved <= record.quantity
    assert record.available == record.quantity - record.reserved


async def test_change_log_sign_conventions(ledger, container):
    await ledger.adjust("A", 5, "restock")
    await ledger.reserve("A", 2)
    await ledger.release("A", 1)
    await ledger.commit("A", 1, reference="order-9")
    await ledger.adjust("A", 1, "return", reference="order-9")

    changes = await container.change_log.query(product_id="A")

    assert [(c.reason, c.quantity_change) for c in changes] == [
        ("restock", 5),
        ("reservation", -2),
        ("release", 1),
        ("sale", -1),
        ("return", 1),
    ]


async def test_low_stock_alerts(ledger):
    await ledger.adjust("A", 3, "restock")
    await ledger.adjust("B", 1, "restock")
    await ledger.adjust("B", -1, "sale")
    await ledger.adjust("C", 50, "restock")

    alerts = await ledger.get_low_stock_alerts()

    by_product = {alert.product_id: alert for alert in alerts}
    assert set(by_product) == {"A", "B"}
    assert by_product["A"].alert_type == "low_stock"
    assert by_product["A"].threshold == 10
    assert by_product["B"].alert_type == "out_of_stock"


async def test_set_low_stock_threshold(ledger):
    await ledger.adjust("C", 50, "restock")

    record = await ledger.set_low_stock_threshold("C", 60)
    assert record.low_stock_threshold == 60
    assert [a.product_id for a in await ledger.get_low_stock_alerts()] == ["C"]

    record = await ledger.set_low_stock_threshold("C", -3)
    assert record.low_stock_threshold == 0


async def test_set_threshold_for_unknown_product(ledger):
    with pytest.raises(NotFoundError):
        await ledger.set_low_stock_threshold("missing", 5)


async def test_inventory_summary(ledger):
    await ledger.adjust("A", 3, "restock")
    await ledger.adjust("B", 0, "restock")
    await ledger.adjust("C", 50, "restock")
    await ledger.reserve("C", 5)

    summary = await ledger.get_inventory_summary()

    assert summary == {
        "total_products": 3,
        "total_quantity": 53,
        "total_reserved": 5,
        "low_stock_count": 1,
        "out_of_stock_count": 1,
    }


async def test_inventory_batch_skips_missing(ledger):
    await ledger.adjust("A", 3, "restock")

    records = await ledger.get_inventory_batch(["A", "missing"])

    assert list(records) == ["A"]
    assert await ledger.get_inventory_batch([]) == {}


async def test_bulk_adjust_applies_each_item(ledger):
    records = await ledger.bulk_adjust([
        {"product_id": "A", "delta": 5, "reason": "restock"},
        {"product_id": "B", "delta": 7},
    ], actor="admin")

    assert [(r.product_id, r.quantity) for r in records] == [("A", 5), ("B", 7)]


async def test_bulk_adjust_validates_before_applying(ledger):
    with pytest.raises(ValidationError):
        await ledger.bulk_adjust([
            {"product_id": "A", "delta": 5, "reason": "restock"},
            {"product_id": "B", "delta": 2, "reason": "gift"},
        ])

    assert await ledger.get_inventory("A") is None


async def test_publishes_update_and_low_stock_events(ledger, event_bus):
    await ledger.adjust("A", 20, "restock")
    await ledger.adjust("A", -15, "sale")
    await ledger.adjust("A", -1, "sale")

    updates = event_bus.payloads(INVENTORY_UPDATED)
    assert [u["quantity"] for u in updates] == [20, 5, 4]

    # 只在跨过阈值时告警一次
    low_stock = event_bus.payloads(INVENTORY_LOW_STOCK)
    assert len(low_stock) == 1
    assert low_stock[0]["alert_type"] == "low_stock"
    assert low_stock[0]["quantity"] == 5


async def test_commit_below_threshold_publishes_alert(ledger, event_bus):
    await ledger.adjust("A", 12, "restock")
    await ledger.reserve("A", 3)
    assert event_bus.payloads(INVENTORY_LOW_STOCK) == []

    await ledger.commit("A", 3)

    low_stock = event_bus.payloads(INVENTORY_LOW_STOCK)
    assert [(a["alert_type"], a["quantity"]) for a in low_stock] == [("low_stock", 9)]


async def test_event_bus_failure_does_not_fail_mutation(ledger, event_bus):
    event_bus.fail = True

    record = await ledger.adjust("A", 5, "restock")

    assert record.quantity == 5
    assert await ledger.reserve("A", 1) is True
