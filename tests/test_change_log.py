"""
库存变更日志测试
"""
from datetime import timedelta

from sf_core.database import DatabaseManager
from sf_core.models import utcnow
from sf_core.services.change_log import ChangeEntry, ChangeLog


async def test_record_and_query_by_product(container):
    change_log = container.change_log
    await change_log.record(ChangeEntry("A", 5, "restock", performed_by="admin"))
    await change_log.record(ChangeEntry("B", 3, "restock"))
    await change_log.record(ChangeEntry("A", -1, "sale", reference="order-1"))

    changes = await change_log.query(product_id="A")

    assert [(c.quantity_change, c.reason) for c in changes] == [(5, "restock"), (-1, "sale")]
    assert changes[0].performed_by == "admin"
    assert changes[1].reference == "order-1"
    assert len(await change_log.query()) == 3


async def test_query_orders_by_timestamp_and_filters_range(container):
    change_log = container.change_log
    now = utcnow()
    await change_log.record(ChangeEntry("A", 1, "restock", timestamp=now - timedelta(hours=2)))
    await change_log.record(ChangeEntry("A", 2, "restock", timestamp=now - timedelta(hours=3)))
    await change_log.record(ChangeEntry("A", 3, "restock", timestamp=now))

    ordered = await change_log.query(product_id="A")
    assert [c.quantity_change for c in ordered] == [2, 1, 3]

    recent = await change_log.query(product_id="A", start=now - timedelta(hours=2, minutes=30))
    assert [c.quantity_change for c in recent] == [1, 3]

    older = await change_log.query(product_id="A", end=now - timedelta(hours=1))
    assert [c.quantity_change for c in older] == [2, 1]

    assert len(await change_log.query(product_id="A", limit=2)) == 2


async def test_unknown_reason_is_dropped(container):
    result = await container.change_log.record(ChangeEntry("A", 1, "gift"))

    assert result is None
    assert await container.change_log.query() == []


async def test_storage_failure_is_swallowed(tmp_path):
    broken = DatabaseManager(db_url=f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'log.db'}")
    change_log = ChangeLog(broken)

    result = await change_log.record(ChangeEntry("A", 1, "restock"))

    assert result is None
    await broken.close()
