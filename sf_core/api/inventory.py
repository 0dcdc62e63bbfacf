"""
库存 API 路由
"""
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query

from sf_core.services.change_log import ChangeLog
from sf_core.services.inventory import InventoryLedger
from sf_core.utils.errors import NotFoundError, ValidationError
from sf_core.utils.logger import get_logger
from .deps import get_ledger, get_change_log, require_admin
from .models import (
    ApiResponse, AdjustInventoryRequest, BulkAdjustRequest, ThresholdRequest,
    InventoryResponse, InventoryAlertResponse, InventoryChangeResponse
)

router = APIRouter()
logger = get_logger(__name__)


def _parse_datetime(value: Optional[str], field: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(
            code=f"INVALID_{field.upper()}",
            detail=f"Invalid {field} format, expected ISO8601"
        )


@router.get("/admin/alerts", response_model=ApiResponse[List[InventoryAlertResponse]])
async def get_low_stock_alerts(
    _: str = Depends(require_admin),
    ledger: InventoryLedger = Depends(get_ledger)
):
    """低库存与缺货告警"""
    alerts = await ledger.get_low_stock_alerts()
    return ApiResponse.success(
        [InventoryAlertResponse(**alert.to_dict()) for alert in alerts],
        metadata={"count": len(alerts)}
    )


@router.get("/admin/summary", response_model=ApiResponse[Dict[str, int]])
async def get_inventory_summary(
    _: str = Depends(require_admin),
    ledger: InventoryLedger = Depends(get_ledger)
):
    """库存汇总"""
    return ApiResponse.success(await ledger.get_inventory_summary())


@router.get("/admin/changes", response_model=ApiResponse[List[InventoryChangeResponse]])
async def get_inventory_changes(
    product_id: Optional[str] = Query(None, description="商品ID"),
    start: Optional[str] = Query(None, description="开始时间 (ISO8601)"),
    end: Optional[str] = Query(None, description="结束时间 (ISO8601)"),
    limit: int = Query(100, ge=1, le=1000),
    _: str = Depends(require_admin),
    change_log: ChangeLog = Depends(get_change_log)
):
    """库存变更日志"""
    records = await change_log.query(
        product_id=product_id,
        start=_parse_datetime(start, "start"),
        end=_parse_datetime(end, "end"),
        limit=limit
    )
    return ApiResponse.success(
        [InventoryChangeResponse.from_record(record) for record in records],
        metadata={"count": len(records)}
    )


@router.post("/bulk-adjust", response_model=ApiResponse[List[InventoryResponse]])
async def bulk_adjust_inventory(
    body: BulkAdjustRequest,
    actor: str = Depends(require_admin),
    ledger: InventoryLedger = Depends(get_ledger)
):
    """批量调整库存"""
    records = await ledger.bulk_adjust(
        [item.model_dump() for item in body.items],
        actor=actor
    )
    return ApiResponse.success([InventoryResponse.from_record(record) for record in records])


@router.get("", response_model=ApiResponse[List[InventoryResponse]])
async def get_inventory_batch(
    product_ids: str = Query(..., description="逗号分隔的商品ID"),
    ledger: InventoryLedger = Depends(get_ledger)
):
    """批量查询库存"""
    ids = [pid.strip() for pid in product_ids.split(",") if pid.strip()]
    records = await ledger.get_inventory_batch(ids)
    return ApiResponse.success(
        [InventoryResponse.from_record(records[pid]) for pid in ids if pid in records],
        metadata={"missing": [pid for pid in ids if pid not in records]}
    )


@router.get("/{product_id}", response_model=ApiResponse[InventoryResponse])
async def get_inventory(
    product_id: str,
    ledger: InventoryLedger = Depends(get_ledger)
):
    """查询单个商品库存"""
    record = await ledger.get_inventory(product_id)
    if record is None:
        raise NotFoundError(code="INVENTORY_NOT_FOUND", resource=f"Inventory for {product_id}")
    return ApiResponse.success(InventoryResponse.from_record(record))


@router.post("/{product_id}/adjust", response_model=ApiResponse[InventoryResponse])
async def adjust_inventory(
    product_id: str,
    body: AdjustInventoryRequest,
    actor: str = Depends(require_admin),
    ledger: InventoryLedger = Depends(get_ledger)
):
    """调整库存"""
    record = await ledger.adjust(
        product_id,
        body.delta,
        body.reason,
        reference=body.reference,
        actor=actor
    )
    return ApiResponse.success(InventoryResponse.from_record(record))


@router.put("/{product_id}/threshold", response_model=ApiResponse[InventoryResponse])
async def set_low_stock_threshold(
    product_id: str,
    body: ThresholdRequest,
    _: str = Depends(require_admin),
    ledger: InventoryLedger = Depends(get_ledger)
):
    """设置低库存阈值"""
    record = await ledger.set_low_stock_threshold(product_id, body.threshold)
    return ApiResponse.success(InventoryResponse.from_record(record))
