"""
支付网关端口
扣款结果通过 OrderOrchestrator.process_payment 回写到订单
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

import httpx

from sf_core.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class PaymentResult:
    """一次扣款尝试的结果"""
    success: bool
    transaction_id: Optional[str] = None
    failure_reason: Optional[str] = None


class PaymentGateway(ABC):
    """支付网关抽象接口"""

    @abstractmethod
    async def capture(self, order_id: str, method: str, amount: Decimal) -> PaymentResult:
        """对订单发起扣款"""
        ...


class HttpPaymentGateway(PaymentGateway):
    """通过 HTTP 调用支付网关"""

    def __init__(
        self,
        base_url: str,
        currency: str = "BRL",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.currency = currency
        self.timeout = timeout
        self.transport = transport

    async def capture(self, order_id: str, method: str, amount: Decimal) -> PaymentResult:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.post(
                    f"{self.base_url}/captures",
                    json={
                        "order_id": order_id,
                        "method": method,
                        "amount": str(amount),
                        "currency": self.currency,
                    },
                    headers={"Idempotency-Key": order_id},
                )
                response.raise_for_status()
                data = response.json()
            except httpx.TimeoutException:
                logger.error("Payment gateway timeout", order_id=order_id)
                raise
            except httpx.HTTPStatusError as e:
                logger.error(f"Payment gateway HTTP error: {e.response.status_code}",
                             order_id=order_id)
                raise

        if data.get("status") == "succeeded":
            return PaymentResult(success=True, transaction_id=data.get("transaction_id"))
        return PaymentResult(
            success=False,
            failure_reason=data.get("failure_reason") or "Payment declined",
        )
