"""
商品目录端口
库存服务只读取名称和价格，目录本身的维护不在本服务范围内
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

import httpx

from sf_core.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ProductInfo:
    """目录中的商品信息"""
    product_id: str
    name: str
    price: Decimal


class ProductCatalog(ABC):
    """商品目录抽象接口"""

    @abstractmethod
    async def get_product(self, product_id: str) -> Optional[ProductInfo]:
        """查询商品，不存在时返回 None"""
        ...


class HttpProductCatalog(ProductCatalog):
    """通过 HTTP 访问商品目录服务"""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def get_product(self, product_id: str) -> Optional[ProductInfo]:
        url = f"{self.base_url}/products/{product_id}"
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.get(url)
                if response.status_code == 404:
                    return None
                response.raise_for_status()
                data = response.json()
                return ProductInfo(
                    product_id=str(data.get("id", product_id)),
                    name=data["name"],
                    price=Decimal(str(data["price"])),
                )
            except httpx.TimeoutException:
                logger.error("Catalog API timeout", product_id=product_id)
                raise
            except httpx.HTTPStatusError as e:
                logger.error(f"Catalog API HTTP error: {e.response.status_code}",
                             product_id=product_id)
                raise
