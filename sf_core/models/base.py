"""
StoreFlow 数据库基础模型
遵循约束：UTC 时间、Decimal 金额、统一命名规范
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict

from sqlalchemy import BigInteger, DateTime, Integer
from sqlalchemy.orm import DeclarativeBase

# SQLite 只有 INTEGER PRIMARY KEY 才会自增
BigIntPK = BigInteger().with_variant(Integer, "sqlite")


def utcnow() -> datetime:
    """返回UTC时区的当前时间"""
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """数据库模型基类"""

    # 统一类型映射
    type_annotation_map = {
        datetime: DateTime(timezone=True),  # 强制使用 timezone-aware datetime
    }

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        result = {}
        for column in self.__table__.columns:
            value = getattr(self, column.key)

            if isinstance(value, Decimal):
                result[column.key] = str(value)
            elif isinstance(value, datetime):
                result[column.key] = value.isoformat()
            else:
                result[column.key] = value

        return result
