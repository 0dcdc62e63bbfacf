"""
基础服务类
"""
from typing import Any

from sf_core.database import DatabaseManager
from sf_core.utils.logger import get_logger
from sf_core.utils.errors import StoreFlowException, InternalServerError


class BaseService:
    """基础服务类，依赖由容器在构造时注入"""

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager
        self.logger = get_logger(self.__class__.__name__)

    async def execute_with_transaction(
        self,
        operation,
        *args,
        **kwargs
    ) -> Any:
        """在事务中执行操作，正常返回时提交"""
        try:
            async with self.db_manager.get_transaction() as session:
                return await operation(session, *args, **kwargs)
        except StoreFlowException:
            raise
        except Exception as e:
            self.logger.error("Transaction operation failed", exc_info=True)
            raise InternalServerError(
                code="TRANSACTION_FAILED",
                detail=f"Database transaction failed: {str(e)}"
            )

    async def execute_with_session(
        self,
        operation,
        *args,
        **kwargs
    ) -> Any:
        """使用数据库会话执行只读操作"""
        try:
            async with self.db_manager.get_session() as session:
                return await operation(session, *args, **kwargs)
        except StoreFlowException:
            raise
        except Exception as e:
            self.logger.error("Session operation failed", exc_info=True)
            raise InternalServerError(
                code="SESSION_OPERATION_FAILED",
                detail=f"Database operation failed: {str(e)}"
            )
