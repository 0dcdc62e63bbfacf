"""
后台副作用调度
支付扣款和邮件通知以独立任务运行，失败只记日志，不回滚订单或库存
"""
import asyncio
from typing import Awaitable, Set

from sf_core.utils.logger import get_logger
from sf_core.utils.metrics import SIDE_EFFECT_FAILURES


class SideEffectDispatcher:
    """跟踪所有后台任务，关闭时可以等待它们完成"""

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()
        self.logger = get_logger(self.__class__.__name__)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def dispatch(self, name: str, awaitable: Awaitable) -> asyncio.Task:
        """启动一个后台副作用"""
        task = asyncio.create_task(self._run(name, awaitable), name=f"side-effect:{name}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, name: str, awaitable: Awaitable) -> None:
        try:
            await awaitable
        except asyncio.CancelledError:
            self.logger.warning("Side effect cancelled", side_effect=name)
            raise
        except Exception:
            SIDE_EFFECT_FAILURES.labels(name=name).inc()
            self.logger.error("Side effect failed", side_effect=name, exc_info=True)

    async def drain(self) -> None:
        """等待所有后台任务（包括执行过程中新派发的任务）完成"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self, timeout: float = 10.0) -> None:
        """关闭时等待后台任务，超时后取消剩余任务"""
        if not self._tasks:
            return
        try:
            await asyncio.wait_for(self.drain(), timeout=timeout)
        except asyncio.TimeoutError:
            self.logger.warning("Cancelling unfinished side effects", count=len(self._tasks))
            for task in list(self._tasks):
                task.cancel()
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
