"""
目录事件总线

扫描成功后发出的通知，供界面其他部分刷新。发出即忘：
处理器的异常只记录日志，不会影响发出方。
"""

import asyncio
from collections import defaultdict
from enum import Enum
from typing import Any, Callable, Dict, List, Set

from .logging_config import get_logger


class CatalogEvent(str, Enum):
    ITEM_ADDED = "book-added"
    ITEM_UPDATED = "book-updated"
    POSSIBLE_SERIES_ENTRY = "possible-comic-found"


class EventBus:
    """进程内的发布/订阅"""

    def __init__(self):
        self._handlers: Dict[CatalogEvent, List[Callable]] = defaultdict(list)
        self._pending: Set[asyncio.Task] = set()
        self.logger = get_logger('EventBus')
        self.emitted = 0

    def subscribe(self, event: CatalogEvent, handler: Callable[[Any], Any]) -> Callable[[], None]:
        """订阅事件，返回取消订阅函数"""
        self._handlers[event].append(handler)

        def unsubscribe():
            if handler in self._handlers[event]:
                self._handlers[event].remove(handler)

        return unsubscribe

    def emit(self, event: CatalogEvent, payload: Any = None):
        self.emitted += 1
        self.logger.debug(f"发出事件 {event.value}: {payload}")
        for handler in list(self._handlers[event]):
            try:
                if asyncio.iscoroutinefunction(handler):
                    task = asyncio.get_running_loop().create_task(self._run_async(event, handler, payload))
                    self._pending.add(task)
                    task.add_done_callback(self._pending.discard)
                else:
                    handler(payload)
            except Exception as e:
                self.logger.error(f"事件处理器执行失败 ({event.value}): {str(e)}")

    async def _run_async(self, event: CatalogEvent, handler: Callable, payload: Any):
        try:
            await handler(payload)
        except Exception as e:
            self.logger.error(f"异步事件处理器执行失败 ({event.value}): {str(e)}")

    async def drain(self):
        """等待尚未完成的异步处理器"""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def clear(self):
        self._handlers.clear()


__all__ = ["CatalogEvent", "EventBus"]
