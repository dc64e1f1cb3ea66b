"""
計時器服務

播放器的延遲工作（離開語音、音量漸變）都透過 Scheduler 排程，
測試時可換成 ManualScheduler 以手動推進時間。
"""

import asyncio
import heapq
import inspect
import itertools
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, List, Optional, Tuple

from loguru import logger


class TimerHandle:
    """可取消的計時器"""

    def __init__(self, cancel: Optional[Callable[[], None]] = None):
        self._cancel = cancel
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        if self._cancel is not None:
            self._cancel()


def _run_callback(callback: Callable[[], Any]) -> None:
    try:
        result = callback()
    except Exception as e:
        logger.exception(f"計時器回調發生錯誤: {e}")
        return
    if inspect.isawaitable(result):
        asyncio.ensure_future(result)


class Scheduler(ABC):
    """計時器介面（單位：毫秒）"""

    @abstractmethod
    def call_later(self, delay_ms: float, callback: Callable[[], Any]) -> TimerHandle:
        ...

    @abstractmethod
    def now(self) -> float:
        ...


class AsyncioScheduler(Scheduler):
    """使用執行中的 event loop"""

    def call_later(self, delay_ms: float, callback: Callable[[], Any]) -> TimerHandle:
        loop = asyncio.get_running_loop()
        handle = loop.call_later(max(0, delay_ms) / 1000, _run_callback, callback)
        return TimerHandle(handle.cancel)

    def now(self) -> float:
        return time.monotonic() * 1000


class ManualScheduler(Scheduler):
    """
    手動推進的計時器（測試用）

    使用方式：
        scheduler = ManualScheduler()
        scheduler.call_later(300, callback)
        scheduler.advance(300)   # callback 在此被呼叫
    """

    def __init__(self):
        self._now = 0.0
        self._counter = itertools.count()
        self._pending: List[Tuple[float, int, Callable[[], Any], TimerHandle]] = []

    def call_later(self, delay_ms: float, callback: Callable[[], Any]) -> TimerHandle:
        handle = TimerHandle()
        heapq.heappush(self._pending, (self._now + max(0, delay_ms), next(self._counter), callback, handle))
        return handle

    def now(self) -> float:
        return self._now

    @property
    def pending(self) -> int:
        """尚未執行也未取消的計時器數量"""
        return sum(1 for *_, handle in self._pending if not handle.cancelled)

    def advance(self, delay_ms: float) -> None:
        """推進時間並依序執行到期的計時器（包含推進期間新排程的）"""
        target = self._now + delay_ms
        while self._pending and self._pending[0][0] <= target:
            due, _, callback, handle = heapq.heappop(self._pending)
            self._now = due
            if not handle.cancelled:
                _run_callback(callback)
        self._now = target
