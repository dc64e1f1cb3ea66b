"""
事件匯流排

每個 Player / PlayerManager 各自擁有一個 EventBus。
事件是「發出即忘」：監聽器的例外只會被記錄，不會影響發送端。
協程監聽器會被排程成 Task。
"""

import asyncio
import inspect
from typing import Any, Callable, Dict, List, Optional, Set

from loguru import logger

Listener = Callable[..., Any]

# 播放器對外發出的事件（管理器會全部轉發）
PLAYER_EVENTS = (
    "trackStart",
    "trackEnd",
    "queueEnd",
    "queueAdd",
    "queueAddList",
    "queueRemove",
    "willPlay",
    "playerPause",
    "playerResume",
    "playerStop",
    "playerDestroy",
    "volumeChange",
    "playerError",
    "connectionError",
    "ttsStart",
    "ttsEnd",
    "debug",
)


class EventBus:
    """
    簡單的事件匯流排

    使用方式：
        bus = EventBus("player")
        bus.on("trackStart", callback)

        @bus.on("trackEnd")
        async def handler(track):
            ...

        bus.emit("trackStart", track)
    """

    def __init__(self, name: str = "EventBus"):
        self.name = name
        self._listeners: Dict[str, List[Listener]] = {}
        self._tasks: Set[asyncio.Task] = set()

    def on(self, event: str, listener: Optional[Listener] = None):
        """註冊監聽器；未給 listener 時作為裝飾器使用"""
        if listener is None:
            def decorator(func: Listener) -> Listener:
                self.on(event, func)
                return func
            return decorator

        self._listeners.setdefault(event, []).append(listener)
        return listener

    def once(self, event: str, listener: Listener) -> Listener:
        """註冊只觸發一次的監聽器"""
        def wrapper(*args):
            self.off(event, wrapper)
            return listener(*args)

        wrapper.__wrapped__ = listener
        return self.on(event, wrapper)

    def off(self, event: str, listener: Listener) -> bool:
        """移除監聽器（也可傳入 once 註冊的原函式）"""
        listeners = self._listeners.get(event, [])
        for registered in listeners:
            if registered is listener or getattr(registered, "__wrapped__", None) is listener:
                listeners.remove(registered)
                return True
        return False

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))

    def remove_all_listeners(self, event: Optional[str] = None) -> None:
        if event is None:
            self._listeners.clear()
        else:
            self._listeners.pop(event, None)

    def emit(self, event: str, *args: Any) -> bool:
        """
        發送事件

        Returns:
            是否有監聽器
        """
        listeners = list(self._listeners.get(event, []))
        for listener in listeners:
            try:
                result = listener(*args)
            except Exception as e:
                logger.exception(f"[{self.name}] 事件 {event} 的監聽器發生錯誤: {e}")
                continue

            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._tasks.add(task)
                task.add_done_callback(lambda t, ev=event: self._on_listener_done(ev, t))

        return bool(listeners)

    def _on_listener_done(self, event: str, task: asyncio.Future) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.opt(exception=error).error(f"[{self.name}] 事件 {event} 的非同步監聽器發生錯誤: {error}")
