"""
asyncio 小工具

外掛與擴充套件的方法可以是同步或非同步；所有可能卡住的外部呼叫
都必須經過 with_timeout。
"""

import asyncio
import inspect
from typing import Any, Awaitable, TypeVar

from .errors import ExtractorTimeoutError

T = TypeVar("T")


async def maybe_await(value: Any) -> Any:
    """如果是 awaitable 就等待它，否則原樣回傳"""
    if inspect.isawaitable(value):
        return await value
    return value


async def with_timeout(awaitable: Awaitable[T], timeout_ms: float, operation: str) -> T:
    """
    在限定時間內等待 awaitable

    Args:
        awaitable: 要等待的物件
        timeout_ms: 逾時（毫秒）
        operation: 操作名稱（用於錯誤訊息）

    Raises:
        ExtractorTimeoutError: 超過 timeout_ms
    """
    try:
        return await asyncio.wait_for(maybe_await(awaitable), timeout=timeout_ms / 1000)
    except asyncio.TimeoutError as e:
        raise ExtractorTimeoutError(operation, timeout_ms) from e
