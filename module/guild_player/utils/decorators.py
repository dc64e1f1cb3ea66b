"""
播放器裝飾器

- handle_errors: 統一錯誤處理（記錄後重新拋出）
- log_operation: 記錄操作的開始和結束
"""

import asyncio
from functools import wraps
from typing import Callable, Optional, TypeVar, ParamSpec
from loguru import logger

from .errors import GuildPlayerError

P = ParamSpec('P')
T = TypeVar('T')


def handle_errors(func: Callable[P, T]) -> Callable[P, T]:
    """
    裝飾器：統一處理錯誤並記錄

    使用方式：
        @handle_errors
        async def some_operation(self):
            # 任何 GuildPlayerError 會被捕捉並記錄
            ...
    """
    @wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except GuildPlayerError as e:
            logger.error(f"[{func.__name__}] 播放器錯誤: {e.message}")
            raise
        except Exception as e:
            logger.exception(f"[{func.__name__}] 未預期錯誤: {e}")
            raise

    return wrapper


def log_operation(operation_name: Optional[str] = None):
    """
    裝飾器：記錄操作的開始和結束（同步與非同步函式皆可）

    使用方式：
        @log_operation("連接語音")
        async def connect(self, channel):
            ...
    """
    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        name = operation_name or func.__name__

        if asyncio.iscoroutinefunction(func):
            @wraps(func)
            async def async_wrapper(*args, **kwargs):
                logger.debug(f"開始: {name}")
                try:
                    result = await func(*args, **kwargs)
                    logger.debug(f"完成: {name}")
                    return result
                except Exception as e:
                    logger.error(f"失敗: {name} - {e}")
                    raise

            return async_wrapper

        @wraps(func)
        def wrapper(*args, **kwargs):
            logger.debug(f"開始: {name}")
            try:
                result = func(*args, **kwargs)
                logger.debug(f"完成: {name}")
                return result
            except Exception as e:
                logger.error(f"失敗: {name} - {e}")
                raise

        return wrapper
    return decorator
