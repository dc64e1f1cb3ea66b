"""
擴充套件管線

依附加順序執行 hook；任何 hook 失敗（含逾時）都只會被記錄，
不會中斷播放流程。
"""

import asyncio
import inspect
from dataclasses import replace
from typing import Any, Callable, Dict, FrozenSet, List, Mapping, Optional, Set, Tuple

from loguru import logger

from ..core.track import SearchResult, StreamInfo, Track
from ..utils.aio import with_timeout
from ..utils.errors import ExtensionHookError
from .base import (
    EXTENSION_HOOKS,
    Extension,
    ExtensionAfterPlayPayload,
    ExtensionContext,
    ExtensionPlayRequest,
    ExtensionPlayResponse,
    ExtensionSearchRequest,
    ExtensionStreamRequest,
)


def _extension_name(extension: Any) -> str:
    return getattr(extension, "name", "") or type(extension).__name__


class ExtensionPipeline:
    """
    單一播放器的擴充套件清單

    使用方式：
        pipeline = ExtensionPipeline(context, timeout_ms=50_000)
        pipeline.attach(extension)
        request, response = await pipeline.run_before_play(request)
    """

    def __init__(
        self,
        context: ExtensionContext,
        timeout_ms: float,
        debug: Optional[Callable[[str], None]] = None,
    ):
        self.context = context
        self.timeout_ms = timeout_ms
        self._debug = debug or logger.debug
        self._extensions: List[Extension] = []
        self._hooks: Dict[int, FrozenSet[str]] = {}
        self._tasks: Set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._extensions)

    @property
    def extensions(self) -> Tuple[Extension, ...]:
        return tuple(self._extensions)

    def get(self, name: str) -> Optional[Extension]:
        for extension in self._extensions:
            if _extension_name(extension) == name:
                return extension
        return None

    def _has(self, extension: Extension, hook: str) -> bool:
        return hook in self._hooks.get(id(extension), frozenset())

    # === 附加 / 移除 ===

    def attach(self, extension: Extension) -> bool:
        """附加擴充套件；已附加則回傳 False"""
        if any(existing is extension for existing in self._extensions):
            return False

        self._extensions.append(extension)
        self._hooks[id(extension)] = frozenset(
            hook for hook in EXTENSION_HOOKS if callable(getattr(extension, hook, None))
        )
        if getattr(extension, "player", None) is None:
            extension.player = self.context.player
        self._debug(f"擴充套件已附加: {_extension_name(extension)}")
        self._fire_lifecycle(extension, "on_register")
        return True

    def detach(self, extension: Extension) -> bool:
        for index, existing in enumerate(self._extensions):
            if existing is extension:
                break
        else:
            return False

        self._fire_lifecycle(extension, "on_destroy")
        del self._extensions[index]
        self._hooks.pop(id(extension), None)
        if extension.player is self.context.player:
            extension.player = None
        self._debug(f"擴充套件已移除: {_extension_name(extension)}")
        return True

    def detach_all(self) -> None:
        for extension in list(self._extensions):
            self.detach(extension)

    def _fire_lifecycle(self, extension: Extension, hook: str) -> None:
        if not self._has(extension, hook):
            return
        try:
            result = getattr(extension, hook)(self.context)
        except Exception as e:
            self._report(extension, hook, e)
            return

        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(lambda t: self._on_lifecycle_done(extension, hook, t))

    def _on_lifecycle_done(self, extension: Extension, hook: str, task: asyncio.Future) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            self._report(extension, hook, task.exception())

    # === Hook 執行 ===

    async def _call(self, extension: Extension, hook: str, *args: Any) -> Any:
        """
        以逾時保護呼叫 hook

        Raises:
            ExtensionHookError: hook 失敗或逾時
        """
        name = _extension_name(extension)
        try:
            return await with_timeout(getattr(extension, hook)(self.context, *args), self.timeout_ms, f"{name}.{hook}")
        except Exception as e:
            raise ExtensionHookError(name, hook, e) from e

    def _report(self, extension: Extension, hook: str, error: BaseException) -> None:
        if not isinstance(error, ExtensionHookError):
            error = ExtensionHookError(_extension_name(extension), hook, error)
        logger.warning(error.message)
        self._debug(error.message)

    async def run_before_play(
        self, request: ExtensionPlayRequest
    ) -> Tuple[ExtensionPlayRequest, ExtensionPlayResponse]:
        """
        依序執行 before_play

        每個擴充套件看到的是前一個改寫後的請求；
        handled=True 時立即停止。
        """
        response = ExtensionPlayResponse()
        for extension in list(self._extensions):
            if not self._has(extension, "before_play"):
                continue
            try:
                result = await self._call(extension, "before_play", request)
            except ExtensionHookError as e:
                self._report(extension, "before_play", e)
                continue
            if not result:
                continue
            if isinstance(result, Mapping):
                result = ExtensionPlayResponse(**result)

            if result.query is not None:
                request = replace(request, query=result.query)
            if result.requested_by is not None:
                request = replace(request, requested_by=result.requested_by)
            changes = {
                key: value
                for key, value in vars(result).items()
                if value is not None and key not in ("query", "requested_by")
            }
            if changes:
                response = replace(response, **changes)
            if result.handled:
                self._debug(f"before_play 已由 {_extension_name(extension)} 處理")
                break

        return request, response

    async def run_after_play(self, payload: ExtensionAfterPlayPayload) -> None:
        """通知所有擴充套件；個別失敗互不影響"""
        targets = [ext for ext in self._extensions if self._has(ext, "after_play")]
        if not targets:
            return
        results = await asyncio.gather(
            *(self._call(ext, "after_play", payload) for ext in targets),
            return_exceptions=True,
        )
        for extension, result in zip(targets, results):
            if isinstance(result, Exception):
                self._report(extension, "after_play", result)

    async def provide_search(self, query: str, requested_by: str) -> Optional[SearchResult]:
        """第一個回傳非空結果的擴充套件勝出"""
        request = ExtensionSearchRequest(query=query, requested_by=requested_by)
        for extension in list(self._extensions):
            if not self._has(extension, "provide_search"):
                continue
            try:
                result = await self._call(extension, "provide_search", request)
            except ExtensionHookError as e:
                self._report(extension, "provide_search", e)
                continue
            if result and result.tracks:
                self._debug(f"搜尋結果由擴充套件 {_extension_name(extension)} 提供")
                return result
        return None

    async def provide_stream(self, track: Track) -> Optional[StreamInfo]:
        """第一個回傳串流的擴充套件勝出"""
        request = ExtensionStreamRequest(track=track)
        for extension in list(self._extensions):
            if not self._has(extension, "provide_stream"):
                continue
            try:
                result = await self._call(extension, "provide_stream", request)
            except ExtensionHookError as e:
                self._report(extension, "provide_stream", e)
                continue
            if result is not None:
                self._debug(f"串流由擴充套件 {_extension_name(extension)} 提供")
                return result
        return None
