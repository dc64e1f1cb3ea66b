"""
來源外掛介面

外掛負責把查詢轉成音軌、把音軌轉成串流。
必要方法：can_handle / search / get_stream
選用方法（不在基底類別中定義，有實作才會被使用）：
    get_fallback(track) -> StreamInfo
    get_related_tracks(url, limit=, offset=, history=) -> List[Track]
    validate(url) -> bool
    extract_playlist(url, requested_by) -> List[Track]
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from ..core.track import SearchResult, StreamInfo, Track

REQUIRED_MEMBERS = ("can_handle", "search", "get_stream")


class SourcePlugin(ABC):
    """
    來源外掛基類

    使用方式：
        class MyPlugin(SourcePlugin):
            name = "my-source"

            def can_handle(self, query):
                return query.startswith("my:")

            async def search(self, query, requested_by):
                ...

            async def get_stream(self, track):
                ...
    """

    name: str = ""
    version: str = "0.0.0"

    @abstractmethod
    def can_handle(self, query: str) -> bool:
        ...

    @abstractmethod
    async def search(self, query: str, requested_by: str) -> SearchResult:
        ...

    @abstractmethod
    async def get_stream(self, track: Track) -> StreamInfo:
        ...

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r} version={self.version!r}>"


@dataclass(frozen=True)
class PluginCapabilities:
    """外掛實作了哪些選用方法（註冊時檢查一次）"""
    fallback: bool = False
    related: bool = False
    validate: bool = False
    playlist: bool = False

    @classmethod
    def inspect(cls, plugin: Any) -> "PluginCapabilities":
        def has(name: str) -> bool:
            return callable(getattr(plugin, name, None))

        return cls(
            fallback=has("get_fallback"),
            related=has("get_related_tracks"),
            validate=has("validate"),
            playlist=has("extract_playlist"),
        )
