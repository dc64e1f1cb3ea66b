"""
擴充套件介面

擴充套件可以在播放流程的各個階段介入：
    on_register(context)                       附加到播放器時
    on_destroy(context)                        從播放器移除時
    before_play(context, request)              改寫查詢 / 直接處理播放
    after_play(context, payload)               播放結果通知
    provide_search(context, request)           代替外掛搜尋
    provide_stream(context, request)           代替外掛提供串流
以上皆為選用，可以是同步或非同步函式。
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, List, Optional, Tuple, Union

from ..core.track import Track

if TYPE_CHECKING:
    from ..core.manager import PlayerManager
    from ..core.player import Player

EXTENSION_HOOKS = (
    "on_register",
    "on_destroy",
    "before_play",
    "after_play",
    "provide_search",
    "provide_stream",
)


@dataclass(frozen=True)
class ExtensionContext:
    player: "Player"
    manager: Optional["PlayerManager"] = None


@dataclass
class ExtensionPlayRequest:
    query: Union[str, Track, None]
    requested_by: Optional[str] = None


@dataclass
class ExtensionPlayResponse:
    """
    before_play 的回傳值；只有非 None 的欄位會被合併

    handled=True 代表擴充套件已自行處理，後續流程停止。
    """
    handled: Optional[bool] = None
    query: Union[str, Track, None] = None
    requested_by: Optional[str] = None
    tracks: Optional[List[Track]] = None
    is_playlist: Optional[bool] = None
    success: Optional[bool] = None
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class ExtensionAfterPlayPayload:
    success: bool
    query: Union[str, Track, None]
    requested_by: Optional[str]
    tracks: Tuple[Track, ...] = ()
    is_playlist: bool = False
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class ExtensionSearchRequest:
    query: str
    requested_by: str


@dataclass(frozen=True)
class ExtensionStreamRequest:
    track: Track


class Extension(ABC):
    """
    擴充套件基類

    active() 回傳真值才會被附加到播放器。
    """

    name: str = ""
    version: str = "0.0.0"
    player: Optional["Player"] = None

    @abstractmethod
    def active(self, context: ExtensionContext) -> Any:
        ...

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r}>"
