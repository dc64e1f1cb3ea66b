"""
播放器管理器

每個伺服器一個 Player；管理器負責建立、查詢、銷毀，
並把所有播放器事件轉發出去（第一個參數是來源播放器）。
"""

from functools import partial
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

from loguru import logger

from ..constants import FALLBACK_EXTRACTOR_TIMEOUT
from ..extensions.base import Extension, ExtensionContext
from ..plugins.base import SourcePlugin
from ..utils.aio import with_timeout
from ..utils.decorators import log_operation
from ..utils.errors import ResolutionError
from .events import PLAYER_EVENTS, EventBus
from .options import PlayerOptions
from .player import ConnectionFactory, EngineFactory, Player
from .scheduler import Scheduler
from .track import SearchResult

_instance: Optional["PlayerManager"] = None


def get_instance() -> Optional["PlayerManager"]:
    """最近建立的管理器"""
    return _instance


def _instantiate(item: Any, kind: str) -> Optional[Any]:
    if not isinstance(item, type):
        return item
    try:
        return item()
    except Exception as e:
        logger.error(f"無法建立{kind} {item.__name__}: {e}")
        return None


def _name_of(item: Any) -> str:
    return getattr(item, "name", "") or getattr(item, "__name__", "") or type(item).__name__


class PlayerManager:
    """
    伺服器播放器管理器

    使用方式：
        manager = PlayerManager(plugins=[MyPlugin], extensions=[LyricsExtension()])
        manager.on("trackStart", lambda player, track: ...)

        player = manager.create(guild, PlayerOptions(extensions=["lyrics"]))
        manager.delete(guild)
    """

    def __init__(
        self,
        plugins: Optional[Sequence[Any]] = None,
        extensions: Optional[Sequence[Any]] = None,
        *,
        extractor_timeout: int = FALLBACK_EXTRACTOR_TIMEOUT,
        engine_factory: Optional[EngineFactory] = None,
        connection_factory: Optional[ConnectionFactory] = None,
        scheduler_factory: Optional[Callable[[], Scheduler]] = None,
    ):
        global _instance

        self.events = EventBus("PlayerManager")
        self.extractor_timeout = extractor_timeout
        self._players: Dict[str, Player] = {}
        self._engine_factory = engine_factory
        self._connection_factory = connection_factory
        self._scheduler_factory = scheduler_factory

        self._plugins: List[SourcePlugin] = []
        for item in plugins or []:
            plugin = _instantiate(item, "外掛")
            if plugin is not None:
                self._plugins.append(plugin)

        self._extensions: List[Any] = list(extensions or [])

        _instance = self
        logger.info(f"播放器管理器已建立（{len(self._plugins)} 個外掛，{len(self._extensions)} 個擴充套件）")

    # === 事件 ===

    def on(self, event: str, listener: Optional[Callable] = None):
        return self.events.on(event, listener)

    def once(self, event: str, listener: Callable) -> Callable:
        return self.events.once(event, listener)

    def off(self, event: str, listener: Callable) -> bool:
        return self.events.off(event, listener)

    # === 屬性 ===

    @property
    def plugins(self) -> List[SourcePlugin]:
        return list(self._plugins)

    @property
    def extensions(self) -> List[Any]:
        return list(self._extensions)

    @property
    def size(self) -> int:
        return len(self._players)

    def __len__(self) -> int:
        return len(self._players)

    def __contains__(self, guild_or_id: Any) -> bool:
        return self.has(guild_or_id)

    def __iter__(self) -> Iterator[Player]:
        return iter(list(self._players.values()))

    @staticmethod
    def resolve_guild_id(guild_or_id: Any) -> str:
        """
        把 int / str / 具有 id 屬性的物件轉成 guild id 字串

        Raises:
            ValueError: 無法辨識
        """
        if isinstance(guild_or_id, bool):
            raise ValueError(f"Invalid guild: {guild_or_id!r}")
        if isinstance(guild_or_id, (str, int)):
            return str(guild_or_id)
        guild_id = getattr(guild_or_id, "id", None)
        if isinstance(guild_id, (str, int)) and not isinstance(guild_id, bool):
            return str(guild_id)
        raise ValueError(f"Invalid guild: {guild_or_id!r}")

    # === 播放器 ===

    @log_operation("建立播放器")
    def create(self, guild_or_id: Any, options: Optional[PlayerOptions] = None) -> Player:
        """取得或建立播放器（同一伺服器只會有一個）"""
        guild_id = self.resolve_guild_id(guild_or_id)
        existing = self._players.get(guild_id)
        if existing is not None:
            return existing

        player = Player(
            guild_id,
            options,
            self,
            engine_factory=self._engine_factory,
            connection_factory=self._connection_factory,
            scheduler=self._scheduler_factory() if self._scheduler_factory else None,
        )
        for plugin in self._plugins:
            player.add_plugin(plugin)

        for extension in self._select_extensions(player.options):
            self._activate_extension(player, extension)

        for event in PLAYER_EVENTS:
            if event == "playerDestroy":
                player.on(event, partial(self._on_player_destroy, player))
            else:
                player.on(event, partial(self._forward, event, player))

        self._players[guild_id] = player
        logger.info(f"[Guild:{guild_id}] 播放器已建立")
        return player

    def _select_extensions(self, options: PlayerOptions) -> List[Any]:
        requested = options.extensions
        if not requested:
            return []
        if all(isinstance(item, str) for item in requested):
            names = set(requested)
            return [ext for ext in self._extensions if _name_of(ext) in names]
        return list(requested)

    def _activate_extension(self, player: Player, item: Any) -> None:
        extension: Optional[Extension] = _instantiate(item, "擴充套件")
        if extension is None:
            return
        if getattr(extension, "player", None) is None:
            extension.player = player

        try:
            active = extension.active(ExtensionContext(player=player, manager=self))
        except Exception as e:
            logger.warning(f"擴充套件 {_name_of(extension)}.active 發生錯誤: {e}")
            return

        if active:
            player.attach_extension(extension)
        else:
            logger.debug(f"擴充套件 {_name_of(extension)} 未啟用")

    def _forward(self, event: str, player: Player, *args: Any) -> None:
        self.events.emit(event, player, *args)

    def _on_player_destroy(self, player: Player) -> None:
        if self._players.get(player.guild_id) is player:
            del self._players[player.guild_id]
        self.events.emit("playerDestroy", player)

    def get(self, guild_or_id: Any) -> Optional[Player]:
        return self._players.get(self.resolve_guild_id(guild_or_id))

    def has(self, guild_or_id: Any) -> bool:
        return self.resolve_guild_id(guild_or_id) in self._players

    def delete(self, guild_or_id: Any) -> bool:
        """銷毀並移除播放器"""
        player = self._players.pop(self.resolve_guild_id(guild_or_id), None)
        if player is None:
            return False
        player.destroy()
        return True

    def destroy(self) -> None:
        """銷毀所有播放器並移除所有監聽器"""
        for player in list(self._players.values()):
            player.destroy()
        self._players.clear()
        self.events.remove_all_listeners()
        logger.info("播放器管理器已銷毀")

    # === 搜尋 ===

    async def search(self, query: str, requested_by: str = "Unknown") -> SearchResult:
        """
        不經過播放器直接搜尋（第一個 can_handle 的外掛）

        Raises:
            ResolutionError: 沒有外掛能處理
        """
        for plugin in self._plugins:
            try:
                if not plugin.can_handle(query):
                    continue
            except Exception as e:
                logger.warning(f"外掛 {plugin.name}.can_handle 發生錯誤: {e}")
                continue
            return await with_timeout(
                plugin.search(query, requested_by),
                self.extractor_timeout,
                f"{plugin.name}.search",
            )
        raise ResolutionError(f"No plugin found to handle: {query}", query=query)
