"""
伺服器播放器核心

整合所有播放相關功能：
- 播放控制（播放、暫停、停止、上/下一首、插入、移除）
- 外掛搜尋與串流解析（含備援與快取）
- 擴充套件 hook 管線
- 自動播放預告、離開計時、音量漸變
- TTS 插播（委派給 TTSInterrupter）

引擎狀態變化是推進佇列的唯一來源：
    任何狀態 → IDLE        發出 trackEnd，推進到下一首
    → PLAYING（新資源）    發出 trackStart
    → PAUSED / 離開 PAUSED 發出 playerPause / playerResume
"""

import asyncio
import random
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Union, TYPE_CHECKING

from loguru import logger

from ..audio.discord_voice import DiscordAudioEngine, DiscordVoiceConnection
from ..audio.engine import AudioEngine, AudioResource, EngineStatus, VoiceConnection
from ..constants import (
    MAX_VOLUME,
    MIN_VOLUME,
    PROGRESS_BAR_FILLED,
    PROGRESS_BAR_LENGTH,
    PROGRESS_BAR_MARKER,
    RELATED_TRACKS_LIMIT,
    TRACK_START_TIMEOUT,
    VOICE_CONNECT_TIMEOUT,
    VOLUME_FADE_INTERVAL,
    VOLUME_FADE_STEPS,
)
from ..extensions.base import (
    Extension,
    ExtensionAfterPlayPayload,
    ExtensionContext,
    ExtensionPlayRequest,
)
from ..extensions.pipeline import ExtensionPipeline
from ..plugins.base import SourcePlugin
from ..plugins.manager import PluginManager
from ..utils.aio import with_timeout
from ..utils.decorators import log_operation
from ..utils.errors import (
    PlaybackError,
    ResolutionError,
    StreamAcquisitionError,
    VoiceConnectionError,
)
from .cache import CacheStats, PluginCache
from .events import EventBus
from .options import PlayerOptions
from .queue import LoopMode, Queue
from .scheduler import AsyncioScheduler, Scheduler, TimerHandle
from .state import PlayerState
from .track import SearchResult, StreamInfo, Track
from .tts import TTSInterrupter

if TYPE_CHECKING:
    from .manager import PlayerManager

EngineFactory = Callable[[str], AudioEngine]
ConnectionFactory = Callable[..., Any]

_ENGINE_TO_PLAYER_STATE = {
    EngineStatus.IDLE: PlayerState.IDLE,
    EngineStatus.BUFFERING: PlayerState.BUFFERING,
    EngineStatus.PLAYING: PlayerState.PLAYING,
    EngineStatus.PAUSED: PlayerState.PAUSED,
    EngineStatus.AUTO_PAUSED: PlayerState.AUTO_PAUSED,
}


class Player:
    """
    單一伺服器的播放器

    使用方式：
        player = manager.create(guild)
        await player.connect(voice_channel)
        await player.play("never gonna give you up", requested_by=str(user.id))

        player.on("trackStart", on_track_start)
        player.skip()
    """

    def __init__(
        self,
        guild_id: str,
        options: Optional[PlayerOptions] = None,
        manager: Optional["PlayerManager"] = None,
        *,
        engine_factory: Optional[EngineFactory] = None,
        connection_factory: Optional[ConnectionFactory] = None,
        scheduler: Optional[Scheduler] = None,
    ):
        self.guild_id = str(guild_id)
        self.options = options or PlayerOptions()
        self.manager = manager
        self.userdata = self.options.userdata

        self.queue = Queue()
        self.plugin_manager = PluginManager()
        self.events = EventBus(f"Player:{self.guild_id}")
        self.scheduler = scheduler or AsyncioScheduler()

        self._engine_factory = engine_factory or DiscordAudioEngine
        self._connection_factory = connection_factory or DiscordVoiceConnection.connect
        self.audio_engine = self._engine_factory("primary")
        self.connection: Optional[VoiceConnection] = None

        self.volume = self.options.volume
        self.is_playing = False
        self.is_paused = False

        self._destroyed = False
        self._connecting = False
        self._skip_loop = False
        self._ignore_idle = False
        self._current_resource: Optional[AudioResource] = None
        self._announced_resource: Optional[AudioResource] = None
        self._leave_timer: Optional[TimerHandle] = None
        self._volume_timer: Optional[TimerHandle] = None
        self._advance_lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task] = set()
        self._plugin_cache = PluginCache(clock=self.scheduler.now)

        self.extension_context = ExtensionContext(player=self, manager=manager)
        self.extensions = ExtensionPipeline(
            self.extension_context,
            timeout_ms=self.options.extractor_timeout,
            debug=self._debug,
        )
        self.tts = TTSInterrupter(self)

        self.audio_engine.on("stateChange", self._on_engine_state_change)
        self.audio_engine.on("error", self._on_engine_error)

        if self.options.tts.create_player:
            self.tts.ensure_engine()

        self._debug("播放器已建立")

    # === 事件 ===

    def on(self, event: str, listener: Optional[Callable] = None):
        return self.events.on(event, listener)

    def once(self, event: str, listener: Callable) -> Callable:
        return self.events.once(event, listener)

    def off(self, event: str, listener: Callable) -> bool:
        return self.events.off(event, listener)

    def _emit(self, event: str, *args: Any) -> None:
        self.events.emit(event, *args)

    def _debug(self, message: str) -> None:
        logger.debug(f"[Player:{self.guild_id}] {message}")
        if self.events.listener_count("debug"):
            self.events.emit("debug", message)

    # === 屬性 ===

    @property
    def status(self) -> PlayerState:
        if self._destroyed:
            return PlayerState.DESTROYED
        if self._connecting:
            return PlayerState.CONNECTING
        if self.audio_engine.status is EngineStatus.IDLE and self.is_playing:
            # 由擴充套件在外部播放
            return PlayerState.PLAYING
        return _ENGINE_TO_PLAYER_STATE[self.audio_engine.status]

    @property
    def is_destroyed(self) -> bool:
        return self._destroyed

    @property
    def is_connected(self) -> bool:
        return self.connection is not None and not self.connection.destroyed

    @property
    def queue_size(self) -> int:
        return self.queue.size

    @property
    def current_track(self) -> Optional[Track]:
        return self.queue.current_track

    @property
    def previous_track(self) -> Optional[Track]:
        history = self.queue.previous_tracks
        return history[-1] if history else None

    @property
    def upcoming_tracks(self) -> List[Track]:
        return self.queue.get_tracks()

    @property
    def previous_tracks(self) -> List[Track]:
        return self.queue.previous_tracks

    @property
    def related_tracks(self) -> List[Track]:
        return self.queue.related_tracks()

    @property
    def available_plugins(self) -> List[str]:
        return self.plugin_manager.names

    # === 外掛 / 擴充套件 ===

    def add_plugin(self, plugin: SourcePlugin) -> None:
        self.plugin_manager.register(plugin)
        self._debug(f"外掛已註冊: {plugin.name}")

    def remove_plugin(self, name: str) -> bool:
        removed = self.plugin_manager.unregister(name)
        if removed:
            self._plugin_cache.clear()
        return removed

    def attach_extension(self, extension: Extension) -> bool:
        return self.extensions.attach(extension)

    def detach_extension(self, extension: Extension) -> bool:
        return self.extensions.detach(extension)

    def get_extensions(self) -> List[Extension]:
        return list(self.extensions.extensions)

    def clear_plugin_cache(self) -> int:
        return self._plugin_cache.clear()

    def plugin_cache_stats(self) -> CacheStats:
        return self._plugin_cache.stats()

    # === 連接管理 ===

    @log_operation("連接語音頻道")
    async def connect(self, channel: Any) -> VoiceConnection:
        """
        連接語音頻道

        Raises:
            VoiceConnectionError: 連接失敗或超時（同時發出 connectionError）
        """
        if self._destroyed:
            raise VoiceConnectionError("Player has been destroyed")

        self._connecting = True
        try:
            connection = await with_timeout(
                self._connection_factory(
                    channel,
                    self_deaf=self.options.self_deaf,
                    self_mute=self.options.self_mute,
                ),
                VOICE_CONNECT_TIMEOUT,
                "voice connect",
            )
        except Exception as e:
            self._emit("connectionError", e)
            raise VoiceConnectionError(f"Failed to connect to voice channel: {e}") from e
        finally:
            self._connecting = False

        self.attach_connection(connection)
        return connection

    def attach_connection(self, connection: VoiceConnection) -> None:
        """使用既有的語音連線（訂閱主要引擎）"""
        previous = self.connection
        if previous is not None and previous is not connection:
            previous.events.remove_all_listeners()
            previous.destroy()

        self.connection = connection
        connection.on("disconnected", self._on_disconnected)
        connection.on("error", self._on_connection_error)
        connection.subscribe(self.audio_engine)
        self._clear_leave_timeout()
        self._debug("語音連線已就緒")

    def _on_disconnected(self) -> None:
        self._debug("語音連線中斷，銷毀播放器")
        self.destroy()

    def _on_connection_error(self, error: BaseException) -> None:
        self._emit("connectionError", error)

    # === 搜尋 ===

    async def search(self, query: str, requested_by: str = "Unknown") -> SearchResult:
        """
        搜尋音軌

        擴充套件的 provide_search 優先；接著依序嘗試每個外掛，
        第一個回傳非空結果的勝出。

        Raises:
            ResolutionError: 沒有任何來源找到結果（附上最後一個錯誤）
        """
        result = await self.extensions.provide_search(query, requested_by)
        if result is not None:
            return result

        last_error: Optional[BaseException] = None
        for plugin in self.plugin_manager.get_all():
            try:
                result = await with_timeout(
                    plugin.search(query, requested_by),
                    self.options.extractor_timeout,
                    f"{plugin.name}.search",
                )
            except Exception as e:
                last_error = e
                self._debug(f"外掛 {plugin.name} 搜尋失敗: {e}")
                continue
            if result and result.tracks:
                self._debug(f"外掛 {plugin.name} 找到 {len(result.tracks)} 首")
                return result

        raise ResolutionError(f"No plugin found to handle: {query}", query=query, last_error=last_error)

    # === 播放控制 ===

    async def play(self, query: Union[str, Track], requested_by: Optional[str] = None) -> bool:
        """
        搜尋並加入佇列，閒置時開始播放

        TTS 查詢會插播而不會進入佇列。

        Returns:
            是否成功（失敗時會發出 playerError，不會拋出）
        """
        requested_by = requested_by or "Unknown"
        self._debug(f"play: {query}")
        self._clear_leave_timeout()

        request, response = await self.extensions.run_before_play(
            ExtensionPlayRequest(query=query, requested_by=requested_by)
        )
        query = request.query
        requested_by = request.requested_by or requested_by

        if response.handled and not response.tracks:
            success = True if response.success is None else response.success
            await self.extensions.run_after_play(ExtensionAfterPlayPayload(
                success=success,
                query=query,
                requested_by=requested_by,
                is_playlist=bool(response.is_playlist),
                error=response.error,
            ))
            if response.error is not None:
                self._emit("playerError", response.error)
            return success

        tracks: List[Track] = []
        is_playlist = False
        try:
            if response.tracks:
                tracks = list(response.tracks)
                is_playlist = response.is_playlist if response.is_playlist is not None else len(tracks) > 1
            elif isinstance(query, Track):
                tracks = [query]
            else:
                result = await self.search(query, requested_by)
                tracks = list(result.tracks)
                is_playlist = result.is_playlist

            if not tracks:
                raise ResolutionError(f"No tracks found for: {query}", query=str(query))

            if not is_playlist and self.options.tts.interrupt and self._is_tts(tracks[0], query):
                self._debug(f"TTS 插播: {tracks[0].title}")
                await self.tts.interrupt(tracks[0])
                await self._after_play(True, query, requested_by, tracks, is_playlist)
                return True

            if is_playlist:
                self.queue.add_multiple(tracks)
                self._emit("queueAddList", tracks)
            else:
                self.queue.add(tracks[0])
                self._emit("queueAdd", tracks[0])

            started = await self._play_next(only_if_idle=True)
            await self._after_play(started, query, requested_by, tracks, is_playlist)
            return started

        except Exception as e:
            self._debug(f"play 失敗: {e}")
            await self._after_play(False, query, requested_by, tracks, is_playlist, error=e)
            self._emit("playerError", e)
            return False

    @staticmethod
    def _is_tts(track: Track, query: Any) -> bool:
        if track.is_tts:
            return True
        return isinstance(query, str) and query.strip().lower().startswith("tts")

    async def _after_play(
        self,
        success: bool,
        query: Any,
        requested_by: str,
        tracks: Sequence[Track],
        is_playlist: bool,
        error: Optional[BaseException] = None,
    ) -> None:
        await self.extensions.run_after_play(ExtensionAfterPlayPayload(
            success=success,
            query=query,
            requested_by=requested_by,
            tracks=tuple(tracks),
            is_playlist=is_playlist,
            error=error,
        ))

    async def insert(
        self,
        query: Union[str, Track, Sequence[Track]],
        index: int = 0,
        requested_by: Optional[str] = None,
    ) -> bool:
        """
        插入到佇列的指定位置（不會自動開始播放）

        Returns:
            是否成功插入
        """
        try:
            if isinstance(query, Track):
                tracks = [query]
            elif isinstance(query, (list, tuple)):
                tracks = list(query)
            else:
                result = await self.search(query, requested_by or "Unknown")
                tracks = list(result.tracks) if result.is_playlist else list(result.tracks[:1])

            if not tracks:
                return False

            self._clear_leave_timeout()
            if len(tracks) == 1:
                self.queue.insert(tracks[0], index)
                self._emit("queueAdd", tracks[0])
            else:
                self.queue.insert_multiple(tracks, index)
                self._emit("queueAddList", tracks)
            self._debug(f"已插入 {len(tracks)} 首到位置 {index}")
            return True

        except Exception as e:
            self._debug(f"insert 失敗: {e}")
            self._emit("playerError", e)
            return False

    def remove(self, index: int) -> Optional[Track]:
        track = self.queue.remove(index)
        if track is not None:
            self._emit("queueRemove", track, index)
        return track

    def pause(self) -> bool:
        return self.audio_engine.pause()

    def resume(self) -> bool:
        return self.audio_engine.unpause()

    def stop(self) -> bool:
        """清空佇列並停止播放"""
        self.queue.clear()
        stopped = self.audio_engine.stop()
        self.is_playing = False
        self.is_paused = False
        self._emit("playerStop")
        self._debug("已停止播放")
        return stopped

    def skip(self) -> bool:
        """
        跳到下一首（忽略單曲循環）

        Returns:
            是否有動作
        """
        if self.is_playing or self.is_paused:
            self._skip_loop = True
            if self.audio_engine.stop():
                return True
            # 外部播放中，引擎本身是閒置的
            self.is_playing = False
        elif self.queue.is_empty and not self.queue.auto_play():
            return False

        self._spawn(self._play_next())
        return not self.queue.is_empty

    async def previous(self) -> bool:
        """回到上一首；被中斷的曲目會放回佇列最前面"""
        async with self._advance_lock:
            interrupted = self.queue.current_track
            track = self.queue.previous()
            if track is None:
                return False
            if interrupted is not None:
                self.queue.insert(interrupted, 0)

            self._clear_leave_timeout()
            try:
                return await self._start_track(track)
            except Exception as e:
                self._debug(f"無法播放上一首: {e}")
                self._emit("playerError", e, track)
                return False

    def loop(self, mode: Optional[Union[LoopMode, str]] = None) -> LoopMode:
        return self.queue.loop(mode)

    def auto_play(self, value: Optional[bool] = None) -> bool:
        return self.queue.auto_play(value)

    def shuffle(self) -> None:
        self.queue.shuffle()

    def clear_queue(self) -> None:
        self.queue.clear()

    # === 音量 ===

    def set_volume(self, volume: float) -> bool:
        """
        設定音量（0 - 200），播放中會以漸變方式套用

        Returns:
            是否接受此音量
        """
        if isinstance(volume, bool) or not isinstance(volume, (int, float)):
            return False
        if not MIN_VOLUME <= volume <= MAX_VOLUME:
            self._debug(f"音量超出範圍: {volume}")
            return False

        old = self.volume
        self.volume = volume
        if self._current_resource is not None:
            self._fade_volume(self._current_resource, volume / 100)
        self._emit("volumeChange", old, volume)
        return True

    def _fade_volume(self, resource: AudioResource, target: float) -> None:
        self._cancel_volume_fade()
        start = resource.volume
        step = 0

        def tick() -> None:
            nonlocal step
            step += 1
            if resource is not self._current_resource:
                self._volume_timer = None
                return
            if step >= VOLUME_FADE_STEPS:
                resource.set_volume(target)
                self._volume_timer = None
                return
            resource.set_volume(start + (target - start) * step / VOLUME_FADE_STEPS)
            self._volume_timer = self.scheduler.call_later(VOLUME_FADE_INTERVAL, tick)

        self._volume_timer = self.scheduler.call_later(VOLUME_FADE_INTERVAL, tick)

    def _cancel_volume_fade(self) -> None:
        if self._volume_timer is not None:
            self._volume_timer.cancel()
            self._volume_timer = None

    # === 進度 ===

    def get_time(self) -> Dict[str, Any]:
        """
        目前播放進度

        Returns:
            {"current": 毫秒, "total": 毫秒, "format": "MM:SS"}
        """
        track = self.queue.current_track
        total = track.duration if track else 0
        current = self._current_resource.playback_duration if self._current_resource else 0
        return {"current": current, "total": total, "format": self.format_time(total)}

    def get_progress_bar(
        self,
        size: int = PROGRESS_BAR_LENGTH,
        bar_char: str = PROGRESS_BAR_FILLED,
        progress_char: str = PROGRESS_BAR_MARKER,
    ) -> str:
        """
        生成進度條

        Returns:
            例如：「01:23 | ▬▬▬▬🔘▬▬▬▬▬▬▬▬▬▬▬▬▬▬▬ | 03:45」
        """
        progress = self.get_time()
        current, total = progress["current"], progress["total"]
        ratio = min(current / total, 1.0) if total > 0 else 0.0
        marker = min(int(round(ratio * size)), size - 1)
        bar = bar_char * marker + progress_char + bar_char * (size - marker - 1)
        return f"{self.format_time(current)} | {bar} | {self.format_time(total)}"

    @staticmethod
    def format_time(ms: float) -> str:
        """格式化毫秒為 MM:SS 或 HH:MM:SS"""
        total_seconds = max(0, int(ms // 1000))
        hours, remainder = divmod(total_seconds, 3600)
        minutes, seconds = divmod(remainder, 60)
        if hours:
            return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
        return f"{minutes:02d}:{seconds:02d}"

    # === 離開計時 ===

    def schedule_leave(self) -> None:
        """leave_timeout 後銷毀播放器（離開語音）"""
        self._clear_leave_timeout()
        self._debug(f"{self.options.leave_timeout}ms 後離開語音")
        self._leave_timer = self.scheduler.call_later(self.options.leave_timeout, self._leave)

    def handle_channel_empty(self) -> None:
        """語音頻道只剩機器人時呼叫"""
        if self.options.leave_on_empty:
            self.schedule_leave()

    def cancel_leave(self) -> None:
        self._clear_leave_timeout()

    def _leave(self) -> None:
        self._leave_timer = None
        self._debug("離開計時到期")
        self.destroy()

    def _clear_leave_timeout(self) -> None:
        if self._leave_timer is not None:
            self._leave_timer.cancel()
            self._leave_timer = None
            self._debug("已取消離開計時")

    # === 內部方法：推進 ===

    async def _play_next(self, only_if_idle: bool = False) -> bool:
        """
        推進到下一首並開始播放

        連續啟動失敗時會跳到下一首，最多 max_advance_attempts 次。

        Args:
            only_if_idle: 已在播放時不推進（直接回傳 True）

        Returns:
            是否有曲目開始播放
        """
        async with self._advance_lock:
            if self._destroyed:
                return False
            if only_if_idle and self.is_playing:
                return True

            attempts = 0
            autoplay_used = False
            while attempts < self.options.max_advance_attempts:
                track = self.queue.next(self._skip_loop)
                self._skip_loop = False

                if track is None:
                    will_next = None
                    if not autoplay_used and self.queue.auto_play():
                        will_next = self.queue.take_will_next()
                    if will_next is not None:
                        autoplay_used = True
                        self._debug(f"自動播放: {will_next.title}")
                        self.queue.add(will_next)
                        continue

                    self.is_playing = False
                    self.is_paused = False
                    self._current_resource = None
                    self._debug("佇列已播放完畢")
                    self._emit("queueEnd")
                    if self.options.leave_on_end:
                        self.schedule_leave()
                    return False

                attempts += 1
                self._clear_leave_timeout()
                self._spawn(self._generate_will_next())
                try:
                    return await self._start_track(track)
                except Exception as e:
                    self._debug(f"無法播放 {track.title}: {e}")
                    self._emit("playerError", e, track)
                    # 單曲循環下不重試同一首
                    self._skip_loop = True

            self.is_playing = False
            error = PlaybackError(f"{attempts} consecutive tracks failed to start")
            self._debug(error.message)
            self._emit("playerError", error)
            return False

    async def _start_track(self, track: Track) -> bool:
        """
        取得串流並交給主要引擎播放

        Raises:
            ResolutionError / StreamAcquisitionError / PlaybackError
        """
        stream_info = await self.extensions.provide_stream(track)
        if stream_info is None:
            stream_info = await self._acquire_stream(track)

        if stream_info.is_external:
            self._debug(f"由擴充套件在外部播放: {track.title}")
            self.is_playing = True
            self.is_paused = False
            self._emit("trackStart", track)
            return True

        metadata = {**track.metadata, **stream_info.metadata, "track": track}
        resource = self.audio_engine.create_resource(stream_info, metadata)
        self._cancel_volume_fade()
        resource.set_volume(self.volume / 100)
        self._current_resource = resource
        self.is_playing = True
        self.audio_engine.play(resource)

        if self.audio_engine.status is EngineStatus.AUTO_PAUSED and self.connection is not None:
            # 連線目前訂閱其他引擎（TTS），切回時自動開始
            self._debug(f"音軌已就緒，等待訂閱: {track.title}")
            return True

        if not await self.audio_engine.wait_for(EngineStatus.PLAYING, TRACK_START_TIMEOUT):
            if self._current_resource is resource:
                self._stop_silently()
            raise PlaybackError(f"Track did not start within {TRACK_START_TIMEOUT}ms: {track.title}")
        return True

    def _resolve_plugin(self, track: Track) -> Optional[SourcePlugin]:
        plugin = self._plugin_cache.get(track)
        if plugin is not None and self.plugin_manager.get(plugin.name) is plugin:
            return plugin
        plugin = self.plugin_manager.find_for_track(track)
        if plugin is not None:
            self._plugin_cache.put(track, plugin)
        return plugin

    async def _acquire_stream(self, track: Track) -> StreamInfo:
        """
        主要外掛 → 依註冊順序嘗試其他外掛的 get_stream 與各外掛的 get_fallback

        Raises:
            ResolutionError: 沒有外掛負責此音軌
            StreamAcquisitionError: 所有來源都失敗
        """
        self._plugin_cache.maybe_sweep()
        plugin = self._resolve_plugin(track)
        if plugin is None:
            raise ResolutionError(f"No plugin can handle track: {track.title}", query=track.url)

        timeout = self.options.extractor_timeout
        last_error: Optional[BaseException] = None
        try:
            info = await with_timeout(plugin.get_stream(track), timeout, f"{plugin.name}.get_stream")
            if info is not None and not info.is_external:
                return info
            last_error = StreamAcquisitionError(f"{plugin.name} returned no stream", track=track)
        except Exception as e:
            last_error = e
        self._debug(f"{plugin.name} 取得串流失敗，嘗試備援: {last_error}")

        for candidate in self.plugin_manager.get_all():
            # 主要外掛的 get_stream 已經失敗過
            attempts = [] if candidate is plugin else [("get_stream", candidate.get_stream)]
            if self.plugin_manager.capabilities(candidate.name).fallback:
                attempts.append(("get_fallback", candidate.get_fallback))

            for method, fetch in attempts:
                try:
                    info = await with_timeout(fetch(track), timeout, f"{candidate.name}.{method}")
                except Exception as e:
                    last_error = e
                    self._debug(f"{candidate.name}.{method} 備援失敗: {e}")
                    continue
                if info is not None and not info.is_external:
                    self._debug(f"使用 {candidate.name}.{method} 的備援串流")
                    return info

        raise StreamAcquisitionError(
            f"All fallbacks failed for {track.title}: {last_error}", track=track
        ) from last_error

    async def _generate_will_next(self) -> None:
        """向外掛要相關曲目，決定自動播放的預告曲目"""
        history = self.queue.previous_tracks
        last = history[-1] if history else self.queue.current_track
        if last is None:
            return

        preferred = self.plugin_manager.find_plugin(last.url) or self.plugin_manager.get(last.source)
        related_capable = self.plugin_manager.with_capability("related")
        candidates = [preferred] if preferred in related_capable else []
        candidates += [plugin for plugin in related_capable if plugin is not preferred]

        for plugin in candidates:
            try:
                related = await with_timeout(
                    plugin.get_related_tracks(last.url, limit=RELATED_TRACKS_LIMIT, history=history),
                    self.options.extractor_timeout,
                    f"{plugin.name}.get_related_tracks",
                )
            except Exception as e:
                self._debug(f"{plugin.name} 取得相關曲目失敗: {e}")
                continue
            if not related:
                continue

            related = list(related)
            will_next = self.queue.next_track or random.choice(related)
            self.queue.will_next_track(will_next)
            self.queue.related_tracks(related)
            self._emit("willPlay", will_next, related)
            return

    # === 內部方法：引擎事件 ===

    def _on_engine_state_change(self, old: EngineStatus, new: EngineStatus) -> None:
        if self._destroyed:
            return

        if new is EngineStatus.IDLE:
            if self._ignore_idle:
                return
            self._current_resource = None
            self.is_paused = False
            track = self.queue.current_track
            if track is not None:
                self._emit("trackEnd", track)
            self._spawn(self._play_next())
            return

        if old is EngineStatus.PAUSED:
            self.is_paused = False
            self._emit("playerResume", self.queue.current_track)

        if new is EngineStatus.PLAYING:
            resource = self.audio_engine.resource
            if resource is not None and resource is not self._announced_resource:
                self._announced_resource = resource
                self._clear_leave_timeout()
                self.is_playing = True
                self.is_paused = False
                self._emit("trackStart", self.queue.current_track)
        elif new is EngineStatus.PAUSED:
            self.is_paused = True
            self._emit("playerPause", self.queue.current_track)
        else:
            self._debug(f"引擎狀態: {old.value} → {new.value}")

    def _stop_silently(self) -> None:
        """停止引擎但不觸發推進（推進流程自己處理下一首）"""
        self._ignore_idle = True
        try:
            self.audio_engine.stop(force=True)
        finally:
            self._ignore_idle = False
        self._current_resource = None

    def _on_engine_error(self, error: BaseException) -> None:
        if self._destroyed:
            return
        # 引擎隨後會轉為 IDLE，由狀態處理推進
        self._emit("playerError", error, self.queue.current_track)

    # === 背景工作 ===

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.opt(exception=error).error(f"[Player:{self.guild_id}] 背景工作失敗: {error}")

    # === 清理 ===

    @log_operation("銷毀播放器")
    def destroy(self) -> None:
        """停止一切、離開語音並移除所有監聽器（可重複呼叫）"""
        if self._destroyed:
            return
        self._destroyed = True

        self._clear_leave_timeout()
        self._cancel_volume_fade()
        self.audio_engine.stop(force=True)
        self.tts.shutdown()

        connection, self.connection = self.connection, None
        if connection is not None:
            connection.events.remove_all_listeners()
            connection.destroy()

        self.queue.clear()
        self.plugin_manager.clear()
        self.extensions.detach_all()
        self._plugin_cache.clear()
        self.is_playing = False
        self.is_paused = False
        self._current_resource = None

        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        for task in list(self._tasks):
            if task is not current:
                task.cancel()

        self._emit("playerDestroy")
        self.events.remove_all_listeners()
        logger.info(f"[Player:{self.guild_id}] 播放器已銷毀")
