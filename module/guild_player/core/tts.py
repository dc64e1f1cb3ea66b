"""
TTS 插播

TTS 音軌不進入播放佇列，而是：
1. 暫停主要引擎
2. 把語音連線切換到 TTS 專用引擎
3. 播完（或逾時）後切回並恢復音樂

同一時間只播放一則；其他的依序排隊。
"""

from collections import deque
from typing import TYPE_CHECKING, Deque, Optional

from ..audio.engine import AudioEngine, AudioResource, EngineStatus
from ..constants import TTS_DURATION_BUFFER, TTS_MIN_DURATION, TTS_START_TIMEOUT
from ..utils.errors import VoiceConnectionError
from .track import Track, normalize_duration

if TYPE_CHECKING:
    from .player import Player


class TTSInterrupter:
    """
    管理 TTS 佇列與 TTS 引擎

    使用方式：
        await player.tts.interrupt(track)
        player.tts.is_active   # 是否正在播放 TTS
    """

    def __init__(self, player: "Player"):
        self._player = player
        self._queue: Deque[Track] = deque()
        self._active = False
        self._engine: Optional[AudioEngine] = None

    @property
    def engine(self) -> Optional[AudioEngine]:
        return self._engine

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def pending(self) -> int:
        return len(self._queue)

    def ensure_engine(self) -> AudioEngine:
        """延遲建立 TTS 引擎"""
        if self._engine is None:
            self._engine = self._player._engine_factory("tts")
            self._engine.on("error", lambda error: self._player._debug(f"TTS 引擎錯誤: {error}"))
        return self._engine

    async def interrupt(self, track: Track) -> None:
        """加入 TTS 佇列；目前沒有在播放 TTS 時開始處理"""
        self._queue.append(track)
        if not self._active:
            self._active = True
            self._player._spawn(self._drain())

    async def _drain(self) -> None:
        try:
            while self._queue and not self._player.is_destroyed:
                track = self._queue.popleft()
                try:
                    await self._play_one(track)
                except Exception as e:
                    self._player._debug(f"TTS 播放失敗: {e}")
                    self._player._emit("playerError", e, track)
        finally:
            self._active = False

    async def _play_one(self, track: Track) -> None:
        player = self._player
        connection = player.connection
        if connection is None:
            raise VoiceConnectionError("No voice connection for TTS")

        engine = self.ensure_engine()
        stream_info = await player._acquire_stream(track)
        resource = engine.create_resource(stream_info, {**track.metadata, **stream_info.metadata, "track": track})
        resource.set_volume(player.options.tts.volume / 100)

        primary = player.audio_engine
        was_playing = primary.status in (EngineStatus.PLAYING, EngineStatus.BUFFERING)
        if was_playing:
            primary.pause()

        connection.subscribe(engine)
        player._emit("ttsStart", {"track": track})
        try:
            engine.play(resource)
            await engine.wait_for(EngineStatus.PLAYING, TTS_START_TIMEOUT)
            timeout = self._idle_timeout(track, resource)
            if not await engine.wait_for(EngineStatus.IDLE, timeout):
                player._debug(f"TTS 超過 {timeout}ms，強制停止")
                engine.stop(force=True)
        finally:
            if not player.is_destroyed and player.connection is connection:
                connection.subscribe(primary)
                if was_playing:
                    primary.unpause()

        player._emit("ttsEnd")

    def _idle_timeout(self, track: Track, resource: AudioResource) -> int:
        """
        等待 TTS 播完的上限

        min(上限, max(1000, 宣告長度 + 1500))；沒有宣告長度時使用上限。
        """
        cap = self._player.options.tts.max_tts_duration
        declared = resource.metadata.get("duration") or track.duration
        if not declared:
            return cap
        declared_ms = normalize_duration(declared)
        return min(cap, max(TTS_MIN_DURATION, declared_ms + TTS_DURATION_BUFFER))

    def shutdown(self) -> None:
        self._queue.clear()
        if self._engine is not None:
            self._engine.stop(force=True)
            self._engine.events.remove_all_listeners()
            self._engine = None
