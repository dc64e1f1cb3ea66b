"""
音訊傳輸抽象層

- AudioEngine: 一次播放一個資源的狀態機
- AudioResource: 可播放的音訊來源（音量 + 播放時間）
- VoiceConnection: 語音連線；同一時間只會訂閱一個引擎

本模組本身不做任何編碼；實際送出音訊由子類別（discord_voice）負責。
直接使用基底類別即可得到一個純記憶體的引擎，方便測試。
"""

import asyncio
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger

from ..core.events import EventBus
from ..core.state import PlaybackClock
from ..core.track import StreamInfo, StreamType


class EngineStatus(str, Enum):
    """引擎狀態"""
    IDLE = "idle"
    BUFFERING = "buffering"
    PLAYING = "playing"
    PAUSED = "paused"
    AUTO_PAUSED = "autopaused"     # 沒有語音連線訂閱時自動暫停


class AudioResource:
    """
    可播放的音訊資源

    volume 為倍率（1.0 = 100%）。
    """

    def __init__(
        self,
        stream: Any,
        stream_type: StreamType = StreamType.ARBITRARY,
        metadata: Optional[Dict[str, Any]] = None,
        volume: float = 1.0,
    ):
        self.stream = stream
        self.stream_type = stream_type
        self.metadata: Dict[str, Any] = dict(metadata or {})
        self._volume = volume
        self.clock = PlaybackClock()
        self.ended = False

    @property
    def volume(self) -> float:
        return self._volume

    def set_volume(self, value: float) -> None:
        self._volume = value

    @property
    def playback_duration(self) -> int:
        """已播放的毫秒數（不含暫停）"""
        return self.clock.position_ms

    def cleanup(self) -> None:
        """釋放底層資源"""
        pass


class AudioEngine:
    """
    單一資源的播放引擎

    事件：
        stateChange(old, new)
        error(error)

    使用方式：
        engine = AudioEngine("primary")
        connection.subscribe(engine)
        engine.play(engine.create_resource(stream_info))
        await engine.wait_for(EngineStatus.PLAYING, 5000)
    """

    def __init__(self, name: str = "primary"):
        self.name = name
        self.events = EventBus(f"AudioEngine:{name}")
        self._status = EngineStatus.IDLE
        self._resource: Optional[AudioResource] = None
        self._subscribers: List[Any] = []
        self._waiters: List[Tuple[EngineStatus, asyncio.Future]] = []

    # === 屬性 ===

    @property
    def status(self) -> EngineStatus:
        return self._status

    @property
    def resource(self) -> Optional[AudioResource]:
        return self._resource

    @property
    def is_subscribed(self) -> bool:
        return bool(self._subscribers)

    def on(self, event: str, listener):
        return self.events.on(event, listener)

    # === 資源 ===

    def create_resource(self, stream_info: StreamInfo, metadata: Optional[Dict[str, Any]] = None) -> AudioResource:
        return AudioResource(stream_info.stream, stream_info.type, metadata)

    def _release(self, resource: AudioResource) -> None:
        try:
            resource.cleanup()
        except Exception as e:
            logger.warning(f"[{self.name}] 釋放資源失敗: {e}")

    # === 控制 ===

    def play(self, resource: AudioResource) -> None:
        """開始播放資源（取代目前的資源）"""
        previous = self._resource
        self._resource = resource
        if previous is not None and previous is not resource:
            self._release(previous)
        self._set_status(EngineStatus.BUFFERING)
        self._start(resource)

    def _start(self, resource: AudioResource) -> None:
        """子類別可覆寫：資源準備好後進入播放狀態"""
        self._set_status(EngineStatus.PLAYING if self.is_subscribed else EngineStatus.AUTO_PAUSED)

    def pause(self) -> bool:
        if self._status in (EngineStatus.PLAYING, EngineStatus.BUFFERING, EngineStatus.AUTO_PAUSED):
            self._set_status(EngineStatus.PAUSED)
            return True
        return False

    def unpause(self) -> bool:
        if self._status is EngineStatus.PAUSED:
            self._set_status(EngineStatus.PLAYING if self.is_subscribed else EngineStatus.AUTO_PAUSED)
            return True
        return False

    def stop(self, force: bool = False) -> bool:
        """
        停止播放並釋放資源

        Returns:
            是否真的停止了（閒置中且非強制時回傳 False）
        """
        if self._status is EngineStatus.IDLE and not force:
            return False
        resource, self._resource = self._resource, None
        self._set_status(EngineStatus.IDLE)
        if resource is not None:
            self._release(resource)
        return True

    def finish(self) -> None:
        """資源自然播放完畢"""
        if self._resource is None:
            return
        self._resource.ended = True
        self.stop(force=True)

    def fail(self, error: BaseException) -> None:
        """播放失敗：先發出 error，再回到閒置"""
        logger.warning(f"[{self.name}] 播放錯誤: {error}")
        self.events.emit("error", error)
        self.stop(force=True)

    # === 訂閱 ===

    def _subscribed(self, connection: Any) -> None:
        if connection not in self._subscribers:
            self._subscribers.append(connection)
        if self._status is EngineStatus.AUTO_PAUSED:
            self._set_status(EngineStatus.PLAYING)

    def _unsubscribed(self, connection: Any) -> None:
        if connection in self._subscribers:
            self._subscribers.remove(connection)
        if not self._subscribers and self._status is EngineStatus.PLAYING:
            self._set_status(EngineStatus.AUTO_PAUSED)

    # === 狀態 ===

    async def wait_for(self, status: EngineStatus, timeout_ms: float) -> bool:
        """
        等待引擎進入指定狀態

        Returns:
            是否在時間內進入（已經在該狀態則立即回傳 True）
        """
        if self._status is status:
            return True
        future = asyncio.get_running_loop().create_future()
        entry = (status, future)
        self._waiters.append(entry)
        try:
            await asyncio.wait_for(future, timeout=timeout_ms / 1000)
            return True
        except asyncio.TimeoutError:
            return False
        finally:
            if entry in self._waiters:
                self._waiters.remove(entry)

    def _set_status(self, new: EngineStatus) -> None:
        old = self._status
        if new is old:
            return
        self._status = new

        resource = self._resource
        if resource is not None:
            if new is EngineStatus.PLAYING:
                if not resource.clock.is_running:
                    resource.clock.start()
                else:
                    resource.clock.resume()
            elif new in (EngineStatus.PAUSED, EngineStatus.AUTO_PAUSED):
                resource.clock.pause()

        for waiting_for, future in list(self._waiters):
            if waiting_for is new and not future.done():
                future.set_result(True)

        self.events.emit("stateChange", old, new)


class VoiceConnection:
    """
    語音連線

    同一時間只訂閱一個引擎；subscribe() 會原子地切換。

    事件：
        disconnected()
        error(error)
        destroyed()
    """

    def __init__(self):
        self.events = EventBus("VoiceConnection")
        self._subscription: Optional[AudioEngine] = None
        self._destroyed = False

    @property
    def subscription(self) -> Optional[AudioEngine]:
        return self._subscription

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def on(self, event: str, listener):
        return self.events.on(event, listener)

    def subscribe(self, engine: AudioEngine) -> None:
        if self._destroyed:
            raise RuntimeError("Cannot subscribe on a destroyed voice connection")
        previous = self._subscription
        if previous is engine:
            return
        self._subscription = engine
        self._on_subscribe(engine)
        if previous is not None:
            previous._unsubscribed(self)
        engine._subscribed(self)

    def _on_subscribe(self, engine: AudioEngine) -> None:
        """子類別可覆寫：把引擎接到實際的語音傳輸"""
        pass

    def destroy(self) -> None:
        if self._destroyed:
            return
        self._destroyed = True
        engine, self._subscription = self._subscription, None
        if engine is not None:
            engine._unsubscribed(self)
        self._disconnect()
        self.events.emit("destroyed")

    def _disconnect(self) -> None:
        """子類別可覆寫：中斷實際的語音連線"""
        pass

    def signal_disconnected(self) -> None:
        """語音連線被外部中斷（例如被踢出頻道）"""
        logger.debug("語音連線已中斷")
        self.events.emit("disconnected")

    def signal_error(self, error: BaseException) -> None:
        self.events.emit("error", error)
