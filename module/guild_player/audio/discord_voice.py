"""
discord.py 語音傳輸

DiscordAudioEngine 本身就是一個 discord.AudioSource：
discord.py 的播放執行緒每 20ms 呼叫 read()，
播放中回傳資源的 PCM，其他狀態回傳靜音。
切換訂閱只需替換 voice_client.source。
"""

import asyncio
import os
import shutil
from typing import Any, Dict, Optional

import discord
from loguru import logger

from ..core.track import StreamInfo, StreamType
from .engine import AudioEngine, AudioResource, EngineStatus, VoiceConnection

FRAME_SIZE = discord.opus.Encoder.FRAME_SIZE
SILENCE = b"\x00" * FRAME_SIZE

# 串流格式 → ffmpeg 輸入格式
INPUT_FORMATS = {
    StreamType.WEBM_OPUS: "-f webm",
    StreamType.OGG_OPUS: "-f ogg",
}
RECONNECT_OPTIONS = "-reconnect 1 -reconnect_streamed 1 -reconnect_delay_max 5"


def get_ffmpeg_path() -> str:
    """FFMPEG_PATH 環境變數優先，其次是 PATH 中的 ffmpeg"""
    configured = os.getenv("FFMPEG_PATH")
    if configured:
        return configured
    return shutil.which("ffmpeg") or "ffmpeg"


def _before_options(stream: Any, stream_type: StreamType) -> str:
    options = []
    if isinstance(stream, str) and stream.startswith(("http://", "https://")):
        options.append(RECONNECT_OPTIONS)
    if stream_type in INPUT_FORMATS:
        options.append(INPUT_FORMATS[stream_type])
    return " ".join(options)


class DiscordAudioResource(AudioResource):
    """以 FFmpegPCMAudio + PCMVolumeTransformer 解碼的資源"""

    def __init__(
        self,
        stream_info: StreamInfo,
        metadata: Optional[Dict[str, Any]] = None,
        volume: float = 1.0,
        executable: Optional[str] = None,
    ):
        super().__init__(stream_info.stream, stream_info.type, metadata, volume)
        stream = stream_info.stream
        audio = discord.FFmpegPCMAudio(
            stream,
            executable=executable or get_ffmpeg_path(),
            pipe=not isinstance(stream, str),
            before_options=_before_options(stream, stream_info.type) or None,
            options="-vn",
        )
        self.source = discord.PCMVolumeTransformer(audio, volume=volume)

    def set_volume(self, value: float) -> None:
        super().set_volume(value)
        self.source.volume = value

    def read_frame(self) -> bytes:
        return self.source.read()

    def cleanup(self) -> None:
        self.source.cleanup()


class DiscordAudioEngine(AudioEngine, discord.AudioSource):
    """
    供 discord.py 讀取的播放引擎

    read() 在 discord.py 的播放執行緒中被呼叫，
    任何狀態變更都必須透過 call_soon_threadsafe 回到 event loop。
    """

    def __init__(self, name: str = "primary"):
        AudioEngine.__init__(self, name)
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def create_resource(self, stream_info: StreamInfo, metadata: Optional[Dict[str, Any]] = None) -> AudioResource:
        return DiscordAudioResource(stream_info, metadata)

    def play(self, resource: AudioResource) -> None:
        self._loop = asyncio.get_running_loop()
        super().play(resource)

    # === discord.AudioSource ===

    def is_opus(self) -> bool:
        return False

    def read(self) -> bytes:
        resource = self._resource
        if resource is None or self._status is not EngineStatus.PLAYING:
            return SILENCE

        try:
            data = resource.read_frame()
        except Exception as e:
            self._loop.call_soon_threadsafe(self._on_read_error, resource, e)
            return SILENCE

        if len(data) < FRAME_SIZE:
            self._loop.call_soon_threadsafe(self._on_exhausted, resource)
            return SILENCE
        return data

    def cleanup(self) -> None:
        # discord.py 停止播放時會呼叫；引擎需要在切換訂閱後繼續存在
        pass

    def _on_exhausted(self, resource: AudioResource) -> None:
        if resource is self._resource:
            self.finish()

    def _on_read_error(self, resource: AudioResource, error: Exception) -> None:
        if resource is self._resource:
            self.fail(error)


class DiscordVoiceConnection(VoiceConnection):
    """包裝 discord.VoiceClient"""

    def __init__(self, voice_client: discord.VoiceClient):
        super().__init__()
        self.voice_client = voice_client
        self._loop = asyncio.get_running_loop()
        self._disconnect_task: Optional[asyncio.Task] = None

    @classmethod
    async def connect(
        cls,
        channel: discord.abc.Connectable,
        self_deaf: bool = True,
        self_mute: bool = False,
    ) -> "DiscordVoiceConnection":
        voice_client = await channel.connect(self_deaf=self_deaf, self_mute=self_mute)
        logger.info(f"已連接語音頻道: {getattr(channel, 'name', channel)}")
        return cls(voice_client)

    def _on_subscribe(self, engine: AudioEngine) -> None:
        if not isinstance(engine, discord.AudioSource):
            raise TypeError(f"{type(engine).__name__} is not a discord.AudioSource")
        if self.voice_client.is_playing() or self.voice_client.is_paused():
            self.voice_client.source = engine
        else:
            self.voice_client.play(engine, after=self._after)

    def _after(self, error: Optional[Exception]) -> None:
        # 在 discord.py 的播放執行緒中被呼叫
        if error is not None:
            self._loop.call_soon_threadsafe(self.signal_error, error)

    def _disconnect(self) -> None:
        if self.voice_client.is_connected():
            self._disconnect_task = self._loop.create_task(self.voice_client.disconnect(force=True))
