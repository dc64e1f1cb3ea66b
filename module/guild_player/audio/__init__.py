# Audio module
from .engine import AudioEngine, AudioResource, EngineStatus, VoiceConnection
from .discord_voice import (
    DiscordAudioEngine,
    DiscordAudioResource,
    DiscordVoiceConnection,
    get_ffmpeg_path,
)

__all__ = [
    "AudioEngine",
    "AudioResource",
    "EngineStatus",
    "VoiceConnection",
    "DiscordAudioEngine",
    "DiscordAudioResource",
    "DiscordVoiceConnection",
    "get_ffmpeg_path",
]
