"""
伺服器播放器模組

每個 Discord 伺服器一個播放器，提供:
- 外掛式來源（搜尋 / 串流 / 備援 / 相關曲目）
- 擴充套件 hook 管線
- 佇列、循環、自動播放
- TTS 插播
- 離開計時、音量漸變
"""

# Core
from .core.track import PlaylistInfo, SearchResult, StreamInfo, StreamType, Track
from .core.queue import LoopMode, Queue
from .core.state import PlayerState
from .core.options import PlayerOptions, TTSOptions
from .core.events import PLAYER_EVENTS, EventBus
from .core.scheduler import AsyncioScheduler, ManualScheduler, Scheduler
from .core.player import Player
from .core.manager import PlayerManager, get_instance

# Audio
from .audio.engine import AudioEngine, AudioResource, EngineStatus, VoiceConnection
from .audio.discord_voice import DiscordAudioEngine, DiscordVoiceConnection

# Plugins / Extensions
from .plugins import PluginManager, SourcePlugin
from .extensions import (
    Extension,
    ExtensionAfterPlayPayload,
    ExtensionContext,
    ExtensionPlayRequest,
    ExtensionPlayResponse,
    ExtensionSearchRequest,
    ExtensionStreamRequest,
)

# UI
from .ui.embeds import EmbedBuilder

# Config
from .config import load_paths, load_player_options

# Utils
from .utils.errors import (
    GuildPlayerError,
    ResolutionError,
    StreamAcquisitionError,
    ExtractorTimeoutError,
    ExtensionHookError,
    VoiceConnectionError,
    PlaybackError,
)
from .utils.decorators import handle_errors, log_operation

__all__ = [
    # Core
    "Track",
    "PlaylistInfo",
    "SearchResult",
    "StreamInfo",
    "StreamType",
    "Queue",
    "LoopMode",
    "PlayerState",
    "PlayerOptions",
    "TTSOptions",
    "EventBus",
    "PLAYER_EVENTS",
    "Scheduler",
    "AsyncioScheduler",
    "ManualScheduler",
    "Player",
    "PlayerManager",
    "get_instance",
    # Audio
    "AudioEngine",
    "AudioResource",
    "EngineStatus",
    "VoiceConnection",
    "DiscordAudioEngine",
    "DiscordVoiceConnection",
    # Plugins / Extensions
    "PluginManager",
    "SourcePlugin",
    "Extension",
    "ExtensionAfterPlayPayload",
    "ExtensionContext",
    "ExtensionPlayRequest",
    "ExtensionPlayResponse",
    "ExtensionSearchRequest",
    "ExtensionStreamRequest",
    # UI
    "EmbedBuilder",
    # Config
    "load_paths",
    "load_player_options",
    # Utils
    "GuildPlayerError",
    "ResolutionError",
    "StreamAcquisitionError",
    "ExtractorTimeoutError",
    "ExtensionHookError",
    "VoiceConnectionError",
    "PlaybackError",
    "handle_errors",
    "log_operation",
]
