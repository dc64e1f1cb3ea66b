# Core module
from .track import PlaylistInfo, SearchResult, StreamInfo, StreamType, Track
from .queue import LoopMode, Queue
from .state import PlaybackClock, PlayerState
from .cache import CacheStats, PluginCache
from .options import PlayerOptions, TTSOptions
from .events import PLAYER_EVENTS, EventBus
from .scheduler import AsyncioScheduler, ManualScheduler, Scheduler, TimerHandle
from .player import Player
from .tts import TTSInterrupter
from .manager import PlayerManager, get_instance

__all__ = [
    "Track",
    "PlaylistInfo",
    "SearchResult",
    "StreamInfo",
    "StreamType",
    "Queue",
    "LoopMode",
    "PlayerState",
    "PlaybackClock",
    "PluginCache",
    "CacheStats",
    "PlayerOptions",
    "TTSOptions",
    "EventBus",
    "PLAYER_EVENTS",
    "Scheduler",
    "AsyncioScheduler",
    "ManualScheduler",
    "TimerHandle",
    "Player",
    "TTSInterrupter",
    "PlayerManager",
    "get_instance",
]
