# Utils module
from .errors import (
    GuildPlayerError,
    ResolutionError,
    StreamAcquisitionError,
    ExtractorTimeoutError,
    ExtensionHookError,
    VoiceConnectionError,
    PlaybackError,
)
from .decorators import handle_errors, log_operation
from .aio import maybe_await, with_timeout
from .loader import load_object, load_objects

__all__ = [
    # Errors
    "GuildPlayerError",
    "ResolutionError",
    "StreamAcquisitionError",
    "ExtractorTimeoutError",
    "ExtensionHookError",
    "VoiceConnectionError",
    "PlaybackError",
    # Decorators
    "handle_errors",
    "log_operation",
    # Async helpers
    "maybe_await",
    "with_timeout",
    # Loader
    "load_object",
    "load_objects",
]
