# Extensions module
from .base import (
    Extension,
    ExtensionAfterPlayPayload,
    ExtensionContext,
    ExtensionPlayRequest,
    ExtensionPlayResponse,
    ExtensionSearchRequest,
    ExtensionStreamRequest,
)
from .pipeline import ExtensionPipeline

__all__ = [
    "Extension",
    "ExtensionAfterPlayPayload",
    "ExtensionContext",
    "ExtensionPipeline",
    "ExtensionPlayRequest",
    "ExtensionPlayResponse",
    "ExtensionSearchRequest",
    "ExtensionStreamRequest",
]
