"""
播放器統一錯誤系統

所有錯誤都繼承自 GuildPlayerError，包含：
- message: 技術性錯誤訊息（給開發者 / log）
- user_message: 使用者友善的訊息（給 Discord 顯示）
"""

from typing import Any, Optional


class GuildPlayerError(Exception):
    """播放器錯誤基類"""

    def __init__(self, message: str, user_message: Optional[str] = None):
        self.message = message
        self.user_message = user_message or message
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


class ResolutionError(GuildPlayerError):
    """沒有任何外掛能處理此查詢或音軌"""

    def __init__(self, message: str, query: Optional[str] = None, last_error: Optional[BaseException] = None):
        self.query = query
        self.last_error = last_error
        super().__init__(
            message=message,
            user_message="找不到可以播放的內容"
        )


class StreamAcquisitionError(GuildPlayerError):
    """主要外掛與所有備援都無法取得串流"""

    def __init__(self, message: str, track: Any = None):
        self.track = track
        super().__init__(
            message=message,
            user_message="無法取得音訊串流"
        )


class ExtractorTimeoutError(GuildPlayerError):
    """外掛或擴充套件呼叫超時"""

    def __init__(self, operation: str, timeout_ms: float):
        self.operation = operation
        self.timeout_ms = timeout_ms
        super().__init__(
            message=f"{operation} timed out after {timeout_ms}ms",
            user_message="操作超時，請稍後再試"
        )


class ExtensionHookError(GuildPlayerError):
    """擴充套件 hook 執行失敗（只記錄，不往外拋）"""

    def __init__(self, extension: str, hook: str, original: BaseException):
        self.extension = extension
        self.hook = hook
        self.original = original
        super().__init__(
            message=f"Extension {extension}.{hook} failed: {original}",
            user_message="擴充功能發生錯誤"
        )


class VoiceConnectionError(GuildPlayerError):
    """語音連接錯誤"""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            user_message="無法連接到語音頻道"
        )


class PlaybackError(GuildPlayerError):
    """播放錯誤"""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            user_message="播放時發生錯誤"
        )
