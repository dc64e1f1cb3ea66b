"""
音軌資料結構

Track / SearchResult / StreamInfo 是外掛與播放器之間交換的資料格式。
所有時長單位為毫秒。
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ..constants import TTS_MIN_DURATION


def normalize_duration(value: float) -> int:
    """
    把宣告的時長轉成毫秒

    有些外掛回傳秒數；<= 1000 的值視為秒。
    """
    duration = int(value or 0)
    if 0 < duration <= TTS_MIN_DURATION:
        return duration * 1000
    return duration


@dataclass(frozen=True)
class Track:
    """
    單一音軌（建立後不可修改）

    source 是產生此音軌的外掛名稱，用於解析串流。
    """
    id: str                          # 外掛內部的 ID
    title: str                       # 標題
    url: str                         # 原始 URL
    duration: int = 0                # 時長（毫秒）
    requested_by: str = "Unknown"    # 點歌者
    source: str = ""                 # 外掛名稱
    thumbnail: Optional[str] = None  # 縮圖 URL
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def is_tts(self) -> bool:
        """是否為 TTS 音軌（source 含有 "tts"）"""
        return "tts" in (self.source or "").lower()

    def format_duration(self) -> str:
        """格式化時長為 M:SS 或 H:MM:SS"""
        seconds = int(self.duration or 0) // 1000

        if seconds >= 3600:
            hours = seconds // 3600
            minutes = (seconds % 3600) // 60
            secs = seconds % 60
            return f"{hours}:{minutes:02d}:{secs:02d}"
        else:
            minutes = seconds // 60
            secs = seconds % 60
            return f"{minutes}:{secs:02d}"


@dataclass(frozen=True)
class PlaylistInfo:
    """播放清單資訊"""
    name: str
    url: str
    thumbnail: Optional[str] = None


@dataclass
class SearchResult:
    """搜尋結果；playlist 有值時代表整份播放清單"""
    tracks: List[Track] = field(default_factory=list)
    playlist: Optional[PlaylistInfo] = None

    @property
    def is_playlist(self) -> bool:
        return self.playlist is not None


class StreamType(str, Enum):
    """串流格式提示，讓音訊引擎決定解碼方式"""
    WEBM_OPUS = "webm/opus"
    OGG_OPUS = "ogg/opus"
    ARBITRARY = "arbitrary"


@dataclass
class StreamInfo:
    """
    可播放的串流

    stream 為 None 代表由外部（擴充套件）負責播放。
    stream 可以是 URL / 檔案路徑字串，或類檔案物件。
    """
    stream: Any
    type: StreamType = StreamType.ARBITRARY
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_external(self) -> bool:
        return self.stream is None
