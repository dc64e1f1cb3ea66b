"""
播放器選項

建立後不可修改；需要不同設定時使用 replace() 產生新物件。
"""

from typing import Any, Dict, Literal, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..constants import (
    DEFAULT_EXTRACTOR_TIMEOUT,
    DEFAULT_LEAVE_TIMEOUT,
    DEFAULT_MAX_TTS_DURATION,
    DEFAULT_VOLUME,
    MAX_ADVANCE_ATTEMPTS,
    MAX_VOLUME,
    MIN_VOLUME,
)


class TTSOptions(BaseModel):
    """TTS 插播設定"""

    model_config = ConfigDict(frozen=True, extra="forbid")

    create_player: bool = False          # 建立播放器時就準備好 TTS 引擎
    interrupt: bool = True               # 是否啟用插播
    volume: int = Field(DEFAULT_VOLUME, ge=MIN_VOLUME, le=MAX_VOLUME)
    max_tts_duration: int = Field(DEFAULT_MAX_TTS_DURATION, gt=0)  # 單則 TTS 最長等待（毫秒）


class PlayerOptions(BaseModel):
    """
    播放器設定

    extensions:
        None / 空 → 不啟用任何擴充套件
        全部是字串 → 從管理器的擴充套件中依名稱挑選
        其他 → 直接使用給定的實例或類別
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    leave_on_end: bool = True
    leave_on_empty: bool = True
    leave_timeout: int = Field(DEFAULT_LEAVE_TIMEOUT, gt=0)
    volume: int = Field(DEFAULT_VOLUME, ge=MIN_VOLUME, le=MAX_VOLUME)
    quality: Literal["high", "low"] = "high"
    self_deaf: bool = True
    self_mute: bool = False
    extractor_timeout: int = Field(DEFAULT_EXTRACTOR_TIMEOUT, gt=0)
    max_advance_attempts: int = Field(MAX_ADVANCE_ATTEMPTS, gt=0)
    userdata: Dict[str, Any] = Field(default_factory=dict)
    tts: TTSOptions = Field(default_factory=TTSOptions)
    extensions: Optional[Tuple[Any, ...]] = None

    @field_validator("quality", mode="before")
    @classmethod
    def _normalize_quality(cls, value: Any):
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PlayerOptions":
        """
        從一般 dict 建立（tts 可以是巢狀 dict，字串會自動轉型）

        Raises:
            pydantic.ValidationError: 未知的欄位或數值不合法（ValueError 的子類別）
        """
        return cls.model_validate(dict(data))

    def replace(self, **changes: Any) -> "PlayerOptions":
        data = {name: getattr(self, name) for name in type(self).model_fields}
        data.update(changes)
        return type(self).model_validate(data)
