"""
環境變數設定

所有 GUILD_PLAYER_* 變數皆為選用；未設定時使用 constants 中的預設值。
.env 由 main.py 透過 python-dotenv 載入；字串轉型與範圍檢查交給 PlayerOptions（pydantic）。
"""

import os
from typing import Any, Dict, List, Mapping, Optional

from .core.options import PlayerOptions

PREFIX = "GUILD_PLAYER_"

# 環境變數 → PlayerOptions 欄位
_PLAYER_FIELDS = {
    "LEAVE_ON_END": "leave_on_end",
    "LEAVE_ON_EMPTY": "leave_on_empty",
    "LEAVE_TIMEOUT": "leave_timeout",
    "VOLUME": "volume",
    "QUALITY": "quality",
    "EXTRACTOR_TIMEOUT": "extractor_timeout",
    "SELF_DEAF": "self_deaf",
    "SELF_MUTE": "self_mute",
}
# 環境變數 → TTSOptions 欄位
_TTS_FIELDS = {
    "TTS_INTERRUPT": "interrupt",
    "TTS_VOLUME": "volume",
    "TTS_MAX_DURATION": "max_tts_duration",
    "TTS_CREATE_PLAYER": "create_player",
}


def _collect(environ: Mapping[str, str], fields: Mapping[str, str]) -> Dict[str, str]:
    collected = {}
    for key, field_name in fields.items():
        raw = (environ.get(PREFIX + key) or "").strip()
        if raw:
            collected[field_name] = raw
    return collected


def load_player_options(environ: Optional[Mapping[str, str]] = None, **overrides: Any) -> PlayerOptions:
    """
    從環境變數建立 PlayerOptions

    Args:
        environ: 預設為 os.environ
        overrides: 直接指定的欄位（優先於環境變數）

    Raises:
        pydantic.ValidationError: 數值格式錯誤或超出範圍
    """
    environ = os.environ if environ is None else environ
    data: Dict[str, Any] = _collect(environ, _PLAYER_FIELDS)

    tts = _collect(environ, _TTS_FIELDS)
    if tts:
        data["tts"] = tts
    data.update(overrides)
    return PlayerOptions.from_mapping(data)


def load_paths(name: str, environ: Optional[Mapping[str, str]] = None) -> List[str]:
    """
    讀取以逗號分隔的 "module:Class" 清單

    例如 GUILD_PLAYER_PLUGINS=my_plugins.youtube:YouTubePlugin,my_plugins.tts:TTSPlugin
    """
    environ = os.environ if environ is None else environ
    raw = environ.get(PREFIX + name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]
