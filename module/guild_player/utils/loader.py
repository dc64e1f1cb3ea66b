"""
以 "套件.模組:屬性" 路徑動態載入物件（外掛 / 擴充套件類別）
"""

import importlib
from typing import Any, Iterable, List

from loguru import logger


def load_object(path: str) -> Any:
    """
    載入單一物件

    Args:
        path: 例如 "my_plugins.youtube:YouTubePlugin"

    Raises:
        ValueError: 格式錯誤
        ImportError / AttributeError: 找不到模組或屬性
    """
    module_name, sep, attr = path.strip().partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Invalid object path: {path!r} (expected 'module:Attribute')")

    module = importlib.import_module(module_name)
    obj = module
    for part in attr.split("."):
        obj = getattr(obj, part)
    return obj


def load_objects(paths: Iterable[str]) -> List[Any]:
    """載入多個物件，失敗的項目記錄後略過"""
    loaded = []
    for path in paths:
        try:
            loaded.append(load_object(path))
            logger.info(f"已載入: {path}")
        except Exception as e:
            logger.error(f"載入失敗: {path} - {e}")
    return loaded
