"""
外掛管理器

依註冊順序保存外掛；順序即優先權。
"""

from typing import Dict, List, Optional

from loguru import logger

from ..core.track import Track
from .base import REQUIRED_MEMBERS, PluginCapabilities, SourcePlugin


class PluginManager:
    """
    外掛註冊表

    使用方式：
        plugins = PluginManager()
        plugins.register(MyPlugin())
        plugin = plugins.find_plugin("my:query")
    """

    def __init__(self):
        self._plugins: Dict[str, SourcePlugin] = {}
        self._capabilities: Dict[str, PluginCapabilities] = {}

    def __len__(self) -> int:
        return len(self._plugins)

    def __contains__(self, name: object) -> bool:
        return name in self._plugins

    @property
    def names(self) -> List[str]:
        return list(self._plugins)

    def register(self, plugin: SourcePlugin) -> None:
        """
        註冊外掛（同名外掛會被取代）

        Raises:
            TypeError: 缺少必要方法或名稱
        """
        name = getattr(plugin, "name", None)
        if not isinstance(name, str) or not name:
            raise TypeError(f"Plugin {plugin!r} has no name")
        missing = [member for member in REQUIRED_MEMBERS if not callable(getattr(plugin, member, None))]
        if missing:
            raise TypeError(f"Plugin {name} is missing: {', '.join(missing)}")

        if name in self._plugins:
            logger.debug(f"取代已註冊的外掛: {name}")
        self._plugins[name] = plugin
        self._capabilities[name] = PluginCapabilities.inspect(plugin)

    def unregister(self, name: str) -> bool:
        self._capabilities.pop(name, None)
        return self._plugins.pop(name, None) is not None

    def get(self, name: str) -> Optional[SourcePlugin]:
        return self._plugins.get(name)

    def get_all(self) -> List[SourcePlugin]:
        return list(self._plugins.values())

    def capabilities(self, name: str) -> PluginCapabilities:
        return self._capabilities.get(name, PluginCapabilities())

    def with_capability(self, capability: str) -> List[SourcePlugin]:
        """依註冊順序列出具備某選用方法的外掛（fallback / related / validate / playlist）"""
        return [
            plugin for name, plugin in self._plugins.items()
            if getattr(self._capabilities[name], capability)
        ]

    def find_plugin(self, query: str) -> Optional[SourcePlugin]:
        """第一個 can_handle 為真的外掛"""
        for plugin in self._plugins.values():
            try:
                if plugin.can_handle(query):
                    return plugin
            except Exception as e:
                logger.warning(f"外掛 {plugin.name}.can_handle 發生錯誤: {e}")
        return None

    def find_for_track(self, track: Track) -> Optional[SourcePlugin]:
        """
        找出負責此音軌的外掛

        先以 URL 比對（validate，沒有則用 can_handle），
        再以 track.source 名稱比對。
        """
        for name, plugin in self._plugins.items():
            check = plugin.validate if self._capabilities[name].validate else plugin.can_handle
            try:
                if check(track.url):
                    return plugin
            except Exception as e:
                logger.warning(f"外掛 {name} 比對 URL 失敗: {e}")
        return self._plugins.get(track.source)

    def clear(self) -> None:
        self._plugins.clear()
        self._capabilities.clear()
