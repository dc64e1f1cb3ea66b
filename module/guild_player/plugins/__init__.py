# Plugins module
from .base import PluginCapabilities, SourcePlugin
from .manager import PluginManager

__all__ = ["PluginCapabilities", "PluginManager", "SourcePlugin"]
