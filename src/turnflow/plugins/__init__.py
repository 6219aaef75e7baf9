"""Plugins: globally registered interceptors of every invocation step."""

from turnflow.plugins.base_plugin import BasePlugin
from turnflow.plugins.logging_plugin import LoggingPlugin
from turnflow.plugins.plugin_manager import PluginManager
from turnflow.plugins.replay_plugin import REPLAY_CONFIG_KEY, ReplayPlugin

__all__ = ["BasePlugin", "LoggingPlugin", "PluginManager", "REPLAY_CONFIG_KEY", "ReplayPlugin"]
