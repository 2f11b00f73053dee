"""
Plugins for the threadbot conversation loop.

Each plugin subclasses ``PluginBase``: it declares ``key``, ``description``
and its parameter schema, and implements ``run_plugin(arguments, context)``
returning a ``PluginResult``.

Plugins join the process-wide catalog once, at startup::

    from threadbot.conversation.plugins import (
        DateTimePlugin,
        WeatherPlugin,
        register_chat_plugin,
    )

    register_chat_plugin(WeatherPlugin())
    register_chat_plugin(DateTimePlugin())
"""

from threadbot.conversation.plugins.base import MessageContext, PluginBase, PluginResult
from threadbot.conversation.plugins.datetime_plugin import DateTimePlugin
from threadbot.conversation.plugins.image import ImagePlugin
from threadbot.conversation.plugins.registry import (
    PluginRegistry,
    default_registry,
    register_chat_plugin,
)
from threadbot.conversation.plugins.weather import WeatherPlugin

__all__ = [
    "DateTimePlugin",
    "ImagePlugin",
    "MessageContext",
    "PluginBase",
    "PluginRegistry",
    "PluginResult",
    "WeatherPlugin",
    "default_registry",
    "register_chat_plugin",
]
