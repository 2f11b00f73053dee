"""
Plugin registry for the threadbot conversation loop.

Provides ``PluginRegistry``, the catalog that maps plugin names to plugin
instances. The loop uses ``describe_all()`` to advertise the catalog to the
model on every completion request and ``lookup()`` to dispatch incoming
function calls.

Plugins join the process-wide ``default_registry`` at startup::

    from threadbot.conversation.plugins import register_chat_plugin
    from threadbot.conversation.plugins.weather import WeatherPlugin

    register_chat_plugin(WeatherPlugin())

Registration happens once, before any conversation is processed; after that
the registry is only read and needs no locking.
"""

from __future__ import annotations

import logging

from threadbot.conversation.plugins.base import PluginBase
from threadbot.conversation.providers import ToolDefinition

logger = logging.getLogger(__name__)


class PluginRegistry:
    """Registry mapping plugin names to plugin instances.

    Names are unique. Registering a second plugin under a name already in
    use replaces the first one (last registration wins) and keeps the name's
    original position in the advertised catalog.
    """

    def __init__(self) -> None:
        self._plugins: dict[str, tuple[PluginBase, ToolDefinition]] = {}

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, plugin: PluginBase) -> None:
        """Register *plugin* under ``plugin.key``.

        A duplicate name is not an error: the new plugin replaces the old
        one and a warning is logged.
        """
        if plugin.key in self._plugins:
            logger.warning(
                "Plugin %r is already registered (%r); replacing it with %r",
                plugin.key,
                self._plugins[plugin.key][0],
                plugin,
            )
        self._plugins[plugin.key] = (plugin, plugin.definition())
        logger.debug("Registered plugin: %r", plugin.key)

    # ------------------------------------------------------------------
    # Lookup / introspection
    # ------------------------------------------------------------------

    def lookup(self, name: str) -> PluginBase | None:
        """Return the plugin registered as *name*, or ``None`` if unknown."""
        entry = self._plugins.get(name)
        return entry[0] if entry is not None else None

    def describe_all(self) -> list[ToolDefinition]:
        """Return the ``ToolDefinition`` of every plugin (insertion order)."""
        return [definition for _plugin, definition in self._plugins.values()]

    def names(self) -> list[str]:
        """Return the registered plugin names (insertion order)."""
        return list(self._plugins)

    def __len__(self) -> int:
        return len(self._plugins)

    def __contains__(self, name: object) -> bool:
        return name in self._plugins


default_registry = PluginRegistry()


def register_chat_plugin(plugin: PluginBase) -> None:
    """Register *plugin* with the process-wide ``default_registry``."""
    default_registry.register(plugin)
