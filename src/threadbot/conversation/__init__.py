"""
threadbot conversation package.

Implements the plugin-call resolution loop (``ConversationLoop``), the plugin
catalog it dispatches to, the OpenAI-compatible provider it talks to, and the
per-thread history and REST layers in front of it.
"""

from threadbot.conversation.entity import (
    ConversationInput,
    ConversationReply,
    ThreadConversation,
)
from threadbot.conversation.loop import (
    ConversationLoop,
    LoopResponse,
    StopReason,
)
from threadbot.conversation.plugins import (
    MessageContext,
    PluginBase,
    PluginRegistry,
    PluginResult,
    default_registry,
    register_chat_plugin,
)
from threadbot.conversation.providers import (
    CompletionResult,
    FunctionCall,
    LLMProvider,
    OpenAICompatibleProvider,
    ToolDefinition,
)

__all__ = [
    "CompletionResult",
    "ConversationInput",
    "ConversationLoop",
    "ConversationReply",
    "FunctionCall",
    "LLMProvider",
    "LoopResponse",
    "MessageContext",
    "OpenAICompatibleProvider",
    "PluginBase",
    "PluginRegistry",
    "PluginResult",
    "StopReason",
    "ThreadConversation",
    "ToolDefinition",
    "default_registry",
    "register_chat_plugin",
]
