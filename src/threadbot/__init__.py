"""
threadbot - a chat-thread assistant that lets the model call plugins.

The model is offered a catalog of plugins (function calls). The conversation
loop runs the plugins the model asks for, feeds intermediate results back,
and stops on a final answer, a failing plugin or an exhausted round budget.

Quick Start:
    >>> from threadbot.conversation import ConversationLoop, MessageContext
    >>> from threadbot.conversation import OpenAICompatibleProvider, default_registry
    >>> loop = ConversationLoop(OpenAICompatibleProvider(), default_registry)
    >>> response = await loop.continue_thread(
    ...     [{"role": "user", "content": "What time is it?"}], MessageContext()
    ... )
"""

__version__ = "0.1.0"
