"""
Image generation plugin for the threadbot conversation loop.

Asks the provider's image endpoint for a picture and returns it as a *final*
result: the reply text announces the image and the base64 payload travels in
``props["image_b64"]`` for the caller to upload or render.
"""

from __future__ import annotations

import logging
from typing import Any

from threadbot.conversation.plugins.base import MessageContext, PluginBase, PluginResult
from threadbot.conversation.providers import OpenAICompatibleProvider

logger = logging.getLogger(__name__)


class ImagePlugin(PluginBase):
    """Generates an image from a textual description."""

    key = "generate_image"
    description = (
        "Generate an image from a detailed description of its content. "
        "Use this when the user asks you to draw, paint or picture something."
    )
    plugin_arguments = {
        "description": {
            "type": "string",
            "description": "Detailed description of the image to generate, in English.",
        }
    }
    required_arguments = ("description",)

    def __init__(self, provider: OpenAICompatibleProvider) -> None:
        self.provider = provider

    async def run_plugin(
        self, arguments: dict[str, Any], context: MessageContext
    ) -> PluginResult:
        """Generate the image and return it as the final answer.

        Raises:
            ValueError: If ``description`` is missing.
            RuntimeError: If the image endpoint returned no image.
        """
        prompt = str(arguments.get("description") or "").strip()
        if not prompt:
            raise ValueError("Missing required argument: description")

        image_b64 = await self.provider.create_image(prompt)
        if image_b64 is None:
            raise RuntimeError(f"No image returned for prompt {prompt!r}")

        logger.debug(
            "Generated image for conversation %r (%d bytes base64)",
            context.conversation_id,
            len(image_b64),
        )
        return PluginResult(
            message=f"Here is the image you asked for: {prompt}",
            props={"image_b64": image_b64},
        )
