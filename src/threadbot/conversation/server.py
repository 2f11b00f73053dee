"""
HTTP server for ThreadConversation.

Exposes chat threads over a small REST API so the conversation loop can be
driven by any chat front-end (or curl) without a dedicated integration.

Endpoints
---------
POST   /conversation             Answer one message posted to a thread.
DELETE /conversation/{id}        Clear history for a thread.
DELETE /conversation             Clear all thread histories.
GET    /plugins                  List the plugins advertised to the model.
GET    /health                   Health / readiness check.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from threadbot import __version__
from threadbot.conversation.entity import ConversationInput, ThreadConversation
from threadbot.conversation.plugins.registry import PluginRegistry

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Request / response schemas
# ---------------------------------------------------------------------------


class ConversationRequest(BaseModel):
    """Body for POST /conversation."""

    text: str = Field(..., description="The posted message.")
    conversation_id: str | None = Field(
        default=None,
        description="Thread id for multi-turn context. Omit to start a new thread.",
    )
    user_name: str | None = Field(default=None, description="Author display name.")
    post_id: str | None = Field(default=None, description="Id of the posted message.")


class ConversationResponse(BaseModel):
    """Response body for POST /conversation."""

    response_text: str
    conversation_id: str
    stop_reason: str
    rounds: int
    props: dict[str, Any] = Field(default_factory=dict)


class PluginInfo(BaseModel):
    name: str
    description: str
    parameters: dict[str, Any]


class HealthResponse(BaseModel):
    """Response body for GET /health."""

    status: str
    active_threads: int
    plugins: int


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_conversation_app(
    conversation: ThreadConversation, registry: PluginRegistry
) -> FastAPI:
    """Create a FastAPI application wrapping *conversation*.

    Args:
        conversation: A fully initialised ``ThreadConversation``.
        registry: The plugin catalog its loop advertises.
    """
    app = FastAPI(
        title="threadbot",
        description="REST interface for the threadbot plugin-calling conversation loop.",
        version=__version__,
    )

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(
            status="ok",
            active_threads=conversation.active_threads,
            plugins=len(registry),
        )

    @app.get("/plugins", response_model=list[PluginInfo])
    async def list_plugins() -> list[PluginInfo]:
        return [
            PluginInfo(**definition.to_openai_format())
            for definition in registry.describe_all()
        ]

    @app.post("/conversation", response_model=ConversationResponse)
    async def process_conversation(body: ConversationRequest) -> ConversationResponse:
        """Answer one message through the conversation loop.

        Raises:
            HTTPException 422: If the request body is malformed (FastAPI default).
            HTTPException 500: If an unexpected server error occurs.
        """
        logger.info(
            "POST /conversation: text=%r conversation_id=%r",
            body.text,
            body.conversation_id,
        )

        user_input = ConversationInput(
            text=body.text,
            conversation_id=body.conversation_id,
            user_name=body.user_name,
            post_id=body.post_id,
        )

        try:
            reply = await conversation.async_process(user_input)
        except Exception as exc:
            logger.error("Unexpected error in async_process: %s", exc, exc_info=True)
            raise HTTPException(status_code=500, detail="Internal server error") from exc

        return ConversationResponse(
            response_text=reply.response_text,
            conversation_id=reply.conversation_id,
            stop_reason=reply.stop_reason.value,
            rounds=reply.rounds,
            props=reply.props,
        )

    @app.delete("/conversation/{conversation_id}", status_code=204)
    async def clear_thread(conversation_id: str) -> None:
        logger.info("DELETE /conversation/%s", conversation_id)
        conversation.clear_history(conversation_id)

    @app.delete("/conversation", status_code=204)
    async def clear_all_threads() -> None:
        logger.info("DELETE /conversation (all threads)")
        conversation.clear_all_history()

    return app
