"""
Chat API Routes

Streaming chat endpoint and chat history reads. Tokens are sent as SSE
`token` events followed by exactly one `done` or `error` event.
"""

from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from quarry.api.dependencies import Tenant, get_document_store, get_orchestrator, get_tenant
from quarry.api.streaming import StreamingResponse, stream_sse
from quarry.core.exceptions import ChatNotFoundError, EmptyPromptError
from quarry.core.interfaces import DocumentStoreProtocol
from quarry.runtime.orchestrator import GenerationOrchestrator, GenerationRequest

router = APIRouter()


class ChatStreamRequest(BaseModel):
    """Request body for the streaming chat endpoint."""

    prompt: str = Field(..., max_length=100000)
    chat_id: str | None = None
    new_chat: bool = False
    k: int | None = Field(default=None, ge=1)


@router.post("/chat/stream")
async def chat_stream(
    body: ChatStreamRequest,
    http_request: Request,
    tenant: Tenant = Depends(get_tenant),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
):
    """
    Stream a chat response.

    A client disconnect closes the event stream, which cancels the
    generation; the partial response is still saved.
    """
    # Reject before the stream opens so the client gets a 400
    if not body.prompt.strip():
        raise EmptyPromptError("Prompt must not be empty")

    request = GenerationRequest(
        prompt=body.prompt,
        organization_id=tenant.organization_id,
        user_id=tenant.user_id,
        chat_id=body.chat_id,
        force_new_chat=body.new_chat,
        k=body.k,
    )
    request_id = getattr(http_request.state, "request_id", None)
    if request_id:
        request.request_id = request_id

    return StreamingResponse(stream_sse(orchestrator.stream_events(request)))


@router.get("/chats")
async def list_chats(
    tenant: Tenant = Depends(get_tenant),
    store: DocumentStoreProtocol = Depends(get_document_store),
) -> list[dict[str, Any]]:
    """List the caller's chats, most recently updated first."""
    chats = await store.list_chats(tenant.organization_id, tenant.user_id)
    return [chat.model_dump(mode="json") for chat in chats]


@router.get("/chats/{chat_id}")
async def get_chat(
    chat_id: str,
    tenant: Tenant = Depends(get_tenant),
    store: DocumentStoreProtocol = Depends(get_document_store),
) -> dict[str, Any]:
    """Get one of the caller's chats with its messages in order."""
    chat = await store.find_chat_by_id_and_user(chat_id, tenant.user_id, tenant.organization_id)
    if chat is None:
        raise ChatNotFoundError(f"Chat {chat_id} not found", context={"chat_id": chat_id})

    messages = await store.list_messages(chat.id)
    return {
        **chat.model_dump(mode="json", exclude={"messages"}),
        "messages": [message.model_dump(mode="json") for message in messages],
    }
