"""
Generation Orchestrator

The single orchestration point for one chat turn: resolve the chat,
retrieve context, stream tokens from the generation backend, and
persist the turn.

Design decisions:
- Explicit per-request state machine; no per-request state on the orchestrator
- Cancellation is a cooperative asyncio.Event set by the caller
  (e.g. on client disconnect); it cancels the in-flight stream task
- Persistence is guarded by a compare-and-set CompletionFlag, so it runs
  exactly once whether the stream ends, errors, or is cancelled first
- Errors before the first token are FAILED and persist nothing
- NEVER knows about HTTP

State machine:
    INIT → CONTEXT_RETRIEVED → STREAMING → COMPLETED | ABORTED | FAILED
"""

import asyncio
import inspect
import threading
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from quarry.core.exceptions import EmptyPromptError, QuarryError
from quarry.core.interfaces import (
    DocumentStoreProtocol,
    GenerationBackendProtocol,
    TokenCallback,
)
from quarry.core.types import (
    ChatRecord,
    ContextItem,
    MessageRole,
    StoredItem,
    new_id,
    utcnow,
)
from quarry.knowledge.embeddings import EmbeddingGateway
from quarry.knowledge.retriever import ContextFusion, PromptAssembler
from quarry.knowledge.vector_store import VectorStoreAdapter, user_chats_collection
from quarry.observability.logging import get_logger

logger = get_logger(__name__)


class GenerationState(str, Enum):
    """
    Generation state machine.

    Valid transitions:
    INIT → CONTEXT_RETRIEVED → STREAMING → COMPLETED
                                        → ABORTED
                                        → FAILED
    """

    INIT = "init"
    CONTEXT_RETRIEVED = "context_retrieved"
    STREAMING = "streaming"
    COMPLETED = "completed"
    ABORTED = "aborted"
    FAILED = "failed"


class GenerationEventType(str, Enum):
    """Events on the wire-facing token stream."""

    TOKEN = "token"
    DONE = "done"
    ERROR = "error"


@dataclass
class GenerationEvent:
    """One event on the token stream. DONE and ERROR are terminal."""

    type: GenerationEventType
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.type != GenerationEventType.TOKEN


class CompletionFlag:
    """
    One-shot flag with an atomic compare-and-set.

    try_set() returns True for exactly one caller.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._set = False

    def try_set(self) -> bool:
        with self._lock:
            if self._set:
                return False
            self._set = True
            return True

    @property
    def is_set(self) -> bool:
        return self._set


@dataclass
class GenerationRequest:
    """A single chat turn request. Owned by one in-flight run."""

    prompt: str
    organization_id: str
    user_id: str
    chat_id: str | None = None
    force_new_chat: bool = False
    k: int | None = None
    cancellation: asyncio.Event = field(default_factory=asyncio.Event)
    request_id: str = field(default_factory=new_id)

    def cancel(self) -> None:
        self.cancellation.set()


@dataclass
class GenerationResult:
    """Final result of one run."""

    state: GenerationState
    chat_id: str | None
    response: str = ""
    token_count: int = 0
    context: list[ContextItem] = field(default_factory=list)

    persisted: bool = False
    user_message_id: str | None = None
    assistant_message_id: str | None = None

    error: QuarryError | None = None

    @property
    def success(self) -> bool:
        return self.error is None and self.state in (GenerationState.COMPLETED, GenerationState.ABORTED)


@dataclass
class _Turn:
    """Mutable per-request state."""

    request: GenerationRequest
    state: GenerationState = GenerationState.INIT
    chat: ChatRecord | None = None
    context: list[ContextItem] = field(default_factory=list)
    tokens: list[str] = field(default_factory=list)
    flag: CompletionFlag = field(default_factory=CompletionFlag)

    persisted: bool = False
    user_message_id: str | None = None
    assistant_message_id: str | None = None
    error: QuarryError | None = None

    @property
    def response(self) -> str:
        return "".join(self.tokens)

    def result(self) -> GenerationResult:
        return GenerationResult(
            state=self.state,
            chat_id=self.chat.id if self.chat else None,
            response=self.response,
            token_count=len(self.tokens),
            context=self.context,
            persisted=self.persisted,
            user_message_id=self.user_message_id,
            assistant_message_id=self.assistant_message_id,
            error=self.error,
        )


def _as_quarry_error(error: BaseException) -> QuarryError:
    if isinstance(error, QuarryError):
        return error
    return QuarryError(str(error) or type(error).__name__, cause=error if isinstance(error, Exception) else None)


async def _deliver(on_token: TokenCallback | None, token: str) -> None:
    if on_token is None:
        return
    result = on_token(token)
    if inspect.isawaitable(result):
        await result


class GenerationOrchestrator:
    """
    Drives one chat turn from prompt to persisted messages.

    Usage:
        request = GenerationRequest(prompt="Summarise the Q3 report", organization_id="o1", user_id="u1")
        result = await orchestrator.run(request, on_token=send_to_client)

        # or, as a stream of events
        async for event in orchestrator.stream_events(request):
            ...
    """

    def __init__(
        self,
        backend: GenerationBackendProtocol,
        fusion: ContextFusion,
        document_store: DocumentStoreProtocol,
        gateway: EmbeddingGateway | None = None,
        adapter: VectorStoreAdapter | None = None,
        assembler: PromptAssembler | None = None,
        chat_title_length: int = 50,
    ):
        self._backend = backend
        self._fusion = fusion
        self._store = document_store
        # Both are needed to remember turns in the chat-history collection
        self._gateway = gateway
        self._adapter = adapter
        self._assembler = assembler or PromptAssembler()
        self._title_length = chat_title_length

    # -------------------------------------------------------------------------
    # INIT
    # -------------------------------------------------------------------------

    async def _resolve_chat(self, request: GenerationRequest) -> ChatRecord:
        if request.chat_id and not request.force_new_chat:
            chat = await self._store.find_chat_by_id_and_user(
                request.chat_id,
                request.user_id,
                request.organization_id,
            )
            if chat is not None:
                return chat
            logger.warning("Chat not found for user, starting a new one", requested_chat_id=request.chat_id)

        title = request.prompt.strip()[: self._title_length]
        return await self._store.create_chat(request.organization_id, request.user_id, title)

    # -------------------------------------------------------------------------
    # STREAMING
    # -------------------------------------------------------------------------

    async def _stream(self, turn: _Turn, prompt: str, on_token: TokenCallback | None) -> None:
        """
        Consume the backend stream.

        Claims the completion flag when the stream ends or errors. When
        cancellation wins, this task is cancelled by the watcher instead.
        """
        request = turn.request
        error: BaseException | None = None
        tokens = self._backend.stream(prompt)

        try:
            async for token in tokens:
                if turn.flag.is_set or request.cancellation.is_set():
                    break
                turn.tokens.append(token)
                await _deliver(on_token, token)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = e
        finally:
            # Release the backend's HTTP response on early exit
            aclose = getattr(tokens, "aclose", None)
            if aclose is not None:
                await aclose()

        if not turn.flag.try_set():
            return

        if error is not None and not turn.tokens:
            turn.state = GenerationState.FAILED
            turn.error = _as_quarry_error(error)
            logger.error("Generation backend failed to start", error=error)
            return

        if request.cancellation.is_set():
            turn.state = GenerationState.ABORTED
        else:
            turn.state = GenerationState.COMPLETED

        if error is not None:
            turn.error = _as_quarry_error(error)
            logger.warning(
                "Generation stream terminated by upstream error",
                error=error,
                tokens=len(turn.tokens),
            )

        await self._persist(turn)

    async def _watch_cancellation(self, turn: _Turn, stream_task: asyncio.Task) -> None:
        await turn.request.cancellation.wait()

        if not turn.flag.try_set():
            return

        turn.state = GenerationState.ABORTED
        stream_task.cancel()
        await asyncio.gather(stream_task, return_exceptions=True)

        logger.info("Generation cancelled", tokens=len(turn.tokens))
        await self._persist(turn)

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    async def _persist(self, turn: _Turn) -> None:
        """Store the turn. Only ever called by the completion flag's owner."""
        chat_id = turn.chat.id
        response = turn.response

        try:
            user_message = await self._store.create_message(chat_id, MessageRole.USER, turn.request.prompt)
            await self._store.append_message_to_chat(chat_id, user_message.id)
            turn.user_message_id = user_message.id

            if response.strip():
                assistant_message = await self._store.create_message(
                    chat_id, MessageRole.ASSISTANT, response
                )
                await self._store.append_message_to_chat(chat_id, assistant_message.id)
                turn.assistant_message_id = assistant_message.id
        except Exception as e:
            logger.error("Failed to persist conversation turn", error=e)
            turn.error = turn.error or _as_quarry_error(e)
            return

        turn.persisted = True
        logger.info(
            "Conversation turn persisted",
            state=turn.state.value,
            assistant_saved=turn.assistant_message_id is not None,
        )

        await self._remember(turn, response)

    async def _remember(self, turn: _Turn, response: str) -> None:
        """Embed the turn into the user's chat-history collection. Best effort."""
        if self._gateway is None or self._adapter is None:
            return

        request = turn.request
        entries = [("prompt", request.prompt)]
        if response.strip():
            entries.append(("response", response))

        items = []
        for kind, text in entries:
            embedding = await self._gateway.embed(text)
            if embedding is None:
                logger.warning("Skipping chat-history embedding", kind=kind)
                continue
            items.append(
                StoredItem(
                    document=text,
                    embedding=embedding,
                    metadata={
                        "type": kind,
                        "chat_id": turn.chat.id,
                        "user_id": request.user_id,
                        "organization_id": request.organization_id,
                    },
                )
            )

        if not items:
            return

        try:
            await self._adapter.upsert(user_chats_collection(request.user_id), items)
        except Exception as e:
            logger.warning("Failed to store chat history embeddings", error=e)

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    async def run(
        self,
        request: GenerationRequest,
        on_token: TokenCallback | None = None,
    ) -> GenerationResult:
        """
        Execute one chat turn.

        Raises:
            EmptyPromptError: Blank prompt; nothing is created.
        """
        if not request.prompt or not request.prompt.strip():
            raise EmptyPromptError("Prompt must not be empty")

        turn = _Turn(request=request)

        with logger.context(
            request_id=request.request_id,
            organization_id=request.organization_id,
            user_id=request.user_id,
        ):
            turn.chat = await self._resolve_chat(request)

            with logger.context(chat_id=turn.chat.id):
                turn.context = await self._fusion.retrieve(
                    request.prompt,
                    request.organization_id,
                    request.user_id,
                    request.k,
                )
                turn.state = GenerationState.CONTEXT_RETRIEVED
                augmented = self._assembler.assemble(request.prompt, turn.context)

                turn.state = GenerationState.STREAMING
                stream_task = asyncio.create_task(self._stream(turn, augmented, on_token))
                watcher = asyncio.create_task(self._watch_cancellation(turn, stream_task))

                try:
                    await asyncio.wait({stream_task})
                except asyncio.CancelledError:
                    # The caller went away; treat it like a client disconnect
                    request.cancellation.set()
                    await asyncio.gather(stream_task, watcher, return_exceptions=True)
                    raise

                if turn.state == GenerationState.ABORTED:
                    # The watcher may own the flag and still be persisting
                    await asyncio.gather(watcher, return_exceptions=True)
                else:
                    watcher.cancel()
                    await asyncio.gather(watcher, return_exceptions=True)

                if not stream_task.cancelled() and stream_task.exception() is not None:
                    logger.error("Stream task crashed", error=stream_task.exception())
                    turn.error = turn.error or _as_quarry_error(stream_task.exception())

                logger.info(
                    "Generation finished",
                    state=turn.state.value,
                    tokens=len(turn.tokens),
                    context_items=len(turn.context),
                )

        return turn.result()

    async def stream_events(self, request: GenerationRequest) -> AsyncIterator[GenerationEvent]:
        """
        Run a turn and yield its events.

        Yields one TOKEN event per token, then exactly one terminal DONE or
        ERROR event. Closing the iterator early cancels the request.
        """
        queue: asyncio.Queue[GenerationEvent] = asyncio.Queue()

        def on_token(token: str) -> None:
            queue.put_nowait(GenerationEvent(GenerationEventType.TOKEN, {"token": token}))

        async def runner() -> None:
            try:
                result = await self.run(request, on_token)
            except QuarryError as e:
                queue.put_nowait(GenerationEvent(GenerationEventType.ERROR, e.to_dict()))
                return
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception("Unexpected generation failure")
                queue.put_nowait(
                    GenerationEvent(
                        GenerationEventType.ERROR,
                        {"error": "INTERNAL_ERROR", "message": str(e), "context": {}},
                    )
                )
                return

            queue.put_nowait(self._terminal_event(result))

        task = asyncio.create_task(runner())

        try:
            while True:
                event = await queue.get()
                yield event
                if event.is_terminal:
                    break
        finally:
            if not task.done():
                request.cancellation.set()
            await asyncio.shield(task)

    @staticmethod
    def _terminal_event(result: GenerationResult) -> GenerationEvent:
        data: dict[str, Any] = {
            "state": result.state.value,
            "chat_id": result.chat_id,
            "persisted": result.persisted,
            "token_count": result.token_count,
        }
        if result.error is not None:
            data.update(result.error.to_dict())
            return GenerationEvent(GenerationEventType.ERROR, data)
        return GenerationEvent(GenerationEventType.DONE, data)
