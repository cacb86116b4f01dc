from __future__ import annotations

import logging
from typing import AsyncIterator, Callable, List, Optional, Protocol

from .conversation import ConversationLog
from .errors import SendRejected, StreamFailed
from .gemini_client import GroundingUpdate, SessionHandle, StreamFragment, TextDelta
from .models import Citation, ConversationMessage, MessageRole

logger = logging.getLogger("audioguide.session")

SEND_UNAVAILABLE_MESSAGE = (
    "Cannot send message. Chat service is not available. "
    "Ensure API keys (Gemini, Shopify) are configured."
)
SEND_BUSY_MESSAGE = "A response is still streaming. Please wait for it to finish."
DEFAULT_STREAM_ERROR = "Could not get a response."


class SessionSource(Protocol):
    @property
    def session(self) -> Optional[SessionHandle]:
        ...

    @property
    def assistant_available(self) -> bool:
        ...


class StreamingService(Protocol):
    def stream_message(self, session: SessionHandle, text: str) -> AsyncIterator[StreamFragment]:
        ...


UpdateCallback = Callable[[ConversationMessage], None]


class StreamingSessionManager:
    """Folds streamed assistant replies into the shared conversation log."""

    def __init__(
        self,
        source: SessionSource,
        assistant: StreamingService,
        log: ConversationLog,
        on_update: Optional[UpdateCallback] = None,
    ) -> None:
        """Purpose: Bind the manager to a session source, assistant service and log.
        Inputs/Outputs: Inputs are the pipeline (or any SessionSource), the streaming
            service, the shared ConversationLog and an optional update callback.
        Side Effects / State: None at init.
        Dependencies: Reads source.session on every send; never replaces it.
        Failure Modes: None at init.
        If Removed: User messages cannot reach the assistant.
        Testing Notes: Use a fake source without a session to check rejection.
        """
        # Keep collaborators; the session handle is looked up per send.
        self._source = source
        self._assistant = assistant
        self.log = log
        self._on_update = on_update
        self.last_error: Optional[Exception] = None

    @property
    def is_streaming(self) -> bool:
        return self.log.streaming_message() is not None

    def _notify(self, message: ConversationMessage) -> None:
        if self._on_update is not None:
            self._on_update(message)

    def _reject(self, text: str) -> None:
        self.last_error = SendRejected(text)
        logger.warning("send rejected: %s", text)
        self._notify(self.log.append_system_error(text))

    async def send(self, text: str) -> Optional[ConversationMessage]:
        """Purpose: Send user text and stream the assistant reply into the log.
        Inputs/Outputs: Input is the user text; returns the assistant message, or None
            when the send was rejected or the text was blank.
        Side Effects / State: Appends user/assistant (and on failure system) messages;
            mutates the assistant message in place while fragments arrive.
        Dependencies: Uses StreamingService.stream_message and ConversationLog.
        Failure Modes: Never raises; stream errors mark the assistant message errored
            and append a system message, leaving the user message untouched.
        If Removed: The chat cannot exchange messages.
        Testing Notes: Feed fragment sequences and failing streams through a fake service.
        """
        # Validate preconditions before any log mutation beyond the rejection notice.
        if not text or not text.strip():
            return None
        session = self._source.session
        if session is None or not self._source.assistant_available:
            self._reject(SEND_UNAVAILABLE_MESSAGE)
            return None
        if self.is_streaming:
            self._reject(SEND_BUSY_MESSAGE)
            return None

        self._notify(self.log.append(MessageRole.USER, text))
        reply = self.log.begin_assistant_stream()
        self._notify(reply)
        logger.info("send message_id=%s chars=%d", reply.id, len(text))

        citations: Optional[List[Citation]] = None
        fragments = 0
        try:
            async for fragment in self._assistant.stream_message(session, text):
                fragments += 1
                if isinstance(fragment, TextDelta):
                    self.log.append_delta(reply, fragment.text)
                elif isinstance(fragment, GroundingUpdate):
                    if fragment.citations:
                        citations = list(fragment.citations)
                else:
                    raise StreamFailed(f"unexpected fragment type {type(fragment).__name__}")
                self._notify(reply)
        except Exception as exc:
            self._record_failure(reply, exc)
            return reply

        self.log.finalize(reply, citations)
        self._notify(reply)
        logger.info(
            "stream complete message_id=%s fragments=%d chars=%d citations=%d",
            reply.id,
            fragments,
            len(reply.text),
            len(citations or []),
        )
        return reply

    def _record_failure(self, reply: ConversationMessage, exc: Exception) -> None:
        self.last_error = exc if isinstance(exc, StreamFailed) else StreamFailed(str(exc))
        error_text = f"AI Error: {str(exc) or DEFAULT_STREAM_ERROR}"
        logger.error("stream failed message_id=%s error=%s", reply.id, exc)
        self.log.fail(reply, error_text)
        self._notify(reply)
        self._notify(self.log.append_system_error(f"Error during AI response: {error_text}"))
