from __future__ import annotations

from typing import List, Optional

from .models import Citation, ConversationMessage, MessageRole


class ConversationLog:
    """In-memory, append-only conversation log.

    At most one assistant message may be streaming at a time; finalized
    messages are never edited and no message is ever removed.
    """

    def __init__(self) -> None:
        self._messages: List[ConversationMessage] = []

    def __len__(self) -> int:
        return len(self._messages)

    @property
    def messages(self) -> List[ConversationMessage]:
        return list(self._messages)

    def streaming_message(self) -> Optional[ConversationMessage]:
        for message in self._messages:
            if message.is_streaming:
                return message
        return None

    def append(self, role: MessageRole, text: str, is_error: bool = False) -> ConversationMessage:
        message = ConversationMessage(role=role, text=text, is_error=is_error)
        self._messages.append(message)
        return message

    def append_system_error(self, text: str) -> ConversationMessage:
        return self.append(MessageRole.SYSTEM, text, is_error=True)

    def begin_assistant_stream(self) -> ConversationMessage:
        """Append an empty streaming assistant message."""
        if self.streaming_message() is not None:
            raise RuntimeError("an assistant message is already streaming")
        message = ConversationMessage(role=MessageRole.ASSISTANT, text="", is_streaming=True)
        self._messages.append(message)
        return message

    def append_delta(self, message: ConversationMessage, delta: str) -> None:
        if not message.is_streaming:
            raise RuntimeError(f"message {message.id} is already finalized")
        message.text += delta

    def finalize(self, message: ConversationMessage, citations: Optional[List[Citation]] = None) -> None:
        message.is_streaming = False
        if citations:
            message.citations = list(citations)

    def fail(self, message: ConversationMessage, error_text: str) -> None:
        message.is_streaming = False
        message.is_error = True
        message.text = error_text
