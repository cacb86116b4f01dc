from __future__ import annotations

import itertools
import time
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

_message_seq = itertools.count(1)


def new_message_id() -> str:
    """Time-based id with a process-wide sequence suffix so same-millisecond ids differ."""
    return f"{int(time.time() * 1000)}-{next(_message_seq)}"


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class Citation(BaseModel):
    """Source reference taken from grounding metadata."""
    url: str
    title: str


class ConversationMessage(BaseModel):
    """Single conversation log entry; text is mutated in place while streaming."""
    id: str = Field(default_factory=new_message_id)
    role: MessageRole
    text: str = ""
    timestamp: datetime = Field(default_factory=datetime.now)
    is_streaming: bool = False
    is_error: bool = False
    citations: Optional[List[Citation]] = None


class ProductSummary(BaseModel):
    """Prompt-ready view of one catalog record."""
    title: str
    handle: str
    category: str
    description: str
    price: str
    currency: str
    vendor: str
    tags: List[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)


class CatalogSnapshot(BaseModel):
    """Bounded, ordered product summaries plus the size of the source catalog."""
    products: List[ProductSummary] = Field(default_factory=list)
    total_count: int = 0

    model_config = ConfigDict(frozen=True)

    @property
    def is_empty(self) -> bool:
        return not self.products


class ChatRequest(BaseModel):
    """Request payload for chat API."""
    message: str


class MessagePayload(BaseModel):
    """Message as returned to the UI, with rendered markup."""
    id: str
    role: MessageRole
    text: str
    timestamp: datetime
    is_streaming: bool
    is_error: bool
    citations: Optional[List[Citation]] = None
    html: str
    citations_html: str = ""


class ChatResponse(BaseModel):
    """Response payload returned by the chat API."""
    messages: List[MessagePayload]


class StatusResponse(BaseModel):
    """Pipeline status snapshot for the UI."""
    state: str
    reason: Optional[str] = None
    message: str
    ready: bool
