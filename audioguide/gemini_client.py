from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, List, Mapping, Optional, Union
from urllib.parse import urlparse

import google.generativeai as genai

from .config import CredentialStatus, Settings
from .errors import ConfigurationMissing, SessionCreationFailed
from .models import Citation

logger = logging.getLogger("audioguide.gemini")

DEFAULT_SAFETY_SETTINGS = [
    {"category": "HARM_CATEGORY_HARASSMENT", "threshold": "BLOCK_ONLY_HIGH"},
    {"category": "HARM_CATEGORY_HATE_SPEECH", "threshold": "BLOCK_ONLY_HIGH"},
    {"category": "HARM_CATEGORY_SEXUALLY_EXPLICIT", "threshold": "BLOCK_ONLY_HIGH"},
    {"category": "HARM_CATEGORY_DANGEROUS_CONTENT", "threshold": "BLOCK_ONLY_HIGH"},
]


@dataclass(frozen=True)
class TextDelta:
    """Incremental assistant text."""
    text: str


@dataclass(frozen=True)
class GroundingUpdate:
    """Citation set carried by a chunk; later updates supersede earlier ones."""
    citations: List[Citation]


StreamFragment = Union[TextDelta, GroundingUpdate]


@dataclass(frozen=True)
class SessionHandle:
    """Opaque reference to an open chat session bound to one system instruction."""
    chat: Any
    system_instruction: str
    model_name: str


def web_search_tool() -> Any:
    """Return the web-grounded search tool in the form the installed SDK understands."""
    tool_cls = getattr(getattr(genai, "protos", None), "Tool", None)
    if tool_cls is not None and hasattr(tool_cls, "GoogleSearch"):
        return [tool_cls(google_search=tool_cls.GoogleSearch())]
    return "google_search_retrieval"


class GeminiClient:
    """Thin wrapper around the Gemini SDK: open chat sessions and stream replies."""

    def __init__(self, settings: Settings) -> None:
        """Purpose: Keep settings and resolve the default model name.
        Inputs/Outputs: Input is Settings; no return value.
        Side Effects / State: None until the first session is opened.
        Dependencies: Uses google.generativeai and Settings from config.
        Failure Modes: None at init; a missing key is reported by open_session.
        If Removed: The pipeline has no assistant service to open sessions with.
        Testing Notes: Construct without a key and check open_session raises ConfigurationMissing.
        """
        # Defer SDK configuration so a missing key never fails construction.
        self._settings = settings
        self._default_model = _normalize_model_name(settings.gemini_model)
        self._configured = False

    def _ensure_configured(self) -> None:
        if self._settings.assistant_credential() is not CredentialStatus.VALID:
            raise ConfigurationMissing("GEMINI_API_KEY is required")
        if not self._configured:
            genai.configure(api_key=self._settings.gemini_api_key)
            self._configured = True

    async def open_session(self, system_instruction: str, model: Optional[str] = None) -> SessionHandle:
        """Purpose: Create a chat session with a system instruction and web search enabled.
        Inputs/Outputs: Input is the composed instruction and optional model; returns SessionHandle.
        Side Effects / State: Configures the SDK API key on first use.
        Dependencies: Uses genai.GenerativeModel.start_chat.
        Failure Modes: ConfigurationMissing without a key; SessionCreationFailed on SDK errors.
        If Removed: Initialization cannot reach the Ready state.
        Testing Notes: Patch genai.GenerativeModel and assert instruction/tools are passed.
        """
        # Resolve the model, then build it with the grounding tool and open a chat.
        self._ensure_configured()
        model_name = _normalize_model_name(model) if model else self._default_model
        if not model_name:
            raise SessionCreationFailed("Gemini model name is required")
        try:
            generative_model = genai.GenerativeModel(
                model_name,
                system_instruction=system_instruction,
                tools=web_search_tool(),
                safety_settings=DEFAULT_SAFETY_SETTINGS,
            )
            chat = generative_model.start_chat()
        except Exception as exc:
            logger.error("session create failed model=%s error=%s", model_name, exc)
            raise SessionCreationFailed(str(exc) or exc.__class__.__name__) from exc
        logger.info("session created model=%s instruction_chars=%d", model_name, len(system_instruction))
        return SessionHandle(chat=chat, system_instruction=system_instruction, model_name=model_name)

    async def stream_message(self, session: SessionHandle, text: str) -> AsyncIterator[StreamFragment]:
        """Send ``text`` on the session and yield fragments in arrival order."""
        response = await session.chat.send_message_async(text, stream=True)
        async for chunk in response:
            for fragment in fragments_from_chunk(chunk):
                yield fragment


def fragments_from_chunk(chunk: Any) -> List[StreamFragment]:
    """Purpose: Convert one SDK response chunk into tagged fragments.
    Inputs/Outputs: Input is a GenerateContentResponse chunk; output is zero to two fragments.
    Side Effects / State: None.
    Dependencies: Reads candidates[0].content.parts and candidates[0].grounding_metadata.
    Failure Modes: Chunks without candidates (e.g. usage-only) produce no fragments.
    If Removed: Streamed replies cannot be folded into the conversation log.
    Testing Notes: Feed SimpleNamespace chunks with text, metadata, both and neither.
    """
    # Read parts directly; chunk.text raises on chunks without text parts.
    candidates = getattr(chunk, "candidates", None) or []
    if not candidates:
        return []
    candidate = candidates[0]
    content = getattr(candidate, "content", None)
    parts = getattr(content, "parts", None) or []
    text = "".join(str(getattr(part, "text", "") or "") for part in parts)

    fragments: List[StreamFragment] = []
    if text:
        fragments.append(TextDelta(text))
    citations = citations_from_metadata(_field(candidate, "grounding_metadata", "groundingMetadata"))
    if citations:
        fragments.append(GroundingUpdate(citations))
    return fragments


def citations_from_metadata(metadata: Any) -> List[Citation]:
    """Extract (url, title) pairs from grounding metadata, skipping chunks without a web uri."""
    if metadata is None:
        return []
    chunks = _field(metadata, "grounding_chunks", "groundingChunks") or []
    citations: List[Citation] = []
    for chunk in chunks:
        web = _field(chunk, "web")
        uri = _field(web, "uri") if web is not None else None
        if not uri:
            continue
        title = _field(web, "title") or _host_of(str(uri))
        citations.append(Citation(url=str(uri), title=str(title)))
    return citations


def _field(obj: Any, *names: str) -> Any:
    for name in names:
        if isinstance(obj, Mapping):
            value = obj.get(name)
        else:
            value = getattr(obj, name, None)
        if value is not None:
            return value
    return None


def _host_of(url: str) -> str:
    return urlparse(url).hostname or url


def _normalize_model_name(name: Optional[str]) -> str:
    """Purpose: Normalize model names by stripping prefix and whitespace.
    Inputs/Outputs: Input is a model name string; output is normalized name.
    Side Effects / State: None.
    Dependencies: None; used by GeminiClient.
    Failure Modes: Returns empty string for falsy input.
    If Removed: Model selection may use invalid names and fail.
    Testing Notes: Ensure "models/foo" becomes "foo" and whitespace is trimmed.
    """
    # Strip "models/" prefix and whitespace.
    if not name:
        return ""
    cleaned = name.strip()
    if cleaned.startswith("models/"):
        return cleaned.split("/", 1)[1]
    return cleaned
