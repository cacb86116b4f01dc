"""AudioGuide initialization pipeline.

Role:
    Bootstraps the assistant once per page lifetime: checks the assistant
    credential, loads the product catalog (degrading to an empty snapshot),
    composes the system instruction and opens a chat session.

Step contracts:
    Credential Check:
        Blocks the pipeline when the Gemini key is absent or a placeholder and
        posts the reason as a system message.
    Catalog Load:
        Fills context.snapshot; every catalog failure becomes an advisory.
    Prompt Composition:
        Fills context.system_instruction; cannot fail on an empty snapshot.
    Session Open:
        Stores the SessionHandle and posts the welcome message, or posts a
        system error and fails.

The status machine only moves forward; BLOCKED, READY and FAILED are terminal
and a terminal pipeline ignores further run() calls.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol

from .adk_runtime import AdkAgent, AdkStep
from .config import CredentialStatus, Settings
from .conversation import ConversationLog
from .errors import AudioGuideError, CatalogDegraded, ConfigurationMissing, SessionCreationFailed
from .gemini_client import SessionHandle
from .models import CatalogSnapshot, MessageRole
from .prompt_composer import build_catalog_snapshot, compose_system_instruction
from .prompt_loader import load_system_prompt_template, load_welcome_message

logger = logging.getLogger("audioguide.pipeline")

CREDENTIAL_MISSING_REASON = "credential missing"
INITIAL_STATUS_MESSAGE = "Initializing AudioGuide..."
BLOCKED_STATUS_MESSAGE = "Gemini API Key not configured. AudioGuide cannot operate."
PREPARING_STATUS_MESSAGE = "Preparing AI assistant with product data..."
CONNECTING_STATUS_MESSAGE = "Connecting to AI assistant..."
READY_STATUS_MESSAGE = "AudioGuide is ready."

CATALOG_NOT_CONFIGURED_ADVISORY = "Shopify not configured. Product data is unavailable."
CATALOG_NOT_CONFIGURED_WARNING = (
    "Shopify connection not configured or using placeholder credentials. "
    "Product-specific recommendations will be limited. Please set SHOPIFY_STORE_DOMAIN "
    "and SHOPIFY_STOREFRONT_ACCESS_TOKEN environment variables."
)
CATALOG_FAILED_ADVISORY = (
    "Failed to load products from Shopify: {error}. Product recommendations may be "
    "unavailable or general. Ensure Shopify credentials are correct."
)
SESSION_FAILED_MESSAGE = "Failed to initialize AI: {error}"


class CatalogGateway(Protocol):
    async def fetch_products(self, count: int = 20) -> List[Dict[str, Any]]:
        ...


class AssistantService(Protocol):
    async def open_session(self, system_instruction: str, model: Optional[str] = None) -> SessionHandle:
        ...


class PipelineState(str, Enum):
    IDLE = "idle"
    BLOCKED = "blocked"
    LOADING_CATALOG = "loading_catalog"
    COMPOSING_PROMPT = "composing_prompt"
    OPENING_SESSION = "opening_session"
    READY = "ready"
    FAILED = "failed"


TERMINAL_STATES = frozenset({PipelineState.BLOCKED, PipelineState.READY, PipelineState.FAILED})

_STATE_RANK = {
    PipelineState.IDLE: 0,
    PipelineState.LOADING_CATALOG: 1,
    PipelineState.COMPOSING_PROMPT: 2,
    PipelineState.OPENING_SESSION: 3,
    PipelineState.READY: 4,
    PipelineState.FAILED: 4,
    PipelineState.BLOCKED: 4,
}


@dataclass(frozen=True)
class PipelineStatus:
    """Current pipeline state plus the failure reason for BLOCKED/FAILED."""
    state: PipelineState
    reason: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def is_ready(self) -> bool:
        return self.state is PipelineState.READY

    def advance(self, state: PipelineState, reason: Optional[str] = None) -> "PipelineStatus":
        """Return the next status, refusing to leave a terminal state or move backwards."""
        if self.is_terminal:
            raise RuntimeError(f"pipeline is terminal in state {self.state.value}")
        if state is not PipelineState.FAILED and _STATE_RANK[state] <= _STATE_RANK[self.state]:
            raise RuntimeError(f"illegal transition {self.state.value} -> {state.value}")
        return PipelineStatus(state=state, reason=reason)


@dataclass
class PipelineContext:
    """Mutable data passed between initialization steps."""
    snapshot: CatalogSnapshot = field(default_factory=CatalogSnapshot)
    degraded: Optional[CatalogDegraded] = None
    system_instruction: str = ""
    session: Optional[SessionHandle] = None


class InitializationPipeline:
    def __init__(
        self,
        settings: Settings,
        assistant: AssistantService,
        catalog: Optional[CatalogGateway] = None,
        log: Optional[ConversationLog] = None,
        prompt_template: Optional[str] = None,
        welcome_message: Optional[str] = None,
    ) -> None:
        """Purpose: Wire the pipeline dependencies and build the ordered step runner.
        Inputs/Outputs: Inputs are Settings, the assistant service, an optional catalog
            gateway and log, and optional prompt/welcome overrides; no return value.
        Side Effects / State: Starts in IDLE with an empty snapshot and no session.
        Dependencies: Uses AdkAgent/AdkStep and the step methods on this class.
        Failure Modes: None at init; template files are read lazily during run().
        If Removed: The app cannot bootstrap a chat session.
        Testing Notes: Build with fakes and check the step order and initial status.
        """
        # Store dependencies and build the ADK step runner.
        self._settings = settings
        self._assistant = assistant
        self._catalog = catalog
        self.log = log if log is not None else ConversationLog()
        self._prompt_template = prompt_template
        self._welcome_message = welcome_message
        self._status = PipelineStatus(PipelineState.IDLE)
        self._status_message = INITIAL_STATUS_MESSAGE
        self._session: Optional[SessionHandle] = None
        self._snapshot = CatalogSnapshot()
        self._degraded: Optional[CatalogDegraded] = None
        self._last_error: Optional[AudioGuideError] = None
        self._lock = asyncio.Lock()
        self._agent: AdkAgent[PipelineContext] = AdkAgent(
            steps=[
                AdkStep("credential_check", self._step_credential_check, always_run=True),
                AdkStep("catalog_load", self._step_catalog_load, skip_if=self._is_terminal),
                AdkStep("prompt_composition", self._step_prompt_composition, skip_if=self._is_terminal),
                AdkStep("session_open", self._step_session_open, skip_if=self._is_terminal),
            ]
        )

    @property
    def status(self) -> PipelineStatus:
        return self._status

    @property
    def status_message(self) -> str:
        return self._status_message

    @property
    def session(self) -> Optional[SessionHandle]:
        return self._session

    @property
    def snapshot(self) -> CatalogSnapshot:
        return self._snapshot

    @property
    def advisory(self) -> Optional[str]:
        return self._degraded.advisory if self._degraded else None

    @property
    def last_error(self) -> Optional[AudioGuideError]:
        return self._last_error

    @property
    def assistant_available(self) -> bool:
        return self._settings.assistant_credential() is CredentialStatus.VALID

    async def run(self) -> PipelineStatus:
        """Purpose: Run the bootstrap once and return the resulting terminal status.
        Inputs/Outputs: No inputs; returns the PipelineStatus after the run.
        Side Effects / State: Catalog and session network calls, log entries, status updates.
        Dependencies: Uses the AdkAgent step runner under an asyncio.Lock.
        Failure Modes: Never raises; unexpected step errors end in FAILED with a system message.
        If Removed: Nothing opens the session the chat depends on.
        Testing Notes: Call twice and assert the second call makes no calls and adds no messages.
        """
        # Serialize callers; a terminal pipeline is a no-op.
        async with self._lock:
            if self._status.is_terminal:
                logger.debug("pipeline rerun ignored state=%s", self._status.state.value)
                return self._status
            context = PipelineContext()
            try:
                await self._agent.run(context)
            except Exception as exc:
                logger.exception("pipeline aborted state=%s", self._status.state.value)
                if not self._status.is_terminal:
                    self._fail(SESSION_FAILED_MESSAGE.format(error=str(exc) or "Unknown error"))
            return self._status

    def _is_terminal(self, context: PipelineContext) -> bool:
        return self._status.is_terminal

    def _transition(self, state: PipelineState, message: str, reason: Optional[str] = None) -> None:
        self._status = self._status.advance(state, reason)
        self._status_message = message
        logger.info("pipeline stage=%s message=%s", state.value, message)

    def _fail(self, text: str) -> None:
        self._last_error = SessionCreationFailed(text)
        self.log.append_system_error(text)
        self._transition(PipelineState.FAILED, text, reason=text)

    async def _step_credential_check(self, context: PipelineContext) -> None:
        if self.assistant_available:
            return
        self._last_error = ConfigurationMissing(BLOCKED_STATUS_MESSAGE)
        logger.error("pipeline blocked: %s", BLOCKED_STATUS_MESSAGE)
        self.log.append_system_error(BLOCKED_STATUS_MESSAGE)
        self._transition(PipelineState.BLOCKED, BLOCKED_STATUS_MESSAGE, reason=CREDENTIAL_MISSING_REASON)

    async def _step_catalog_load(self, context: PipelineContext) -> None:
        """Purpose: Load the catalog snapshot, degrading to empty on any failure.
        Inputs/Outputs: Input is PipelineContext; sets snapshot and degraded.
        Side Effects / State: One catalog network call when credentials are valid.
        Dependencies: Uses the catalog gateway and build_catalog_snapshot.
        Failure Modes: Gateway errors and malformed records are absorbed into a CatalogDegraded advisory.
        If Removed: The system instruction has no product data.
        Testing Notes: Cover unconfigured, placeholder, failing and successful gateways.
        """
        # Skip the network entirely when the catalog is not configured.
        credentials = self._settings.catalog_credentials()
        if credentials is not CredentialStatus.VALID or self._catalog is None:
            logger.warning("%s credentials=%s", CATALOG_NOT_CONFIGURED_WARNING, credentials.value)
            context.degraded = CatalogDegraded(CATALOG_NOT_CONFIGURED_ADVISORY)
            self._transition(PipelineState.LOADING_CATALOG, CATALOG_NOT_CONFIGURED_WARNING)
            return

        self._transition(
            PipelineState.LOADING_CATALOG,
            f"Loading product catalog from {self._settings.store_display_domain}...",
        )
        # Malformed records degrade the catalog the same way a failed fetch does.
        try:
            nodes = await self._catalog.fetch_products(self._settings.catalog_fetch_count)
            snapshot = build_catalog_snapshot(nodes, limit=self._settings.catalog_overview_limit)
        except Exception as exc:
            advisory = CATALOG_FAILED_ADVISORY.format(error=str(exc) or exc.__class__.__name__)
            logger.warning("catalog degraded: %s", advisory)
            context.degraded = CatalogDegraded(advisory)
            return
        context.snapshot = snapshot
        logger.info(
            "catalog loaded products=%d total=%d",
            len(context.snapshot.products),
            context.snapshot.total_count,
        )

    async def _step_prompt_composition(self, context: PipelineContext) -> None:
        self._snapshot = context.snapshot
        self._degraded = context.degraded
        self._transition(PipelineState.COMPOSING_PROMPT, PREPARING_STATUS_MESSAGE)
        template = self._prompt_template
        if template is None:
            template = load_system_prompt_template(self._settings.prompts_dir)
        context.system_instruction = compose_system_instruction(template, context.snapshot)

    async def _step_session_open(self, context: PipelineContext) -> None:
        """Purpose: Open the chat session and post the welcome or the failure.
        Inputs/Outputs: Input is PipelineContext; sets context.session on success.
        Side Effects / State: Network call to the assistant service; appends one log entry.
        Dependencies: Uses AssistantService.open_session and the welcome template.
        Failure Modes: Session errors become a system message and FAILED status.
        If Removed: The pipeline can never reach READY.
        Testing Notes: Make open_session raise and assert a single system error entry.
        """
        # Open the session; any failure is terminal for this pipeline.
        self._transition(PipelineState.OPENING_SESSION, CONNECTING_STATUS_MESSAGE)
        try:
            session = await self._assistant.open_session(context.system_instruction)
        except Exception as exc:
            logger.error("session open failed: %s", exc)
            self._fail(SESSION_FAILED_MESSAGE.format(error=str(exc) or "Unknown error"))
            return

        welcome = self._compose_welcome(context)
        context.session = session
        self._session = session
        self.log.append(MessageRole.ASSISTANT, welcome)
        self._transition(PipelineState.READY, READY_STATUS_MESSAGE)

    def _compose_welcome(self, context: PipelineContext) -> str:
        welcome = self._welcome_message
        if welcome is None:
            welcome = load_welcome_message(self._settings.prompts_dir)
        if context.degraded is not None:
            welcome += f"\n\nNote: {context.degraded.advisory}"
        return welcome
