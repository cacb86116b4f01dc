from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, List, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException

from .catalog_client import ShopifyCatalogClient
from .config import Settings, load_settings
from .conversation import ConversationLog
from .gemini_client import GeminiClient
from .models import ChatRequest, ChatResponse, ConversationMessage, MessagePayload, StatusResponse
from .pipeline import AssistantService, CatalogGateway, InitializationPipeline
from .renderer import render_citations, render_message
from .session_manager import StreamingService, StreamingSessionManager

BASE_DIR = Path(__file__).resolve().parent

log_level_name = os.getenv("LOG_LEVEL", "INFO").upper()
log_level = getattr(logging, log_level_name, logging.INFO)
if not logging.getLogger().handlers:
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

logging.getLogger("audioguide").setLevel(log_level)

ENV_PATH = BASE_DIR / ".env"
if ENV_PATH.exists():
    load_dotenv(ENV_PATH, override=True)
else:
    load_dotenv()


def to_payload(message: ConversationMessage, product_base_url: Optional[str] = None) -> MessagePayload:
    """Attach rendered markup to a conversation message."""
    return MessagePayload(
        **message.dict(),
        html=render_message(message, product_base_url),
        citations_html=render_citations(message.citations),
    )


def create_app(
    settings: Optional[Settings] = None,
    assistant: Optional[AssistantService] = None,
    catalog: Optional[CatalogGateway] = None,
) -> FastAPI:
    """Purpose: Build the FastAPI app with one pipeline and one session manager.
    Inputs/Outputs: Optional settings and collaborators (real ones are built when
        omitted); returns a FastAPI instance.
    Side Effects / State: The lifespan handler runs the initialization pipeline once.
    Dependencies: Uses InitializationPipeline, StreamingSessionManager and the renderer.
    Failure Modes: Pipeline failures surface through /api/status and the message log.
    If Removed: The orchestration core has no HTTP surface.
    Testing Notes: Pass fakes and drive the app through TestClient.
    """
    # Wire one conversation log shared by the pipeline and the session manager.
    settings = settings or load_settings()
    gemini = assistant if assistant is not None else GeminiClient(settings)
    if catalog is None:
        catalog = ShopifyCatalogClient(settings)
    log = ConversationLog()
    pipeline = InitializationPipeline(settings, assistant=gemini, catalog=catalog, log=log)
    streamer: StreamingService = gemini  # type: ignore[assignment]
    manager = StreamingSessionManager(pipeline, streamer, log)
    product_base_url = settings.product_base_url

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        await pipeline.run()
        yield

    app = FastAPI(title="AudioGuide Shopping Assistant", lifespan=lifespan)
    app.state.pipeline = pipeline
    app.state.manager = manager

    def status_payload() -> StatusResponse:
        status = pipeline.status
        return StatusResponse(
            state=status.state.value,
            reason=status.reason,
            message=pipeline.status_message,
            ready=status.is_ready,
        )

    @app.get("/api/status", response_model=StatusResponse)
    def get_status() -> StatusResponse:
        return status_payload()

    @app.post("/api/initialize", response_model=StatusResponse)
    async def initialize() -> StatusResponse:
        """Run the pipeline; a pipeline that already finished is left untouched."""
        await pipeline.run()
        return status_payload()

    @app.get("/api/messages", response_model=List[MessagePayload])
    def list_messages() -> List[MessagePayload]:
        return [to_payload(message, product_base_url) for message in log.messages]

    @app.post("/api/chat", response_model=ChatResponse)
    async def chat(request: ChatRequest) -> ChatResponse:
        """Purpose: Send a user message and return every log entry it produced.
        Inputs/Outputs: Input is ChatRequest; output is ChatResponse with new messages.
        Side Effects / State: Appends user/assistant/system messages to the shared log.
        Dependencies: Uses StreamingSessionManager.send.
        Failure Modes: Blank messages return 422; send failures come back as log entries.
        If Removed: The UI cannot talk to the assistant.
        Testing Notes: Post a message with a fake assistant and check the reply text.
        """
        # Snapshot the log length so only entries from this send are returned.
        if not request.message.strip():
            raise HTTPException(status_code=422, detail="message must not be blank")
        before = len(log)
        await manager.send(request.message)
        new_messages = log.messages[before:]
        return ChatResponse(messages=[to_payload(message, product_base_url) for message in new_messages])

    return app


app = create_app()
