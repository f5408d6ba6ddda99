"""FastAPI application entrypoint.

All routes prefixed /v1. Auto-generated OpenAPI docs at /docs.

The Ollama provider, model resolver, extractors, summarizer, ingestion
dispatcher/coordinator and response generator are created once during the
lifespan and stored on app.state for injection via Depends(). Shutdown
waits for in-flight ingestion tasks before closing clients and the pool.
"""

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from knowledgebot.api.v1.chat import router as chat_router
from knowledgebot.api.v1.documents import router as documents_router
from knowledgebot.api.v1.health import router as health_router
from knowledgebot.api.v1.qa import router as qa_router
from knowledgebot.core.config import settings
from knowledgebot.core.exceptions import KnowledgeBotError
from knowledgebot.db.postgres import async_session_factory, close_postgres
from knowledgebot.services.agent.core import ResponseGenerator
from knowledgebot.services.extractors.base import ExtractorRegistry
from knowledgebot.services.extractors.link import LinkExtractor
from knowledgebot.services.extractors.pdf import PdfExtractor
from knowledgebot.services.llm.base import InferenceConfig
from knowledgebot.services.llm.ollama import OllamaProvider
from knowledgebot.services.llm.resolver import ModelResolver
from knowledgebot.services.rag.ingestion import IngestionCoordinator, IngestionDispatcher
from knowledgebot.services.rag.summarizer import Summarizer


def _configure_logging() -> None:
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


_configure_logging()

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application startup and shutdown lifecycle.

    Builds the inference stack and ingestion services and attaches them to
    app.state. Retrieved in request handlers via Depends() in
    knowledgebot/api/deps.py.
    """
    # --- Startup ---
    logger.info("app_startup", env=settings.app_env)

    inference = InferenceConfig.from_settings(settings)
    llm = OllamaProvider(
        base_url=inference.base_url,
        timeout_seconds=inference.timeout_seconds,
        pull_timeout_seconds=inference.pull_timeout_seconds,
    )
    resolver = ModelResolver(llm=llm, fallback_models=inference.fallback_models)

    extractors = ExtractorRegistry(
        pdf=PdfExtractor(max_bytes=settings.max_pdf_bytes),
        link=LinkExtractor(
            timeout_seconds=settings.scrape_timeout_seconds,
            max_content_chars=settings.scrape_max_content_chars,
            max_redirects=settings.scrape_max_redirects,
        ),
    )
    dispatcher = IngestionDispatcher()

    app.state.llm_provider = llm
    app.state.ingestion_dispatcher = dispatcher
    app.state.ingestion_coordinator = IngestionCoordinator(
        session_factory=async_session_factory,
        extractors=extractors,
        summarizer=Summarizer(llm=llm, resolver=resolver, config=inference),
        dispatcher=dispatcher,
        min_extracted_chars=settings.min_extracted_chars,
        release_failed_uploads=settings.release_failed_uploads,
    )
    app.state.response_generator = ResponseGenerator(
        llm=llm, resolver=resolver, config=inference
    )

    logger.info("app_providers_ready", model=inference.model)
    yield

    # --- Shutdown ---
    logger.info("app_shutdown")

    await dispatcher.drain()
    await llm.aclose()
    await close_postgres()


app = FastAPI(
    title="Knowledge Bot API",
    description="Chatbot knowledge ingestion, Q&A retrieval and answer generation.",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS: permissive for development, locked down in production
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if not settings.is_production else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(KnowledgeBotError)
async def knowledgebot_error_handler(request: Request, exc: KnowledgeBotError) -> JSONResponse:
    """Structured error response for all knowledge bot exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
    )


# Mount all v1 routers
app.include_router(health_router, prefix="/v1")
app.include_router(documents_router, prefix="/v1")
app.include_router(qa_router, prefix="/v1")
app.include_router(chat_router, prefix="/v1")
