"""FastAPI entry point for the BacTunis AI service."""

import logging
from contextlib import asynccontextmanager

import litellm
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config.settings import get_settings
from errors import ConversationNotFoundError, DocumentNotFoundError
from services.concurrency import ConcurrencyLimitMiddleware
from services.middleware import RequestIdMiddleware
from services.tutor_service import get_tutor_service

logger = logging.getLogger(__name__)

settings = get_settings()

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# ── Global LiteLLM settings ──────────────────────────────────
litellm.request_timeout = settings.llm_request_timeout
litellm.suppress_debug_info = True


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the tutor service once so configuration errors surface at startup."""
    service = get_tutor_service()
    if not settings.gemini_api_key:
        logger.warning("GEMINI_API_KEY is not set; AI features will return degraded messages")
    logger.info(
        "AI service ready (primary models=%d, secondary enabled=%s)",
        len(service.gateway.primary_models),
        service.gateway.secondary_enabled,
    )
    yield


app = FastAPI(
    title="BacTunis AI Service",
    description="AI tutoring for Tunisian baccalauréat students with provider fallback",
    version="1.0.0",
    lifespan=lifespan,
)

# ── Middleware stack ─────────────────────────────────────────
# The last one added is outermost: CORS → RequestId → ConcurrencyLimit → route,
# so 503 "busy" replies still carry CORS headers.
app.add_middleware(ConcurrencyLimitMiddleware)
app.add_middleware(RequestIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Exception mapping ────────────────────────────────────────


@app.exception_handler(DocumentNotFoundError)
async def document_not_found(request: Request, exc: DocumentNotFoundError):
    return JSONResponse(status_code=404, content={"detail": "Document non trouvé"})


@app.exception_handler(ConversationNotFoundError)
async def conversation_not_found(request: Request, exc: ConversationNotFoundError):
    return JSONResponse(status_code=404, content={"detail": "Conversation non trouvée"})


# ── Register routers ────────────────────────────────────────
from api.chat import router as chat_router  # noqa: E402
from api.documents import router as documents_router  # noqa: E402
from api.generate import router as generate_router  # noqa: E402
from api.health import router as health_router  # noqa: E402

app.include_router(health_router)
app.include_router(chat_router)
app.include_router(generate_router)
app.include_router(documents_router)


if __name__ == "__main__":
    if settings.debug:
        # Development: single worker with reload
        uvicorn.run(
            "main:app",
            host="0.0.0.0",
            port=settings.service_port,
            reload=True,
        )
    else:
        # Production: prefer gunicorn main:app -c deploy/gunicorn.conf.py
        uvicorn.run(
            "main:app",
            host="0.0.0.0",
            port=settings.service_port,
            workers=4,
            timeout_keep_alive=120,
        )
