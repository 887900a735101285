# backend/rental_search/main.py
import logging
import time
import uuid
from functools import lru_cache

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import Settings
from .errors import FailureKind
from .extractor import fallback_filters
from .property_search import SessionRegistry, build_session_factory
from .schemas import ChatRequest, ChatResponse, Filters, ResetRequest, ResetResponse

logger = logging.getLogger(__name__)
if not logging.getLogger().handlers:
    logging.basicConfig(level=logging.INFO, format="[%(asctime)s] %(levelname)s %(name)s: %(message)s")

app = FastAPI(title="Rental Search")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# The body keeps the result shape; only the status tells clients which guidance to show.
FAILURE_STATUS = {
    FailureKind.RATE_LIMITED: 429,
    FailureKind.QUOTA_EXHAUSTED: 402,
    FailureKind.UNAVAILABLE: 503,
    FailureKind.STORE_UNAVAILABLE: 200,
}


@lru_cache(maxsize=1)
def get_registry() -> SessionRegistry:
    settings = Settings.from_env()
    return SessionRegistry(build_session_factory(settings), ttl=settings.session_ttl,
                           max_sessions=settings.max_sessions)


@app.get("/health")
def health():
    return {"status": "ok"}


# -----------------------------
# SEARCH
# -----------------------------
@app.post("/chat", response_model=ChatResponse)
async def chat_endpoint(request: ChatRequest, registry: SessionRegistry = Depends(get_registry)):
    start_time = time.time()
    query_text = (request.query or "").strip()

    if not query_text:
        return ChatResponse(
            session_id=request.session_id or str(uuid.uuid4()),
            filters=Filters(),
            message="Please type a message.",
            suggestions=list(fallback_filters().suggestions),
        )

    session_id, session = registry.get_or_create(request.session_id)
    result = await session.search(query_text)
    response = ChatResponse(
        session_id=session_id,
        filters=result.filters,
        properties=result.properties,
        message=result.message,
        suggestions=result.suggestions,
        failure=result.failure,
    )
    logger.info("Chat request for %s handled in %.2fs", session_id, time.time() - start_time)

    status = FAILURE_STATUS[result.failure] if result.failure else 200
    if status != 200:
        return JSONResponse(status_code=status, content=response.model_dump(mode="json"))
    return response


@app.post("/chat/reset", response_model=ResetResponse)
def reset_endpoint(request: ResetRequest, registry: SessionRegistry = Depends(get_registry)):
    registry.reset(request.session_id)
    return ResetResponse(session_id=request.session_id, history_length=0)
