"""
Core API backend for ClearAI.

This module exposes the agent engine through a RESTful API used by the CLI client.
It exposes the following endpoints:
- **GET /health**  - liveness check.
- **POST /sessions** - create a new session, returns a session ID.
- **GET /sessions** - list all active sessions.
- **POST /agent**   - multi-turn interaction: {"message": "...", "session_id": "..."}
- **POST /sessions/{session_id}/reset** - discard a session's conversation.
- **GET /sessions/{session_id}/history** - readable conversation log of a session.
"""

import logging
import threading
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import (
    AsyncIterator,
    Dict,
    List,
    Optional,
)

from fastapi import (
    Depends,
    FastAPI,
    HTTPException,
)

from clearai.agent.agent_loop import (
    AgentEngine,
    create_engine,
)
from clearai.agent.state import Session
from clearai.api.models import (
    HistoryResponse,
    MessageRequest,
    MessageResponse,
    SessionResponse,
)
from clearai.common import (
    AnsiColors,
    colored_print,
)
from clearai.config import settings
from clearai.core.schema import (
    Failure,
    FailureKind,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Session storage (in-memory for now, could be moved to a database)
# ---------------------------------------------------------------------------
class SessionStore:
    """Thread-safe map of session id to :class:`Session`."""

    def __init__(self) -> None:
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def create(self) -> Session:
        """Create and store a new session."""
        session = Session()
        with self._lock:
            self._sessions[session.session_id] = session
        logger.info("Created session %s", session.session_id)
        return session

    def get(self, session_id: str) -> Optional[Session]:
        """Return the session for *session_id*, or None."""
        with self._lock:
            return self._sessions.get(session_id)

    def get_or_create(self, session_id: Optional[str] = None) -> Session:
        """Get existing session or create a new one."""
        if session_id:
            session = self.get(session_id)
            if session is not None:
                return session
        return self.create()

    def ids(self) -> List[str]:
        """All active session IDs."""
        with self._lock:
            return list(self._sessions.keys())


_store = SessionStore()


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------
@lru_cache(maxsize=1)
def get_engine() -> AgentEngine:
    """Build the shared engine on first use."""
    logger.info("Initialising agent engine (provider=%s)", settings.MODEL_PROVIDER)
    return create_engine(settings)


def get_session_store() -> SessionStore:
    """Return the process-wide session store."""
    return _store


def _require_session(session_id: str, store: SessionStore) -> Session:
    session = store.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")
    return session


def shutdown_engine() -> None:
    """Close the shared engine if one was built."""
    if get_engine.cache_info().currsize == 0:
        return
    get_engine().close()
    get_engine.cache_clear()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Release the engine when the server shuts down."""
    yield
    shutdown_engine()
    logger.info("ClearAI API shutdown")


app = FastAPI(
    title="ClearAI API",
    version="0.1.0",
    description="ClearAI disk-cleanup agent API",
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@app.get("/health", summary="Health check")
async def health() -> dict[str, str]:
    """Return a simple liveness payload."""
    return {"status": "ok"}


@app.post("/sessions", response_model=SessionResponse, summary="Create a new session")
def create_session(store: SessionStore = Depends(get_session_store)) -> SessionResponse:
    """Create a new conversation session."""
    session = store.create()
    return SessionResponse(session_id=session.session_id)


@app.get("/sessions", response_model=List[str], summary="List active sessions")
def list_sessions(store: SessionStore = Depends(get_session_store)) -> List[str]:
    """List all active session IDs."""
    return store.ids()


@app.post("/agent", response_model=MessageResponse, summary="Process a message")
def agent_endpoint(
    req: MessageRequest,
    engine: AgentEngine = Depends(get_engine),
    store: SessionStore = Depends(get_session_store),
) -> MessageResponse:
    """Run one agent turn for a user message with optional session context."""
    session = store.get_or_create(req.session_id)
    state = session.state
    first_call = len(state.tool_calls)

    result = engine.process_input(session, req.message)
    logger.debug("Session %s turn result: %s", session.session_id, result.kind)
    busy = isinstance(result, Failure) and result.failure is FailureKind.SESSION_BUSY

    return MessageResponse(
        reply=result.text,
        result=result.kind,
        failure=result.failure.value if isinstance(result, Failure) else None,
        status=state.status,
        session_id=session.session_id,
        tool_calls=[] if busy else state.tool_calls[first_call:],
    )


@app.post(
    "/sessions/{session_id}/reset", response_model=SessionResponse, summary="Reset a session"
)
def reset_session(
    session_id: str,
    engine: AgentEngine = Depends(get_engine),
    store: SessionStore = Depends(get_session_store),
) -> SessionResponse:
    """Discard the conversation of an existing session."""
    session = _require_session(session_id, store)
    engine.reset(session)
    return SessionResponse(session_id=session_id)


@app.get(
    "/sessions/{session_id}/history",
    response_model=HistoryResponse,
    summary="Conversation history",
)
def session_history(
    session_id: str,
    engine: AgentEngine = Depends(get_engine),
    store: SessionStore = Depends(get_session_store),
) -> HistoryResponse:
    """Return the readable conversation log of a session."""
    session = _require_session(session_id, store)
    return HistoryResponse(session_id=session_id, history=engine.history(session))


@app.get("/", summary="API root")
async def root() -> dict[str, str]:
    """Return a simple welcome message."""
    return {"message": "Welcome to the ClearAI API! Use /docs for API documentation."}


# ---------------------------------------------------------------------------
# Public helper to launch the API (imported by main.py)
# ---------------------------------------------------------------------------
def run_api(
    host: str = "0.0.0.0", port: int = 8000, reload: bool = False, log_level: str | None = None
) -> None:
    """Start a uvicorn server hosting *app*.

    Parameters
    ----------
    host, port:
        Bind address for the HTTP server.
    reload:
        If *True*, enable auto-reload (useful during development).
    log_level:
        Logging level to use (default from settings if not provided).
    """

    # Lazy import - keeps uvicorn out of the import path of the engine
    import uvicorn  # pylint: disable=import-outside-toplevel

    if log_level is None:
        log_level = settings.LOG_LEVEL

    logger.info(
        "Starting ClearAI API at %s:%d (reload=%s, log_level=%s)", host, port, reload, log_level
    )
    logger.debug(
        "API settings: %s",
        settings.model_dump(exclude={"OPENAI_API_KEY", "ANTHROPIC_API_KEY"}),
    )

    colored_print(f"🧹 ClearAI API is running at http://localhost:{port}.", AnsiColors.GREEN)
    colored_print(f"Visit http://localhost:{port}/docs for API documentation.", AnsiColors.BLUE)
    uvicorn.run(
        "clearai.api.app:app",
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )


# ---------------------------------------------------------------------------
# `python -m clearai.api.app` helper
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    run_api(reload=True)
