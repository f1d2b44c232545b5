import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from .context.errors import InvalidMessage, SummarizationFailed
from .models import CompactionStrategy, Message, SummarySchema, ToolCallRecord
from .services.session_service import (
    SessionService,
    get_session_service,
    reset_session_service,
)
from .settings import get_settings


def setup_server_logging() -> logging.Logger:
    """Configure and return the server logger."""
    logs_dir = Path("logs")
    logs_dir.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger("agentcontext.server")
    if logger.handlers:
        return logger

    logger.setLevel(get_settings().log_level)
    fmt = logging.Formatter("%(asctime)s %(levelname)s %(name)s - %(message)s")

    ch = logging.StreamHandler()
    ch.setFormatter(fmt)
    logger.addHandler(ch)

    fh = RotatingFileHandler(logs_dir / "server.log", maxBytes=5_000_000, backupCount=3)
    fh.setFormatter(fmt)
    logger.addHandler(fh)

    return logger


LOGGER = setup_server_logging()
settings = get_settings()


class ToolCallIn(BaseModel):
    id: str
    tool: str
    input: Dict[str, Dict[str, Any]] = Field(default_factory=lambda: {"full": {}, "compact": {}})
    output: Dict[str, str] = Field(default_factory=lambda: {"full": "", "compact": ""})
    timestamp: int = 0


class MessageIn(BaseModel):
    role: str
    content: str | None = None
    id: str | None = None
    timestamp: int | None = None
    tool_call: ToolCallIn | None = None

    def to_message(self) -> Message:
        tool_call = None
        if self.tool_call is not None:
            tool_call = ToolCallRecord(**self.tool_call.model_dump())
        return Message(
            role=self.role,
            content=self.content,
            id=self.id,
            timestamp=self.timestamp,
            tool_call=tool_call,
        )


class CompactRequest(BaseModel):
    strategy: CompactionStrategy = CompactionStrategy.BALANCED


class SummarizeRequest(BaseModel):
    include_modified_files: bool = True
    include_user_goal: bool = True
    include_last_stop_point: bool = True
    include_key_decisions: bool = True
    include_unresolved_issues: bool = True
    include_next_steps: bool = True


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the session service at startup; drop all sessions on shutdown."""
    get_session_service()
    LOGGER.info("Session service ready (summarizer=%s)", settings.summarizer)

    yield

    LOGGER.info("Shutting down...")
    reset_session_service()


app = FastAPI(
    title="Agent Context Manager",
    version="0.1.0",
    debug=settings.debug,
    lifespan=lifespan,
)


@app.get("/health")
async def health() -> dict[str, Any]:
    """Health check for load balancers and monitoring."""
    return {"status": "ok"}


def _require_session(service: SessionService, session_id: str) -> None:
    if not service.has_session(session_id):
        raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")


def _observer_failures(service: SessionService, session_id: str) -> list[str]:
    return [str(f) for f in service.get_manager(session_id).last_observer_failures]


@app.post("/sessions/{session_id}/messages")
async def append_message(session_id: str, payload: MessageIn) -> dict[str, Any]:
    """Append a message to the session, creating the session if needed.

    Returns the stored message with its assigned id and timestamp, plus the
    session's running token count.
    """
    service = get_session_service()
    try:
        stored = await service.append(session_id, payload.to_message())
    except InvalidMessage as e:
        LOGGER.info("Rejected message for session_id=%s: %s", session_id, e)
        raise HTTPException(status_code=422, detail=str(e)) from e
    manager = service.get_manager(session_id)
    return {
        "message": asdict(stored),
        "token_count": manager.token_count,
        "threshold": manager.threshold_level.value,
        "observer_failures": _observer_failures(service, session_id),
    }


@app.post("/sessions/{session_id}/compact")
async def compact_session(session_id: str, payload: CompactRequest) -> dict[str, Any]:
    service = get_session_service()
    _require_session(service, session_id)
    removed = await service.compact(session_id, payload.strategy)
    manager = service.get_manager(session_id)
    LOGGER.info(
        "Compacted session_id=%s strategy=%s removed=%s",
        session_id,
        payload.strategy.value,
        removed,
    )
    return {
        "removed_count": removed,
        "message_count": manager.message_count,
        "token_count": manager.token_count,
        "observer_failures": _observer_failures(service, session_id),
    }


@app.post("/sessions/{session_id}/summarize")
async def summarize_session(session_id: str, payload: SummarizeRequest) -> dict[str, Any]:
    service = get_session_service()
    _require_session(service, session_id)
    try:
        summary = await service.summarize(session_id, SummarySchema(**payload.model_dump()))
    except SummarizationFailed as e:
        LOGGER.warning("Summarization failed for session_id=%s: %s", session_id, e)
        raise HTTPException(status_code=502, detail=str(e)) from e
    return {
        "summary": asdict(summary),
        "observer_failures": _observer_failures(service, session_id),
    }


@app.get("/sessions/{session_id}/context")
async def get_context(session_id: str) -> dict[str, Any]:
    context = await get_session_service().get_context(session_id)
    if context is None:
        raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")
    return asdict(context)


@app.get("/sessions/{session_id}/log-context")
async def get_log_context(session_id: str) -> dict[str, Any]:
    log_context = await get_session_service().get_log_context(session_id)
    if log_context is None:
        raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")
    return log_context


@app.delete("/sessions/{session_id}")
async def end_session(session_id: str) -> dict[str, Any]:
    ended = await get_session_service().end_session(session_id)
    if not ended:
        raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")
    return {"session_id": session_id, "ended": True}
