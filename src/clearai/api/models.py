"""
Pydantic models for ClearAI API requests and responses.
This module defines the request and response schemas used by the ClearAI API.
"""

from typing import (
    List,
    Optional,
)

from pydantic import (
    BaseModel,
    Field,
)

from clearai.core.schema import (
    EngineStatus,
    ToolCallRecord,
)


# ---------------------------------------------------------------------------
# Pydantic request / response schema
# ---------------------------------------------------------------------------
class SessionResponse(BaseModel):
    """Response with session information."""

    session_id: str


class MessageRequest(BaseModel):
    """Incoming user message."""

    message: str = Field(..., description="User message for ClearAI")
    session_id: Optional[str] = Field(None, description="Session ID for conversation context")


class MessageResponse(BaseModel):
    """API response returned to the caller."""

    reply: str
    result: str = Field(..., description="answer, suspend or failure")
    failure: Optional[str] = Field(None, description="Failure kind when result is 'failure'")
    status: EngineStatus
    session_id: str
    tool_calls: List[ToolCallRecord] = Field(
        default_factory=list, description="Tool calls made while handling this message"
    )


class HistoryResponse(BaseModel):
    """Readable conversation log of a session."""

    session_id: str
    history: List[str]
