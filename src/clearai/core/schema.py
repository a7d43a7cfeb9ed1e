"""
Schema definitions for model <-> engine <-> tool messages.

These data models serve as the contract between the language model, the agent loop, and the
individual tools.  We keep them separate from runtime logic so they can be imported anywhere without
side-effects.
"""

from datetime import (
    datetime,
    timezone,
)
from enum import Enum
from typing import (
    Annotated,
    Any,
    Dict,
    Literal,
    Tuple,
    Union,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------
class ParameterType(str, Enum):
    """Primitive types a tool parameter can declare."""

    STRING = "string"
    INT = "int"
    LONG = "long"
    DOUBLE = "double"
    BOOL = "bool"


class ToolCategory(str, Enum):
    """
    Dispatch category of a tool.

    ``CONFIRMATION`` tools are the fixed set that pause the loop until the user answers;
    ``COMMUNICATION`` tools additionally have their result forwarded to the user as it happens.
    """

    GENERAL = "general"
    COMMUNICATION = "communication"
    CONFIRMATION = "confirmation"


class Parameter(BaseModel):
    """A declared tool parameter."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    type: ParameterType = ParameterType.STRING
    description: str = ""
    required: bool = True
    default: Any = None


class ToolDefinition(BaseModel):
    """Immutable description of a tool, used both for dispatch and for the prompt catalog."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Unique tool name")
    description: str
    parameters: Tuple[Parameter, ...] = ()
    category: ToolCategory = ToolCategory.GENERAL

    @model_validator(mode="after")
    def _unique_parameter_names(self) -> "ToolDefinition":
        names = [p.name for p in self.parameters]
        if len(names) != len(set(names)):
            raise ValueError(f"Tool '{self.name}' declares duplicate parameter names")
        return self


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------
class FinalAnswer(BaseModel):
    """The model considers the task done and answers the user."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["final_answer"] = "final_answer"
    thought: str = ""
    text: str


class Action(BaseModel):
    """The model wants the engine to run one tool."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["action"] = "action"
    thought: str = ""
    tool_name: str
    parameters: Dict[str, Any] = Field(default_factory=dict, description="Raw, pre-coercion values")


Decision = Annotated[Union[FinalAnswer, Action], Field(discriminator="kind")]


class ToolCallRecord(BaseModel):
    """Outcome of one tool dispatch, appended to the conversation state."""

    model_config = ConfigDict(frozen=True)

    tool_name: str
    parameters: Dict[str, Any] = Field(default_factory=dict)
    result: str
    success: bool = True
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# ---------------------------------------------------------------------------
# Engine results
# ---------------------------------------------------------------------------
class EngineStatus(str, Enum):
    """Where a session's state machine currently is."""

    IDLE = "idle"
    RUNNING = "running"
    FINAL_ANSWER = "final_answer"
    SUSPENDED = "suspended"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


class FailureKind(str, Enum):
    """Why a turn ended without an answer."""

    INVALID_RESPONSE = "invalid_response"
    MODEL_UNAVAILABLE = "model_unavailable"
    LOOP_BUDGET_EXCEEDED = "loop_budget_exceeded"
    SESSION_BUSY = "session_busy"


class Answer(BaseModel):
    """The turn finished with a final answer."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["answer"] = "answer"
    text: str


class Suspend(BaseModel):
    """The turn is paused on a question for the user; the next input resumes it."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["suspend"] = "suspend"
    question: str

    @property
    def text(self) -> str:
        """User-facing text for this result."""
        return self.question


class Failure(BaseModel):
    """The turn was aborted or ran out of iterations."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["failure"] = "failure"
    failure: FailureKind
    message: str

    @property
    def text(self) -> str:
        """User-facing text for this result."""
        return self.message


EngineResult = Union[Answer, Suspend, Failure]

