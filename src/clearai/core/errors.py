"""
Exception hierarchy for the ClearAI engine.

Everything derives from :class:`ClearAIError`.  Tool-level errors (:class:`ToolError` and its
subclasses) are recovered inside the agent loop and fed back to the model as failed tool results;
protocol and transport errors abort the current turn.
"""

from typing import Optional


class ClearAIError(Exception):
    """Base exception for all ClearAI errors."""


# ---------------------------------------------------------------------------
# Model / protocol errors (fatal for the current turn)
# ---------------------------------------------------------------------------
class InvalidResponseError(ClearAIError, ValueError):
    """Raised when a model response violates the thought/action/final_answer protocol."""

    def __init__(self, raw_text: str, reason: str) -> None:
        self.raw_text = raw_text
        self.reason = reason
        super().__init__(f"Invalid model response: {reason}")


class ModelUnavailableError(ClearAIError, RuntimeError):
    """Raised when the model call times out or the transport fails."""


class ModelClientError(ClearAIError, RuntimeError):
    """Raised by a model client when the provider request fails."""


class LoopBudgetExceededError(ClearAIError, RuntimeError):
    """Raised when a turn runs out of loop iterations without a final answer."""

    def __init__(self, max_loops: int) -> None:
        self.max_loops = max_loops
        super().__init__(f"No final answer after {max_loops} iterations")


class SessionBusyError(ClearAIError, RuntimeError):
    """Raised when a session is already processing another input."""


# ---------------------------------------------------------------------------
# Tool errors (recovered locally, surfaced to the model as failed results)
# ---------------------------------------------------------------------------
class ToolError(ClearAIError):
    """Base class for registry and dispatch errors."""

    def __init__(self, message: str, tool_name: Optional[str] = None) -> None:
        self.tool_name = tool_name
        super().__init__(message)


class DuplicateToolError(ToolError, ValueError):
    """Raised when a tool name is registered twice."""


class UnknownToolError(ToolError, LookupError):
    """Raised when dispatching a tool that is not registered."""


class MissingParameterError(ToolError, ValueError):
    """Raised when a required parameter is absent from the call."""

    def __init__(self, tool_name: str, parameter: str) -> None:
        self.parameter = parameter
        super().__init__(
            f"Tool '{tool_name}' is missing required parameter '{parameter}'", tool_name
        )


class ParameterTypeError(ToolError, TypeError):
    """Raised when a parameter value cannot be coerced to its declared type."""

    def __init__(self, tool_name: str, parameter: str, expected: str, value: object) -> None:
        self.parameter = parameter
        self.expected = expected
        super().__init__(
            f"Parameter '{parameter}' of tool '{tool_name}' expects {expected}, got {value!r}",
            tool_name,
        )


class ToolExecutionError(ToolError, RuntimeError):
    """Raised when a tool handler fails while running."""
