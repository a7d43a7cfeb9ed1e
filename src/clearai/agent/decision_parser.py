"""
Strict parser for model decisions.

A model response is accepted only if it contains one JSON object of the form::

    {"thought": "...", "final_answer": "..."}
    {"thought": "...", "action": {"tool_name": "...", "parameters": {...}}}

Prose wrapped around the object is tolerated, and so are unescaped backslashes (raw Windows
paths are common in model output).  Anything else raises :class:`InvalidResponseError`; there is no
fallback that treats free text as a final answer.
"""

import json
import logging
import re
from typing import (
    Any,
    Dict,
    Optional,
    Union,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    StrictStr,
    ValidationError,
)

from clearai.core.errors import InvalidResponseError
from clearai.core.schema import (
    Action,
    FinalAnswer,
)

logger = logging.getLogger(__name__)

# A backslash that does not start a valid JSON escape and is not itself escaped.
_LONE_BACKSLASH = re.compile(r'(?<!\\)\\(?!["\\/bfnrt]|u[0-9a-fA-F]{4})')


# ---------------------------------------------------------------------------
# Pydantic models for response validation
# ---------------------------------------------------------------------------
class _RawAction(BaseModel):
    model_config = ConfigDict(extra="ignore")

    tool_name: StrictStr
    parameters: Optional[Dict[StrictStr, Any]] = None


class _RawDecision(BaseModel):
    """Validates the decoded JSON object."""

    model_config = ConfigDict(extra="ignore")

    thought: StrictStr
    final_answer: Optional[StrictStr] = None
    action: Optional[_RawAction] = None


# ---------------------------------------------------------------------------
# Small helpers
# ---------------------------------------------------------------------------
def extract_json_object(text: str) -> str:
    """Return the slice from the first ``{`` to the last ``}``, or raise."""
    start = text.find("{")
    end = text.rfind("}")
    if start < 0 or end <= start:
        raise InvalidResponseError(text, "no JSON object found in response")
    return text[start : end + 1]


def escape_lone_backslashes(candidate: str) -> str:
    """Double every backslash that is not already part of a JSON escape sequence."""
    return _LONE_BACKSLASH.sub(r"\\\\", candidate)


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        location = ".".join(str(p) for p in err["loc"]) or "response"
        parts.append(f"{location}: {err['msg']}")
    return "; ".join(parts)


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------
def parse_decision(raw_text: str) -> Union[FinalAnswer, Action]:
    """
    Convert a raw model response into a :class:`FinalAnswer` or :class:`Action`.

    Raises
    ------
    InvalidResponseError
        If the response is not exactly one well-formed decision object.
    """
    if raw_text is None or not raw_text.strip():
        raise InvalidResponseError(raw_text or "", "empty response")

    candidate = escape_lone_backslashes(extract_json_object(raw_text))

    try:
        payload = json.loads(candidate)
    except json.JSONDecodeError as exc:
        raise InvalidResponseError(raw_text, f"malformed JSON: {exc}") from exc

    if not isinstance(payload, dict):
        raise InvalidResponseError(raw_text, "top-level JSON value must be an object")

    try:
        parsed = _RawDecision.model_validate(payload)
    except ValidationError as exc:
        raise InvalidResponseError(raw_text, _format_validation_error(exc)) from exc

    has_answer = parsed.final_answer is not None
    has_action = parsed.action is not None
    if has_answer and has_action:
        raise InvalidResponseError(raw_text, "response contains both 'final_answer' and 'action'")
    if not has_answer and not has_action:
        raise InvalidResponseError(
            raw_text, "response contains neither 'final_answer' nor 'action'"
        )

    if parsed.action is None:
        if not parsed.final_answer or not parsed.final_answer.strip():
            raise InvalidResponseError(raw_text, "'final_answer' is empty")
        return FinalAnswer(thought=parsed.thought, text=parsed.final_answer)

    tool_name = parsed.action.tool_name.strip()
    if not tool_name:
        raise InvalidResponseError(raw_text, "'action.tool_name' is empty")
    logger.debug("Parsed action '%s' (thought: %s)", tool_name, parsed.thought)
    return Action(
        thought=parsed.thought,
        tool_name=tool_name,
        parameters=parsed.action.parameters or {},
    )
