"""Dispatches model actions through the :class:`~clearai.tools.ToolRegistry` and records them."""

import logging

from clearai.core.errors import ToolError
from clearai.core.schema import (
    Action,
    ToolCallRecord,
)
from clearai.tools import ToolRegistry

logger = logging.getLogger(__name__)


def execute_action(registry: ToolRegistry, action: Action) -> ToolCallRecord:
    """
    Run *action* and wrap the outcome in a :class:`ToolCallRecord`.

    Validation and handler errors never propagate: they become a failed record whose result text
    describes the error, so the model can adapt on the next iteration.

    Parameters
    ----------
    registry:
        The shared, read-only tool registry.
    action:
        The tool call the model asked for.

    Returns
    -------
    ToolCallRecord
        ``success`` is False when the call was rejected or the handler raised.
    """
    try:
        result = registry.invoke(action.tool_name, action.parameters)
    except ToolError as exc:
        logger.warning("Tool failure (%s): %s", type(exc).__name__, exc)
        return ToolCallRecord(
            tool_name=action.tool_name,
            parameters=dict(action.parameters),
            result=f"ERROR [{type(exc).__name__}]: {exc}",
            success=False,
        )

    logger.info("Tool '%s' returned %d characters", action.tool_name, len(result))
    return ToolCallRecord(
        tool_name=action.tool_name, parameters=dict(action.parameters), result=result
    )
