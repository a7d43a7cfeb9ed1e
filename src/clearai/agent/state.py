"""
Per-session conversation memory.

A :class:`ConversationState` is owned by exactly one :class:`Session` and is only mutated from
inside the agent loop while the session lock is held.
"""

import threading
import uuid
from contextlib import contextmanager
from datetime import (
    datetime,
    timezone,
)
from typing import (
    Dict,
    Iterator,
    List,
    Optional,
)

from clearai.core.errors import SessionBusyError
from clearai.core.schema import (
    Decision,
    EngineStatus,
    FinalAnswer,
    ToolCallRecord,
)

HISTORY_RESULT_CHARS = 1000
"""Tool results longer than this are shortened in the readable history log."""


class ConversationState:
    """Message log, decisions, tool results and loop counter for one session."""

    def __init__(self, conversation_id: Optional[str] = None) -> None:
        self.conversation_id = conversation_id or uuid.uuid4().hex[:8]
        self.created_at = datetime.now(timezone.utc)
        self.user_messages: List[str] = []
        self.decisions: List[Decision] = []
        self.tool_results: Dict[str, List[str]] = {}
        self.tool_calls: List[ToolCallRecord] = []
        self.history: List[str] = []
        self.loop_count = 0
        self.status = EngineStatus.IDLE
        self.pending_question: Optional[str] = None
        self.answered_question: Optional[str] = None

    # ------------------------------------------------------------------ #
    # Mutation (agent loop only)
    # ------------------------------------------------------------------ #
    def add_user_message(self, message: str) -> None:
        """Record a user message; a pending confirmation question is answered by it."""
        self.user_messages.append(message)
        if self.pending_question is not None:
            self.history.append(f"User (reply to confirmation): {message}")
        else:
            self.history.append(f"User: {message}")

    def begin_turn(self) -> None:
        """Reset the per-call loop counter."""
        self.loop_count = 0
        self.answered_question = None

    def next_loop(self) -> int:
        """Advance the loop counter and return its new value (1-based)."""
        self.loop_count += 1
        return self.loop_count

    def add_decision(self, decision: Decision) -> None:
        """Append a parsed model decision."""
        self.decisions.append(decision)
        if isinstance(decision, FinalAnswer):
            self.history.append(f"Assistant: {decision.text}")
        else:
            self.history.append(f"Assistant: calling tool {decision.tool_name}")

    def add_tool_call(self, record: ToolCallRecord) -> None:
        """Append a tool call outcome (successful or failed)."""
        self.tool_calls.append(record)
        self.tool_results.setdefault(record.tool_name, []).append(record.result)

        shown = record.result
        if len(shown) > HISTORY_RESULT_CHARS:
            shown = shown[:HISTORY_RESULT_CHARS] + "...\n[result truncated]"
        label = "Tool" if record.success else "Tool FAILED"
        self.history.append(f"{label}[{record.tool_name}]: {shown}")

    def add_assistant_note(self, text: str) -> None:
        """Record an engine-generated reply that did not come from a model decision."""
        self.history.append(f"Assistant: {text}")

    def suspend(self, question: str) -> None:
        """Pause on *question* until the next user input."""
        self.pending_question = question
        self.status = EngineStatus.SUSPENDED

    def resume(self) -> Optional[str]:
        """Clear and return the pending question (None if the session was not suspended)."""
        question = self.pending_question
        self.pending_question = None
        self.answered_question = question
        return question

    # ------------------------------------------------------------------ #
    # Read helpers (prompt building)
    # ------------------------------------------------------------------ #
    @property
    def latest_user_message(self) -> str:
        """The most recent user message, or an empty string."""
        return self.user_messages[-1] if self.user_messages else ""

    def tool_history(self, tool_name: str) -> List[str]:
        """Raw results of every past call of *tool_name*."""
        return list(self.tool_results.get(tool_name, []))

    def has_tool_been_called(self, tool_name: str) -> bool:
        """True if *tool_name* ran at least once in this session."""
        return bool(self.tool_results.get(tool_name))

    def recent_tool_calls(self, limit: int) -> List[ToolCallRecord]:
        """The last *limit* tool call records, oldest first."""
        if limit <= 0:
            return []
        return self.tool_calls[-limit:]

    def recent_history(self, limit: int) -> List[str]:
        """The last *limit* lines of the readable history."""
        if limit <= 0:
            return []
        return self.history[-limit:]

    def summary(self) -> str:
        """Compact description of the session used in the prompt context."""
        lines = [
            f"Conversation: {self.conversation_id}",
            f"Started: {self.created_at.isoformat(timespec='seconds')}",
            f"User messages: {len(self.user_messages)}",
            f"Decisions so far: {len(self.decisions)}",
        ]
        if self.tool_results:
            calls = ", ".join(f"{name} x{len(res)}" for name, res in self.tool_results.items())
            lines.append(f"Tools called: {calls}")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"ConversationState(id={self.conversation_id!r}, loop={self.loop_count}, "
            f"messages={len(self.user_messages)}, tool_calls={len(self.tool_calls)}, "
            f"status={self.status.value})"
        )


class Session:
    """
    A caller-owned conversation handle.

    The lock enforces the single-writer rule: only one ``process_input`` call may run against a
    session at a time.
    """

    def __init__(self, session_id: Optional[str] = None) -> None:
        self.session_id = session_id or str(uuid.uuid4())
        self.state = ConversationState()
        self.lock = threading.Lock()

    @contextmanager
    def claim(self) -> Iterator[ConversationState]:
        """
        Hold the session for one input and yield its state.

        Raises
        ------
        SessionBusyError
            If another call is already running against this session.
        """
        if not self.lock.acquire(blocking=False):
            raise SessionBusyError(f"Session {self.session_id} is already processing an input")
        try:
            yield self.state
        finally:
            self.lock.release()

    def reset(self) -> None:
        """Drop the conversation and start a fresh state."""
        self.state = ConversationState()
