"""
Main orchestration loop for ClearAI.

One call to :meth:`AgentEngine.process_input` is one user turn::

    user message -> state -> loop { render prompt -> model -> parse -> act } -> EngineResult

The turn ends with a final answer (:class:`Answer`), a pause on a user-confirmation tool
(:class:`Suspend`), or a :class:`Failure` (protocol violation, model unavailable, loop budget
exhausted, session busy).  No exception escapes ``process_input``.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import (
    Callable,
    FrozenSet,
    List,
    Sequence,
)

from clearai.agent.decision_parser import parse_decision
from clearai.agent.model_client import (
    BaseModelClient,
    load_model_client,
)
from clearai.agent.prompt_builder import PromptBuilder
from clearai.agent.state import (
    ConversationState,
    Session,
)
from clearai.agent.tool_executor import execute_action
from clearai.config import Settings
from clearai.core.errors import (
    InvalidResponseError,
    LoopBudgetExceededError,
    ModelUnavailableError,
    SessionBusyError,
)
from clearai.core.schema import (
    Action,
    Answer,
    EngineResult,
    EngineStatus,
    Failure,
    FailureKind,
    FinalAnswer,
    Suspend,
    ToolDefinition,
)
from clearai.tools import (
    ToolRegistry,
    build_default_registry,
)
from clearai.tools.whitelist import Whitelist

logger = logging.getLogger(__name__)

DEFAULT_MAX_LOOPS = 20
DEFAULT_MODEL_TIMEOUT = 120.0

TERMINATION_PHRASES: FrozenSet[str] = frozenset({"exit", "quit", "bye", "goodbye"})
CLOSING_MESSAGE = "👋 Goodbye! The cleanup session is closed."
TIMEOUT_MESSAGE = (
    "⏰ The task did not finish within the maximum of {max_loops} steps. "
    "Please narrow the request or try again."
)
SESSION_BUSY_MESSAGE = "⚠️ This session is still processing a previous message."

Notifier = Callable[[str], None]


def is_termination_phrase(text: str, phrases: FrozenSet[str] = TERMINATION_PHRASES) -> bool:
    """Exact, case-insensitive match against the closing phrases."""
    return text.strip().lower() in phrases


# ---------------------------------------------------------------------------
# Agent Engine
# ---------------------------------------------------------------------------
class AgentEngine:
    """
    The per-turn state machine.

    The engine is shared by all sessions.  It owns no conversation data itself: every call
    receives the caller's :class:`Session`, whose lock guarantees a single writer per state.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        model_client: BaseModelClient,
        prompt_builder: PromptBuilder | None = None,
        max_loops: int = DEFAULT_MAX_LOOPS,
        model_timeout: float = DEFAULT_MODEL_TIMEOUT,
        notify: Notifier | None = None,
        termination_phrases: FrozenSet[str] = TERMINATION_PHRASES,
    ) -> None:
        if max_loops <= 0:
            raise ValueError("max_loops must be positive")
        self.registry = registry
        self.model_client = model_client
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.max_loops = max_loops
        self.model_timeout = model_timeout
        self.notify = notify
        self.termination_phrases = frozenset(p.lower() for p in termination_phrases)
        self._closed = threading.Event()

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    def process_input(self, session: Session, text: str) -> EngineResult:
        """Run one user turn against *session* and return its result."""
        try:
            with session.claim() as state:
                result = self._handle(state, text)
                logger.debug("Turn on %s ended as %s", state.conversation_id, state.status.value)
                # a pending confirmation keeps the session suspended until the next input
                if state.status is not EngineStatus.SUSPENDED:
                    state.status = EngineStatus.IDLE
                return result
        except SessionBusyError as exc:
            logger.warning("%s; rejecting input", exc)
            return Failure(failure=FailureKind.SESSION_BUSY, message=SESSION_BUSY_MESSAGE)

    def reset(self, session: Session) -> None:
        """Discard the session's conversation (waits for a running turn to finish)."""
        with session.lock:
            session.reset()
        logger.info("Session %s reset", session.session_id)

    def history(self, session: Session) -> List[str]:
        """Readable conversation log of *session*."""
        return list(session.state.history)

    def close(self) -> None:
        """Refuse further model calls; turns started afterwards fail as model unavailable."""
        self._closed.set()
        logger.info("Agent engine closed")

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    # ------------------------------------------------------------------ #
    # Turn handling
    # ------------------------------------------------------------------ #
    def _handle(self, state: ConversationState, text: str) -> EngineResult:
        state.add_user_message(text)
        state.begin_turn()
        if state.status is EngineStatus.SUSPENDED:
            question = state.resume()
            logger.info("Resuming %s after confirmation: %s", state.conversation_id, question)

        if is_termination_phrase(text, self.termination_phrases):
            logger.info("Termination phrase received; closing without a model call")
            state.add_assistant_note(CLOSING_MESSAGE)
            state.status = EngineStatus.FINAL_ANSWER
            return Answer(text=CLOSING_MESSAGE)

        state.status = EngineStatus.RUNNING
        return self._run_turn(state)

    def _run_turn(self, state: ConversationState) -> EngineResult:
        try:
            return self._loop(state)
        except ModelUnavailableError as exc:
            logger.error("Model unavailable, aborting turn: %s", exc)
            state.status = EngineStatus.FAILED
            return Failure(
                failure=FailureKind.MODEL_UNAVAILABLE, message=f"❌ Model unavailable: {exc}"
            )
        except InvalidResponseError as exc:
            logger.error("Model broke the response protocol twice, aborting turn: %s", exc.reason)
            state.status = EngineStatus.FAILED
            return Failure(
                failure=FailureKind.INVALID_RESPONSE,
                message=f"❌ The model returned an invalid response: {exc.reason}",
            )
        except LoopBudgetExceededError as exc:
            logger.warning("%s", exc)
            state.status = EngineStatus.TIMED_OUT
            message = TIMEOUT_MESSAGE.format(max_loops=exc.max_loops)
            state.add_assistant_note(message)
            return Failure(failure=FailureKind.LOOP_BUDGET_EXCEEDED, message=message)

    def _loop(self, state: ConversationState) -> EngineResult:
        tools = self.registry.describe()

        for _ in range(self.max_loops):
            loop = state.next_loop()
            prompt = self.prompt_builder.render(state, tools)
            logger.info("Loop #%d: prompt length %d characters", loop, len(prompt))

            decision = self._decide(state, tools, prompt)
            state.add_decision(decision)

            if isinstance(decision, FinalAnswer):
                logger.info("Final answer after %d loop(s)", loop)
                state.status = EngineStatus.FINAL_ANSWER
                return Answer(text=decision.text)

            result = self._act(state, decision)
            if result is not None:
                return result

        raise LoopBudgetExceededError(self.max_loops)

    def _act(self, state: ConversationState, action: Action) -> Suspend | None:
        """Dispatch *action*; return a :class:`Suspend` when the loop must pause."""
        logger.info("Dispatching tool '%s' (thought: %s)", action.tool_name, action.thought)
        record = execute_action(self.registry, action)
        state.add_tool_call(record)

        if not record.success:
            return None
        if self.registry.is_communication(action.tool_name):
            self._notify(record.result)
        if self.registry.requires_confirmation(action.tool_name):
            logger.info("Tool '%s' requires user confirmation; suspending", action.tool_name)
            state.suspend(record.result)
            return Suspend(question=record.result)
        return None

    def _decide(
        self, state: ConversationState, tools: Sequence[ToolDefinition], prompt: str
    ) -> FinalAnswer | Action:
        """Call the model and parse; one corrective retry on a protocol violation."""
        raw = self._call_model(prompt)
        logger.debug("Model output: %s", raw)
        try:
            return parse_decision(raw)
        except InvalidResponseError as exc:
            reason = exc.reason
            logger.warning("Invalid model response (%s); issuing corrective retry", reason)

        correction = self.prompt_builder.render_correction(state, tools, raw, reason)
        retry_raw = self._call_model(correction)
        logger.debug("Model output (retry): %s", retry_raw)
        return parse_decision(retry_raw)

    def _call_model(self, prompt: str) -> str:
        """
        Run ``model_client.complete`` and wait at most ``model_timeout`` seconds for it.

        Each call runs on its own daemon thread, started immediately, so the deadline covers
        the request alone.  A thread that outlives its deadline is abandoned; the client's own
        timeout ends the request.
        """
        if self.closed:
            raise ModelUnavailableError("engine is closed")

        future: Future = Future()

        def _worker() -> None:
            if not future.set_running_or_notify_cancel():
                return
            try:
                future.set_result(self.model_client.complete(prompt, self.model_timeout))
            except BaseException as exc:  # pylint: disable=broad-except
                future.set_exception(exc)

        threading.Thread(target=_worker, name="clearai-model", daemon=True).start()
        try:
            return future.result(timeout=self.model_timeout)
        except FutureTimeoutError as exc:
            future.cancel()
            raise ModelUnavailableError(
                f"no response within {self.model_timeout:g} seconds"
            ) from exc
        except Exception as exc:  # pylint: disable=broad-except
            raise ModelUnavailableError(str(exc) or type(exc).__name__) from exc

    def _notify(self, message: str) -> None:
        if self.notify is None:
            return
        try:
            self.notify(message)
        except Exception:  # pylint: disable=broad-except
            logger.exception("Notification callback failed")


def create_engine(settings: Settings, notify: Notifier | None = None) -> AgentEngine:
    """Wire registry, model client and prompt builder from *settings*."""
    builder = PromptBuilder(
        max_length=settings.MAX_PROMPT_LENGTH,
        recent_tool_results=settings.RECENT_TOOL_RESULTS,
        tool_result_chars=settings.TOOL_RESULT_SUMMARY_CHARS,
        history_window=settings.HISTORY_WINDOW,
    )
    protected = Whitelist(
        settings.WHITELIST_FILE,
        settings.SYSTEM_WHITELIST_FILE,
        use_defaults=settings.USE_DEFAULT_WHITELIST,
    ).load()
    return AgentEngine(
        registry=build_default_registry(protected),
        model_client=load_model_client(settings=settings),
        prompt_builder=builder,
        max_loops=settings.MAX_LOOPS,
        model_timeout=settings.MODEL_TIMEOUT,
        notify=notify,
    )
