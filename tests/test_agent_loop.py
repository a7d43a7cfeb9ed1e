"""End-to-end tests of the agent loop with a scripted model client."""

import threading
import time
from typing import List

import pytest

from clearai.agent.agent_loop import (
    CLOSING_MESSAGE,
    AgentEngine,
    create_engine,
    is_termination_phrase,
)
from clearai.agent.model_client import (
    BaseModelClient,
    TGIModelClient,
)
from clearai.agent.state import Session
from clearai.config import Settings
from clearai.core.errors import ModelClientError
from clearai.core.schema import (
    Answer,
    EngineStatus,
    Failure,
    FailureKind,
    Suspend,
)
from clearai.tools import ToolRegistry

from conftest import (
    ScriptedModelClient,
    action,
    final,
)


@pytest.mark.parametrize("text", ["exit", "QUIT", "  bye ", "Goodbye"])
def test_termination_phrase_makes_no_model_call(make_engine, session: Session, text: str) -> None:
    engine = make_engine()

    result = engine.process_input(session, text)

    assert result == Answer(text=CLOSING_MESSAGE)
    assert engine.model_client.calls == 0
    assert session.state.history[-1] == f"Assistant: {CLOSING_MESSAGE}"


def test_termination_is_exact_match_only() -> None:
    assert is_termination_phrase("Exit")
    assert not is_termination_phrase("exit the cleanup after scanning")
    assert not is_termination_phrase("please quit")


def test_final_answer_terminates_in_one_iteration(make_engine, session: Session) -> None:
    engine = make_engine(final("Your disk looks healthy."))

    result = engine.process_input(session, "how is my disk?")

    assert isinstance(result, Answer)
    assert result.text == "Your disk looks healthy."
    assert engine.model_client.calls == 1
    assert session.state.loop_count == 1
    assert session.state.status is EngineStatus.IDLE
    assert engine.history(session) == [
        "User: how is my disk?",
        "Assistant: Your disk looks healthy.",
    ]


def test_scan_then_final_answer(make_engine, session: Session, calls: list) -> None:
    engine = make_engine(
        action("scan_directory", path="/home/user"),
        final("Found 42 files."),
    )

    result = engine.process_input(session, "scan /home/user")

    assert result == Answer(text="Found 42 files.")
    assert engine.model_client.calls == 2
    assert session.state.loop_count == 2
    assert calls == [("scan_directory", "/home/user", True, 0)]
    assert len(session.state.tool_calls) == 1
    record = session.state.tool_calls[0]
    assert record.success
    assert record.result == "Scanned /home/user: 42 files"
    assert "- scan_directory [ok]: Scanned /home/user: 42 files" in engine.model_client.prompts[1]


def test_one_corrective_retry(make_engine, session: Session) -> None:
    engine = make_engine("I would scan your home directory.", final("Done."))

    result = engine.process_input(session, "clean up")

    assert result == Answer(text="Done.")
    assert engine.model_client.calls == 2
    assert session.state.loop_count == 1
    retry_prompt = engine.model_client.prompts[1]
    assert "=== FORMAT ERROR ===" in retry_prompt
    assert "I would scan your home directory." in retry_prompt
    assert "no JSON object" in retry_prompt


def test_second_protocol_violation_fails_the_turn(make_engine, session: Session) -> None:
    engine = make_engine("not json", '{"thought": "t"}', final("never reached"))

    result = engine.process_input(session, "clean up")

    assert isinstance(result, Failure)
    assert result.failure is FailureKind.INVALID_RESPONSE
    assert "neither" in result.text
    assert engine.model_client.calls == 2
    assert session.state.status is EngineStatus.IDLE


def test_loop_budget_is_enforced(make_engine, session: Session, calls: list) -> None:
    engine = make_engine(*[action("add", a=1, b=i) for i in range(5)], max_loops=3)

    result = engine.process_input(session, "keep adding")

    assert isinstance(result, Failure)
    assert result.failure is FailureKind.LOOP_BUDGET_EXCEEDED
    assert "3" in result.text
    assert engine.model_client.calls == 3
    assert len(calls) == 3
    assert session.state.status is EngineStatus.IDLE


def test_loop_counter_resets_each_input(make_engine, session: Session) -> None:
    engine = make_engine(action("add", a=1, b=2), final("3"), final("again"))

    engine.process_input(session, "add")
    assert session.state.loop_count == 2

    engine.process_input(session, "once more")
    assert session.state.loop_count == 1


def test_failed_tool_is_fed_back_to_the_model(make_engine, session: Session) -> None:
    engine = make_engine(action("explode"), final("The scan failed, sorry."))

    result = engine.process_input(session, "scan")

    assert result == Answer(text="The scan failed, sorry.")
    record = session.state.tool_calls[0]
    assert not record.success
    assert record.result.startswith("ERROR [ToolExecutionError]")
    assert "- explode [failed]: ERROR [ToolExecutionError]" in engine.model_client.prompts[1]


@pytest.mark.parametrize(
    "decision, error",
    [
        (action("rm_rf", path="/"), "UnknownToolError"),
        (action("add", a=1), "MissingParameterError"),
        (action("add", a="one", b=2), "ParameterTypeError"),
    ],
)
def test_rejected_calls_never_reach_handlers(
    make_engine, session: Session, calls: list, decision: str, error: str
) -> None:
    engine = make_engine(decision, final("ok"))

    engine.process_input(session, "do it")

    assert calls == []
    assert session.state.tool_calls[0].result.startswith(f"ERROR [{error}]")


def test_communication_tool_notifies_user(
    make_engine, session: Session, notifications: list
) -> None:
    engine = make_engine(action("notify_user", message="Scanning now"), final("Done."))

    engine.process_input(session, "scan")

    assert notifications == ["📢 Scanning now"]


def test_failing_notifier_does_not_break_the_turn(make_engine, session: Session) -> None:
    def notify(message: str) -> None:
        raise RuntimeError("terminal closed")

    engine = make_engine(action("notify_user", message="hi"), final("Done."), notify=notify)

    assert engine.process_input(session, "scan") == Answer(text="Done.")


def test_confirmation_suspends_and_next_input_resumes(make_engine, session: Session) -> None:
    engine = make_engine(
        action("confirm", question="Delete 12 log files?"),
        final("Deleted."),
    )

    first = engine.process_input(session, "clean my logs")

    assert first == Suspend(question="❓ Delete 12 log files?")
    assert first.text == "❓ Delete 12 log files?"
    assert session.state.status is EngineStatus.SUSPENDED
    assert session.state.pending_question == "❓ Delete 12 log files?"
    assert engine.model_client.calls == 1

    second = engine.process_input(session, "yes")

    assert second == Answer(text="Deleted.")
    assert session.state.pending_question is None
    assert session.state.status is EngineStatus.IDLE
    assert session.state.loop_count == 1
    prompt = engine.model_client.prompts[1]
    assert "(The user is answering your question: ❓ Delete 12 log files?)" in prompt
    assert "User (reply to confirmation): yes" in prompt


def test_model_timeout_fails_the_turn(make_engine, session: Session) -> None:
    release = threading.Event()

    def stall(prompt: str) -> str:
        release.wait(5)
        return final("too late")

    engine = make_engine(stall, model_timeout=0.2)
    try:
        result = engine.process_input(session, "scan")
    finally:
        release.set()

    assert isinstance(result, Failure)
    assert result.failure is FailureKind.MODEL_UNAVAILABLE
    assert "no response within" in result.text
    assert session.state.status is EngineStatus.IDLE


def test_transport_error_fails_the_turn(make_engine, session: Session) -> None:
    engine = make_engine(ModelClientError("connection refused"))

    result = engine.process_input(session, "scan")

    assert isinstance(result, Failure)
    assert result.failure is FailureKind.MODEL_UNAVAILABLE
    assert "connection refused" in result.text


def test_busy_session_is_rejected(make_engine, session: Session) -> None:
    engine = make_engine(final("never"))

    with session.lock:
        result = engine.process_input(session, "hello")

    assert isinstance(result, Failure)
    assert result.failure is FailureKind.SESSION_BUSY
    assert engine.model_client.calls == 0
    assert session.state.user_messages == []


def test_reset_discards_history(make_engine, session: Session) -> None:
    engine = make_engine(final("Hello!"))
    engine.process_input(session, "hi")
    assert engine.history(session) == ["User: hi", "Assistant: Hello!"]

    engine.reset(session)

    assert engine.history(session) == []
    assert session.state.status is EngineStatus.IDLE
    assert session.state.tool_calls == []


def test_sessions_are_independent(make_engine) -> None:
    engine = make_engine(final("one"), final("two"))
    first, second = Session(), Session()

    engine.process_input(first, "a")
    engine.process_input(second, "b")

    assert engine.history(first) == ["User: a", "Assistant: one"]
    assert engine.history(second) == ["User: b", "Assistant: two"]


def test_max_loops_must_be_positive(registry: ToolRegistry) -> None:
    with pytest.raises(ValueError):
        AgentEngine(registry, ScriptedModelClient(), max_loops=0)


def test_create_engine_uses_settings() -> None:
    settings = Settings(MODEL_PROVIDER="tgi", MAX_LOOPS=7, MODEL_TIMEOUT=5.0)

    engine = create_engine(settings)
    try:
        assert isinstance(engine.model_client, TGIModelClient)
        assert engine.max_loops == 7
        assert engine.model_timeout == 5.0
        assert "scan_directory" in engine.registry
    finally:
        engine.close()


class SlowModelClient(BaseModelClient):
    """Answers every prompt after a fixed delay; safe to share between threads."""

    def __init__(self, delay: float) -> None:
        super().__init__()
        self.delay = delay

    def complete(self, prompt: str, timeout: float) -> str:
        time.sleep(self.delay)
        return final("ok")


def test_model_deadline_is_not_shared_between_sessions(registry: ToolRegistry) -> None:
    # eight sessions at once: each call alone fits the deadline, two back to back would not
    engine = AgentEngine(registry, SlowModelClient(delay=0.4), model_timeout=0.7)
    sessions = [Session() for _ in range(8)]
    results: List = [None] * len(sessions)

    def run(index: int) -> None:
        results[index] = engine.process_input(sessions[index], "scan")

    threads = [threading.Thread(target=run, args=(i,)) for i in range(len(sessions))]
    try:
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(5)
    finally:
        engine.close()

    assert results == [Answer(text="ok")] * len(sessions)


def test_closed_engine_fails_new_turns(make_engine, session: Session) -> None:
    engine = make_engine(final("never"))
    engine.close()

    result = engine.process_input(session, "scan")

    assert engine.closed
    assert isinstance(result, Failure)
    assert result.failure is FailureKind.MODEL_UNAVAILABLE
    assert "engine is closed" in result.text
    assert engine.model_client.calls == 0
    assert session.state.status is EngineStatus.IDLE
