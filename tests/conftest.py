"""Shared fixtures: a scripted model client and a small tool registry."""

import json
from typing import (
    Any,
    Callable,
    Iterable,
    List,
    Union,
)

import pytest

from clearai.agent.agent_loop import AgentEngine
from clearai.agent.model_client import BaseModelClient
from clearai.agent.state import Session
from clearai.core.schema import (
    Parameter,
    ParameterType,
    ToolCategory,
    ToolDefinition,
)
from clearai.tools import ToolRegistry

Reply = Union[str, Exception, Callable[[str], str]]


class ScriptedModelClient(BaseModelClient):
    """Returns canned replies in order and records every prompt it receives."""

    def __init__(self, replies: Iterable[Reply] = ()) -> None:
        super().__init__()
        self.replies: List[Reply] = list(replies)
        self.prompts: List[str] = []

    @property
    def calls(self) -> int:
        return len(self.prompts)

    def complete(self, prompt: str, timeout: float) -> str:
        self.prompts.append(prompt)
        if not self.replies:
            raise AssertionError("ScriptedModelClient ran out of replies")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(prompt)
        return reply


def final(text: str, thought: str = "done") -> str:
    """JSON for a final-answer decision."""
    return json.dumps({"thought": thought, "final_answer": text})


def action(tool_name: str, thought: str = "next step", **parameters: Any) -> str:
    """JSON for an action decision."""
    return json.dumps(
        {"thought": thought, "action": {"tool_name": tool_name, "parameters": parameters}}
    )


@pytest.fixture
def calls() -> List[tuple]:
    """Arguments every test tool was invoked with, in order."""
    return []


@pytest.fixture
def registry(calls: List[tuple]) -> ToolRegistry:
    """Registry with a general, a failing, a communication and a confirmation tool."""
    reg = ToolRegistry()

    def add(a: int, b: int) -> int:
        calls.append(("add", a, b))
        return a + b

    def scan_directory(path: str, include_subdirs: bool, max_depth: int) -> str:
        calls.append(("scan_directory", path, include_subdirs, max_depth))
        return f"Scanned {path}: 42 files"

    def explode() -> str:
        calls.append(("explode",))
        raise OSError("disk on fire")

    def notify_user(message: str) -> str:
        calls.append(("notify_user", message))
        return f"📢 {message}"

    def confirm(question: str) -> str:
        calls.append(("confirm", question))
        return f"❓ {question}"

    reg.register(
        ToolDefinition(
            name="add",
            description="Add two integers",
            parameters=(
                Parameter(name="a", type=ParameterType.INT),
                Parameter(name="b", type=ParameterType.INT),
            ),
        ),
        add,
    )
    reg.register(
        ToolDefinition(
            name="scan_directory",
            description="Scan a directory",
            parameters=(
                Parameter(name="path"),
                Parameter(
                    name="include_subdirs", type=ParameterType.BOOL, required=False, default=True
                ),
                Parameter(name="max_depth", type=ParameterType.INT, required=False, default=0),
            ),
        ),
        scan_directory,
    )
    reg.register(ToolDefinition(name="explode", description="Always fails"), explode)
    reg.register(
        ToolDefinition(
            name="notify_user",
            description="Tell the user something",
            parameters=(Parameter(name="message"),),
            category=ToolCategory.COMMUNICATION,
        ),
        notify_user,
    )
    reg.register(
        ToolDefinition(
            name="confirm",
            description="Ask the user",
            parameters=(Parameter(name="question"),),
            category=ToolCategory.CONFIRMATION,
        ),
        confirm,
    )
    return reg


@pytest.fixture
def notifications() -> List[str]:
    return []


@pytest.fixture
def make_engine(registry: ToolRegistry, notifications: List[str]):
    """Factory building an engine around a scripted client; engines are closed on teardown."""
    engines: List[AgentEngine] = []

    def _make(*replies: Reply, **kwargs: Any) -> AgentEngine:
        kwargs.setdefault("notify", notifications.append)
        engine = AgentEngine(registry, ScriptedModelClient(replies), **kwargs)
        engines.append(engine)
        return engine

    yield _make
    for engine in engines:
        engine.close()


@pytest.fixture
def session() -> Session:
    return Session()
