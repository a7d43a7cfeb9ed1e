"""
Basic sanity tests for the tool registry and the tool executor.

Run with:
$ pytest -q
"""

import pytest

from clearai.agent.tool_executor import execute_action
from clearai.core.errors import (
    DuplicateToolError,
    MissingParameterError,
    ParameterTypeError,
    ToolExecutionError,
    UnknownToolError,
)
from clearai.core.schema import (
    Action,
    Parameter,
    ParameterType,
    ToolDefinition,
)
from clearai.tools import (
    NO_OUTPUT_RESULT,
    ToolRegistry,
    build_default_registry,
)


def test_invoke_success(registry: ToolRegistry) -> None:
    """Registry should return the handler's value rendered as text."""

    assert registry.invoke("add", {"a": 2, "b": 3}) == "5"


def test_invoke_unknown_tool(registry: ToolRegistry, calls: list) -> None:
    """Registry should raise *UnknownToolError* and run nothing for an unknown tool."""

    try:
        registry.invoke("not_a_tool", {})
    except UnknownToolError as exc:
        assert "not_a_tool" in str(exc)
        assert exc.tool_name == "not_a_tool"
    else:  # pragma: no cover
        raise AssertionError("UnknownToolError was not raised")
    assert calls == []


def test_invoke_missing_required(registry: ToolRegistry, calls: list) -> None:
    """A missing required parameter is rejected before the handler runs."""

    with pytest.raises(MissingParameterError) as info:
        registry.invoke("add", {"a": 2})  # missing 'b'
    assert info.value.parameter == "b"
    assert calls == []


def test_null_counts_as_absent(registry: ToolRegistry, calls: list) -> None:
    with pytest.raises(MissingParameterError):
        registry.invoke("add", {"a": 2, "b": None})
    assert calls == []


def test_string_numbers_are_coerced(registry: ToolRegistry, calls: list) -> None:
    assert registry.invoke("add", {"a": "2", "b": 3.0}) == "5"
    assert calls == [("add", 2, 3)]


@pytest.mark.parametrize("bad", ["two", 2.5, True, [1]])
def test_uncoercible_value_is_rejected(registry: ToolRegistry, calls: list, bad) -> None:
    with pytest.raises(ParameterTypeError) as info:
        registry.invoke("add", {"a": bad, "b": 1})
    assert info.value.parameter == "a"
    assert info.value.expected == "int"
    assert calls == []


def test_defaults_fill_optional_parameters(registry: ToolRegistry, calls: list) -> None:
    """Optional parameters take their declared default, in declared order."""

    registry.invoke("scan_directory", {"path": "/tmp"})
    assert calls == [("scan_directory", "/tmp", True, 0)]


def test_boolean_strings_and_extra_keys(registry: ToolRegistry, calls: list) -> None:
    registry.invoke(
        "scan_directory",
        {"path": "/data", "include_subdirs": "false", "max_depth": "2", "colour": "blue"},
    )
    assert calls == [("scan_directory", "/data", False, 2)]


def test_handler_error_is_wrapped(registry: ToolRegistry) -> None:
    with pytest.raises(ToolExecutionError) as info:
        registry.invoke("explode")
    assert "disk on fire" in str(info.value)
    assert isinstance(info.value.__cause__, OSError)


def test_none_result_becomes_placeholder() -> None:
    reg = ToolRegistry()
    reg.register(ToolDefinition(name="noop", description="Does nothing"), lambda: None)
    assert reg.invoke("noop") == NO_OUTPUT_RESULT


def test_duplicate_registration_is_rejected(registry: ToolRegistry) -> None:
    with pytest.raises(DuplicateToolError):
        registry.register(ToolDefinition(name="add", description="again"), lambda: "x")
    assert len(registry) == 5


def test_duplicate_parameter_names_are_rejected() -> None:
    with pytest.raises(ValueError):
        ToolDefinition(
            name="bad",
            description="Two parameters with one name",
            parameters=(Parameter(name="x"), Parameter(name="x", type=ParameterType.INT)),
        )


def test_categories(registry: ToolRegistry) -> None:
    assert registry.requires_confirmation("confirm")
    assert not registry.requires_confirmation("notify_user")
    assert registry.is_communication("notify_user")
    assert not registry.is_communication("add")
    assert not registry.requires_confirmation("not_a_tool")


def test_describe_keeps_registration_order(registry: ToolRegistry) -> None:
    assert [d.name for d in registry.describe()] == registry.names()
    assert registry.names()[0] == "add"
    assert "confirm" in registry
    assert registry.get("add").parameters[0].name == "a"
    with pytest.raises(UnknownToolError):
        registry.get("missing")


# ---------------------------------------------------------------------------
# execute_action
# ---------------------------------------------------------------------------
def test_execute_action_success(registry: ToolRegistry) -> None:
    record = execute_action(registry, Action(tool_name="add", parameters={"a": 1, "b": 1}))
    assert record.success
    assert record.result == "2"
    assert record.parameters == {"a": 1, "b": 1}


@pytest.mark.parametrize(
    "tool_name, parameters, error",
    [
        ("not_a_tool", {}, "UnknownToolError"),
        ("add", {"a": 1}, "MissingParameterError"),
        ("add", {"a": "x", "b": 1}, "ParameterTypeError"),
        ("explode", {}, "ToolExecutionError"),
    ],
)
def test_execute_action_failures_become_records(
    registry: ToolRegistry, tool_name: str, parameters: dict, error: str
) -> None:
    """Executor never raises for tool errors; it records them as failed results."""

    record = execute_action(registry, Action(tool_name=tool_name, parameters=parameters))
    assert not record.success
    assert record.result.startswith(f"ERROR [{error}]")


def test_default_registry_contains_builtin_tools() -> None:
    reg = build_default_registry()
    for name in (
        "send_intermediate_response",
        "request_user_confirmation",
        "report_progress",
        "highlight_finding",
        "scan_directory",
        "list_directory",
        "analyze_file",
        "search_files",
        "get_disk_usage",
        "analyze_junk_locations",
    ):
        assert name in reg
    assert reg.requires_confirmation("request_user_confirmation")
    assert [n for n in reg.names() if reg.requires_confirmation(n)] == [
        "request_user_confirmation"
    ]
