"""Tests for prompt assembly and length bounding."""

from clearai.agent.prompt_builder import (
    CONTEXT_HEADER,
    DECISION_SCHEMA,
    QUOTE_TRUNCATION_MARKER,
    TRUNCATION_MARKER,
    PromptBuilder,
    render_tool_catalog,
)
from clearai.agent.state import ConversationState
from clearai.core.schema import (
    Action,
    ToolCallRecord,
)
from clearai.tools import ToolRegistry


def _state_with_long_history(turns: int = 200) -> ConversationState:
    state = ConversationState()
    for i in range(turns):
        state.add_user_message(f"message number {i} " + "x" * 40)
        state.add_decision(Action(tool_name="add", parameters={"a": i, "b": i}))
        state.add_tool_call(ToolCallRecord(tool_name="add", result=str(2 * i)))
    state.add_user_message("please clean my Downloads folder")
    return state


def test_catalog_lists_every_tool_with_parameters(registry: ToolRegistry) -> None:
    catalog = render_tool_catalog(registry.describe())
    for name in registry.names():
        assert f"- {name}: " in catalog
    assert "  - a (int, required)" in catalog
    assert "  - include_subdirs (bool, optional, default=true)" in catalog
    assert "  - max_depth (int, optional, default=0)" in catalog


def test_empty_catalog() -> None:
    assert render_tool_catalog([]) == "(no tools available)"


def test_render_sections_in_order(registry: ToolRegistry) -> None:
    state = ConversationState()
    state.add_user_message("how much space can I free?")
    state.next_loop()

    prompt = PromptBuilder().render(state, registry.describe())

    assert prompt.index('"final_answer"') < prompt.index("- add: ") < prompt.index(CONTEXT_HEADER)
    assert "Current loop: 1" in prompt
    assert "No tools called yet." in prompt
    assert prompt.rstrip().endswith("=== DECIDE NOW ===")
    assert "how much space can I free?" in prompt


def test_tool_results_are_summarised() -> None:
    state = ConversationState()
    state.add_user_message("scan")
    state.add_tool_call(ToolCallRecord(tool_name="scan_directory", result="y" * 500))
    state.add_tool_call(
        ToolCallRecord(tool_name="explode", result="ERROR [ToolExecutionError]", success=False)
    )

    context = PromptBuilder(tool_result_chars=200, history_window=0).build_context(state)

    assert f"- scan_directory [ok]: {'y' * 200}..." in context
    assert "y" * 201 not in context
    assert "- explode [failed]: ERROR [ToolExecutionError]" in context


def test_only_recent_tool_results_are_included() -> None:
    state = ConversationState()
    state.add_user_message("go")
    for i in range(8):
        state.add_tool_call(ToolCallRecord(tool_name=f"tool_{i}", result="ok"))

    context = PromptBuilder(recent_tool_results=5, history_window=0).build_context(state)

    assert "- tool_2 [ok]" not in context
    assert "- tool_3 [ok]" in context
    assert "- tool_7 [ok]" in context


def test_answered_question_is_mentioned() -> None:
    state = ConversationState()
    state.suspend("❓ Delete 120 log files?")
    state.add_user_message("yes")
    state.begin_turn()
    state.resume()

    context = PromptBuilder().build_context(state)

    assert "(The user is answering your question: ❓ Delete 120 log files?)" in context
    assert "User (reply to confirmation): yes" in context


def test_prompt_never_exceeds_limit_and_keeps_recent_context(registry: ToolRegistry) -> None:
    tools = registry.describe()
    builder = PromptBuilder()
    system_prompt = builder.build_system_prompt(tools)
    limit = len(system_prompt) + 600
    builder = PromptBuilder(max_length=limit, history_window=400, recent_tool_results=50)
    state = _state_with_long_history()

    prompt = builder.render(state, tools)

    assert len(prompt) <= limit
    assert prompt.startswith(system_prompt)
    assert TRUNCATION_MARKER in prompt
    assert "please clean my Downloads folder" in prompt
    assert "=== DECIDE NOW ===" in prompt
    assert "message number 0 " not in prompt


def test_fixed_part_over_limit_is_hard_truncated(registry: ToolRegistry) -> None:
    state = _state_with_long_history(3)
    prompt = PromptBuilder(max_length=100).render(state, registry.describe())
    assert len(prompt) == 100


def test_correction_prompt_quotes_response_and_respects_limit(registry: ToolRegistry) -> None:
    tools = registry.describe()
    state = _state_with_long_history()
    limit = len(PromptBuilder().build_system_prompt(tools)) + 2000
    builder = PromptBuilder(max_length=limit, history_window=400)

    prompt = builder.render_correction(state, tools, "not json at all " * 200, "no JSON object")

    assert len(prompt) <= limit
    assert "=== FORMAT ERROR ===" in prompt
    assert "no JSON object" in prompt
    assert "...[truncated]" in prompt
    assert prompt.index("please clean my Downloads folder") < prompt.index("=== FORMAT ERROR ===")


def test_correction_shrinks_the_quote_to_keep_instructions(registry: ToolRegistry) -> None:
    tools = registry.describe()
    state = _state_with_long_history(3)
    reason = "no JSON object"
    system_prompt = PromptBuilder().build_system_prompt(tools)
    frame = PromptBuilder.CORRECTION_PROMPT.format(
        reason=reason, response="", schema=DECISION_SCHEMA
    )
    # room for a 300 character quote, far less than the default of 1000
    limit = len(system_prompt) + len(frame) + 300
    builder = PromptBuilder(max_length=limit)

    prompt = builder.render_correction(state, tools, "y" * 5000, reason)

    assert len(prompt) <= limit
    assert prompt.startswith(system_prompt)
    assert "=== FORMAT ERROR ===" in prompt
    assert "Respond again with exactly one JSON object" in prompt
    assert prompt.endswith(DECISION_SCHEMA + "\n")
    assert "y" * 200 in prompt
    assert "y" * 301 not in prompt
    assert QUOTE_TRUNCATION_MARKER in prompt
