"""
Prompt assembly for the agent loop.

Every iteration the model receives one text payload made of three parts, in order:

1. fixed instructions describing the decision protocol and the house rules;
2. the tool catalog, generated from the registry's definitions;
3. a context block with the loop index, a session summary, recent history, recent tool results
   and the latest user message.

The payload never exceeds ``max_length``.  When it would, only the context block is shortened and
its oldest lines go first.
"""

from typing import (
    ClassVar,
    List,
    Sequence,
)

from clearai.agent.state import ConversationState
from clearai.core.schema import (
    Parameter,
    ToolDefinition,
)

DEFAULT_MAX_PROMPT_LENGTH = 8000
TRUNCATION_MARKER = "...[earlier context truncated]\n"
QUOTE_TRUNCATION_MARKER = "...[truncated]"
CONTEXT_HEADER = "=== CONTEXT ==="

DECISION_SCHEMA = """\
{
  "thought": "why you are taking this step",
  "action": {
    "tool_name": "<tool name>",
    "parameters": {"<parameter>": "<value>"}
  }
}

or, when the task is complete:

{
  "thought": "why the task is complete",
  "final_answer": "<reply to the user>"
}"""


def _describe_parameter(param: Parameter) -> str:
    flag = "required" if param.required else "optional"
    if not param.required and param.default is not None:
        default = param.default
        if isinstance(default, bool):
            default = "true" if default else "false"
        flag += f", default={default}"
    text = f"  - {param.name} ({param.type.value}, {flag})"
    if param.description:
        text += f": {param.description}"
    return text


def _shorten_quote(text: str, limit: int) -> str:
    """Cut *text* to at most *limit* characters, marking the cut when there is room for it."""
    if len(text) <= limit:
        return text
    if limit <= len(QUOTE_TRUNCATION_MARKER):
        return text[: max(limit, 0)]
    return text[: limit - len(QUOTE_TRUNCATION_MARKER)] + QUOTE_TRUNCATION_MARKER


def render_tool_catalog(tools: Sequence[ToolDefinition]) -> str:
    """Render *tools* as a bullet list with parameter annotations."""
    if not tools:
        return "(no tools available)"
    blocks: List[str] = []
    for tool in tools:
        lines = [f"- {tool.name}: {tool.description}"]
        if tool.parameters:
            lines.append("  Parameters:")
            lines.extend(_describe_parameter(p) for p in tool.parameters)
        blocks.append("\n".join(lines))
    return "\n".join(blocks)


class PromptBuilder:
    """Renders the per-iteration prompt.  Holds configuration only; rendering is pure."""

    SYSTEM_PROMPT: ClassVar[
        str
    ] = """\
You are ClearAI, an assistant that helps users inspect and clean up their computer's storage.
You work in a loop: THINK about the request, ACT by calling one tool, OBSERVE its result, and
repeat until the task is done.

Respond with exactly one JSON object and nothing else, in one of these forms:

{schema}

House rules:
1. Call at most one tool per response.
2. Before and after expensive operations (large scans), use send_intermediate_response to tell
   the user what you found and what you will do next.
3. Scan and analyse before suggesting any cleanup; every action needs a clear purpose.
4. Ask with request_user_confirmation whenever the user must decide something.
5. Use final_answer only when the task is completely finished.
6. Never suggest deleting a whitelisted path; use check_whitelist when in doubt.
7. Keep a professional, friendly tone.

Available tools:
{tools}
"""

    CORRECTION_PROMPT: ClassVar[
        str
    ] = """
=== FORMAT ERROR ===
Your previous response could not be processed: {reason}

Previous response:
<<<
{response}
>>>

Respond again with exactly one JSON object and nothing else, using one of these forms:

{schema}
"""

    def __init__(
        self,
        max_length: int = DEFAULT_MAX_PROMPT_LENGTH,
        recent_tool_results: int = 5,
        tool_result_chars: int = 200,
        history_window: int = 15,
        quoted_response_chars: int = 1000,
    ) -> None:
        if max_length <= 0:
            raise ValueError("max_length must be positive")
        self.max_length = max_length
        self.recent_tool_results = recent_tool_results
        self.tool_result_chars = tool_result_chars
        self.history_window = history_window
        self.quoted_response_chars = quoted_response_chars

    # ------------------------------------------------------------------ #
    # Sections
    # ------------------------------------------------------------------ #
    def build_system_prompt(self, tools: Sequence[ToolDefinition]) -> str:
        """Fixed instructions plus the tool catalog."""
        return self.SYSTEM_PROMPT.format(schema=DECISION_SCHEMA, tools=render_tool_catalog(tools))

    def _summarise_result(self, result: str) -> str:
        flat = " ".join(result.split())
        if len(flat) > self.tool_result_chars:
            return flat[: self.tool_result_chars] + "..."
        return flat

    def build_context(self, state: ConversationState) -> str:
        """Context block, ordered oldest to newest so truncation can drop from the front."""
        history = state.recent_history(self.history_window)
        records = state.recent_tool_calls(self.recent_tool_results)

        parts = [
            CONTEXT_HEADER,
            f"Current loop: {state.loop_count}",
            state.summary(),
            "",
            "=== CONVERSATION ===",
            "\n".join(history) if history else "(empty)",
            "",
            "=== RECENT TOOL RESULTS ===",
        ]
        if records:
            for record in records:
                status = "ok" if record.success else "failed"
                parts.append(
                    f"- {record.tool_name} [{status}]: {self._summarise_result(record.result)}"
                )
        else:
            parts.append("No tools called yet.")

        parts += ["", "=== CURRENT REQUEST ==="]
        if state.answered_question:
            parts.append(f"(The user is answering your question: {state.answered_question})")
        parts += [state.latest_user_message, "", "=== DECIDE NOW ==="]
        return "\n".join(parts) + "\n"

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    def render(self, state: ConversationState, tools: Sequence[ToolDefinition]) -> str:
        """Full prompt for one iteration, at most ``max_length`` characters."""
        return self._fit(
            self.build_system_prompt(tools), self.build_context(state), self.max_length
        )

    def render_correction(
        self,
        state: ConversationState,
        tools: Sequence[ToolDefinition],
        raw_response: str,
        reason: str,
    ) -> str:
        """
        Prompt for the single corrective retry.

        It is the regular prompt followed by a block that quotes the offending response, the
        reason it was rejected and the exact schema.  The result respects ``max_length``: the
        context goes first, then the quoted response is shortened, and the instructions and
        schema are kept whole.
        """
        system_prompt = self.build_system_prompt(tools)
        frame = self.CORRECTION_PROMPT.format(reason=reason, response="", schema=DECISION_SCHEMA)
        room = self.max_length - len(system_prompt) - len(frame)
        quoted = _shorten_quote(raw_response, min(self.quoted_response_chars, room))
        correction = self.CORRECTION_PROMPT.format(
            reason=reason, response=quoted, schema=DECISION_SCHEMA
        )

        if len(correction) >= self.max_length:
            return correction[: self.max_length]
        budget = self.max_length - len(correction)
        prompt = self._fit(system_prompt, self.build_context(state), budget)
        return prompt + correction

    @staticmethod
    def _fit(system_prompt: str, context: str, limit: int) -> str:
        """Join the two sections, shortening the context from the front to stay within *limit*."""
        if len(system_prompt) + len(context) <= limit:
            return system_prompt + context

        budget = limit - len(system_prompt)
        if budget <= 0:
            # The fixed part alone is over the limit.
            return system_prompt[:limit]
        if budget <= len(TRUNCATION_MARKER):
            return system_prompt + context[-budget:]

        tail = context[len(context) - (budget - len(TRUNCATION_MARKER)) :]
        newline = tail.find("\n")
        if 0 <= newline < len(tail) - 1:
            tail = tail[newline + 1 :]
        return system_prompt + TRUNCATION_MARKER + tail
