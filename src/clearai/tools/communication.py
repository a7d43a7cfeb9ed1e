"""
Communication tools: the model's way of talking to the user mid-task.

Results of the ``communication`` category are forwarded to the user as soon as they run.
``request_user_confirmation`` is the only ``confirmation`` tool: it returns the question and the
agent loop suspends until the user replies.
"""

from typing import Optional

from clearai.core.schema import (
    Parameter,
    ParameterType,
    ToolCategory,
    ToolDefinition,
)
from clearai.tools import ToolRegistry


def send_intermediate_response(message: str) -> str:
    """Non-final status update for the user."""
    return f"📢 {message}"


def request_user_confirmation(question: str, options: Optional[str] = None) -> str:
    """Build the question shown to the user; *options* is a comma separated list."""
    lines = [f"❓ Please confirm: {question}"]
    if options and options.strip():
        lines.append("")
        lines.append("Options:")
        for i, option in enumerate(o.strip() for o in options.split(",") if o.strip()):
            lines.append(f"{i + 1}. {option}")
    return "\n".join(lines)


def report_progress(
    current_step: str, total_steps: str = "unknown", details: Optional[str] = None
) -> str:
    """Progress line, with a bar when both steps are numeric."""
    try:
        current = int(current_step)
        total = int(total_steps)
    except ValueError:
        current = total = 0

    if total > 0:
        percentage = min(100, max(0, current * 100 // total))
        header = f"⏳ Progress: [{'=' * (percentage // 10):<10}] {percentage}% ({current}/{total})"
    elif total_steps != "unknown":
        header = f"⏳ Step {current_step} / {total_steps}"
    else:
        header = f"⏳ Current step: {current_step}"

    if details and details.strip():
        return f"{header}\n📝 {details}"
    return header


def highlight_finding(
    finding: str, impact: Optional[str] = None, suggestion: Optional[str] = None
) -> str:
    """Emphasise something the user should look at."""
    lines = ["⚠️ Important finding:", f"🔍 {finding}"]
    if impact and impact.strip():
        lines.append(f"💡 Impact: {impact}")
    if suggestion and suggestion.strip():
        lines.append(f"💭 Suggestion: {suggestion}")
    return "\n".join(lines)


def register_tools(registry: ToolRegistry) -> None:
    """Register the communication tools."""
    registry.register(
        ToolDefinition(
            name="send_intermediate_response",
            description=(
                "Send a non-final status update to the user. Use it before and after expensive "
                "operations so the user knows what is happening and what comes next."
            ),
            parameters=(Parameter(name="message", description="Message for the user"),),
            category=ToolCategory.COMMUNICATION,
        ),
        send_intermediate_response,
    )
    registry.register(
        ToolDefinition(
            name="request_user_confirmation",
            description=(
                "Ask the user to confirm or choose before continuing. Execution pauses until "
                "the user replies."
            ),
            parameters=(
                Parameter(name="question", description="Question for the user"),
                Parameter(
                    name="options",
                    description="Comma separated choices, e.g. 'delete,keep,skip'",
                    required=False,
                ),
            ),
            category=ToolCategory.CONFIRMATION,
        ),
        request_user_confirmation,
    )
    registry.register(
        ToolDefinition(
            name="report_progress",
            description="Report the current progress of a multi-step task to the user.",
            parameters=(
                Parameter(name="current_step", description="Current step (number or label)"),
                Parameter(
                    name="total_steps",
                    description="Total number of steps",
                    required=False,
                    default="unknown",
                ),
                Parameter(name="details", description="Details of the step", required=False),
            ),
            category=ToolCategory.COMMUNICATION,
        ),
        report_progress,
    )
    registry.register(
        ToolDefinition(
            name="highlight_finding",
            description="Highlight an important finding the user should pay attention to.",
            parameters=(
                Parameter(name="finding", type=ParameterType.STRING, description="The finding"),
                Parameter(name="impact", description="How much it matters", required=False),
                Parameter(name="suggestion", description="Suggested follow-up", required=False),
            ),
            category=ToolCategory.COMMUNICATION,
        ),
        highlight_finding,
    )
