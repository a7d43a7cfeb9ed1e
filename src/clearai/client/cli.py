"""CLI client for the ClearAI API."""

from __future__ import annotations

import logging
import time
from typing import (
    Any,
    Dict,
    Optional,
    Tuple,
    cast,
)

import httpx

from clearai.common import (
    AnsiColors,
    colored_print,
)
from clearai.config import settings

logger = logging.getLogger(__name__)

LEAVE_COMMANDS = {"exit", "quit", "bye", "goodbye"}
RESET_COMMAND = "/reset"
HISTORY_COMMAND = "/history"


# ---------------------------------------------------------------------------
# CLI Client
# ---------------------------------------------------------------------------
def get_user_message() -> Tuple[str, bool]:
    """
    Get a message from the user via standard input.

    Returns:
        Tuple of (user_input, success_flag)
        The success_flag is False if input couldn't be read (e.g., Ctrl+C)
    """
    try:
        user_input = input().strip()
        return user_input, True
    except (EOFError, KeyboardInterrupt):
        return "", False


def call_api(
    endpoint: str,
    data: Optional[Dict[str, Any]] = None,
    method: str = "POST",
    max_retries: int = 5,
    timeout: Optional[float] = None,
) -> Dict[str, Any]:
    """Send a request to the API and return the JSON response, retrying while it starts up."""
    api_url = f"http://localhost:{settings.API_PORT}{endpoint}"
    # A turn may make several model calls
    timeout = timeout or settings.MODEL_TIMEOUT * 2 + 30.0

    for attempt in range(max_retries):
        try:
            with httpx.Client(timeout=timeout) as client:
                response = client.request(method, api_url, json=data)
                response.raise_for_status()
                return cast(Dict[str, Any], response.json())
        except httpx.ConnectError as e:
            if attempt < max_retries - 1:
                retry_delay = 0.5 * (2**attempt)  # exponential backoff: 0.5s, 1s, 2s, 4s...
                logger.info(
                    "API not ready yet, retrying in %.1f seconds (attempt %d/%d)...",
                    retry_delay,
                    attempt + 1,
                    max_retries,
                )
                time.sleep(retry_delay)
                continue
            logger.error("API connection error: %s", str(e))
            error_msg = f"Error connecting to API: {str(e)}"
        except httpx.HTTPStatusError as e:
            logger.error("API request error: %s", str(e))
            error_msg = f"API error: {_error_detail(e.response)}"
        except httpx.HTTPError as e:
            logger.error("API request error: %s", str(e))
            error_msg = f"Error talking to API: {str(e)}"
        colored_print(error_msg, AnsiColors.RED)
        return {"reply": error_msg, "result": "failure"}

    # Unreachable unless max_retries <= 0
    error_msg = f"Failed to connect to API after {max_retries} attempts"
    colored_print(error_msg, AnsiColors.RED)
    return {"reply": error_msg, "result": "failure"}


def _error_detail(response: httpx.Response) -> str:
    try:
        error_data = response.json()
    except ValueError:
        return response.text or str(response.status_code)
    if isinstance(error_data, dict) and "detail" in error_data:
        return str(error_data["detail"])
    return str(error_data)


def show_response(response: Dict[str, Any]) -> None:
    """Print the tool calls and the reply of one agent turn."""
    for call in response.get("tool_calls") or []:
        name = call.get("tool_name", "?")
        if call.get("success", True):
            colored_print(f"[{name}] {call.get('result', '')}", AnsiColors.GREEN)
        else:
            colored_print(f"[{name}] {call.get('result', '')}", AnsiColors.RED)

    reply = response.get("reply", "No response from API")
    result = response.get("result")
    if result == "suspend":
        colored_print(reply, AnsiColors.MAGENTA)
        colored_print("(answer the question above to continue)", AnsiColors.CYAN)
    elif result == "failure":
        colored_print(reply, AnsiColors.RED)
    else:
        colored_print(reply, AnsiColors.YELLOW)


def show_history(session_id: str) -> None:
    """Print the readable conversation log of the session."""
    response = call_api(f"/sessions/{session_id}/history", method="GET")
    for line in response.get("history", []):
        colored_print(line, AnsiColors.CYAN)


def run_cli() -> None:
    """Run the CLI client that communicates with the API."""
    session_response = call_api("/sessions", {})
    session_id = session_response.get("session_id")

    if not session_id:
        colored_print("⚠️ Failed to create a session", AnsiColors.RED)
        return

    colored_print(
        "\n🧹 ClearAI shell - type 'exit' or 'quit' (or Ctrl+C) to leave, "
        f"'{RESET_COMMAND}' to start over, '{HISTORY_COMMAND}' to review the conversation",
        AnsiColors.GREEN,
    )
    while True:
        colored_print("\n🧑 You: ", AnsiColors.BLUE, end="")
        user_msg, ok = get_user_message()
        if not ok:
            break
        if not user_msg:
            continue
        if user_msg == RESET_COMMAND:
            call_api(f"/sessions/{session_id}/reset", {})
            colored_print("Session reset.", AnsiColors.CYAN)
            continue
        if user_msg == HISTORY_COMMAND:
            show_history(session_id)
            continue

        response = call_api("/agent", {"message": user_msg, "session_id": session_id})
        show_response(response)

        if user_msg.lower() in LEAVE_COMMANDS:
            break


if __name__ == "__main__":
    run_cli()
