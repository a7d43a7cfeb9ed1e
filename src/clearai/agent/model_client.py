"""
Model client interface for ClearAI.

This module is the only place that *directly* calls an LLM.  The agent loop only sees
``complete(prompt, timeout) -> text``; it does not know which provider answers.

We support three back-ends out of the box:

1. **OpenAI** (and any OpenAI-compatible endpoint via ``OPENAI_BASE_URL``).
2. **Anthropic** via its Messages API.
3. **Hugging Face Text-Generation-Inference (TGI)** for self-hosted models.

Additional providers can be added by subclassing :class:`BaseModelClient` and registering via
:func:`register_model_client`.
"""

import logging
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Callable,
    Type,
)

import httpx

from clearai.config import (
    Settings,
    settings as default_settings,
)
from clearai.core.errors import ModelClientError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------
_CLIENT_REGISTRY: dict[str, Type["BaseModelClient"]] = {}


def register_model_client(name: str) -> Callable:
    """Decorator to register a model client class under *name*."""

    def wrapper(cls: Type["BaseModelClient"]) -> Type["BaseModelClient"]:
        _CLIENT_REGISTRY[name] = cls
        return cls

    return wrapper


def load_model_client(
    name: str | None = None, settings: Settings | None = None
) -> "BaseModelClient":
    """
    Factory that returns an instantiated model client.

    Fallback order:
    1. *name* arg
    2. ``settings.MODEL_PROVIDER`` env/.env option
    """
    settings = settings or default_settings
    target = name or settings.MODEL_PROVIDER
    cls = _CLIENT_REGISTRY.get(target.lower())
    if cls is None:
        raise ValueError(f"Model provider '{target}' is not registered.")
    return cls(settings)


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------
class BaseModelClient(ABC):
    """Abstract client that turns a prompt into raw model text."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or default_settings

    @abstractmethod
    def complete(self, prompt: str, timeout: float) -> str:
        """
        Send *prompt* and return the raw response text.

        Raises
        ------
        ModelClientError
            If the provider cannot be reached or returns no usable text.
        """


# ---------------------------------------------------------------------------
# Concrete clients
# ---------------------------------------------------------------------------
@register_model_client("tgi")
class TGIModelClient(BaseModelClient):
    """TGI-based client over httpx."""

    def complete(self, prompt: str, timeout: float) -> str:
        payload = {
            "inputs": prompt,
            "parameters": {
                "max_new_tokens": self.settings.MODEL_MAX_TOKENS,
                "temperature": self.settings.MODEL_TEMPERATURE,
                "stop": ["</s>"],
            },
        }
        try:
            with httpx.Client(timeout=timeout) as client:
                resp = client.post(self.settings.TGI_ENDPOINT, json=payload)
                resp.raise_for_status()
                content = resp.json()["generated_text"]
        except httpx.HTTPError as e:
            logger.error("TGI request error: %s", str(e))
            raise ModelClientError(f"Error calling TGI endpoint: {e}") from e
        except (KeyError, ValueError) as e:
            raise ModelClientError(f"Unexpected TGI response: {e}") from e

        logger.debug("TGI response: %s", content)
        return content


@register_model_client("openai")
class OpenAIModelClient(BaseModelClient):
    """OpenAI chat-completions client (also used for OpenAI-compatible providers)."""

    def complete(self, prompt: str, timeout: float) -> str:
        import openai  # pylint: disable=import-outside-toplevel

        client = openai.OpenAI(
            api_key=self.settings.OPENAI_API_KEY,
            base_url=self.settings.OPENAI_BASE_URL,
            timeout=timeout,
            max_retries=0,
        )
        try:
            resp = client.chat.completions.create(
                model=self.settings.OPENAI_MODEL,
                messages=[{"role": "user", "content": prompt}],
                temperature=self.settings.MODEL_TEMPERATURE,
                max_tokens=self.settings.MODEL_MAX_TOKENS,
            )
        except openai.OpenAIError as e:
            logger.error("OpenAI request error: %s", str(e))
            raise ModelClientError(f"Error calling OpenAI: {e}") from e

        content = resp.choices[0].message.content if resp.choices else None
        if not content:
            raise ModelClientError("Empty response from OpenAI")
        logger.debug("OpenAI response: %s", content)
        return content


@register_model_client("anthropic")
class AnthropicModelClient(BaseModelClient):
    """Anthropic Claude client."""

    def complete(self, prompt: str, timeout: float) -> str:
        import anthropic  # pylint: disable=import-outside-toplevel

        client = anthropic.Anthropic(
            api_key=self.settings.ANTHROPIC_API_KEY, timeout=timeout, max_retries=0
        )
        try:
            response = client.messages.create(
                model=self.settings.ANTHROPIC_MODEL,
                max_tokens=self.settings.MODEL_MAX_TOKENS,
                messages=[{"role": "user", "content": prompt}],
                temperature=self.settings.MODEL_TEMPERATURE,
            )
        except anthropic.AnthropicError as e:
            logger.error("Anthropic request error: %s", str(e))
            raise ModelClientError(f"Error calling Anthropic: {e}") from e

        # Only text blocks carry the decision
        content = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )
        if not content:
            raise ModelClientError("Empty response from Anthropic")
        logger.debug("Anthropic response: %s", content)
        return content
