"""LiteLLM client wrapper returning results together with token usage.

All LLM + embedding calls route through this module. Calls are made with
``num_retries=0``: a failure is terminal for the request and surfaces
immediately. API key presence is validated before any call is attempted.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any

import litellm

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True
litellm.set_verbose = False  # type: ignore[assignment]


# ------------------------------------------------------------------
# Provider → env var mapping for API key validation
# ------------------------------------------------------------------

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "groq": "GROQ_API_KEY",
    "ollama": None,  # Local, no key required
    "ollama_chat": None,
}


class MissingApiKeyError(EnvironmentError):
    """The API key env var for a model's provider is not set."""

    def __init__(self, provider: str, env_var: str) -> None:
        super().__init__(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )
        self.provider = provider
        self.env_var = env_var


@dataclass
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class Completion:
    text: str
    usage: TokenUsage = field(default_factory=TokenUsage)


@dataclass
class EmbeddingResponse:
    vector: list[float]
    usage: TokenUsage = field(default_factory=TokenUsage)


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Args:
        model: LiteLLM model string in 'provider/model' format.

    Raises:
        MissingApiKeyError: If the required key is missing from environment.
    """
    provider = model.split("/")[0].lower() if "/" in model else "openai"
    env_var = _PROVIDER_ENV.get(provider, f"{provider.upper()}_API_KEY")

    if env_var is None:
        return

    if not os.getenv(env_var):
        raise MissingApiKeyError(provider, env_var)


def complete(
    model: str,
    messages: list[dict],
    max_tokens: int | None = None,
    temperature: float = 0.0,
) -> Completion:
    """Call litellm.completion() once. Returns the text and its token usage.

    Raises:
        litellm.exceptions.APIError: (and other litellm errors) on failure.
    """
    kwargs: dict[str, Any] = {
        "model": model,
        "messages": messages,
        "temperature": temperature,
        "num_retries": 0,
    }
    if max_tokens is not None:
        kwargs["max_tokens"] = max_tokens
    response = litellm.completion(**kwargs)
    return Completion(
        text=response.choices[0].message.content or "",
        usage=_usage_from(response),
    )


def embed(model: str, text: str) -> EmbeddingResponse:
    """Call litellm.embedding() once. Returns the vector and its token usage."""
    response = litellm.embedding(model=model, input=[text], num_retries=0)
    return EmbeddingResponse(
        vector=list(response.data[0]["embedding"]),
        usage=_usage_from(response),
    )


def _usage_from(response: Any) -> TokenUsage:
    """Read prompt/completion/total token counts from a litellm response."""
    usage = getattr(response, "usage", None)
    if usage is None:
        return TokenUsage()

    def _get(name: str) -> int:
        value = usage.get(name) if isinstance(usage, dict) else getattr(usage, name, None)
        return int(value or 0)

    prompt = _get("prompt_tokens")
    completion = _get("completion_tokens")
    total = _get("total_tokens") or prompt + completion
    return TokenUsage(prompt_tokens=prompt, completion_tokens=completion, total_tokens=total)
