"""
One entry point for every model call made by the assistant and the blocklist
translator.

Providers:
  mock      -- echo back the prompt (tests / offline dev; callers that need
               real output use their own deterministic path under mock)
  openai    -- OpenAI Chat Completions (gpt-4o-mini default)
  anthropic -- Anthropic Messages (claude-3-haiku default)

Keys and the default provider come from Settings.
"""
from __future__ import annotations

import re
from typing import Any

from flipdash.core.config import get_settings
from flipdash.core.logging import get_logger

logger = get_logger(__name__)


_OPENAI_DEFAULT_MODEL = "gpt-4o-mini"
_ANTHROPIC_DEFAULT_MODEL = "claude-3-haiku-20240307"
_DEFAULT_MAX_TOKENS = 1024
_SYSTEM_PROMPT = "You are a precise assistant for Old School RuneScape flipping analytics."

_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*|\s*```$")


class LLMError(RuntimeError):
    """Provider missing, misconfigured or failed."""


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown code fence (```sql / ```json) from a reply."""
    return _FENCE_RE.sub("", text.strip()).strip()


def _call_mock(prompt: str, max_tokens: int) -> str:
    logger.info("mock provider: echoing %d prompt chars", min(len(prompt), 200))
    return f"[MOCK] {prompt[:200]}"


def _call_openai(prompt: str, max_tokens: int) -> str:
    """Chat Completions, temperature 0."""
    settings = get_settings()
    api_key = settings.openai_api_key
    if not api_key:
        raise LLMError(
            "openai_api_key is not set.  "
            "Set OPENAI_API_KEY in your .env file or environment."
        )

    import openai

    client = openai.OpenAI(api_key=api_key)
    response = client.chat.completions.create(
        model=_OPENAI_DEFAULT_MODEL,
        messages=[
            {"role": "system", "content": _SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ],
        temperature=0.0,
        max_tokens=max_tokens,
    )
    text = response.choices[0].message.content or ""
    logger.info("OpenAI response (%d chars)", len(text))
    return text


def _call_anthropic(prompt: str, max_tokens: int) -> str:
    settings = get_settings()
    api_key = settings.anthropic_api_key
    if not api_key:
        raise LLMError(
            "anthropic_api_key is not set.  "
            "Set ANTHROPIC_API_KEY in your .env file or environment."
        )

    import anthropic

    client = anthropic.Anthropic(api_key=api_key)
    response = client.messages.create(
        model=_ANTHROPIC_DEFAULT_MODEL,
        max_tokens=max_tokens,
        system=_SYSTEM_PROMPT,
        messages=[{"role": "user", "content": prompt}],
    )
    text = response.content[0].text if response.content else ""
    logger.info("Anthropic response (%d chars)", len(text))
    return text


_PROVIDERS: dict[str, Any] = {
    "mock": _call_mock,
    "openai": _call_openai,
    "anthropic": _call_anthropic,
}


def resolve_provider(provider: str | None = None) -> str:
    """Settings provider unless overridden; raises ``LLMError`` for unknown names."""
    name = (provider or get_settings().llm_provider).lower()
    if name not in _PROVIDERS:
        raise LLMError(
            f"LLM provider '{name}' is not supported.  "
            f"Choose from: {', '.join(_PROVIDERS)}"
        )
    return name


def call_llm(prompt: str, provider: str | None = None, max_tokens: int = _DEFAULT_MAX_TOKENS) -> str:
    """Send *prompt* to the configured (or overridden) LLM provider.

    Parameters
    ----------
    prompt : str
        The full prompt text.
    provider : str, optional
        mock, openai or anthropic; defaults to ``settings.llm_provider``.
    max_tokens : int
        Reply budget.
    """
    name = resolve_provider(provider)
    logger.info("Calling LLM provider=%s  prompt_len=%d", name, len(prompt))
    return _PROVIDERS[name](prompt, max_tokens)
