"""Chat-completion client for the language-model provider.

The client is constructed explicitly by the application and handed to the
code that needs it, which keeps retrieval and prompt assembly testable
without network access.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from groq import Groq

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "llama-3.1-8b-instant"
DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful study assistant. Keep answers clear and avoid raw TeX unless requested."
)


class ChatClient(Protocol):
    model: str

    def complete(
        self,
        prompt: str,
        *,
        system: str = DEFAULT_SYSTEM_PROMPT,
        max_tokens: int = 900,
        temperature: float = 0.35,
    ) -> str: ...


class LLMCallError(RuntimeError):
    """The provider rejected or failed a completion request."""


class GroqChatClient:
    """Thin wrapper around ``groq.Groq`` chat completions."""

    def __init__(self, api_key: str, model: str = DEFAULT_MODEL, client: Optional[Groq] = None) -> None:
        self.model = model
        self._client = client or Groq(api_key=api_key)

    def complete(
        self,
        prompt: str,
        *,
        system: str = DEFAULT_SYSTEM_PROMPT,
        max_tokens: int = 900,
        temperature: float = 0.35,
    ) -> str:
        try:
            resp = self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": prompt},
                ],
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except Exception as exc:
            logger.exception("Groq call failed")
            raise LLMCallError(f"Groq error: {exc}") from exc
        content = resp.choices[0].message.content if resp.choices else None
        return content or ""
