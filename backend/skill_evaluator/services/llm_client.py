"""Async Groq chat-completion backend (singleton).

The gateway in ``structured_generation`` is the only caller; everything
here returns raw text and reports failures as ``GenerationUnavailable``.
"""

import logging

from groq import APIError, AsyncGroq

from skill_evaluator.config import settings
from skill_evaluator.core.exceptions import GenerationUnavailable

logger = logging.getLogger(__name__)


class GroqBackend:
    """Thin wrapper around ``AsyncGroq.chat.completions``."""

    def __init__(
        self,
        api_key: str | None = None,
        model_name: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.model_name = model_name or settings.GROQ_MODEL
        self._api_key = api_key if api_key is not None else settings.GROQ_API_KEY
        self._timeout = timeout or settings.GENERATION_TIMEOUT_SECONDS
        self._client: AsyncGroq | None = None

    def _get_client(self) -> AsyncGroq:
        if not self._api_key:
            raise GenerationUnavailable("GROQ_API_KEY is not configured")
        if self._client is None:
            # retries are a caller concern; the gateway bounds total time
            self._client = AsyncGroq(
                api_key=self._api_key, timeout=self._timeout, max_retries=0
            )
            logger.info("Initialised Groq backend with model: %s", self.model_name)
        return self._client

    async def complete(
        self,
        prompt: str,
        *,
        temperature: float = 0.7,
        max_tokens: int = 2000,
    ) -> str:
        client = self._get_client()
        try:
            response = await client.chat.completions.create(
                model=self.model_name,
                messages=[{"role": "user", "content": prompt}],
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except APIError as e:
            logger.warning("Groq completion failed: %s", e)
            raise GenerationUnavailable(f"Groq API error: {e}") from e

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None


# ── singleton accessor ────────────────────────────────────────────────────────

_instance: GroqBackend | None = None


def get_groq_backend() -> GroqBackend:
    global _instance
    if _instance is None:
        _instance = GroqBackend()
    return _instance
