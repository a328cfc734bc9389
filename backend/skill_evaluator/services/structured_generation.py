"""Structured generation gateway.

Wraps one call to the generative text backend and insists that the reply
decodes into the expected JSON shape:

  1. Send the prompt (bounded by a timeout); an empty reply is
     ``GenerationUnavailable``.
  2. Strict ``json.loads`` of the whole reply.
  3. Salvage: decode the first balanced ``[...]`` / ``{...}`` span that
     matches the expected top-level shape (prose, markdown fences and
     trailing chatter around the payload are tolerated).
  4. Anything else is ``GenerationMalformed``.

Callers decide whether a failure is fatal (question batches) or falls
back to a default payload (recommendations).
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Literal, Protocol

from skill_evaluator.config import settings
from skill_evaluator.core.exceptions import GenerationMalformed, GenerationUnavailable

logger = logging.getLogger(__name__)

Shape = Literal["object", "array"]

_OPENERS: dict[str, str] = {"array": "[", "object": "{"}
_PYTHON_TYPES: dict[str, type] = {"array": list, "object": dict}
_EXCERPT_CHARS = 200


class GenerationBackend(Protocol):
    async def complete(
        self, prompt: str, *, temperature: float = ..., max_tokens: int = ...
    ) -> str: ...


# ── Decoding ──────────────────────────────────────────────────────────────────


def _first_balanced_span(text: str, opener: str) -> str | None:
    """Return the first balanced span starting at *opener*, or None.

    Brackets inside JSON string literals are ignored, so ``"a ] b"`` does
    not close an array early.
    """
    start = text.find(opener)
    if start == -1:
        return None

    closer = "]" if opener == "[" else "}"
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in "[{":
            depth += 1
        elif ch in "]}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1] if ch == closer else None
    return None


def decode_structured(raw: str, shape: Shape) -> Any:
    """Strict decode, then salvage decode; raises ``GenerationMalformed``."""
    expected = _PYTHON_TYPES[shape]
    text = raw.strip()

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, expected):
        return parsed

    span = _first_balanced_span(text, _OPENERS[shape])
    if span is not None:
        try:
            parsed = json.loads(span)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, expected):
            logger.debug("Salvaged %s payload from a %d-char reply", shape, len(text))
            return parsed

    raise GenerationMalformed(
        f"Reply could not be decoded as a JSON {shape}",
        raw_excerpt=text[:_EXCERPT_CHARS],
    )


# ── Gateway ───────────────────────────────────────────────────────────────────


class StructuredGenerationGateway:
    """Prompt in, decoded JSON ``dict`` / ``list`` out."""

    def __init__(
        self,
        backend: GenerationBackend,
        *,
        timeout_seconds: float | None = None,
    ) -> None:
        self._backend = backend
        self._timeout = (
            settings.GENERATION_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds
        )

    async def generate(
        self,
        prompt: str,
        shape: Shape,
        *,
        temperature: float = 0.7,
        max_tokens: int = 2000,
    ) -> Any:
        try:
            raw = await asyncio.wait_for(
                self._backend.complete(
                    prompt, temperature=temperature, max_tokens=max_tokens
                ),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as e:
            logger.warning("Generation timed out after %.1fs", self._timeout)
            raise GenerationUnavailable(
                f"Generation timed out after {self._timeout:.0f}s"
            ) from e

        if not raw or not raw.strip():
            raise GenerationUnavailable("Generative backend returned an empty reply")

        try:
            return decode_structured(raw, shape)
        except GenerationMalformed as e:
            logger.warning("Malformed generation reply: %s", e.raw_excerpt)
            raise
