"""Token counting for the context-window guard.

:class:`TiktokenCounter` uses the model's tiktoken encoding. When the encoding
cannot be loaded (unknown encodings are fetched on first use) it falls back to
:class:`ApproxByteCounter`, which assumes four UTF-8 bytes per token.
"""

from __future__ import annotations

import json
import logging
import math
from typing import Any, Iterable, Protocol, runtime_checkable

import tiktoken

from .types import Message

__all__ = [
    "ApproxByteCounter",
    "TiktokenCounter",
    "TokenCounter",
    "MESSAGE_OVERHEAD_TOKENS",
    "count_message_tokens",
]

LOGGER = logging.getLogger(__name__)

_DEFAULT_BYTES_PER_TOKEN = 4
_FALLBACK_ENCODING = "cl100k_base"
# Framing the chat format adds around every message.
MESSAGE_OVERHEAD_TOKENS = 5


@runtime_checkable
class TokenCounter(Protocol):
    def count(self, text: str) -> int:
        ...


class ApproxByteCounter:
    """Deterministic counter that estimates tokens from the encoded byte length."""

    def __init__(self, *, charset: str = "utf-8", bytes_per_token: int = _DEFAULT_BYTES_PER_TOKEN) -> None:
        self._charset = charset
        self._bytes_per_token = max(1, int(bytes_per_token))

    def count(self, text: str) -> int:
        if not text:
            return 0
        data = text.encode(self._charset, errors="ignore")
        return max(1, math.ceil(len(data) / self._bytes_per_token))


class TiktokenCounter:
    """Token counter backed by tiktoken, loading the encoding on first use."""

    def __init__(self, model_name: str, *, encoding_name: str | None = None) -> None:
        self.model_name = model_name
        self._encoding_name = encoding_name
        self._encoding: Any = None
        self._unavailable = False
        self._fallback = ApproxByteCounter()

    def count(self, text: str) -> int:
        if not text:
            return 0
        encoding = self._get_encoding()
        if encoding is None:
            return self._fallback.count(text)
        return len(encoding.encode(text, disallowed_special=()))

    def _get_encoding(self) -> Any:
        if self._encoding is None and not self._unavailable:
            try:
                self._encoding = self._load_encoding()
            except Exception as exc:
                self._unavailable = True
                LOGGER.warning(
                    "Unable to load a tiktoken encoding for %s (%s); using approximate token counts",
                    self.model_name,
                    exc,
                )
        return self._encoding

    def _load_encoding(self) -> Any:
        if self._encoding_name:
            return tiktoken.get_encoding(self._encoding_name)
        try:
            return tiktoken.encoding_for_model(self.model_name)
        except KeyError:
            LOGGER.debug("Falling back to %s encoding for model %s", _FALLBACK_ENCODING, self.model_name)
            return tiktoken.get_encoding(_FALLBACK_ENCODING)


def count_message_tokens(messages: Iterable[Message], counter: TokenCounter) -> int:
    """Estimate the prompt size of ``messages``, tool calls included."""
    total = 0
    for message in messages:
        total += MESSAGE_OVERHEAD_TOKENS
        if message.content:
            total += counter.count(message.content)
        for call in message.tool_calls or ():
            total += counter.count(
                json.dumps({"id": call.id, "name": call.name, "arguments": call.arguments})
            )
    return total
