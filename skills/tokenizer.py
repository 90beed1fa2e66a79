from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

import tiktoken

logger = logging.getLogger(__name__)

ENCODING_NAME = "cl100k_base"

# Rough characters-per-token ratio used when the encoding is unavailable.
CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    return len(text) // CHARS_PER_TOKEN


class TokenCounter:
    """Counts tokens with a tiktoken encoding, or estimates without one."""

    def __init__(self, encoding: Optional["tiktoken.Encoding"] = None):
        self._encoding = encoding

    @property
    def exact(self) -> bool:
        return self._encoding is not None

    def count(self, text: str) -> int:
        if self._encoding is None:
            return estimate_tokens(text)
        return len(self._encoding.encode(text, disallowed_special=()))


@lru_cache(maxsize=1)
def get_token_counter() -> TokenCounter:
    # get_encoding fetches the BPE ranks on first use; offline hosts fail here.
    try:
        encoding = tiktoken.get_encoding(ENCODING_NAME)
    except Exception as exc:
        logger.warning("tokenizer unavailable, estimating token counts: %s", exc)
        return TokenCounter(None)
    return TokenCounter(encoding)
