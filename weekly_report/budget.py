"""Text budgeting helpers.

Every function here is pure and total: text that already fits is returned
unchanged, and oversized text keeps its head and tail while the middle is
dropped. Word budgets are a cheap heuristic; token budgets use the model's
own tokenizer and are meant for text that goes to the model verbatim.
"""

from __future__ import annotations

import math
from functools import lru_cache
from typing import List, Tuple

import tiktoken

DEFAULT_QUOTE_MARKER = "```"
LONG_TOKEN_LIMIT = 150
_FALLBACK_ENCODING = "cl100k_base"


def strip_quoted(text: str, quote_marker: str = DEFAULT_QUOTE_MARKER, long_token_limit: int = LONG_TOKEN_LIMIT) -> str:
    """Drop quoted blocks and degenerate long tokens from ``text``.

    Each line containing ``quote_marker`` toggles the quoted state and is
    dropped itself. An unmatched marker therefore swallows the rest of the
    text; callers rely on this staying as is.
    """
    kept: List[str] = []
    inside_quote = False
    for line in text.splitlines():
        if quote_marker and quote_marker in line:
            inside_quote = not inside_quote
            continue
        if inside_quote:
            continue
        # strict bound: a token of exactly long_token_limit characters is dropped too
        words = [word for word in line.split() if len(word) < long_token_limit]
        kept.append(" ".join(words))
    return "\n".join(kept)


def fit_by_words(text: str, max_words: int, head_ratio: float = 0.6) -> str:
    if max_words <= 0:
        return ""
    words = text.split()
    if len(words) <= max_words:
        return text
    head, tail = _head_tail_counts(max_words, head_ratio)
    return " ".join(words[:head] + words[len(words) - tail:])


def fit_by_tokens(text: str, max_tokens: int, head_ratio: float = 0.6, model: str = "") -> str:
    if max_tokens <= 0:
        return ""
    encoding = _encoding_for(model)
    tokens = encoding.encode_ordinary(text)
    if len(tokens) <= max_tokens:
        return text
    head, tail = _head_tail_counts(max_tokens, head_ratio)
    return encoding.decode(tokens[:head] + tokens[len(tokens) - tail:])


def fit_pair_by_words(first: str, second: str, combined_max: int, split: float = 0.6) -> Tuple[str, str]:
    """Fit two texts into one shared word budget.

    ``first`` may claim up to ``combined_max * split`` words; ``second``
    keeps whatever the fitted ``first`` leaves over. A ``first`` that is
    already under its share is never touched.
    """
    first_words = first.split()
    second_words = second.split()
    if len(first_words) + len(second_words) <= combined_max:
        return first, second

    take_first = max(0, int(combined_max * split))
    if len(first_words) > take_first:
        first_words = first_words[:take_first]
        first = " ".join(first_words)

    remaining = max(0, combined_max - len(first_words))
    if len(second_words) > remaining:
        second = " ".join(second_words[:remaining])
    return first, second


def strip_and_fit(
    text: str,
    quote_marker: str = DEFAULT_QUOTE_MARKER,
    max_words: int = 500,
    head_ratio: float = 0.6,
    long_token_limit: int = LONG_TOKEN_LIMIT,
) -> str:
    return fit_by_words(strip_quoted(text, quote_marker, long_token_limit), max_words, head_ratio)


def _head_tail_counts(limit: int, head_ratio: float) -> Tuple[int, int]:
    ratio = min(1.0, max(0.0, head_ratio))
    head = min(limit, math.ceil(limit * ratio))
    return head, limit - head


@lru_cache(maxsize=8)
def _encoding_for(model: str) -> tiktoken.Encoding:
    if model:
        try:
            return tiktoken.encoding_for_model(model)
        except KeyError:
            pass
    return tiktoken.get_encoding(_FALLBACK_ENCODING)
