"""Text normalization and 2-gram tokenization for catalog search.

The backend has no substring search, so every catalog document stores a
precomputed ``ngrams`` array and queries match it with array-contains-any.
Both sides must tokenize identically:

* ``normalize_for_search`` folds width (NFKC), katakana to hiragana and case,
  and strips whitespace, punctuation and the long-vowel mark.
* A second variant keeps katakana and the long-vowel mark, because catalog
  titles mix both spellings; ingestion stores grams of both variants
  interleaved, and queries send them in the same interleaved order.
"""

from __future__ import annotations

import re
import unicodedata

# Katakana ァ..ヶ and hiragana ぁ..ゖ are offset by 0x60
_KATAKANA_START = 0x30A1
_KATAKANA_END = 0x30F6
_HIRAGANA_START = 0x3041
_HIRAGANA_END = 0x3096
_KANA_OFFSET = 0x60

# Whitespace, punctuation, underscore and the long-vowel mark
_STRIP_RE = re.compile(r"[\W_ー]+")
# Same, but the long-vowel mark survives
_STRIP_KEEP_LONG_RE = re.compile(r"[\W_]+")

GRAM_SIZE = 2


def _to_hiragana(text: str) -> str:
    return "".join(
        chr(ord(ch) - _KANA_OFFSET) if _KATAKANA_START <= ord(ch) <= _KATAKANA_END else ch for ch in text
    )


def _to_katakana(text: str) -> str:
    return "".join(
        chr(ord(ch) + _KANA_OFFSET) if _HIRAGANA_START <= ord(ch) <= _HIRAGANA_END else ch for ch in text
    )


def normalize_for_search(raw: str) -> str:
    """Fold *raw* into the canonical form used for matching.

    Idempotent: ``normalize_for_search(normalize_for_search(s)) == normalize_for_search(s)``.
    """
    text = unicodedata.normalize("NFKC", raw or "")
    text = _to_hiragana(text).lower()
    return _STRIP_RE.sub("", text)


def _squash_keeping_long(raw: str) -> str:
    """Katakana variant of ``normalize_for_search`` that keeps ``ー``."""
    text = unicodedata.normalize("NFKC", raw or "")
    text = _to_katakana(text).lower()
    return _STRIP_KEEP_LONG_RE.sub("", text)


def ngrams(prepared: str) -> list[str]:
    """Return overlapping 2-grams of an already-normalized string, in order.

    A single character yields itself; an empty string yields nothing.
    """
    if not prepared:
        return []
    if len(prepared) == 1:
        return [prepared]
    return [prepared[i : i + GRAM_SIZE] for i in range(len(prepared) - 1)]


def tokenize(text: str) -> set[str]:
    """Return the 2-gram token set of *text* after normalization."""
    return set(ngrams(normalize_for_search(text)))


def _interleave_variants(text: str) -> list[str]:
    """Interleave hiragana-folded grams with katakana-keeping grams, deduplicated."""
    hira = ngrams(normalize_for_search(text))
    kata = ngrams(_squash_keeping_long(text))
    seen: set[str] = set()
    out: list[str] = []
    for i in range(max(len(hira), len(kata))):
        for grams in (hira, kata):
            if i < len(grams) and grams[i] not in seen:
                seen.add(grams[i])
                out.append(grams[i])
    return out


def query_tokens(keyword: str, cap: int) -> tuple[list[str], bool]:
    """Build the ordered token list for an array-contains-any filter.

    Args:
        keyword: Raw keyword from the search criteria.
        cap: Maximum number of tokens the backend accepts.

    Returns:
        ``(tokens, capped)`` where *capped* is True when tokens were dropped.
    """
    tokens = _interleave_variants(keyword)
    return tokens[:cap], len(tokens) > cap


def document_tokens(title: str, instructor: str) -> list[str]:
    """Ingestion-side token list for a catalog document (title + instructor)."""
    return _interleave_variants((title or "") + (instructor or ""))


def is_single_character(keyword: str) -> bool:
    """Whether *keyword* normalizes to exactly one character."""
    return len(normalize_for_search(keyword)) == 1


def prefix_key(keyword: str) -> str:
    """Width-folded *keyword* without punctuation, for prefix ranges on stored text.

    Case and kana script are kept because titles and instructor names are
    stored as written.
    """
    return _STRIP_RE.sub("", unicodedata.normalize("NFKC", keyword or ""))
