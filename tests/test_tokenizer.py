"""Tests for search text normalization and 2-gram tokenization."""

from catalog_engine.search.tokenizer import (
    document_tokens,
    is_single_character,
    ngrams,
    normalize_for_search,
    prefix_key,
    query_tokens,
    tokenize,
)

# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


class TestNormalizeForSearch:
    """Width, kana and punctuation folding."""

    def test_katakana_folds_to_hiragana(self):
        """Katakana and hiragana spellings normalize identically."""
        assert normalize_for_search("カタカナ") == normalize_for_search("かたかな") == "かたかな"

    def test_full_width_latin_folds_to_lowercase_ascii(self):
        """Full-width latin letters become lowercase ASCII."""
        assert normalize_for_search("ＡＢＣ") == "abc"

    def test_strips_whitespace_punctuation_and_long_vowel(self):
        """Spaces, punctuation and the long-vowel mark are removed."""
        assert normalize_for_search(" デ ー タ! ") == "でた"

    def test_idempotent(self):
        """Normalizing twice gives the same result as once."""
        for raw in ["データサイエンス入門", "Ｐｙｔｈｏｎ 講座", "経済史（前期）", ""]:
            once = normalize_for_search(raw)
            assert normalize_for_search(once) == once

    def test_none_safe(self):
        """Empty input yields an empty string."""
        assert normalize_for_search("") == ""


# ---------------------------------------------------------------------------
# Tokenize
# ---------------------------------------------------------------------------


class TestTokenize:
    """2-gram token sets."""

    def test_two_characters_yield_single_gram(self):
        """'ab' tokenizes to exactly {'ab'}."""
        assert tokenize("ab") == {"ab"}

    def test_single_character_yields_itself(self):
        """A length-1 input emits exactly one token: itself."""
        assert tokenize("a") == {"a"}

    def test_empty_input_yields_nothing(self):
        """Whitespace-only input has no tokens."""
        assert tokenize("   ") == set()

    def test_overlapping_grams(self):
        """All overlapping 2-grams are emitted."""
        assert tokenize("abcd") == {"ab", "bc", "cd"}

    def test_only_length_two_tokens_for_longer_input(self):
        """Inputs of length >= 2 produce only length-2 tokens."""
        assert all(len(t) == 2 for t in tokenize("統計学入門 Statistics"))

    def test_deterministic(self):
        """Tokenizing the same text twice gives the same set."""
        assert tokenize("経済学概論") == tokenize("経済学概論")

    def test_ngrams_preserves_order(self):
        """The underlying gram list keeps input order."""
        assert ngrams("統計学") == ["統計", "計学"]


# ---------------------------------------------------------------------------
# Query and document tokens
# ---------------------------------------------------------------------------


class TestQueryTokens:
    """Planner-side token lists."""

    def test_interleaves_hiragana_and_katakana_variants(self):
        """Hiragana-folded grams interleave with katakana grams that keep the long-vowel mark."""
        tokens, capped = query_tokens("データ", 10)
        assert tokens == ["でた", "デー", "ータ"]
        assert capped is False

    def test_latin_variants_deduplicated(self):
        """When both variants agree, each gram appears once."""
        tokens, _ = query_tokens("abc", 10)
        assert tokens == ["ab", "bc"]

    def test_cap_drops_excess_tokens(self):
        """More tokens than the cap are truncated and flagged."""
        tokens, capped = query_tokens("abcdefghijklmnop", 10)
        assert len(tokens) == 10
        assert tokens[0] == "ab"
        assert capped is True

    def test_document_tokens_cover_title_and_instructor(self):
        """Ingestion tokens span the concatenated title and instructor."""
        assert document_tokens("統計学", "山田") == ["統計", "計学", "学山", "山田"]


class TestIsSingleCharacter:
    """Single-character keyword detection."""

    def test_single_latin(self):
        """A lone letter is a single character."""
        assert is_single_character("a") is True

    def test_single_after_width_folding(self):
        """A padded full-width letter normalizes to one character."""
        assert is_single_character(" Ａ ") is True

    def test_two_characters(self):
        """Two characters are not a single character."""
        assert is_single_character("ab") is False

    def test_prefix_key_folds_width_but_keeps_case_and_script(self):
        """Prefix keys match stored text, so only width and punctuation fold."""
        assert prefix_key(" Ａ. ") == "A"
        assert prefix_key("カー") == "カ"
