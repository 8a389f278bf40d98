"""
Tests for the text sanitizer.

This test module verifies:
1. URL and email removal
2. Noise token filtering (long, path-like, hash-like, symbol-heavy)
3. Whitespace normalization
4. Idempotence and empty input
"""

import pytest

from lesson_ingest.services.processors.sanitizer import sanitize


class TestUrlAndEmailRemoval:
    """Links and contact details never reach the chunker."""

    def test_removes_http_and_https_urls(self):
        text = "Read more at https://example.com/a?b=c and http://foo.org today"
        assert sanitize(text) == "Read more at and today"

    def test_removes_bare_www_urls(self):
        assert sanitize("Visit www.example.com for details") == "Visit for details"

    def test_removes_email_addresses(self):
        assert sanitize("Contact ms.jane@school.edu now") == "Contact now"


class TestNoiseTokens:
    """Whitespace-delimited tokens that carry no meaning are dropped."""

    def test_drops_tokens_longer_than_thirty_chars(self):
        long_word = "a" * 31
        assert sanitize(f"keep {long_word} this") == "keep this"

    def test_keeps_thirty_char_words_with_symbols_below_threshold(self):
        word = "well-known-" + "b" * 19  # 30 chars, 2 symbols
        assert sanitize(f"a {word} b") == f"a {word} b"

    def test_drops_path_like_tokens(self):
        assert sanitize("see docs/guide/intro here") == "see here"

    def test_keeps_single_slash_words(self):
        assert sanitize("either and/ or") == "either and/ or"

    def test_drops_hash_like_alphanumeric_tokens(self):
        assert sanitize("commit a1b2c3d4e5f6a7b8c9d0e1 merged") == "commit merged"

    def test_keeps_twenty_char_alphanumeric_token(self):
        word = "x" * 20
        assert sanitize(f"a {word} b") == f"a {word} b"

    def test_drops_symbol_heavy_tokens(self):
        assert sanitize("Menu | >> ### Home") == "Menu Home"

    def test_keeps_ordinary_punctuation(self):
        text = "Plants need light, water, and air. Don't they?"
        assert sanitize(text) == text


class TestNormalization:
    """Output is single-spaced and trimmed."""

    def test_collapses_whitespace(self):
        assert sanitize("  one\n\ntwo\t three  ") == "one two three"

    @pytest.mark.parametrize("value", ["", None])
    def test_empty_input(self, value):
        assert sanitize(value) == ""

    def test_only_noise_returns_empty_string(self):
        assert sanitize("https://a.com/x www.b.org c@d.io ###") == ""

    def test_idempotent_on_sample(self):
        text = (
            "# Photosynthesis\n\nPlants (see https://x.io) make sugar!! "
            "Ask me@x.org. /img/leaf/green.png ***** end."
        )
        once = sanitize(text)
        assert sanitize(once) == once
        assert once == "Photosynthesis Plants (see make sugar!! Ask end."

    @pytest.mark.parametrize("text", [
        "-www.x",
        "foo_www.bar and awww.x",
        "a,b@c.de wrote this",
        "x@y.comwww.z",
        "a@b.c1www.x",
        "Mixed.Case@Example.COM end.",
        "word (https://x.io/a)b) trailing",
        "path/to/file.png and /single/ and a/b",
        "***** !!! ?? ok -- ~~ (a)",
        "#Heading\n\n- item (www.example.com/page)\n- other",
        "a" * 60 + " short " + "b1" * 12,
        "\t\n  ",
    ])
    def test_idempotent(self, text):
        once = sanitize(text)
        assert sanitize(once) == once
