"""Tests for the inline tokenizer."""

from branchat.core.inline import InlineKind, InlineToken, tokenize_inline
from tests.harness import plain_text

T, B, I, C = InlineKind.TEXT, InlineKind.BOLD, InlineKind.ITALIC, InlineKind.CODE


def kinds(tokens):
    return [(t.kind, t.text) for t in tokens]


class TestSpans:
    def test_plain_text_is_one_token(self):
        assert kinds(tokenize_inline("hello world")) == [(T, "hello world")]

    def test_empty_line_has_no_tokens(self):
        assert tokenize_inline("") == ()

    def test_bold_italic_code(self):
        tokens = tokenize_inline("a **b** c *d* e `f`")
        assert kinds(tokens) == [
            (T, "a "),
            (B, "b"),
            (T, " c "),
            (I, "d"),
            (T, " e "),
            (C, "f"),
        ]

    def test_text_flushed_before_span_and_at_end(self):
        assert kinds(tokenize_inline("x`y`z")) == [(T, "x"), (C, "y"), (T, "z")]

    def test_tokens_are_hashable_values(self):
        assert tokenize_inline("**a**") == (InlineToken(B, "a"),)
        assert len({tokenize_inline("**a**"), tokenize_inline("**a**")}) == 1


class TestPrecedence:
    def test_bold_wins_over_italic(self):
        assert kinds(tokenize_inline("**a*b**")) == [(B, "a*b")]

    def test_payload_is_not_parsed_further(self):
        assert kinds(tokenize_inline("`**not bold**`")) == [(C, "**not bold**")]

    def test_italic_inside_code_is_verbatim(self):
        assert kinds(tokenize_inline("*a `b` c*")) == [(I, "a `b` c")]


class TestFallback:
    def test_unterminated_bold_is_literal(self):
        assert kinds(tokenize_inline("**bold")) == [(T, "**bold")]

    def test_unterminated_italic_is_literal(self):
        assert kinds(tokenize_inline("2 * 3 = 6")) == [(T, "2 * 3 = 6")]

    def test_unterminated_code_is_literal(self):
        assert kinds(tokenize_inline("use `foo")) == [(T, "use `foo")]

    def test_empty_spans_are_dropped(self):
        assert kinds(tokenize_inline("a****b")) == [(T, "ab")]
        assert kinds(tokenize_inline("``")) == []

    def test_plain_text_roundtrips_literal_input(self):
        line = "no markup, just * and ` left open"
        assert plain_text(tokenize_inline(line)) == line
