"""
Tests for vesta.segmenter.

Covers:
  - Inline and block delimiters in both conventions
  - Block-before-inline precedence
  - Unterminated delimiters degrading to prose
  - Bare [...] math heuristic
  - Reconstruction and purity guarantees
"""

import pytest

from vesta.segmenter import (
    BlockMath,
    InlineMath,
    ProseText,
    has_math,
    looks_like_math,
    segment,
    strip_delimiters,
)


class TestDollarDelimiters:
    def test_inline_dollar_between_prose(self):
        assert segment("Hello $x^2$ world") == [
            ProseText("Hello "),
            InlineMath("x^2"),
            ProseText(" world"),
        ]

    def test_double_dollar_is_one_block_not_two_inline(self):
        assert segment("$$x=1$$") == [BlockMath("x=1")]

    def test_inline_at_start_of_text(self):
        assert segment("$a$ first") == [InlineMath("a"), ProseText(" first")]

    def test_block_inside_prose(self):
        spans = segment("Energy:\n$$E = mc^2$$\nDone.")
        assert spans == [
            ProseText("Energy:\n"),
            BlockMath("E = mc^2"),
            ProseText("\nDone."),
        ]

    def test_adjacent_math_spans_emit_no_empty_prose(self):
        assert segment("$a$$$b$$") == [InlineMath("a"), BlockMath("b")]


class TestBackslashDelimiters:
    def test_backslash_parens_inline(self):
        assert segment(r"Let \(a+b\) be") == [
            ProseText("Let "),
            InlineMath("a+b"),
            ProseText(" be"),
        ]

    def test_backslash_brackets_block(self):
        assert segment(r"\[\int_0^1 x\,dx\]") == [BlockMath(r"\int_0^1 x\,dx")]

    def test_backslash_block_may_contain_dollars(self):
        assert segment(r"\[ \$5 \]") == [BlockMath(r" \$5 ")]


class TestUnterminated:
    def test_lone_dollar_is_prose(self):
        assert segment("cost is $5") == [ProseText("cost is $5")]

    def test_unterminated_block_falls_back_to_inline_scan(self):
        # "$$" has no closer, so its first "$" is literal and the scan resumes.
        assert segment("$$x$") == [ProseText("$"), InlineMath("x")]

    def test_unterminated_backslash_paren_is_prose(self):
        assert segment(r"see \(x") == [ProseText(r"see \(x")]

    def test_unterminated_backslash_bracket_is_prose(self):
        assert segment(r"\[x") == [ProseText(r"\[x")]

    def test_unterminated_bracket_is_prose(self):
        assert segment(r"[\frac{1}{2}") == [ProseText(r"[\frac{1}{2}")]


class TestBareBrackets:
    def test_citation_marker_is_prose(self):
        assert segment("as shown [1].") == [ProseText("as shown [1].")]

    def test_plain_words_in_brackets_are_prose(self):
        assert segment("[see below]") == [ProseText("[see below]")]

    def test_latex_command_in_brackets_is_block_math(self):
        assert segment(r"Area: [ \pi r^2 ]") == [ProseText("Area: "), BlockMath(r" \pi r^2 ")]

    def test_known_command_name_without_backslash(self):
        assert segment("[ frac{a}{b} ]") == [BlockMath(" frac{a}{b} ")]

    @pytest.mark.parametrize(
        "interior, expected",
        [
            (r"\alpha", True),
            ("x^{2}", True),
            ("a_{i}", True),
            ("sum_i", True),
            ("1", False),
            ("citation needed", False),
            ("x^2", False),
        ],
    )
    def test_looks_like_math(self, interior, expected):
        assert looks_like_math(interior) is expected


class TestGuarantees:
    @pytest.mark.parametrize(
        "text, stripped",
        [
            ("Hello $x^2$ world", "Hello x^2 world"),
            ("a $$b$$ c", "a b c"),
            (r"\(p\) and \[q\]", "p and q"),
            ("  spaced\n\ttext  ", "  spaced\n\ttext  "),
            ("cost is $5", "cost is $5"),
        ],
    )
    def test_concatenation_reconstructs_input_without_delimiters(self, text, stripped):
        assert strip_delimiters(text) == stripped

    def test_empty_input_yields_no_spans(self):
        assert segment("") == []

    def test_no_empty_prose_spans(self):
        spans = segment("$a$$b$")
        assert all(span.text for span in spans if isinstance(span, ProseText))

    def test_same_input_same_output(self):
        text = r"Mix $a$, \(b\), $$c$$ and [\beta]."
        assert segment(text) == segment(text)

    def test_span_kinds(self):
        kinds = [span.kind for span in segment(r"x $a$ $$b$$")]
        assert kinds == ["prose", "inline_math", "prose", "block_math"]

    def test_has_math(self):
        assert has_math("a $b$")
        assert not has_math("cost is $5")
