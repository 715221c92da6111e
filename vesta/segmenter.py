"""
Split assistant replies into prose and LaTeX math spans.

Recognized delimiters, tested in this order at every position:

    \\[ ... \\]    block math
    $$ ... $$    block math
    \\( ... \\)    inline math
    $ ... $      inline math
    [ ... ]      block math, only when the interior looks like LaTeX

Block forms come first because ``$$`` starts with the inline ``$`` marker.
An opener without a closer is ordinary prose, so a lone dollar sign in
"cost is $5" never swallows the rest of the reply.

Usage::

    from vesta.segmenter import segment

    for span in segment("Hello $x^2$ world"):
        print(span.kind, span.text)
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import ClassVar, Union

__all__ = [
    "BRACKET_MATH_MARKERS",
    "BlockMath",
    "InlineMath",
    "ProseText",
    "Span",
    "has_math",
    "looks_like_math",
    "segment",
    "strip_delimiters",
]


@dataclass(frozen=True)
class ProseText:
    """Markdown prose, kept verbatim."""

    text: str
    kind: ClassVar[str] = "prose"


@dataclass(frozen=True)
class InlineMath:
    """LaTeX rendered inside a line of prose (delimiters stripped)."""

    text: str
    kind: ClassVar[str] = "inline_math"


@dataclass(frozen=True)
class BlockMath:
    """LaTeX rendered as a display equation (delimiters stripped)."""

    text: str
    kind: ClassVar[str] = "block_math"


Span = Union[ProseText, InlineMath, BlockMath]

# (opener, closer, span type) in priority order. Bare brackets are handled
# separately because they need the interior check.
_DELIMITERS: tuple[tuple[str, str, type[BlockMath] | type[InlineMath]], ...] = (
    ("\\[", "\\]", BlockMath),
    ("$$", "$$", BlockMath),
    ("\\(", "\\)", InlineMath),
    ("$", "$", InlineMath),
)

# Substrings that mark a bare [...] interior as LaTeX. Citation markers like
# "[1]" or "[source]" carry none of them.
BRACKET_MATH_MARKERS: tuple[str, ...] = (
    "frac{",
    "sqrt{",
    "sum_",
    "int_",
    "^{",
    "_{",
)
_LATEX_COMMAND = re.compile(r"\\[A-Za-z]+")


def looks_like_math(interior: str) -> bool:
    """Heuristic used for bare ``[...]`` spans."""
    if _LATEX_COMMAND.search(interior):
        return True
    return any(marker in interior for marker in BRACKET_MATH_MARKERS)


def segment(text: str) -> list[Span]:
    """Partition *text* into an ordered list of prose and math spans.

    Concatenating ``span.text`` over the result gives back *text* with the
    math delimiters removed. Empty prose spans are never emitted.
    """
    spans: list[Span] = []
    prose: list[str] = []
    i = 0
    length = len(text)

    def flush() -> None:
        if prose:
            spans.append(ProseText("".join(prose)))
            prose.clear()

    while i < length:
        matched = False
        for opener, closer, span_type in _DELIMITERS:
            if not text.startswith(opener, i):
                continue
            matched = True
            start = i + len(opener)
            end = text.find(closer, start)
            if end == -1:
                prose.append(text[i])
                i += 1
            else:
                flush()
                spans.append(span_type(text[start:end]))
                i = end + len(closer)
            break

        if matched:
            continue

        if text[i] == "[":
            end = text.find("]", i + 1)
            if end != -1 and looks_like_math(text[i + 1 : end]):
                flush()
                spans.append(BlockMath(text[i + 1 : end]))
                i = end + 1
                continue

        prose.append(text[i])
        i += 1

    flush()
    return spans


def strip_delimiters(text: str) -> str:
    """Return *text* with every recognized math delimiter removed."""
    return "".join(span.text for span in segment(text))


def has_math(text: str) -> bool:
    """True when *text* contains at least one math span."""
    return any(not isinstance(span, ProseText) for span in segment(text))
