"""
Reference renderers for segmented replies.

Typesetting belongs to the host (MathJax in a WebView, a terminal, ...).
These helpers only decide *where* each span goes: prose runs through a
small Markdown-to-HTML converter and math is emitted with MathJax's
``\\(...\\)`` / ``\\[...\\]`` delimiters, HTML-escaped.
"""

from __future__ import annotations

import html
import re
from collections.abc import Callable

from .segmenter import BlockMath, InlineMath, segment

__all__ = ["md_to_html", "render_html", "render_plain"]

_PLACEHOLDER = "\x00{}\x00"
_PLACEHOLDER_PATTERN = re.compile("\x00(\\d+)\x00")


def md_to_html(text: str) -> str:
    """Minimal Markdown-to-HTML for assistant messages (no external deps)."""
    if not text:
        return ""
    escaped = html.escape(text)
    lines = escaped.split("\n")
    result: list[str] = []
    in_code_block = False
    code_lines: list[str] = []
    in_list = False
    list_type = ""

    for line in lines:
        # Fenced code blocks
        if line.strip().startswith("```"):
            if in_code_block:
                result.append(f"<pre><code>{'&#10;'.join(code_lines)}</code></pre>")
                code_lines = []
                in_code_block = False
            else:
                if in_list:
                    result.append(f"</{list_type}>")
                    in_list = False
                in_code_block = True
            continue
        if in_code_block:
            code_lines.append(line)
            continue

        stripped = line.strip()

        if in_list and not re.match(r"^(\d+\.|[-*+])\s", stripped) and stripped:
            result.append(f"</{list_type}>")
            in_list = False

        heading_match = re.match(r"^(#{1,4})\s+(.+)$", stripped)
        if heading_match:
            level = len(heading_match.group(1))
            result.append(f"<h{level}>{_inline_md(heading_match.group(2))}</h{level}>")
            continue

        if re.match(r"^[-*_]{3,}\s*$", stripped):
            result.append("<hr>")
            continue

        if stripped.startswith("&gt; "):
            result.append(f"<blockquote>{_inline_md(stripped[5:])}</blockquote>")
            continue

        ul_match = re.match(r"^[-*+]\s+(.+)$", stripped)
        if ul_match:
            if not in_list or list_type != "ul":
                if in_list:
                    result.append(f"</{list_type}>")
                result.append("<ul>")
                in_list = True
                list_type = "ul"
            result.append(f"<li>{_inline_md(ul_match.group(1))}</li>")
            continue

        ol_match = re.match(r"^\d+\.\s+(.+)$", stripped)
        if ol_match:
            if not in_list or list_type != "ol":
                if in_list:
                    result.append(f"</{list_type}>")
                result.append("<ol>")
                in_list = True
                list_type = "ol"
            result.append(f"<li>{_inline_md(ol_match.group(1))}</li>")
            continue

        if not stripped:
            result.append("")
            continue

        result.append(f"<p>{_inline_md(stripped)}</p>")

    if in_code_block:
        result.append(f"<pre><code>{'&#10;'.join(code_lines)}</code></pre>")
    if in_list:
        result.append(f"</{list_type}>")

    return "\n".join(result)


def _inline_md(text: str) -> str:
    """Process inline markdown: bold, italic, code."""
    # Inline code first so its contents are not re-styled
    text = re.sub(r"`([^`]+)`", r"<code>\1</code>", text)
    text = re.sub(r"\*\*(.+?)\*\*", r"<strong>\1</strong>", text)
    text = re.sub(r"__(.+?)__", r"<strong>\1</strong>", text)
    text = re.sub(r"\*(.+?)\*", r"<em>\1</em>", text)
    text = re.sub(r"(?<![A-Za-z0-9])_(.+?)_(?![A-Za-z0-9])", r"<em>\1</em>", text)
    return text


def render_html(text: str) -> str:
    """Render a reply to HTML with math left for MathJax to typeset.

    Math spans are swapped for placeholders before the Markdown pass so
    LaTeX characters like ``*`` and ``_`` are never styled, then put back.
    """
    fragments: list[str] = []
    pieces: list[str] = []
    for span in segment(text):
        if isinstance(span, InlineMath):
            fragments.append(f'<span class="math inline">\\({html.escape(span.text)}\\)</span>')
            pieces.append(_PLACEHOLDER.format(len(fragments) - 1))
        elif isinstance(span, BlockMath):
            fragments.append(f'<div class="math display">\\[{html.escape(span.text)}\\]</div>')
            pieces.append("\n" + _PLACEHOLDER.format(len(fragments) - 1) + "\n")
        else:
            pieces.append(span.text)

    body = md_to_html("".join(pieces))
    # Display math sits on its own line, which the Markdown pass wraps in <p>.
    body = re.sub(r"<p>\x00(\d+)\x00</p>", "\x00\\1\x00", body)
    return _PLACEHOLDER_PATTERN.sub(lambda match: fragments[int(match.group(1))], body)


def render_plain(text: str, math_style: Callable[[str], str] | None = None) -> str:
    """Render a reply for a terminal: inline math in place, display math indented."""
    style = math_style if math_style is not None else (lambda value: value)
    parts: list[str] = []
    for span in segment(text):
        if isinstance(span, BlockMath):
            parts.append(f"\n    {style(span.text.strip())}\n")
        elif isinstance(span, InlineMath):
            parts.append(style(span.text))
        else:
            parts.append(span.text)
    return "".join(parts)
