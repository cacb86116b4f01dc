"""Markdown-subset to safe markup renderer.

Text is scanned into a small node tree (paragraph lines, lists, strong,
emphasis, links) and then serialized. Text nodes are HTML-escaped, so the
only markup in the output is the markup this module emits.
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Union
from urllib.parse import quote, urlparse

from .models import Citation, ConversationMessage

SAFE_LINK_SCHEMES = frozenset({"http", "https", "mailto"})
STREAMING_PLACEHOLDER = "..."

_BULLET_RE = re.compile(r"^\s*[-*+]\s+(.*)$")
_ORDERED_RE = re.compile(r"^\s*\d+\.\s+(.*)$")

# Span bodies step over a balanced inner span of the other kind, so an em that
# opens first cannot close on half of a bold marker (and vice versa).
_EM_STAR_SPAN = r"\*(?=\S)[^*]+?(?<=\S)\*"
_EM_UNDER_SPAN = r"(?<!\w)_(?=\S)[^_]+?(?<=\S)_(?!\w)"
_STRONG_STAR_SPAN = r"\*\*(?=\S)[^*]+?(?<=\S)\*\*"
_STRONG_UNDER_SPAN = r"(?<!\w)__(?=\S)[^_]+?(?<=\S)__(?!\w)"

_STRONG_RE = re.compile(
    rf"\*\*(?=\S)((?:{_EM_STAR_SPAN}|.)+?)(?<=\S)\*\*"
    rf"|(?<!\w)__(?=\S)((?:{_EM_UNDER_SPAN}|.)+?)(?<=\S)__(?!\w)"
)
_EM_RE = re.compile(
    rf"\*(?=\S)((?:{_STRONG_STAR_SPAN}|.)+?)(?<=\S)\*"
    rf"|(?<!\w)_(?=\S)((?:{_STRONG_UNDER_SPAN}|.)+?)(?<=\S)_(?!\w)"
)

# Tried in this order at every position; the first rule that matches wins.
_INLINE_RULES = [
    ("strong_em", re.compile(r"\*\*\*(?=\S)(.+?)(?<=\S)\*\*\*")),
    ("strong", _STRONG_RE),
    ("em", _EM_RE),
    ("link", re.compile(r"\[([^\]]+)\]\(([^)\s]+)\)")),
    ("product", re.compile(r"PRODUCT_LINK\[([^|\]]+)\|([^\]]+)\]")),
]
_RULE_STARTS = frozenset("*_[P")


@dataclass
class Text:
    value: str


@dataclass
class Strong:
    children: List["Inline"]


@dataclass
class Emphasis:
    children: List["Inline"]


@dataclass
class Link:
    href: str
    children: List["Inline"]


Inline = Union[Text, Strong, Emphasis, Link]


@dataclass
class ListBlock:
    ordered: bool
    items: List[List[Inline]] = field(default_factory=list)


@dataclass
class Paragraph:
    """Consecutive non-list lines; serialized joined by single line breaks."""
    lines: List[List[Inline]] = field(default_factory=list)


Block = Union[Paragraph, ListBlock]


def is_safe_url(url: str) -> bool:
    return urlparse(url.strip()).scheme.lower() in SAFE_LINK_SCHEMES


def _first_group(match: "re.Match[str]") -> str:
    return next(group for group in match.groups() if group is not None)


def parse_inline(text: str, product_base_url: Optional[str] = None) -> List[Inline]:
    """Scan one line into inline nodes."""
    nodes: List[Inline] = []
    buffer: List[str] = []
    pos = 0

    def flush() -> None:
        if buffer:
            nodes.append(Text("".join(buffer)))
            buffer.clear()

    while pos < len(text):
        if text[pos] not in _RULE_STARTS:
            buffer.append(text[pos])
            pos += 1
            continue
        for kind, pattern in _INLINE_RULES:
            match = pattern.match(text, pos)
            if match:
                break
        else:
            buffer.append(text[pos])
            pos += 1
            continue

        flush()
        if kind == "strong_em":
            nodes.append(Strong([Emphasis(parse_inline(match.group(1), product_base_url))]))
        elif kind == "strong":
            nodes.append(Strong(parse_inline(_first_group(match), product_base_url)))
        elif kind == "em":
            nodes.append(Emphasis(parse_inline(_first_group(match), product_base_url)))
        elif kind == "link":
            label = parse_inline(match.group(1), product_base_url)
            href = match.group(2)
            if is_safe_url(href):
                nodes.append(Link(href, label))
            else:
                nodes.extend(label)
        else:
            handle, title = match.group(1).strip(), match.group(2).strip()
            if product_base_url:
                href = f"{product_base_url.rstrip('/')}/products/{quote(handle)}"
                nodes.append(Link(href, [Text(title)]))
            else:
                nodes.append(Text(title))
        pos = match.end()

    flush()
    return nodes


def parse_blocks(text: str, product_base_url: Optional[str] = None) -> List[Block]:
    """Group lines into paragraphs and lists.

    Contiguous bullet lines form one unordered list and contiguous ``N.`` lines
    one ordered list. Blank lines inside a paragraph collapse; blank lines at
    the edge of a paragraph are dropped.
    """
    blocks: List[Block] = []
    pending: List[str] = []
    current: Optional[ListBlock] = None

    def flush_paragraph() -> None:
        lines = [line for line in pending if line.strip()]
        pending.clear()
        if lines:
            blocks.append(Paragraph([parse_inline(line, product_base_url) for line in lines]))

    for line in text.replace("\r\n", "\n").split("\n"):
        bullet = _BULLET_RE.match(line)
        numbered = None if bullet else _ORDERED_RE.match(line)
        item_match = bullet or numbered
        if item_match is None:
            current = None
            pending.append(line)
            continue
        flush_paragraph()
        ordered = numbered is not None
        if current is None or current.ordered != ordered:
            current = ListBlock(ordered=ordered)
            blocks.append(current)
        current.items.append(parse_inline(item_match.group(1).strip(), product_base_url))
    flush_paragraph()
    return blocks


def serialize_inline(nodes: Sequence[Inline]) -> str:
    parts: List[str] = []
    for node in nodes:
        if isinstance(node, Text):
            parts.append(html.escape(node.value, quote=False))
        elif isinstance(node, Strong):
            parts.append(f"<strong>{serialize_inline(node.children)}</strong>")
        elif isinstance(node, Emphasis):
            parts.append(f"<em>{serialize_inline(node.children)}</em>")
        elif isinstance(node, Link):
            href = html.escape(node.href, quote=True)
            parts.append(
                f'<a href="{href}" target="_blank" rel="noopener noreferrer">'
                f"{serialize_inline(node.children)}</a>"
            )
        else:
            raise TypeError(f"unknown inline node {node!r}")
    return "".join(parts)


def serialize_blocks(blocks: Sequence[Block]) -> str:
    """Serialize blocks; only lines inside a paragraph are separated by breaks."""
    parts: List[str] = []
    for block in blocks:
        if isinstance(block, ListBlock):
            tag = "ol" if block.ordered else "ul"
            items = "".join(f"<li>{serialize_inline(item)}</li>" for item in block.items)
            parts.append(f"<{tag}>{items}</{tag}>")
        else:
            parts.append("<br />".join(serialize_inline(line) for line in block.lines))
    return "".join(parts)


def render_markup(text: str, product_base_url: Optional[str] = None) -> str:
    """Purpose: Convert assistant or user text into safe markup.
    Inputs/Outputs: Input is raw text and an optional store url for PRODUCT_LINK
        tokens; output is a markup string.
    Side Effects / State: None; deterministic.
    Dependencies: parse_blocks/parse_inline build the tree, serialize_blocks emits it.
    Failure Modes: None; unmatched markers stay literal and unsafe links become text.
    If Removed: The UI has to show raw markdown.
    Testing Notes: Plain text without markup characters, whitespace-only text
        included, must come back unchanged.
    """
    if not text.strip():
        return text
    return serialize_blocks(parse_blocks(text, product_base_url))


def render_message(message: ConversationMessage, product_base_url: Optional[str] = None) -> str:
    text = message.text
    if not text and message.is_streaming:
        text = STREAMING_PLACEHOLDER
    return render_markup(text, product_base_url)


def render_citations(citations: Optional[Sequence[Citation]]) -> str:
    """Render a source list; citations with unsafe urls are skipped."""
    items = []
    for citation in citations or []:
        if not is_safe_url(citation.url):
            continue
        href = html.escape(citation.url, quote=True)
        title = html.escape(citation.title, quote=True)
        items.append(
            f'<li><a href="{href}" target="_blank" rel="noopener noreferrer" title="{title}">'
            f"{html.escape(citation.title, quote=False)}</a></li>"
        )
    if not items:
        return ""
    return f"<ul>{''.join(items)}</ul>"
