"""Block parser: message content -> typed markdown blocks for rendering.

Single forward pass over the lines of a message. Outside an open code fence
each line is classified by the first matching rule:

  1. blank          closes any open paragraph/list/quote
  2. fence open     ``` + optional language tag; verbatim until the same marker
  3. rule           3+ of one of - * _ and nothing else
  4. heading        1-6 '#' then whitespace
  5. list item      '-', '*', '+' or 'N.' then whitespace
  6. quote          '>' with one optional following space stripped
  7. paragraph      anything else

Consecutive lines of the same grouping kind (paragraph, list, quote) form one
block. A list's `ordered` flag is decided by its first line; later lines
continue the list as long as they match either list-item pattern.

An unterminated fence is closed at end of input with whatever it collected.
That is the normal case while a reply is still streaming, not an error.

// [LAW:dataflow-not-control-flow] parse_blocks() is a pure function: text in, blocks out.
// No parser state survives between calls, so re-parsing on every delta is safe.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Union

from branchat.core.inline import InlineToken, tokenize_inline


# ─── Data model ──────────────────────────────────────────────────────────────

Line = tuple[InlineToken, ...]


class BlockKind(Enum):
    HEADING = "heading"
    PARAGRAPH = "paragraph"
    LIST = "list"
    QUOTE = "quote"
    CODE = "code"
    RULE = "rule"


@dataclass(frozen=True)
class HeadingBlock:
    level: int
    spans: Line
    kind: BlockKind = field(default=BlockKind.HEADING, init=False)


@dataclass(frozen=True)
class ParagraphBlock:
    lines: tuple[Line, ...]
    kind: BlockKind = field(default=BlockKind.PARAGRAPH, init=False)


@dataclass(frozen=True)
class ListBlock:
    items: tuple[Line, ...]
    ordered: bool
    start: int = 1
    kind: BlockKind = field(default=BlockKind.LIST, init=False)


@dataclass(frozen=True)
class QuoteBlock:
    lines: tuple[Line, ...]
    kind: BlockKind = field(default=BlockKind.QUOTE, init=False)


@dataclass(frozen=True)
class CodeBlock:
    code: str
    language: str = ""
    kind: BlockKind = field(default=BlockKind.CODE, init=False)


@dataclass(frozen=True)
class RuleBlock:
    kind: BlockKind = field(default=BlockKind.RULE, init=False)


MarkdownBlock = Union[HeadingBlock, ParagraphBlock, ListBlock, QuoteBlock, CodeBlock, RuleBlock]


# ─── Line patterns ───────────────────────────────────────────────────────────

FENCE_PREFIX = "```"
RULE_RE = re.compile(r"^(?:-{3,}|\*{3,}|_{3,})$")
HEADING_RE = re.compile(r"^(#{1,6})\s+(.*)$")
BULLET_RE = re.compile(r"^\s*[-*+]\s+(.*)$")
NUMBERED_RE = re.compile(r"^\s*(\d+)\.\s+(.*)$")
QUOTE_RE = re.compile(r"^\s*> ?(.*)$")


def _match_list_item(line: str) -> tuple[bool, int, str] | None:
    """Return (ordered, number, item_text) for a list item line, else None."""
    m = NUMBERED_RE.match(line)
    if m:
        return True, int(m.group(1)), m.group(2)
    m = BULLET_RE.match(line)
    if m:
        return False, 1, m.group(1)
    return None


# ─── Parser ──────────────────────────────────────────────────────────────────


class _Accumulator:
    """Block-in-progress for the grouping kinds (paragraph, list, quote)."""

    __slots__ = ("kind", "lines", "ordered", "start")

    def __init__(self, kind: BlockKind, ordered: bool = False, start: int = 1):
        self.kind = kind
        self.lines: list[Line] = []
        self.ordered = ordered
        self.start = start

    def build(self) -> MarkdownBlock:
        lines = tuple(self.lines)
        if self.kind == BlockKind.LIST:
            return ListBlock(items=lines, ordered=self.ordered, start=self.start)
        if self.kind == BlockKind.QUOTE:
            return QuoteBlock(lines=lines)
        return ParagraphBlock(lines=lines)


def normalize_newlines(content: str) -> str:
    return content.replace("\r\n", "\n").replace("\r", "\n")


def parse_blocks(content: str) -> list[MarkdownBlock]:
    """Parse message content into MarkdownBlocks. Never raises."""
    if not content:
        return []

    blocks: list[MarkdownBlock] = []
    current: _Accumulator | None = None

    fence_marker: str | None = None
    fence_language = ""
    fence_lines: list[str] = []

    def close_current() -> None:
        nonlocal current
        if current is not None and current.lines:
            blocks.append(current.build())
        current = None

    for line in normalize_newlines(content).split("\n"):
        stripped = line.strip()

        # ── Inside a fence: verbatim until the closing marker ──
        if fence_marker is not None:
            if stripped.startswith(fence_marker):
                blocks.append(CodeBlock(code="\n".join(fence_lines), language=fence_language))
                fence_marker = None
                fence_lines = []
            else:
                fence_lines.append(line)
            continue

        # 1. blank
        if not stripped:
            close_current()
            continue

        # 2. fence open
        if stripped.startswith(FENCE_PREFIX):
            close_current()
            marker_len = len(stripped) - len(stripped.lstrip("`"))
            fence_marker = stripped[:marker_len]
            fence_language = stripped[marker_len:].strip()
            fence_lines = []
            continue

        # 3. horizontal rule
        if RULE_RE.match(stripped):
            close_current()
            blocks.append(RuleBlock())
            continue

        # 4. heading
        m = HEADING_RE.match(stripped)
        if m:
            close_current()
            blocks.append(
                HeadingBlock(level=len(m.group(1)), spans=tokenize_inline(m.group(2).strip()))
            )
            continue

        # 5. list item: any item pattern continues an open list
        item = _match_list_item(line)
        if item is not None:
            ordered, number, text = item
            if current is None or current.kind != BlockKind.LIST:
                close_current()
                current = _Accumulator(BlockKind.LIST, ordered=ordered, start=number)
            current.lines.append(tokenize_inline(text.strip()))
            continue

        # 6. quote
        m = QUOTE_RE.match(line)
        if m:
            if current is None or current.kind != BlockKind.QUOTE:
                close_current()
                current = _Accumulator(BlockKind.QUOTE)
            current.lines.append(tokenize_inline(m.group(1).rstrip()))
            continue

        # 7. paragraph
        if current is None or current.kind != BlockKind.PARAGRAPH:
            close_current()
            current = _Accumulator(BlockKind.PARAGRAPH)
        current.lines.append(tokenize_inline(stripped))

    # End of input: an open fence closes with what it has (streaming truncation).
    if fence_marker is not None:
        blocks.append(CodeBlock(code="\n".join(fence_lines), language=fence_language))
    close_current()
    return blocks
