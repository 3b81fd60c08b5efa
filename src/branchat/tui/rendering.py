"""Rich rendering for parsed markdown blocks.

Turns the block/inline model from branchat.core into Rich renderables.
The parser already did the structural work, so every renderer here is a
pure function of one block: no re-parsing and no Rich Markdown.

# [LAW:dataflow-not-control-flow] Dispatch via BLOCK_RENDERERS[block.kind].
#
# Pygments Syntax() is for user-authored code (code fences). Structural
# elements (headers, list markers, quote bars) use plain styles.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable

from rich.console import ConsoleRenderable, Group
from rich.rule import Rule
from rich.syntax import Syntax
from rich.text import Text

from branchat.core.blocks import (
    BlockKind,
    CodeBlock,
    HeadingBlock,
    ListBlock,
    MarkdownBlock,
    ParagraphBlock,
    QuoteBlock,
    RuleBlock,
)
from branchat.core.conversation import Role, StopReason
from branchat.core.inline import InlineKind, InlineToken

CODE_THEME = "monokai"

INLINE_STYLES: dict[InlineKind, str] = {
    InlineKind.TEXT: "",
    InlineKind.BOLD: "bold",
    InlineKind.ITALIC: "italic",
    InlineKind.CODE: "bold cyan on grey15",
}

HEADING_STYLES: dict[int, str] = {
    1: "bold underline magenta",
    2: "bold magenta",
    3: "bold cyan",
    4: "bold",
    5: "bold dim",
    6: "dim",
}

ROLE_STYLES: dict[Role, str] = {
    Role.USER: "bold green",
    Role.ASSISTANT: "bold blue",
    Role.SYSTEM: "bold yellow",
}

ROLE_LABELS: dict[Role, str] = {
    Role.USER: "You",
    Role.ASSISTANT: "Assistant",
    Role.SYSTEM: "System",
}

QUOTE_BAR = "▌ "

# Normal endings get no label in the header.
_QUIET_STOP_REASONS = frozenset({StopReason.NONE, StopReason.DONE, StopReason.STOP})


# ─── Inline ──────────────────────────────────────────────────────────────────


def render_inline(tokens: Iterable[InlineToken], base_style: str = "") -> Text:
    """One tokenized line as styled Text."""
    text = Text(style=base_style)
    for token in tokens:
        text.append(token.text, style=INLINE_STYLES.get(token.kind, ""))
    return text


def _render_lines(lines, base_style: str = "") -> Text:
    return Text("\n").join(render_inline(line, base_style) for line in lines)


# ─── Blocks ──────────────────────────────────────────────────────────────────


def _render_heading(block: HeadingBlock) -> ConsoleRenderable:
    return render_inline(block.spans, HEADING_STYLES.get(block.level, "bold"))


def _render_paragraph(block: ParagraphBlock) -> ConsoleRenderable:
    return _render_lines(block.lines)


def _render_list(block: ListBlock) -> ConsoleRenderable:
    rows: list[Text] = []
    width = len(f"{block.start + len(block.items) - 1}.") if block.ordered else 1
    for offset, item in enumerate(block.items):
        marker = f"{block.start + offset}." if block.ordered else "•"
        row = Text(f"  {marker.rjust(width)} ", style="bold dim")
        row.append_text(render_inline(item))
        rows.append(row)
    return Text("\n").join(rows)


def _render_quote(block: QuoteBlock) -> ConsoleRenderable:
    rows: list[Text] = []
    for line in block.lines:
        row = Text(QUOTE_BAR, style="dim")
        row.append_text(render_inline(line, "italic"))
        rows.append(row)
    return Text("\n").join(rows)


def _render_code(block: CodeBlock) -> ConsoleRenderable:
    return Syntax(
        block.code,
        block.language or "text",
        theme=CODE_THEME,
        word_wrap=True,
        background_color="default",
    )


def _render_rule(block: RuleBlock) -> ConsoleRenderable:
    return Rule(style="dim")


BLOCK_RENDERERS: dict[BlockKind, Callable[[MarkdownBlock], ConsoleRenderable]] = {
    BlockKind.HEADING: _render_heading,
    BlockKind.PARAGRAPH: _render_paragraph,
    BlockKind.LIST: _render_list,
    BlockKind.QUOTE: _render_quote,
    BlockKind.CODE: _render_code,
    BlockKind.RULE: _render_rule,
}


def render_block(block: MarkdownBlock) -> ConsoleRenderable:
    return BLOCK_RENDERERS[block.kind](block)


def render_blocks(blocks: Iterable[MarkdownBlock]) -> Group:
    """All blocks of a message, separated by blank lines."""
    parts: list[ConsoleRenderable] = []
    for block in blocks:
        if parts:
            parts.append(Text(""))
        parts.append(render_block(block))
    return Group(*parts)


# ─── Message chrome ──────────────────────────────────────────────────────────


def render_message_header(
    role: Role,
    variant_label: str = "1/1",
    *,
    can_prev: bool = False,
    can_next: bool = False,
    stop_reason: StopReason = StopReason.NONE,
    streaming: bool = False,
    selected: bool = False,
) -> Text:
    """Role line above a message: "You  ‹ 2/3 ›  Model stopped"."""
    header = Text()
    if selected:
        header.append("▶ ", style="bold reverse")
    header.append(ROLE_LABELS.get(role, role.value), style=ROLE_STYLES.get(role, "bold"))
    if variant_label != "1/1":
        header.append("  ")
        header.append("‹ " if can_prev else "  ", style="bold")
        header.append(variant_label, style="dim")
        header.append(" ›" if can_next else "  ", style="bold")
    if streaming:
        header.append("  ● streaming", style="italic yellow")
    elif role == Role.ASSISTANT and stop_reason not in _QUIET_STOP_REASONS:
        style = "red" if stop_reason == StopReason.ERROR else "dim"
        header.append(f"  {stop_reason.label}", style=style)
    return header
