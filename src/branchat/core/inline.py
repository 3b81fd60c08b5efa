"""Inline tokenizer: one line of markdown text -> typed spans.

Greedy left-to-right scan. Delimiter precedence at each position:
bold (**..**) > italic (*..*) > inline code (`..`) > literal character.

A delimiter only opens a span when its closing delimiter exists later on
the same line; otherwise the opening characters are literal text. Payloads
are verbatim (no nested parsing), so "**a*b**" is one bold span "a*b".

// [LAW:dataflow-not-control-flow] tokenize_inline() is a pure function: str in, tokens out.
// Total: never raises, unrecognized syntax degrades to text.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


# ─── Data model ──────────────────────────────────────────────────────────────


class InlineKind(Enum):
    TEXT = "text"
    BOLD = "bold"
    ITALIC = "italic"
    CODE = "code"


@dataclass(frozen=True)
class InlineToken:
    kind: InlineKind
    text: str


# (delimiter, kind), checked in this order. Open and close use the same delimiter.
_DELIMITERS: tuple[tuple[str, InlineKind], ...] = (
    ("**", InlineKind.BOLD),
    ("*", InlineKind.ITALIC),
    ("`", InlineKind.CODE),
)


# ─── Tokenizer ───────────────────────────────────────────────────────────────


def tokenize_inline(line: str) -> tuple[InlineToken, ...]:
    """Tokenize one line into InlineTokens.

    Adjacent literal characters are merged into a single TEXT token.
    Empty delimited spans ("****", "``") are dropped.
    """
    tokens: list[InlineToken] = []
    pending: list[str] = []

    def flush() -> None:
        if pending:
            tokens.append(InlineToken(InlineKind.TEXT, "".join(pending)))
            pending.clear()

    pos = 0
    length = len(line)
    while pos < length:
        matched = False
        for delim, kind in _DELIMITERS:
            if not line.startswith(delim, pos):
                continue
            close = line.find(delim, pos + len(delim))
            if close == -1:
                # Unterminated: the opener itself is literal text.
                pending.append(delim)
                pos += len(delim)
            else:
                payload = line[pos + len(delim) : close]
                if payload:
                    flush()
                    tokens.append(InlineToken(kind, payload))
                pos = close + len(delim)
            matched = True
            break
        if not matched:
            pending.append(line[pos])
            pos += 1

    flush()
    return tuple(tokens)
