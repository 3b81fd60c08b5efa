"""Tests for the block parser."""

from branchat.core.blocks import (
    BlockKind,
    CodeBlock,
    HeadingBlock,
    ListBlock,
    ParagraphBlock,
    QuoteBlock,
    RuleBlock,
    parse_blocks,
)
from branchat.core.inline import InlineKind, InlineToken
from tests.harness import plain_text


def texts(lines):
    return [plain_text(line) for line in lines]


class TestParagraphs:
    def test_empty_content(self):
        assert parse_blocks("") == []
        assert parse_blocks("\n\n  \n") == []

    def test_consecutive_lines_form_one_paragraph(self):
        [block] = parse_blocks("first line\n  second line  ")
        assert isinstance(block, ParagraphBlock)
        assert texts(block.lines) == ["first line", "second line"]

    def test_blank_line_splits_paragraphs(self):
        blocks = parse_blocks("one\n\ntwo")
        assert [b.kind for b in blocks] == [BlockKind.PARAGRAPH, BlockKind.PARAGRAPH]

    def test_crlf_is_normalized(self):
        assert parse_blocks("a\r\nb\r\n\r\nc") == parse_blocks("a\nb\n\nc")

    def test_inline_tokens_per_line(self):
        [block] = parse_blocks("some **bold** text")
        assert block.lines[0][1] == InlineToken(InlineKind.BOLD, "bold")


class TestHeadingsAndRules:
    def test_heading_levels(self):
        blocks = parse_blocks("# One\n### Three\n###### Six")
        assert [(b.level, plain_text(b.spans)) for b in blocks] == [
            (1, "One"),
            (3, "Three"),
            (6, "Six"),
        ]

    def test_hash_without_space_is_paragraph(self):
        [block] = parse_blocks("#hashtag")
        assert isinstance(block, ParagraphBlock)

    def test_seven_hashes_is_paragraph(self):
        [block] = parse_blocks("####### too deep")
        assert isinstance(block, ParagraphBlock)

    def test_rules(self):
        blocks = parse_blocks("---\n***\n___\n-----")
        assert blocks == [RuleBlock()] * 4

    def test_mixed_rule_chars_are_not_a_rule(self):
        [block] = parse_blocks("-*-")
        assert isinstance(block, ParagraphBlock)

    def test_rule_wins_over_bullet(self):
        blocks = parse_blocks("- item\n---\n- item")
        assert [b.kind for b in blocks] == [BlockKind.LIST, BlockKind.RULE, BlockKind.LIST]

    def test_spaced_stars_are_a_bullet(self):
        [block] = parse_blocks("* * *")
        assert isinstance(block, ListBlock)
        assert len(block.items) == 1

    def test_heading_closes_paragraph(self):
        blocks = parse_blocks("text\n# Title\nmore")
        assert [b.kind for b in blocks] == [
            BlockKind.PARAGRAPH,
            BlockKind.HEADING,
            BlockKind.PARAGRAPH,
        ]


class TestLists:
    def test_bullets(self):
        [block] = parse_blocks("- a\n* b\n+ c")
        assert block == ListBlock(items=block.items, ordered=False)
        assert texts(block.items) == ["a", "b", "c"]

    def test_numbered_list_keeps_start(self):
        [block] = parse_blocks("3. three\n4. four")
        assert block.ordered
        assert block.start == 3
        assert texts(block.items) == ["three", "four"]

    def test_first_line_decides_ordered(self):
        [block] = parse_blocks("1. one\n- two")
        assert block.ordered
        assert texts(block.items) == ["one", "two"]
        [block] = parse_blocks("- one\n2. two")
        assert not block.ordered

    def test_blank_line_ends_list(self):
        blocks = parse_blocks("- a\n\n- b")
        assert len(blocks) == 2

    def test_paragraph_line_ends_list(self):
        blocks = parse_blocks("- a\nafter")
        assert [b.kind for b in blocks] == [BlockKind.LIST, BlockKind.PARAGRAPH]


class TestQuotes:
    def test_quote_lines_group(self):
        [block] = parse_blocks("> first\n>second\n  >  third")
        assert isinstance(block, QuoteBlock)
        assert texts(block.lines) == ["first", "second", " third"]

    def test_quote_then_paragraph(self):
        blocks = parse_blocks("> quoted\nplain")
        assert [b.kind for b in blocks] == [BlockKind.QUOTE, BlockKind.PARAGRAPH]


class TestFences:
    def test_fence_with_language(self):
        [block] = parse_blocks("```python\nx = 1\n  y = 2\n```")
        assert block == CodeBlock(code="x = 1\n  y = 2", language="python")

    def test_fence_content_is_verbatim(self):
        [block] = parse_blocks("```\n# not a heading\n- not a list\n\n**raw**\n```")
        assert block.code == "# not a heading\n- not a list\n\n**raw**"
        assert block.language == ""

    def test_longer_marker_needs_longer_close(self):
        [block] = parse_blocks("````md\n```\ninner\n```\n````")
        assert block.code == "```\ninner\n```"
        assert block.language == "md"

    def test_truncated_fence_closes_at_end(self):
        blocks = parse_blocks("intro\n```py\nprint(1)\nprint(2")
        assert [b.kind for b in blocks] == [BlockKind.PARAGRAPH, BlockKind.CODE]
        assert blocks[1] == CodeBlock(code="print(1)\nprint(2", language="py")

    def test_fence_opened_on_last_line(self):
        assert parse_blocks("text\n```")[-1] == CodeBlock(code="", language="")

    def test_fence_closes_open_paragraph(self):
        blocks = parse_blocks("para\n```\ncode\n```\nafter")
        assert [b.kind for b in blocks] == [
            BlockKind.PARAGRAPH,
            BlockKind.CODE,
            BlockKind.PARAGRAPH,
        ]


class TestTotality:
    SAMPLES = [
        "# Title\n\nSome *text* with `code`.\n\n- a\n- b\n\n> q\n\n```js\nlet x\n```\n---",
        "**unclosed\n```\n",
        "*",
        "```",
        "> ",
        "1.",
        "\r\r\n\n",
        "- \n-",
        "`**`*`",
    ]

    def test_parse_is_idempotent(self):
        for sample in self.SAMPLES:
            assert parse_blocks(sample) == parse_blocks(sample)

    def test_every_prefix_parses(self):
        text = self.SAMPLES[0]
        for end in range(len(text) + 1):
            parse_blocks(text[:end])

    def test_heading_spans_are_tokenized(self):
        [block] = parse_blocks("## The `api` call")
        assert isinstance(block, HeadingBlock)
        assert block.spans[1] == InlineToken(InlineKind.CODE, "api")
