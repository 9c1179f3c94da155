"""Unit tests for content_converter.markdown_parser module."""

import pytest

from src.content_converter.inline_parser import plain_text
from src.content_converter.markdown_parser import MarkdownParser
from src.content_converter.models import BlockKind, InlineKind


@pytest.fixture
def parser():
    return MarkdownParser()


def block_kinds(blocks):
    return [block.kind for block in blocks]


class TestSimpleBlocks:
    """Test cases for single-line block constructs."""

    def test_empty_markdown(self, parser):
        """parse should return no blocks for empty input."""
        assert parser.parse("") == []
        assert parser.parse("\n\n  \n") == []

    def test_heading(self, parser):
        """parse should read the heading level and text."""
        block = parser.parse("## Title ##")[0]

        assert block.kind == BlockKind.HEADING
        assert block.level == 2
        assert plain_text(block.inlines) == "Title"

    def test_status_line(self, parser):
        """parse should read a standalone status line as a status block."""
        block = parser.parse("<!-- status:green:Done -->")[0]

        assert block.kind == BlockKind.STATUS
        assert block.attrs == {"color": "green", "title": "Done"}

    def test_widget_line(self, parser):
        """parse should read a widget line."""
        block = parser.parse("<!-- widget:TOC -->")[0]

        assert block.kind == BlockKind.WIDGET
        assert block.attrs["name"] == "toc"

    @pytest.mark.parametrize("line", ["---", "-------", "   ----  "])
    def test_rule(self, parser, line):
        """parse should read three or more dashes as a rule."""
        assert block_kinds(parser.parse(line)) == [BlockKind.RULE]

    def test_tag_lines_are_skipped(self, parser):
        """parse should ignore inline tag lines."""
        blocks = parser.parse("<!-- tag:content nodeId:p-1 -->\nHello")

        assert block_kinds(blocks) == [BlockKind.PARAGRAPH]
        assert plain_text(blocks[0].inlines) == "Hello"


class TestCodeBlocks:
    """Test cases for fenced and indented code."""

    def test_fenced_code_with_language(self, parser):
        """parse should keep the fence info string as the language."""
        block = parser.parse("```python\nx = 1\n```")[0]

        assert block.kind == BlockKind.CODE
        assert block.attrs["language"] == "python"
        assert block.text == "x = 1"

    def test_longer_fence_contains_shorter_fences(self, parser):
        """parse should only close a fence with one at least as long."""
        block = parser.parse("````\n```\ninner\n```\n````")[0]

        assert block.text == "```\ninner\n```"

    def test_fenced_code_keeps_blank_lines(self, parser):
        """parse should keep blank lines inside fences."""
        blocks = parser.parse("```\na\n\n\nb\n```\nafter")

        assert block_kinds(blocks) == [BlockKind.CODE, BlockKind.PARAGRAPH]
        assert blocks[0].text == "a\n\n\nb"

    def test_indented_code(self, parser):
        """parse should read indented lines as a code block."""
        blocks = parser.parse("    a = 1\n\n    b = 2\n\ntext")

        assert block_kinds(blocks) == [BlockKind.CODE, BlockKind.PARAGRAPH]
        assert blocks[0].text == "a = 1\n\nb = 2"


class TestTables:
    """Test cases for GFM tables."""

    def test_cell_style_comment(self, parser):
        """parse should split a trailing cell style into the cell background."""
        block = parser.parse("| h |\n| --- |\n| x <!-- cell:bg:red --> |")[0]

        assert block.kind == BlockKind.TABLE
        header, row = block.rows
        assert header[0].header is True
        assert row[0].header is False
        assert row[0].background == "red"
        assert plain_text(row[0].lines[0]) == "x"

    def test_literal_newline_splits_cell_lines(self, parser):
        """parse should split cell text on the literal \\n sequence."""
        block = parser.parse("| a |\n| --- |\n| one\\ntwo |")[0]

        assert [plain_text(line) for line in block.rows[1][0].lines] == ["one", "two"]

    def test_escaped_pipe_stays_in_cell(self, parser):
        """parse should not split cells on escaped pipes."""
        block = parser.parse("| a\\|b | c |\n| --- | --- |")[0]

        assert len(block.rows[0]) == 2
        assert plain_text(block.rows[0][0].lines[0]) == "a|b"

    def test_escaped_pipe_inside_code_span(self, parser):
        """parse should unescape pipes inside cell code spans."""
        block = parser.parse("| `a\\|b` | c |\n| --- | --- |")[0]

        code = block.rows[0][0].lines[0][0]
        assert code.kind == InlineKind.CODE
        assert code.text == "a|b"

    def test_ragged_rows_are_padded(self, parser):
        """parse should pad short rows to the widest row."""
        block = parser.parse("| a | b |\n| --- | --- |\n| 1 |")[0]

        assert [len(row) for row in block.rows] == [2, 2]
        assert block.rows[1][1].lines == []

    def test_table_ends_at_blank_line(self, parser):
        """parse should end a table at the first blank line."""
        blocks = parser.parse("| a |\n| --- |\n| 1 |\n\nafter")

        assert block_kinds(blocks) == [BlockKind.TABLE, BlockKind.PARAGRAPH]


class TestLists:
    """Test cases for bullet and ordered lists."""

    def test_nested_bullets_then_ordered_list(self, parser):
        """parse should nest indented items and split on list type changes."""
        blocks = parser.parse("- a\n- b\n  - c\n1. one\n2. two")

        assert block_kinds(blocks) == [BlockKind.BULLET_LIST, BlockKind.ORDERED_LIST]
        bullets = blocks[0]
        assert [plain_text(item.inlines) for item in bullets.items] == ["a", "b"]
        assert bullets.items[0].children is None
        nested = bullets.items[1].children
        assert nested.kind == BlockKind.BULLET_LIST
        assert plain_text(nested.items[0].inlines) == "c"
        assert len(blocks[1].items) == 2

    def test_continuation_lines_join_item(self, parser):
        """parse should append indented continuation lines to the item."""
        block = parser.parse("- first line\n  continues here")[0]

        assert plain_text(block.items[0].inlines) == "first line continues here"

    def test_loose_list(self, parser):
        """parse should keep items separated by blank lines in one list."""
        blocks = parser.parse("- a\n\n- b")

        assert block_kinds(blocks) == [BlockKind.BULLET_LIST]
        assert len(blocks[0].items) == 2


class TestQuotedBlocks:
    """Test cases for panels and quotes."""

    def test_panel(self, parser):
        """parse should read a panel marker line and its quoted body."""
        block = parser.parse(
            "> <!-- panel:warning:warning -->\n> Careful\n> now\n>\n> Second"
        )[0]

        assert block.kind == BlockKind.PANEL
        assert block.attrs == {"color": "warning", "icon": "warning"}
        assert len(block.paragraphs) == 2
        assert [plain_text(line) for line in block.paragraphs[0]] == ["Careful", "now"]

    def test_plain_quote(self, parser):
        """parse should read other quoted lines as a quote."""
        block = parser.parse("> quoted text")[0]

        assert block.kind == BlockKind.QUOTE
        assert plain_text(block.paragraphs[0][0]) == "quoted text"


class TestImagesAndParagraphs:
    """Test cases for image blocks and paragraphs."""

    def test_image_with_caption_line(self, parser):
        """parse should take the caption from the following line."""
        block = parser.parse("![alt](https://x.io/a.png)\nFigure 2")[0]

        assert block.kind == BlockKind.IMAGE
        assert block.attrs == {"src": "https://x.io/a.png"}
        assert block.text == "Figure 2"

    def test_image_alt_as_caption(self, parser):
        """parse should fall back to alt text as caption."""
        block = parser.parse("![Figure 1](attachment:d.png)")[0]

        assert block.attrs == {"attachment": "d.png"}
        assert block.text == "Figure 1"

    def test_paragraph_joins_soft_breaks(self, parser):
        """parse should join soft-wrapped lines and keep hard breaks."""
        block = parser.parse("one\ntwo  \nthree")[0]

        assert block_kinds([block]) == [BlockKind.PARAGRAPH]
        assert [node.kind for node in block.inlines] == [
            InlineKind.TEXT, InlineKind.LINE_BREAK, InlineKind.TEXT,
        ]
        assert block.inlines[0].text == "one two"

    def test_paragraph_ends_at_heading(self, parser):
        """parse should end a paragraph where a heading starts."""
        blocks = parser.parse("text\n# H")

        assert block_kinds(blocks) == [BlockKind.PARAGRAPH, BlockKind.HEADING]

    def test_status_inside_paragraph_stays_inline(self, parser):
        """parse should keep status comments inside running text inline."""
        block = parser.parse("State <!-- status:green:Done -->")[0]

        assert block.kind == BlockKind.PARAGRAPH
        assert block.inlines[1].kind == InlineKind.STATUS
