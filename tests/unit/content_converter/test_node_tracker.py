"""Unit tests for content_converter.node_tracker module."""

import logging

import pytest

from src.content_converter.config import ConverterConfig
from src.content_converter.models import HeaderMeta, InlineTag
from src.content_converter.node_tracker import NodeTracker, emit_tag, parse_tagged_blocks
from src.content_converter.page_header import emit_header
from tests.fixtures.sample_pages import SAMPLE_PAGE_WITH_NODE_IDS


P1_SOURCE = '<p data-node-id="p-1">First paragraph.</p>'
P2_SOURCE = '<p data-node-id="p-2">Second <em>paragraph</em>.</p>'


@pytest.fixture
def tracker():
    return NodeTracker()


class TestInlineTags:
    """Test cases for emitting and parsing inline tags."""

    def test_emit_tag(self):
        """emit_tag should render a tag line with a trailing newline."""
        assert emit_tag(InlineTag("p-1")) == "<!-- tag:content nodeId:p-1 -->\n"

    def test_parse_tagged_blocks(self):
        """parse_tagged_blocks should tie each block to the tag before it."""
        markdown = (
            "<!-- tag:content nodeId:p-1 -->\nHello\n\n"
            "Untagged\n\n"
            "<!-- tag:content nodeId:c-1 -->\n```\na\n\nb\n```"
        )

        blocks = parse_tagged_blocks(markdown)

        assert [(block.node_id, block.text) for block in blocks] == [
            ("p-1", "Hello"),
            (None, "Untagged"),
            ("c-1", "```\na\n\nb\n```"),
        ]

    def test_tag_applies_to_following_block_only(self):
        """parse_tagged_blocks should not carry a tag past a blank line."""
        blocks = parse_tagged_blocks("<!-- tag:content nodeId:x -->\nfirst\n\nsecond")

        assert [block.node_id for block in blocks] == ["x", None]

    def test_emitted_tag_parses_back(self, tracker):
        """A tag written by emit_tag should be read back by parse_tagged_blocks."""
        markdown = tracker.emit_tag(InlineTag("abc:1-2")) + "Body"

        assert tracker.parse_tagged_blocks(markdown)[0].node_id == "abc:1-2"


class TestSegment:
    """Test cases for mapping top-level nodes to markdown blocks."""

    def test_segment_keeps_node_ids(self, tracker):
        """segment should give each identified node its own block."""
        blocks = tracker.segment(SAMPLE_PAGE_WITH_NODE_IDS)

        assert [block.node_id for block in blocks] == ["h-1", "p-1", "c-1", None, "p-2", None]
        assert blocks[0].markdown == "# Overview"
        assert blocks[2].markdown == '```\nif a < b: <p data-node-id="fake">\n```'
        assert blocks[4].markdown == "Second *paragraph*."
        assert blocks[5].markdown == "Loose text"

    def test_segment_empty(self, tracker):
        """segment should return no blocks for empty input."""
        assert tracker.segment("") == []

    def test_render_tagged(self, tracker):
        """render_tagged should put a tag line before each identified block."""
        markdown = tracker.render_tagged(SAMPLE_PAGE_WITH_NODE_IDS)

        assert markdown.startswith(
            "<!-- tag:content nodeId:h-1 -->\n# Overview\n\n"
            "<!-- tag:content nodeId:p-1 -->\nFirst paragraph."
        )
        assert markdown.endswith("<!-- tag:content nodeId:p-2 -->\nSecond *paragraph*.\n\nLoose text")


class TestReplaceByIdentifiers:
    """Test cases for splicing replacement nodes into a document."""

    def test_replaces_only_the_target_span(self, tracker):
        """replace_by_identifiers should leave every other byte unchanged."""
        result = tracker.replace_by_identifiers(SAMPLE_PAGE_WITH_NODE_IDS, {"p-2": "<p>Changed</p>"})

        assert result.missing == []
        assert result.replaced == ["p-2"]
        assert result.xhtml == SAMPLE_PAGE_WITH_NODE_IDS.replace(
            P2_SOURCE, '<p data-node-id="p-2">Changed</p>'
        )

    def test_ids_inside_comments_and_cdata_are_ignored(self, tracker):
        """replace_by_identifiers should only match real elements."""
        result = tracker.replace_by_identifiers(SAMPLE_PAGE_WITH_NODE_IDS, {"fake": "<p>x</p>"})

        assert result.missing == ["fake"]
        assert result.xhtml == SAMPLE_PAGE_WITH_NODE_IDS

    def test_replaces_macro_with_cdata_body(self, tracker):
        """replace_by_identifiers should replace the whole macro span."""
        result = tracker.replace_by_identifiers(SAMPLE_PAGE_WITH_NODE_IDS, {"c-1": "<p>Code gone</p>"})

        assert '<p data-node-id="c-1">Code gone</p>' in result.xhtml
        assert "fake" not in result.xhtml
        assert "<!-- <p data-node-id=\"p-2\">commented out</p> -->" in result.xhtml

    def test_missing_id_leaves_document_unchanged(self, tracker, caplog):
        """replace_by_identifiers should replace nothing when any id is missing."""
        with caplog.at_level(logging.WARNING):
            result = tracker.replace_by_identifiers(
                SAMPLE_PAGE_WITH_NODE_IDS, {"p-1": "<p>x</p>", "nope": "<p>y</p>"}
            )

        assert result.xhtml == SAMPLE_PAGE_WITH_NODE_IDS
        assert result.missing == ["nope"]
        assert result.replaced == []
        assert "nope" in caplog.text

    def test_fragment_id_is_kept(self, tracker):
        """replace_by_identifiers should not overwrite an id already on the fragment."""
        result = tracker.replace_by_identifiers(
            SAMPLE_PAGE_WITH_NODE_IDS, {"p-1": '<p data-node-id="other">x</p>'}
        )

        assert '<p data-node-id="other">x</p>' in result.xhtml
        assert P1_SOURCE not in result.xhtml

    def test_only_first_fragment_node_is_spliced(self, tracker):
        """replace_by_identifiers should splice the first node of a multi-node fragment."""
        result = tracker.replace_by_identifiers(SAMPLE_PAGE_WITH_NODE_IDS, {"p-1": "<p>a</p><p>b</p>"})

        assert '<p data-node-id="p-1">a</p>\n' in result.xhtml
        assert "<p>b</p>" not in result.xhtml

    def test_several_edits(self, tracker):
        """replace_by_identifiers should apply every edit."""
        result = tracker.replace_by_identifiers(
            SAMPLE_PAGE_WITH_NODE_IDS, {"h-1": "<h1>New</h1>", "p-2": "<p>Changed</p>"}
        )

        assert result.replaced == ["h-1", "p-2"]
        assert result.xhtml.startswith('<h1 data-node-id="h-1">New</h1>\n' + P1_SOURCE)

    def test_custom_node_id_attribute(self):
        """replace_by_identifiers should honor the configured attribute name."""
        tracker = NodeTracker(ConverterConfig(node_id_attribute="local-id"))

        result = tracker.replace_by_identifiers('<p local-id="a">x</p><p>y</p>', {"a": "<p>z</p>"})

        assert result.xhtml == '<p local-id="a">z</p><p>y</p>'


class TestPlanPartialUpdate:
    """Test cases for choosing between partial and full updates."""

    def test_unchanged_markdown_replaces_nothing(self, tracker):
        """plan_partial_update should leave the document alone when nothing changed."""
        markdown = tracker.render_tagged(SAMPLE_PAGE_WITH_NODE_IDS)

        plan = tracker.plan_partial_update(SAMPLE_PAGE_WITH_NODE_IDS, markdown)

        assert plan.partial is True
        assert plan.replaced == []
        assert plan.xhtml == SAMPLE_PAGE_WITH_NODE_IDS

    def test_edited_block_replaces_its_node_only(self, tracker):
        """plan_partial_update should replace only the edited node."""
        markdown = tracker.render_tagged(SAMPLE_PAGE_WITH_NODE_IDS).replace(
            "First paragraph.", "First paragraph, edited."
        )

        plan = tracker.plan_partial_update(SAMPLE_PAGE_WITH_NODE_IDS, markdown)

        assert plan.partial is True
        assert plan.replaced == ["p-1"]
        assert plan.xhtml == SAMPLE_PAGE_WITH_NODE_IDS.replace(
            P1_SOURCE, '<p data-node-id="p-1">First paragraph, edited.</p>'
        )

    def test_page_header_is_ignored(self, tracker):
        """plan_partial_update should accept markdown with a page header."""
        body = tracker.render_tagged(SAMPLE_PAGE_WITH_NODE_IDS).replace("# Overview", "# Summary")
        markdown = emit_header(HeaderMeta(space_id="1", page_id="2", title="T")) + body

        plan = tracker.plan_partial_update(SAMPLE_PAGE_WITH_NODE_IDS, markdown)

        assert plan.replaced == ["h-1"]
        assert plan.xhtml.startswith('<h1 data-node-id="h-1">Summary</h1>\n')

    def test_missing_id_falls_back_to_full_update(self, tracker):
        """plan_partial_update should convert everything when a tag has no node."""
        plan = tracker.plan_partial_update(
            SAMPLE_PAGE_WITH_NODE_IDS, "<!-- tag:content nodeId:gone -->\nNew text"
        )

        assert plan.partial is False
        assert plan.missing == ["gone"]
        assert plan.xhtml == "<p>New text</p>"

    def test_untagged_markdown_is_converted_fully(self, tracker):
        """plan_partial_update should convert markdown without tags fully."""
        plan = tracker.plan_partial_update(SAMPLE_PAGE_WITH_NODE_IDS, "Just text")

        assert plan.partial is False
        assert plan.xhtml == "<p>Just text</p>"

    def test_block_with_several_nodes_falls_back(self, tracker):
        """plan_partial_update should fall back when a block becomes several nodes."""
        markdown = "<!-- tag:content nodeId:p-1 -->\n# A\nbody"

        plan = tracker.plan_partial_update(SAMPLE_PAGE_WITH_NODE_IDS, markdown)

        assert plan.partial is False
        assert plan.xhtml == "<h1>A</h1><p>body</p>"

    def test_added_untagged_block_falls_back(self, tracker, caplog):
        """plan_partial_update should convert everything when a new block has no tag."""
        xhtml = '<p data-node-id="a">one</p><p data-node-id="b">two</p>'
        markdown = tracker.render_tagged(xhtml) + "\n\nA brand new paragraph"

        with caplog.at_level(logging.WARNING):
            plan = tracker.plan_partial_update(xhtml, markdown)

        assert plan.partial is False
        assert plan.xhtml == "<p>one</p><p>two</p><p>A brand new paragraph</p>"
        assert "Untagged blocks" in caplog.text

    def test_edited_untagged_block_falls_back(self, tracker):
        """plan_partial_update should convert everything when untagged text changed."""
        markdown = tracker.render_tagged(SAMPLE_PAGE_WITH_NODE_IDS).replace("Loose text", "Tight text")

        plan = tracker.plan_partial_update(SAMPLE_PAGE_WITH_NODE_IDS, markdown)

        assert plan.partial is False
        assert "Tight text" in plan.xhtml

    def test_deleted_tagged_block_falls_back(self, tracker, caplog):
        """plan_partial_update should convert everything when a tagged block was removed."""
        xhtml = '<p data-node-id="a">one</p><p data-node-id="b">two</p>'
        markdown = "<!-- tag:content nodeId:a -->\none"

        with caplog.at_level(logging.WARNING):
            plan = tracker.plan_partial_update(xhtml, markdown)

        assert plan.partial is False
        assert plan.xhtml == "<p>one</p>"
        assert "Tagged blocks removed for nodes b" in caplog.text
