"""Node identity tracking for partial page updates.

Top-level storage nodes may carry a node identifier attribute. Downloaded
markdown marks each identified block with an inline tag:

    <!-- tag:content nodeId:abc-123 -->
    Paragraph text

On upload, only tagged blocks are converted and spliced over the source
span of the matching node, so every other byte of the fetched document is
left exactly as Confluence returned it.
"""

import html
import logging
import re
from typing import Dict, List, Optional

from bs4 import Tag

from .config import DEFAULT_CONFIG, ConverterConfig
from .markdown_converter import MarkdownConverter
from .models import InlineTag, MappedBlock, PartialUpdatePlan, ReplaceResult, TaggedBlock
from .page_header import parse_header
from .storage_parser import SourceIndex, parse_fragment

logger = logging.getLogger(__name__)

TAG_PATTERN = re.compile(r'<!--\s*tag:(?P<type>[\w-]+)?\s+(?:nodeId:(?P<id>[\w:-]+))\s*-->')
FENCE_PATTERN = re.compile(r'^ {0,3}(`{3,}|~{3,})')
START_TAG_NAME = re.compile(r'^<[A-Za-z][\w:.-]*')


def emit_tag(tag: InlineTag) -> str:
    """Render an inline tag line (with trailing newline)."""
    node_id = f" nodeId:{tag.node_id}" if tag.node_id else ""
    return f"<!-- tag:{tag.tag_type or 'content'}{node_id} -->\n"


def parse_tagged_blocks(markdown: str) -> List[TaggedBlock]:
    """Split markdown into blocks, each tied to the inline tag before it.

    Blocks end at blank lines and at tag lines. Blank lines inside fenced
    code do not end a block.
    """
    blocks: List[TaggedBlock] = []
    pending: Optional[InlineTag] = None
    current: List[str] = []
    fence: Optional[str] = None

    def flush():
        nonlocal pending
        if not current:
            return
        text = "\n".join(current).rstrip()
        if text.strip():
            blocks.append(TaggedBlock(text=text, tag=pending))
        pending = None
        current.clear()

    for line in (markdown or "").replace("\r\n", "\n").split("\n"):
        if fence is None:
            match = TAG_PATTERN.search(line)
            if match and not line.replace(match.group(0), "").strip():
                flush()
                pending = InlineTag(node_id=match.group("id"), tag_type=match.group("type") or "content")
                continue

        current.append(line)

        match = FENCE_PATTERN.match(line)
        if fence is None and match:
            fence = match.group(1)
        elif fence is not None and line.strip() and set(line.strip()) == {fence[0]} and len(line.strip()) >= len(fence):
            fence = None
        elif fence is None and not line.strip():
            flush()

    flush()
    return blocks


class NodeTracker:
    """Maps markdown blocks to storage nodes and replaces nodes by identifier."""

    def __init__(self, config: ConverterConfig = DEFAULT_CONFIG,
                 converter: Optional[MarkdownConverter] = None):
        self.config = config
        self.converter = converter or MarkdownConverter(config)

    def segment(self, xhtml: str) -> List[MappedBlock]:
        """Render each top-level storage node to a markdown block.

        Args:
            xhtml: Confluence storage format XHTML string

        Returns:
            Blocks in document order; text-only nodes carry no identifier
        """
        if not xhtml:
            return []
        blocks, _ = self.converter.render_blocks(xhtml)
        return blocks

    def render_tagged(self, xhtml: str) -> str:
        """Render storage to markdown with an inline tag before each identified block."""
        parts = []
        for block in self.segment(xhtml):
            if block.node_id:
                parts.append(emit_tag(InlineTag(node_id=block.node_id)) + block.markdown)
            else:
                parts.append(block.markdown)
        return "\n\n".join(parts)

    def parse_tagged_blocks(self, markdown: str) -> List[TaggedBlock]:
        return parse_tagged_blocks(markdown)

    def emit_tag(self, tag: InlineTag) -> str:
        return emit_tag(tag)

    def replace_by_identifiers(self, xhtml: str, edits: Dict[str, str]) -> ReplaceResult:
        """Replace identified nodes with new storage fragments.

        Each fragment's first top-level node is spliced over the exact
        source span of the element bearing the identifier. If any
        identifier is missing, nothing is replaced: a partly applied edit
        set would leave the page in a state no markdown file describes, so
        callers get the original back and fall back to a full update.

        Args:
            xhtml: Original storage markup
            edits: Mapping of node identifier to replacement fragment

        Returns:
            ReplaceResult with updated markup and missing/replaced ids
        """
        attribute = self.config.node_id_attribute
        xhtml = xhtml or ""

        index = SourceIndex(xhtml)
        missing = [node_id for node_id in edits if index.find_by_attribute(attribute, node_id) is None]
        if missing:
            logger.warning(f"Node identifiers not found, leaving document unchanged: {', '.join(missing)}")
            return ReplaceResult(xhtml=xhtml, missing=missing)

        result = xhtml
        replaced: List[str] = []
        for node_id, fragment in edits.items():
            index = SourceIndex(result)
            element = index.find_by_attribute(attribute, node_id)
            span = index.span_of(element) if element is not None else None
            if span is None:
                logger.warning(f"Cannot locate source span for node {node_id}, leaving document unchanged")
                return ReplaceResult(xhtml=xhtml, missing=[node_id])

            start, end = span
            result = result[:start] + self._first_node_markup(fragment, node_id) + result[end:]
            replaced.append(node_id)

        logger.info(f"Replaced {len(replaced)} nodes by identifier")
        return ReplaceResult(xhtml=result, replaced=replaced)

    def _first_node_markup(self, fragment: str, node_id: str) -> str:
        """Take the first top-level node of a fragment, carrying node_id onto it."""
        attribute = self.config.node_id_attribute
        index = SourceIndex(fragment or "")

        first = next(
            (child for child in index.soup.children if isinstance(child, Tag) or str(child).strip()),
            None,
        )
        if first is None:
            return ""
        if not isinstance(first, Tag):
            return html.escape(str(first).strip(), quote=False)

        span = index.span_of(first)
        if span is None:
            return fragment.strip()
        extra = [c for c in index.soup.children if c is not first and (isinstance(c, Tag) or str(c).strip())]
        if extra:
            logger.debug(f"Fragment for node {node_id} has {len(extra)} extra top-level nodes, splicing the first only")

        markup = fragment[span[0]:span[1]]
        if first.get(attribute) is None:
            value = html.escape(node_id, quote=True)
            markup = START_TAG_NAME.sub(lambda m: f'{m.group(0)} {attribute}="{value}"', markup, count=1)
        return markup

    def count_top_level_nodes(self, fragment: str) -> int:
        return sum(1 for c in parse_fragment(fragment, self.config.parser) if isinstance(c, Tag) or str(c).strip())

    def plan_partial_update(self, xhtml: str, markdown: str) -> PartialUpdatePlan:
        """Decide what storage body to submit for an edited markdown page.

        Tagged blocks whose markdown differs from the current rendering of
        their node replace that node in the fetched document. The plan
        falls back to a full conversion when no block is tagged, when an
        identifier is missing, when untagged blocks were added, removed or
        edited, when a tagged block was deleted, or when a block converts
        to more than one top-level node.

        Args:
            xhtml: Current storage body fetched from Confluence
            markdown: Edited markdown (page header allowed)

        Returns:
            PartialUpdatePlan
        """
        _, body = parse_header(markdown or "")
        edited = parse_tagged_blocks(body)
        blocks = [block for block in edited if block.node_id]

        if not blocks:
            logger.info("No tagged blocks, converting the full document")
            return self._full_update(body)

        index = SourceIndex(xhtml or "")
        attribute = self.config.node_id_attribute
        missing = [block.node_id for block in blocks if index.find_by_attribute(attribute, block.node_id) is None]
        if missing:
            logger.warning(f"Missing node identifiers {', '.join(missing)}, falling back to full update")
            return self._full_update(body, missing=missing)

        baseline = parse_tagged_blocks(self.render_tagged(xhtml))
        current = {block.node_id: block.text for block in baseline if block.node_id}

        untagged = [block.text.strip() for block in edited if not block.node_id]
        if untagged != [block.text.strip() for block in baseline if not block.node_id]:
            logger.warning("Untagged blocks were added, removed or edited, falling back to full update")
            return self._full_update(body)

        present = {block.node_id for block in blocks}
        deleted = [node_id for node_id in current if node_id not in present]
        if deleted:
            logger.warning(f"Tagged blocks removed for nodes {', '.join(deleted)}, falling back to full update")
            return self._full_update(body)

        edits: Dict[str, str] = {}
        for block in blocks:
            if block.node_id in current and current[block.node_id].strip() == block.text.strip():
                continue
            fragment = self.converter.markdown_to_xhtml(block.text)
            if not fragment.strip():
                continue
            if self.count_top_level_nodes(fragment) > 1:
                logger.warning(f"Block for node {block.node_id} converts to several nodes, falling back to full update")
                return self._full_update(body)
            edits[block.node_id] = fragment

        result = self.replace_by_identifiers(xhtml, edits)
        if result.missing:
            logger.warning(f"Missing node identifiers {', '.join(result.missing)}, falling back to full update")
            return self._full_update(body, missing=result.missing)

        logger.info(f"Partial update replaces {len(result.replaced)} nodes")
        return PartialUpdatePlan(xhtml=result.xhtml, partial=True, replaced=result.replaced)

    def _full_update(self, body: str, missing: Optional[List[str]] = None) -> PartialUpdatePlan:
        return PartialUpdatePlan(
            xhtml=self.converter.markdown_to_xhtml(body),
            partial=False,
            missing=list(missing or []),
        )
