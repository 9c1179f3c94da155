"""Markdown converter using markdownify and a typed reverse parser.

This module provides bidirectional conversion between Confluence storage format
(XHTML) and markdown. Uses markdownify for HTML→markdown (after Confluence
constructs are lifted into durable tokens) and the MarkdownParser /
StorageEmitter pair for markdown→storage conversion.
"""

import logging
import re
from typing import List, Optional, Tuple

from bs4 import NavigableString, Tag
from markdownify import MarkdownConverter as BaseMarkdownConverter
from markdownify import chomp

from .config import DEFAULT_CONFIG, ConverterConfig
from .errors import ConversionError, ConverterError
from .escaping import normalize_escaping
from .macro_normalizer import MacroNormalizer, placeholder_index
from .markdown_parser import MarkdownParser
from .models import ConversionResult, DurableToken, MappedBlock, NormalizedDocument
from .page_header import parse_header
from .storage_emitter import StorageEmitter
from .storage_parser import parse_storage, top_level_container
from .token_decoder import TokenDecoder, encode_destination

logger = logging.getLogger(__name__)

# Text that would read as a heading, bullet, quote, rule or tilde fence at a line start
_BLOCK_SYNTAX = r'#{1,6}(?=\s|$)|[-+]+(?=\s|$)|>|~{3,}'
LEADING_BLOCK_SYNTAX = re.compile(r'^([ \t]*)(%s)' % _BLOCK_SYNTAX)
NEWLINE_BLOCK_SYNTAX = re.compile(r'(?<=\n)([ \t]*)(%s)' % _BLOCK_SYNTAX)

LINE_BLOCK_TAGS = frozenset([
    'p', 'div', 'section', 'article', 'blockquote', 'body', '[document]',
    'ac:rich-text-body', 'ac:layout-cell',
])
BLOCK_BOUNDARY_TAGS = LINE_BLOCK_TAGS | frozenset([
    'br', 'hr', 'table', 'ul', 'ol', 'pre', 'h1', 'h2', 'h3', 'h4', 'h5', 'h6',
])
# Inline tags that put their own markdown in front of the text
PREFIXED_INLINE_TAGS = frozenset([
    'a', 'b', 'strong', 'em', 'i', 'code', 'kbd', 'samp', 's', 'del', 'strike',
    'li', 'td', 'th', 'h1', 'h2', 'h3', 'h4', 'h5', 'h6', 'pre',
])


def _starts_line(el) -> bool:
    """Whether a text node begins a line of rendered block text."""
    node = el
    while True:
        previous = node.previous_sibling
        while isinstance(previous, NavigableString) and not previous.strip():
            previous = previous.previous_sibling
        if previous is not None:
            return isinstance(previous, Tag) and previous.name in BLOCK_BOUNDARY_TAGS

        parent = node.parent
        if parent is None or parent.name in LINE_BLOCK_TAGS:
            return True
        if parent.name in PREFIXED_INLINE_TAGS:
            return False
        node = parent


class BlockRenderer(BaseMarkdownConverter):
    """markdownify converter with Confluence-friendly settings.

    Resolves <mdtoken> placeholders left by the MacroNormalizer through a
    TokenDecoder, so durable tokens are never escaped or reflowed.
    """

    def __init__(self, tokens: Optional[List[DurableToken]] = None,
                 config: ConverterConfig = DEFAULT_CONFIG, **options):
        # Set defaults for clean output
        options.setdefault('heading_style', 'atx')  # Use # style headings
        options.setdefault('bullets', '-')  # Use - for bullets
        options.setdefault('strong_em_symbol', '*')  # Use * for bold/italic
        super().__init__(**options)
        self.tokens = tokens if tokens is not None else []
        self.config = config
        self.decoder = TokenDecoder(self)

    def token_for(self, el) -> Optional[DurableToken]:
        index = placeholder_index(el)
        if index is None or index >= len(self.tokens):
            return None
        return self.tokens[index]

    def escape(self, text, parent_tags):
        """Escape markdown syntax in text, including link and comment openers."""
        text = super().escape(text, parent_tags)
        if not text:
            return ''
        text = text.replace('`', r'\`').replace('[', r'\[').replace(']', r'\]')
        text = text.replace('<!--', r'<\!--')
        return NEWLINE_BLOCK_SYNTAX.sub(r'\1\\\2', text)

    def process_text(self, el, parent_tags=None):
        """Render a text node, escaping block syntax when it starts a line."""
        text = super().process_text(el, parent_tags)
        parent_tags = parent_tags or set()
        if not text or '_noformat' in parent_tags or '_inline' in parent_tags:
            return text
        if _starts_line(el):
            text = LEADING_BLOCK_SYNTAX.sub(r'\1\\\2', text, count=1)
        return text

    def convert_mdtoken(self, el, text, parent_tags):
        token = self.token_for(el)
        if token is None:
            logger.debug("Placeholder without a token, keeping its text")
            return text

        markdown = self.decoder.decode(token, parent_tags)
        if markdown and self.decoder.is_block(token, parent_tags):
            return '\n\n%s\n\n' % markdown
        return markdown

    def convert_hr(self, el, text, parent_tags):
        return '\n\n%s\n\n' % self.config.rule

    def convert_a(self, el, text, parent_tags):
        if '_noformat' in parent_tags:
            return text
        prefix, suffix, text = chomp(text)
        if not text:
            return ''
        href = el.get('href')
        if not href:
            return prefix + text + suffix
        return '%s[%s](%s)%s' % (prefix, text, encode_destination(href), suffix)

    def convert_img(self, el, text, parent_tags):
        alt = self.escape(el.attrs.get('alt', None) or '', parent_tags)
        src = el.attrs.get('src', None) or ''
        if not src:
            return alt
        return '![%s](%s)' % (alt, encode_destination(src))

    def convert_br(self, el, text, parent_tags):
        """Convert <br> tags; inside table cells they become cell line breaks."""
        if 'td' in parent_tags or 'th' in parent_tags:
            return '\n'
        return super().convert_br(el, text, parent_tags)


class MarkdownConverter:
    """Converts between XHTML and markdown.

    Download: storage → MacroNormalizer → BlockRenderer → normalize_escaping.
    Upload: markdown → MarkdownParser → StorageEmitter.

    Holds only immutable configuration, so one instance may be shared.
    """

    def __init__(self, config: ConverterConfig = DEFAULT_CONFIG):
        self.config = config

    def render_blocks(self, xhtml: str) -> Tuple[List[MappedBlock], NormalizedDocument]:
        """Render each top-level storage node to markdown.

        Args:
            xhtml: Confluence storage format XHTML string

        Returns:
            Tuple of (mapped blocks in document order, normalized document)

        Raises:
            StorageParseError: If the input cannot be parsed
        """
        soup = parse_storage(xhtml, self.config.parser)
        document = MacroNormalizer(self.config).normalize(soup)
        renderer = BlockRenderer(document.tokens, self.config)
        node_id_attr = self.config.node_id_attribute

        blocks = []
        for node in list(top_level_container(soup).children):
            markdown = normalize_escaping(
                renderer.process_element(node, parent_tags=set()).strip()
            )
            if not markdown:
                continue
            node_id = node.get(node_id_attr) if isinstance(node, Tag) else None
            blocks.append(MappedBlock(markdown=markdown, node_id=node_id))

        logger.debug(f"Rendered {len(blocks)} top-level blocks")
        return blocks, document

    def convert(self, xhtml: str) -> ConversionResult:
        """Convert storage format to markdown with fidelity report.

        Args:
            xhtml: Confluence storage format XHTML string

        Returns:
            ConversionResult with markdown, mapped blocks and warnings

        Raises:
            ConversionError: If the input cannot be parsed or rendering fails
        """
        if xhtml is None or xhtml == "":
            return ConversionResult(markdown="")

        try:
            blocks, document = self.render_blocks(xhtml)
        except ConverterError:
            raise
        except Exception as e:
            raise ConversionError(f"Markdownify conversion failed: {e}") from e

        markdown = "\n\n".join(block.markdown for block in blocks)
        return ConversionResult(
            markdown=markdown,
            blocks=blocks,
            metadata={
                'token_count': len(document.tokens),
                'block_count': len(blocks),
            },
            warnings=list(document.warnings),
        )

    def xhtml_to_markdown(self, xhtml: str) -> str:
        """Convert XHTML to markdown.

        Args:
            xhtml: Confluence storage format XHTML string

        Returns:
            Markdown string in the portable dialect
        """
        return self.convert(xhtml).markdown

    def markdown_to_xhtml(self, markdown: str) -> str:
        """Convert markdown to Confluence storage format.

        A leading page header comment is skipped.

        Args:
            markdown: Markdown string

        Returns:
            XHTML string suitable for Confluence storage format
        """
        if not markdown:
            return ""

        _, body = parse_header(markdown)
        blocks = MarkdownParser().parse(body)
        xhtml = StorageEmitter(self.config).emit(blocks)
        logger.debug(f"Emitted {len(blocks)} blocks as storage format")
        return xhtml
