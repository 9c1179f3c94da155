"""Storage format parsing helpers.

Wraps BeautifulSoup so every pass parses Confluence storage XHTML the same
way, and provides source-offset lookups used to splice replacement nodes
into a document without re-serializing untouched markup.

CDATA sections (code bodies, link bodies) are turned into entity-escaped
text before parsing, since html.parser does not treat CDATA as text in
HTML content.
"""

import html
import logging
import re
from typing import List, Optional, Tuple

from bs4 import BeautifulSoup, Tag
from bs4.builder import ParserRejectedMarkup

from .errors import StorageParseError

logger = logging.getLogger(__name__)

CDATA_PATTERN = re.compile(r'<!\[CDATA\[(.*?)\]\]>', re.DOTALL)
COMMENT_PATTERN = re.compile(r'<!--.*?-->', re.DOTALL)

# Comments, then start/end tags with quoted attribute values
_TAG_SCAN_PATTERN = re.compile(
    r'<!--.*?-->'
    r'|<(?P<close>/?)(?P<name>[A-Za-z][\w:.-]*)'
    r'(?P<attrs>(?:[^>"\']|"[^"]*"|\'[^\']*\')*?)(?P<selfclose>/?)>',
    re.DOTALL
)

VOID_ELEMENTS = frozenset({
    'area', 'base', 'br', 'col', 'embed', 'hr', 'img', 'input',
    'link', 'meta', 'param', 'source', 'track', 'wbr',
})


def unwrap_cdata(xhtml: str) -> str:
    """Replace CDATA sections with equivalent entity-escaped text."""
    return CDATA_PATTERN.sub(lambda m: html.escape(m.group(1), quote=False), xhtml)


def parse_storage(xhtml: str, parser: str = "html.parser") -> BeautifulSoup:
    """Parse storage XHTML into a markup tree.

    Args:
        xhtml: Confluence storage format XHTML string
        parser: BeautifulSoup parser name

    Returns:
        BeautifulSoup object for DOM manipulation

    Raises:
        StorageParseError: If input is not a string or the parser rejects it
    """
    if xhtml is None:
        xhtml = ""
    if not isinstance(xhtml, str):
        raise StorageParseError(f"expected str, got {type(xhtml).__name__}")

    try:
        return BeautifulSoup(unwrap_cdata(xhtml), parser)
    except ParserRejectedMarkup as e:
        raise StorageParseError(str(e), xhtml) from e


def parse_fragment(fragment: str, parser: str = "html.parser") -> List:
    """Parse a storage fragment and return its top-level nodes."""
    soup = parse_storage(fragment, parser)
    return list(top_level_container(soup).children)


def top_level_container(soup: BeautifulSoup) -> Tag:
    """Return the element whose children are the document's top-level nodes.

    lxml and html5lib wrap content in html/body; html.parser does not.
    """
    body = soup.find("body")
    return body if body is not None else soup


def mask_markup(xhtml: str) -> str:
    """Blank out CDATA and comment contents while keeping every offset.

    Newlines are kept so parser line numbers still match the original.
    CDATA sections become comments of the same length.
    """
    def blank(text: str) -> str:
        return "".join(c if c == "\n" else " " for c in text)

    def mask_cdata(match: re.Match) -> str:
        segment = match.group(0)
        return "<!--" + blank(segment[4:-3]) + "-->"

    def mask_comment(match: re.Match) -> str:
        segment = match.group(0)
        return "<!--" + blank(segment[4:-3]) + "-->"

    masked = CDATA_PATTERN.sub(mask_cdata, xhtml)
    return COMMENT_PATTERN.sub(mask_comment, masked)


class SourceIndex:
    """Maps parsed elements back to their character span in the source.

    Built from a masked copy of the document so that element source
    positions (recorded by html.parser) line up with the original text.
    """

    def __init__(self, xhtml: str):
        self.source = xhtml
        self.masked = mask_markup(xhtml)
        self._line_starts = [0] + [i + 1 for i, c in enumerate(self.masked) if c == "\n"]
        self.soup = BeautifulSoup(self.masked, "html.parser")

    def find_by_attribute(self, attribute: str, value: str) -> Optional[Tag]:
        return self.soup.find(attrs={attribute: value})

    def offset_of(self, element: Tag) -> Optional[int]:
        line = getattr(element, "sourceline", None)
        column = getattr(element, "sourcepos", None)
        if line is None or column is None or line < 1 or line > len(self._line_starts):
            return None
        return self._line_starts[line - 1] + column

    def span_of(self, element: Tag) -> Optional[Tuple[int, int]]:
        """Return (start, end) offsets of an element, or None if unknown."""
        start = self.offset_of(element)
        if start is None:
            return None
        end = element_end(self.masked, start)
        if end is None:
            return None
        return start, end


def element_end(markup: str, start: int) -> Optional[int]:
    """Find the offset just past the element whose start tag begins at start.

    Counts nested start/end tags; void and self-closed tags do not nest.
    Returns None when the element is never closed.
    """
    depth = 0
    for match in _TAG_SCAN_PATTERN.finditer(markup, start):
        name = match.group('name')
        if name is None:
            if depth == 0:
                return None
            continue
        name = name.lower()
        if depth == 0:
            if match.start() != start or match.group('close'):
                return None
            if match.group('selfclose') or name in VOID_ELEMENTS:
                return match.end()
            depth = 1
            continue
        if match.group('close'):
            depth -= 1
            if depth == 0:
                return match.end()
        elif not match.group('selfclose') and name not in VOID_ELEMENTS:
            depth += 1
    return None
