"""Data models for the content converter.

This module defines the typed intermediate representation shared by the
conversion passes:

- DurableToken: storage constructs lifted out of the tree during
  normalization and rendered to markdown by the token decoder
- Block / InlineNode: markdown parsed back into a typed tree before the
  storage emitter writes Confluence markup
- MappedBlock / InlineTag / TaggedBlock: node identity bookkeeping for
  partial updates
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional


class TokenKind(Enum):
    """Kinds of durable tokens produced by the macro normalizer."""

    WIDGET = "widget"
    STATUS = "status"
    MENTION = "mention"
    PANEL = "panel"
    IMAGE = "image"
    CODE = "code"
    COMMENT_START = "comment_start"
    COMMENT_END = "comment_end"
    PAGE_LINK = "page_link"
    ATTACHMENT_LINK = "attachment_link"
    URL_LINK = "url_link"
    TABLE = "table"
    HTML_COMMENT = "html_comment"


@dataclass
class DurableToken:
    """A storage construct that must survive generic block conversion.

    Attributes:
        kind: Token kind
        payload: String fields for the kind (e.g. color/title for status)
        markup: Detached markup for kinds that carry a body (panel, table)
    """

    kind: TokenKind
    payload: Dict[str, str] = field(default_factory=dict)
    markup: Any = None

    def get(self, key: str, default: str = "") -> str:
        return self.payload.get(key, default) or default


class MacroKind(Enum):
    """Closed set of structured macros the converter understands.

    Anything else classifies as UNRECOGNIZED and is unwrapped so its body
    text is not lost.
    """

    WIDGET = "widget"
    STATUS = "status"
    CODE = "code"
    NOFORMAT = "noformat"
    INFO = "info"
    NOTE = "note"
    WARNING = "warning"
    TIP = "tip"
    SUCCESS = "success"
    ERROR = "error"
    PANEL = "panel"
    INLINE_COMMENT_MARKER = "inline-comment-marker"
    INLINE_COMMENT_END = "inline-comment-end"
    UNRECOGNIZED = ""

    @classmethod
    def from_name(cls, name: Optional[str], widget_names: Iterable[str] = ("toc",)) -> "MacroKind":
        """Map a macro name to its kind, never raising."""
        normalized = (name or "").strip().lower()
        if not normalized:
            return cls.UNRECOGNIZED
        if normalized in {w.lower() for w in widget_names}:
            return cls.WIDGET
        for kind in cls:
            if kind not in (cls.WIDGET, cls.UNRECOGNIZED) and kind.value == normalized:
                return kind
        return cls.UNRECOGNIZED

    @property
    def is_panel(self) -> bool:
        return self in PANEL_MACROS


PANEL_MACROS = frozenset({
    MacroKind.INFO,
    MacroKind.NOTE,
    MacroKind.WARNING,
    MacroKind.TIP,
    MacroKind.SUCCESS,
    MacroKind.ERROR,
    MacroKind.PANEL,
})


class UnsupportedFeature(Enum):
    """Layout and macro features reported as not surviving conversion."""

    MULTI_COLUMN = "multi-column layout"
    PAGE_LAYOUT = "page layout"
    EXPAND = "expand/collapse sections"
    EXCERPT = "excerpt macros"
    JIRA = "Jira issue integration"
    INCLUDE = "page include"
    PAGE_TREE = "page tree/children display"
    ROADMAP = "roadmap/timeline"
    IFRAME = "embedded iframe/widget/HTML"
    MERGED_CELLS = "merged table cells"
    CHART = "charts/diagrams"
    ATTACHMENTS = "attachments list"
    DYNAMIC_CONTENT = "dynamic content display"


@dataclass
class NormalizedDocument:
    """Output of the macro normalizer.

    Attributes:
        soup: Markup tree with recognized constructs replaced by placeholders
        tokens: Side list of tokens; placeholders index into it
        warnings: Fidelity report (unsupported feature names)
    """

    soup: Any
    tokens: List[DurableToken] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass
class MappedBlock:
    """One top-level storage node rendered to markdown.

    Attributes:
        markdown: Rendered markdown text
        node_id: Node identifier from storage (None if not targetable)
    """

    markdown: str
    node_id: Optional[str] = None


@dataclass
class InlineTag:
    """Marker placed before a markdown block to tie it to a storage node."""

    node_id: Optional[str] = None
    tag_type: str = "content"


@dataclass
class TaggedBlock:
    """A markdown block and the inline tag that preceded it, if any."""

    text: str
    tag: Optional[InlineTag] = None

    @property
    def node_id(self) -> Optional[str]:
        return self.tag.node_id if self.tag else None


class InlineKind(Enum):
    """Kinds of inline nodes produced by the inline parser."""

    TEXT = "text"
    STRONG = "strong"
    EMPHASIS = "emphasis"
    CODE = "code"
    LINK = "link"
    PAGE_LINK = "page_link"
    ATTACHMENT_LINK = "attachment_link"
    IMAGE = "image"
    MENTION = "mention"
    STATUS = "status"
    COMMENT_RANGE = "comment_range"
    COMMENT_START = "comment_start"
    COMMENT_END = "comment_end"
    LINE_BREAK = "line_break"


@dataclass
class InlineNode:
    """Inline content node.

    Attributes:
        kind: Node kind
        text: Literal text (TEXT, CODE) or link text for plain-text link bodies
        children: Nested inline nodes (STRONG, EMPHASIS, LINK, COMMENT_RANGE)
        attrs: Kind-specific attributes (href, account_id, ref, ...)
    """

    kind: InlineKind
    text: str = ""
    children: List["InlineNode"] = field(default_factory=list)
    attrs: Dict[str, str] = field(default_factory=dict)


class BlockKind(Enum):
    """Kinds of markdown blocks recognized by the reverse parser."""

    PARAGRAPH = "paragraph"
    HEADING = "heading"
    BULLET_LIST = "bullet_list"
    ORDERED_LIST = "ordered_list"
    CODE = "code"
    TABLE = "table"
    PANEL = "panel"
    QUOTE = "quote"
    IMAGE = "image"
    RULE = "rule"
    WIDGET = "widget"
    STATUS = "status"


@dataclass
class ListItem:
    """List item with optional nested list."""

    inlines: List[InlineNode] = field(default_factory=list)
    children: Optional["Block"] = None


@dataclass
class TableCell:
    """Table cell parsed from a GFM row.

    Attributes:
        lines: One inline list per line (cells split on a literal \\n)
        header: True for cells in the header row
        background: Background color from a trailing cell style comment
    """

    lines: List[List[InlineNode]] = field(default_factory=list)
    header: bool = False
    background: Optional[str] = None


@dataclass
class Block:
    """Markdown block in the typed tree.

    Only the fields relevant to a kind are populated:
    - inlines: PARAGRAPH, HEADING, IMAGE caption
    - paragraphs: PANEL, QUOTE (each paragraph is a list of inline lines)
    - items: BULLET_LIST, ORDERED_LIST
    - rows: TABLE
    - attrs: kind-specific strings (language, color, name, src, ...)
    """

    kind: BlockKind
    inlines: List[InlineNode] = field(default_factory=list)
    paragraphs: List[List[List[InlineNode]]] = field(default_factory=list)
    items: List[ListItem] = field(default_factory=list)
    rows: List[List[TableCell]] = field(default_factory=list)
    text: str = ""
    level: int = 0
    attrs: Dict[str, str] = field(default_factory=dict)


@dataclass
class ConversionResult:
    """Result of storage format to markdown conversion.

    Contains the converted markdown content along with metadata
    and warnings about unsupported features encountered during conversion.

    Attributes:
        markdown: Converted markdown content
        blocks: Per top-level node blocks with node identifiers
        metadata: Additional metadata about the conversion
        warnings: Unsupported feature names (fidelity report)
    """

    markdown: str
    blocks: List[MappedBlock] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)


@dataclass
class ReplaceResult:
    """Result of replacing storage nodes by identifier.

    Attributes:
        xhtml: Updated storage markup (unchanged if anything was missing)
        missing: Identifiers not found in the document
        replaced: Identifiers that were replaced
    """

    xhtml: str
    missing: List[str] = field(default_factory=list)
    replaced: List[str] = field(default_factory=list)


@dataclass
class PartialUpdatePlan:
    """Storage body to submit for an edited markdown page.

    Attributes:
        xhtml: Storage markup to submit
        partial: True if only tagged nodes were replaced
        missing: Identifiers that forced a full-document fallback
        replaced: Identifiers replaced in place
    """

    xhtml: str
    partial: bool
    missing: List[str] = field(default_factory=list)
    replaced: List[str] = field(default_factory=list)


@dataclass
class HeaderMeta:
    """Metadata kept in the top-of-file comment header."""

    readonly: bool = False
    space_id: Optional[str] = None
    page_id: Optional[str] = None
    title: Optional[str] = None
    status: Optional[str] = None


@dataclass
class HeaderExtras:
    """Page decorations derived from storage markup and title."""

    emoji: Optional[str] = None
    status: Optional[str] = None
    image: Optional[str] = None
