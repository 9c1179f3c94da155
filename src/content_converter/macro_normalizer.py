"""Macro normalizer for Confluence storage format.

This module provides the MacroNormalizer class which rewrites Confluence
specific constructs (ac:/ri: namespaced elements) into durable tokens before
the generic block conversion runs.

Each recognized construct is replaced in the tree by an <mdtoken> placeholder
element whose data-index points into a side list of typed DurableToken
objects. Unrecognized macros are unwrapped so their body content survives
even though their semantic type does not.
"""

import logging
from typing import Dict, List, Optional

from bs4 import BeautifulSoup, Comment, NavigableString, Tag

from .config import DEFAULT_CONFIG, ConverterConfig
from .models import (
    DurableToken,
    MacroKind,
    NormalizedDocument,
    TokenKind,
    UnsupportedFeature,
)

logger = logging.getLogger(__name__)

PLACEHOLDER_TAG = "mdtoken"
PLACEHOLDER_INDEX = "data-index"

# Macro names that signal features with no markdown equivalent
UNSUPPORTED_MACROS: Dict[UnsupportedFeature, frozenset] = {
    UnsupportedFeature.MULTI_COLUMN: frozenset({"section", "column"}),
    UnsupportedFeature.EXPAND: frozenset({"expand"}),
    UnsupportedFeature.EXCERPT: frozenset({"excerpt", "excerpt-include"}),
    UnsupportedFeature.JIRA: frozenset({"jira"}),
    UnsupportedFeature.INCLUDE: frozenset({"include"}),
    UnsupportedFeature.PAGE_TREE: frozenset({"children", "pagetree", "pagetreesearch"}),
    UnsupportedFeature.ROADMAP: frozenset({"roadmap", "timeline"}),
    UnsupportedFeature.IFRAME: frozenset({"iframe", "widget", "html"}),
    UnsupportedFeature.CHART: frozenset({"chart", "drawio", "gliffy", "lucidchart"}),
    UnsupportedFeature.ATTACHMENTS: frozenset({"attachments", "viewfile"}),
    UnsupportedFeature.DYNAMIC_CONTENT: frozenset({"contentbylabel", "recentlyupdated"}),
}

# Elements holding macro metadata rather than visible content
METADATA_ELEMENTS = frozenset({
    "ac:parameter",
    "ac:task-id",
    "ac:task-uuid",
    "ac:task-status",
    "ac:placeholder",
})

COMMENT_END_FLAGS = frozenset({"true", "1", "end"})


def detect_unsupported_features(soup: BeautifulSoup) -> List[str]:
    """Detect Confluence features that cannot be represented in markdown.

    Args:
        soup: Parsed storage markup (before normalization)

    Returns:
        Distinct feature names, in a fixed order
    """
    found = set()

    for macro in soup.find_all("ac:structured-macro"):
        name = (macro.get("ac:name") or "").strip().lower()
        for feature, names in UNSUPPORTED_MACROS.items():
            if name in names:
                found.add(feature)

    if soup.find("ac:layout") is not None:
        found.add(UnsupportedFeature.PAGE_LAYOUT)

    for cell in soup.find_all(["td", "th"]):
        for attr in ("colspan", "rowspan"):
            value = str(cell.get(attr) or "").strip()
            if value.isdigit() and int(value) >= 2:
                found.add(UnsupportedFeature.MERGED_CELLS)

    return [feature.value for feature in UnsupportedFeature if feature in found]


def placeholder_index(element: Tag) -> Optional[int]:
    """Return the token index of a placeholder element, or None."""
    if not isinstance(element, Tag) or element.name != PLACEHOLDER_TAG:
        return None
    value = element.get(PLACEHOLDER_INDEX, "")
    return int(value) if str(value).isdigit() else None


def _param(macro: Tag, *names: str) -> str:
    """Read the text of the first ac:parameter matching one of names."""
    wanted = {n.lower() for n in names}
    for param in macro.find_all("ac:parameter", recursive=False):
        if (param.get("ac:name") or "").strip().lower() in wanted:
            return param.get_text().strip()
    return ""


def _link_body_text(link: Tag) -> str:
    body = link.find(["ac:plain-text-link-body", "ac:link-body"])
    return body.get_text().strip() if body is not None else ""


class _NormalizationPass:
    """State for a single normalize() call."""

    def __init__(self, soup: BeautifulSoup, config: ConverterConfig):
        self.soup = soup
        self.config = config
        self.tokens: List[DurableToken] = []
        self.unrecognized: List[str] = []

    # ----- placeholders -----

    def placeholder(self, token: DurableToken, source: Optional[Tag] = None) -> Tag:
        self.tokens.append(token)
        element = self.soup.new_tag(PLACEHOLDER_TAG)
        element[PLACEHOLDER_INDEX] = str(len(self.tokens) - 1)
        node_id_attr = self.config.node_id_attribute
        if source is not None and source.get(node_id_attr):
            element[node_id_attr] = source[node_id_attr]
        return element

    def replace(self, element: Tag, token: DurableToken) -> None:
        element.replace_with(self.placeholder(token, element))

    # ----- traversal -----

    def visit(self, node: Tag) -> None:
        for child in list(node.children):
            if isinstance(child, Comment):
                text = str(child).strip()
                child.replace_with(self.placeholder(
                    DurableToken(TokenKind.HTML_COMMENT, {"text": text})
                ))
            elif isinstance(child, Tag):
                self.handle(child)

    def handle(self, element: Tag) -> None:
        name = (element.name or "").lower()

        if name == PLACEHOLDER_TAG:
            return
        if name == "ac:structured-macro":
            self.handle_macro(element)
        elif name == "ac:link":
            self.handle_link(element)
        elif name == "ac:image":
            self.handle_image(element)
        elif name == "ac:inline-comment-marker":
            self.handle_comment_marker(element)
        elif name == "ac:inline-comment-end":
            self.replace(element, DurableToken(
                TokenKind.COMMENT_END, {"ref": element.get("ac:ref", "")}
            ))
        elif name == "ac:emoticon":
            fallback = element.get("ac:emoji-fallback") or f":{element.get('ac:name', '')}:"
            element.replace_with(NavigableString(fallback))
        elif name == "table":
            self.visit(element)
            # replace_with detaches the table, which then becomes the token body
            self.replace(element, DurableToken(TokenKind.TABLE, markup=element))
        elif name in METADATA_ELEMENTS or name.startswith("ri:"):
            element.decompose()
        elif name == "ac:task-list":
            self.visit(element)
            element.name = "ul"
            element.attrs = {}
        elif name == "ac:task":
            self.visit(element)
            element.name = "li"
            element.attrs = {}
        elif name.startswith("ac:"):
            self.visit(element)
            element.unwrap()
        else:
            self.visit(element)

    # ----- macros -----

    def handle_macro(self, macro: Tag) -> None:
        macro_name = macro.get("ac:name", "")
        kind = MacroKind.from_name(macro_name, self.config.widget_macros)

        if kind == MacroKind.STATUS:
            self.replace(macro, DurableToken(TokenKind.STATUS, {
                "color": _param(macro, "colour", "color").lower(),
                "title": _param(macro, "title"),
            }))
        elif kind in (MacroKind.CODE, MacroKind.NOFORMAT):
            body = macro.find("ac:plain-text-body")
            self.replace(macro, DurableToken(TokenKind.CODE, {
                "language": _param(macro, "language"),
                "body": body.get_text() if body is not None else "",
            }))
        elif kind == MacroKind.WIDGET:
            self.replace(macro, DurableToken(TokenKind.WIDGET, {"name": macro_name.strip().lower()}))
        elif kind.is_panel:
            self.handle_panel(macro, kind)
        elif kind == MacroKind.INLINE_COMMENT_MARKER:
            end_flag = _param(macro, "end", "isEnd", "endMarker", "type").lower()
            token_kind = TokenKind.COMMENT_END if end_flag in COMMENT_END_FLAGS else TokenKind.COMMENT_START
            self.replace(macro, DurableToken(token_kind, {"ref": _param(macro, "ref")}))
        elif kind == MacroKind.INLINE_COMMENT_END:
            self.replace(macro, DurableToken(TokenKind.COMMENT_END, {"ref": _param(macro, "ref")}))
        else:
            self.unwrap_macro(macro)

    def handle_panel(self, macro: Tag, kind: MacroKind) -> None:
        color = icon = kind.value
        if kind == MacroKind.PANEL:
            color = _param(macro, "bgColor") or "panel"
            icon = "panel"

        body = macro.find("ac:rich-text-body", recursive=False)
        if body is None:
            body = self.soup.new_tag("ac:rich-text-body")
        else:
            self.visit(body)
            body.extract()

        self.replace(macro, DurableToken(
            TokenKind.PANEL, {"color": color, "icon": icon}, markup=body
        ))

    def unwrap_macro(self, macro: Tag) -> None:
        """Strip an unrecognized macro, promoting its body content."""
        name = macro.get("ac:name", "")
        self.unrecognized.append(name)

        rich_body = macro.find("ac:rich-text-body", recursive=False)
        plain_body = macro.find("ac:plain-text-body", recursive=False)
        if rich_body is not None:
            self.visit(rich_body)
            if rich_body.contents:
                macro.replace_with(*list(rich_body.children))
            else:
                macro.decompose()
        elif plain_body is not None and plain_body.get_text().strip():
            macro.replace_with(NavigableString(plain_body.get_text()))
        else:
            macro.decompose()

    # ----- links, images, comments -----

    def handle_link(self, link: Tag) -> None:
        user = link.find("ri:user")
        if user is not None:
            account_id = (
                user.get("ri:account-id") or user.get("ri:userkey") or user.get("ri:username") or ""
            )
            label = _link_body_text(link) or account_id
            self.replace(link, DurableToken(
                TokenKind.MENTION, {"account_id": account_id, "label": label}
            ))
            return

        page = link.find("ri:page")
        if page is not None:
            title = page.get("ri:content-title", "")
            self.replace(link, DurableToken(TokenKind.PAGE_LINK, {
                "space": page.get("ri:space-key", ""),
                "title": title,
                "text": _link_body_text(link) or title,
            }))
            return

        attachment = link.find("ri:attachment")
        if attachment is not None:
            filename = attachment.get("ri:filename", "")
            self.replace(link, DurableToken(TokenKind.ATTACHMENT_LINK, {
                "filename": filename,
                "text": _link_body_text(link) or filename,
            }))
            return

        url = link.find("ri:url")
        if url is not None:
            value = url.get("ri:value", "")
            self.replace(link, DurableToken(TokenKind.URL_LINK, {
                "url": value,
                "text": _link_body_text(link) or value,
            }))
            return

        # Unknown resource type: keep only the visible link body
        logger.debug("Unwrapping ac:link with unsupported resource type")
        text = _link_body_text(link)
        if text:
            link.replace_with(NavigableString(text))
        else:
            link.decompose()

    def handle_image(self, image: Tag) -> None:
        url = image.find("ri:url")
        attachment = image.find("ri:attachment")
        reference = ""
        if url is not None and url.get("ri:value"):
            reference = url["ri:value"]
        elif attachment is not None and attachment.get("ri:filename"):
            reference = f"attachment:{attachment['ri:filename']}"

        if not reference:
            logger.debug("Dropping ac:image without a recognizable reference")
            image.decompose()
            return

        caption = image.find("ac:caption")
        self.replace(image, DurableToken(TokenKind.IMAGE, {
            "reference": reference,
            "caption": caption.get_text().strip() if caption is not None else "",
        }))

    def handle_comment_marker(self, marker: Tag) -> None:
        ref = marker.get("ac:ref", "")
        is_end = (
            str(marker.get("ac:end", "")).lower() in COMMENT_END_FLAGS
            or str(marker.get("ac:is-end", "")).lower() in COMMENT_END_FLAGS
            or str(marker.get("ac:type", "")).lower() == "end"
        )
        if is_end:
            self.replace(marker, DurableToken(TokenKind.COMMENT_END, {"ref": ref}))
            return

        self.visit(marker)
        marker.insert_before(self.placeholder(DurableToken(TokenKind.COMMENT_START, {"ref": ref})))
        marker.insert_after(self.placeholder(DurableToken(TokenKind.COMMENT_END, {"ref": ref})))
        marker.unwrap()

    # ----- balancing -----

    def balance_comment_markers(self, root: Tag) -> int:
        """Drop comment start/end placeholders without a partner in root.

        Recurses into detached token bodies (panels, tables), which are
        balanced on their own.

        Returns:
            Number of dropped placeholders
        """
        dropped = 0
        open_starts: Dict[str, List[Tag]] = {}
        unmatched: List[Tag] = []

        for element in root.find_all(PLACEHOLDER_TAG):
            index = placeholder_index(element)
            if index is None:
                continue
            token = self.tokens[index]
            if token.markup is not None:
                dropped += self.balance_comment_markers(token.markup)
            if token.kind == TokenKind.COMMENT_START:
                open_starts.setdefault(token.get("ref"), []).append(element)
            elif token.kind == TokenKind.COMMENT_END:
                stack = open_starts.get(token.get("ref"))
                if stack:
                    stack.pop()
                else:
                    unmatched.append(element)

        for stack in open_starts.values():
            unmatched.extend(stack)

        for element in unmatched:
            element.decompose()
        return dropped + len(unmatched)


class MacroNormalizer:
    """Replaces Confluence constructs with durable tokens.

    Handles these categories:

    1. Token constructs (status, code, widgets, panels, images, links,
       mentions, inline comment ranges, tables, HTML comments):
       - Replaced by <mdtoken> placeholders
       - Payload kept in NormalizedDocument.tokens

    2. Unrecognized macros and other ac: wrappers:
       - Wrapper stripped, body promoted in place
       - Resource identifiers (ri:) and parameters dropped
    """

    def __init__(self, config: ConverterConfig = DEFAULT_CONFIG):
        self.config = config

    def normalize(self, soup: BeautifulSoup) -> NormalizedDocument:
        """Normalize a parsed storage document in place.

        Args:
            soup: Parsed storage markup (mutated)

        Returns:
            NormalizedDocument with placeholders, tokens and fidelity report
        """
        warnings = detect_unsupported_features(soup)
        if warnings:
            logger.warning(f"Unsupported Confluence features will not survive conversion: {', '.join(warnings)}")

        run = _NormalizationPass(soup, self.config)
        run.visit(soup)
        dropped = run.balance_comment_markers(soup)

        if run.unrecognized:
            logger.debug(f"Unwrapped {len(run.unrecognized)} unrecognized macros: {sorted(set(run.unrecognized))}")
        if dropped:
            logger.debug(f"Dropped {dropped} unbalanced inline comment markers")
        logger.debug(f"Normalized {len(run.tokens)} durable tokens")

        return NormalizedDocument(soup=soup, tokens=run.tokens, warnings=warnings)
