"""Inline markdown parser.

Turns a run of inline markdown into a list of typed InlineNode objects.

Comment markers (mentions, status badges, comment range boundaries) are
swapped for private-use sentinel characters before scanning, so emphasis
and link syntax cannot split them. They come back as typed nodes once the
scan is done, and comment range boundaries are then paired into
COMMENT_RANGE nodes.
"""

import logging
import re
from typing import List, Optional, Tuple

from .models import InlineKind, InlineNode

logger = logging.getLogger(__name__)

ESCAPABLE = frozenset('\\`*_[]|<#>.-!+~')

MENTION_PATTERN = re.compile(r'<!--\s*mention:([^\s>]+)\s*(.*?)\s*-->', re.DOTALL)
STATUS_PATTERN = re.compile(r'<!--\s*status:([^:]*?):(.*?)\s*-->', re.DOTALL)
COMMENT_START_PATTERN = re.compile(r'<!--\s*comment:([^\s>]+)\s*-->')
# "commend-end" is accepted for files written by older tooling
COMMENT_END_PATTERN = re.compile(r'<!--\s*comme(?:nt|nd)-end:([^\s>]+)\s*-->')
GENERIC_COMMENT_PATTERN = re.compile(r'<!--.*?-->', re.DOTALL)
CODE_SPAN_PATTERN = re.compile(r'(?<!\\)(`+)(.+?)(?<!`)\1(?!`)', re.DOTALL)

_MARKER_PATTERN = re.compile(
    '|'.join(p.pattern for p in (
        CODE_SPAN_PATTERN,
        MENTION_PATTERN,
        STATUS_PATTERN,
        COMMENT_START_PATTERN,
        COMMENT_END_PATTERN,
        GENERIC_COMMENT_PATTERN,
    )),
    re.DOTALL,
)

_SENTINEL_OPEN = "\ue000"
_SENTINEL_CLOSE = "\ue001"
_SENTINEL_PATTERN = re.compile(f"{_SENTINEL_OPEN}(\\d+){_SENTINEL_CLOSE}")

UUID_PATTERN = re.compile(r'[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}', re.IGNORECASE)


def select_account_id(account_id: str, label: str = "") -> str:
    """Pick the account id to upload from a possibly compound mention id.

    Candidates containing a UUID win; otherwise the last ':' segment of the
    id is used.
    """
    candidates: List[str] = []
    for value in (account_id, label, account_id.split(":")[-1], label.split(":")[-1]):
        if value and value not in candidates:
            candidates.append(value)

    for candidate in candidates:
        if UUID_PATTERN.search(candidate):
            return candidate
    return account_id.split(":")[-1] or account_id


def decode_destination(destination: str) -> str:
    """Reverse the percent-encoding applied to page and attachment targets."""
    return destination.replace("%28", "(").replace("%29", ")").replace("%20", " ")


def unescape(text: str) -> str:
    """Drop backslashes in front of escapable punctuation."""
    return re.sub(r'\\(.)', lambda m: m.group(1) if m.group(1) in ESCAPABLE else m.group(0), text)


def plain_text(nodes: List[InlineNode]) -> str:
    """Flatten inline nodes to their visible text."""
    parts = []
    for node in nodes:
        if node.kind in (InlineKind.TEXT, InlineKind.CODE):
            parts.append(node.text)
        elif node.kind == InlineKind.LINE_BREAK:
            parts.append(" ")
        elif node.kind == InlineKind.MENTION:
            parts.append(node.attrs.get("label", ""))
        elif node.kind == InlineKind.STATUS:
            parts.append(node.attrs.get("title", ""))
        elif node.kind == InlineKind.IMAGE:
            parts.append(node.text)
        else:
            parts.append(node.text or plain_text(node.children))
    return "".join(parts)


class InlineParser:
    """Parses inline markdown into InlineNode lists.

    Recognized, in priority order at each position: inline image, code
    span, bold (**), emphasis (*), link, backslash escape. A newline in the
    input is a hard line break.
    """

    def parse(self, text: str) -> List[InlineNode]:
        if not text:
            return []

        markers: List[InlineNode] = []
        prepared = self._pretokenize(text, markers)
        nodes = self._scan(prepared)
        nodes = self._restore(nodes, markers)
        nodes = self._resolve_ranges(nodes)
        return _drop_boundaries(nodes)

    # ----- sentinels -----

    def _pretokenize(self, text: str, markers: List[InlineNode]) -> str:
        def swap(match: re.Match) -> str:
            segment = match.group(0)
            if segment.startswith("`"):
                return segment

            node = self._marker_node(segment)
            if node is None:
                logger.debug(f"Dropping HTML comment in inline text: {segment[:40]!r}")
                return ""
            markers.append(node)
            return f"{_SENTINEL_OPEN}{len(markers) - 1}{_SENTINEL_CLOSE}"

        return _MARKER_PATTERN.sub(swap, text)

    @staticmethod
    def _marker_node(segment: str) -> Optional[InlineNode]:
        match = MENTION_PATTERN.fullmatch(segment)
        if match:
            label = match.group(2).strip()
            return InlineNode(InlineKind.MENTION, attrs={
                "account_id": select_account_id(match.group(1), label),
                "label": label,
            })

        match = STATUS_PATTERN.fullmatch(segment)
        if match:
            return InlineNode(InlineKind.STATUS, attrs={
                "color": match.group(1).strip().lower() or "grey",
                "title": match.group(2).strip() or "Status",
            })

        match = COMMENT_START_PATTERN.fullmatch(segment)
        if match:
            return InlineNode(InlineKind.COMMENT_START, attrs={"ref": match.group(1)})

        match = COMMENT_END_PATTERN.fullmatch(segment)
        if match:
            return InlineNode(InlineKind.COMMENT_END, attrs={"ref": match.group(1)})

        return None

    def _restore(self, nodes: List[InlineNode], markers: List[InlineNode]) -> List[InlineNode]:
        restored: List[InlineNode] = []
        for node in nodes:
            if node.children:
                node.children = self._restore(node.children, markers)

            if node.kind != InlineKind.TEXT or _SENTINEL_OPEN not in node.text:
                if _SENTINEL_OPEN in node.text:
                    node.text = _SENTINEL_PATTERN.sub("", node.text)
                restored.append(node)
                continue

            position = 0
            for match in _SENTINEL_PATTERN.finditer(node.text):
                if match.start() > position:
                    restored.append(InlineNode(InlineKind.TEXT, text=node.text[position:match.start()]))
                restored.append(markers[int(match.group(1))])
                position = match.end()
            if position < len(node.text):
                restored.append(InlineNode(InlineKind.TEXT, text=node.text[position:]))
        return restored

    # ----- scanning -----

    def _scan(self, text: str) -> List[InlineNode]:
        nodes: List[InlineNode] = []
        buffer: List[str] = []

        def flush():
            if buffer:
                nodes.append(InlineNode(InlineKind.TEXT, text="".join(buffer)))
                buffer.clear()

        i = 0
        length = len(text)
        while i < length:
            char = text[i]

            if char == "\\" and i + 1 < length and text[i + 1] in ESCAPABLE:
                buffer.append(text[i + 1])
                i += 2
                continue

            if char == "\n":
                flush()
                nodes.append(InlineNode(InlineKind.LINE_BREAK))
                i += 1
                continue

            if char == "!" and text.startswith("![", i):
                link = _match_link(text, i + 1)
                if link:
                    label, destination, end = link
                    flush()
                    nodes.append(self._image(label, destination))
                    i = end
                    continue

            if char == "`":
                span = CODE_SPAN_PATTERN.match(text, i)
                if span:
                    flush()
                    code = span.group(2).replace("\n", " ")
                    if len(code) > 2 and code.startswith(" ") and code.endswith(" ") and code.strip():
                        code = code[1:-1]
                    nodes.append(InlineNode(InlineKind.CODE, text=code))
                    i = span.end()
                    continue

            if text.startswith("**", i):
                end = _find_closing(text, i + 2, "**")
                if end is not None and end > i + 2:
                    flush()
                    nodes.append(InlineNode(InlineKind.STRONG, children=self._scan(text[i + 2:end])))
                    i = end + 2
                    continue
            elif char == "*":
                end = _find_closing(text, i + 1, "*")
                if end is not None and end > i + 1:
                    flush()
                    nodes.append(InlineNode(InlineKind.EMPHASIS, children=self._scan(text[i + 1:end])))
                    i = end + 1
                    continue

            if char == "[":
                link = _match_link(text, i)
                if link:
                    label, destination, end = link
                    flush()
                    nodes.append(self._link(label, destination))
                    i = end
                    continue

            buffer.append(char)
            i += 1

        flush()
        return nodes

    def _link(self, label: str, destination: str) -> InlineNode:
        children = self._scan(label)

        if destination.startswith("page:"):
            target = decode_destination(destination[len("page:"):])
            space, _, title = target.partition(":") if ":" in target else ("", "", target)
            return InlineNode(InlineKind.PAGE_LINK, text=_sentinel_free(plain_text(children)) or title,
                              attrs={"space": space, "title": title})

        for prefix in ("attachment:", "#attachment:"):
            if destination.startswith(prefix):
                filename = decode_destination(destination[len(prefix):])
                return InlineNode(InlineKind.ATTACHMENT_LINK, text=_sentinel_free(plain_text(children)) or filename,
                                  attrs={"filename": filename})

        return InlineNode(InlineKind.LINK, children=children, attrs={"href": destination})

    def _image(self, label: str, destination: str) -> InlineNode:
        caption = _sentinel_free(unescape(label)).strip()
        for prefix in ("attachment:", "#attachment:", "#"):
            if destination.startswith(prefix) and len(destination) > len(prefix):
                return InlineNode(InlineKind.IMAGE, text=caption,
                                  attrs={"attachment": decode_destination(destination[len(prefix):])})
        return InlineNode(InlineKind.IMAGE, text=caption, attrs={"src": destination})

    # ----- comment ranges -----

    def _resolve_ranges(self, nodes: List[InlineNode]) -> List[InlineNode]:
        """Pair comment boundaries within one sibling list, innermost first."""
        result: List[InlineNode] = []
        open_starts: List[Tuple[str, int]] = []

        for node in nodes:
            if node.children:
                node.children = self._resolve_ranges(node.children)

            if node.kind == InlineKind.COMMENT_START:
                open_starts.append((node.attrs.get("ref", ""), len(result)))
                result.append(node)
            elif node.kind == InlineKind.COMMENT_END:
                ref = node.attrs.get("ref", "")
                match = next(
                    (k for k in range(len(open_starts) - 1, -1, -1) if open_starts[k][0] == ref),
                    None,
                )
                if match is None:
                    logger.debug(f"Dropping comment end without start: {ref}")
                    continue
                position = open_starts[match][1]
                # Starts opened after the matched one end up inside the range
                del open_starts[match:]
                children = result[position + 1:]
                del result[position:]
                result.append(InlineNode(InlineKind.COMMENT_RANGE, children=children, attrs={"ref": ref}))
            else:
                result.append(node)

        if open_starts:
            logger.debug(f"Dropping {len(open_starts)} comment starts without an end")
        return result


def _drop_boundaries(nodes: List[InlineNode]) -> List[InlineNode]:
    kept = []
    for node in nodes:
        if node.kind in (InlineKind.COMMENT_START, InlineKind.COMMENT_END):
            continue
        if node.children:
            node.children = _drop_boundaries(node.children)
        kept.append(node)
    return kept


def _sentinel_free(text: str) -> str:
    return _SENTINEL_PATTERN.sub("", text)


def _find_closing(text: str, start: int, delimiter: str) -> Optional[int]:
    """Find an unescaped closing delimiter at or after start."""
    i = start
    while i < len(text):
        if text[i] == "\\":
            i += 2
            continue
        if text[i] == "`":
            span = CODE_SPAN_PATTERN.match(text, i)
            if span:
                i = span.end()
                continue
        if delimiter == "*" and text.startswith("**", i):
            i += 2
            continue
        if text.startswith(delimiter, i):
            return i
        i += 1
    return None


def _match_link(text: str, start: int) -> Optional[Tuple[str, str, int]]:
    """Match [label](destination) with the opening bracket at start.

    Returns:
        Tuple of (raw label, destination, end offset), or None
    """
    if start >= len(text) or text[start] != "[":
        return None

    depth = 0
    i = start
    while i < len(text):
        char = text[i]
        if char == "\\":
            i += 2
            continue
        if char == "[":
            depth += 1
        elif char == "]":
            depth -= 1
            if depth == 0:
                break
        i += 1
    else:
        return None

    close = i
    if not text.startswith("(", close + 1):
        return None
    end = text.find(")", close + 2)
    if end == -1:
        return None

    destination = text[close + 2:end].strip()
    if not destination or any(c.isspace() for c in destination):
        return None
    return text[start + 1:close], destination, end + 1
