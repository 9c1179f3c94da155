"""Top-of-file page header for downloaded markdown.

Page metadata is kept in an HTML comment rather than frontmatter:

    <!--
    READONLY
    spaceId: 123
    pageId: 456
    title: Release notes
    status: green:In Progress
    -->

READONLY marks files that are downloaded but never uploaded.
"""

import logging
import re
from typing import Optional, Tuple

from .models import HeaderExtras, HeaderMeta
from .storage_parser import parse_storage

logger = logging.getLogger(__name__)

HEADER_START = "<!--"
HEADER_END = "-->"
READONLY_FLAG = "READONLY"

HEADER_KEYS = {
    "spaceId": "space_id",
    "pageId": "page_id",
    "title": "title",
    "status": "status",
}

EMOJI_SHORTCODE = re.compile(r'^:([a-z0-9_+\-]+):\s*', re.IGNORECASE)

EMOJI_NAMES = {
    "\U0001F680": "rocket",
    "\U0001F525": "fire",
    "\u2705": "white_check_mark",
    "\u26a0\ufe0f": "warning",
    "\u26a0": "warning",
    "\U0001F41B": "bug",
    "\U0001F4CC": "pushpin",
    "\U0001F4F7": "camera",
    "\u2b50": "star",
}


def _is_emoji(char: str) -> bool:
    code = ord(char)
    return 0x1F000 <= code <= 0x1FAFF or 0x2600 <= code <= 0x27BF or code in (0x2B50, 0x2B55)


def parse_header(markdown: str) -> Tuple[HeaderMeta, str]:
    """Split a page header off the top of a markdown document.

    A leading comment only counts as a header when it holds READONLY or
    at least one known key, so widget and inline tag comments are left
    alone.

    Returns:
        Tuple of (header metadata, remaining body)
    """
    if not markdown:
        return HeaderMeta(), ""

    trimmed = markdown.lstrip()
    if not trimmed.startswith(HEADER_START):
        return HeaderMeta(), markdown
    end = trimmed.find(HEADER_END)
    if end == -1:
        return HeaderMeta(), markdown

    meta = HeaderMeta()
    recognized = False
    content = trimmed[len(HEADER_START):end].strip()
    for line in (line.strip() for line in content.splitlines()):
        if line == READONLY_FLAG:
            meta.readonly = True
            recognized = True
            continue
        match = re.match(r'^(\w+):\s*(.*)$', line)
        if match and match.group(1) in HEADER_KEYS:
            recognized = True
            if match.group(2).strip():
                setattr(meta, HEADER_KEYS[match.group(1)], match.group(2).strip())

    if not recognized:
        return HeaderMeta(), markdown

    body = re.sub(r'^\s*\n', '', trimmed[end + len(HEADER_END):], count=1)
    return meta, body


def emit_header(meta: HeaderMeta) -> str:
    lines = [HEADER_START]
    if meta.readonly:
        lines.append(READONLY_FLAG)
    lines.append(f"spaceId: {meta.space_id or ''}")
    lines.append(f"pageId: {meta.page_id or ''}")
    lines.append(f"title: {meta.title or ''}")
    if meta.status:
        lines.append(f"status: {meta.status}")
    lines.append(HEADER_END)
    return "\n".join(lines) + "\n\n"


def ensure_header(markdown: str, meta: HeaderMeta) -> str:
    """Replace (or add) the page header on a markdown document."""
    _, body = parse_header(markdown or "")
    return emit_header(meta) + body.lstrip()


def extract_header_extras(xhtml: str, title: Optional[str] = None) -> HeaderExtras:
    """Derive header decorations from a page title and storage body.

    - emoji: a leading :shortcode: in the title, or a leading emoji
      character (mapped to its shortcode name when known)
    - status: the first status macro as color:Title
    - image: the first ri:url value, else the first img src
    """
    extras = HeaderExtras()

    title = title or ""
    shortcode = EMOJI_SHORTCODE.match(title)
    if shortcode:
        extras.emoji = shortcode.group(1).lower()
    elif title:
        for char, name in EMOJI_NAMES.items():
            if title.startswith(char):
                extras.emoji = name
                break
        else:
            if _is_emoji(title[0]):
                extras.emoji = title[0]

    if not xhtml:
        return extras

    soup = parse_storage(xhtml)

    for macro in soup.find_all("ac:structured-macro"):
        if (macro.get("ac:name") or "").strip().lower() != "status":
            continue
        label = color = ""
        for param in macro.find_all("ac:parameter"):
            name = (param.get("ac:name") or "").lower()
            if name == "title":
                label = param.get_text().strip()
            elif name in ("colour", "color"):
                color = param.get_text().strip().lower()
        if label or color:
            extras.status = f"{color or 'grey'}:{label or 'Status'}"
        break

    url = soup.find("ri:url", attrs={"ri:value": True})
    if url is not None:
        extras.image = url["ri:value"]
    else:
        img = soup.find("img", attrs={"src": True})
        if img is not None:
            extras.image = img["src"]

    logger.debug(f"Header extras: emoji={extras.emoji} status={extras.status} image={extras.image}")
    return extras


def build_effective_title(base_title: Optional[str], emoji: Optional[str] = None,
                          status: Optional[str] = None) -> Optional[str]:
    """Build the page title to upload from header metadata.

    The emoji is prefixed and the status label appended in brackets, since
    Confluence titles cannot hold a status macro.
    """
    title = base_title or None
    if emoji:
        title = f"{emoji} {title or ''}".strip()
    if status:
        label = status.split(":", 1)[1] if ":" in status else status
        title = f"{title or ''} [{label or status}]".strip()
    return title
