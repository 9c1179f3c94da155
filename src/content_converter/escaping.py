"""Escaping normalizer for rendered markdown.

markdownify escapes characters defensively. This pass removes escapes that
are never needed in this dialect and collapses blank-line runs, without
touching fenced code blocks or inline code spans.
"""

import logging
import re
from typing import List

logger = logging.getLogger(__name__)

FENCE_PATTERN = re.compile(r'^ {0,3}(`{3,}|~{3,})')
CODE_SPAN_PATTERN = re.compile(r'(?<!\\)(`+)(.+?)(?<!`)\1(?!`)', re.DOTALL)

# Private-use characters that never occur in Confluence content
_SENTINEL_OPEN = "\ue100"
_SENTINEL_CLOSE = "\ue101"
_SENTINEL_PATTERN = re.compile(f"{_SENTINEL_OPEN}(\\d+){_SENTINEL_CLOSE}")

_RULES = [
    (re.compile(r'\\+_'), '_'),
    (re.compile(r'\\{2,}\*'), r'\\*'),
    (re.compile(r'^(\s*\d+)\\\.', re.MULTILINE), r'\1.'),
    (re.compile(r'^(#{1,6}\s+\d+)\\\.', re.MULTILINE), r'\1.'),
    (re.compile(r'\n{3,}'), '\n\n'),
]


def _protect_fences(markdown: str, protected: List[str]) -> str:
    """Swap fenced code blocks for sentinels, line by line."""
    output = []
    fence = None
    block: List[str] = []

    for line in markdown.split("\n"):
        if fence is None:
            match = FENCE_PATTERN.match(line)
            if match:
                fence = match.group(1)
                block = [line]
            else:
                output.append(line)
            continue

        block.append(line)
        stripped = line.strip()
        if stripped and set(stripped) == {fence[0]} and len(stripped) >= len(fence):
            protected.append("\n".join(block))
            output.append(f"{_SENTINEL_OPEN}{len(protected) - 1}{_SENTINEL_CLOSE}")
            fence = None

    if fence is not None:
        # Unterminated fence runs to the end of the document
        protected.append("\n".join(block))
        output.append(f"{_SENTINEL_OPEN}{len(protected) - 1}{_SENTINEL_CLOSE}")

    return "\n".join(output)


def _protect_spans(markdown: str, protected: List[str]) -> str:
    def swap(match: re.Match) -> str:
        protected.append(match.group(0))
        return f"{_SENTINEL_OPEN}{len(protected) - 1}{_SENTINEL_CLOSE}"

    return CODE_SPAN_PATTERN.sub(swap, markdown)


def normalize_escaping(markdown: str) -> str:
    """Remove redundant escapes outside code.

    Args:
        markdown: Rendered markdown

    Returns:
        Markdown with code regions byte-identical to the input
    """
    if not markdown:
        return ""

    protected: List[str] = []
    text = _protect_fences(markdown, protected)
    text = _protect_spans(text, protected)

    for pattern, replacement in _RULES:
        text = pattern.sub(replacement, text)

    logger.debug(f"Normalized escaping with {len(protected)} protected code regions")
    return _SENTINEL_PATTERN.sub(lambda m: protected[int(m.group(1))], text)
