"""GFM table rendering for storage tables.

Confluence cells hold block content (paragraphs, lists, macros). GFM cells
are single lines, so each cell's rendered lines are joined with a literal
\\n sequence, which the reverse parser splits again.
"""

import logging
import re
from typing import List, Optional, Tuple

from bs4 import Tag

from .models import TokenKind

logger = logging.getLogger(__name__)

CELL_STYLE_PATTERN = re.compile(r'^(?:cell|table):bg:(\S+)$')
HIGHLIGHT_ATTRIBUTE = "data-highlight-colour"


class TableRenderer:
    """Renders a table element as a rectangular GFM pipe table.

    Cell content is rendered through the owning BlockRenderer so nested
    tokens (links, status, mentions) use the same markdown forms as body
    text.
    """

    def __init__(self, renderer):
        self.renderer = renderer

    def render(self, table: Tag) -> str:
        """Render a table.

        Args:
            table: Table element (placeholders already in place)

        Returns:
            GFM table, or an empty string for a table without rows
        """
        rows = []
        for row in table.find_all("tr"):
            if row.find_parent("table") is not table:
                continue
            cells = [self.render_cell(cell) for cell in row.find_all(["th", "td"], recursive=False)]
            rows.append(cells)

        if not rows:
            return ""

        width = max(len(cells) for cells in rows)
        if width == 0:
            return ""
        padded = [cells + [""] * (width - len(cells)) for cells in rows]

        lines = [self._format_row(padded[0]), self._format_row(["---"] * width)]
        lines.extend(self._format_row(cells) for cells in padded[1:])

        logger.debug(f"Rendered table with {len(rows)} rows and {width} columns")
        return "\n".join(lines)

    def render_cell(self, cell: Tag) -> str:
        background = self.extract_style(cell)

        text = "".join(
            self.renderer.process_element(child, parent_tags={cell.name})
            for child in cell.children
        )
        lines = [line.strip() for line in text.split("\n")]
        content = "\\n".join(line for line in lines if line)
        content = re.sub(r'(?<!\\)\|', r'\\|', content)

        if background:
            content = f"{content} <!-- cell:bg:{background} -->".strip()
        return content

    def extract_style(self, cell: Tag) -> Optional[str]:
        """Take the cell background from the highlight attribute or a style comment.

        Style comment placeholders are removed from the cell.
        """
        background = cell.get(HIGHLIGHT_ATTRIBUTE)

        for element in cell.find_all("mdtoken"):
            token = self.renderer.token_for(element)
            if token is None or token.kind != TokenKind.HTML_COMMENT:
                continue
            match = CELL_STYLE_PATTERN.match(token.get("text"))
            if match:
                background = background or match.group(1)
                element.decompose()

        return background.strip().lower() if background else None

    def flatten(self, table: Tag) -> str:
        """Render a table as one line of cell text, for tables nested in cells."""
        parts: List[str] = []
        for cell in table.find_all(["th", "td"]):
            text = self.render_cell(cell).replace("\\n", " ")
            if text:
                parts.append(text)
        return " ".join(parts)

    @staticmethod
    def _format_row(cells: List[str]) -> str:
        return "| " + " | ".join(cells) + " |"


def split_style(cell_text: str) -> Tuple[str, Optional[str]]:
    """Split a trailing cell style comment off GFM cell text."""
    match = re.search(r'\s*<!--\s*(?:cell|table):bg:(\S+?)\s*-->\s*$', cell_text)
    if not match:
        return cell_text, None
    return cell_text[:match.start()], match.group(1).lower()
