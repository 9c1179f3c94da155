"""Markdown block parser.

Splits markdown in the portable dialect into typed Block objects. Lines are
matched against block constructs in a fixed precedence order; inline text
is handed to the InlineParser.
"""

import logging
import re
from typing import List, Optional, Tuple

from .inline_parser import InlineParser, plain_text
from .models import Block, BlockKind, InlineKind, ListItem, TableCell
from .table_renderer import split_style

logger = logging.getLogger(__name__)

STATUS_LINE = re.compile(r'^\s*<!--\s*status:([^:]*?):(.*?)\s*-->\s*$')
FENCE_OPEN = re.compile(r'^ {0,3}(`{3,}|~{3,})\s*([^`\s]*)[^`]*$')
INDENTED_CODE = re.compile(r'^(?: {4}|\t)')
WIDGET_LINE = re.compile(r'^\s*<!--\s*widget:([\w-]+)\s*-->\s*$')
RULE_LINE = re.compile(r'^ {0,3}-{3,}\s*$')
TABLE_SEPARATOR = re.compile(r'^\s*\|?\s*:?-{3,}')
HEADING_LINE = re.compile(r'^(#{1,6})\s+(.*?)(?:\s+#+)?\s*$')
LIST_ITEM = re.compile(r'^(\s*)(?:([-*+])|(\d{1,9})[.)])\s+(.*)$')
IMAGE_LINE = re.compile(r'^\s*!\[.*\]\(\S+\)\s*$')
PANEL_LINE = re.compile(r'^\s*>\s*<!--\s*panel:([^:]*?):([^:]*?)\s*-->\s*$')
QUOTE_LINE = re.compile(r'^\s*>')
TAG_LINE = re.compile(r'^\s*<!--\s*tag:[\w-]*\s+nodeId:[\w:-]+\s*-->\s*$')
HARD_BREAK = re.compile(r'(?:  +|\\)$')

CELL_SPLIT = re.compile(r'(?<!\\)\|')


def _indent_width(line: str) -> int:
    expanded = line.replace("\t", "    ")
    return len(expanded) - len(expanded.lstrip(" "))


class MarkdownParser:
    """Parses markdown into a list of Blocks.

    Precedence per line: status line, fenced code, indented code, widget,
    dashed rule, GFM table, heading, list, image (with optional caption
    line), panel quote, plain quote, paragraph.

    Inline tag lines (<!-- tag:... -->) are skipped; NodeTracker handles them.
    """

    def __init__(self):
        self.inline = InlineParser()

    def parse(self, markdown: str) -> List[Block]:
        if not markdown:
            return []

        lines = markdown.replace("\r\n", "\n").split("\n")
        blocks: List[Block] = []
        i = 0
        while i < len(lines):
            line = lines[i]
            if not line.strip() or TAG_LINE.match(line):
                i += 1
                continue

            block, i = self._parse_block(lines, i)
            if block is not None:
                blocks.append(block)

        logger.debug(f"Parsed {len(blocks)} markdown blocks")
        return blocks

    def _parse_block(self, lines: List[str], i: int) -> Tuple[Optional[Block], int]:
        line = lines[i]

        match = STATUS_LINE.match(line)
        if match:
            return Block(BlockKind.STATUS, attrs={
                "color": match.group(1).strip().lower() or "grey",
                "title": match.group(2).strip() or "Status",
            }), i + 1

        match = FENCE_OPEN.match(line)
        if match:
            return self._parse_fence(lines, i, match.group(1), match.group(2))

        if INDENTED_CODE.match(line):
            return self._parse_indented_code(lines, i)

        match = WIDGET_LINE.match(line)
        if match:
            return Block(BlockKind.WIDGET, attrs={"name": match.group(1).lower()}), i + 1

        if RULE_LINE.match(line):
            return Block(BlockKind.RULE), i + 1

        if self._is_table_start(lines, i):
            return self._parse_table(lines, i)

        match = HEADING_LINE.match(line)
        if match:
            return Block(
                BlockKind.HEADING,
                inlines=self.inline.parse(match.group(2)),
                level=len(match.group(1)),
            ), i + 1

        if LIST_ITEM.match(line):
            return self._parse_list(lines, i)

        if IMAGE_LINE.match(line):
            block, end = self._parse_image(lines, i)
            if block is not None:
                return block, end

        match = PANEL_LINE.match(line)
        if match:
            paragraphs, end = self._parse_quoted(lines, i + 1)
            return Block(
                BlockKind.PANEL,
                paragraphs=paragraphs,
                attrs={
                    "color": match.group(1).strip().lower() or "panel",
                    "icon": match.group(2).strip().lower() or "panel",
                },
            ), end

        if QUOTE_LINE.match(line):
            paragraphs, end = self._parse_quoted(lines, i)
            return Block(BlockKind.QUOTE, paragraphs=paragraphs), end

        return self._parse_paragraph(lines, i)

    def _is_block_start(self, lines: List[str], i: int) -> bool:
        """Whether line i starts a construct that ends a paragraph.

        Indented code cannot interrupt a paragraph.
        """
        line = lines[i]
        if not line.strip():
            return True
        return bool(
            TAG_LINE.match(line)
            or STATUS_LINE.match(line)
            or FENCE_OPEN.match(line)
            or WIDGET_LINE.match(line)
            or RULE_LINE.match(line)
            or self._is_table_start(lines, i)
            or HEADING_LINE.match(line)
            or LIST_ITEM.match(line)
            or IMAGE_LINE.match(line)
            or QUOTE_LINE.match(line)
        )

    # ----- code -----

    def _parse_fence(self, lines: List[str], i: int, fence: str, language: str) -> Tuple[Block, int]:
        body: List[str] = []
        j = i + 1
        while j < len(lines):
            stripped = lines[j].strip()
            if stripped and set(stripped) == {fence[0]} and len(stripped) >= len(fence):
                j += 1
                break
            body.append(lines[j])
            j += 1
        else:
            logger.debug("Unterminated code fence runs to end of document")

        return Block(BlockKind.CODE, text="\n".join(body), attrs={"language": language}), j

    def _parse_indented_code(self, lines: List[str], i: int) -> Tuple[Block, int]:
        body: List[str] = []
        j = i
        while j < len(lines) and (INDENTED_CODE.match(lines[j]) or not lines[j].strip()):
            line = lines[j]
            body.append(line[1:] if line.startswith("\t") else line[4:])
            j += 1

        while body and not body[-1].strip():
            body.pop()
            j -= 1

        return Block(BlockKind.CODE, text="\n".join(body), attrs={"language": ""}), j

    # ----- tables -----

    def _is_table_start(self, lines: List[str], i: int) -> bool:
        return (
            "|" in lines[i]
            and i + 1 < len(lines)
            and bool(TABLE_SEPARATOR.match(lines[i + 1]))
            and "-" in lines[i + 1]
        )

    def _parse_table(self, lines: List[str], i: int) -> Tuple[Block, int]:
        rows = [self._parse_row(lines[i], header=True)]
        j = i + 2
        while j < len(lines) and lines[j].strip() and "|" in lines[j]:
            rows.append(self._parse_row(lines[j], header=False))
            j += 1

        width = max(len(row) for row in rows)
        for row in rows:
            header = row[0].header if row else False
            row.extend(TableCell(header=header) for _ in range(width - len(row)))

        return Block(BlockKind.TABLE, rows=rows), j

    def _parse_row(self, line: str, header: bool) -> List[TableCell]:
        content = line.strip()
        if content.startswith("|"):
            content = content[1:]
        if content.endswith("|") and not content.endswith("\\|"):
            content = content[:-1]

        cells = []
        for raw in CELL_SPLIT.split(content):
            text, background = split_style(raw.strip())
            # GFM: an escaped pipe is a literal pipe, code spans included
            text = text.strip().replace("\\|", "|")
            cell_lines = [self.inline.parse(part.strip()) for part in text.split("\\n")] if text else []
            cells.append(TableCell(lines=cell_lines, header=header, background=background))
        return cells

    # ----- lists -----

    def _parse_list(self, lines: List[str], i: int) -> Tuple[Block, int]:
        entries: List[Tuple[int, bool, str]] = []
        base_indent = _indent_width(lines[i])
        base_ordered = bool(LIST_ITEM.match(lines[i]).group(3))

        j = i
        while j < len(lines):
            line = lines[j]
            match = LIST_ITEM.match(line)
            if match:
                indent = _indent_width(line)
                ordered = bool(match.group(3))
                if indent <= base_indent and ordered != base_ordered:
                    break
                entries.append((indent, ordered, match.group(4)))
                j += 1
                continue

            if (line.strip() and entries and _indent_width(line) > entries[-1][0]
                    and not self._is_block_start(lines, j)):
                indent, ordered, text = entries[-1]
                entries[-1] = (indent, ordered, f"{text} {line.strip()}")
                j += 1
                continue

            if not line.strip() and j + 1 < len(lines) and LIST_ITEM.match(lines[j + 1]):
                j += 1
                continue
            break

        return self._build_list(entries), j

    def _build_list(self, entries: List[Tuple[int, bool, str]]) -> Block:
        ordered = entries[0][1]
        block = Block(BlockKind.ORDERED_LIST if ordered else BlockKind.BULLET_LIST)

        index = 0
        while index < len(entries):
            indent, _, text = entries[index]
            item = ListItem(inlines=self.inline.parse(text))
            end = index + 1
            while end < len(entries) and entries[end][0] > indent:
                end += 1
            if end > index + 1:
                item.children = self._build_list(entries[index + 1:end])
            block.items.append(item)
            index = end

        return block

    # ----- images, quotes, paragraphs -----

    def _parse_image(self, lines: List[str], i: int) -> Tuple[Optional[Block], int]:
        nodes = self.inline.parse(lines[i].strip())
        if len(nodes) != 1 or nodes[0].kind != InlineKind.IMAGE:
            return None, i

        image = nodes[0]
        caption = image.text
        end = i + 1
        if end < len(lines) and lines[end].strip() and not self._is_block_start(lines, end):
            caption = plain_text(self.inline.parse(lines[end].strip())) or caption
            end += 1

        attrs = dict(image.attrs)
        return Block(
            BlockKind.IMAGE,
            inlines=self.inline.parse(caption) if caption else [],
            text=caption,
            attrs=attrs,
        ), end

    def _parse_quoted(self, lines: List[str], i: int) -> Tuple[List[list], int]:
        """Collect '>' lines into paragraphs of inline lines."""
        paragraphs: List[list] = []
        current: list = []
        j = i
        while j < len(lines) and QUOTE_LINE.match(lines[j]) and not PANEL_LINE.match(lines[j]):
            content = re.sub(r'^\s*> ?', '', lines[j])
            if content.strip():
                current.append(self.inline.parse(content.strip()))
            elif current:
                paragraphs.append(current)
                current = []
            j += 1
        if current:
            paragraphs.append(current)
        return paragraphs, j

    def _parse_paragraph(self, lines: List[str], i: int) -> Tuple[Optional[Block], int]:
        parts = [lines[i]]
        j = i + 1
        while j < len(lines) and not self._is_block_start(lines, j):
            parts.append(lines[j])
            j += 1

        text = ""
        for index, part in enumerate(parts):
            is_last = index == len(parts) - 1
            if not is_last and HARD_BREAK.search(part):
                text += HARD_BREAK.sub("", part).strip() + "\n"
            else:
                text += part.strip() + ("" if is_last else " ")

        inlines = self.inline.parse(text)
        if not inlines:
            return None, j
        return Block(BlockKind.PARAGRAPH, inlines=inlines), j
