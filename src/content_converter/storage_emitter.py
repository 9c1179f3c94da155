"""Storage emitter: typed markdown blocks to Confluence storage format.

Writes the XHTML subset Confluence accepts for page bodies: plain HTML for
paragraphs, headings, lists, quotes and tables, and ac:/ri: markup for
macros, images, user mentions, page links and inline comments.
"""

import html
import logging
from typing import List

from .config import DEFAULT_CONFIG, ConverterConfig
from .inline_parser import select_account_id
from .models import Block, BlockKind, InlineKind, InlineNode, TableCell

logger = logging.getLogger(__name__)


def escape_text(text: str) -> str:
    return html.escape(text, quote=False)


def escape_attribute(value: str) -> str:
    return html.escape(value, quote=True)


def cdata(text: str) -> str:
    """Wrap text in a CDATA section, splitting any embedded terminator."""
    return "<![CDATA[" + text.replace("]]>", "]]]]><![CDATA[>") + "]]>"


def status_macro(color: str, title: str) -> str:
    return (
        '<ac:structured-macro ac:name="status">'
        f'<ac:parameter ac:name="title">{escape_text(title)}</ac:parameter>'
        f'<ac:parameter ac:name="colour">{escape_text(color)}</ac:parameter>'
        '</ac:structured-macro>'
    )


class StorageEmitter:
    """Converts Blocks to a storage format fragment."""

    def __init__(self, config: ConverterConfig = DEFAULT_CONFIG):
        self.config = config

    def emit(self, blocks: List[Block]) -> str:
        return "".join(self.emit_block(block) for block in blocks)

    def emit_block(self, block: Block) -> str:
        handler = getattr(self, f"_emit_{block.kind.value}")
        return handler(block)

    # ----- blocks -----

    def _emit_paragraph(self, block: Block) -> str:
        return f"<p>{self.emit_inlines(block.inlines)}</p>"

    def _emit_heading(self, block: Block) -> str:
        level = min(max(block.level, 1), 6)
        return f"<h{level}>{self.emit_inlines(block.inlines)}</h{level}>"

    def _emit_bullet_list(self, block: Block) -> str:
        return self._emit_list(block, "ul")

    def _emit_ordered_list(self, block: Block) -> str:
        return self._emit_list(block, "ol")

    def _emit_list(self, block: Block, tag: str) -> str:
        items = []
        for item in block.items:
            nested = self.emit_block(item.children) if item.children else ""
            items.append(f"<li>{self.emit_inlines(item.inlines)}{nested}</li>")
        return f"<{tag}>{''.join(items)}</{tag}>"

    def _emit_code(self, block: Block) -> str:
        language = block.attrs.get("language", "")
        parameter = f'<ac:parameter ac:name="language">{escape_text(language)}</ac:parameter>' if language else ""
        if "]]>" in block.text:
            logger.debug("Code body contains a CDATA terminator, emitting escaped text")
            body = escape_text(block.text)
        else:
            body = f"<![CDATA[{block.text}]]>"
        return (
            f'<ac:structured-macro ac:name="code">{parameter}'
            f'<ac:plain-text-body>{body}</ac:plain-text-body>'
            '</ac:structured-macro>'
        )

    def _emit_table(self, block: Block) -> str:
        rows = []
        for row in block.rows:
            rows.append("<tr>" + "".join(self._emit_cell(cell) for cell in row) + "</tr>")
        return f"<table><tbody>{''.join(rows)}</tbody></table>"

    def _emit_cell(self, cell: TableCell) -> str:
        tag = "th" if cell.header else "td"
        attrs = f' data-highlight-colour="{escape_attribute(cell.background)}"' if cell.background else ""
        lines = [self.emit_inlines(line) for line in cell.lines]
        content = f"<p>{'<br/>'.join(lines)}</p>" if any(lines) else ""
        return f"<{tag}{attrs}>{content}</{tag}>"

    def _emit_panel(self, block: Block) -> str:
        color = block.attrs.get("color", "panel")
        body = self._emit_paragraphs(block.paragraphs)

        if color in self.config.known_panels:
            name, parameter = color, ""
        elif color == "panel":
            name, parameter = "panel", ""
        else:
            name = "panel"
            parameter = f'<ac:parameter ac:name="bgColor">{escape_text(color)}</ac:parameter>'

        return (
            f'<ac:structured-macro ac:name="{escape_attribute(name)}">{parameter}'
            f'<ac:rich-text-body>{body}</ac:rich-text-body>'
            '</ac:structured-macro>'
        )

    def _emit_quote(self, block: Block) -> str:
        return f"<blockquote>{self._emit_paragraphs(block.paragraphs)}</blockquote>"

    def _emit_paragraphs(self, paragraphs) -> str:
        return "".join(
            "<p>" + "<br/>".join(self.emit_inlines(line) for line in lines) + "</p>"
            for lines in paragraphs
        )

    def _emit_image(self, block: Block) -> str:
        return self._image(block.attrs, self.emit_inlines(block.inlines))

    def _emit_rule(self, block: Block) -> str:
        return "<hr/>"

    def _emit_widget(self, block: Block) -> str:
        name = escape_attribute(block.attrs.get("name", "toc"))
        return f'<ac:structured-macro ac:name="{name}"><ac:rich-text-body/></ac:structured-macro>'

    def _emit_status(self, block: Block) -> str:
        return f"<p>{status_macro(block.attrs.get('color', 'grey'), block.attrs.get('title', 'Status'))}</p>"

    def _image(self, attrs, caption_html: str) -> str:
        if attrs.get("attachment"):
            resource = f'<ri:attachment ri:filename="{escape_attribute(attrs["attachment"])}"/>'
        else:
            resource = f'<ri:url ri:value="{escape_attribute(attrs.get("src", ""))}"/>'
        caption = f"<ac:caption>{caption_html}</ac:caption>" if caption_html else ""
        return (
            f'<ac:image ac:width="{self.config.image_width}" ac:align="{escape_attribute(self.config.image_align)}">'
            f'{resource}{caption}</ac:image>'
        )

    # ----- inlines -----

    def emit_inlines(self, nodes: List[InlineNode]) -> str:
        return "".join(self.emit_inline(node) for node in nodes)

    def emit_inline(self, node: InlineNode) -> str:
        kind = node.kind
        if kind == InlineKind.TEXT:
            return escape_text(node.text)
        if kind == InlineKind.STRONG:
            return f"<strong>{self.emit_inlines(node.children)}</strong>"
        if kind == InlineKind.EMPHASIS:
            return f"<em>{self.emit_inlines(node.children)}</em>"
        if kind == InlineKind.CODE:
            return f"<code>{escape_text(node.text)}</code>"
        if kind == InlineKind.LINE_BREAK:
            return "<br/>"
        if kind == InlineKind.LINK:
            href = escape_attribute(node.attrs.get("href", ""))
            return f'<a href="{href}">{self.emit_inlines(node.children)}</a>'
        if kind == InlineKind.PAGE_LINK:
            space = node.attrs.get("space")
            space_attr = f' ri:space-key="{escape_attribute(space)}"' if space else ""
            title = escape_attribute(node.attrs.get("title", ""))
            return (
                f'<ac:link><ri:page{space_attr} ri:content-title="{title}"/>'
                f'<ac:plain-text-link-body>{cdata(node.text)}</ac:plain-text-link-body></ac:link>'
            )
        if kind == InlineKind.ATTACHMENT_LINK:
            filename = escape_attribute(node.attrs.get("filename", ""))
            return (
                f'<ac:link><ri:attachment ri:filename="{filename}"/>'
                f'<ac:plain-text-link-body>{cdata(node.text)}</ac:plain-text-link-body></ac:link>'
            )
        if kind == InlineKind.IMAGE:
            return self._image(node.attrs, escape_text(node.text))
        if kind == InlineKind.MENTION:
            account_id = select_account_id(node.attrs.get("account_id", ""), node.attrs.get("label", ""))
            return f'<ac:link><ri:user ri:account-id="{escape_attribute(account_id)}"/></ac:link>'
        if kind == InlineKind.STATUS:
            return status_macro(node.attrs.get("color", "grey"), node.attrs.get("title", "Status"))
        if kind == InlineKind.COMMENT_RANGE:
            ref = escape_attribute(node.attrs.get("ref", ""))
            return f'<ac:inline-comment-marker ac:ref="{ref}">{self.emit_inlines(node.children)}</ac:inline-comment-marker>'

        logger.debug(f"Skipping inline node of kind {kind.value}")
        return ""
