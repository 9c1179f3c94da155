"""Token decoder: durable tokens to portable markdown.

Each token kind has a fixed markdown form that the reverse parser
recognizes again on upload:

    WIDGET          <!-- widget:TOC -->
    STATUS          <!-- status:green:Done -->
    MENTION         <!-- mention:ACCOUNT_ID Label -->
    PANEL           > <!-- panel:color:icon --> followed by > body lines
    IMAGE           ![caption](url) or ![caption](attachment:file)
    CODE            fenced block
    COMMENT ranges  <!-- comment:ID --> ... <!-- comment-end:ID -->
    links           [text](page:SPACE:Title), [text](attachment:file), [text](url)
"""

import logging
import re
from typing import AbstractSet

from .models import DurableToken, TokenKind
from .table_renderer import TableRenderer

logger = logging.getLogger(__name__)

BACKTICK_RUN = re.compile(r'`+')

BLOCK_KINDS = frozenset({TokenKind.CODE, TokenKind.PANEL, TokenKind.TABLE, TokenKind.WIDGET})

CELL_TAGS = frozenset({"td", "th"})


def encode_destination(destination: str) -> str:
    """Percent-encode characters that would end a link destination early."""
    return destination.replace("(", "%28").replace(")", "%29").replace(" ", "%20")


def comment_safe(text: str) -> str:
    """Make text safe to place inside an HTML comment."""
    return text.replace("-->", "--&gt;").replace("\n", " ").strip()


def code_fence(body: str) -> str:
    longest = max((len(run) for run in BACKTICK_RUN.findall(body)), default=0)
    return "`" * max(3, longest + 1)


class TokenDecoder:
    """Turns DurableTokens into markdown text.

    Panel bodies and table cells are rendered through the BlockRenderer
    that owns this decoder, so nested tokens decode the same way at any
    depth.
    """

    def __init__(self, renderer):
        self.renderer = renderer
        self.tables = TableRenderer(renderer)

    def is_block(self, token: DurableToken, parent_tags: AbstractSet[str] = frozenset()) -> bool:
        """Whether the token renders as a standalone block in this context."""
        if "_inline" in parent_tags or parent_tags & CELL_TAGS:
            return False
        return token.kind in BLOCK_KINDS

    def decode(self, token: DurableToken, parent_tags: AbstractSet[str] = frozenset()) -> str:
        handler = getattr(self, f"_decode_{token.kind.value}")
        return handler(token, parent_tags)

    def _decode_widget(self, token, parent_tags):
        return f"<!-- widget:{token.get('name', 'toc').upper()} -->"

    def _decode_status(self, token, parent_tags):
        color = token.get("color", "grey").lower()
        title = comment_safe(token.get("title", "Status"))
        return f"<!-- status:{color}:{title} -->"

    def _decode_mention(self, token, parent_tags):
        account_id = token.get("account_id")
        label = comment_safe(token.get("label", account_id))
        return f"<!-- mention:{account_id} {label} -->"

    def _decode_panel(self, token, parent_tags):
        body = ""
        if token.markup is not None:
            body = self.renderer.process_tag(token.markup, parent_tags=set()).strip()

        color = token.get("color", "panel")
        icon = token.get("icon", "panel")

        if not self.is_block(token, parent_tags):
            return " ".join(line.strip() for line in body.split("\n") if line.strip())

        lines = [f"> <!-- panel:{color}:{icon} -->"]
        for line in body.split("\n"):
            lines.append(f"> {line}" if line.strip() else ">")
        return "\n".join(lines)

    def _decode_image(self, token, parent_tags):
        caption = self.renderer.escape(token.get("caption"), parent_tags)
        return f"![{caption}]({encode_destination(token.get('reference'))})"

    def _decode_code(self, token, parent_tags):
        body = token.get("body")
        if not self.is_block(token, parent_tags):
            flat = " ".join(body.split())
            fence = "`" * (max((len(r) for r in BACKTICK_RUN.findall(flat)), default=0) + 1)
            return f"{fence}{flat}{fence}" if flat else ""

        fence = code_fence(body)
        return f"{fence}{token.get('language')}\n{body}\n{fence}"

    def _decode_comment_start(self, token, parent_tags):
        return f"<!-- comment:{token.get('ref')} -->"

    def _decode_comment_end(self, token, parent_tags):
        return f"<!-- comment-end:{token.get('ref')} -->"

    def _decode_page_link(self, token, parent_tags):
        title = token.get("title")
        space = token.get("space")
        target = f"page:{space}:{title}" if space else f"page:{title}"
        text = self.renderer.escape(token.get("text", title), parent_tags)
        return f"[{text}]({encode_destination(target)})"

    def _decode_attachment_link(self, token, parent_tags):
        filename = token.get("filename")
        text = self.renderer.escape(token.get("text", filename), parent_tags)
        return f"[{text}]({encode_destination('attachment:' + filename)})"

    def _decode_url_link(self, token, parent_tags):
        url = token.get("url")
        text = self.renderer.escape(token.get("text", url), parent_tags)
        return f"[{text}]({encode_destination(url)})"

    def _decode_table(self, token, parent_tags):
        if token.markup is None:
            return ""
        if not self.is_block(token, parent_tags):
            return self.tables.flatten(token.markup)
        return self.tables.render(token.markup)

    def _decode_html_comment(self, token, parent_tags):
        text = comment_safe(token.get("text"))
        return f"<!-- {text} -->" if text else ""
