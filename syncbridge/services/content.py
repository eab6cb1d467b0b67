"""Markdown translation between Linear and GitHub.

Handles @mentions, inline images, HTML that Linear does not render, and the
footers this service appends to everything it writes. Footers are always
stripped before being re-appended, so rendering is idempotent.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from syncbridge.constants import SYNC_FOOTER
from syncbridge.services.events import Author, Side
from syncbridge.services.identity import IdentityMapper

logger = logging.getLogger(__name__)

MENTION_RE = re.compile(r"(?<![\w`])@([A-Za-z0-9][\w-]*)")
IMG_TAG_RE = re.compile(r"<img\b[^>]*?>", re.IGNORECASE)
_IMG_SRC_RE = re.compile(r"""\bsrc\s*=\s*["']([^"']+)["']""", re.IGNORECASE)
_IMG_ALT_RE = re.compile(r"""\balt\s*=\s*["']([^"']*)["']""", re.IGNORECASE)
HTML_COMMENT_RE = re.compile(r"<!--.*?-->", re.DOTALL)
STRIKE_RE = re.compile(r"<(del|s|strike)>(.*?)</\1>", re.IGNORECASE | re.DOTALL)

# Linear uploads are private unless fetched with public-file-url headers,
# which returns the same URL with a signature query string.
LINEAR_UPLOAD_RE = re.compile(r"https://uploads\.linear\.app/[^\s)\"'>]+")

ISSUE_KEY_PREFIX_RE = re.compile(r"^\s*\[[A-Za-z][A-Za-z0-9]*-\d+\]\s*")

LINEAR_COMMENT_ID_RE = re.compile(r"<!--\s*linear-comment-id:\s*([\w-]+)\s*-->")
GITHUB_COMMENT_ID_RE = re.compile(r"#issuecomment-(\d+)")

# Footers we write on GitHub: a trailing <sub> block mentioning the sync footer
# or a Linear identifier link, optionally followed by a comment-id marker.
_GITHUB_FOOTER_RE = re.compile(
    r"\s*<sub>[^<]*?(?:" + re.escape(SYNC_FOOTER) + r"|\[[A-Za-z][A-Za-z0-9]*-\d+\]\()[^<]*</sub>"
    r"\s*(?:<!--\s*linear-comment-id:\s*[\w-]+\s*-->\s*)?\Z"
)
# Footer we write on Linear comments
_LINEAR_FOOTER_RE = re.compile(r"\s*\[[^\]\n]+ on GitHub\]\([^)\s]*\) \| " + re.escape(SYNC_FOOTER) + r"\s*\Z")
# Attribution line for content from GitHub users without a sync
_ANONYMOUS_ATTRIBUTION_RE = re.compile(r"\s*\[[^\]\n]+ on GitHub\]\([^)\s]*\)\s*\Z")


def issue_footer(ticket_key: str, ticket_url: str | None) -> str:
    """Footer of a GitHub issue that was created from a Linear ticket."""
    return f"<sub>{SYNC_FOOTER} | [{ticket_key}]({ticket_url or ''})</sub>"


def cross_link_footer(ticket_key: str, ticket_url: str | None) -> str:
    """Footer of a GitHub issue that was pulled into Linear."""
    return f"<sub>[{ticket_key}]({ticket_url or ''})</sub>"


def github_comment_footer(author_name: str | None, linear_comment_id: str) -> str:
    # Never expose an email address used as a display name
    name = (author_name or "Someone").split("@")[0]
    return f"<sub>{SYNC_FOOTER} | {name} on Linear</sub>\n<!-- linear-comment-id:{linear_comment_id} -->"


def linear_comment_footer(author: Author | None) -> str:
    login = (author.name if author else None) or "Someone"
    url = (author.url if author else None) or ""
    return f"[{login} on GitHub]({url}) | {SYNC_FOOTER}"


def strip_footer(body: str | None) -> str:
    """Remove every trailing footer we may have appended."""
    text = body or ""
    while True:
        stripped = _GITHUB_FOOTER_RE.sub("", text)
        stripped = _LINEAR_FOOTER_RE.sub("", stripped)
        if stripped == text:
            return text.rstrip()
        text = stripped


def append_footer(body: str | None, footer: str | None) -> str:
    text = strip_footer(body)
    if not footer:
        return text
    return f"{text}\n\n{footer}" if text else footer


def strip_issue_key(title: str | None) -> str:
    """Drop a leading "[ENG-12] " that we add to GitHub titles."""
    return ISSUE_KEY_PREFIX_RE.sub("", title or "", count=1)


def with_issue_key(ticket_key: str, title: str | None) -> str:
    return f"[{ticket_key}] {strip_issue_key(title)}"


def extract_linear_comment_id(body: str | None) -> Optional[str]:
    match = LINEAR_COMMENT_ID_RE.search(body or "")
    return match.group(1) if match else None


def extract_github_comment_id(body: str | None) -> Optional[str]:
    match = GITHUB_COMMENT_ID_RE.search(body or "")
    return match.group(1) if match else None


def img_tags_to_markdown(text: str) -> str:
    def _replace(match: re.Match) -> str:
        tag = match.group(0)
        src = _IMG_SRC_RE.search(tag)
        if not src:
            return tag
        alt = _IMG_ALT_RE.search(tag)
        return f"![{alt.group(1) if alt else ''}]({src.group(1)})"

    return IMG_TAG_RE.sub(_replace, text)


def has_linear_uploads(text: str | None) -> bool:
    return bool(text) and LINEAR_UPLOAD_RE.search(text) is not None


def unsign_linear_uploads(text: str) -> str:
    """Drop signature query strings from Linear upload URLs."""
    return LINEAR_UPLOAD_RE.sub(lambda m: m.group(0).split("?", 1)[0], text)


def quote_block(text: str) -> str:
    return "\n".join(f"> {line}" if line else ">" for line in text.splitlines()) or ">"


@dataclass
class ContentContext:
    """Per-call rendering options.

    ``refetch`` returns the same body re-read with public image URLs; it is
    only used for Linear content that embeds uploads.
    """

    footer: Optional[str] = None
    refetch: Optional[Callable[[], Awaitable[Optional[str]]]] = None
    anonymous_author: Optional[Author] = None


class ContentTransformer:
    """Rewrite bodies and comments for the other tracker"""

    def __init__(self, identity: IdentityMapper):
        self.identity = identity

    async def to_counterpart(self, body: Optional[str], from_side: Side, context: ContentContext | None = None) -> str:
        context = context or ContentContext()
        text = body or ""

        if from_side is Side.LINEAR:
            text = await self._refresh_images(text, context)
            text = strip_footer(text)
            text = await self.rewrite_mentions(text, from_side)
        else:
            text = strip_footer(text)
            text = await self.rewrite_mentions(text, from_side)
            text = STRIKE_RE.sub(lambda m: f"~~{m.group(2)}~~", text)
            text = img_tags_to_markdown(text)
            text = HTML_COMMENT_RE.sub("", text).strip()
            text = unsign_linear_uploads(text)
            if context.anonymous_author is not None:
                author = context.anonymous_author
                text = _ANONYMOUS_ATTRIBUTION_RE.sub("", text)
                if not text.startswith(">"):
                    text = quote_block(text)
                if context.footer is None:
                    text = f"{text}\n\n[{author.name} on GitHub]({author.url or ''})"

        return append_footer(text, context.footer)

    async def rewrite_mentions(self, text: str, from_side: Side) -> str:
        """Replace @name with the counterpart username; unknown names pass through."""
        names = {m.group(1) for m in MENTION_RE.finditer(text)}
        if not names:
            return text
        try:
            mapping = await self.identity.map_mentions(from_side, names)
        except Exception as e:
            logger.warning(f"Could not map {from_side.value} mentions: {e}")
            return text
        if not mapping:
            return text
        return MENTION_RE.sub(lambda m: f"@{mapping.get(m.group(1), m.group(1))}", text)

    async def _refresh_images(self, text: str, context: ContentContext) -> str:
        """Swap in publicly readable image URLs; keep the original on any failure."""
        if context.refetch is None or not (has_linear_uploads(text) or IMG_TAG_RE.search(text)):
            return text
        try:
            refreshed = await context.refetch()
        except Exception as e:
            logger.warning(f"Could not refresh Linear image URLs, keeping originals: {e}")
            return text
        return refreshed if refreshed else text
