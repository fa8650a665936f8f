"""
Safe Markdown renderer for course overviews and highlights.

Why:
- Admins write course descriptions in markdown (headings, emphasis, lists,
  tables). Visitors must see formatted text without any path for script
  injection through the admin form.

Security model:
- Let a markdown parser build the HTML (with HTML input disabled).
- Sanitize the output via a small whitelist so only known-safe tags remain.
"""
from __future__ import annotations

from html import unescape

from markdown_it import MarkdownIt
import bleach


_BLOCK_TAGS = ("p", "br", "h2", "h3", "h4", "ul", "ol", "li", "blockquote", "pre")
_INLINE_TAGS = ("strong", "em", "code", "a")
_TABLE_TAGS = ("table", "thead", "tbody", "tr", "th", "td")
# h1 is left out: the page title owns it
_ALLOWED_TAGS = frozenset(_BLOCK_TAGS + _INLINE_TAGS + _TABLE_TAGS)

_ALLOWED_ATTRIBUTES = {
    "a": ["href", "title"],
}

_ALLOWED_PROTOCOLS = ["http", "https", "mailto"]

# html=False: raw HTML in the source is rendered as text.
# breaks=True: single newlines become <br>, matching how admins type bullet text.
_MD = MarkdownIt(
    "commonmark",
    {
        "html": False,
        "linkify": False,
        "typographer": False,
        "breaks": True,
    },
).enable("table")


def render_markdown_safe(src: str | None) -> str:
    """Render admin-authored markdown to safe HTML.

    Parameters:
        src: Raw markdown string (may be empty or None).
    Returns:
        Sanitised HTML limited to a small whitelist of tags. `h1` is not in the
        whitelist because the page title owns it; it is escaped as text.
    """
    if not src:
        return ""

    rendered = _MD.render(str(src))
    cleaned = bleach.clean(
        rendered,
        tags=_ALLOWED_TAGS,
        attributes=_ALLOWED_ATTRIBUTES,
        protocols=_ALLOWED_PROTOCOLS,
        strip=False,
    )
    return cleaned.strip()


def markdown_to_text(src: str | None, limit: int = 160) -> str:
    """Plain-text excerpt for meta descriptions and course cards."""
    if not src:
        return ""
    text = unescape(bleach.clean(_MD.render(str(src)), tags=[], strip=True))
    text = " ".join(text.split())
    if len(text) <= limit:
        return text
    return text[: limit - 1].rstrip() + "…"
