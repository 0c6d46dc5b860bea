"""
core/sanitizer.py -- Turns user-authored Markdown into HTML that is safe to render.

Pipeline:
  1. Python-Markdown renders the lightweight markup into an HTML fragment.
     Markdown passes raw inline HTML through untouched, so step 2 is what makes
     the output safe, not step 1.
  2. nh3 (ammonia) re-parses that fragment and keeps only allow-listed tags,
     attributes, and URL schemes. Everything else is dropped: <script>/<style>
     together with their content, on* handlers, style attributes, and any
     javascript:/data:/vbscript: URL.

render() is total. A Markdown or nh3 failure degrades to escaped literal text and
is logged as "sanitize.degraded"; callers never see an exception.

Sanitize-on-write: only the output of render() is stored or served. Stored
HTML must never be fed back into render() as markup.

Layer rule: core/ is the kernel. No imports from api/, auth/, or forum/.
"""

from __future__ import annotations

import html
import logging

import markdown
import nh3

logger = logging.getLogger("agora.sanitizer")

_MARKDOWN_EXTENSIONS = ["fenced_code", "tables", "sane_lists", "nl2br"]

ALLOWED_TAGS: frozenset[str] = frozenset(
    {
        "a",
        "abbr",
        "b",
        "blockquote",
        "br",
        "code",
        "del",
        "em",
        "h1",
        "h2",
        "h3",
        "h4",
        "h5",
        "h6",
        "hr",
        "i",
        "img",
        "li",
        "ol",
        "p",
        "pre",
        "s",
        "strong",
        "sub",
        "sup",
        "table",
        "tbody",
        "td",
        "th",
        "thead",
        "tr",
        "ul",
    }
)

# "rel" must not appear here: nh3 sets it itself through link_rel.
ALLOWED_ATTRIBUTES: dict[str, set[str]] = {
    "a": {"href", "title"},
    "abbr": {"title"},
    "img": {"src", "alt", "title"},
    "th": {"align"},
    "td": {"align"},
}

ALLOWED_URL_SCHEMES: frozenset[str] = frozenset({"http", "https", "mailto"})

# Removed together with everything inside them.
_STRIPPED_CONTENT_TAGS = {"script", "style"}

_LINK_REL = "noopener noreferrer nofollow"


def _clean(fragment: str) -> str:
    return nh3.clean(
        fragment,
        tags=set(ALLOWED_TAGS),
        clean_content_tags=_STRIPPED_CONTENT_TAGS,
        attributes=ALLOWED_ATTRIBUTES,
        url_schemes=set(ALLOWED_URL_SCHEMES),
        link_rel=_LINK_REL,
        strip_comments=True,
    )


def _escaped_text(raw_markup: str) -> str:
    # Lone surrogates cannot be encoded; replace them before escaping.
    text = raw_markup.encode("utf-8", "surrogatepass").decode("utf-8", "replace")
    return f"<p>{html.escape(text)}</p>"


def render(raw_markup: str | None) -> str:
    """Convert untrusted Markdown into an allow-listed HTML fragment.

    Never raises. Empty or missing input renders as "".
    """
    if not raw_markup:
        return ""
    try:
        fragment = markdown.markdown(raw_markup, extensions=_MARKDOWN_EXTENSIONS, output_format="html")
        return _clean(fragment)
    except Exception:
        logger.warning("sanitize.degraded length=%d", len(raw_markup), exc_info=True)
        return _escaped_text(raw_markup)
