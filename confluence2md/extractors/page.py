"""Page-level extraction from a Confluence HTML export.

Locates the main-content root and pulls the page title, breadcrumb trail,
"Created by ... last updated by ..." metadata, attachment list and page
history table out of the surrounding chrome.
"""

from __future__ import annotations

import logging
import posixpath
import re
from typing import Any
from urllib.parse import unquote, urlsplit

import dateparser
from bs4 import BeautifulSoup, Tag

from confluence2md.items import Attachment, Breadcrumb, PageMetadata

from .tables import TableKind, classify_table

logger = logging.getLogger(__name__)

# Main-content roots, tried in order
_MAIN_CONTENT_SELECTORS: tuple[str, ...] = (
    "#main-content",
    ".wiki-content",
    "#content",
    "main",
    ".main-container",
    ".view",
    "article",
)

_TITLE_SELECTORS: tuple[str, ...] = (
    "#title-text",
    ".pagetitle",
    "#title-heading",
    "h1",
)

_BREADCRUMB_SELECTORS: tuple[str, ...] = (
    "#breadcrumbs li",
    ".breadcrumb-section ol li",
    ".aui-breadcrumb li",
)

_HISTORY_TABLE_SELECTORS: tuple[str, ...] = (
    "#page-history-container table",
    "table.tableview",
    "table.pageHistory",
)

_ATTACHMENT_LINK_SELECTORS: tuple[str, ...] = (
    'a[data-linked-resource-type="attachment"]',
    ".greybox a",
    "span.confluence-embedded-file a",
    "div.confluence-embedded-file a",
)

_WHITESPACE_RE = re.compile(r"\s+")
_SPACE_PREFIX_RE = re.compile(r"^[^:]*\S\s+:\s+")
_CREATED_RE = re.compile(
    r"^created by (?P<who>.+?)"
    r"(?:, (?P<update>last (?:updated|modified).*)|\s+on\s+(?P<created_on>.+))?$",
    re.IGNORECASE,
)
_UPDATED_RE = re.compile(
    r"^last (?:updated|modified)(?: by (?P<who>.+?))?(?: on (?P<on>.+))?$",
    re.IGNORECASE,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _safe_str(val: Any, default: str = "") -> str:
    """Safely convert a BeautifulSoup attribute value (str | list | None) to str."""
    if val is None:
        return default
    if isinstance(val, list):
        return " ".join(str(v) for v in val)
    return str(val)


def _text(tag: Tag) -> str:
    return _WHITESPACE_RE.sub(" ", tag.get_text()).strip()


def _parse_date(raw: str | None) -> str | None:
    """Parse a Confluence date ("Mar 05, 2021") to an ISO 8601 date string."""
    if not raw:
        return None
    raw = _WHITESPACE_RE.sub(" ", raw.strip()).rstrip(".")
    try:
        parsed = dateparser.parse(raw, settings={"PREFER_DAY_OF_MONTH": "first"})
        if parsed:
            return parsed.date().isoformat()
    except Exception as exc:
        logger.debug("Date parse failed for %r: %s", raw, exc)
    return None


def _asset_path(href: str) -> str:
    """Filesystem-style path of an export-relative link (no query, decoded)."""
    return posixpath.normpath(unquote(urlsplit(href).path))


def _is_local(href: str) -> bool:
    parts = urlsplit(href)
    return bool(parts.path) and not parts.scheme and not parts.netloc


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def find_main_content(soup: BeautifulSoup) -> Tag | BeautifulSoup:
    """Return the node holding the page body."""
    for selector in _MAIN_CONTENT_SELECTORS:
        found = soup.select_one(selector)
        if found is not None:
            logger.debug("Main content matched %s", selector)
            return found
    if soup.body is not None:
        return soup.body
    return soup


def extract_title(soup: BeautifulSoup, strip_prefix: bool = True) -> str:
    """Return the page title, without the ``"Space : "`` prefix Confluence adds."""
    title = ""
    for selector in _TITLE_SELECTORS:
        found = soup.select_one(selector)
        if found is not None and _text(found):
            title = _text(found)
            break
    if not title and soup.title is not None:
        title = _text(soup.title)
    if strip_prefix:
        title = _SPACE_PREFIX_RE.sub("", title)
    return title or "Untitled"


def extract_breadcrumbs(soup: BeautifulSoup) -> list[Breadcrumb]:
    """Return the breadcrumb trail, outermost first."""
    for selector in _BREADCRUMB_SELECTORS:
        crumbs = []
        for item in soup.select(selector):
            link = item.find("a")
            source = link if isinstance(link, Tag) else item
            title = _text(source)
            if title:
                href = _safe_str(link.get("href")) if isinstance(link, Tag) else ""
                crumbs.append(Breadcrumb(title=title, href=href))
        if crumbs:
            return crumbs
    return []


def extract_page_metadata(soup: BeautifulSoup) -> tuple[PageMetadata, Tag | None]:
    """Parse the "Created by A, last updated by B on DATE" line.

    Returns the metadata and the node it came from, so the caller can mark
    that node as consumed.
    """
    node = soup.select_one(".page-metadata")
    if node is None:
        return PageMetadata(), None

    text = _text(node)
    match = _CREATED_RE.match(text)
    if match is None:
        update = _UPDATED_RE.match(text)
        if update is None:
            return PageMetadata(), node
        return PageMetadata(
            last_updated_by=update.group("who"),
            last_updated_on=_parse_date(update.group("on")),
        ), node

    meta = PageMetadata(created_by=match.group("who").strip())
    update = _UPDATED_RE.match(match.group("update") or "")
    if update is not None:
        meta.last_updated_by = (update.group("who") or "").strip() or None
        meta.last_updated_on = _parse_date(update.group("on"))
    return meta, node


def extract_attachments(soup: BeautifulSoup) -> list[Attachment]:
    """Return every attachment the export links to, deduplicated by path."""
    found: dict[str, Attachment] = {}

    def add(href: str, name: str) -> None:
        if not _is_local(href):
            return
        path = _asset_path(href)
        if path not in found:
            found[path] = Attachment(name=name or posixpath.basename(path), path=path)

    for selector in _ATTACHMENT_LINK_SELECTORS:
        for link in soup.select(selector):
            href = _safe_str(link.get("href")).strip()
            if href and "attachments/" in href:
                add(href, _safe_str(link.get("data-filename")) or _text(link))
    for img in soup.select('img[src*="attachments/"]'):
        src = _safe_str(img.get("src")).strip()
        add(src, _safe_str(img.get("data-linked-resource-default-alias")))
    return list(found.values())


def find_history_table(soup: BeautifulSoup) -> Tag | None:
    """Return the page-history table, if the export has one."""
    for selector in _HISTORY_TABLE_SELECTORS:
        found = soup.select_one(selector)
        if found is not None:
            return found
    for table in soup.find_all("table"):
        if classify_table(table) is TableKind.HISTORY:
            return table
    return None
