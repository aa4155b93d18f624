"""Heading anchors and same-document link resolution.

Slugs live in an out-of-band map keyed by node identity, so the parsed tree
is never mutated.  Every id already present in the document is reserved up
front, and headings are registered in document order, so two headings whose
text normalises to the same slug get ``intro``, ``intro-2``, ``intro-3``.
"""

from __future__ import annotations

import logging
import re
import unicodedata
from urllib.parse import unquote

from bs4 import BeautifulSoup, Tag

from .filters import class_list

logger = logging.getLogger(__name__)

HEADING_TAGS: tuple[str, ...] = ("h1", "h2", "h3", "h4", "h5", "h6")

SLUG_PLACEHOLDER = "section"

_NON_ALNUM_RE = re.compile(r"[\W_]+")
_WHITESPACE_RE = re.compile(r"\s+")

_TOC_CLASSES: frozenset[str] = frozenset({"toc-macro", "toc", "client-side-toc-macro"})


def slugify(text: str, placeholder: str = SLUG_PLACEHOLDER) -> str:
    """Derive an anchor-safe slug from *text*.

    >>> slugify("Café Überblick!")
    'cafe-uberblick'
    """
    decomposed = unicodedata.normalize("NFKD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    slug = _NON_ALNUM_RE.sub("-", stripped.lower()).strip("-")
    return slug or placeholder


def unique_slug(base: str, seen: set[str]) -> str:
    """Return *base* or ``base-2``, ``base-3``... and record it in *seen*."""
    slug = base
    counter = 2
    while slug in seen:
        slug = f"{base}-{counter}"
        counter += 1
    seen.add(slug)
    return slug


def node_text(node: Tag) -> str:
    """Return *node*'s text with whitespace runs collapsed."""
    return _WHITESPACE_RE.sub(" ", node.get_text()).strip()


def is_heading(node: Tag) -> bool:
    return node.name in HEADING_TAGS


def in_toc(node: Tag) -> bool:
    """Return True if *node* sits inside a table-of-contents macro."""
    for parent in node.parents:
        if not isinstance(parent, Tag):
            continue
        if _TOC_CLASSES.intersection(class_list(parent)):
            return True
        if str(parent.get("data-macro-name") or "") == "toc":
            return True
    return False


class SlugRegistry:
    """Per-document map from heading nodes to anchor slugs.

    Entries are created on first request and never change afterwards, so
    resolving the same heading twice always returns the same slug.
    """

    def __init__(self, document: BeautifulSoup | Tag) -> None:
        self._document = document
        self._explicit: dict[str, Tag] = {}
        self._derived: dict[int, str] = {}
        self._used: set[str] = set()
        for tag in document.find_all(id=True):
            tag_id = str(tag.get("id"))
            self._explicit.setdefault(tag_id, tag)
            self._used.add(tag_id)

    def prime(self, root: BeautifulSoup | Tag) -> None:
        """Register every heading under *root* in document order."""
        for heading in root.find_all(HEADING_TAGS):
            self.resolve(heading)

    def resolve(self, heading: Tag) -> str:
        """Return the anchor for *heading*: its explicit id, else a text slug."""
        explicit = str(heading.get("id") or "").strip()
        if explicit:
            return explicit
        return self.text_slug(heading)

    def text_slug(self, node: Tag) -> str:
        """Return the unique slug derived from *node*'s text."""
        key = id(node)
        cached = self._derived.get(key)
        if cached is not None:
            return cached
        slug = unique_slug(slugify(node_text(node)), self._used)
        self._derived[key] = slug
        logger.debug("Assigned slug %r to <%s>", slug, node.name)
        return slug

    def find(self, element_id: str) -> Tag | None:
        return self._explicit.get(element_id)

    def resolve_link(self, href: str) -> str:
        """Rewrite a same-document ``#fragment`` href to its heading slug.

        Non-fragment hrefs and fragments whose target is missing are
        returned unchanged.
        """
        if not href.startswith("#") or len(href) == 1:
            return href
        target = self.find(unquote(href[1:]))
        if target is None:
            logger.debug("Unresolved fragment link %s", href)
            return href
        if is_heading(target) or in_toc(target):
            return "#" + self.text_slug(target)
        return href
