"""Drop filter: decide whether a node is excluded from the Markdown output.

Confluence exports wrap the page body in a good deal of chrome (breadcrumbs,
sidebars, footers, like/label widgets).  A node is dropped when any of the
rules below matches; otherwise it is dropped only when the traversal scope is
outside the main-content root.
"""

from __future__ import annotations

import logging
import re

from bs4 import NavigableString, Tag
from bs4.element import Comment, Declaration, Doctype, PageElement, ProcessingInstruction

logger = logging.getLogger(__name__)

# Tags never rendered
_DROP_TAGS: frozenset[str] = frozenset({"script", "style", "noscript", "button"})

# Exact class names that mark Confluence chrome
_DROP_CLASSES: frozenset[str] = frozenset(
    {
        "breadcrumb-section",
        "footer",
        "aui-nav",
        "pageSectionHeader",
        "hidden",
        "navigation",
        "screenreader-only",
        "hidden-xs",
        "hidden-sm",
        "aui-icon",
        "aui-avatar-inner",
        "expand-control",
    },
)

# Exact ids that mark Confluence chrome
_DROP_IDS: frozenset[str] = frozenset(
    {
        "breadcrumbs",
        "footer",
        "navigation",
        "sidebar",
        "page-sidebar",
        "header",
        "actions",
        "likes-and-labels-container",
        "page-metadata-secondary",
    },
)

_DISPLAY_NONE_RE = re.compile(r"display\s*:\s*none", re.IGNORECASE)
_VISIBILITY_HIDDEN_RE = re.compile(r"visibility\s*:\s*hidden", re.IGNORECASE)

# Non-content string subclasses produced by the parser
_SKIPPED_STRINGS = (Comment, Declaration, Doctype, ProcessingInstruction)


def class_list(tag: Tag) -> list[str]:
    """Return *tag*'s classes as a list, whatever shape the parser stored."""
    classes = tag.get("class") or []
    if isinstance(classes, str):
        return classes.split()
    return [str(c) for c in classes]


def is_inline_hidden(tag: Tag) -> bool:
    """Return True if *tag*'s inline style hides it."""
    style = str(tag.get("style") or "")
    if not style:
        return False
    return bool(_DISPLAY_NONE_RE.search(style) or _VISIBILITY_HIDDEN_RE.search(style))


def drop_reason(node: PageElement, in_main: bool = True) -> str | None:
    """Return a short reason string when *node* must be dropped, else None."""
    if isinstance(node, _SKIPPED_STRINGS):
        return "comment"
    if isinstance(node, NavigableString):
        return None if in_main else "outside main content"
    if not isinstance(node, Tag):
        return "unsupported node"

    if node.name in _DROP_TAGS:
        return f"tag <{node.name}>"
    if str(node.get("aria-hidden") or "").lower() == "true":
        return "aria-hidden"
    if is_inline_hidden(node):
        return "inline hidden"
    denied = _DROP_CLASSES.intersection(class_list(node))
    if denied:
        return f"class {sorted(denied)[0]}"
    if str(node.get("id") or "") in _DROP_IDS:
        return f"id {node.get('id')}"
    if not in_main:
        return "outside main content"
    return None


def should_drop(node: PageElement, in_main: bool = True) -> bool:
    """Return True if *node* contributes nothing to the output."""
    return drop_reason(node, in_main) is not None
