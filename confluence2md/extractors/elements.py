"""Recursive element dispatcher: walk a Confluence DOM once and emit Markdown.

Every node passes through :meth:`ElementConverter.convert`, which

1. short-circuits nodes already in the per-document processed set,
2. records the node as processed *before* its handler runs,
3. applies the drop filter, and
4. dispatches on the node's :class:`ElementKind`.

Tags without a dedicated handler fall back to :attr:`ElementKind.UNKNOWN`,
which converts the children without adding markup, so no text is lost.

Usage::

    from bs4 import BeautifulSoup
    from confluence2md.extractors.elements import ConversionState, ElementConverter

    soup = BeautifulSoup(html, "lxml")
    converter = ElementConverter(ConversionState.for_document(soup))
    markdown = converter.convert_children(soup.body)
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import TYPE_CHECKING
from urllib.parse import unquote, urlsplit, urlunsplit

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import PageElement

from confluence2md.items import ConverterOptions, ImageAsset
from confluence2md.plugins import get_element_handlers

from .filters import class_list, drop_reason
from .slugs import SlugRegistry
from .tables import flow, render_table

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Element kinds
# ---------------------------------------------------------------------------

class ElementKind(StrEnum):
    HEADING        = "heading"
    PARAGRAPH      = "paragraph"
    STRONG         = "strong"
    EMPHASIS       = "emphasis"
    STRIKETHROUGH  = "strikethrough"
    UNORDERED_LIST = "unordered_list"
    ORDERED_LIST   = "ordered_list"
    LIST_ITEM      = "list_item"
    LINK           = "link"
    IMAGE          = "image"
    CODE           = "code"
    PREFORMATTED   = "preformatted"
    DIV            = "div"
    TABLE          = "table"
    BREAK          = "break"
    RULE           = "rule"
    BLOCKQUOTE     = "blockquote"
    SPAN           = "span"
    UNKNOWN        = "unknown"


_TAG_KINDS: dict[str, ElementKind] = {
    **{f"h{i}": ElementKind.HEADING for i in range(1, 7)},
    "p": ElementKind.PARAGRAPH,
    "strong": ElementKind.STRONG,
    "b": ElementKind.STRONG,
    "em": ElementKind.EMPHASIS,
    "i": ElementKind.EMPHASIS,
    "del": ElementKind.STRIKETHROUGH,
    "s": ElementKind.STRIKETHROUGH,
    "strike": ElementKind.STRIKETHROUGH,
    "ul": ElementKind.UNORDERED_LIST,
    "ol": ElementKind.ORDERED_LIST,
    "li": ElementKind.LIST_ITEM,
    "a": ElementKind.LINK,
    "img": ElementKind.IMAGE,
    "code": ElementKind.CODE,
    "tt": ElementKind.CODE,
    "kbd": ElementKind.CODE,
    "samp": ElementKind.CODE,
    "pre": ElementKind.PREFORMATTED,
    "div": ElementKind.DIV,
    "table": ElementKind.TABLE,
    "br": ElementKind.BREAK,
    "hr": ElementKind.RULE,
    "blockquote": ElementKind.BLOCKQUOTE,
    "span": ElementKind.SPAN,
}


def element_kind(tag: Tag) -> ElementKind:
    return _TAG_KINDS.get(tag.name, ElementKind.UNKNOWN)


# Tags whose output starts on a fresh line
_BLOCK_TAGS: frozenset[str] = frozenset(
    {
        "address", "article", "aside", "blockquote", "dd", "details", "div", "dl", "dt",
        "figcaption", "figure", "footer", "h1", "h2", "h3", "h4", "h5", "h6", "header",
        "hr", "li", "main", "nav", "ol", "p", "pre", "section", "summary", "table",
        "tbody", "td", "tfoot", "th", "thead", "tr", "ul",
    },
)

# Classes routed to the panel / layout / code renderers
_PANEL_CLASSES: frozenset[str] = frozenset({"panel", "aui-message", "confluence-information-macro"})
_LAYOUT_CLASSES: frozenset[str] = frozenset(
    {
        "contentLayout", "contentLayout2", "columnLayout", "section",
        "cell", "innerCell", "layout-column",
    },
)
_CODE_PANEL_CLASSES: frozenset[str] = frozenset({"code", "codeContent", "preformatted"})

_PANEL_TITLE_SELECTORS: tuple[str, ...] = (
    ".panelHeader",
    ".panel-header",
    ".aui-message-header",
    ":scope > p.title",
    ":scope > .title",
)

_USER_LINK_CLASSES: frozenset[str] = frozenset({"confluence-userlink", "user-mention"})

_WHITESPACE_PARENTS: frozenset[str] = _BLOCK_TAGS | {"body", "html", "[document]"}

_WHITESPACE_RE = re.compile(r"\s+")
_BACKTICKS_RE = re.compile(r"`+")
_BRUSH_RE = re.compile(r"brush:\s*([\w+#-]+)")
_LANG_CLASS_RE = re.compile(r"^(?:language|lang)-([\w+#-]+)$")
_NO_LANGUAGE: frozenset[str] = frozenset({"none", "text", "plain", "plaintext"})


# ---------------------------------------------------------------------------
# Conversion context
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Scope:
    """Where in the tree a conversion call happens.

    ``path`` is a breadcrumb of tag names used in log messages; ``in_main``
    is False for nodes outside the main-content root, which the drop filter
    then discards.
    """

    path: str = "MAIN"
    in_main: bool = True
    in_link: bool = False

    def child(self, name: str) -> Scope:
        return replace(self, path=f"{self.path}>{name}")


MAIN_SCOPE = Scope()
OUTSIDE_SCOPE = Scope(path="OUTSIDE", in_main=False)


@dataclass
class ConversionState:
    """All mutable state of one document's conversion; never shared."""

    document: BeautifulSoup | Tag
    options: ConverterOptions
    slugs: SlugRegistry
    asset_exists: Callable[[str], bool] | None = None
    processed: set[int] = field(default_factory=set)
    images: list[ImageAsset] = field(default_factory=list)
    missing_assets: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @classmethod
    def for_document(
        cls,
        document: BeautifulSoup | Tag,
        options: ConverterOptions | None = None,
        asset_exists: Callable[[str], bool] | None = None,
    ) -> ConversionState:
        slugs = SlugRegistry(document)
        slugs.prime(document)
        return cls(
            document=document,
            options=options or ConverterOptions(),
            slugs=slugs,
            asset_exists=asset_exists,
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def blockquote(text: str) -> str:
    """Prefix every line of *text* with ``> ``."""
    body = text.strip("\n")
    if not body.strip():
        return ""
    lines = [f"> {line}" if line.strip() else ">" for line in body.split("\n")]
    return "\n".join(lines) + "\n\n"


def _ensure_newline(out: str) -> str:
    return out if not out or out.endswith("\n") else out.rstrip(" ") + "\n"


def _ensure_blank_line(out: str) -> str:
    if not out or out.endswith("\n\n"):
        return out
    return _ensure_newline(out) + "\n"


def _is_local(src: str) -> bool:
    parts = urlsplit(src)
    return not parts.scheme and not parts.netloc


def relative_target(path: str) -> str:
    if path.startswith(("./", "../", "/")):
        return path
    return "./" + path


def rewrite_html_href(href: str) -> str:
    """Point a relative link at the converted page: ``a.html#x`` -> ``a.md#x``."""
    parts = urlsplit(href)
    if parts.scheme or parts.netloc or not parts.path.lower().endswith(".html"):
        return href
    return urlunsplit(parts._replace(path=parts.path[: -len(".html")] + ".md"))


def detect_code_language(pre: Tag) -> str:
    """Language token of a code block, from Confluence or ``language-xyz`` hints."""
    candidates: list[Tag] = [pre]
    code = pre.find("code")
    if isinstance(code, Tag):
        candidates.append(code)
    for el in candidates:
        params = str(el.get("data-syntaxhighlighter-params") or "")
        match = _BRUSH_RE.search(params) or _BRUSH_RE.search(" ".join(class_list(el)))
        if match:
            return _language_token(match.group(1))
        if el.get("data-language"):
            return _language_token(str(el["data-language"]))
        for cls in class_list(el):
            m = _LANG_CLASS_RE.match(cls)
            if m:
                return _language_token(m.group(1))
    return ""


def _language_token(raw: str) -> str:
    token = raw.strip().rstrip(";").lower()
    return "" if token in _NO_LANGUAGE else token


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------

class ElementConverter:
    """Convert DOM nodes to Markdown fragments for one document."""

    def __init__(self, state: ConversionState) -> None:
        self.state = state
        self._handlers: dict[ElementKind, Callable[[Tag, Scope], str]] = {
            ElementKind.HEADING: self._heading,
            ElementKind.PARAGRAPH: self._paragraph,
            ElementKind.STRONG: lambda tag, scope: self._wrap(tag, scope, "**"),
            ElementKind.EMPHASIS: lambda tag, scope: self._wrap(tag, scope, "*"),
            ElementKind.STRIKETHROUGH: lambda tag, scope: self._wrap(tag, scope, "~~"),
            ElementKind.UNORDERED_LIST: lambda tag, scope: self._list(tag, scope, ordered=False),
            ElementKind.ORDERED_LIST: lambda tag, scope: self._list(tag, scope, ordered=True),
            ElementKind.LIST_ITEM: self.convert_children,
            ElementKind.LINK: self._link,
            ElementKind.IMAGE: self._image,
            ElementKind.CODE: self._code,
            ElementKind.PREFORMATTED: self._preformatted,
            ElementKind.DIV: self._div,
            ElementKind.TABLE: lambda tag, scope: render_table(tag, self, scope),
            ElementKind.BREAK: lambda tag, scope: "\n",
            ElementKind.RULE: lambda tag, scope: "---\n\n",
            ElementKind.BLOCKQUOTE: self._blockquote,
            ElementKind.SPAN: self.convert_children,
            ElementKind.UNKNOWN: self.convert_children,
        }

    @property
    def options(self) -> ConverterOptions:
        return self.state.options

    # ------------------------------------------------------------------
    # Walking
    # ------------------------------------------------------------------

    def claim(self, node: PageElement) -> bool:
        """Mark *node* processed; return False if it already was."""
        key = id(node)
        if key in self.state.processed:
            return False
        self.state.processed.add(key)
        return True

    def convert(self, node: PageElement, scope: Scope = MAIN_SCOPE) -> str:
        """Convert one node (and its subtree) to a Markdown fragment."""
        if not self.claim(node):
            logger.debug("Already processed node skipped at %s", scope.path)
            return ""

        reason = drop_reason(node, scope.in_main)
        if reason is not None:
            if isinstance(node, Tag):
                logger.debug("Dropped <%s> at %s: %s", node.name, scope.path, reason)
            return ""

        if isinstance(node, NavigableString):
            return self._text(node)
        if not isinstance(node, Tag):
            return ""

        for plugin in get_element_handlers():
            if plugin.matches(node):
                return plugin.convert(node, self, scope.child(node.name))

        return self._handlers[element_kind(node)](node, scope.child(node.name))

    def convert_children(self, node: Tag, scope: Scope = MAIN_SCOPE) -> str:
        """Concatenate the fragments of *node*'s children in document order."""
        out = ""
        for child in list(node.children):
            frag = self.convert(child, scope)
            if not frag:
                continue
            if isinstance(child, Tag):
                if child.name == "hr":
                    out = _ensure_blank_line(out)
                elif child.name in _BLOCK_TAGS:
                    out = _ensure_newline(out)
            elif out.endswith("\n"):
                frag = frag.lstrip(" ")
            out += frag
        return out

    def _text(self, node: NavigableString) -> str:
        text = str(node)
        if text.strip():
            return _WHITESPACE_RE.sub(" ", text)
        if not text:
            return ""
        # Whitespace next to block boundaries is layout, not content
        parent = node.parent
        if parent is not None and parent.name in _WHITESPACE_PARENTS:
            for sibling in (node.previous_sibling, node.next_sibling):
                if sibling is None or (isinstance(sibling, Tag) and sibling.name in _BLOCK_TAGS):
                    return ""
        return " "

    # ------------------------------------------------------------------
    # Block handlers
    # ------------------------------------------------------------------

    def _heading(self, tag: Tag, scope: Scope) -> str:
        text = _WHITESPACE_RE.sub(" ", self.convert_children(tag, scope)).strip()
        if not text:
            return ""
        anchor = ""
        if self.options.heading_anchors:
            anchor = f" {{#{self.state.slugs.resolve(tag)}}}"
        return f"{'#' * int(tag.name[1])} {text}{anchor}\n\n"

    def _paragraph(self, tag: Tag, scope: Scope) -> str:
        content = self.convert_children(tag, scope)
        text = "\n".join(line.strip() for line in content.strip().split("\n")).strip()
        return f"{text}\n\n" if text else ""

    def _list(self, tag: Tag, scope: Scope, *, ordered: bool) -> str:
        number = 1
        if ordered:
            start = str(tag.get("start") or "1").strip()
            number = int(start) if start.isdecimal() else 1
        indent = " " * (3 if ordered else 2)

        lines: list[str] = []
        for child in list(tag.children):
            content = self.convert(child, scope).strip()
            if not content:
                continue
            if isinstance(child, Tag) and child.name in ("ul", "ol"):
                # A list nested without its own <li> belongs to the item above
                nested = content.split("\n")
                if lines:
                    nested = [indent + line if line.strip() else "" for line in nested]
                lines.extend(nested)
                continue
            marker = f"{number}. " if ordered else "- "
            first, *rest = content.split("\n")
            lines.append(marker + first)
            lines.extend(indent + line if line.strip() else "" for line in rest)
            number += 1
        if not lines:
            return ""
        return "\n".join(lines) + "\n\n"

    def _blockquote(self, tag: Tag, scope: Scope) -> str:
        return blockquote(self.convert_children(tag, scope))

    def _preformatted(self, tag: Tag, scope: Scope) -> str:
        body = tag.get_text().strip("\n")
        if not body.strip():
            return ""
        longest = max((len(run) for run in _BACKTICKS_RE.findall(body)), default=0)
        fence = "`" * max(3, longest + 1)
        return f"{fence}{detect_code_language(tag)}\n{body}\n{fence}\n\n"

    def _div(self, tag: Tag, scope: Scope) -> str:
        classes = set(class_list(tag))
        if classes & _CODE_PANEL_CLASSES:
            return self.convert_children(tag, scope)
        if classes & _PANEL_CLASSES:
            return self._panel(tag, scope)
        if classes & _LAYOUT_CLASSES:
            return flow([self.convert(child, scope) for child in list(tag.children)])
        return self.convert_children(tag, scope)

    def _panel(self, tag: Tag, scope: Scope) -> str:
        title = ""
        for selector in _PANEL_TITLE_SELECTORS:
            title_el = tag.select_one(selector)
            if title_el is not None:
                raw = self.convert(title_el, scope)
                title = _WHITESPACE_RE.sub(" ", raw).strip().strip("*").strip()
                break
        body = blockquote(self.convert_children(tag, scope))
        head = f"**{title}**\n\n" if title else ""
        return head + body

    # ------------------------------------------------------------------
    # Inline handlers
    # ------------------------------------------------------------------

    def _wrap(self, tag: Tag, scope: Scope, marker: str) -> str:
        inner = self.convert_children(tag, scope)
        core = inner.strip()
        if not core:
            return " " if inner else ""
        lead = inner[: len(inner) - len(inner.lstrip())]
        trail = inner[len(inner.rstrip()):]
        wrapped = "\n".join(
            f"{marker}{line.strip()}{marker}" if line.strip() else "" for line in core.split("\n")
        )
        return f"{lead}{wrapped}{trail}"

    def _code(self, tag: Tag, scope: Scope) -> str:
        if tag.find_parent("pre") is not None:
            return tag.get_text()
        text = _WHITESPACE_RE.sub(" ", tag.get_text())
        if not text.strip():
            return ""
        longest = max((len(run) for run in _BACKTICKS_RE.findall(text)), default=0)
        fence = "`" * (longest + 1)
        pad = " " if text.startswith("`") or text.endswith("`") else ""
        return f"{fence}{pad}{text}{pad}{fence}"

    def _link(self, tag: Tag, scope: Scope) -> str:
        inner = self.convert_children(tag, replace(scope, in_link=True))
        text = _WHITESPACE_RE.sub(" ", inner).strip()
        if _USER_LINK_CLASSES.intersection(class_list(tag)):
            return text

        href = str(tag.get("href") or "").strip()
        if href.startswith("#"):
            href = self.state.slugs.resolve_link(href)
        elif href and self.options.rewrite_html_links:
            href = rewrite_html_href(href)

        if not text:
            text = href
        if not text:
            return ""
        if not href:
            return text
        return f"[{text}]({href})"

    def _image(self, tag: Tag, scope: Scope) -> str:
        if "emoticon" in class_list(tag):
            return str(
                tag.get("data-emoji-fallback")
                or tag.get("data-emoji-shortname")
                or tag.get("alt")
                or "",
            )

        target = self.image_target(str(tag.get("src") or ""))
        if not target:
            return ""
        alt = _WHITESPACE_RE.sub(" ", str(tag.get("alt") or "")).strip() or "image"
        title = _WHITESPACE_RE.sub(" ", str(tag.get("title") or "")).strip()
        title_part = ' "{}"'.format(title.replace('"', '\\"')) if title else ""
        markdown = f"![{alt}]({target}{title_part})"
        if not scope.in_link and self._is_sole_content(tag):
            markdown += "\n\n"
        return markdown

    @staticmethod
    def _is_sole_content(tag: Tag) -> bool:
        parent = tag.parent
        if parent is None or parent.name != "p":
            return False
        for sibling in parent.children:
            if sibling is tag:
                continue
            if isinstance(sibling, NavigableString):
                if drop_reason(sibling) is None and sibling.strip():
                    return False
            elif isinstance(sibling, Tag) and sibling.name != "br":
                return False
        return True

    # ------------------------------------------------------------------
    # Assets
    # ------------------------------------------------------------------

    def image_target(self, src: str) -> str | None:
        """Return the Markdown path for image *src*, recording it as an asset.

        Returns None (after recording a warning) when the source is empty or
        the caller's ``asset_exists`` lookup cannot find it.
        """
        src = src.strip()
        if not src:
            self.state.warnings.append("Image without src dropped")
            logger.debug("Image without src dropped")
            return None
        if not _is_local(src):
            return src

        parts = urlsplit(src)
        source = unquote(parts.path)
        if self.state.asset_exists is not None and not self.state.asset_exists(source):
            message = f"Missing asset: {source}"
            if message not in self.state.missing_assets:
                self.state.missing_assets.append(message)
                logger.warning(message)
            return None

        target = relative_target(parts.path)
        if all(image.source != source for image in self.state.images):
            self.state.images.append(ImageAsset(source=source, target=target))
        return target
