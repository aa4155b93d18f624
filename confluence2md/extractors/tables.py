"""Table classification and rendering.

Every table is classified exactly once, before any rendering, into one of
four shapes (first match wins):

1. History          - the page revision table (version, author, date, comment)
2. Layout           - a table used only to position content; rendered as flow
3. ComplexSections  - data tables whose cells hold block content
4. Standard         - everything else; a rectangular Markdown pipe table
"""

from __future__ import annotations

import logging
import re
from enum import StrEnum
from typing import TYPE_CHECKING

from bs4 import Tag

from .filters import class_list
from .slugs import HEADING_TAGS, node_text

if TYPE_CHECKING:
    from collections.abc import Callable

    from .elements import ElementConverter, Scope

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Vocabulary
# ---------------------------------------------------------------------------

_HISTORY_IDS: frozenset[str] = frozenset({"page-history-container"})
_HISTORY_CLASSES: frozenset[str] = frozenset({"tableview", "pageHistory"})

_LAYOUT_TABLE_CLASSES: frozenset[str] = frozenset({"layout", "contentLayoutTable", "layout-table"})
_MACRO_WRAPPER_CLASSES: frozenset[str] = frozenset({"wysiwyg-macro"})
_LAYOUT_CONTAINER_CLASSES: frozenset[str] = frozenset(
    {"contentLayout2", "contentLayout", "columnLayout", "section", "panelContent"},
)

_BLOCK_CONTENT_TAGS: tuple[str, ...] = ("div", "table", "ul", "ol", "p", *HEADING_TAGS)
_SINGLE_CELL_BLOCK_TAGS: tuple[str, ...] = ("div", "table", "ul", "ol", "p")

_COMPLEX_TAGS: tuple[str, ...] = (*HEADING_TAGS, "ul", "ol", "table", "pre", "blockquote")
_PANEL_SELECTOR = ".panel, .confluence-information-macro, .aui-message"

HISTORY_HEADER: tuple[str, ...] = ("Version", "Published", "Changed By", "Comment")

COMPLEX_CELL_LENGTH = 300
_SIMPLIFIED_TEXT_LIMIT = 50
_MAX_SPAN = 100

_BORDER_NONE_RE = re.compile(r"border(?:-style)?\s*:\s*(?:none|0)\b", re.IGNORECASE)
_UNESCAPED_PIPE_RE = re.compile(r"(?<!\\)\|")
_WHITESPACE_RE = re.compile(r"\s+")
_LEADING_HASHES_RE = re.compile(r"^(?:#{1,6}[ \t]+)+")
_EXTRA_BLANK_LINES_RE = re.compile(r"\n{3,}")


class TableKind(StrEnum):
    HISTORY          = "history"
    LAYOUT           = "layout"
    COMPLEX_SECTIONS = "complex_sections"
    STANDARD         = "standard"


# ---------------------------------------------------------------------------
# Structure helpers
# ---------------------------------------------------------------------------

def iter_rows(table: Tag) -> list[Tag]:
    """Return the rows owned by *table*, skipping rows of nested tables."""
    return [row for row in table.find_all("tr") if row.find_parent("table") is table]


def row_cells(row: Tag) -> list[Tag]:
    return row.find_all(["td", "th"], recursive=False)


def escape_cell(text: str) -> str:
    """Collapse newlines to spaces and escape bare pipes for a table cell."""
    return _UNESCAPED_PIPE_RE.sub(r"\\|", _WHITESPACE_RE.sub(" ", text).strip())


def flow(fragments: list[str]) -> str:
    """Join block fragments as ordinary flowing Markdown."""
    parts = [frag.strip("\n") for frag in fragments if frag.strip()]
    if not parts:
        return ""
    return "\n\n".join(parts) + "\n\n"


def _span(cell: Tag, attr: str) -> int:
    raw = str(cell.get(attr) or "1").strip()
    if not raw.isdecimal():
        return 1
    return max(1, min(int(raw), _MAX_SPAN))


def _is_borderless(table: Tag) -> bool:
    border = table.get("border")
    if border is not None:
        return str(border).strip() == "0"
    return bool(_BORDER_NONE_RE.search(str(table.get("style") or "")))


def _in_layout_container(table: Tag) -> bool:
    for parent in table.parents:
        if isinstance(parent, Tag) and _LAYOUT_CONTAINER_CLASSES.intersection(class_list(parent)):
            return True
    return False


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def _header_texts(table: Tag) -> list[str]:
    texts = []
    for row in iter_rows(table):
        in_thead = row.parent is not None and row.parent.name == "thead"
        for cell in row_cells(row):
            if cell.name == "th" or in_thead:
                texts.append(node_text(cell).lower())
    return texts


def is_history_table(table: Tag) -> bool:
    if str(table.get("id") or "") in _HISTORY_IDS:
        return True
    if _HISTORY_CLASSES.intersection(class_list(table)):
        return True

    headers = _header_texts(table)
    has_version = any("version" in h or h.startswith("v.") for h in headers)
    if has_version and any("changed by" in h or "published" in h for h in headers):
        return True

    for parent in table.parents:
        if not isinstance(parent, Tag) or parent.name in ("body", "html", "[document]"):
            break
        marker = (str(parent.get("id") or "") + " " + " ".join(class_list(parent))).lower()
        if "history" in marker or "version" in marker:
            return True
    return False


def is_layout_table(table: Tag) -> bool:
    classes = set(class_list(table))
    if classes & (_LAYOUT_TABLE_CLASSES | _MACRO_WRAPPER_CLASSES):
        return True

    rows = iter_rows(table)
    first_cell = next((cell for row in rows for cell in row_cells(row) if cell.name == "td"), None)
    if (
        first_cell is not None
        and _is_borderless(table)
        and _in_layout_container(table)
        and first_cell.find(_BLOCK_CONTENT_TAGS) is not None
    ):
        return True

    if len(rows) == 1:
        cells = row_cells(rows[0])
        if len(cells) == 1 and cells[0].find(_SINGLE_CELL_BLOCK_TAGS) is not None:
            return True
    return False


def is_complex_cell(cell: Tag, length_threshold: int = COMPLEX_CELL_LENGTH) -> bool:
    """Return True if *cell* cannot be flattened into one inline table cell."""
    if cell.find(_COMPLEX_TAGS) is not None:
        return True
    if any("emoticon" not in class_list(img) for img in cell.find_all("img")):
        return True
    if cell.select_one(_PANEL_SELECTOR) is not None:
        return True
    if len(cell.find_all("p")) > 1:
        return True
    if len(cell.find_all("br")) > 2:
        return True
    return len(node_text(cell)) > length_threshold


def classify_table(table: Tag, complex_cell_length: int = COMPLEX_CELL_LENGTH) -> TableKind:
    if is_history_table(table):
        return TableKind.HISTORY
    if is_layout_table(table):
        return TableKind.LAYOUT
    for row in iter_rows(table):
        if any(is_complex_cell(cell, complex_cell_length) for cell in row_cells(row)):
            return TableKind.COMPLEX_SECTIONS
    return TableKind.STANDARD


# ---------------------------------------------------------------------------
# Renderers
# ---------------------------------------------------------------------------

def _history_version(cell: Tag) -> str:
    link = cell.find("a", href=True)
    if link is None:
        return escape_cell(node_text(cell))
    label = escape_cell(node_text(link)) or str(link["href"])
    return f"[{label}]({link['href']})"


def _history_author(cell: Tag, converter: ElementConverter) -> str:
    parts = []
    icon = cell.find("img", class_="userLogo") or cell.find("img")
    if icon is not None and icon.get("src"):
        target = converter.image_target(str(icon["src"]))
        if target:
            alt = escape_cell(str(icon.get("alt") or "")) or "User icon"
            parts.append(f"![{alt}]({target})")

    link = cell.select_one(".page-history-contributor-name a, a.confluence-userlink")
    if link is not None and link.get("href"):
        parts.append(f"[{escape_cell(node_text(link))}]({link['href']})")
    else:
        named = cell.select_one(".page-history-contributor-name, span.unknown-user")
        parts.append(escape_cell(node_text(named if named is not None else cell)))
    return " ".join(p for p in parts if p)


def render_history(table: Tag, converter: ElementConverter, scope: Scope) -> str:
    lines = [
        "| " + " | ".join(HISTORY_HEADER) + " |",
        "|" + "|".join(["---"] * len(HISTORY_HEADER)) + "|",
    ]
    for row in iter_rows(table):
        if not converter.claim(row):
            continue
        if row.parent is not None and row.parent.name == "thead":
            continue
        cells = row_cells(row)
        if not any(cell.name == "td" for cell in cells):
            continue
        if len(cells) < 3:
            logger.debug("Skipping history row with %d cells", len(cells))
            continue
        comment = escape_cell(node_text(cells[3])) if len(cells) > 3 else ""
        values = [
            _history_version(cells[0]),
            escape_cell(node_text(cells[1])),
            _history_author(cells[2], converter),
            comment,
        ]
        lines.append("|" + "|".join(f" {v} " if v else " " for v in values) + "|")
    return "\n".join(lines) + "\n\n"


def render_layout(table: Tag, converter: ElementConverter, scope: Scope) -> str:
    fragments = []
    for row in iter_rows(table):
        if not converter.claim(row):
            continue
        for cell in row_cells(row):
            if converter.claim(cell):
                fragments.append(converter.convert_children(cell, scope))
    return flow(fragments)


def _section_body(markdown: str) -> str:
    return _EXTRA_BLANK_LINES_RE.sub("\n\n", markdown.strip())


def render_sections(table: Tag, converter: ElementConverter, scope: Scope) -> str:
    blocks = []
    for row in iter_rows(table):
        if not converter.claim(row):
            continue
        cells = [cell for cell in row_cells(row) if converter.claim(cell)]
        if not cells:
            continue

        parts = []
        title_md = converter.convert_children(cells[0], scope).strip()
        first_line, _, rest = title_md.partition("\n")
        heading = _LEADING_HASHES_RE.sub("", first_line).strip()
        if heading:
            parts.append(f"## {heading}")
        if rest.strip():
            parts.append(_section_body(rest))
        for cell in cells[1:]:
            body = _section_body(converter.convert_children(cell, scope))
            if body:
                parts.append(body)
        if parts:
            blocks.append("\n\n".join(parts))
    return "\n\n".join(blocks) + "\n\n" if blocks else ""


def simplify_cell(cell: Tag) -> str:
    """Reduce a complex cell to a short placeholder that fits in one cell."""
    heading = cell.find(HEADING_TAGS)
    if heading is not None:
        return escape_cell(f"**{node_text(heading)}**")
    image = next((img for img in cell.find_all("img") if "emoticon" not in class_list(img)), None)
    if image is not None:
        return escape_cell(f"[{str(image.get('alt') or '').strip() or 'image'}]")
    listing = cell.find(["ul", "ol"])
    if listing is not None:
        return f"[List: {len(listing.find_all('li', recursive=False))} items]"
    if cell.find("table") is not None:
        return "[Table]"
    if cell.select_one(_PANEL_SELECTOR) is not None:
        return "[Panel content]"
    text = node_text(cell)
    if len(text) > _SIMPLIFIED_TEXT_LIMIT:
        text = text[: _SIMPLIFIED_TEXT_LIMIT - 3].rstrip() + "..."
    return escape_cell(text)


def render_standard(table: Tag, converter: ElementConverter, scope: Scope) -> str:
    threshold = converter.options.complex_cell_length
    grid: list[list[str]] = []
    pending: dict[int, int] = {}  # column -> rows still covered by a rowspan

    def fill_spanned(col: int, out: list[str]) -> int:
        while pending.get(col, 0) > 0:
            out.append("")
            pending[col] -= 1
            col += 1
        return col

    for row in iter_rows(table):
        if not converter.claim(row):
            continue
        out: list[str] = []
        col = 0
        for cell in row_cells(row):
            col = fill_spanned(col, out)
            if not converter.claim(cell):
                # Keep the column so later cells stay aligned
                colspan = _span(cell, "colspan")
                out.extend([""] * colspan)
                col += colspan
                continue
            if is_complex_cell(cell, threshold):
                text = simplify_cell(cell)
            else:
                text = escape_cell(converter.convert_children(cell, scope))
            rowspan = _span(cell, "rowspan")
            for offset in range(_span(cell, "colspan")):
                out.append(text if offset == 0 else "")
                if rowspan > 1:
                    pending[col] = rowspan - 1
                col += 1
        for spanned in sorted(c for c, left in pending.items() if c >= col and left > 0):
            if spanned < col:
                continue
            out.extend([""] * (spanned - col))
            col = fill_spanned(spanned, out)

        if not out or not any(out):
            continue
        grid.append(out)

    if not grid:
        return ""
    width = max(len(r) for r in grid)
    lines = []
    for index, cells in enumerate(grid):
        cells = (cells + [""] * width)[:width]
        lines.append("|" + "|".join(f" {c} " if c else " " for c in cells) + "|")
        if index == 0:
            lines.append("|" + "|".join(["---"] * width) + "|")
    return "\n".join(lines) + "\n\n"


_RENDERERS: dict[TableKind, Callable[[Tag, ElementConverter, Scope], str]] = {
    TableKind.HISTORY: render_history,
    TableKind.LAYOUT: render_layout,
    TableKind.COMPLEX_SECTIONS: render_sections,
    TableKind.STANDARD: render_standard,
}


def render_table(table: Tag, converter: ElementConverter, scope: Scope) -> str:
    """Classify *table* once and render it with the matching strategy."""
    options = converter.options
    kind = classify_table(table, options.complex_cell_length)
    if kind is TableKind.COMPLEX_SECTIONS and options.complex_tables == "simplify":
        kind = TableKind.STANDARD
    logger.debug("Table at %s classified as %s", scope.path, kind)
    return _RENDERERS[kind](table, converter, scope)
