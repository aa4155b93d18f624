"""Whole-document Markdown cleanup.

The assembled Markdown runs through an ordered list of named passes, each a
pure ``str -> str`` function.  Every pass is idempotent and none creates
input another pass would change, so the pipeline as a whole is idempotent:
``cleanup_markdown(cleanup_markdown(x)) == cleanup_markdown(x)``.

Fenced code blocks are left untouched by every pass except the final
leading-navigation rewrite, which only inspects the top of the document.
"""

from __future__ import annotations

import html
import logging
import re
from collections.abc import Callable, Iterable
from functools import partial

from confluence2md.items import Breadcrumb

logger = logging.getLogger(__name__)

CleanupPass = Callable[[str], str]

_FENCE_RE = re.compile(r"^[ \t]{0,3}(`{3,}|~{3,})")
_INLINE_CODE_RE = re.compile(r"(`+)(?:(?!\1).)+?\1")


# ---------------------------------------------------------------------------
# Segment helpers
# ---------------------------------------------------------------------------

def split_fenced(text: str) -> list[tuple[bool, str]]:
    """Split *text* into ``(is_code, chunk)`` pieces around fenced code blocks.

    Joining the chunks gives back *text* exactly.  An unterminated fence runs
    to the end of the document.
    """
    segments: list[tuple[bool, str]] = []
    buf: list[str] = []
    fence = ""
    for line in text.splitlines(keepends=True):
        match = _FENCE_RE.match(line)
        if not fence:
            if match:
                if buf:
                    segments.append((False, "".join(buf)))
                buf = [line]
                fence = match.group(1)
            else:
                buf.append(line)
            continue
        buf.append(line)
        stripped = line.strip()
        if match and stripped == fence[0] * len(stripped) and len(stripped) >= len(fence):
            segments.append((True, "".join(buf)))
            buf = []
            fence = ""
    if buf:
        segments.append((bool(fence), "".join(buf)))
    return segments


def _map_prose(text: str, fn: CleanupPass) -> str:
    return "".join(chunk if is_code else fn(chunk) for is_code, chunk in split_fenced(text))


def map_outside_inline_code(text: str, fn: CleanupPass) -> str:
    """Apply *fn* to the parts of *text* outside inline code spans."""
    out = []
    pos = 0
    for match in _INLINE_CODE_RE.finditer(text):
        out.append(fn(text[pos:match.start()]))
        out.append(match.group(0))
        pos = match.end()
    out.append(fn(text[pos:]))
    return "".join(out)


# ---------------------------------------------------------------------------
# Pass 1: doubled heading markers
# ---------------------------------------------------------------------------

_DOUBLED_HEADING_RE = re.compile(r"^(#{1,6})[ \t]+(#{1,6})[ \t]+(?=\S)", re.MULTILINE)


def _merge_markers(match: re.Match[str]) -> str:
    level = min(6, max(2, len(match.group(1)), len(match.group(2))))
    return "#" * level + " "


def collapse_heading_markers(text: str) -> str:
    """``# # Title`` -> ``## Title``; repeated until no doubled marker is left."""

    def fix(chunk: str) -> str:
        while True:
            fixed = _DOUBLED_HEADING_RE.sub(_merge_markers, chunk)
            if fixed == chunk:
                return fixed
            chunk = fixed

    return _map_prose(text, fix)


# ---------------------------------------------------------------------------
# Pass 2: list / heading spacing
# ---------------------------------------------------------------------------

_LIST_MARKER = r"[ \t]*(?:[-*+]|\d+\.)[ \t]"
_HEADING_WRAPPED_ITEM_RE = re.compile(r"^#{1,6}[ \t]+([-*+][ \t]+)", re.MULTILINE)
_LOOSE_ITEMS_RE = re.compile(rf"^({_LIST_MARKER}.*)\n[ \t]*\n(?={_LIST_MARKER})", re.MULTILINE)
_TEXT_BEFORE_HEADING_RE = re.compile(r"^([^\n]*\S[^\n]*)\n(?=#{1,6}[ \t])", re.MULTILINE)
_HEADING_BEFORE_TEXT_RE = re.compile(r"^(#{1,6}[ \t][^\n]*)\n(?=[ \t]*\S)", re.MULTILINE)

NAVIGATION_HEADING = "## Navigation"
_NAV_ITEM_RE = re.compile(r"^- \[[^\]\n]*\]\([^)\n]*\)$")


def _previous_line(text: str, start: int) -> tuple[str, int] | None:
    if start == 0:
        return None
    line_start = text.rfind("\n", 0, start - 1) + 1
    return text[line_start:start - 1], line_start


def _in_navigation_block(text: str, start: int) -> bool:
    """True if the line at *start* is a bullet of a ``## Navigation`` block."""
    end = text.find("\n", start)
    if not _NAV_ITEM_RE.match(text[start:end if end != -1 else len(text)]):
        return False
    prev = _previous_line(text, start)
    while prev is not None and _NAV_ITEM_RE.match(prev[0]):
        prev = _previous_line(text, prev[1])
    if prev is None or prev[0]:
        return False
    heading = _previous_line(text, prev[1])
    return heading is not None and heading[0] == NAVIGATION_HEADING


def _tighten(match: re.Match[str]) -> str:
    # The blank line closing a navigation block separates it from the body
    if _in_navigation_block(match.string, match.start()):
        return match.group(0)
    return match.group(1) + "\n"


def fix_list_spacing(text: str) -> str:
    """Tighten list items and give headings a blank line on both sides."""

    def fix(chunk: str) -> str:
        chunk = _HEADING_WRAPPED_ITEM_RE.sub(r"\1", chunk)
        chunk = _LOOSE_ITEMS_RE.sub(_tighten, chunk)
        chunk = _TEXT_BEFORE_HEADING_RE.sub(r"\1\n\n", chunk)
        return _HEADING_BEFORE_TEXT_RE.sub(r"\1\n\n", chunk)

    return _map_prose(text, fix)


# ---------------------------------------------------------------------------
# Pass 3: table repair
# ---------------------------------------------------------------------------

_UNESCAPED_PIPE_RE = re.compile(r"(?<!\\)\|")
_DELIMITER_CELL_RE = re.compile(r"^\s*:?-+:?\s*$")


def _is_table_line(line: str) -> bool:
    s = line.strip()
    return len(s) >= 2 and s.startswith("|") and s.endswith("|") and not s.endswith("\\|")


def split_row(line: str) -> list[str]:
    """Split a pipe-table row into its raw cells, honouring ``\\|`` escapes."""
    return _UNESCAPED_PIPE_RE.split(line.strip()[1:-1])


def _join_row(cells: list[str]) -> str:
    return "|" + "|".join(f" {c.strip()} " if c.strip() else " " for c in cells) + "|"


def _is_delimiter_row(line: str) -> bool:
    return all(_DELIMITER_CELL_RE.match(cell) for cell in split_row(line))


def _delimiter_cell(cell: str) -> str:
    c = cell.strip()
    left = ":" if c.startswith(":") else ""
    right = ":" if len(c) > 1 and c.endswith(":") else ""
    return f"{left}---{right}"


def _repair_table(block: list[str]) -> list[str]:
    header, rows = block[0], block[1:]
    delimiter: list[str] = []
    if rows and _is_delimiter_row(rows[0]):
        delimiter = split_row(rows[0])
        rows = rows[1:]

    header_cells = split_row(header)
    width = max([len(header_cells)] + [len(split_row(r)) for r in rows])

    if len(header_cells) != width:
        header = _join_row(header_cells + [""] * (width - len(header_cells)))
    cells = [_delimiter_cell(delimiter[i]) if i < len(delimiter) else "---" for i in range(width)]
    out = [header, "|" + "|".join(cells) + "|"]
    for row in rows:
        cells = split_row(row)
        out.append(row if len(cells) == width else _join_row(cells + [""] * (width - len(cells))))
    return out


def repair_tables(text: str) -> str:
    """Insert missing delimiter rows, normalise them, and square ragged rows."""

    def fix(chunk: str) -> str:
        lines = chunk.split("\n")
        out: list[str] = []
        i = 0
        while i < len(lines):
            if not _is_table_line(lines[i]):
                out.append(lines[i])
                i += 1
                continue
            j = i
            while j < len(lines) and _is_table_line(lines[j]):
                j += 1
            block = lines[i:j]
            if len(block) < 2:
                out.extend(block)
            else:
                if out and out[-1].strip():
                    out.append("")
                out.extend(_repair_table(block))
                if j < len(lines) and lines[j].strip():
                    out.append("")
            i = j
        return "\n".join(out)

    return _map_prose(text, fix)


# ---------------------------------------------------------------------------
# Pass 4: residual entities
# ---------------------------------------------------------------------------

_ENTITY_BODY = r"(?:#[0-9]+|#[xX][0-9a-fA-F]+|[A-Za-z][A-Za-z0-9]*);"
_ENTITY_RE = re.compile("&" + _ENTITY_BODY)
_ENTITY_BODY_RE = re.compile(_ENTITY_BODY)

# Characters that would change Markdown structure if decoded bare
_STRUCTURAL_CHARS = frozenset("|#*+-\\")

_HEADING_RE = re.compile(r"#{1,6}[ \t]")
_LIST_ITEM_RE = re.compile(_LIST_MARKER)
_LEADING_TEXT_RE = re.compile(r"[ \t]*\S")
_TEXT_RE = re.compile(r"\S")


def _decode_entity(match: re.Match[str]) -> str:
    entity = match.group(0)
    decoded = html.unescape(entity)
    if decoded == entity or decoded == "`":
        # A bare backtick would move inline code boundaries
        return entity
    if decoded == "&" and _ENTITY_BODY_RE.match(match.string, match.end()):
        # "&amp;lt;" must stay put, or a second run would decode "&lt;"
        return entity
    if decoded.isspace():
        return " "
    if decoded in _STRUCTURAL_CHARS:
        return "\\" + decoded
    return decoded


def _decode_part(part: str) -> str:
    return _ENTITY_RE.sub(_decode_entity, part)


def _line_shape(line: str) -> tuple[object, ...]:
    """Everything the heading, list and table passes read from one line."""
    line = line.rstrip(" \t")
    table = _is_table_line(line)
    return (
        bool(_FENCE_RE.match(line)),
        bool(_DOUBLED_HEADING_RE.match(line)),
        bool(_HEADING_WRAPPED_ITEM_RE.match(line)),
        bool(_HEADING_RE.match(line)),
        bool(_LIST_ITEM_RE.match(line)),
        bool(_NAV_ITEM_RE.match(line)),
        line == NAVIGATION_HEADING,
        bool(_LEADING_TEXT_RE.match(line)),
        bool(_TEXT_RE.search(line)),
        not line.strip(),
        table and len(split_row(line)),
        table and _is_delimiter_row(line),
    )


def _decode_line(line: str) -> str:
    decoded = map_outside_inline_code(line, _decode_part)
    if decoded == line:
        return line
    # Entities stay encoded when decoding would expose a new entity or turn
    # the line into a heading, list item, fence or table row
    if map_outside_inline_code(decoded, _decode_part) != decoded:
        return line
    if _line_shape(decoded) != _line_shape(line):
        return line
    return decoded


def decode_entities(text: str) -> str:
    """Decode HTML entities left in prose (not inside code).

    A line whose decoded form would read differently to the structural
    passes keeps its entities; Markdown renders them the same way.
    """
    def fix(chunk: str) -> str:
        return "\n".join(_decode_line(line) for line in chunk.split("\n"))

    return _map_prose(text, fix)


# ---------------------------------------------------------------------------
# Pass 5: blank lines
# ---------------------------------------------------------------------------

_TRAILING_WHITESPACE_RE = re.compile(r"[ \t]+$", re.MULTILINE)
_EXCESSIVE_BLANK_LINES_RE = re.compile(r"\n{4,}")


def collapse_blank_lines(text: str) -> str:
    """Strip trailing whitespace and keep at most two consecutive blank lines."""

    out: list[str] = []
    for is_code, chunk in split_fenced(text):
        if not is_code:
            chunk = _TRAILING_WHITESPACE_RE.sub("", chunk)
            if out:
                # The closing fence line already ended with a newline
                chunk = _EXCESSIVE_BLANK_LINES_RE.sub("\n\n\n", "\n" + chunk)[1:]
            else:
                chunk = _EXCESSIVE_BLANK_LINES_RE.sub("\n\n\n", chunk)
        out.append(chunk)
    text = "".join(out).strip("\n")
    return text + "\n" if text.strip() else ""


# ---------------------------------------------------------------------------
# Pass 6: leading breadcrumb block
# ---------------------------------------------------------------------------

_BREADCRUMB_ITEM_RE = re.compile(r"^\d+\.[ \t]+\[(?P<text>[^\]]*)\]\((?P<href>[^)]*)\)[ \t]*$")


def build_navigation(text: str, breadcrumbs: Iterable[Breadcrumb] = ()) -> str:
    """Turn a leading numbered list of page links into a ``## Navigation`` block.

    An item counts as a breadcrumb when it links to a page (``.md`` or
    ``.html``) or its text matches one of *breadcrumbs*.
    """
    titles = {crumb.title for crumb in breadcrumbs}
    lines = text.split("\n")
    start = 0
    while start < len(lines) and not lines[start].strip():
        start += 1

    items = []
    end = start
    while end < len(lines):
        match = _BREADCRUMB_ITEM_RE.match(lines[end])
        if match is None:
            break
        href = match.group("href")
        if not (href.endswith((".md", ".html")) or match.group("text") in titles):
            break
        items.append(f"- [{match.group('text')}]({href})")
        end += 1
    if not items:
        return text

    block = [NAVIGATION_HEADING, "", *items]
    tail = lines[end:]
    if tail and tail[0].strip():
        block.append("")
    return "\n".join(lines[:start] + block + tail)


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

def cleanup_passes(breadcrumbs: Iterable[Breadcrumb] = ()) -> list[tuple[str, CleanupPass]]:
    """Return the ordered ``(name, pass)`` list for one document."""
    return [
        ("collapse_heading_markers", collapse_heading_markers),
        ("fix_list_spacing", fix_list_spacing),
        ("repair_tables", repair_tables),
        ("decode_entities", decode_entities),
        ("collapse_blank_lines", collapse_blank_lines),
        ("build_navigation", partial(build_navigation, breadcrumbs=tuple(breadcrumbs))),
    ]


def cleanup_markdown(text: str, breadcrumbs: Iterable[Breadcrumb] = ()) -> str:
    """Run every cleanup pass over *text*, once, in order."""
    for name, cleanup_pass in cleanup_passes(breadcrumbs):
        text = cleanup_pass(text)
        logger.debug("Cleanup pass %s done (%d chars)", name, len(text))
    return text
