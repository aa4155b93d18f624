"""Assemble one exported Confluence page into a Markdown document.

The element dispatcher renders the main content; this module adds the
title, optional navigation, page history and attachment sections, runs the
cleanup pipeline and prepends YAML front matter.  If the dispatcher raises,
the page can be rendered with markdownify instead, so one odd page never
sinks a whole export.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING
from urllib.parse import quote

import yaml
from bs4 import BeautifulSoup, Tag

from confluence2md.items import ConverterOptions, PageConversion, PageMetadata
from confluence2md.plugins import get_cleanup_passes

from .cleanup import cleanup_markdown
from .elements import (
    MAIN_SCOPE,
    OUTSIDE_SCOPE,
    ConversionState,
    ElementConverter,
    detect_code_language,
    relative_target,
    rewrite_html_href,
)
from .page import (
    extract_attachments,
    extract_breadcrumbs,
    extract_page_metadata,
    extract_title,
    find_history_table,
    find_main_content,
)
from .tables import flow, render_history

if TYPE_CHECKING:
    from collections.abc import Callable

    from confluence2md.items import Attachment, Breadcrumb

logger = logging.getLogger(__name__)

_EXCESSIVE_BLANK_LINES_RE = re.compile(r"\n{3,}")
_TRAILING_WHITESPACE_RE = re.compile(r"[ \t]+$", re.MULTILINE)


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------

def _navigation(breadcrumbs: list[Breadcrumb], options: ConverterOptions) -> str:
    lines = []
    for number, crumb in enumerate(breadcrumbs, 1):
        href = crumb.href
        if href and options.rewrite_html_links:
            href = rewrite_html_href(href)
        lines.append(f"{number}. [{crumb.title}]({href})" if href else f"{number}. {crumb.title}")
    return "\n".join(lines) + "\n\n" if lines else ""


def _attachments_section(attachments: list[Attachment]) -> str:
    if not attachments:
        return ""
    items = "\n".join(f"- [{a.name}]({relative_target(quote(a.path))})" for a in attachments)
    return f"## Attachments\n\n{items}\n\n"


def front_matter(title: str, metadata: PageMetadata, breadcrumbs: list[Breadcrumb]) -> str:
    """Render the YAML front-matter block for a page."""
    data: dict[str, object] = {"title": title}
    data.update(metadata.model_dump(exclude_none=True))
    if breadcrumbs:
        data["breadcrumbs"] = [crumb.title for crumb in breadcrumbs]
    body = yaml.safe_dump(data, sort_keys=False, allow_unicode=True, default_flow_style=False)
    return f"---\n{body}---\n\n"


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

def _render_body(
    soup: BeautifulSoup,
    main: Tag | BeautifulSoup,
    metadata_node: Tag | None,
    options: ConverterOptions,
    asset_exists: Callable[[str], bool] | None,
) -> tuple[str, ConversionState]:
    state = ConversionState.for_document(soup, options, asset_exists)
    converter = ElementConverter(state)
    if metadata_node is not None:
        # Consumed, never emitted
        converter.convert(metadata_node, OUTSIDE_SCOPE)

    body = converter.convert_children(main, MAIN_SCOPE)

    if options.include_history:
        history = find_history_table(soup)
        if history is not None and converter.claim(history):
            body = flow([body, "## Page History", render_history(history, converter, OUTSIDE_SCOPE)])
    return body, state


def markdownify_fallback(main: Tag | BeautifulSoup) -> str:
    """Render *main* with markdownify, post-processed like the engine output."""
    from markdownify import markdownify  # type: ignore[import-untyped]

    fragment = BeautifulSoup(str(main), "lxml")
    for node in fragment.find_all(["script", "style", "noscript", "button"]):
        node.decompose()

    md = markdownify(
        str(fragment),
        heading_style="ATX",
        bullets="-",
        code_language_callback=detect_code_language,
    )
    md = _TRAILING_WHITESPACE_RE.sub("", md)
    return _EXCESSIVE_BLANK_LINES_RE.sub("\n\n", md).strip() + "\n"


def render_page(
    soup: BeautifulSoup,
    options: ConverterOptions | None = None,
    asset_exists: Callable[[str], bool] | None = None,
    source: str = "",
) -> PageConversion:
    """Convert a parsed export page to a :class:`PageConversion`.

    Args:
        soup:         The parsed page.
        options:      Conversion options; defaults when omitted.
        asset_exists: Optional lookup telling whether an export-relative
                      asset path exists.  Images it rejects are dropped and
                      reported in ``missing_assets``.
        source:       Label (usually the file path) stored on the result.

    Raises:
        Exception: Whatever the engine raised, when ``options.fallback`` is off.
    """
    options = options or ConverterOptions()
    title = extract_title(soup, strip_prefix=options.title_prefix)
    breadcrumbs = extract_breadcrumbs(soup)
    metadata, metadata_node = extract_page_metadata(soup)
    attachments = extract_attachments(soup) if options.attachments != "none" else []
    main = find_main_content(soup)

    result = PageConversion(
        title=title,
        source=source,
        breadcrumbs=breadcrumbs,
        attachments=attachments,
        metadata=metadata,
    )

    try:
        body, state = _render_body(soup, main, metadata_node, options, asset_exists)
    except Exception as exc:
        if not options.fallback:
            raise
        logger.warning(
            "Engine failed on %s (%s); falling back to markdownify", source or title, exc,
        )
        result.method = "markdownify"
        result.warnings.append(f"Engine failed: {exc}")
        body = markdownify_fallback(main)
    else:
        result.images = state.images
        result.missing_assets = state.missing_assets
        result.warnings.extend(state.warnings)

    parts = []
    if options.include_navigation and breadcrumbs:
        parts.append(_navigation(breadcrumbs, options))
    if options.include_title:
        parts.append(f"# {title}")
    parts.append(body)
    if options.attachments == "visible":
        parts.append(_attachments_section(attachments))

    markdown = cleanup_markdown(flow(parts), breadcrumbs)
    for cleanup_pass in get_cleanup_passes():
        markdown = cleanup_pass(markdown)

    if options.include_front_matter:
        markdown = front_matter(title, metadata, breadcrumbs) + markdown
    result.markdown = markdown
    return result
