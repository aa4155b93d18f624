"""Extraction sub-package: the Confluence DOM-to-Markdown engine."""

from .cleanup import cleanup_markdown
from .elements import ConversionState, ElementConverter, ElementKind, Scope
from .filters import should_drop
from .markdown import render_page
from .page import extract_breadcrumbs, extract_title, find_main_content
from .slugs import SlugRegistry, slugify
from .tables import TableKind, classify_table

__all__ = [
    "ConversionState",
    "ElementConverter",
    "ElementKind",
    "Scope",
    "SlugRegistry",
    "TableKind",
    "classify_table",
    "cleanup_markdown",
    "extract_breadcrumbs",
    "extract_title",
    "find_main_content",
    "render_page",
    "should_drop",
    "slugify",
]
