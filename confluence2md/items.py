"""Pydantic models for converter options and conversion results."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

# ---------------------------------------------------------------------------
# Options
# ---------------------------------------------------------------------------

class ConverterOptions(BaseModel):
    """Knobs for one document conversion.  Every field has a usable default."""

    model_config = {"extra": "forbid"}

    # Engine
    heading_anchors: bool = True          # emit " {#slug}" after headings
    complex_tables: Literal["sections", "simplify"] = "sections"
    complex_cell_length: int = Field(default=300, ge=1)
    rewrite_html_links: bool = True       # page.html -> page.md

    # Document assembly
    include_title: bool = True
    include_front_matter: bool = True
    include_navigation: bool = False
    include_history: bool = True
    attachments: Literal["visible", "hidden", "none"] = "visible"
    title_prefix: bool = True             # strip "Space : " from page titles

    # Render with markdownify when the engine raises
    fallback: bool = True


# ---------------------------------------------------------------------------
# Result models
# ---------------------------------------------------------------------------

class ImageAsset(BaseModel):
    """A local image referenced by the page.

    ``source`` is the path as found in the export (query string removed,
    percent-escapes decoded); ``target`` is the path written into the
    Markdown, relative to the page.
    """

    source: str
    target: str


class Breadcrumb(BaseModel):
    title: str
    href: str = ""

    @field_validator("title", mode="before")
    @classmethod
    def strip_title(cls, v: Any) -> Any:
        if isinstance(v, str):
            return " ".join(v.split())
        return v or ""


class Attachment(BaseModel):
    name: str
    path: str


class PageMetadata(BaseModel):
    created_by: str | None = None
    last_updated_by: str | None = None
    last_updated_on: str | None = None


class PageConversion(BaseModel):
    """Canonical output of converting one exported Confluence page."""

    title: str = "Untitled"
    markdown: str = ""
    source: str = ""

    images: list[ImageAsset] = Field(default_factory=list)
    missing_assets: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    breadcrumbs: list[Breadcrumb] = Field(default_factory=list)
    attachments: list[Attachment] = Field(default_factory=list)
    metadata: PageMetadata = Field(default_factory=PageMetadata)

    # "engine" or "markdownify"
    method: str = "engine"

    @field_validator("title", mode="before")
    @classmethod
    def strip_title(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip() or "Untitled"
        return v or "Untitled"
