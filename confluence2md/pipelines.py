"""Output writing: converted page -> <dirs>/<slug>.md, copied assets, index.json.

Directories follow the page's breadcrumb trail (the space-home crumb is
skipped) and file names come from the page title.  Local images and
attachments are copied next to the Markdown at the path the page links to.
Links between exported pages are pointed at the files actually written.
"""

from __future__ import annotations

import json
import logging
import posixpath
import re
import shutil
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import unquote, urlsplit

from confluence2md.extractors.cleanup import map_outside_inline_code, split_fenced
from confluence2md.extractors.slugs import slugify, unique_slug
from confluence2md.items import PageConversion
from confluence2md.settings import INDEX_FILENAME

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

# ](Some_Page_123.md#fragment)
_PAGE_LINK_RE = re.compile(r"\]\((?P<path>[^)\s#]+\.md)(?P<fragment>#[^)\s]*)?\)", re.IGNORECASE)


def _write_json(path: Path, data: dict | list) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")


def _write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def page_directory(page: PageConversion) -> Path:
    """Relative output directory for *page*, built from its breadcrumbs."""
    parts = [slugify(crumb.title, "page") for crumb in page.breadcrumbs[1:]]
    return Path(*parts) if parts else Path()


def _is_within(path: Path, root: Path) -> bool:
    try:
        path.resolve().relative_to(root.resolve())
    except ValueError:
        return False
    return True


def _page_key(path: Path) -> Path:
    # Pages link to each other as "<export name>.md"
    return path.with_suffix(".md").resolve()


class OutputWriter:
    """Write converted pages under *out_dir* and keep the index.

    Args:
        out_dir: Root of the Markdown tree.

    Call :meth:`write_all` with every page of the export (or :meth:`write`
    once per page), then :meth:`close` to write ``index.json``.  Links to a
    page are rewritten only once that page has been placed, so passing the
    whole export to :meth:`write_all` resolves links in both directions.
    """

    def __init__(self, out_dir: str | Path) -> None:
        self.out_dir = Path(out_dir)
        self._seen: dict[Path, set[str]] = {}
        self._targets: dict[Path, Path] = {}
        self._entries: list[dict] = []

    @property
    def count(self) -> int:
        return len(self._entries)

    def write(self, page: PageConversion, source_path: str | Path | None = None) -> Path:
        """Write *page* and copy its assets; return the Markdown path.

        *source_path* is the exported HTML file the page came from.  Asset
        paths and page links are resolved against its directory; without it
        no assets are copied and links are left alone.
        """
        return self.write_all([(page, source_path)])[0]

    def write_all(
        self, pages: Iterable[tuple[PageConversion, str | Path | None]],
    ) -> list[Path]:
        """Place every page first, then write them with resolved page links."""
        placed = [(page, source, self._place(page, source)) for page, source in pages]
        return [self._write(page, source, rel) for page, source, rel in placed]

    def _place(self, page: PageConversion, source_path: str | Path | None) -> Path:
        directory = page_directory(page)
        slug = unique_slug(slugify(page.title, "page"), self._seen.setdefault(directory, set()))
        rel = directory / f"{slug}.md"
        if source_path is not None:
            self._targets[_page_key(Path(source_path))] = rel
        return rel

    def _write(self, page: PageConversion, source_path: str | Path | None, rel: Path) -> Path:
        md_path = self.out_dir / rel
        markdown = page.markdown
        if source_path is not None:
            markdown = self.resolve_links(markdown, Path(source_path), rel)
        _write_text(md_path, markdown)

        if source_path is not None:
            input_dir = Path(source_path).parent
            assets = [image.source for image in page.images]
            assets += [a.path for a in page.attachments if a.path not in assets]
            for asset in assets:
                self._copy_asset(page, input_dir, asset, md_path.parent)

        self._entries.append({
            "slug": rel.stem,
            "path": rel.as_posix(),
            "title": page.title,
            "source": page.source,
            "method": page.method,
            "images": [image.target for image in page.images],
            "missing_assets": list(page.missing_assets),
        })
        logger.info(
            "Wrote page [%d]: %s -> %s", len(self._entries), page.source or page.title, rel.as_posix(),
        )
        return md_path

    def resolve_links(self, markdown: str, source_path: Path, rel: Path) -> str:
        """Point ``](Page_1.md#x)`` links at the placed file, relative to *rel*.

        Links to pages that were never placed, and anything inside code, are
        left as they are.
        """
        base = source_path.parent
        start = rel.parent.as_posix()

        def fix_link(match: re.Match[str]) -> str:
            target = match.group("path")
            parts = urlsplit(target)
            if parts.scheme or parts.netloc or target.startswith("/"):
                return match.group(0)
            dest = self._targets.get((base / unquote(target)).resolve())
            if dest is None:
                return match.group(0)
            href = posixpath.relpath(dest.as_posix(), start)
            return f"]({href}{match.group('fragment') or ''})"

        def fix_prose(part: str) -> str:
            return _PAGE_LINK_RE.sub(fix_link, part)

        return "".join(
            chunk if is_code else map_outside_inline_code(chunk, fix_prose)
            for is_code, chunk in split_fenced(markdown)
        )

    def _copy_asset(
        self, page: PageConversion, input_dir: Path, asset: str, dest_dir: Path,
    ) -> None:
        rel = posixpath.normpath(asset)
        src = input_dir / rel
        dest = dest_dir / rel
        if not _is_within(dest, self.out_dir):
            logger.warning("Asset %s escapes the output directory; not copied", asset)
            return
        if not src.is_file():
            message = f"Missing asset: {asset}"
            if message not in page.missing_assets:
                page.missing_assets.append(message)
            logger.warning("%s (page %s)", message, page.source or page.title)
            return
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(src, dest)
        logger.debug("Copied asset %s -> %s", src, dest)

    def close(self) -> Path:
        """Write ``index.json`` (sorted by path) and return its location."""
        entries = sorted(self._entries, key=lambda e: e["path"])
        index_path = self.out_dir / INDEX_FILENAME
        _write_json(index_path, entries)
        logger.info("OutputWriter: wrote %d entries to %s", len(entries), index_path)
        return index_path
