"""High-level conversion API: one HTML string, one file, or a batch of files.

Single-page usage::

    from confluence2md import convert_file

    page = convert_file("export/SPACE/Getting-Started_12345.html")
    print(page.title)
    print(page.markdown)

Batch usage::

    from confluence2md import convert_batch

    pages = convert_batch(sorted(Path("export").rglob("*.html")), max_workers=4)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from bs4 import BeautifulSoup

from confluence2md.extractors.markdown import render_page
from confluence2md.items import ConverterOptions, PageConversion

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

logger = logging.getLogger(__name__)


class ConversionError(RuntimeError):
    """Raised when a page cannot be read or converted.

    Attributes:
        source -- the path or label of the page that failed
    """

    def __init__(self, message: str, source: str = "") -> None:
        super().__init__(message)
        self.source = source


def convert_html(
    html: str,
    *,
    options: ConverterOptions | None = None,
    asset_exists: Callable[[str], bool] | None = None,
    source: str = "",
) -> PageConversion:
    """Convert one exported page's HTML to Markdown.

    Args:
        html:         Raw HTML of the page.
        options:      Conversion options (defaults when omitted).
        asset_exists: Optional ``path -> bool`` lookup for export-relative
                      image paths; rejected images are dropped and reported.
        source:       Label stored on the result and used in errors.

    Raises:
        :class:`ConversionError`: When the engine fails and
        ``options.fallback`` is disabled.
    """
    soup = BeautifulSoup(html or "", "lxml")
    try:
        return render_page(soup, options, asset_exists=asset_exists, source=source)
    except Exception as exc:
        raise ConversionError(f"Conversion failed for {source or 'page'}: {exc}", source) from exc


def convert_file(
    path: str | Path,
    *,
    options: ConverterOptions | None = None,
    root: str | Path | None = None,
) -> PageConversion:
    """Read and convert one exported HTML file.

    Image paths are resolved against the file's directory, and images that
    do not exist on disk are reported as missing assets.  *root* only
    affects the ``source`` label (made relative to it).
    """
    path = Path(path)
    try:
        html = path.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        raise ConversionError(f"Cannot read {path}: {exc}", str(path)) from exc

    base = path.parent
    label = str(path.relative_to(root)) if root is not None else str(path)
    return convert_html(
        html,
        options=options,
        asset_exists=lambda rel: (base / rel).is_file(),
        source=label,
    )


def convert_batch(
    sources: Iterable[str | Path],
    *,
    max_workers: int = 8,
    on_error: str = "skip",
    options: ConverterOptions | None = None,
    root: str | Path | None = None,
    on_done: Callable[[Path, PageConversion | None], None] | None = None,
) -> list[PageConversion | None]:
    """Convert many exported pages concurrently.

    Uses a :class:`~concurrent.futures.ThreadPoolExecutor`; every page gets
    its own engine state, so nothing is shared between workers.  Results
    are returned in the same order as *sources*.

    Args:
        sources:     HTML file paths.
        max_workers: Maximum number of worker threads (default 8).
        on_error:    How to handle a page that fails:
                     ``"skip"`` (default) - omit it from the results;
                     ``"raise"`` - re-raise the first failure;
                     ``"include"`` - keep a ``None`` in its slot.
        options:     Conversion options shared (read-only) by every page.
        root:        Export root used for ``source`` labels.
        on_done:     Optional callback invoked as each page finishes, with
                     the result or ``None`` on failure.

    Raises:
        :class:`ConversionError`: Only when ``on_error="raise"`` and a page fails.
        :class:`ValueError`: For unknown *on_error* values.
    """
    from concurrent.futures import ThreadPoolExecutor, as_completed

    if on_error not in ("skip", "raise", "include"):
        raise ValueError(f"on_error must be 'skip', 'raise', or 'include'; got {on_error!r}")

    paths = [Path(s) for s in sources]
    results: list[PageConversion | None] = [None] * len(paths)

    def _convert_one(idx: int, path: Path) -> tuple[int, PageConversion | None]:
        try:
            return idx, convert_file(path, options=options, root=root)
        except Exception as exc:
            if on_error == "raise":
                raise
            logger.warning("convert_batch: failed to convert %s: %s", path, exc)
            return idx, None

    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as executor:
        futures = [executor.submit(_convert_one, i, p) for i, p in enumerate(paths)]
        for future in as_completed(futures):
            idx, page = future.result()
            results[idx] = page
            if on_done is not None:
                on_done(paths[idx], page)

    if on_error == "skip":
        return [r for r in results if r is not None]
    return results
