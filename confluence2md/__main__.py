"""CLI entry point: python -m confluence2md INPUT [options]"""

from __future__ import annotations

import argparse
import contextlib
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from confluence2md.settings import (
    DEFAULT_WORKERS,
    INPUT_GLOB,
    LOG_FORMAT,
    LOG_LEVEL,
    LOG_LEVELS,
    OUTPUT_DIR,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from confluence2md.items import ConverterOptions, PageConversion

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="confluence2md",
        description=(
            "Convert a Confluence HTML export to a tree of Markdown files.\n"
            "Tables, panels, code macros and page links survive the trip."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("input", metavar="INPUT",
                        help="Exported HTML page or directory of exported pages")
    parser.add_argument("--out", default=OUTPUT_DIR, metavar="DIR",
                        help=f"Output directory (default: {OUTPUT_DIR})")
    parser.add_argument("--config", default=None, metavar="FILE",
                        help="YAML profile with default: and per-space overrides")
    parser.add_argument("--workers", type=int, default=DEFAULT_WORKERS, metavar="N",
                        help=f"Concurrent conversions (default: {DEFAULT_WORKERS})")
    parser.add_argument("--on-error", choices=["skip", "raise"], default="skip",
                        help="Skip failing pages or stop at the first one (default: skip)")
    parser.add_argument("--no-front-matter", action="store_true", default=False,
                        help="Do not prepend YAML front matter")
    parser.add_argument("--no-anchors", action="store_true", default=False,
                        help="Do not append {#slug} anchors to headings")
    parser.add_argument("--progress", action="store_true", default=False,
                        help="Show a live Rich progress bar (sets log-level to WARNING)")
    parser.add_argument("--log-level", default=LOG_LEVEL, choices=list(LOG_LEVELS),
                        metavar="{" + ",".join(LOG_LEVELS) + "}",
                        help=f"Logging level (default: {LOG_LEVEL})")
    return parser


def _collect_sources(input_path: Path) -> tuple[Path, list[Path]]:
    """Return ``(root, pages)`` for a file or directory INPUT."""
    if input_path.is_file():
        return input_path.parent, [input_path]
    return input_path, sorted(p for p in input_path.rglob(INPUT_GLOB) if p.is_file())


def _options_for(args: argparse.Namespace, root: Path, source: Path) -> ConverterOptions:
    from confluence2md.items import ConverterOptions
    from confluence2md.profiles import load_options

    options = (
        load_options(args.config, source.relative_to(root))
        if args.config else ConverterOptions()
    )
    overrides: dict[str, bool] = {}
    if args.no_front_matter:
        overrides["include_front_matter"] = False
    if args.no_anchors:
        overrides["heading_anchors"] = False
    return options.model_copy(update=overrides) if overrides else options


def _print_banner(args: argparse.Namespace, pages: int) -> None:
    try:
        from rich.console import Console
        from rich.panel import Panel

        console = Console()
        console.print(
            Panel.fit(
                f"[bold cyan]confluence2md[/bold cyan]\n"
                f"Input:          [green]{args.input}[/green]\n"
                f"Pages:          {pages}\n"
                f"Output:         [yellow]{args.out}[/yellow]\n"
                f"Profile:        {args.config or '-'}\n"
                f"Workers:        {args.workers}\n"
                f"On error:       {args.on_error}\n"
                f"Front matter:   {'off' if args.no_front_matter else 'on'}\n"
                f"Anchors:        {'off' if args.no_anchors else 'on'}",
                border_style="cyan",
                title="[bold]Configuration[/bold]",
            ),
        )
    except ImportError:
        print(f"confluence2md | Input: {args.input} | Out: {args.out}")


@contextlib.contextmanager
def _progress(enabled: bool, total: int) -> Iterator[Callable[[], None]]:
    """Yield an ``advance()`` callback, drawing a Rich progress bar if *enabled*."""
    if not enabled:
        yield lambda: None
        return

    from rich.console import Console
    from rich.progress import (
        BarColumn,
        MofNCompleteColumn,
        Progress,
        SpinnerColumn,
        TextColumn,
        TimeElapsedColumn,
    )

    with Progress(
        SpinnerColumn(),
        TextColumn("[bold cyan]Converting[/bold cyan]"),
        BarColumn(bar_width=28),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=Console(stderr=True),
        refresh_per_second=4,
        transient=False,
    ) as progress:
        task = progress.add_task("convert", total=total or None)
        yield lambda: progress.advance(task)


def _convert_all(
    args: argparse.Namespace, root: Path, sources: list[Path],
) -> tuple[list[tuple[Path, PageConversion]], list[Path]]:
    """Convert *sources*, grouping pages that share the same options."""
    from confluence2md.converter import convert_batch

    groups: dict[str, tuple[ConverterOptions, list[Path]]] = {}
    for source in sources:
        options = _options_for(args, root, source)
        groups.setdefault(options.model_dump_json(), (options, []))[1].append(source)

    converted: list[tuple[Path, PageConversion]] = []
    failed: list[Path] = []
    on_error = "raise" if args.on_error == "raise" else "include"
    with _progress(args.progress, len(sources)) as advance:
        for options, paths in groups.values():
            results = convert_batch(
                paths,
                max_workers=args.workers,
                on_error=on_error,
                options=options,
                root=root,
                on_done=lambda _path, _page: advance(),
            )
            for path, page in zip(paths, results):
                if page is None:
                    failed.append(path)
                else:
                    converted.append((path, page))
    converted.sort(key=lambda pair: pair[0])
    return converted, failed


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    # --progress keeps the log quiet so the bar is readable
    effective_log_level = "WARNING" if args.progress else args.log_level
    logging.basicConfig(level=effective_log_level, format=LOG_FORMAT)

    input_path = Path(args.input)
    if not input_path.exists():
        print(f"ERROR: input does not exist: {input_path}", file=sys.stderr)
        return 1
    if args.config and not Path(args.config).is_file():
        print(f"ERROR: config file not found: {args.config}", file=sys.stderr)
        return 1

    root, sources = _collect_sources(input_path)
    _print_banner(args, len(sources))

    from pydantic import ValidationError

    from confluence2md.converter import ConversionError
    from confluence2md.pipelines import OutputWriter

    try:
        converted, failed = _convert_all(args, root, sources)
    except ValidationError as exc:
        print(f"ERROR: invalid config {args.config}: {exc}", file=sys.stderr)
        return 1
    except ConversionError as exc:
        logger.error("Conversion failed for %s: %s", exc.source, exc)
        return 1

    out_dir = Path(args.out)
    writer = OutputWriter(out_dir)
    writer.write_all([(page, path) for path, page in converted])
    index_path = writer.close()

    _print_summary(out_dir, index_path, failed)
    return 1 if failed else 0


def _print_summary(out_dir: Path, index_path: Path, failed: list[Path]) -> None:
    try:
        import json

        from rich import box
        from rich.console import Console
        from rich.rule import Rule
        from rich.table import Table

        console = Console()
        entries = json.loads(index_path.read_text(encoding="utf-8"))
        missing = sum(len(e.get("missing_assets", [])) for e in entries)
        fallbacks = sum(1 for e in entries if e.get("method") != "engine")

        console.print()
        console.print(Rule("[bold cyan]Conversion Summary[/bold cyan]"))
        console.print(f"  [bold]Pages converted  :[/bold] [green]{len(entries)}[/green]")
        console.print(f"  [bold]Pages failed     :[/bold] [red]{len(failed)}[/red]")
        console.print(f"  [bold]Fallback renders :[/bold] [yellow]{fallbacks}[/yellow]")
        console.print(f"  [bold]Missing assets   :[/bold] [yellow]{missing}[/yellow]")
        console.print(f"  [bold]Output directory :[/bold] [green]{out_dir}[/green]")
        console.print()

        if entries:
            tbl = Table(
                title=f"[bold green]Converted Pages ({len(entries)})[/bold green]",
                box=box.SIMPLE_HEAVY,
                show_lines=False,
            )
            tbl.add_column("#",       style="dim",    justify="right", width=4, no_wrap=True)
            tbl.add_column("Title",   style="cyan",   max_width=40,            no_wrap=True)
            tbl.add_column("Path",    style="blue",   max_width=50,            no_wrap=True)
            tbl.add_column("Method",  style="dim",    width=12,                no_wrap=True)
            tbl.add_column("Missing", justify="right", width=8,                no_wrap=True)
            for i, e in enumerate(entries, 1):
                tbl.add_row(
                    str(i),
                    (e.get("title") or "-")[:40],
                    e.get("path", "")[:50],
                    e.get("method", "-")[:12],
                    str(len(e.get("missing_assets", []))),
                )
            console.print(tbl)

        if failed:
            ftbl = Table(
                title=f"[bold red]Failed Pages ({len(failed)})[/bold red]",
                box=box.SIMPLE_HEAVY,
                show_lines=False,
            )
            ftbl.add_column("#",    style="dim", justify="right", width=4, no_wrap=True)
            ftbl.add_column("Page", style="red", max_width=80,            no_wrap=True)
            for i, path in enumerate(failed, 1):
                ftbl.add_row(str(i), str(path)[:80])
            console.print(ftbl)

    except Exception as exc:
        logger.debug("Rich summary display failed: %s", exc)


if __name__ == "__main__":
    sys.exit(main())
