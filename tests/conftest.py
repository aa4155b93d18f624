"""Shared pytest fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

FIXTURES_DIR = Path(__file__).parent / "fixtures"


def _read_fixture(name: str) -> str:
    return (FIXTURES_DIR / name).read_text(encoding="utf-8")


@pytest.fixture(autouse=True)
def _no_plugins():
    from confluence2md.plugins import clear_plugins

    clear_plugins()
    yield
    clear_plugins()


@pytest.fixture
def page_html() -> str:
    return _read_fixture("page.html")


@pytest.fixture
def layout_html() -> str:
    return _read_fixture("layout.html")


@pytest.fixture
def export_dir(tmp_path: Path) -> Path:
    """A minimal export tree: two pages plus the image one of them embeds."""
    root = tmp_path / "export"
    (root / "attachments" / "65538").mkdir(parents=True)
    (root / "attachments" / "65538" / "65539.png").write_bytes(b"\x89PNG\r\n\x1a\n")
    (root / "Getting-Started_65538.html").write_text(_read_fixture("page.html"), encoding="utf-8")
    (root / "Release-Notes_65541.html").write_text(_read_fixture("layout.html"), encoding="utf-8")
    return root
