"""YAML-based conversion profiles.

A profile has a ``default:`` mapping of :class:`ConverterOptions` fields and
an optional ``spaces:`` mapping of glob patterns to overrides::

    default:
      include_navigation: true
    spaces:
      "DOCS/*":
        complex_tables: simplify
      "DOCS/api/*":
        heading_anchors: false
"""

from __future__ import annotations

from fnmatch import fnmatch
from pathlib import Path
from typing import Any

import yaml

from confluence2md.items import ConverterOptions


def load_profile(path: str | Path, source: str | Path) -> dict[str, Any]:
    """Load a YAML profile and return the merged settings for *source*."""
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    default = data.get("default", {}) if isinstance(data, dict) else {}
    spaces = data.get("spaces", {}) if isinstance(data, dict) else {}

    target = Path(source).as_posix()
    best_key = ""
    best_cfg: dict[str, Any] = {}
    if isinstance(spaces, dict):
        for key, cfg in spaces.items():
            if not isinstance(key, str) or not isinstance(cfg, dict):
                continue
            if fnmatch(target, key) and len(key) > len(best_key):
                best_key = key
                best_cfg = cfg

    merged = {}
    if isinstance(default, dict):
        merged.update(default)
    merged.update(best_cfg)
    return merged


def load_options(path: str | Path, source: str | Path = "") -> ConverterOptions:
    """Return validated :class:`ConverterOptions` for *source* from profile *path*.

    Raises:
        pydantic.ValidationError: If the profile names unknown fields or bad values.
    """
    return ConverterOptions.model_validate(load_profile(path, source))
