"""Default settings for confluence2md."""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Input
# ---------------------------------------------------------------------------
# Pages picked up when INPUT is a directory
INPUT_GLOB = "*.html"

# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------
OUTPUT_DIR = "./out"
INDEX_FILENAME = "index.json"

# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------
DEFAULT_WORKERS = 8

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
LOG_LEVEL = "INFO"
LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")
