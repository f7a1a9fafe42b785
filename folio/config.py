"""Runtime configuration for the Folio service.

Settings are read from the environment once at import time. A ``.env``
file in the working directory is honoured through ``python-dotenv`` so
that local development does not require exporting variables by hand.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Storage
DB_PATH = Path(os.getenv("FOLIO_DB", "./data/folio.db"))

# EPUB parsing
PARSE_TIMEOUT = float(os.getenv("FOLIO_PARSE_TIMEOUT", "30"))
MIN_CHAPTER_LENGTH = int(os.getenv("FOLIO_MIN_CHAPTER_LENGTH", "50"))

# Chapter records larger than this are split before they are stored.
CHUNK_SIZE = int(os.getenv("FOLIO_CHUNK_SIZE", "15000"))

# Source downloads
DOWNLOAD_TIMEOUT = float(os.getenv("FOLIO_DOWNLOAD_TIMEOUT", "30"))
MAX_DOWNLOAD_BYTES = int(os.getenv("FOLIO_MAX_DOWNLOAD_BYTES", str(50 * 1024 * 1024)))

# Defaults applied when neither the request nor the manuscript supplies a value
DEFAULT_TITLE = "Pasted Manuscript"
DEFAULT_AUTHOR = "Anonymous"
DEFAULT_GENRE = ["Ingested"]
DEFAULT_OWNER = os.getenv("FOLIO_DEFAULT_OWNER", "system")

LOG_LEVEL = os.getenv("FOLIO_LOG_LEVEL", "INFO").upper()
