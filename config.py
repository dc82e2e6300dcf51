"""
Novel Shelf - Configuration
Paths, constants, and storage tuning
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# =============================================================================
# PATHS
# =============================================================================
PROJECT_ROOT = Path(__file__).parent
DATA_DIR = Path(os.getenv("NOVEL_SHELF_DATA_DIR", str(PROJECT_ROOT / "data")))
LOGS_DIR = PROJECT_ROOT / "logs"
DATABASE_PATH = DATA_DIR / "novel_shelf.db"
DIAGNOSTIC_LOG_PATH = LOGS_DIR / "diagnostic.log"

# =============================================================================
# VERSION
# =============================================================================
VERSION = "0.1.0"
PROJECT_NAME = "Novel Shelf"

# =============================================================================
# DATABASE CONFIGURATION
# =============================================================================
DB_BUSY_TIMEOUT_MS = int(os.getenv("DB_BUSY_TIMEOUT_MS", "10000"))
DB_MAX_RETRIES = 5
DB_RETRY_INITIAL_DELAY = 0.1
DB_RETRY_BACKOFF_MULTIPLIER = 2.0
DB_RETRY_MAX_DELAY = 10.0

# =============================================================================
# IMPORT CONFIGURATION
# =============================================================================
# Scraped payloads usually carry site-relative cover paths ("/img/123.jpg").
# Anything not starting with http gets this origin prepended on import.
COVER_BASE_URL = os.getenv("COVER_BASE_URL", "https://static.truyenchucv.org")

# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_TO_FILE = True
LOG_TO_CONSOLE = os.getenv("LOG_TO_CONSOLE", "true").lower() == "true"
