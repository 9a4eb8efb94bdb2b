"""Configuration loaded from environment variables."""

import os
import sys
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

APP_NAME = "FlowDeconstruct"


def default_home() -> Path:
    """Return the per-platform application data directory."""
    if sys.platform.startswith("win"):
        base = os.getenv("APPDATA") or str(Path.home() / "AppData" / "Roaming")
        return Path(base) / APP_NAME
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / APP_NAME
    return Path.home() / ".config" / APP_NAME


# Paths
HOME: Path = Path(os.getenv("FLOWDECONSTRUCT_HOME") or default_home())
STATE_FILE_NAME = "state.json"

# Files
PROJECT_SUFFIX = ".flowproj"
MARKDOWN_SUFFIX = ".md"
MAX_RECENT_PROJECTS = 10

# Behaviour
AUTOSAVE_SECONDS: float = float(os.getenv("FLOWDECONSTRUCT_AUTOSAVE_SECONDS", "5"))
LOG_LEVEL: str = os.getenv("FLOWDECONSTRUCT_LOG_LEVEL", "INFO").upper()
