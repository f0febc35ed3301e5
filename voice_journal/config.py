"""Environment configuration utilities."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"
DEFAULT_API_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_TIMEOUT = 60.0
DEFAULT_DB_PATH = Path.home() / ".voice_journal" / "journal.db"


def load_environment(dotenv_path: Optional[Path] = None) -> None:
    """Load environment variables from a .env file if present."""
    default_path = Path(__file__).resolve().parent.parent / ".env"
    target = dotenv_path or default_path
    loaded = load_dotenv(dotenv_path=target, override=False)
    if loaded:
        logger.debug("Loaded environment variables from %s", target)
    else:
        logger.debug("No .env file found at %s (skipping)", target)

    if not api_key_from_env():
        logger.warning(
            "GEMINI_API_KEY is not set. Voice entries cannot be transcribed until it is configured."
        )


def api_key_from_env() -> Optional[str]:
    return os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY") or None


@dataclass
class Settings:
    """Runtime settings; the transcription credential is the only required value."""

    api_key: Optional[str] = None
    model: str = DEFAULT_MODEL
    api_url: str = DEFAULT_API_URL
    timeout: float = DEFAULT_TIMEOUT
    db_path: Path = DEFAULT_DB_PATH

    @classmethod
    def from_env(cls) -> "Settings":
        timeout_raw = os.getenv("TRANSCRIPTION_TIMEOUT")
        try:
            timeout = float(timeout_raw) if timeout_raw else DEFAULT_TIMEOUT
        except ValueError:
            logger.warning("Ignoring invalid TRANSCRIPTION_TIMEOUT=%r", timeout_raw)
            timeout = DEFAULT_TIMEOUT

        db_path = os.getenv("JOURNAL_DB_PATH")
        return cls(
            api_key=api_key_from_env(),
            model=os.getenv("GEMINI_MODEL", DEFAULT_MODEL),
            api_url=os.getenv("GEMINI_API_URL", DEFAULT_API_URL).rstrip("/"),
            timeout=timeout,
            db_path=Path(db_path).expanduser() if db_path else DEFAULT_DB_PATH,
        )
