"""Environment configuration and logging setup.

Values may be defined in a .env file in the backend root:

ANTHROPIC_API_KEY=your_real_key_here
CRAWL_MAX_PAGES=10

The app loads environment variables automatically using python-dotenv.
"""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(dotenv_path=Path(__file__).resolve().parent / ".env")


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def _float_env(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


CLAUDE_MODEL = os.getenv("CLAUDE_MODEL", "").strip()
CLAUDE_MAX_TOKENS = _int_env("CLAUDE_MAX_TOKENS", 1000)
CLAUDE_MAX_RETRIES = _int_env("CLAUDE_MAX_RETRIES", 3)
CLAUDE_RETRY_BASE_SECONDS = _float_env("CLAUDE_RETRY_BASE_SECONDS", 1.0)

CRAWL_MAX_PAGES = _int_env("CRAWL_MAX_PAGES", 10)
CRAWL_TIMEOUT_SECONDS = _float_env("CRAWL_TIMEOUT_SECONDS", 5.0)
CRAWL_BODY_TEXT_LIMIT = _int_env("CRAWL_BODY_TEXT_LIMIT", 5000)
CRAWL_USER_AGENT = os.getenv("CRAWL_USER_AGENT", "ClinicAI-Bot/1.0")

JOB_TTL_SECONDS = _int_env("JOB_TTL_SECONDS", 3600)
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"


def get_anthropic_api_key() -> str | None:
    """Read the key at call time so tests and redeploys can change it."""
    return os.getenv("ANTHROPIC_API_KEY") or None


def configure_logging(level: str = LOG_LEVEL) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
