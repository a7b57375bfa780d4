"""Logging configuration using Loguru.

Provides structured logging with:
- Console output for development
- File rotation for long-running sessions
- No secrets or raw audio in logs
"""

import sys
from pathlib import Path
from typing import Any

from loguru import logger

LOG_TEXT_LIMIT = 50
SENSITIVE_FIELDS = {"key", "api_key", "authorization", "xi-api-key", "access_token"}


def setup_logging(
    level: str = "INFO",
    log_dir: str = "logs",
    enable_file: bool = True,
) -> None:
    """Configure application logging.

    Args:
        level: Minimum log level (DEBUG, INFO, WARNING, ERROR)
        log_dir: Directory for log files
        enable_file: Whether to enable file logging
    """
    # Remove default handler
    logger.remove()

    # Console handler (always enabled)
    logger.add(
        sys.stderr,
        format=(
            "<green>{time:HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
            "<level>{message}</level>"
        ),
        level=level,
        colorize=True,
        backtrace=True,
        diagnose=True,
    )

    if enable_file:
        log_path = Path(log_dir)
        log_path.mkdir(exist_ok=True)

        logger.add(
            log_path / "talkloop_{time:YYYY-MM-DD}.log",
            format=(
                "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
                "{level: <8} | "
                "{name}:{function}:{line} | "
                "{message}"
            ),
            level=level,
            rotation="50 MB",
            retention="14 days",
            compression="gz",
            backtrace=True,
            diagnose=False,  # Locals may hold API keys
        )

        # Error-only log for quick debugging
        logger.add(
            log_path / "errors_{time:YYYY-MM-DD}.log",
            format=(
                "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
                "{level: <8} | "
                "{name}:{function}:{line} | "
                "{message}\n{exception}"
            ),
            level="ERROR",
            rotation="20 MB",
            retention="30 days",
            compression="gz",
            backtrace=True,
            diagnose=False,
        )

    logger.info(f"Logging initialized at {level} level")


def get_logger(name: str) -> "logger":
    """Get a logger instance with the given name.

    Usage:
        from talkloop.logging_config import get_logger
        logger = get_logger(__name__)
        logger.info("Message")
    """
    return logger.bind(name=name)


def truncate_for_log(text: str | None, limit: int = LOG_TEXT_LIMIT) -> str:
    """Shorten user/assistant text before logging: 'Hello the...' style."""
    if not text:
        return ""
    text = text.replace("\n", " ")
    if len(text) <= limit:
        return text
    return f"{text[:limit]}..."


def sanitize_for_log(data: dict[str, Any]) -> dict[str, Any]:
    """Redact secrets and shorten audio payloads in a dict before logging.

    Redacts: api keys, bearer tokens and authorization headers
    Shortens: 'content' / 'audioContent' strings longer than the log limit
    """
    result: dict[str, Any] = {}

    for key, value in data.items():
        lowered = key.lower()
        if lowered in SENSITIVE_FIELDS or lowered.endswith(("_key", "-api-key")):
            result[key] = "[REDACTED]"
        elif lowered in {"content", "audiocontent"} and isinstance(value, str):
            result[key] = truncate_for_log(value)
        elif isinstance(value, dict):
            result[key] = sanitize_for_log(value)
        elif isinstance(value, list):
            result[key] = [sanitize_for_log(v) if isinstance(v, dict) else v for v in value]
        else:
            result[key] = value

    return result
