"""
Logging configuration for the calendar assistant.

Loguru sinks for the terminal and for daily rotated files under data/logs.
Messages pass through a patcher that masks Google tokens and provider API
keys, which otherwise show up in HTTP error bodies.
"""

from __future__ import annotations

import re
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional

from loguru import logger

from .config import DATA_DIR

if TYPE_CHECKING:
    from .config import AssistantConfig

LOG_DIR = DATA_DIR / "logs"

FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"
CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)

# OAuth access/refresh tokens, Google API keys, Groq keys
SECRET_PATTERNS = [
    re.compile(r"ya29\.[\w\-.]+"),
    re.compile(r"1//[\w\-]{20,}"),
    re.compile(r"AIza[\w\-]{30,}"),
    re.compile(r"gsk_\w{20,}"),
]


def redact(text: str) -> str:
    """Mask anything that looks like a credential."""
    for pattern in SECRET_PATTERNS:
        text = pattern.sub(lambda m: m.group(0)[:4] + "***", text)
    return text


def _redact_record(record: Dict[str, Any]) -> None:
    record["message"] = redact(record["message"])


def setup_logging(
    config: AssistantConfig | None = None,
    console: bool = True,
    log_dir: Optional[Path] = None,
) -> None:
    """
    Configure logging for the assistant.

    Args:
        config: Optional assistant configuration. If not provided, uses defaults.
        console: Whether to log to stderr; the chat keeps stderr quiet unless debugging
        log_dir: Directory for the log files
    """
    log_dir = log_dir or LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)

    log_level = "INFO"
    if config:
        log_level = "DEBUG" if config.general.debug else config.general.log_level

    logger.remove()
    logger.configure(patcher=_redact_record)

    if console:
        logger.add(sys.stderr, format=CONSOLE_FORMAT, level=log_level, colorize=True, diagnose=False)

    # Conversation trace, one file per day
    logger.add(
        log_dir / "assistant_{time:YYYY-MM-DD}.log",
        format=FILE_FORMAT,
        level="DEBUG",
        rotation="00:00",
        retention="7 days",
        compression="zip",
        diagnose=False,
    )
    logger.add(
        log_dir / "assistant_errors_{time:YYYY-MM-DD}.log",
        format=FILE_FORMAT,
        level="WARNING",
        rotation="00:00",
        retention="30 days",
        compression="zip",
        backtrace=True,
        diagnose=False,
    )

    logger.info(f"Logging to {log_dir} at {log_level}")


__all__ = ["logger", "redact", "setup_logging"]
