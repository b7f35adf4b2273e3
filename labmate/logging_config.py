"""Logging configuration using Loguru.

Labmate talks to Gemini with API keys that must never reach a log sink.
Every record passes through a patcher that masks anything shaped like a
Google API key, and loguru's variable dumps in tracebacks (`diagnose`)
stay off unless explicitly requested, since they print locals such as
`secret`.
"""

import re
import sys
from pathlib import Path

from loguru import logger

# Google API keys: "AIza" followed by 35 URL-safe characters
API_KEY_PATTERN = re.compile(r"AIza[0-9A-Za-z_\-]{35}")

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)

FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}"


def mask_credential(secret: str) -> str:
    """Mask an API key for logging: AIzaSyD4xxxxxxxx -> AIzaSyD4...

    CRITICAL: Use this before logging any credential.
    """
    if not secret or len(secret) <= 8:
        return "****"
    return f"{secret[:8]}..."


def redact_secrets(text: str) -> str:
    """Mask every API key embedded in free text (SDK errors often echo the key)."""
    return API_KEY_PATTERN.sub(lambda m: mask_credential(m.group(0)), text)


def _redact_record(record: dict) -> None:
    record["message"] = redact_secrets(record["message"])


def setup_logging(
    level: str = "INFO",
    log_dir: str = "logs",
    enable_file: bool = True,
    diagnose: bool = False,
) -> None:
    """Configure application logging.

    Args:
        level: Minimum log level (DEBUG, INFO, WARNING, ERROR)
        log_dir: Directory for log files
        enable_file: Whether to write rotated log files
        diagnose: Include local variable values in tracebacks (may expose keys)
    """
    logger.remove()
    logger.configure(patcher=_redact_record)

    logger.add(
        sys.stderr,
        format=CONSOLE_FORMAT,
        level=level,
        colorize=True,
        backtrace=True,
        diagnose=diagnose,
    )

    if enable_file:
        log_path = Path(log_dir)
        log_path.mkdir(exist_ok=True)

        logger.add(
            log_path / "labmate_{time:YYYY-MM-DD}.log",
            format=FILE_FORMAT,
            level=level,
            rotation="100 MB",
            retention="30 days",
            compression="gz",
            backtrace=True,
            diagnose=False,
        )

        # Connection drops and exhausted retries, for quick triage
        logger.add(
            log_path / "labmate_errors_{time:YYYY-MM-DD}.log",
            format=FILE_FORMAT + "\n{exception}",
            level="ERROR",
            rotation="50 MB",
            retention="90 days",
            compression="gz",
            backtrace=True,
            diagnose=False,
        )

    logger.info(f"Logging initialized at {level} level")


def get_logger(name: str) -> "logger":
    """Get a logger bound to a module name.

    Usage:
        from labmate.logging_config import get_logger
        logger = get_logger(__name__)
        logger.info(f"Connecting with key {credential.masked}")
    """
    return logger.bind(name=name)
