"""Logging configuration."""

import logging
import os
import re
import sys

from pydantic import BaseModel, Field

# Provider credentials show up in request URLs (Gemini ``?key=``) and auth headers
SECRET_PATTERNS = [
    (re.compile(r"([?&]key=)[^&\s]+", re.IGNORECASE), r"\1***"),
    (re.compile(r"(bearer\s+)[\w.\-]+", re.IGNORECASE), r"\1***"),
    (re.compile(r"((?:x-)?api[_-]?key[\"']?\s*[:=]\s*[\"']?)[\w.\-]+", re.IGNORECASE), r"\1***"),
    (re.compile(r"\bsk-[\w\-]{8,}"), "sk-***"),
]


def redact_secrets(text: str) -> str:
    for pattern, replacement in SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


class SecretRedactingFilter(logging.Filter):
    """Masks API keys and bearer tokens in rendered log messages."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = redact_secrets(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


class LogConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"
    redact_secrets: bool = True
    quiet_loggers: list[str] = Field(default_factory=lambda: ["anthropic", "httpx", "httpcore", "mcp"])

    @classmethod
    def from_env(cls) -> "LogConfig":
        """Read the level from ``CHORUS_LOG_LEVEL``, falling back to ``LOG_LEVEL``."""
        return cls(level=_env_level() or "INFO")


def _env_level() -> str | None:
    return os.getenv("CHORUS_LOG_LEVEL") or os.getenv("LOG_LEVEL")


def setup_logging(config: LogConfig | None = None) -> None:
    """Configure the root logger for a host application embedding chorus."""
    if config is None:
        config = LogConfig.from_env()

    logging.basicConfig(
        level=getattr(logging, config.level.upper()),
        format=config.format,
        datefmt=config.date_format,
        stream=sys.stdout,
        force=True,
    )
    if config.redact_secrets:
        for handler in logging.getLogger().handlers:
            handler.addFilter(SecretRedactingFilter())

    # Wire-level chatter from the SDKs is only useful when debugging a provider
    for name in config.quiet_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str, level: str | None = None) -> logging.Logger:
    """Get a logger for a specific module.

    Args:
        name: Module name (typically __name__)
        level: Explicit level; otherwise CHORUS_LOG_LEVEL or LOG_LEVEL, else inherited

    Returns:
        Logger instance
    """
    logger = logging.getLogger(name)

    log_level = level or _env_level()
    if log_level:
        logger.setLevel(log_level.upper())

    return logger
