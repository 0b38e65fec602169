"""
Logging setup for AzureKit.

Library modules only create loggers with ``logging.getLogger(__name__)``;
applications call ``setup_logging`` to get JSON or text output with
credentials stripped from every record.
"""

import json
import logging
import logging.handlers
import re
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from azurekit.core.config_manager import LoggingConfig

REDACTED = "***REDACTED***"

_SECRET_PATTERNS = [
    (re.compile(r'(SharedKey\s+[^:\s]+:)\S+', re.IGNORECASE), r'\1' + REDACTED),
    (re.compile(r'(AccountKey=)[^;\s]+', re.IGNORECASE), r'\1' + REDACTED),
    (re.compile(r'(\bsig=)[^;&\s]+', re.IGNORECASE), r'\1' + REDACTED),
    (re.compile(r'(["\']?account_key["\']?\s*[:=]\s*["\']?)[^"\'\s,}]+', re.IGNORECASE), r'\1' + REDACTED),
]


def redact(text: str) -> str:
    """Mask signatures and account keys in a string."""
    for pattern, replacement in _SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


class SensitiveDataFilter(logging.Filter):
    """Redact credentials from log records, including %-style arguments."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = redact(record.getMessage())
            record.args = None
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "module": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        if hasattr(record, "context"):
            log_data["context"] = record.context
        return json.dumps(log_data)


class TextFormatter(logging.Formatter):
    """Human-readable single-line records."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )


def setup_logging(
    level: str = "INFO",
    format_type: str = "text",
    log_file: Optional[str] = None,
    rotation_size: str = "10MB",
    rotation_count: int = 5,
    module_levels: Optional[Dict[str, str]] = None
) -> None:
    """
    Configure the ``azurekit`` logger hierarchy.

    Only the ``azurekit`` logger is touched so that embedding applications
    keep control of the root logger.

    Args:
        level: Log level for azurekit (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_type: "json" or "text"
        log_file: Optional file to log to, rotated by size
        rotation_size: Size at which the file is rotated (e.g. "10MB")
        rotation_count: Number of rotated files to keep
        module_levels: Per-module levels,
            e.g. {"azurekit.transport.retry_policy": "DEBUG"}
    """
    package_logger = logging.getLogger("azurekit")
    package_logger.setLevel(getattr(logging, level.upper()))
    package_logger.handlers.clear()
    package_logger.propagate = False

    formatter = JSONFormatter() if format_type == "json" else TextFormatter()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(SensitiveDataFilter())
    package_logger.addHandler(console_handler)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            filename=log_file,
            maxBytes=_parse_size(rotation_size),
            backupCount=rotation_count,
            encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        file_handler.addFilter(SensitiveDataFilter())
        package_logger.addHandler(file_handler)
        package_logger.info(f"Logging to file: {log_file} (rotation: {rotation_size}, count: {rotation_count})")

    for module_name, module_level in (module_levels or {}).items():
        logging.getLogger(module_name).setLevel(getattr(logging, module_level.upper()))

    package_logger.debug(f"Logging configured: level={level}, format={format_type}")


def setup_logging_from_config(config: "LoggingConfig") -> None:
    """Apply the ``logging`` section of an AzureKit configuration."""
    setup_logging(
        level=config.level,
        format_type=config.format,
        log_file=config.file,
        rotation_size=config.rotation_size,
        rotation_count=config.rotation_count,
        module_levels=config.module_levels,
    )


def _parse_size(size_str: str) -> int:
    """
    Convert a size such as "10MB" or "512KB" to bytes.

    Raises:
        ValueError: If the number part is not numeric
    """
    size_str = size_str.upper().strip()
    # Longest suffix first: "MB" also ends with "B".
    for suffix, multiplier in (('GB', 1024 ** 3), ('MB', 1024 ** 2), ('KB', 1024), ('B', 1)):
        if size_str.endswith(suffix):
            return int(float(size_str[:-len(suffix)].strip()) * multiplier)
    return int(size_str)


def log_with_context(logger: logging.Logger, level: int, message: str, **context: Any) -> None:
    """Log a message with structured context, rendered by JSONFormatter."""
    extra = {"context": context} if context else {}
    logger.log(level, message, extra=extra)
