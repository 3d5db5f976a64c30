"""Logging helpers."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Keep the AWS SDK quiet unless debugging.
NOISY_LOGGERS = ("boto3", "botocore", "s3transfer", "urllib3")


def resolve_level(config: Dict[str, Any], quiet: bool = False) -> int:
    """Return the numeric level for the configured name; ``quiet`` means errors only."""
    if quiet:
        return logging.ERROR
    return getattr(logging, str(config.get("level", "INFO")).upper(), logging.INFO)


def _build_handlers(config: Dict[str, Any]) -> List[logging.Handler]:
    handlers: List[logging.Handler] = []
    if config.get("console", True):
        handlers.append(logging.StreamHandler())

    log_file = config.get("file")
    if log_file:
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))
    return handlers


def configure_logging(config: Dict[str, Any], quiet: bool = False) -> None:
    """Install console and file handlers on the root logger from the ``logging`` config section."""
    level = resolve_level(config, quiet)
    formatter = logging.Formatter(config.get("format") or DEFAULT_FORMAT)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(level)
    for handler in _build_handlers(config):
        handler.setLevel(level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
    logging.captureWarnings(True)
