"""Configuration management utilities."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from ..exceptions import ConfigurationError

OVERFLOW_POLICIES = ("report", "split")
PATTERN_SYNTAXES = ("auto", "glob", "regex")


@dataclass
class ConcatSettings:
    """Tuning values for a concatenation run."""

    part_concurrency: int = 8
    target_concurrency: int = 4
    retry_count: int = 3
    retry_delay: float = 1.0
    retry_backoff: float = 2.0
    overflow: str = "report"
    pattern_syntax: str = "auto"


class ConfigManager:
    """Handles loading and validation of the optional YAML configuration file."""

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = Path(config_path) if config_path else None
        self.config: Dict[str, Any] = {}

    def load(self) -> Dict[str, Any]:
        """Load and validate the configuration file, if one was given."""
        if self.config_path is None:
            self.config = {}
            self.validate()
            return self.config

        if not self.config_path.exists():
            raise ConfigurationError(f"Configuration file not found: {self.config_path}")

        try:
            with self.config_path.open("r", encoding="utf-8") as fh:
                data = yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Failed to parse configuration: {exc}") from exc

        self.config = data
        self.validate()
        return self.config

    def validate(self) -> bool:
        """Validate the loaded configuration contents."""
        if not isinstance(self.config, dict):
            raise ConfigurationError("Configuration must be a mapping.")

        for section in ("aws", "concat", "report", "logging"):
            value = self.config.get(section, {})
            if value is not None and not isinstance(value, dict):
                raise ConfigurationError(f"Configuration section '{section}' must be a mapping.")

        concat_cfg = self.get_concat_config()
        for key in ("part_concurrency", "target_concurrency"):
            value = concat_cfg[key]
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                raise ConfigurationError(f"concat.{key} must be a positive integer.")

        retry_count = concat_cfg["retry_count"]
        if not isinstance(retry_count, int) or isinstance(retry_count, bool) or retry_count < 0:
            raise ConfigurationError("concat.retry_count must be a non-negative integer.")

        for key in ("retry_delay", "retry_backoff"):
            value = concat_cfg[key]
            if not isinstance(value, (int, float)) or isinstance(value, bool) or value < 0:
                raise ConfigurationError(f"concat.{key} must be a non-negative number.")

        if concat_cfg["overflow"] not in OVERFLOW_POLICIES:
            raise ConfigurationError(
                f"concat.overflow must be one of {', '.join(OVERFLOW_POLICIES)}."
            )
        if concat_cfg["pattern_syntax"] not in PATTERN_SYNTAXES:
            raise ConfigurationError(
                f"concat.pattern_syntax must be one of {', '.join(PATTERN_SYNTAXES)}."
            )

        return True

    def get_aws_config(self) -> Dict[str, str]:
        """Return keyword arguments for the boto3 session."""
        aws_cfg = self.config.get("aws") or {}
        result: Dict[str, str] = {}
        if aws_cfg.get("region"):
            result["region_name"] = aws_cfg["region"]
        if aws_cfg.get("profile"):
            result["profile_name"] = aws_cfg["profile"]
        return result

    def get_endpoint_url(self) -> Optional[str]:
        """Return a custom S3 endpoint, for S3-compatible services."""
        aws_cfg = self.config.get("aws") or {}
        return aws_cfg.get("endpoint_url") or None

    def get_concat_config(self) -> Dict[str, Any]:
        """Return concatenation settings with defaults."""
        defaults = {
            "part_concurrency": 8,
            "target_concurrency": 4,
            "retry_count": 3,
            "retry_delay": 1.0,
            "retry_backoff": 2.0,
            "overflow": "report",
            "pattern_syntax": "auto",
        }
        concat_cfg = self.config.get("concat") or {}
        merged = {**defaults, **concat_cfg}
        return merged

    def get_concat_settings(self) -> ConcatSettings:
        """Return concatenation settings as a ConcatSettings instance."""
        cfg = self.get_concat_config()
        return ConcatSettings(
            part_concurrency=int(cfg["part_concurrency"]),
            target_concurrency=int(cfg["target_concurrency"]),
            retry_count=int(cfg["retry_count"]),
            retry_delay=float(cfg["retry_delay"]),
            retry_backoff=float(cfg["retry_backoff"]),
            overflow=str(cfg["overflow"]),
            pattern_syntax=str(cfg["pattern_syntax"]),
        )

    def get_report_config(self) -> Dict[str, Any]:
        """Return report-related configuration values with defaults."""
        defaults = {"directory": None}
        report_cfg = self.config.get("report") or {}
        merged = {**defaults, **report_cfg}
        return merged

    def get_logging_config(self) -> Dict[str, Any]:
        """Return logging configuration values with defaults."""
        defaults = {
            "level": "INFO",
            "file": None,
            "console": True,
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        }
        logging_cfg = self.config.get("logging") or {}
        merged = {**defaults, **logging_cfg}
        return merged
