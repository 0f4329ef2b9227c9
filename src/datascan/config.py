"""Configuration for the sensitive-data detection job."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from .db import is_memory_sqlite

DEFAULT_DATABASE_URL = "sqlite:///./datascan.db"


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    return int(value) if value else default


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    return float(value) if value else default


@dataclass
class ScanConfig:
    """Settings for one detection run."""

    # Database
    database_url: str = DEFAULT_DATABASE_URL
    isolation_level: str | None = None  # e.g. "SERIALIZABLE" on Postgres

    # Detection thresholds
    min_analyze_traces: int = 50  # sample size needed before an endpoint is analyzed
    min_detect_thresh: float = 0.5  # match ratio a class must strictly exceed
    max_sample_traces: int = 500  # traces read per endpoint
    max_path_depth: int = 64  # nesting guard for body traversal

    # Execution
    max_conflict_retries: int = 3
    max_workers: int = 1  # >1 analyzes endpoints on a thread pool

    # Catalog
    data_classes_file: str | None = None
    disabled_data_classes: list[str] = field(default_factory=list)

    # Alert forwarding (optional)
    webhook_url: str | None = None
    webhook_headers: dict[str, str] = field(default_factory=dict)
    webhook_timeout: float = 2.0
    webhook_retry_count: int = 2

    # Logging
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, data: dict) -> "ScanConfig":
        """Create config from dictionary, falling back to DATASCAN_* env vars."""
        return cls(
            database_url=data.get("database_url")
            or os.environ.get("DATASCAN_DATABASE_URL", DEFAULT_DATABASE_URL),
            isolation_level=data.get("isolation_level") or os.environ.get("DATASCAN_ISOLATION_LEVEL"),
            min_analyze_traces=data.get("min_analyze_traces", _env_int("DATASCAN_MIN_ANALYZE_TRACES", 50)),
            min_detect_thresh=data.get("min_detect_thresh", _env_float("DATASCAN_MIN_DETECT_THRESH", 0.5)),
            max_sample_traces=data.get("max_sample_traces", _env_int("DATASCAN_MAX_SAMPLE_TRACES", 500)),
            max_path_depth=data.get("max_path_depth", 64),
            max_conflict_retries=data.get("max_conflict_retries", 3),
            max_workers=data.get("max_workers", _env_int("DATASCAN_MAX_WORKERS", 1)),
            data_classes_file=data.get("data_classes_file") or os.environ.get("DATASCAN_DATA_CLASSES_FILE"),
            disabled_data_classes=data.get("disabled_data_classes", []),
            webhook_url=data.get("webhook_url") or os.environ.get("DATASCAN_WEBHOOK_URL"),
            webhook_headers=data.get("webhook_headers", {}),
            webhook_timeout=data.get("webhook_timeout", 2.0),
            webhook_retry_count=data.get("webhook_retry_count", 2),
            log_level=data.get("log_level") or os.environ.get("DATASCAN_LOG_LEVEL", "INFO"),
        )

    def to_dict(self) -> dict:
        """Convert config to dictionary."""
        return {
            "database_url": self.database_url,
            "isolation_level": self.isolation_level,
            "min_analyze_traces": self.min_analyze_traces,
            "min_detect_thresh": self.min_detect_thresh,
            "max_sample_traces": self.max_sample_traces,
            "max_path_depth": self.max_path_depth,
            "max_conflict_retries": self.max_conflict_retries,
            "max_workers": self.max_workers,
            "data_classes_file": self.data_classes_file,
            "disabled_data_classes": self.disabled_data_classes,
            "webhook_url": self.webhook_url,
            "webhook_headers": self.webhook_headers,
            "webhook_timeout": self.webhook_timeout,
            "webhook_retry_count": self.webhook_retry_count,
            "log_level": self.log_level,
        }

    def validate(self) -> None:
        """Raise ValueError if any setting is out of range."""
        if not 0 < self.min_detect_thresh < 1:
            raise ValueError("min_detect_thresh must be between 0 and 1")
        if self.min_analyze_traces < 1:
            raise ValueError("min_analyze_traces must be positive")
        if self.max_sample_traces < self.min_analyze_traces:
            raise ValueError("max_sample_traces must be at least min_analyze_traces")
        if self.max_path_depth < 1:
            raise ValueError("max_path_depth must be positive")
        if self.max_conflict_retries < 1:
            raise ValueError("max_conflict_retries must be at least 1")
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        if self.max_workers > 1 and is_memory_sqlite(self.database_url):
            raise ValueError("max_workers > 1 needs a database with one connection per worker, not in-memory SQLite")


def load_config(path: Optional[str] = None) -> ScanConfig:
    """Load configuration from a YAML file, or from the environment alone.

    Args:
        path: Optional YAML file whose top-level keys match ScanConfig fields.

    Returns:
        Validated ScanConfig instance.
    """
    data: dict = {}
    if path:
        try:
            loaded = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
        except yaml.YAMLError as e:
            raise ValueError(f"Config file {path} is not valid YAML: {e}") from e
        if loaded is not None and not isinstance(loaded, dict):
            raise ValueError(f"Config file {path} must contain a mapping")
        data = loaded or {}

    config = ScanConfig.from_dict(data)
    config.validate()
    return config
