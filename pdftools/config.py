"""
Service Configuration
=====================
Runtime settings for the PDF tools service and its logging setup.

Values come from keyword arguments or from ``PDFTOOLS_*`` environment
variables:

    PDFTOOLS_UPLOAD_DIR      Directory for uploaded files
    PDFTOOLS_OUTPUT_DIR      Directory for generated files
    PDFTOOLS_WORKERS         Number of job worker threads
    PDFTOOLS_MAX_FILE_SIZE   Per-file upload limit in bytes
    PDFTOOLS_MAX_FILES       Files accepted per upload request
    PDFTOOLS_SITE_URL        Public base URL used in sitemap.xml
    PDFTOOLS_LOG_LEVEL       DEBUG / INFO / WARNING / ERROR
    PDFTOOLS_LOG_FILE        Optional log file path
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

# Project root: one level up from /pdftools/ package
_PROJECT_ROOT = Path(__file__).parent.parent.absolute()

LOG_FORMAT = "[%(asctime)s] %(levelname)-8s %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

ENV_PREFIX = "PDFTOOLS_"


@dataclass
class ServiceConfig:
    """Configuration for the PDF tools service."""

    # Storage
    upload_dir: str = str(_PROJECT_ROOT / "uploads")
    output_dir: str = str(_PROJECT_ROOT / "outputs")

    # Upload limits
    max_file_size: int = 100 * 1024 * 1024  # 100MB
    max_files: int = 10

    # Processing
    workers: int = 2

    # Public site
    site_url: Optional[str] = None

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Optional[dict] = None, **overrides) -> "ServiceConfig":
        """Build a config from ``PDFTOOLS_*`` variables, then apply overrides."""
        environ = os.environ if environ is None else environ
        values = {}
        for f in fields(cls):
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is None or raw == "":
                continue
            if f.name in ("max_file_size", "max_files", "workers"):
                try:
                    values[f.name] = int(raw)
                except ValueError:
                    raise ValueError(
                        f"{ENV_PREFIX}{f.name.upper()} must be an integer, got {raw!r}"
                    ) from None
            else:
                values[f.name] = raw
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def to_flask(self) -> dict:
        """Flask ``app.config`` keys for this configuration."""
        return {
            "UPLOAD_DIR": self.upload_dir,
            "OUTPUT_DIR": self.output_dir,
            "MAX_FILE_SIZE": self.max_file_size,
            "MAX_FILES": self.max_files,
            "WORKERS": self.workers,
            "SITE_URL": self.site_url,
            # Whole request: every file at the cap plus form overhead
            "MAX_CONTENT_LENGTH": self.max_file_size * self.max_files + 1024 * 1024,
        }


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """Configure the ``pdftools`` package logger."""
    log_level = getattr(logging, str(level).upper(), logging.INFO)

    pkg_logger = logging.getLogger("pdftools")
    pkg_logger.setLevel(log_level)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    # Console handler
    if not any(
        isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
        for h in pkg_logger.handlers
    ):
        console = logging.StreamHandler()
        console.setLevel(log_level)
        console.setFormatter(formatter)
        pkg_logger.addHandler(console)

    # File handler
    if log_file:
        log_dir = Path(log_file).parent
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        pkg_logger.addHandler(file_handler)

    return pkg_logger
