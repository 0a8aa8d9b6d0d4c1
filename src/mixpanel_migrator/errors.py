"""Migration errors. Skipped and duplicate records are counters, not errors."""
from typing import Optional


class MigrationError(Exception):
    """Base class for failures that abort a run."""

    error_code = "MIGRATION_ERROR"


class ConfigError(MigrationError):
    """Invalid or missing configuration."""

    error_code = "CONFIG_ERROR"


class ExtractionError(MigrationError):
    """Export request failed or returned a non-success status."""

    error_code = "EXTRACTION_ERROR"

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class DecodeError(ExtractionError):
    """Malformed JSON value in the export stream."""

    error_code = "DECODE_ERROR"


class LoadError(MigrationError):
    """The ingestion queue rejected a record."""

    error_code = "LOAD_ERROR"

    def __init__(self, message: str, imported: int = 0):
        super().__init__(message)
        self.imported = imported
