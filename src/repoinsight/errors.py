"""Custom exception types for the repository insight engine."""


class InsightError(Exception):
    """Base exception for all recoverable insight engine errors."""


class ConfigurationError(InsightError):
    """Raised when runtime configuration values are missing or invalid."""


class DataSourceError(InsightError):
    """Raised when the record source cannot deliver records for a repository."""


class RecordValidationError(InsightError):
    """Raised when a raw record cannot be normalized into a typed record."""
