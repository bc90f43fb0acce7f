"""Exception hierarchy shared by the storage, ingestion and migration layers."""


class MetricsError(Exception):
    """Base error for the metrics service."""


class InputError(MetricsError):
    """Raised when a write request is malformed; nothing is persisted."""


class StorageError(MetricsError):
    """Raised when the database cannot complete a read or durable write."""


class MigrationError(MetricsError):
    """Raised when the schema cannot be brought up to date atomically."""
