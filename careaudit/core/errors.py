"""
Exception types for the audit log.
"""


class AuditError(Exception):
    """Base class for audit log errors."""
    pass


class InvalidEventType(AuditError, ValueError):
    """Raised when an event type is not one of the fixed enumeration values."""
    pass


class EncodingError(AuditError, ValueError):
    """Raised when an entry field or details value has no canonical encoding."""
    pass


class StorageError(AuditError):
    """Raised when the storage collaborator fails to persist or read entries."""
    pass


class ChainConflictError(StorageError):
    """Raised when an append keeps losing the race for the chain tip."""
    pass


class InvalidRange(AuditError, ValueError):
    """Raised when a time range starts after it ends."""
    pass


class IntegrityError(AuditError):
    """Raised when an operation requires an intact chain and it is not."""
    pass
