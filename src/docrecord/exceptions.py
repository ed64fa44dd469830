class DocRecordError(Exception):
    """Base class for exceptions in this module."""


class UnknownAttribute(DocRecordError, AttributeError):
    """Raised when reading or writing a name outside a record's attributes."""


class InvalidValidator(DocRecordError):
    """Raised when a validator is bound to an attribute that does not exist."""


class ValidationFailed(DocRecordError):
    """Raised by save() when a record does not validate."""

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message)
        self.errors = errors or []


class ConfigurationError(DocRecordError):
    """Raised when the database is used before it is configured."""


class InvalidTransition(DocRecordError):
    """Raised when a record is moved to a lifecycle state it cannot reach."""
