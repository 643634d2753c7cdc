"""Project-wide custom exception types."""


class InvalidRecurrenceError(ValueError):
    """Raised when a recurrence rule cannot be turned into a schedule."""


class EmailTemplateNotFoundError(KeyError):
    """Raised when an email is requested for an unknown template kind."""

    def __init__(self, kind: str) -> None:
        super().__init__(f"Email template '{kind}' not found")
        self.kind = kind


class EmailNotConfiguredError(RuntimeError):
    """Raised when SMTP host or sender address is missing."""
