"""Core error types for :mod:`rxotel`."""


class RxException(Exception):
    """Wraps an exception raised inside a reactive logging component."""

    def __init__(self, exception: Exception, source: str = "Unknown", note: str = ""):
        super().__init__(f"<{source}> {note}: {exception}")
        self.exception = exception
        self.source = source
        self.note = note

    def __str__(self):
        return f"<{self.source}> {self.note}: {self.exception}"


class ConfigurationError(ValueError):
    """Raised synchronously when a logger is built from an invalid configuration."""


class PanicError(RuntimeError):
    """Raised after a panic-level event has been dispatched and written."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message
