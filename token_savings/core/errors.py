"""
Error types for token savings reporting.
"""


class TokenSavingsError(Exception):
    """Base class for errors raised by token_savings."""


class StoreUnavailableError(TokenSavingsError):
    """Raised when the history database cannot be opened or queried."""
    def __init__(self, message: str, db_path: str):
        super().__init__(message)
        self.db_path = db_path


class UnsupportedFormatError(TokenSavingsError, ValueError):
    """Raised when an export format selector is not recognized."""
    def __init__(self, value: str, supported):
        super().__init__(
            f"Unsupported format: {value!r} (expected one of: {', '.join(supported)})"
        )
        self.value = value
