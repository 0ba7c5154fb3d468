"""Exception hierarchy for the login server."""

from typing import Iterable, Optional


class LoginServerError(Exception):
    """Base class for all login server errors."""


class ConfigurationError(LoginServerError):
    """Configuration could not be loaded. The process should exit with status 1."""

    def __init__(self, message: str, missing: Optional[Iterable[str]] = None):
        super().__init__(message)
        self.missing = list(missing or [])


class ExampleConfigCreated(LoginServerError):
    """
    No configuration file existed, so an example one was written.

    The process should exit with status 0 so the operator can edit the file
    before restarting.
    """

    def __init__(self, path: str):
        super().__init__(
            f"An example configuration file has been created at {path}, "
            "please configure it before restarting the application."
        )
        self.path = path


class DatabaseUnavailableError(LoginServerError):
    """The database could not be reached at startup."""


class FieldDecodeError(LoginServerError):
    """A base64 form field could not be decoded."""

    def __init__(self, field: str, reason: str):
        super().__init__(f"{field}: {reason}")
        self.field = field
        self.reason = reason


class AccountExistsError(LoginServerError):
    """An account with the given E-mail address already exists."""
