"""Exception hierarchy for micflow.

All exceptions inherit from :class:`MicflowError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`micflow.exit_codes`.
The top-level error handler in :func:`micflow.app.main` catches
``MicflowError`` and exits with the appropriate code, while unexpected
exceptions produce a crash log and exit with :data:`EXIT_GENERIC_FAILURE`.

Subclass hierarchy::

    MicflowError (exit 1)
    +-- ValidationError        (exit 2)
    +-- UnsupportedGrantError  (exit 2)
    +-- AuthorizationError     (exit 3)
    +-- NetworkError           (exit 6)
    +-- PersistenceError       (exit 1)
    +-- ConfigError            (exit 1)
    +-- DeployError            (exit 1)

Errors raised inside a login attempt reach the caller unwrapped. Only
:class:`PersistenceError` is absorbed, at the active-user store boundary.
"""

from __future__ import annotations

from typing import Optional

from micflow.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
)


class MicflowError(Exception):
    """Base exception for all micflow errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`micflow.exit_codes`.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ValidationError(MicflowError):
    """Raised for invalid caller input, before any request or popup exists."""

    exit_code = EXIT_INVALID_USAGE


class UnsupportedGrantError(MicflowError):
    """Raised when an authorization grant value is not one of the supported grants.

    Args:
        grant: The offending value, kept for callers that want to report it.
        supported: The grant names that would have been accepted.
    """

    exit_code = EXIT_INVALID_USAGE

    def __init__(self, grant: object, supported: Optional[list[str]] = None):
        self.grant = grant
        self.supported = supported or []
        message = (
            f"The authorization grant {grant!r} is unsupported. "
            "Please use a supported authorization grant."
        )
        if self.supported:
            message += f" Supported grants: {', '.join(self.supported)}"
        super().__init__(message)


class AuthorizationError(MicflowError):
    """Raised when an authorization code or token cannot be obtained.

    Covers a popup closed before the redirect, an OAuth ``error`` returned
    on the redirect URI, a redirect carrying neither code nor error, and a
    direct-credential response without a ``Location`` header.

    Args:
        error: The upstream OAuth error code, or a short message.
        description: Optional longer explanation (``error_description``).
    """

    exit_code = EXIT_AUTH_FAILURE

    def __init__(self, error: str, description: Optional[str] = None):
        self.error = error
        self.description = description
        message = f"{error} {description}" if description else error
        super().__init__(message)


class NetworkError(MicflowError):
    """Raised when the HTTP executor fails (transport error or HTTP status >= 400).

    Never retried: the login steps are not safe to replay blindly.

    Args:
        message: Human-readable description.
        status_code: HTTP status code when a response was received.
    """

    exit_code = EXIT_CONNECTION_ERROR

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class PersistenceError(MicflowError):
    """Raised by key-value store adapters when a record cannot be written or removed."""

    exit_code = EXIT_GENERIC_FAILURE


class ConfigError(MicflowError):
    """Raised for configuration problems (missing app key, invalid JSON, bad credential sources)."""

    exit_code = EXIT_GENERIC_FAILURE


class DeployError(MicflowError):
    """Raised when a deployment descriptor cannot be built."""

    exit_code = EXIT_GENERIC_FAILURE
