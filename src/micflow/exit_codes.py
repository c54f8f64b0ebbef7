"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~micflow.exceptions.MicflowError` subclass.
Shell wrappers can inspect the exit code to tell a cancelled login apart
from a network outage without parsing stderr.

Example::

    $ micflow login app://callback --grant AuthorizationCodeAPI -u alice
    $ echo $?
    3   # EXIT_AUTH_FAILURE -- the authorization server refused the login
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments (bad redirect URI, unknown grant)."""

EXIT_AUTH_FAILURE = 3
"""The authorization step failed or was cancelled."""

EXIT_CONNECTION_ERROR = 6
"""A network-level or HTTP error occurred while talking to the MIC service."""
