"""Mobile Identity Connect login for micflow.

This package implements the client side of the MIC OAuth2
authorization-code flow:

- :class:`MobileIdentityConnect` -- orchestrates one login and returns a
  :class:`~micflow.models.Session`.
- :class:`GrantStrategy` and its two implementations,
  :class:`PopupGrantStrategy` and :class:`CredentialGrantStrategy` -- obtain
  the authorization code.
- :class:`RequestBuilder` -- builds the form-encoded requests of each step.
- :class:`ActiveUserStore` with :func:`get_active_user` /
  :func:`set_active_user` -- persist the active session.

Typical usage::

    from micflow.auth import MobileIdentityConnect, set_active_user

    with MobileIdentityConnect(client_config) as mic:
        session = mic.login(
            "app://callback",
            "AuthorizationCodeAPI",
            {"username": "alice", "password": "s3cret"},
        )
    set_active_user(client_config, session)
"""

from micflow.auth.credential_store import (
    ActiveUserStore,
    FileKeyValueStore,
    KeyValueStore,
    MemoryKeyValueStore,
    get_active_user,
    set_active_user,
)
from micflow.auth.mic import IDENTITY, MobileIdentityConnect, login, parse_grant
from micflow.auth.popup import NavigationEvent, PopupAttempt, PopupHandle, PopupOpener, PopupState
from micflow.auth.request_builder import RequestBuilder, normalize_version
from micflow.auth.strategies import CredentialGrantStrategy, GrantStrategy, PopupGrantStrategy

__all__ = [
    "IDENTITY",
    "ActiveUserStore",
    "CredentialGrantStrategy",
    "FileKeyValueStore",
    "GrantStrategy",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "MobileIdentityConnect",
    "NavigationEvent",
    "PopupAttempt",
    "PopupGrantStrategy",
    "PopupHandle",
    "PopupOpener",
    "PopupState",
    "RequestBuilder",
    "get_active_user",
    "login",
    "normalize_version",
    "parse_grant",
    "set_active_user",
]
