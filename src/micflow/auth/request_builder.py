"""Builders for the outgoing requests of a Mobile Identity Connect login.

:class:`RequestBuilder` turns a client id, a redirect URI and per-attempt
options into :class:`~micflow.client.executor.HttpRequest` objects for the
three network steps of the flow, plus the authorization URL opened by the
popup strategy:

1. **Temp login URL** -- ``POST /v{N}/oauth/auth`` (Basic auth).
2. **Direct-credential code** -- ``POST <temp_login_uri>`` with username
   and password, redirects disabled (Basic auth).
3. **Token exchange** -- ``POST /oauth/token`` with
   ``grant_type=authorization_code`` (app auth, resolved by the executor).

Building a request never performs I/O.  The Basic credential is attached
as a closure so that the app secret is read only when the executor sends
the request, and recomputed for every request because the client id
varies with ``mic_id`` scoping.
"""

from __future__ import annotations

import json
from typing import Any, Callable, Optional, Union
from urllib.parse import urlencode, urlunsplit

from micflow.client.executor import (
    FORM_CONTENT_TYPE,
    AuthType,
    HttpRequest,
    basic_credential,
)
from micflow.exceptions import ValidationError
from micflow.models import DEFAULT_AUTH_PATHNAME, DEFAULT_TOKEN_PATHNAME, ClientConfig

CUSTOM_PROPERTIES_HEADER = "X-Custom-Request-Properties"


def normalize_version(version: Union[int, str]) -> str:
    """Return the API version as a ``v<N>`` path segment.

    Example::

        >>> normalize_version(3)
        'v3'
        >>> normalize_version("v2")
        'v2'
    """
    text = str(version).strip()
    if not text:
        raise ValidationError("An API version must not be empty.")
    return text if text.startswith("v") else f"v{text}"


def _join_path(*segments: str) -> str:
    parts = [segment.strip("/") for segment in segments if segment.strip("/")]
    return "/" + "/".join(parts)


def _require_redirect_uri(redirect_uri: object) -> str:
    if not isinstance(redirect_uri, str):
        raise ValidationError("A redirect_uri is required and must be a string.")
    return redirect_uri


def _require_client_id(client_id: object) -> str:
    if not isinstance(client_id, str) or not client_id:
        raise ValidationError("A client_id is required and must be a non-empty string.")
    return client_id


class RequestBuilder:
    """Build the requests of one MIC login flow.

    Args:
        client_config: Application credentials and MIC endpoint.
        auth_pathname: Path of the authorization endpoint, below the
            version segment.
        token_pathname: Path of the token endpoint (unversioned).
    """

    def __init__(
        self,
        client_config: ClientConfig,
        auth_pathname: str = DEFAULT_AUTH_PATHNAME,
        token_pathname: str = DEFAULT_TOKEN_PATHNAME,
    ) -> None:
        self._client_config = client_config
        self._auth_pathname = auth_pathname
        self._token_pathname = token_pathname

    # ------------------------------------------------------------------ #
    # URLs
    # ------------------------------------------------------------------ #

    def mic_url(self, path: str, query: Optional[dict[str, str]] = None) -> str:
        """Return an absolute URL on the configured MIC host."""
        return urlunsplit((
            self._client_config.mic_protocol.rstrip(":/"),
            self._client_config.mic_host,
            path,
            urlencode(query) if query else "",
            "",
        ))

    def auth_url(self, version: Union[int, str]) -> str:
        return self.mic_url(_join_path(normalize_version(version), self._auth_pathname))

    def token_url(self) -> str:
        return self.mic_url(_join_path(self._token_pathname))

    def authorization_url(
        self,
        client_id: str,
        redirect_uri: str,
        version: Union[int, str],
        scope: str = "openid",
    ) -> str:
        """Return the login-page URL opened by the popup strategy."""
        client_id = _require_client_id(client_id)
        redirect_uri = _require_redirect_uri(redirect_uri)
        query = {
            "client_id": client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": scope,
        }
        return self.mic_url(
            _join_path(normalize_version(version), self._auth_pathname), query
        )

    # ------------------------------------------------------------------ #
    # Requests
    # ------------------------------------------------------------------ #

    def temp_login_url_request(
        self,
        client_id: str,
        redirect_uri: str,
        version: Union[int, str],
        properties: Optional[dict[str, Any]] = None,
    ) -> HttpRequest:
        """Build the request that asks for a short-lived ``temp_login_uri``."""
        client_id = _require_client_id(client_id)
        redirect_uri = _require_redirect_uri(redirect_uri)
        return HttpRequest(
            method="POST",
            url=self.auth_url(version),
            headers=self._headers(properties, basic_for=client_id),
            body={
                "client_id": client_id,
                "redirect_uri": redirect_uri,
                "response_type": "code",
            },
        )

    def code_request(
        self,
        login_url: str,
        client_id: str,
        redirect_uri: str,
        username: Optional[str],
        password: Optional[str],
        scope: str = "openid",
        properties: Optional[dict[str, Any]] = None,
    ) -> HttpRequest:
        """Build the direct-credential request posted to the temp login URL.

        The code comes back in the ``Location`` header of a redirect, so
        redirect-following is disabled.
        """
        client_id = _require_client_id(client_id)
        redirect_uri = _require_redirect_uri(redirect_uri)
        if not isinstance(login_url, str) or not login_url:
            raise ValidationError("A temp login URL is required to request a code.")
        return HttpRequest(
            method="POST",
            url=login_url,
            headers=self._headers(properties, basic_for=client_id),
            body={
                "client_id": client_id,
                "redirect_uri": redirect_uri,
                "response_type": "code",
                "username": username,
                "password": password,
                "scope": scope,
            },
            follow_redirects=False,
        )

    def token_request(
        self,
        code: str,
        client_id: str,
        redirect_uri: str,
        properties: Optional[dict[str, Any]] = None,
    ) -> HttpRequest:
        """Build the authorization-code-to-token exchange."""
        client_id = _require_client_id(client_id)
        redirect_uri = _require_redirect_uri(redirect_uri)
        return HttpRequest(
            method="POST",
            url=self.token_url(),
            headers=self._headers(properties),
            body={
                "grant_type": "authorization_code",
                "client_id": client_id,
                "redirect_uri": redirect_uri,
                "code": code,
            },
            auth_type=AuthType.APP,
        )

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _headers(
        self,
        properties: Optional[dict[str, Any]],
        basic_for: Optional[str] = None,
    ) -> dict[str, Any]:
        headers: dict[str, Any] = {"Content-Type": FORM_CONTENT_TYPE}
        if basic_for is not None:
            headers["Authorization"] = self._basic_provider(basic_for)
        if properties:
            headers[CUSTOM_PROPERTIES_HEADER] = json.dumps(properties, separators=(",", ":"))
        return headers

    def _basic_provider(self, client_id: str) -> Callable[[], str]:
        config = self._client_config

        def provide() -> str:
            return basic_credential(client_id, config.app_secret.get_secret_value())

        return provide
