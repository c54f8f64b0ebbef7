"""Synchronous HTTP executor for the MIC login steps.

This module provides :class:`HttpExecutor`, the blocking HTTP collaborator
used by :class:`~micflow.auth.mic.MobileIdentityConnect`.  It wraps
:class:`httpx.Client` and layers on:

- **Lazy header values** -- a header value may be a zero-argument callable;
  it is evaluated immediately before the request is sent, so secrets are
  not captured earlier than necessary.
- **Auth-type resolution** -- requests tagged :attr:`AuthType.APP` get an
  ``Authorization: Basic base64(app_key:app_secret)`` header computed here.
- **Per-request redirect control** -- the direct-credential step reads its
  code from a ``Location`` header and must not follow it.
- **Error mapping** -- transport failures and HTTP statuses >= 400 become
  :class:`~micflow.exceptions.NetworkError`.  Nothing is retried.
- **Request tracing** -- ``--verbose`` prints each request to stderr with
  the ``Authorization`` header redacted.
"""

from __future__ import annotations

import base64
import enum
import json
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Union

import httpx

from micflow.exceptions import NetworkError
from micflow.models import ClientConfig
from micflow.output import get_output

HeaderValue = Union[str, Callable[[], str]]

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


class AuthType(str, enum.Enum):
    """How the executor authenticates a request on top of its own headers."""

    NONE = "none"
    APP = "app"


@dataclass
class HttpRequest:
    """A fully specified outgoing request.

    Attributes:
        method: HTTP method (always ``POST`` for the MIC steps).
        url: Absolute target URL.
        headers: Header map; values may be strings or zero-arg callables
            evaluated at send time.
        body: Form fields, encoded as ``application/x-www-form-urlencoded``.
            ``None`` values are dropped.
        auth_type: Application-level auth resolved by the executor.
        follow_redirects: Whether 3xx responses are followed.
    """

    method: str
    url: str
    headers: dict[str, HeaderValue] = field(default_factory=dict)
    body: dict[str, Any] = field(default_factory=dict)
    auth_type: AuthType = AuthType.NONE
    follow_redirects: bool = True

    def resolve_headers(self) -> dict[str, str]:
        """Evaluate lazy header values and return a plain string map."""
        return {
            name: value() if callable(value) else value
            for name, value in self.headers.items()
        }


@dataclass
class HttpResponse:
    """Status, decoded body and headers of a completed request."""

    status_code: int
    data: Any
    headers: httpx.Headers = field(default_factory=httpx.Headers)

    def get_header(self, name: str) -> Optional[str]:
        """Return a response header by case-insensitive name, or ``None``."""
        return self.headers.get(name)


def basic_credential(username: str, secret: str) -> str:
    """Return an ``Authorization`` header value for HTTP Basic auth."""
    token = base64.b64encode(f"{username}:{secret}".encode("utf-8")).decode("ascii")
    return f"Basic {token}"


class HttpExecutor:
    """Blocking executor for :class:`HttpRequest` objects.

    Owns one :class:`httpx.Client`, created lazily on first use or when the
    executor is entered as a context manager.

    Args:
        client_config: Application credentials used to resolve
            :attr:`AuthType.APP`.
        timeout: Per-request timeout in seconds.
        verify_ssl: Verify TLS certificates.
        transport: Optional httpx transport (tests pass
            :class:`httpx.MockTransport`).

    Example::

        with HttpExecutor(client_config) as executor:
            response = executor.execute(request)
    """

    def __init__(
        self,
        client_config: ClientConfig,
        timeout: float = 30.0,
        verify_ssl: bool = True,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._client_config = client_config
        self._timeout = timeout
        self._verify_ssl = verify_ssl
        self._transport = transport
        self._client: Optional[httpx.Client] = None

    # ------------------------------------------------------------------ #
    # Context manager
    # ------------------------------------------------------------------ #

    def __enter__(self) -> HttpExecutor:
        self._ensure_client()
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def close(self) -> None:
        if self._client:
            self._client.close()
            self._client = None

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def execute(self, request: HttpRequest) -> HttpResponse:
        """Send *request* and return the decoded response.

        Args:
            request: The request to send.

        Returns:
            An :class:`HttpResponse`.  3xx responses are returned as-is when
            ``follow_redirects`` is ``False``.

        Raises:
            NetworkError: On transport failures or a status code >= 400.
        """
        client = self._ensure_client()
        headers = request.resolve_headers()
        if request.auth_type == AuthType.APP:
            headers["Authorization"] = basic_credential(
                self._client_config.app_key,
                self._client_config.app_secret.get_secret_value(),
            )
        body = {k: v for k, v in request.body.items() if v is not None}

        self._trace(request, headers)

        try:
            response = client.request(
                request.method,
                request.url,
                headers=headers,
                data=body,
                follow_redirects=request.follow_redirects,
            )
        except httpx.HTTPError as exc:
            raise NetworkError(f"{request.method} {request.url} failed: {exc}") from exc

        get_output().debug(f"HTTP {response.status_code} {request.url}")
        self._map_response_error(response)

        return HttpResponse(
            status_code=response.status_code,
            data=_decode_body(response),
            headers=response.headers,
        )

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _ensure_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                timeout=self._timeout,
                verify=self._verify_ssl,
                transport=self._transport,
            )
        return self._client

    def _trace(self, request: HttpRequest, headers: dict[str, str]) -> None:
        output = get_output()
        if not output.is_verbose:
            return
        output.debug(f"{request.method} {request.url}")
        for key, value in headers.items():
            shown = "<redacted>" if key.lower() == "authorization" else value
            output.debug(f"  Header: {key}: {shown}")
        for key in request.body:
            if request.body[key] is not None:
                shown = "<redacted>" if key == "password" else request.body[key]
                output.debug(f"  Form: {key}={shown}")

    def _map_response_error(self, response: httpx.Response) -> None:
        """Raise :class:`NetworkError` for error HTTP status codes."""
        status = response.status_code
        if status < 400:
            return

        try:
            detail = response.json()
            if isinstance(detail, dict):
                msg = (
                    detail.get("error_description")
                    or detail.get("description")
                    or detail.get("message")
                    or detail.get("error")
                    or ""
                )
            else:
                msg = str(detail)
        except ValueError:
            msg = response.text[:200] if response.text else ""

        prefix = f"HTTP {status}"
        raise NetworkError(f"{prefix}: {msg}" if msg else prefix, status_code=status)


def _decode_body(response: httpx.Response) -> Any:
    """Decode a response body as JSON, falling back to text; ``None`` when empty."""
    if not response.content:
        return None
    try:
        return response.json()
    except (json.JSONDecodeError, ValueError):
        return response.text
