"""Strategies that obtain a single-use authorization code.

Each :class:`GrantStrategy` handles one
:class:`~micflow.models.AuthorizationGrant` and returns a bare code string
or raises.  :class:`~micflow.auth.mic.MobileIdentityConnect` keys its
strategies by :attr:`GrantStrategy.grant` and never needs to know which one
ran.

- :class:`PopupGrantStrategy` -- opens the MIC login page in a popup and
  waits for the redirect (``AuthorizationCodeLoginPage``).
- :class:`CredentialGrantStrategy` -- posts username and password to a
  temporary login URL and reads the code from the ``Location`` header
  (``AuthorizationCodeAPI``).
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional
from urllib.parse import parse_qs, urlsplit

from micflow.auth.popup import PopupAttempt, PopupOpener
from micflow.auth.request_builder import RequestBuilder
from micflow.client.executor import HttpExecutor
from micflow.exceptions import AuthorizationError
from micflow.models import AuthorizationGrant, LoginOptions

logger = logging.getLogger(__name__)


class GrantStrategy(ABC):
    """Abstract base class for authorization-code strategies."""

    @property
    @abstractmethod
    def grant(self) -> AuthorizationGrant:
        """The authorization grant this strategy implements."""
        ...

    @abstractmethod
    def request_code(
        self, client_id: str, redirect_uri: str, options: LoginOptions
    ) -> str:
        """Obtain an authorization code for *client_id*.

        Args:
            client_id: The effective client id (``app_key`` or
                ``app_key.mic_id``).
            redirect_uri: The redirect URI registered for the client.
            options: Per-attempt login options.

        Returns:
            The authorization code.

        Raises:
            AuthorizationError: If no code can be obtained.
            NetworkError: If an HTTP step fails.
        """
        ...


class PopupGrantStrategy(GrantStrategy):
    """Obtain the code through the MIC login page shown in a popup.

    Args:
        builder: Builds the authorization URL.
        opener: Opens a popup at a URL.  ``None`` means no interactive
            surface is available in this environment.
        timeout: Optional limit, in seconds, on how long to wait for the
            redirect.  ``None`` waits for the user indefinitely.
    """

    def __init__(
        self,
        builder: RequestBuilder,
        opener: Optional[PopupOpener] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self._builder = builder
        self._opener = opener
        self._timeout = timeout

    @property
    def grant(self) -> AuthorizationGrant:
        return AuthorizationGrant.AUTHORIZATION_CODE_LOGIN_PAGE

    def request_code(
        self, client_id: str, redirect_uri: str, options: LoginOptions
    ) -> str:
        url = self._builder.authorization_url(
            client_id, redirect_uri, options.version, options.scope
        )
        if self._opener is None:
            raise AuthorizationError(
                "No popup is available.",
                f"Unable to login using authorization grant {self.grant.value}.",
            )

        attempt = PopupAttempt(redirect_uri)
        logger.debug("Opening login popup for client %s", client_id)
        attempt.start(self._opener(url))
        return attempt.wait(self._timeout)


class CredentialGrantStrategy(GrantStrategy):
    """Obtain the code by posting the user's credentials to a temp login URL.

    Args:
        builder: Builds the temp-login-URL and code requests.
        executor: Sends them.
    """

    def __init__(self, builder: RequestBuilder, executor: HttpExecutor) -> None:
        self._builder = builder
        self._executor = executor

    @property
    def grant(self) -> AuthorizationGrant:
        return AuthorizationGrant.AUTHORIZATION_CODE_API

    def request_code(
        self, client_id: str, redirect_uri: str, options: LoginOptions
    ) -> str:
        login_url = self.request_temp_login_url(client_id, redirect_uri, options)
        return self.request_code_with_url(login_url, client_id, redirect_uri, options)

    def request_temp_login_url(
        self, client_id: str, redirect_uri: str, options: LoginOptions
    ) -> str:
        """Ask the authorization server for a short-lived login URL."""
        request = self._builder.temp_login_url_request(
            client_id, redirect_uri, options.version, options.properties
        )
        response = self._executor.execute(request)
        data = response.data if isinstance(response.data, dict) else {}
        login_url = data.get("temp_login_uri")
        if not login_url:
            raise AuthorizationError(
                "Unable to start a login session.",
                "The authorization server did not return a temp_login_uri.",
            )
        return login_url

    def request_code_with_url(
        self,
        login_url: str,
        client_id: str,
        redirect_uri: str,
        options: LoginOptions,
    ) -> str:
        """Post the user's credentials to *login_url* and read back the code."""
        password = options.password.get_secret_value() if options.password else None
        request = self._builder.code_request(
            login_url,
            client_id,
            redirect_uri,
            options.username,
            password,
            options.scope,
            options.properties,
        )
        response = self._executor.execute(request)

        location = response.get_header("location")
        if not location:
            raise AuthorizationError(
                f"Unable to authorize user with username {options.username}.",
                "A location header was not provided with a code to exchange for an auth token.",
            )

        query = parse_qs(urlsplit(location).query)
        codes = query.get("code")
        if not codes and query.get("error"):
            description = query.get("error_description", [None])[0]
            raise AuthorizationError(query["error"][0], description)
        if not codes:
            raise AuthorizationError(
                f"Unable to authorize user with username {options.username}.",
                "The location header did not contain a code to exchange for an auth token.",
            )
        return codes[0]
