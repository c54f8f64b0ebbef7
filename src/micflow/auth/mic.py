"""Mobile Identity Connect login orchestrator.

:class:`MobileIdentityConnect` sequences one login attempt:

1. validate the redirect URI;
2. derive the client id (``app_key`` or ``app_key.mic_id``);
3. dispatch to the :class:`~micflow.auth.strategies.GrantStrategy`
   registered for the requested grant to obtain a code;
4. exchange the code for a token;
5. decorate the token with ``client_id``, ``redirect_uri``, ``protocol``
   and ``host`` and return it as a :class:`~micflow.models.Session`.

Steps run strictly in order and every failure reaches the caller
unwrapped.  Nothing is retried: a failed interactive login is not
transient and the user has to try again.

Typical usage::

    from micflow.auth.mic import MobileIdentityConnect

    mic = MobileIdentityConnect(client_config, popup_opener=open_webview)
    session = mic.login("app://callback")
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Union

from micflow.auth.popup import PopupOpener
from micflow.auth.request_builder import RequestBuilder
from micflow.auth.strategies import (
    CredentialGrantStrategy,
    GrantStrategy,
    PopupGrantStrategy,
)
from micflow.client.executor import HttpExecutor
from micflow.exceptions import AuthorizationError, UnsupportedGrantError, ValidationError
from micflow.models import (
    DEFAULT_AUTH_PATHNAME,
    DEFAULT_TOKEN_PATHNAME,
    AuthorizationGrant,
    ClientConfig,
    LoginOptions,
    Session,
)

logger = logging.getLogger(__name__)

IDENTITY = "micAuth"


def parse_grant(value: Union[AuthorizationGrant, str, Any]) -> AuthorizationGrant:
    """Return *value* as an :class:`~micflow.models.AuthorizationGrant`.

    Raises:
        UnsupportedGrantError: If *value* is not one of the grant values.
    """
    if isinstance(value, AuthorizationGrant):
        return value
    try:
        return AuthorizationGrant(value)
    except (ValueError, TypeError):
        raise UnsupportedGrantError(
            value, [grant.value for grant in AuthorizationGrant]
        ) from None


class MobileIdentityConnect:
    """Run MIC authorization-code logins for one application.

    Args:
        client_config: Application credentials and MIC endpoint.
        executor: HTTP executor.  One is created from *client_config* when
            omitted; call :meth:`close` to release it.
        popup_opener: Opens the login page for the
            ``AuthorizationCodeLoginPage`` grant.
        auth_pathname: Path of the authorization endpoint.
        token_pathname: Path of the token endpoint.
        popup_timeout: Optional limit on the popup wait, in seconds.
    """

    identity = IDENTITY

    def __init__(
        self,
        client_config: ClientConfig,
        executor: Optional[HttpExecutor] = None,
        popup_opener: Optional[PopupOpener] = None,
        auth_pathname: str = DEFAULT_AUTH_PATHNAME,
        token_pathname: str = DEFAULT_TOKEN_PATHNAME,
        popup_timeout: Optional[float] = None,
    ) -> None:
        self._client_config = client_config
        self._owns_executor = executor is None
        self._executor = executor or HttpExecutor(client_config)
        self._builder = RequestBuilder(client_config, auth_pathname, token_pathname)
        self._strategies: dict[AuthorizationGrant, GrantStrategy] = {}
        self.register(PopupGrantStrategy(self._builder, popup_opener, popup_timeout))
        self.register(CredentialGrantStrategy(self._builder, self._executor))

    @property
    def client_config(self) -> ClientConfig:
        return self._client_config

    @property
    def builder(self) -> RequestBuilder:
        return self._builder

    def register(self, strategy: GrantStrategy) -> None:
        """Register *strategy* for its grant, replacing any previous one."""
        self._strategies[strategy.grant] = strategy

    def get_strategy(self, grant: Union[AuthorizationGrant, str, Any]) -> GrantStrategy:
        """Return the strategy for *grant*.

        Raises:
            UnsupportedGrantError: If *grant* is not a known grant value or
                has no registered strategy.
        """
        parsed = parse_grant(grant)
        strategy = self._strategies.get(parsed)
        if strategy is None:
            raise UnsupportedGrantError(
                grant, sorted(g.value for g in self._strategies)
            )
        return strategy

    def client_id_for(self, options: LoginOptions) -> str:
        """Return ``app_key``, scoped to ``app_key.mic_id`` when a MIC id is given."""
        if options.mic_id:
            return f"{self._client_config.app_key}.{options.mic_id}"
        return self._client_config.app_key

    def login(
        self,
        redirect_uri: str,
        authorization_grant: Union[AuthorizationGrant, str] = AuthorizationGrant.AUTHORIZATION_CODE_LOGIN_PAGE,
        options: Optional[Union[LoginOptions, dict[str, Any]]] = None,
    ) -> Session:
        """Log a user in and return the decorated session.

        Args:
            redirect_uri: Redirect URI registered for the client.
            authorization_grant: How to obtain the code.
            options: :class:`~micflow.models.LoginOptions` or a dict of its
                fields.

        Returns:
            The :class:`~micflow.models.Session`.

        Raises:
            ValidationError: If *redirect_uri* is not a non-empty string
                or *options* are invalid.
            UnsupportedGrantError: If *authorization_grant* is unknown.
            AuthorizationError: If no code or token could be obtained.
            NetworkError: If an HTTP step fails.
        """
        if not isinstance(redirect_uri, str) or not redirect_uri:
            raise ValidationError("A redirect_uri is required and must be a string.")
        options = _coerce_options(options)
        client_id = self.client_id_for(options)
        strategy = self.get_strategy(authorization_grant)

        logger.debug("Requesting authorization code with grant %s", strategy.grant.value)
        code = strategy.request_code(client_id, redirect_uri, options)

        token = self.request_token(code, client_id, redirect_uri, options)
        return Session.model_validate({
            **token,
            "client_id": client_id,
            "redirect_uri": redirect_uri,
            "protocol": self._client_config.mic_protocol,
            "host": self._client_config.mic_host,
        })

    def request_token(
        self,
        code: str,
        client_id: str,
        redirect_uri: str,
        options: Optional[LoginOptions] = None,
    ) -> dict[str, Any]:
        """Exchange an authorization code for the raw token response.

        Raises:
            AuthorizationError: If the response has no ``access_token``.
            NetworkError: If the request fails.
        """
        properties = options.properties if options else None
        request = self._builder.token_request(code, client_id, redirect_uri, properties)
        response = self._executor.execute(request)
        token = response.data
        if not isinstance(token, dict) or not token.get("access_token"):
            raise AuthorizationError(
                "Unable to exchange the authorization code for a token.",
                "The token response did not include an access_token.",
            )
        return token

    def close(self) -> None:
        """Close the executor if this instance created it."""
        if self._owns_executor:
            self._executor.close()

    def __enter__(self) -> MobileIdentityConnect:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


def _coerce_options(options: Optional[Union[LoginOptions, dict[str, Any]]]) -> LoginOptions:
    if options is None:
        return LoginOptions()
    if isinstance(options, LoginOptions):
        return options
    try:
        return LoginOptions.model_validate(options)
    except ValueError as exc:
        raise ValidationError(f"Invalid login options: {exc}") from exc


def login(
    client_config: ClientConfig,
    redirect_uri: str,
    authorization_grant: Union[AuthorizationGrant, str] = AuthorizationGrant.AUTHORIZATION_CODE_LOGIN_PAGE,
    options: Optional[Union[LoginOptions, dict[str, Any]]] = None,
    *,
    executor: Optional[HttpExecutor] = None,
    popup_opener: Optional[PopupOpener] = None,
) -> Session:
    """Run a single login with a short-lived :class:`MobileIdentityConnect`.

    See :meth:`MobileIdentityConnect.login` for arguments and errors.
    """
    with MobileIdentityConnect(
        client_config, executor=executor, popup_opener=popup_opener
    ) as mic:
        return mic.login(redirect_uri, authorization_grant, options)
