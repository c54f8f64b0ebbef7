"""Tests for the authorization-code strategies."""

from __future__ import annotations

from unittest.mock import MagicMock

import httpx
import pytest
from pydantic import SecretStr

from micflow.auth.request_builder import RequestBuilder
from micflow.auth.strategies import CredentialGrantStrategy, PopupGrantStrategy
from micflow.client.executor import HttpExecutor, HttpResponse
from micflow.exceptions import AuthorizationError, NetworkError
from micflow.models import AuthorizationGrant, ClientConfig, LoginOptions

REDIRECT = "app://callback"
TEMP_URL = "https://auth.example.com/v3/oauth/authenticate/temp123"


def _response(data=None, headers=None, status_code: int = 200) -> HttpResponse:
    return HttpResponse(status_code=status_code, data=data, headers=httpx.Headers(headers or {}))


@pytest.fixture
def builder(client_config: ClientConfig) -> RequestBuilder:
    return RequestBuilder(client_config)


@pytest.fixture
def executor() -> MagicMock:
    return MagicMock(spec=HttpExecutor)


# ---------------------------------------------------------------------------
# Popup strategy
# ---------------------------------------------------------------------------


class TestPopupGrantStrategy:
    def test_grant(self, builder: RequestBuilder) -> None:
        assert PopupGrantStrategy(builder).grant is AuthorizationGrant.AUTHORIZATION_CODE_LOGIN_PAGE

    def test_opens_authorization_url(self, builder: RequestBuilder, fake_popup_factory) -> None:
        opener = fake_popup_factory(f"{REDIRECT}?code=ABC123")
        strategy = PopupGrantStrategy(builder, opener, timeout=1)

        code = strategy.request_code("kid_app", REDIRECT, LoginOptions(version="v2"))

        assert code == "ABC123"
        assert len(opener.opened) == 1
        assert opener.opened[0].url.startswith("https://auth.example.com/v2/oauth/auth?")
        assert "client_id=kid_app" in opener.opened[0].url

    def test_error_redirect(self, builder: RequestBuilder, fake_popup_factory) -> None:
        opener = fake_popup_factory(f"{REDIRECT}?error=access_denied")
        strategy = PopupGrantStrategy(builder, opener, timeout=1)

        with pytest.raises(AuthorizationError) as exc_info:
            strategy.request_code("kid_app", REDIRECT, LoginOptions())
        assert exc_info.value.error == "access_denied"

    def test_no_opener(self, builder: RequestBuilder) -> None:
        strategy = PopupGrantStrategy(builder)
        with pytest.raises(AuthorizationError, match="No popup is available"):
            strategy.request_code("kid_app", REDIRECT, LoginOptions())


# ---------------------------------------------------------------------------
# Direct-credential strategy
# ---------------------------------------------------------------------------


def _login_options() -> LoginOptions:
    return LoginOptions(username="alice", password=SecretStr("s3cret"))


class TestCredentialGrantStrategy:
    def test_grant(self, builder: RequestBuilder, executor: MagicMock) -> None:
        strategy = CredentialGrantStrategy(builder, executor)
        assert strategy.grant is AuthorizationGrant.AUTHORIZATION_CODE_API

    def test_location_code(self, builder: RequestBuilder, executor: MagicMock) -> None:
        executor.execute.side_effect = [
            _response({"temp_login_uri": TEMP_URL}),
            _response(headers={"Location": "https://host/cb?code=XYZ"}, status_code=302),
        ]
        strategy = CredentialGrantStrategy(builder, executor)

        assert strategy.request_code("kid_app", REDIRECT, _login_options()) == "XYZ"

        temp_request, code_request = (call.args[0] for call in executor.execute.call_args_list)
        assert temp_request.url == "https://auth.example.com/v3/oauth/auth"
        assert code_request.url == TEMP_URL
        assert code_request.follow_redirects is False
        assert code_request.body["username"] == "alice"
        assert code_request.body["password"] == "s3cret"

    def test_missing_location_names_username(self, builder: RequestBuilder, executor: MagicMock) -> None:
        executor.execute.side_effect = [
            _response({"temp_login_uri": TEMP_URL}),
            _response({"ok": True}),
        ]
        strategy = CredentialGrantStrategy(builder, executor)

        with pytest.raises(AuthorizationError, match="alice") as exc_info:
            strategy.request_code("kid_app", REDIRECT, _login_options())
        assert "location header" in exc_info.value.description

    def test_location_with_error(self, builder: RequestBuilder, executor: MagicMock) -> None:
        executor.execute.return_value = _response(
            headers={"Location": f"{REDIRECT}?error=invalid_credentials&error_description=Bad+password"},
            status_code=302,
        )
        strategy = CredentialGrantStrategy(builder, executor)

        with pytest.raises(AuthorizationError) as exc_info:
            strategy.request_code_with_url(TEMP_URL, "kid_app", REDIRECT, _login_options())
        assert exc_info.value.error == "invalid_credentials"
        assert exc_info.value.description == "Bad password"

    def test_location_without_code(self, builder: RequestBuilder, executor: MagicMock) -> None:
        executor.execute.return_value = _response(headers={"Location": REDIRECT}, status_code=302)
        strategy = CredentialGrantStrategy(builder, executor)

        with pytest.raises(AuthorizationError, match="alice"):
            strategy.request_code_with_url(TEMP_URL, "kid_app", REDIRECT, _login_options())

    def test_missing_temp_login_uri(self, builder: RequestBuilder, executor: MagicMock) -> None:
        executor.execute.return_value = _response({"something": "else"})
        strategy = CredentialGrantStrategy(builder, executor)

        with pytest.raises(AuthorizationError, match="login session"):
            strategy.request_temp_login_url("kid_app", REDIRECT, _login_options())
        assert executor.execute.call_count == 1

    def test_network_error_propagates(self, builder: RequestBuilder, executor: MagicMock) -> None:
        executor.execute.side_effect = NetworkError("HTTP 401: Invalid credentials", status_code=401)
        strategy = CredentialGrantStrategy(builder, executor)

        with pytest.raises(NetworkError) as exc_info:
            strategy.request_code("kid_app", REDIRECT, _login_options())
        assert exc_info.value.status_code == 401
        assert executor.execute.call_count == 1
