"""Session commands -- log in, log out, and inspect the active session.

Provides the top-level ``micflow login``, ``micflow logout`` and
``micflow whoami`` commands.  A terminal has no popup surface, so the CLI
defaults to the ``AuthorizationCodeAPI`` grant (username and password
posted to a temporary login URL).

Typical workflow::

    micflow config set app_key kid_abc123
    micflow config set mic_host auth.example.com
    export MICFLOW_APP_SECRET=...
    micflow login app://callback -u alice
    micflow whoami
    micflow logout
"""

from __future__ import annotations

from typing import Any, Optional

import typer

from micflow.exceptions import AuthorizationError, ConfigError, MicflowError
from micflow.models import AuthorizationGrant, MicSettings
from micflow.output import error, info, print_record, success, suggest, warning

_SECRET_FIELDS = ("access_token", "refresh_token", "id_token")


def _mask(value: Any) -> str:
    text = str(value)
    if len(text) <= 8:
        return "****"
    return f"{text[:4]}****"


def _masked(record: dict[str, Any], show_token: bool) -> dict[str, Any]:
    if show_token:
        return dict(record)
    return {
        key: _mask(value) if key in _SECRET_FIELDS and value else value
        for key, value in record.items()
    }


def _settings(app_key: Optional[str] = None, mic_host: Optional[str] = None) -> MicSettings:
    from micflow.config import resolve_settings

    return resolve_settings({"app_key": app_key, "mic_host": mic_host})


def _active_user_store(settings: MicSettings):  # noqa: ANN202
    from micflow.auth.credential_store import ActiveUserStore, FileKeyValueStore

    return ActiveUserStore(FileKeyValueStore(), settings.user_collection_name)


def _require_app_key(settings: MicSettings) -> MicSettings:
    if not settings.app_key:
        raise ConfigError(
            "No app key configured. Set MICFLOW_APP_KEY or run "
            "'micflow config set app_key <key>'."
        )
    return settings


def login_command(
    ctx: typer.Context,
    redirect_uri: str = typer.Argument(help="Redirect URI registered for the app."),
    grant: str = typer.Option(
        AuthorizationGrant.AUTHORIZATION_CODE_API.value,
        "--grant",
        "-g",
        help="Authorization grant: AuthorizationCodeAPI or AuthorizationCodeLoginPage.",
    ),
    username: Optional[str] = typer.Option(None, "--username", "-u", help="Username."),
    password: Optional[str] = typer.Option(
        None, "--password", help="Password (prompted when omitted)."
    ),
    mic_id: Optional[str] = typer.Option(
        None, "--mic-id", help="Auth service id, scopes the client id to 'app_key.mic_id'."
    ),
    api_version: Optional[str] = typer.Option(
        None, "--api-version", help="MIC API version, e.g. 3 or v3."
    ),
    app_key: Optional[str] = typer.Option(None, "--app-key", help="Override the app key."),
    mic_host: Optional[str] = typer.Option(None, "--mic-host", help="Override the MIC host."),
    show_token: bool = typer.Option(
        False, "--show-token", help="Print the access token instead of masking it."
    ),
) -> None:
    """Log in with Mobile Identity Connect and store the session.

    The session is saved as the active user of the app.  If it cannot be
    saved the login still succeeds and a warning is printed.

    Example::

        micflow login app://callback -u alice
        micflow login app://callback -u alice --mic-id partner --api-version 2
    """
    from pydantic import SecretStr

    from micflow.auth.mic import MobileIdentityConnect
    from micflow.client.executor import HttpExecutor
    from micflow.config import build_client_config
    from micflow.models import LoginOptions

    no_input = ctx.obj.get("no_input", False) if ctx.obj else False

    try:
        settings = _settings(app_key, mic_host)
        client = build_client_config(settings)

        is_api_grant = grant == AuthorizationGrant.AUTHORIZATION_CODE_API.value
        if is_api_grant and username is None:
            if no_input:
                error("--username is required with --no-input.")
                raise typer.Exit(code=2)
            username = typer.prompt("Username")
        if is_api_grant and password is None:
            if no_input:
                error("--password is required with --no-input.")
                raise typer.Exit(code=2)
            password = typer.prompt("Password", hide_input=True)

        options = LoginOptions(
            mic_id=mic_id,
            version=api_version or settings.default_version,
            username=username,
            password=SecretStr(password) if password is not None else None,
        )

        with HttpExecutor(
            client, timeout=settings.timeout, verify_ssl=settings.verify_ssl
        ) as executor:
            mic = MobileIdentityConnect(
                client,
                executor=executor,
                auth_pathname=settings.auth_pathname,
                token_pathname=settings.token_pathname,
            )
            session = mic.login(redirect_uri, grant, options)
    except AuthorizationError as exc:
        error(str(exc))
        if grant == AuthorizationGrant.AUTHORIZATION_CODE_LOGIN_PAGE.value:
            suggest(
                "The login page needs a popup; use "
                f"--grant {AuthorizationGrant.AUTHORIZATION_CODE_API.value} in a terminal."
            )
        raise typer.Exit(code=exc.exit_code) from None
    except MicflowError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    if not _active_user_store(settings).set_active_user(client, session):
        warning("Logged in, but the session could not be saved.")
    success(f"Logged in as client {session.client_id}.")
    print_record(_masked(session.model_dump(mode="json"), show_token))


def logout_command(
    app_key: Optional[str] = typer.Option(None, "--app-key", help="Override the app key."),
) -> None:
    """Remove the stored session of the app.

    Example::

        micflow logout
    """
    try:
        settings = _require_app_key(_settings(app_key))
    except MicflowError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    if not _active_user_store(settings).set_active_user(settings, None):
        error("The stored session could not be removed.")
        raise typer.Exit(code=1)
    success("Logged out.")


def whoami_command(
    app_key: Optional[str] = typer.Option(None, "--app-key", help="Override the app key."),
    show_token: bool = typer.Option(
        False, "--show-token", help="Print the access token instead of masking it."
    ),
) -> None:
    """Show the stored session of the app.

    Example::

        micflow whoami --json
    """
    try:
        settings = _require_app_key(_settings(app_key))
    except MicflowError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    record = _active_user_store(settings).get_active_user(settings)
    if not record:
        info("Not logged in.")
        suggest("Log in: micflow login <redirect-uri> -u <username>")
        raise typer.Exit(code=1)
    print_record(_masked(record, show_token) if isinstance(record, dict) else record)
