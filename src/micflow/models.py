"""Canonical Pydantic models shared across all micflow modules.

Every other module imports its data shapes from here. The models fall into
three groups:

**Configuration models** -- :class:`MicSettings` is serialised as JSON in the
user's config directory, :class:`ClientConfig` is the immutable per-session
view handed to the login flow.

**Login models** -- :class:`AuthorizationGrant`, :class:`LoginOptions` and
:class:`Session`.

**Deploy models** -- consumed and produced by
:class:`~micflow.deploy.helper.DeployCommandHelper`: :class:`DeviceInfo`,
:class:`DeviceInstance`, :class:`DeviceInitOptions`, :class:`DeployOptions`,
:class:`BuildConfig`, :class:`OutputDirectoryQuery` and :class:`SyncInfo`.
"""

from __future__ import annotations

import enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, SecretStr


# --- Configuration ---


DEFAULT_AUTH_PATHNAME = "/oauth/auth"
DEFAULT_TOKEN_PATHNAME = "/oauth/token"
DEFAULT_USER_COLLECTION_NAME = "_active_user"
DEFAULT_API_VERSION = 3


class MicSettings(BaseModel):
    """Persistent settings for talking to a Mobile Identity Connect service.

    Stored as ``config.json`` in the XDG config directory and layered with
    project-local config, environment variables and CLI flags by
    :func:`~micflow.config.resolve_settings`. The app secret itself is never
    stored here -- only a *source descriptor* (``env:VAR``, ``file:/path``,
    ``prompt``) telling :func:`~micflow.config.resolve_credential` where to
    read it from.

    Example::

        MicSettings(
            app_key="kid_abc123",
            app_secret_source="env:MICFLOW_APP_SECRET",
            mic_host="auth.example.com",
        )
    """

    app_key: Optional[str] = Field(default=None, description="Application key (client id)")
    app_secret_source: str = Field(
        default="env:MICFLOW_APP_SECRET",
        description="Credential source for the app secret: env:VAR, file:/path, prompt",
    )
    mic_protocol: str = Field(default="https", description="Scheme of the MIC service")
    mic_host: Optional[str] = Field(default=None, description="Host (and port) of the MIC service")
    auth_pathname: str = DEFAULT_AUTH_PATHNAME
    token_pathname: str = DEFAULT_TOKEN_PATHNAME
    user_collection_name: str = Field(
        default=DEFAULT_USER_COLLECTION_NAME,
        description="Suffix appended to the app key to form the active-user storage key",
    )
    default_version: Union[int, str] = DEFAULT_API_VERSION
    timeout: float = Field(default=30.0, ge=0)
    verify_ssl: bool = True


class ClientConfig(BaseModel):
    """Immutable credentials and endpoint of one application.

    ``app_secret`` is a :class:`~pydantic.SecretStr`: it renders as
    ``**********`` in ``repr``, logs and JSON dumps, and is only revealed
    when a Basic credential is computed at send time.
    """

    model_config = ConfigDict(frozen=True)

    app_key: str = Field(min_length=1)
    app_secret: SecretStr
    mic_protocol: str = "https"
    mic_host: str = Field(min_length=1)


# --- Login ---


class AuthorizationGrant(str, enum.Enum):
    """Closed set of Mobile Identity Connect authorization grants.

    ``AUTHORIZATION_CODE_LOGIN_PAGE`` obtains the code through an
    interactive popup; ``AUTHORIZATION_CODE_API`` posts username and
    password to a temporary login URL instead.
    """

    AUTHORIZATION_CODE_LOGIN_PAGE = "AuthorizationCodeLoginPage"
    AUTHORIZATION_CODE_API = "AuthorizationCodeAPI"


class LoginOptions(BaseModel):
    """Caller-supplied options for one login attempt."""

    mic_id: Optional[str] = Field(
        default=None, description="Sub-tenant id appended to the app key as 'app_key.mic_id'"
    )
    version: Union[int, str] = Field(
        default=DEFAULT_API_VERSION, description="API version path segment, e.g. 3 or 'v3'"
    )
    username: Optional[str] = None
    password: Optional[SecretStr] = None
    scope: str = "openid"
    properties: Optional[dict[str, Any]] = Field(
        default=None, description="Custom request properties forwarded as a header"
    )


class Session(BaseModel):
    """Result of a successful authorization-code exchange.

    Holds the raw token response (``access_token`` plus whatever else the
    server returned, preserved as extra fields) decorated with the
    ``client_id``, ``redirect_uri``, ``protocol`` and ``host`` needed to
    rebuild the session later.
    """

    model_config = ConfigDict(extra="allow")

    access_token: str
    client_id: Optional[str] = None
    redirect_uri: Optional[str] = None
    protocol: Optional[str] = None
    host: Optional[str] = None


# --- Deploy ---


class DeviceInfo(BaseModel):
    identifier: str
    platform: str


class DeviceInstance(BaseModel):
    """A connected device or running emulator reported by the device service."""

    device_info: DeviceInfo
    is_emulator: bool = False


class DeviceInitOptions(BaseModel):
    """Arguments passed to ``DeviceService.initialize``."""

    device_id: Optional[str] = None
    platform: Optional[str] = None
    emulator: bool = False
    skip_infer_platform: bool = False
    sdk: Optional[str] = None


class DeployOptions(BaseModel):
    """Command-line options that drive a deploy.

    Extra keys are allowed so that the same object can be forwarded as the
    per-device ``debug_options``.
    """

    model_config = ConfigDict(extra="allow")

    device: Optional[str] = None
    emulator: bool = False
    sdk: Optional[str] = None
    path: Optional[str] = None
    clean: bool = False
    release: bool = False
    watch: bool = True
    hmr: bool = False
    force: bool = False
    timeout: Optional[str] = None
    env: dict[str, Any] = Field(default_factory=dict)
    team_id: Optional[str] = None
    provision: Optional[str] = None
    icloud_container_environment: Optional[str] = None
    key_store_alias: Optional[str] = None
    key_store_path: Optional[str] = None
    key_store_alias_password: Optional[SecretStr] = None
    key_store_password: Optional[SecretStr] = None


class BuildConfig(BaseModel):
    """Per-device build configuration handed to the build service."""

    build_for_device: bool
    project_dir: Optional[str] = None
    clean: bool = False
    release: bool = False
    device: Optional[str] = None
    team_id: Optional[str] = None
    provision: Optional[str] = None
    icloud_container_environment: Optional[str] = None
    key_store_alias: Optional[str] = None
    key_store_path: Optional[str] = None
    key_store_alias_password: Optional[SecretStr] = None
    key_store_password: Optional[SecretStr] = None


class OutputDirectoryQuery(BaseModel):
    platform: str
    emulator: bool
    project_dir: str


class SyncInfo(BaseModel):
    """Project-level sync configuration passed to ``deploy_on_devices``."""

    project_dir: str
    skip_watcher: bool
    clean: bool = False
    release: bool = False
    env: dict[str, Any] = Field(default_factory=dict)
    timeout: Optional[str] = None
    use_hot_module_reload: bool = False
    force: bool = False
    emulator: bool = False
