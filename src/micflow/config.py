"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for micflow:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.micflow/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_data_dir`.
* **Settings** -- A single :class:`~micflow.models.MicSettings` JSON file
  storing the app key, MIC endpoint and path segments.
* **Precedence resolution** -- :func:`resolve_settings` merges CLI flags,
  environment variables, project-local config, and global config into the
  final effective settings, once, at startup.
* **Credential resolution** -- :func:`resolve_credential` reads the app
  secret from an env var, a file, or an interactive prompt.

All file writes use an atomic temp-file-then-rename strategy
(:func:`atomic_write`) to prevent data loss on crash or power failure.
"""

from __future__ import annotations

import getpass
import json
import os
import platform
import sys
import tempfile
from pathlib import Path
from typing import Any, Optional

from pydantic import SecretStr

from micflow.exceptions import ConfigError
from micflow.models import ClientConfig, MicSettings

_APP_NAME = "micflow"
_CONFIG_FILENAME = "config.json"
_PROJECT_CONFIG_FILENAME = "micflow.json"

# Environment variable -> MicSettings field.
ENV_OVERRIDES: dict[str, str] = {
    "MICFLOW_APP_KEY": "app_key",
    "MICFLOW_APP_SECRET_SOURCE": "app_secret_source",
    "MICFLOW_MIC_PROTOCOL": "mic_protocol",
    "MICFLOW_MIC_HOST": "mic_host",
    "MICFLOW_MIC_AUTH_PATHNAME": "auth_pathname",
    "MICFLOW_MIC_TOKEN_PATHNAME": "token_pathname",
    "MICFLOW_USER_COLLECTION_NAME": "user_collection_name",
}


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/micflow/`` (default ``~/.config/micflow/``).
    On macOS/Windows: ``~/.micflow/``.

    Returns:
        Absolute path to the configuration directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        base = _xdg_base("XDG_CONFIG_HOME", (".config",))
        path = base / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (sessions, crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/micflow/`` (default ``~/.local/share/micflow/``).
    On macOS/Windows: ``~/.micflow/data/``.

    Returns:
        Absolute path to the data directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        base = _xdg_base("XDG_DATA_HOME", (".local", "share"))
        path = base / _APP_NAME
    else:
        path = _fallback_base_dir() / "data"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def atomic_write(path: Path, data: str, mode: Optional[int] = None) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is guaranteed to be an atomic rename on POSIX systems.
    On any failure the temp file is cleaned up and the error re-raised.

    Args:
        path: Destination file.
        data: Text content.
        mode: Optional permission bits applied to the temp file before any
            content is written (e.g. ``0o600`` for secrets).
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        if mode is not None:
            os.chmod(tmp_path, mode)
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close in finally
        os.replace(tmp_path, path)
    except BaseException:
        # Clean up the temp file on any error (including KeyboardInterrupt).
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Global settings ---


def settings_path() -> Path:
    """Path to the global settings file."""
    return get_config_dir() / _CONFIG_FILENAME


def load_settings() -> MicSettings:
    """Load the global settings from the XDG config directory.

    Returns:
        The deserialised :class:`~micflow.models.MicSettings`. If the file
        does not exist, a default instance is returned.

    Raises:
        ConfigError: If the file exists but contains invalid JSON or fails
            Pydantic validation.
    """
    path = settings_path()
    if not path.is_file():
        return MicSettings()
    try:
        text = path.read_text(encoding="utf-8")
        data = json.loads(text)
        return MicSettings.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid config at {path}: {exc}") from exc


def save_settings(settings: MicSettings) -> None:
    """Persist the global settings atomically to disk.

    Args:
        settings: The settings to save.
    """
    data = settings.model_dump(mode="json")
    atomic_write(settings_path(), json.dumps(data, indent=2) + "\n")


# --- Project-local config ---


def load_project_config() -> Optional[dict[str, Any]]:
    """Load project-local configuration from ``./micflow.json``.

    Lets a mobile project pin its own app key and MIC host without
    touching the user's global settings.

    Returns:
        The parsed JSON as a dict, or ``None`` if the file does not exist.

    Raises:
        ConfigError: If the file exists but contains invalid JSON or is
            not an object.
    """
    path = Path.cwd() / _PROJECT_CONFIG_FILENAME
    if not path.is_file():
        return None
    try:
        text = path.read_text(encoding="utf-8")
        data = json.loads(text)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid project config at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid project config at {path}: expected a JSON object")
    return data


# --- Precedence resolution ---


def resolve_settings(cli_overrides: Optional[dict[str, Any]] = None) -> MicSettings:
    """Resolve settings with the full precedence chain.

    Precedence (high to low):
        1. CLI flags (``cli_overrides``; ``None`` values are ignored)
        2. Environment variables (see :data:`ENV_OVERRIDES`)
        3. Project config (``./micflow.json``)
        4. User config (``~/.config/micflow/config.json``)
        5. Defaults

    Settings are resolved once; the login flow never re-reads the
    environment per call.

    Returns:
        The effective :class:`~micflow.models.MicSettings`.

    Raises:
        ConfigError: If any layer is invalid.
    """
    # 5 + 4
    merged = load_settings().model_dump()

    # 3
    project = load_project_config()
    if project is not None:
        merged.update({k: v for k, v in project.items() if k in MicSettings.model_fields})

    # 2
    for var, field_name in ENV_OVERRIDES.items():
        value = os.environ.get(var)
        if value:
            merged[field_name] = value

    # 1
    if cli_overrides:
        merged.update({k: v for k, v in cli_overrides.items() if v is not None})

    try:
        return MicSettings.model_validate(merged)
    except ValueError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc


# --- Credential source resolution ---


def resolve_credential(source: str) -> str:
    """Resolve a credential from its source descriptor.

    Supported formats:
        - ``"env:VAR_NAME"`` -- reads ``os.environ["VAR_NAME"]``
        - ``"file:/path/to/file"`` -- reads file content, stripped of whitespace
        - ``"prompt"`` -- prompts user interactively (requires a TTY)

    Args:
        source: The source descriptor string.

    Returns:
        The resolved credential string.

    Raises:
        ConfigError: If the source can't be resolved.
    """
    if source.startswith("env:"):
        var_name = source[4:]
        value = os.environ.get(var_name)
        if value is None:
            raise ConfigError(
                f"Environment variable '{var_name}' is not set (source: {source})"
            )
        return value

    if source.startswith("file:"):
        file_path = source[5:]
        path = Path(file_path).expanduser()
        if not path.is_file():
            raise ConfigError(f"Credential file not found: {path} (source: {source})")
        try:
            return path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise ConfigError(f"Cannot read credential file {path}: {exc}") from exc

    if source == "prompt":
        if not sys.stdin.isatty():
            raise ConfigError(
                "Cannot prompt for credentials: stdin is not a TTY (source: prompt)"
            )
        return getpass.getpass("App secret: ")

    raise ConfigError(f"Unknown credential source format: {source}")


def build_client_config(settings: MicSettings) -> ClientConfig:
    """Build the immutable :class:`~micflow.models.ClientConfig` for a login.

    Args:
        settings: Resolved settings.

    Returns:
        A frozen client config with the app secret wrapped in ``SecretStr``.

    Raises:
        ConfigError: If the app key or MIC host is missing, or the app
            secret source cannot be resolved.
    """
    if not settings.app_key:
        raise ConfigError(
            "No app key configured. Set MICFLOW_APP_KEY or run "
            "'micflow config set app_key <key>'."
        )
    if not settings.mic_host:
        raise ConfigError(
            "No MIC host configured. Set MICFLOW_MIC_HOST or run "
            "'micflow config set mic_host <host>'."
        )
    secret = resolve_credential(settings.app_secret_source)
    return ClientConfig(
        app_key=settings.app_key,
        app_secret=SecretStr(secret),
        mic_protocol=settings.mic_protocol,
        mic_host=settings.mic_host,
    )
