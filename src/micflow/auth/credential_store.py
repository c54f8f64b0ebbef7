"""Active-session storage on top of a pluggable key-value store.

The login flow keeps one *active user* record per application, stored under
``f"{app_key}{user_collection_name}"``.  Persistence is delegated to a
:class:`KeyValueStore`; two adapters ship with micflow:

- :class:`FileKeyValueStore` -- one JSON file per key under
  ``~/.local/share/micflow/credentials/`` (XDG) written atomically with
  ``0o600`` permissions.  Used by the CLI.
- :class:`MemoryKeyValueStore` -- a dict, for embedding and tests.

:class:`ActiveUserStore` implements the two operations the rest of the
code relies on.  Writing ``None`` (or any falsy value) logs the user out.
A failed write never breaks a login: it is logged and reported as
``False``.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Optional, Protocol, Union

from pydantic import BaseModel

from micflow.config import atomic_write, get_data_dir, resolve_settings
from micflow.exceptions import ConfigError, PersistenceError
from micflow.models import DEFAULT_USER_COLLECTION_NAME, Session

logger = logging.getLogger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class AppIdentity(Protocol):
    """Anything carrying the app key, e.g. a ClientConfig or MicSettings."""

    app_key: Optional[str]


class KeyValueStore(Protocol):
    """Persistence interface for active-user records."""

    def get(self, key: str) -> Any: ...

    def set(self, key: str, value: Any) -> bool: ...

    def remove(self, key: str) -> bool: ...


class MemoryKeyValueStore:
    """Dict-backed :class:`KeyValueStore`."""

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}

    def get(self, key: str) -> Any:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> bool:
        self._data[key] = value
        return True

    def remove(self, key: str) -> bool:
        return self._data.pop(key, None) is not None


def _credentials_dir() -> Path:
    """Return the credentials directory, creating it if needed."""
    path = get_data_dir() / "credentials"
    path.mkdir(parents=True, exist_ok=True)
    return path


class FileKeyValueStore:
    """JSON-file-per-key :class:`KeyValueStore`.

    Args:
        directory: Where record files live.  Defaults to the credentials
            directory under :func:`~micflow.config.get_data_dir`.

    Example::

        store = FileKeyValueStore()
        store.set("kid_abc_active_user", {"access_token": "tok"})
        assert store.get("kid_abc_active_user") == {"access_token": "tok"}
    """

    def __init__(self, directory: Optional[Path] = None) -> None:
        self._directory = directory

    @property
    def directory(self) -> Path:
        if self._directory is None:
            return _credentials_dir()
        self._directory.mkdir(parents=True, exist_ok=True)
        return self._directory

    def path_for(self, key: str) -> Path:
        """The filesystem path of *key*'s record."""
        return self.directory / f"{_UNSAFE_KEY_CHARS.sub('_', key)}.json"

    def get(self, key: str) -> Any:
        """Return the stored value, or ``None`` if missing or unreadable."""
        path = self.path_for(key)
        if not path.is_file():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, ValueError, OSError):
            logger.warning("Ignoring unreadable record at %s", path)
            return None

    def set(self, key: str, value: Any) -> bool:
        """Persist *value* atomically with ``0o600`` permissions.

        Raises:
            PersistenceError: If the value is not JSON-serialisable or the
                file cannot be written.
        """
        path = self.path_for(key)
        try:
            text = json.dumps(value, indent=2) + "\n"
            atomic_write(path, text, mode=0o600)
        except (TypeError, ValueError, OSError) as exc:
            raise PersistenceError(f"Cannot write record {path.name}: {exc}") from exc
        return True

    def remove(self, key: str) -> bool:
        """Delete *key*'s record; ``False`` when it did not exist.

        Raises:
            PersistenceError: If the file exists but cannot be deleted.
        """
        path = self.path_for(key)
        if not path.is_file():
            return False
        try:
            path.unlink()
        except OSError as exc:
            raise PersistenceError(f"Cannot remove record {path.name}: {exc}") from exc
        return True


ActiveUserData = Union[Session, dict[str, Any], None]


class ActiveUserStore:
    """Get, set and clear the active-session record of an application.

    Args:
        store: The backing :class:`KeyValueStore`.
        collection_name: Suffix appended to the app key to build the
            record key.
    """

    def __init__(
        self,
        store: KeyValueStore,
        collection_name: str = DEFAULT_USER_COLLECTION_NAME,
    ) -> None:
        self._store = store
        self._collection_name = collection_name

    def key_for(self, client: AppIdentity) -> str:
        return f"{client.app_key}{self._collection_name}"

    def get_active_user(self, client: AppIdentity) -> Optional[dict[str, Any]]:
        """Return the stored session record, or ``None``.  Never raises."""
        try:
            return self._store.get(self.key_for(client))
        except Exception:
            logger.warning("Could not read the active user for %s", client.app_key, exc_info=True)
            return None

    def set_active_user(self, client: AppIdentity, data: ActiveUserData) -> bool:
        """Store *data* as the active session, or remove it when falsy.

        Returns:
            ``True`` when the record was written (or removed); ``False``
            when the backing store failed.  A ``False`` result means the
            session was not persisted, not that the login failed.
        """
        key = self.key_for(client)
        if not data:
            try:
                self._store.remove(key)
            except Exception:
                logger.warning("Could not remove the active user for %s", client.app_key, exc_info=True)
                return False
            return True

        value = data.model_dump(mode="json") if isinstance(data, BaseModel) else data
        try:
            result = self._store.set(key, value)
        except Exception:
            logger.warning("Could not persist the active user for %s", client.app_key, exc_info=True)
            return False
        return result is not False


def _default_store() -> ActiveUserStore:
    try:
        collection_name = resolve_settings().user_collection_name
    except ConfigError:
        logger.warning("Invalid configuration, using the default active-user key suffix")
        collection_name = DEFAULT_USER_COLLECTION_NAME
    return ActiveUserStore(FileKeyValueStore(), collection_name)


def get_active_user(
    client: AppIdentity,
    store: Optional[ActiveUserStore] = None,
) -> Optional[dict[str, Any]]:
    """Return the active session for *client*, using the file store by default."""
    return (store or _default_store()).get_active_user(client)


def set_active_user(
    client: AppIdentity,
    data: ActiveUserData,
    store: Optional[ActiveUserStore] = None,
) -> bool:
    """Store or clear the active session for *client*, using the file store by default."""
    return (store or _default_store()).set_active_user(client, data)
