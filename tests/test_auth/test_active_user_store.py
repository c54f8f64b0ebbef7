"""Tests for active-session persistence."""

from __future__ import annotations

import json
import os
import stat
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from micflow.auth.credential_store import (
    ActiveUserStore,
    FileKeyValueStore,
    MemoryKeyValueStore,
    get_active_user,
    set_active_user,
)
from micflow.exceptions import PersistenceError
from micflow.models import ClientConfig, MicSettings, Session


@pytest.fixture
def memory_store() -> ActiveUserStore:
    return ActiveUserStore(MemoryKeyValueStore())


class _FailingStore:
    def get(self, key: str) -> Any:
        raise RuntimeError("store offline")

    def set(self, key: str, value: Any) -> bool:
        raise PersistenceError("disk full")

    def remove(self, key: str) -> bool:
        raise PersistenceError("read-only")


class TestActiveUserStore:
    def test_key(self, memory_store: ActiveUserStore, client_config: ClientConfig) -> None:
        assert memory_store.key_for(client_config) == "kid_app_active_user"

    def test_custom_collection_name(self, client_config: ClientConfig) -> None:
        store = ActiveUserStore(MemoryKeyValueStore(), "_session")
        assert store.key_for(client_config) == "kid_app_session"

    def test_set_then_get(self, memory_store: ActiveUserStore, client_config: ClientConfig) -> None:
        assert memory_store.set_active_user(client_config, {"token": "t"}) is True
        assert memory_store.get_active_user(client_config) == {"token": "t"}

    def test_set_none_removes(self, memory_store: ActiveUserStore, client_config: ClientConfig) -> None:
        memory_store.set_active_user(client_config, {"token": "t"})
        assert memory_store.set_active_user(client_config, None) is True
        assert memory_store.get_active_user(client_config) is None

    @pytest.mark.parametrize("falsy", [None, {}, ""])
    def test_falsy_removes(self, client_config: ClientConfig, falsy: Any) -> None:
        kv = MagicMock()
        ActiveUserStore(kv).set_active_user(client_config, falsy)
        kv.remove.assert_called_once_with("kid_app_active_user")
        kv.set.assert_not_called()

    def test_session_is_dumped(self, memory_store: ActiveUserStore, client_config: ClientConfig) -> None:
        session = Session(access_token="tok", client_id="kid_app", refresh_token="r")
        memory_store.set_active_user(client_config, session)
        stored = memory_store.get_active_user(client_config)
        assert stored["access_token"] == "tok"
        assert stored["refresh_token"] == "r"

    def test_write_failure_returns_false(self, client_config: ClientConfig) -> None:
        store = ActiveUserStore(_FailingStore())
        assert store.set_active_user(client_config, {"token": "t"}) is False

    def test_remove_failure_returns_false(self, client_config: ClientConfig) -> None:
        store = ActiveUserStore(_FailingStore())
        assert store.set_active_user(client_config, None) is False

    def test_read_failure_returns_none(self, client_config: ClientConfig) -> None:
        store = ActiveUserStore(_FailingStore())
        assert store.get_active_user(client_config) is None

    def test_store_returning_false(self, client_config: ClientConfig) -> None:
        kv = MagicMock()
        kv.set.return_value = False
        assert ActiveUserStore(kv).set_active_user(client_config, {"token": "t"}) is False

    def test_accepts_settings(self, memory_store: ActiveUserStore) -> None:
        settings = MicSettings(app_key="kid_app")
        memory_store.set_active_user(settings, {"token": "t"})
        assert memory_store.key_for(settings) == "kid_app_active_user"
        assert memory_store.get_active_user(settings) == {"token": "t"}


class TestFileKeyValueStore:
    def test_get_missing(self, tmp_path: Path) -> None:
        assert FileKeyValueStore(tmp_path).get("nope") is None

    def test_set_and_get(self, tmp_path: Path) -> None:
        store = FileKeyValueStore(tmp_path)
        store.set("kid_app_active_user", {"access_token": "tok"})
        assert store.get("kid_app_active_user") == {"access_token": "tok"}

    def test_file_permissions(self, tmp_path: Path) -> None:
        store = FileKeyValueStore(tmp_path)
        store.set("key", {"a": 1})
        mode = stat.S_IMODE(os.stat(store.path_for("key")).st_mode)
        assert mode == 0o600

    def test_unsafe_key_characters(self, tmp_path: Path) -> None:
        store = FileKeyValueStore(tmp_path)
        path = store.path_for("../evil/key")
        assert path.parent == tmp_path
        assert path.name == ".._evil_key.json"

    def test_remove(self, tmp_path: Path) -> None:
        store = FileKeyValueStore(tmp_path)
        store.set("key", {"a": 1})
        assert store.remove("key") is True
        assert store.remove("key") is False
        assert store.get("key") is None

    def test_corrupt_record_ignored(self, tmp_path: Path) -> None:
        store = FileKeyValueStore(tmp_path)
        store.path_for("key").write_text("{not json")
        assert store.get("key") is None

    def test_unserialisable_value(self, tmp_path: Path) -> None:
        with pytest.raises(PersistenceError):
            FileKeyValueStore(tmp_path).set("key", {"obj": object()})

    def test_default_directory(self, isolated_config: Path) -> None:
        store = FileKeyValueStore()
        store.set("key", {"a": 1})
        expected = isolated_config / "data" / "micflow" / "credentials" / "key.json"
        assert json.loads(expected.read_text()) == {"a": 1}


class TestModuleFunctions:
    def test_default_store_uses_settings(
        self, isolated_config: Path, client_config: ClientConfig, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("MICFLOW_USER_COLLECTION_NAME", "_me")

        assert set_active_user(client_config, {"token": "t"}) is True
        assert get_active_user(client_config) == {"token": "t"}
        assert (isolated_config / "data" / "micflow" / "credentials" / "kid_app_me.json").is_file()

        assert set_active_user(client_config, None) is True
        assert get_active_user(client_config) is None

    def test_explicit_store(self, client_config: ClientConfig, memory_store: ActiveUserStore) -> None:
        set_active_user(client_config, {"token": "t"}, store=memory_store)
        assert get_active_user(client_config, store=memory_store) == {"token": "t"}

    def test_invalid_config_falls_back(self, isolated_config: Path, client_config: ClientConfig) -> None:
        (isolated_config / "micflow.json").write_text("[not an object]")
        assert get_active_user(client_config) is None
        assert set_active_user(client_config, {"token": "t"}) is True
        assert (isolated_config / "data" / "micflow" / "credentials" / "kid_app_active_user.json").is_file()
