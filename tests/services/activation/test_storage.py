from __future__ import annotations

import pytest
from cryptography.fernet import Fernet

from devgate.services.activation import JsonFileStore, StorageError, open_secure_store
from devgate.services.activation import keyring as keyring_mod
from devgate.services.activation.keyring import KeyringUnavailableError
from devgate.services.settings import Settings


def test_encrypted_store_hides_values(tmp_path):
    path = tmp_path / "authorization.json"
    kv = JsonFileStore(path, cipher=Fernet(Fernet.generate_key()))
    kv.set_many({"device_id": "machine_secret", "verified": True})

    assert b"machine_secret" not in path.read_bytes()
    assert kv.get("device_id") == "machine_secret"
    assert kv.encrypted is True


def test_delete_many_removes_only_named_keys(kv):
    kv.set_many({"a": 1, "b": 2, "c": 3})
    kv.delete_many(["a", "c"])
    assert kv.snapshot() == {"b": 2}


def test_corrupt_file_raises_storage_error(tmp_path):
    path = tmp_path / "authorization.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(StorageError):
        JsonFileStore(path).get("verified")


def test_write_replaces_unreadable_contents(tmp_path):
    path = tmp_path / "authorization.json"
    path.write_text("[1, 2, 3]", encoding="utf-8")
    kv = JsonFileStore(path)
    kv.set_many({"request_sent": True})
    assert kv.snapshot() == {"request_sent": True}


class _FakeKeyring:
    def __init__(self, stored: str | None = None) -> None:
        self.vault: dict[tuple[str, str], str] = {}
        if stored is not None:
            self.vault[("devgate/activation", "store-key")] = stored

    def get_password(self, service, username):
        return self.vault.get((service, username))

    def set_password(self, service, username, password):
        self.vault[(service, username)] = password


def test_open_secure_store_uses_keyring_key(tmp_path, monkeypatch):
    fake = _FakeKeyring()
    monkeypatch.setattr(keyring_mod, "_backend", lambda: fake)
    settings = Settings(base_dir=tmp_path)

    first = open_secure_store(settings)
    first.set_many({"verified": False})
    second = open_secure_store(settings)

    assert first.encrypted and second.encrypted
    assert first.path == settings.store_path()
    assert second.get("verified") is False
    assert list(fake.vault) == [("devgate/activation", "store-key")]


def test_open_secure_store_falls_back_without_keyring(tmp_path, monkeypatch):
    def _unavailable():
        raise KeyringUnavailableError("system keyring is unavailable")

    monkeypatch.setattr(keyring_mod, "_backend", _unavailable)
    settings = Settings(base_dir=tmp_path)

    kv = open_secure_store(settings)

    assert kv.encrypted is False
    assert kv.path == settings.fallback_store_path()
    kv.set_many({"verified": False})
    assert kv.get("verified") is False


def test_keyring_backend_errors_fall_back(tmp_path, monkeypatch):
    class _Locked(_FakeKeyring):
        def get_password(self, service, username):
            raise RuntimeError("keyring is locked")

    monkeypatch.setattr(keyring_mod, "_backend", _Locked)
    kv = open_secure_store(Settings(base_dir=tmp_path))
    assert kv.encrypted is False


def test_malformed_keyring_key_falls_back(tmp_path, monkeypatch):
    monkeypatch.setattr(keyring_mod, "_backend", lambda: _FakeKeyring("not-a-fernet-key"))
    kv = open_secure_store(Settings(base_dir=tmp_path))
    assert kv.encrypted is False


def test_plain_storage_setting_skips_keyring(tmp_path, monkeypatch):
    def _must_not_run():
        raise AssertionError("keyring should not be consulted")

    monkeypatch.setattr(keyring_mod, "_backend", _must_not_run)
    kv = open_secure_store(Settings(base_dir=tmp_path, plain_storage=True))
    assert kv.encrypted is False
