import os

import keyring
import pytest
from keyring.errors import PasswordDeleteError

from secure_cookie_proxy.auth import storage as storage_module
from secure_cookie_proxy.auth.storage import (
    FileCredentialStore,
    KeyringCredentialStore,
    detect_credential_store,
)
from secure_cookie_proxy.config import Settings
from secure_cookie_proxy.exceptions import CredentialStoreError


def test_file_name_is_sanitized(tmp_path):
    store = FileCredentialStore(tmp_path)
    assert store.path_for("API.Example.com:8443/v1") == tmp_path / "api.example.com_8443_v1.txt"


@pytest.mark.asyncio
async def test_file_store_missing_account_returns_none(tmp_path):
    store = FileCredentialStore(tmp_path / "missing")
    assert await store.get("api.example.com") is None


@pytest.mark.asyncio
async def test_file_store_set_creates_directory_and_round_trips(tmp_path):
    directory = tmp_path / ".proxy-cookies"
    store = FileCredentialStore(directory)

    await store.set("api.example.com", "sid=abc")

    cookie_file = directory / "api.example.com.txt"
    assert cookie_file.read_text(encoding="utf-8") == "sid=abc"
    assert await store.get("api.example.com") == "sid=abc"
    if os.name == "posix":
        assert cookie_file.stat().st_mode & 0o777 == 0o600


@pytest.mark.asyncio
async def test_file_store_overwrites(tmp_path):
    store = FileCredentialStore(tmp_path)
    await store.set("acct", "a=1")
    await store.set("acct", "b=2")
    assert await store.get("acct") == "b=2"


@pytest.mark.asyncio
async def test_file_store_delete(tmp_path):
    store = FileCredentialStore(tmp_path)
    await store.set("acct", "a=1")
    assert await store.delete("acct") is True
    assert await store.delete("acct") is False
    assert await store.get("acct") is None


@pytest.mark.asyncio
async def test_file_store_write_failure_raises_store_error(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x")
    store = FileCredentialStore(blocker)

    with pytest.raises(CredentialStoreError):
        await store.set("acct", "a=1")


@pytest.mark.asyncio
async def test_set_cookie_directory(tmp_path):
    store = FileCredentialStore(tmp_path / "one")
    store.set_cookie_directory(tmp_path / "two")
    await store.set("acct", "a=1")
    assert (tmp_path / "two" / "acct.txt").exists()


@pytest.fixture
def fake_keyring(monkeypatch):
    passwords = {}

    def get_password(service, account):
        return passwords.get((service, account))

    def set_password(service, account, value):
        passwords[(service, account)] = value

    def delete_password(service, account):
        if (service, account) not in passwords:
            raise PasswordDeleteError("not found")
        del passwords[(service, account)]

    monkeypatch.setattr(keyring, "get_password", get_password)
    monkeypatch.setattr(keyring, "set_password", set_password)
    monkeypatch.setattr(keyring, "delete_password", delete_password)
    return passwords


@pytest.mark.asyncio
async def test_keyring_store_uses_service_name(fake_keyring):
    store = KeyringCredentialStore("TestService")

    assert await store.get("acct") is None
    await store.set("acct", "sid=abc")

    assert fake_keyring == {("TestService", "acct"): "sid=abc"}
    assert await store.get("acct") == "sid=abc"
    assert await store.delete("acct") is True
    assert await store.delete("acct") is False


@pytest.mark.asyncio
async def test_keyring_failure_raises_store_error(monkeypatch):
    def broken(*args):
        raise RuntimeError("locked")

    monkeypatch.setattr(keyring, "get_password", broken)

    with pytest.raises(CredentialStoreError):
        await KeyringCredentialStore().get("acct")


def test_detect_uses_files_when_keyring_disabled(tmp_path):
    settings = Settings(_env_file=None, use_keyring=False, cookie_dir=tmp_path)
    store = detect_credential_store(settings)
    assert isinstance(store, FileCredentialStore)
    assert store.directory == tmp_path
    assert not store.is_keychain


def test_detect_uses_keyring_when_available(monkeypatch, tmp_path):
    monkeypatch.setattr(storage_module, "keyring_available", lambda: True)
    settings = Settings(_env_file=None, cookie_dir=tmp_path, keyring_service="Svc")
    store = detect_credential_store(settings)
    assert isinstance(store, KeyringCredentialStore)
    assert store.service == "Svc"
    assert store.is_keychain


def test_detect_falls_back_without_usable_backend(monkeypatch, tmp_path):
    monkeypatch.setattr(storage_module, "keyring_available", lambda: False)
    settings = Settings(_env_file=None, cookie_dir=tmp_path)
    assert isinstance(detect_credential_store(settings), FileCredentialStore)
