"""Credential resolution: environment, keyring and in-memory stores."""

from __future__ import annotations

from typing import Any

import keyring.errors
import pytest

from conductor.config import settings_for
from conductor.credentials import (
    ChainedCredentialResolver,
    CredentialStore,
    EnvCredentialResolver,
    InMemoryCredentialStore,
    KeyringCredentialStore,
    env_var_names,
)
from conductor.errors import ConfigurationError

pytestmark = pytest.mark.unit


class FakeKeyring:
    """Dict-backed stand-in for the ``keyring`` module API."""

    errors = keyring.errors

    def __init__(self, *, broken: bool = False) -> None:
        self.passwords: dict[tuple[str, str], str] = {}
        self.broken = broken

    def get_password(self, service: str, username: str) -> str | None:
        if self.broken:
            raise keyring.errors.KeyringError("backend locked")
        return self.passwords.get((service, username))

    def set_password(self, service: str, username: str, password: str) -> None:
        if self.broken:
            raise keyring.errors.PasswordSetError("backend locked")
        self.passwords[(service, username)] = password

    def delete_password(self, service: str, username: str) -> None:
        if (service, username) not in self.passwords:
            raise keyring.errors.PasswordDeleteError("not found")
        del self.passwords[(service, username)]


@pytest.fixture
def fake_keyring(monkeypatch: pytest.MonkeyPatch) -> FakeKeyring:
    backend = FakeKeyring()
    monkeypatch.setattr("conductor.credentials._import_keyring", lambda: backend)
    return backend


def test_env_var_names_for_accounts() -> None:
    assert env_var_names("openai") == ("OPENAI_API_KEY",)
    assert env_var_names("openai", "work-2") == ("OPENAI_API_KEY_WORK_2",)
    assert env_var_names("google") == ("GEMINI_API_KEY", "GOOGLE_API_KEY")


def test_env_resolver_prefers_first_variable(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GOOGLE_API_KEY", "google-key")
    resolver = EnvCredentialResolver()

    assert resolver.resolve(settings_for("google")) == "google-key"
    monkeypatch.setenv("GEMINI_API_KEY", "gemini-key")
    assert resolver.resolve(settings_for("google")) == "gemini-key"


def test_env_resolver_uses_account_suffix(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "default-key")
    monkeypatch.setenv("OPENAI_API_KEY_WORK", "work-key")
    resolver = EnvCredentialResolver(use_dotenv=False)

    assert resolver.resolve(settings_for("openai", {"account": "work"})) == "work-key"
    assert resolver.resolve(settings_for("openai", {"account": "home"})) is None


def test_env_resolver_ignores_blank_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ANTHROPIC_API_KEY", "   ")

    assert EnvCredentialResolver().resolve(settings_for("anthropic")) is None


def test_in_memory_store_round_trip() -> None:
    store = InMemoryCredentialStore()
    store.store("openai", "work", "sk-work")
    store.store("openai", "default", "sk-default")

    assert isinstance(store, CredentialStore)
    assert store.list("openai") == ["default", "work"]
    assert store.resolve(settings_for("openai", {"account": "work"})) == "sk-work"
    assert store.delete("openai", "work") is True
    assert store.delete("openai", "work") is False
    assert store.list("openai") == ["default"]


def test_chained_resolver_first_hit_wins() -> None:
    empty = InMemoryCredentialStore()
    first = InMemoryCredentialStore.from_keys(anthropic="first")
    second = InMemoryCredentialStore.from_keys(anthropic="second")

    chained = ChainedCredentialResolver([empty, first, second])

    assert chained.resolve(settings_for("anthropic")) == "first"
    assert chained.resolve(settings_for("openai")) is None


def test_keyring_store_keeps_account_index(fake_keyring: FakeKeyring) -> None:
    store = KeyringCredentialStore()

    store.store("openai", "default", "sk-1")
    store.store("openai", "work", "sk-2")

    assert fake_keyring.passwords[("conductor-openai", "work")] == "sk-2"
    assert store.list("openai") == ["default", "work"]
    assert store.resolve(settings_for("openai", {"account": "work"})) == "sk-2"
    assert store.list("anthropic") == []


def test_keyring_delete(fake_keyring: FakeKeyring, caplog: pytest.LogCaptureFixture) -> None:
    store = KeyringCredentialStore()
    store.store("grok", "default", "xai")

    assert store.delete("grok", "default") is True
    assert store.list("grok") == []
    with caplog.at_level("WARNING", logger="conductor.credentials"):
        assert store.delete("grok", "default") is False
    assert "No credential found" in caplog.text


def test_keyring_failures(monkeypatch: pytest.MonkeyPatch) -> None:
    broken: Any = FakeKeyring(broken=True)
    monkeypatch.setattr("conductor.credentials._import_keyring", lambda: broken)
    store = KeyringCredentialStore()

    assert store.resolve(settings_for("openai")) is None
    with pytest.raises(ConfigurationError, match="Failed to store credential"):
        store.store("openai", "default", "sk")


def test_keyring_corrupt_index_is_ignored(fake_keyring: FakeKeyring) -> None:
    fake_keyring.passwords[("conductor-openai", "__accounts__")] = "{not json"

    assert KeyringCredentialStore().list("openai") == []
