"""Credential resolution for provider adapters.

Adapters never read secrets themselves: ``configure()`` asks an injected
``CredentialResolver`` for the key that belongs to ``(provider, account)``.

Resolution order used by ``default_resolver()``:
1. Environment variable (``OPENAI_API_KEY`` and friends, ``.env`` honoured)
2. System keyring (service ``conductor-<provider>``, username = account)
"""

from __future__ import annotations

import json
import logging
import os
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import dotenv

from conductor.errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from conductor.config import ProviderSettings

logger = logging.getLogger(__name__)

KEYRING_SERVICE_PREFIX = "conductor"
_ACCOUNT_INDEX = "__accounts__"

# Standard SDK variables first; the first non-empty one wins.
API_KEY_ENV_VARS: dict[str, tuple[str, ...]] = {
    "openai": ("OPENAI_API_KEY",),
    "grok": ("XAI_API_KEY", "GROK_API_KEY"),
    "anthropic": ("ANTHROPIC_API_KEY",),
    "google": ("GEMINI_API_KEY", "GOOGLE_API_KEY"),
}


@runtime_checkable
class CredentialResolver(Protocol):
    """Look up the secret for a provider's configured account."""

    def resolve(self, settings: ProviderSettings) -> str | None:
        """Return the secret, or None when absent."""
        ...


@runtime_checkable
class CredentialStore(CredentialResolver, Protocol):
    """A resolver that can also persist secrets."""

    def store(self, provider: str, account: str, secret: str) -> None:
        """Persist *secret* for ``(provider, account)``."""
        ...

    def delete(self, provider: str, account: str) -> bool:
        """Remove a secret; return True when something was deleted."""
        ...

    def list(self, provider: str) -> list[str]:
        """Return account names holding a secret for *provider*."""
        ...


def env_var_names(provider: str, account: str = "default") -> tuple[str, ...]:
    """Return candidate environment variable names for a provider account.

    Non-default accounts use a suffixed name, e.g. ``OPENAI_API_KEY_WORK``.
    """
    base = API_KEY_ENV_VARS.get(provider, (f"{provider.upper()}_API_KEY",))
    if account == "default":
        return base
    suffix = account.upper().replace("-", "_")
    return tuple(f"{name}_{suffix}" for name in base)


class EnvCredentialResolver:
    """Resolve API keys from environment variables (and ``.env`` files)."""

    def __init__(self, *, use_dotenv: bool = True) -> None:
        self._use_dotenv = use_dotenv
        self._dotenv_loaded = False

    def resolve(self, settings: ProviderSettings) -> str | None:
        if self._use_dotenv and not self._dotenv_loaded:
            dotenv.load_dotenv()
            self._dotenv_loaded = True
        for name in env_var_names(settings.provider, settings.account):
            value = os.environ.get(name, "").strip()
            if value:
                return value
        return None


class InMemoryCredentialStore:
    """Process-local credential store; useful for tests and embedding."""

    def __init__(self, secrets: dict[tuple[str, str], str] | None = None) -> None:
        self._secrets: dict[tuple[str, str], str] = dict(secrets or {})

    @classmethod
    def from_keys(cls, **keys: str) -> InMemoryCredentialStore:
        """Build a store from ``provider=secret`` pairs on the default account."""
        return cls({(provider, "default"): key for provider, key in keys.items()})

    def resolve(self, settings: ProviderSettings) -> str | None:
        return self._secrets.get((settings.provider, settings.account))

    def store(self, provider: str, account: str, secret: str) -> None:
        self._secrets[(provider, account)] = secret

    def delete(self, provider: str, account: str) -> bool:
        return self._secrets.pop((provider, account), None) is not None

    def list(self, provider: str) -> list[str]:
        return sorted(acct for (prov, acct) in self._secrets if prov == provider)


def _import_keyring() -> Any:
    try:
        import keyring
        import keyring.errors
    except ImportError as e:
        raise ConfigurationError(
            "keyring package not installed",
            hint="pip install keyring",
        ) from e
    return keyring


class KeyringCredentialStore:
    """Secrets in the OS keychain via ``keyring``.

    Uses the system's secure credential storage (macOS Keychain, Windows
    Credential Manager, Secret Service on Linux). ``keyring`` cannot enumerate
    entries, so an account index is kept alongside the secrets.
    """

    def __init__(self, *, service_prefix: str = KEYRING_SERVICE_PREFIX) -> None:
        self._service_prefix = service_prefix

    def _service(self, provider: str) -> str:
        return f"{self._service_prefix}-{provider.lower()}"

    def resolve(self, settings: ProviderSettings) -> str | None:
        keyring = _import_keyring()
        try:
            secret = keyring.get_password(
                self._service(settings.provider), settings.account
            )
        except keyring.errors.KeyringError as e:
            logger.debug("Keyring lookup failed for %s: %s", settings.provider, e)
            return None
        return secret or None

    def store(self, provider: str, account: str, secret: str) -> None:
        keyring = _import_keyring()
        service = self._service(provider)
        try:
            keyring.set_password(service, account, secret)
            accounts = set(self.list(provider))
            accounts.add(account)
            keyring.set_password(service, _ACCOUNT_INDEX, json.dumps(sorted(accounts)))
        except keyring.errors.KeyringError as e:
            raise ConfigurationError(
                f"Failed to store credential for {provider!r} (account {account!r})",
                hint=str(e),
            ) from e
        logger.info("Stored credential for %s (account %s)", provider, account)

    def delete(self, provider: str, account: str) -> bool:
        keyring = _import_keyring()
        service = self._service(provider)
        try:
            keyring.delete_password(service, account)
        except keyring.errors.PasswordDeleteError:
            logger.warning(
                "No credential found for %s (account %s) to delete", provider, account
            )
            return False
        accounts = [a for a in self.list(provider) if a != account]
        keyring.set_password(service, _ACCOUNT_INDEX, json.dumps(accounts))
        return True

    def list(self, provider: str) -> list[str]:
        keyring = _import_keyring()
        raw = keyring.get_password(self._service(provider), _ACCOUNT_INDEX)
        if not raw:
            return []
        try:
            accounts = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring corrupt keyring account index for %s", provider)
            return []
        return [a for a in accounts if isinstance(a, str)]


class ChainedCredentialResolver:
    """Try several resolvers in order; the first secret found wins."""

    def __init__(self, resolvers: Iterable[CredentialResolver]) -> None:
        self._resolvers = tuple(resolvers)

    def resolve(self, settings: ProviderSettings) -> str | None:
        for resolver in self._resolvers:
            secret = resolver.resolve(settings)
            if secret:
                return secret
        return None


def default_resolver() -> CredentialResolver:
    """Environment first, then the OS keychain."""
    return ChainedCredentialResolver(
        [EnvCredentialResolver(), KeyringCredentialStore()]
    )
