"""Provider contract and the shared adapter lifecycle.

Every vendor adapter moves through ``Unconfigured -> Configured`` via
``configure()``. Chat-family calls on an unconfigured adapter raise
``ProviderNotConfiguredError``; vendor failures come back as
``ProviderResponse(success=False)`` and never raise.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
from typing import TYPE_CHECKING, Any, ClassVar, Protocol, runtime_checkable

from conductor.config import ProviderSettings, coerce_settings
from conductor.credentials import default_resolver, env_var_names
from conductor.errors import (
    APIError,
    ConfigurationError,
    ContractViolationError,
    MissingCredentialError,
    ProviderNotConfiguredError,
)
from conductor.providers._errors import failure_response, wrap_provider_error
from conductor.providers._utils import dedupe_call_ids
from conductor.providers.models import (
    Message,
    NamedToolChoice,
    ProviderRequest,
    ProviderResponse,
    ToolChoice,
)
from conductor.retry import retry_async

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from conductor.credentials import CredentialResolver

logger = logging.getLogger(__name__)


@runtime_checkable
class Provider(Protocol):
    """What the tool loop needs from an adapter."""

    @property
    def name(self) -> str:
        """Provider identifier, e.g. ``"openai"``."""
        ...

    @property
    def is_configured(self) -> bool:
        """Whether ``configure()`` has succeeded."""
        ...

    def configure(
        self, settings: ProviderSettings | Mapping[str, Any] | None = None
    ) -> None:
        """Resolve credentials and build the vendor client."""
        ...

    async def chat(self, request: ProviderRequest) -> ProviderResponse:
        """Send a conversation and return the canonical response."""
        ...

    async def generate_text_with_tool_results(
        self, request: ProviderRequest
    ) -> ProviderResponse:
        """Continue an assistant tool-call turn with its tool outputs."""
        ...


@dataclass(frozen=True)
class _Configured:
    settings: ProviderSettings
    client: Any


class BaseProvider:
    """Shared configure/chat/continue flow; vendors fill in the translation hooks.

    Subclasses implement:
    - ``_default_client_factory()``: lazily import the SDK client class.
    - ``_client_kwargs(settings, api_key)``: constructor arguments.
    - ``_build_call(request, settings)``: canonical request -> vendor kwargs.
    - ``_send(client, call)``: the actual SDK call.
    - ``_parse_response(raw)``: vendor response -> ProviderResponse.
    """

    name: ClassVar[str] = "base"
    default_model: ClassVar[str] = ""
    settings_class: ClassVar[type[ProviderSettings]] = ProviderSettings
    #: Whether ``configure`` must resolve an API key.
    requires_api_key: ClassVar[bool] = True

    def __init__(
        self,
        credentials: CredentialResolver | None = None,
        *,
        client_factory: Callable[..., Any] | None = None,
    ) -> None:
        """Create an unconfigured adapter.

        Args:
            credentials: Secret lookup used by ``configure()``; defaults to
                environment variables, then the OS keychain.
            client_factory: Vendor client constructor. Defaults to the SDK's
                async client; tests inject fakes here.
        """
        self._credentials = credentials if credentials is not None else default_resolver()
        self._client_factory = client_factory
        self._state: _Configured | None = None
        self._stale_clients: list[Any] = []

    @property
    def is_configured(self) -> bool:
        return self._state is not None

    @property
    def settings(self) -> ProviderSettings | None:
        return self._state.settings if self._state is not None else None

    def configure(
        self, settings: ProviderSettings | Mapping[str, Any] | None = None
    ) -> None:
        """Validate settings, resolve credentials and build the vendor client.

        Safe to call repeatedly to re-target a model or account. On failure the
        adapter is left unconfigured and the error propagates.
        """
        previous = self._state
        self._state = None
        if previous is not None:
            self._stale_clients.append(previous.client)
        try:
            validated = coerce_settings(self.settings_class, settings)
            client = self._create_client(validated)
        except ConfigurationError as e:
            logger.error(
                "Configuring %s provider failed: %s",
                self.name,
                e,
                extra={"provider": self.name},
            )
            raise
        except Exception as e:
            logger.error(
                "Creating %s client failed: %s",
                self.name,
                e,
                extra={"provider": self.name},
            )
            raise ConfigurationError(
                f"Failed to create {self.name} client: {e}",
                hint="Check the provider settings and SDK installation.",
            ) from e
        self._state = _Configured(settings=validated, client=client)
        logger.debug(
            "%s provider configured (account=%s, model=%s)",
            self.name,
            validated.account,
            validated.model or self.default_model,
            extra={"provider": self.name},
        )

    def _resolve_api_key(self, settings: ProviderSettings) -> str:
        secret = self._credentials.resolve(settings)
        if not secret:
            names = " or ".join(env_var_names(settings.provider, settings.account))
            raise MissingCredentialError(
                settings.provider,
                settings.account,
                hint=f"Set {names} or store a key for this account.",
            )
        return secret

    def _create_client(self, settings: ProviderSettings) -> Any:
        api_key = self._resolve_api_key(settings) if self.requires_api_key else None
        factory = self._client_factory or self._default_client_factory()
        return factory(**self._client_kwargs(settings, api_key))

    def _require_configured(self) -> _Configured:
        if self._state is None:
            raise ProviderNotConfiguredError(
                f"{self.name} provider not configured",
                hint="Call configure() first.",
            )
        return self._state

    def _model_for(self, request: ProviderRequest, settings: ProviderSettings) -> str:
        return request.model or settings.model or self.default_model

    async def chat(self, request: ProviderRequest) -> ProviderResponse:
        """Send *request* to the vendor and translate the reply."""
        state = self._require_configured()
        call = self._build_call(request, state.settings)

        async def attempt() -> Any:
            try:
                return await self._send(state.client, call)
            except asyncio.CancelledError:
                raise
            except APIError:
                raise
            except Exception as e:
                raise wrap_provider_error(
                    e,
                    provider=self.name,
                    phase="chat",
                    allow_network_errors=True,
                ) from e

        try:
            raw = await retry_async(attempt, policy=state.settings.retry_policy())
        except APIError as err:
            logger.warning(
                "%s chat failed: %s",
                self.name,
                err,
                extra={"provider": self.name, "status_code": err.status_code},
            )
            return failure_response(err)

        try:
            response = self._parse_response(raw)
        except Exception as e:
            err = wrap_provider_error(
                e,
                provider=self.name,
                phase="parse",
                allow_network_errors=False,
            )
            logger.warning("%s response could not be parsed: %s", self.name, err)
            return failure_response(err)

        if response.tool_calls:
            response.tool_calls = dedupe_call_ids(response.tool_calls)
        if response.model is None:
            response.model = self._model_for(request, state.settings)
        return response

    async def generate_text_with_tool_results(
        self, request: ProviderRequest
    ) -> ProviderResponse:
        """Append one tool message per output to the assistant turn and re-invoke."""
        messages = append_tool_outputs(request)
        self._require_configured()
        return await self.chat(request.replace(messages=messages, tool_outputs=None))

    async def aclose(self) -> None:
        """Close underlying async client resources."""
        clients = list(self._stale_clients)
        self._stale_clients.clear()
        if self._state is not None:
            clients.append(self._state.client)
            self._state = None
        for client in clients:
            close = getattr(client, "close", None)
            if callable(close):
                result = close()
                if asyncio.iscoroutine(result):
                    await result

    # Vendor hooks.

    def _default_client_factory(self) -> Callable[..., Any]:
        raise NotImplementedError

    def _client_kwargs(
        self, settings: ProviderSettings, api_key: str | None
    ) -> dict[str, Any]:
        raise NotImplementedError

    def _build_call(
        self, request: ProviderRequest, settings: ProviderSettings
    ) -> dict[str, Any]:
        raise NotImplementedError

    async def _send(self, client: Any, call: dict[str, Any]) -> Any:
        raise NotImplementedError

    def _parse_response(self, raw: Any) -> ProviderResponse:
        raise NotImplementedError


def append_tool_outputs(request: ProviderRequest) -> tuple[Message, ...]:
    """Validate a continuation request and return messages with tool results.

    Raises ContractViolationError when there are no messages, when the last
    message is not an assistant turn with tool calls, or when outputs and calls
    do not pair up by id.
    """
    if not request.messages:
        raise ContractViolationError(
            "Request must contain messages to continue with tool results"
        )
    last = request.messages[-1]
    if last.role != "assistant" or not last.tool_calls:
        raise ContractViolationError(
            "Cannot continue with tool results: the last assistant turn has no tool calls",
            hint="Append the assistant message carrying tool_calls before the outputs.",
        )

    outputs = {o.call_id: o for o in request.tool_outputs or ()}
    call_ids = [c.id for c in last.tool_calls]
    unknown = sorted(set(outputs) - set(call_ids))
    if unknown:
        raise ContractViolationError(f"Tool outputs reference unknown call ids: {unknown}")
    missing = [cid for cid in call_ids if cid not in outputs]
    if missing:
        raise ContractViolationError(f"Missing tool outputs for call ids: {missing}")

    tool_messages = tuple(
        Message.tool_result(outputs[call.id], name=call.name)
        for call in last.tool_calls
    )
    return (*request.messages, *tool_messages)


def effective_tool_choice(
    request: ProviderRequest, provider: str
) -> ToolChoice | None:
    """Return the tool choice if this request can express it, else None.

    A choice without tools, or a named choice for a tool that is not declared,
    cannot be sent to any vendor; it is dropped with a warning.
    """
    choice = request.tool_choice
    if choice is None:
        return None
    if not request.tools:
        logger.warning("%s: ignoring tool_choice=%r without tools", provider, choice)
        return None
    if isinstance(choice, NamedToolChoice) and choice.name not in request.tool_names():
        logger.warning(
            "%s: ignoring tool_choice for undeclared tool %r", provider, choice.name
        )
        return None
    return choice


def split_system(
    request: ProviderRequest,
) -> tuple[str | None, list[Message]]:
    """Pull system text out of the conversation for vendors with a system slot."""
    system_parts: list[str] = []
    if request.system_instruction:
        system_parts.append(request.system_instruction)
    rest: list[Message] = []
    for message in request.messages:
        if message.role == "system":
            if message.content:
                system_parts.append(message.content)
        else:
            rest.append(message)
    return ("\n\n".join(system_parts) if system_parts else None), rest
