"""Bounded tool-calling loop over any provider adapter.

The loop owns its conversation: it starts from the request's messages, only
ever appends, and drops it on return. Provider failures end the loop as data;
tool failures are fed back to the model as ``{"error": ...}`` outputs so it can
recover. The only way out by exception is the iteration bound.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from typing import TYPE_CHECKING, Any

from conductor.errors import MaxIterationsExceededError
from conductor.providers.models import Message, ToolOutput

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from conductor.providers.base import Provider
    from conductor.providers.models import ProviderRequest, ProviderResponse, ToolCall
    from conductor.tools import ToolExecutor

    ProgressCallback = Callable[[int, ProviderResponse], Any]

_logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 10


async def run_tool_loop(
    provider: Provider,
    request: ProviderRequest,
    executor: ToolExecutor,
    *,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    on_progress: ProgressCallback | None = None,
    verbose: bool = False,
    parallel_tools: bool = False,
    raise_on_max_iterations: bool = True,
    logger: logging.Logger | None = None,
) -> ProviderResponse:
    """Drive *provider* until it answers without tool calls.

    Args:
        provider: A configured adapter.
        request: Initial request; its tools, tool choice, model and sampling
            settings are carried into every follow-up.
        executor: Runs the tools the model asks for.
        max_iterations: Upper bound on provider invocations.
        on_progress: Called with ``(iteration, response)`` after every
            provider call; may be a coroutine function.
        verbose: Log per-iteration tracing at DEBUG.
        parallel_tools: Run the tool calls of one response concurrently.
        raise_on_max_iterations: When False, hitting the bound returns the last
            response with ``max_iterations_reached=True`` instead of raising.
        logger: Logger to use instead of this module's.

    Returns:
        The final ProviderResponse; ``success=False`` when the provider failed.

    Raises:
        MaxIterationsExceededError: The model still wanted tools after
            ``max_iterations`` provider calls.
        ValueError: ``max_iterations`` is less than 1.
    """
    if max_iterations < 1:
        raise ValueError("max_iterations must be >= 1")
    log = logger or _logger

    conversation: list[Message] = list(request.messages)
    follow_up: ProviderRequest | None = None
    pending_tool_messages: list[Message] = []
    iteration = 0

    while True:
        iteration += 1
        if follow_up is None:
            response = await provider.chat(request)
        else:
            response = await provider.generate_text_with_tool_results(follow_up)
            conversation.extend(pending_tool_messages)

        if verbose:
            log.debug(
                "Tool loop iteration %d/%d: success=%s tool_calls=%d",
                iteration,
                max_iterations,
                response.success,
                len(response.tool_calls or ()),
                extra={"iteration": iteration},
            )
        if on_progress is not None:
            result = on_progress(iteration, response)
            if inspect.isawaitable(result):
                await result

        if not response.success:
            log.debug(
                "Tool loop stopped on provider failure at iteration %d: %s",
                iteration,
                response.error.message if response.error else "unknown error",
            )
            return response
        if not response.tool_calls:
            return response

        if iteration >= max_iterations:
            if raise_on_max_iterations:
                raise MaxIterationsExceededError(
                    max_iterations,
                    hint="Raise max_iterations or narrow the task so the model can finish.",
                )
            log.warning(
                "Tool loop stopped at max_iterations=%d with pending tool calls",
                max_iterations,
            )
            response.max_iterations_reached = True
            return response

        calls = response.tool_calls
        outputs = await _execute_calls(
            executor, calls, parallel=parallel_tools, log=log, verbose=verbose
        )

        conversation.append(Message.assistant(response.content, calls))
        follow_up = request.replace(
            messages=tuple(conversation), tool_outputs=tuple(outputs)
        )
        pending_tool_messages = [
            Message.tool_result(output, name=call.name)
            for call, output in zip(calls, outputs, strict=True)
        ]


async def _execute_calls(
    executor: ToolExecutor,
    calls: Sequence[ToolCall],
    *,
    parallel: bool,
    log: logging.Logger,
    verbose: bool,
) -> list[ToolOutput]:
    """Run every call; outputs come back in call order regardless of scheduling."""
    if parallel and len(calls) > 1:
        return list(
            await asyncio.gather(
                *(_execute_one(executor, call, log=log, verbose=verbose) for call in calls)
            )
        )
    return [await _execute_one(executor, call, log=log, verbose=verbose) for call in calls]


async def _execute_one(
    executor: ToolExecutor,
    call: ToolCall,
    *,
    log: logging.Logger,
    verbose: bool,
) -> ToolOutput:
    try:
        arguments = call.parsed_arguments()
    except ValueError as e:
        log.warning("Tool %s received undecodable arguments: %s", call.name, e)
        return _error_output(call, f"Invalid arguments for tool {call.name!r}: {e}")

    if verbose:
        log.debug("Executing tool %s (call %s)", call.name, call.id)
    try:
        result = executor.execute(call.name, arguments)
        if inspect.isawaitable(result):
            result = await result
        output = result if isinstance(result, str) else json.dumps(result)
    except Exception as e:
        log.warning(
            "Tool %s failed: %s",
            call.name,
            e,
            extra={"tool": call.name, "call_id": call.id},
        )
        return _error_output(call, str(e) or type(e).__name__)
    return ToolOutput(call_id=call.id, output=output, name=call.name)


def _error_output(call: ToolCall, message: str) -> ToolOutput:
    return ToolOutput(
        call_id=call.id, output=json.dumps({"error": message}), name=call.name
    )


class ToolLoopOrchestrator:
    """``run_tool_loop`` with a fixed executor and stored defaults."""

    def __init__(
        self,
        executor: ToolExecutor,
        *,
        logger: logging.Logger | None = None,
        **defaults: Any,
    ) -> None:
        self._executor = executor
        self._logger = logger
        self._defaults = defaults

    async def orchestrate(
        self, provider: Provider, request: ProviderRequest, **overrides: Any
    ) -> ProviderResponse:
        options = {**self._defaults, **overrides}
        options.setdefault("logger", self._logger)
        return await run_tool_loop(provider, request, self._executor, **options)
