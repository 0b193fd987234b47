"""Concurrent tool execution.

A batch of tool calls is checked up front (lookup, access, argument
schema) and the valid calls run concurrently under a shared worker
limit, each with its own timeout. The batch never fails as a whole:
every request gets a ToolCallResult, in request order.
"""

import asyncio
import copy
import inspect
import logging
import threading
import time
import weakref
from typing import Any, Iterable, Sequence

from ..exceptions import (
    ToolAccessDeniedError,
    ToolError,
    ToolNotFoundError,
    ToolTimeoutError,
    ToolValidationError,
)
from ..types import ToolCallRequest, ToolCallResult, ToolDefinition, ToolErrorKind, ToolFailure
from .registry import ToolRegistry

logger = logging.getLogger(__name__)

DEFAULT_TOOL_TIMEOUT = 30.0
DEFAULT_MAX_WORKERS = 8


class ToolExecutor:
    """Runs batches of tool calls against a ToolRegistry.

    Example:
        executor = ToolExecutor(registry, max_workers=4, timeout=10.0)
        results = await executor.execute([
            ToolCallRequest(name="get_weather", arguments={"city": "Oslo"}),
            ToolCallRequest(name="search_web", arguments={"query": "asyncio"}),
        ])
        for r in results:
            print(r.tool_name, r.success, r.result or r.failure)
    """

    def __init__(
        self,
        registry: ToolRegistry,
        max_workers: int = DEFAULT_MAX_WORKERS,
        timeout: float = DEFAULT_TOOL_TIMEOUT,
    ):
        """Initialize the executor.

        Args:
            registry: Where tools are looked up.
            max_workers: Maximum handlers running at once across all
                batches sharing this executor.
            timeout: Default per-call timeout in seconds.
        """
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        if timeout <= 0:
            raise ValueError("timeout must be > 0")

        self._registry = registry
        self._max_workers = max_workers
        self._timeout = timeout
        # One limiter per event loop; asyncio primitives are loop-bound.
        self._limiters: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, asyncio.Semaphore]" = (
            weakref.WeakKeyDictionary()
        )
        self._lock = threading.Lock()
        self._stats: dict[str, int] = {"total_calls": 0, "succeeded": 0}

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def max_workers(self) -> int:
        return self._max_workers

    @property
    def timeout(self) -> float:
        return self._timeout

    async def execute(
        self,
        requests: Sequence[ToolCallRequest],
        allowed_tools: Iterable[str] | None = None,
        agent_id: str | None = None,
    ) -> list[ToolCallResult]:
        """Execute a batch of tool calls.

        Args:
            requests: Calls to run. Results come back in the same order.
            allowed_tools: If given, calls to any other tool fail with an
                ``access_denied`` result.
            agent_id: Caller, used in access-denied messages and logs.

        Returns:
            One ToolCallResult per request. An empty batch returns an
            empty list without touching any state.
        """
        if not requests:
            return []

        allowed = set(allowed_tools) if allowed_tools is not None else None
        results: list[ToolCallResult | None] = [None] * len(requests)
        runnable: list[tuple[int, ToolCallRequest, ToolDefinition]] = []

        for index, request in enumerate(requests):
            try:
                tool = self._preflight(request, allowed, agent_id)
            except ToolError as e:
                results[index] = self._failure(request, e, 0.0)
            else:
                runnable.append((index, request, tool))

        if runnable:
            limiter = self._limiter()
            # Cancelling this gather cancels every in-flight handler.
            finished = await asyncio.gather(
                *(self._run_one(request, tool, limiter) for _, request, tool in runnable)
            )
            for (index, _, _), result in zip(runnable, finished):
                results[index] = result

        final = [r for r in results if r is not None]
        self._record(final)
        return final

    def get_stats(self) -> dict[str, int]:
        with self._lock:
            return dict(self._stats)

    def reset_stats(self) -> None:
        with self._lock:
            self._stats = {"total_calls": 0, "succeeded": 0}

    # =========================================================================
    # Internals
    # =========================================================================

    def _preflight(
        self,
        request: ToolCallRequest,
        allowed: set[str] | None,
        agent_id: str | None,
    ) -> ToolDefinition:
        tool = self._registry.get(request.name)
        if tool is None:
            raise ToolNotFoundError(request.name)
        if allowed is not None and request.name not in allowed:
            raise ToolAccessDeniedError(request.name, agent_id)
        errors = self._registry.validator.validate(request.arguments, tool.parameters)
        if errors:
            raise ToolValidationError(request.name, errors)
        return tool

    def _limiter(self) -> asyncio.Semaphore:
        loop = asyncio.get_running_loop()
        with self._lock:
            limiter = self._limiters.get(loop)
            if limiter is None:
                limiter = asyncio.Semaphore(self._max_workers)
                self._limiters[loop] = limiter
            return limiter

    async def _run_one(
        self,
        request: ToolCallRequest,
        tool: ToolDefinition,
        limiter: asyncio.Semaphore,
    ) -> ToolCallResult:
        timeout = tool.timeout_seconds or self._timeout
        async with limiter:
            start = time.perf_counter()
            try:
                value = await asyncio.wait_for(self._invoke(tool, request.arguments), timeout)
            except asyncio.TimeoutError:
                elapsed = (time.perf_counter() - start) * 1000
                logger.warning(f"Tool '{tool.name}' timed out after {timeout:.2f}s")
                return self._failure(request, ToolTimeoutError(tool.name, timeout), elapsed)
            except ToolError as e:
                return self._failure(request, e, (time.perf_counter() - start) * 1000)
            except Exception as e:
                logger.warning(f"Tool '{tool.name}' raised {type(e).__name__}: {e}")
                return ToolCallResult(
                    call_id=request.call_id,
                    tool_name=request.name,
                    success=False,
                    failure=ToolFailure(kind=ToolErrorKind.HANDLER, message=f"{type(e).__name__}: {e}"),
                    duration_ms=(time.perf_counter() - start) * 1000,
                )

        return ToolCallResult(
            call_id=request.call_id,
            tool_name=request.name,
            success=True,
            result=value,
            duration_ms=(time.perf_counter() - start) * 1000,
        )

    async def _invoke(self, tool: ToolDefinition, arguments: dict[str, Any]) -> Any:
        args = copy.deepcopy(arguments)
        handler = tool.handler
        if inspect.iscoroutinefunction(handler):
            return await handler(args)
        # Sync handlers run in a worker thread. A timed out thread cannot be
        # killed; its result is discarded.
        result = await asyncio.to_thread(handler, args)
        if inspect.isawaitable(result):
            result = await result
        return result

    def _failure(self, request: ToolCallRequest, error: ToolError, duration_ms: float) -> ToolCallResult:
        return ToolCallResult(
            call_id=request.call_id,
            tool_name=request.name,
            success=False,
            failure=ToolFailure(kind=ToolErrorKind(error.kind), message=str(error)),
            duration_ms=duration_ms,
        )

    def _record(self, results: list[ToolCallResult]) -> None:
        with self._lock:
            self._stats["total_calls"] += len(results)
            self._stats["succeeded"] += sum(1 for r in results if r.success)
            for r in results:
                if r.failure is not None:
                    key = f"failed_{r.failure.kind.value}"
                    self._stats[key] = self._stats.get(key, 0) + 1
