"""Depth guard for workflows started from inside other workflows.

A tool handler may itself run a workflow. The current depth lives in a
context variable, so it follows asyncio tasks (and ``asyncio.to_thread``,
which copies the context) without any shared state.
"""

import contextvars
from contextlib import contextmanager
from typing import Iterator

from ..exceptions import NestingLimitExceededError

DEFAULT_MAX_NESTING_DEPTH = 3

_depth: contextvars.ContextVar[int] = contextvars.ContextVar("tandem_workflow_depth", default=0)


def current_depth() -> int:
    """Number of workflows running in the current context."""
    return _depth.get()


@contextmanager
def nesting_guard(workflow_id: str, max_depth: int = DEFAULT_MAX_NESTING_DEPTH) -> Iterator[int]:
    """Enter one workflow level.

    The top-level workflow runs at depth 1.

    Raises:
        NestingLimitExceededError: If entering would exceed ``max_depth``.
    """
    depth = _depth.get() + 1
    if depth > max_depth:
        raise NestingLimitExceededError(workflow_id, depth, max_depth)
    token = _depth.set(depth)
    try:
        yield depth
    finally:
        _depth.reset(token)
