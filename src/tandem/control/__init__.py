"""Control layer for Tandem: loop bounds, retries and nesting depth."""

from .limits import DEFAULT_MAX_STEPS, DEFAULT_TIMEOUT_SECONDS, LoopBudget, LoopLimits
from .nesting import DEFAULT_MAX_NESTING_DEPTH, current_depth, nesting_guard
from .retry import RetryConfig, RetryStrategy, retry_transient

__all__ = [
    "DEFAULT_MAX_NESTING_DEPTH",
    "DEFAULT_MAX_STEPS",
    "DEFAULT_TIMEOUT_SECONDS",
    "LoopBudget",
    "LoopLimits",
    "RetryConfig",
    "RetryStrategy",
    "current_depth",
    "nesting_guard",
    "retry_transient",
]
