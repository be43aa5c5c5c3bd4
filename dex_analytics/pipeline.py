"""
Explicit middleware chain for cross-cutting concerns around operations.

An operation is any async callable. A middleware takes the operation name
and the next callable and returns a wrapped callable. Chains are composed
once at startup:

    scan = compose(
        "scan",
        detector.scan,
        logging_middleware,
        metrics_middleware(metrics),
        timeout_middleware(30),
    )

The first middleware listed is the outermost.
"""

import asyncio
import functools
import logging
import time
from typing import Any, Awaitable, Callable

from dex_analytics.metrics import ScannerMetrics

logger = logging.getLogger(__name__)

Operation = Callable[..., Awaitable[Any]]
Middleware = Callable[[str, Operation], Operation]


def compose(name: str, operation: Operation, *middlewares: Middleware) -> Operation:
    """Wrap operation so that middlewares[0] runs first."""
    wrapped = operation
    for middleware in reversed(middlewares):
        wrapped = middleware(name, wrapped)
    return wrapped


def logging_middleware(name: str, call_next: Operation) -> Operation:
    """Log start, duration and failures of an operation."""

    @functools.wraps(call_next)
    async def wrapper(*args, **kwargs):
        logger.debug(f"{name} started")
        start = time.perf_counter()
        try:
            result = await call_next(*args, **kwargs)
        except asyncio.CancelledError:
            logger.debug(f"{name} cancelled")
            raise
        except Exception as e:
            logger.warning(
                f"{name} failed after {time.perf_counter() - start:.3f}s: "
                f"{type(e).__name__}: {e}"
            )
            raise
        logger.debug(f"{name} completed in {time.perf_counter() - start:.3f}s")
        return result

    return wrapper


def metrics_middleware(metrics: ScannerMetrics) -> Middleware:
    """Record latency and errors of an operation."""

    def middleware(name: str, call_next: Operation) -> Operation:
        @functools.wraps(call_next)
        async def wrapper(*args, **kwargs):
            start = time.perf_counter()
            try:
                return await call_next(*args, **kwargs)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                metrics.record_operation_error(name, type(e).__name__)
                raise
            finally:
                metrics.record_operation(name, time.perf_counter() - start)

        return wrapper

    return middleware


def timeout_middleware(seconds: float) -> Middleware:
    """Fail an operation with asyncio.TimeoutError if it runs too long."""

    def middleware(name: str, call_next: Operation) -> Operation:
        @functools.wraps(call_next)
        async def wrapper(*args, **kwargs):
            return await asyncio.wait_for(call_next(*args, **kwargs), timeout=seconds)

        return wrapper

    return middleware
