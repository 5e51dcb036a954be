"""Bounded retry around an async generation operation.

The operation is a zero-argument callable returning an awaitable Outcome.
Success ends the loop at once. Failures are retried back to back, with no
delay, until max_attempts is reached; the caller then receives one fixed
message. Per-attempt errors only reach the log.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from material_types import (
    ABANDONED,
    FAILED,
    SUCCEEDED,
    Failure,
    Outcome,
    RetryState,
    Success,
)

log = logging.getLogger(__name__)

T = TypeVar("T")

RETRY_EXHAUSTED = "Generation failed after multiple attempts."


async def with_retry(
    operation: Callable[[], Awaitable[Outcome[T]]],
    max_attempts: int = 3,
    state: Optional[RetryState] = None,
) -> Outcome[T]:
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")

    if state is None:
        state = RetryState(max_attempts=max_attempts)
    else:
        state.max_attempts = max_attempts

    while state.attempts < state.max_attempts:
        state.attempts += 1
        try:
            outcome = await operation()
        except asyncio.CancelledError:
            state.status = ABANDONED
            log.info("Generation abandoned during attempt %d/%d", state.attempts, state.max_attempts)
            raise
        except Exception as exc:
            log.exception("Attempt %d/%d raised", state.attempts, state.max_attempts)
            outcome = Failure(f"{type(exc).__name__}: {exc}")

        if isinstance(outcome, Success):
            state.status = SUCCEEDED
            state.value = outcome.value
            if state.attempts > 1:
                log.info("Succeeded on attempt %d/%d", state.attempts, state.max_attempts)
            return outcome

        log.warning(
            "Attempt %d/%d failed: %s", state.attempts, state.max_attempts, outcome.message
        )

    state.status = FAILED
    state.message = RETRY_EXHAUSTED
    return Failure(RETRY_EXHAUSTED)
