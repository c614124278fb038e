"""Tenacity retry controller for transient transport failures."""

from __future__ import annotations

import logging
import time
from typing import Callable

import httpx
import tenacity
from tenacity import RetryCallState, retry_if_exception

from ReadTracker.CatalogSync.config.models import RetryPolicy

LOGGER = logging.getLogger(__name__)


def is_retryable(exception: BaseException, policy: RetryPolicy) -> bool:
    """Decide whether ``exception`` is worth another attempt.

    Connection, read and timeout failures are retried; HTTP status errors only
    when the status is listed in ``policy.retry_statuses``. Protocol errors
    and every other 4xx are final.
    """
    if isinstance(exception, httpx.HTTPStatusError):
        return exception.response.status_code in policy.retry_statuses
    if isinstance(exception, httpx.LocalProtocolError):
        return False
    if isinstance(exception, (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError)):
        return True
    return False


def _log_before_sleep(retry_state: RetryCallState) -> None:
    next_action = retry_state.next_action
    outcome = retry_state.outcome
    error = outcome.exception() if outcome is not None else None
    if next_action is not None:
        LOGGER.warning(
            f"retry attempt={retry_state.attempt_number} "
            f"wait_ms={int(next_action.sleep * 1000)} error={error!r}"
        )


def build_retrying(
    policy: RetryPolicy,
    *,
    sleep: Callable[[float], None] = time.sleep,
) -> tenacity.Retrying:
    """Return a ``Retrying`` controller honouring ``policy``.

    The final exception is re-raised unchanged so callers can map it into the
    sync error taxonomy.
    """
    return tenacity.Retrying(
        retry=retry_if_exception(lambda exc: is_retryable(exc, policy)),
        stop=tenacity.stop_after_attempt(policy.max_attempts),
        wait=tenacity.wait_random_exponential(
            multiplier=policy.backoff_multiplier_s,
            max=policy.backoff_max_s,
        ),
        sleep=sleep,
        before_sleep=_log_before_sleep,
        reraise=True,
    )
