"""Waiting for remote state to satisfy a condition."""

import logging
import time
import typing as tp

from minimesos.cluster import errors
from minimesos.utils import configuration

LOGGER = logging.getLogger(__name__)

T = tp.TypeVar("T")


def wait_for(
    fetch: tp.Callable[[], T],
    predicate: tp.Callable[[T], tp.Any] = bool,
    *,
    timeout: float,
    interval: float | None = None,
    propagate: tuple[type[BaseException], ...] = (),
    message: str = "",
) -> T:
    """Repeatedly fetch state until the predicate over it is true.

    Args:
        fetch: A function returning the current state.
        predicate: A function checking the state (default: truthiness of the state).
        timeout: Give up after this many seconds. The state is checked at least once.
        interval: Seconds to sleep between checks (default: `configuration.POLL_INTERVAL`).
        propagate: Exception classes that are re-raised instead of being treated
            as a failed check.
        message: Description of the awaited condition, used in the timeout error.

    Returns:
        The state that satisfied the predicate.
    """
    if interval is None:
        interval = configuration.POLL_INTERVAL
    deadline = time.monotonic() + timeout
    attempt = 0
    while True:
        attempt += 1
        try:
            state = fetch()
            if predicate(state):
                return state
        except propagate:
            raise
        except Exception as exc:
            LOGGER.debug(f"Check #{attempt} failed: {exc}")

        if time.monotonic() >= deadline:
            break
        if interval:
            time.sleep(interval)

    msg = f"Timed out after {timeout}s ({attempt} checks)"
    if message:
        msg = f"{msg} waiting for {message}"
    raise errors.ClusterTimeoutError(msg)
