"""Optimistic concurrency guard for object snapshots."""

from __future__ import annotations

import logging
from typing import Optional

from .exceptions import StaleLockError

logger = logging.getLogger(__name__)


def compute_lock(external_identifier: str, version: int, change_counter: int) -> str:
    """Return the opaque lock token for an object's stored state.

    The identifier is part of the token so that a token can't be replayed
    against a different object whose counters happen to match.
    """
    return f"{external_identifier}={version}={change_counter}"


def check_lock(
    current: str,
    supplied: Optional[str],
    *,
    skip_lock: bool = False,
    actor: Optional[str] = None,
) -> None:
    """Verify ``supplied`` against the lock of the freshly loaded state.

    Args:
        current: Lock computed from the state immediately before the write.
        supplied: Lock the caller observed when it read the object.
        skip_lock: Bypass the comparison. Only for callers that already hold
            exclusive access; every bypass is logged.
        actor: Who requested the bypass, for the log entry.

    Raises:
        StaleLockError: If the tokens differ and the check was not skipped.
    """
    if skip_lock:
        logger.warning(
            f"Lock check skipped for {current.split('=', 1)[0]} "
            f"(current={current}, supplied={supplied}, actor={actor or 'unknown'})"
        )
        return
    if supplied != current:
        raise StaleLockError(expected=current, actual=supplied)
