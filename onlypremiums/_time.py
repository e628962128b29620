"""
Clock helpers. The store keeps naive UTC timestamps.
"""

from __future__ import annotations

import itertools
import time
from collections.abc import Callable
from datetime import UTC, datetime

type Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


def epoch_ms() -> int:
    return time.time_ns() // 1_000_000


_last_ms = 0
_seq = itertools.count()


def unique_epoch_ms() -> str:
    """Epoch milliseconds, suffixed with a counter when called twice in the same millisecond."""
    global _last_ms
    now = epoch_ms()
    if now != _last_ms:
        _last_ms = now
        return str(now)
    return f"{now}-{next(_seq)}"


__all__ = ("Clock", "utcnow", "epoch_ms", "unique_epoch_ms")
