from __future__ import annotations

import secrets
import threading
import time
from uuid import uuid4

_lock = threading.Lock()
_last_ms = 0
_last_random = 0

_RANDOM_BITS = 80
_RANDOM_MAX = (1 << _RANDOM_BITS) - 1


def new_invocation_id() -> str:
    """Return a unique id that sorts lexicographically by creation time.

    48 bits of unix milliseconds followed by 80 random bits, hex encoded. Ids
    minted within the same millisecond, or while the clock steps backwards,
    increment the random part. When it is exhausted the millisecond part moves
    one past the last one, so ids stay ordered inside one process.
    """
    global _last_ms, _last_random
    with _lock:
        now_ms = time.time_ns() // 1_000_000
        if now_ms <= _last_ms and _last_random < _RANDOM_MAX:
            now_ms = _last_ms
            random_part = _last_random + 1
        else:
            if now_ms <= _last_ms:
                now_ms = _last_ms + 1
            random_part = secrets.randbits(_RANDOM_BITS - 1)
        _last_ms = now_ms
        _last_random = random_part
    return f'{now_ms:012x}{random_part:020x}'


def new_worker_id() -> str:
    return str(uuid4())
