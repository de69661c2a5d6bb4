from __future__ import annotations

from collections import Counter
from threading import Lock
from typing import Dict

_COUNTER = Counter()
_LOCK = Lock()


def increment(key: str, amount: int = 1) -> None:
    with _LOCK:
        _COUNTER[key] += amount


def get_snapshot() -> Dict[str, int]:
    with _LOCK:
        return dict(_COUNTER)


def get_prefixed(prefix: str) -> Dict[str, int]:
    """Contatori il cui nome inizia con ``prefix``."""
    with _LOCK:
        return {key: value for key, value in _COUNTER.items() if key.startswith(prefix)}


def reset() -> None:
    with _LOCK:
        _COUNTER.clear()
