from __future__ import annotations

from typing import Any, Awaitable, Callable, TypeVar, Union

# type for normalized cache keys
KeyT = TypeVar('KeyT')

# type for cached values
ValueT = TypeVar('ValueT')

# policy callbacks take the result followed by the original args
Predicate = Callable[..., Union[bool, Awaitable[bool]]]

# largest integer a JSON consumer can read back as a double without losing precision
MAX_SAFE_INT = 2**53 - 1


class _CacheMiss:
    """Sentinel type for "no entry in the cache"."""
    _instance: _CacheMiss|None = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return '<CACHE_MISS>'

    def __bool__(self) -> bool:
        return False

    def __reduce__(self):
        return (_CacheMiss, ())


CACHE_MISS = _CacheMiss()  # Sentinel value for cache misses


def is_nullish(value: Any) -> bool:
    """Returns True if `value` is either of the "no value" forms.

    Backends report a missing entry with `CACHE_MISS`, while functions (and some custom caches)
    return `None`. The memoizers treat both the same: never cached, always recomputed.
    """
    return value is None or value is CACHE_MISS
