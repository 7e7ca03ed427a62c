"""Memoization of plain functions against a pluggable cache.

Example:

    from memokit import memoize

    @memoize
    def add(a, b):
        print('add called')
        return a + b

    add(1, 2)  # add called, 3
    add(1, 2)  # 3

A result of `None` is never cached, nor is anything when the function raises.
"""

from __future__ import annotations

import logging

from dataclasses import dataclass
from functools import partial, wraps
from typing import Any, Callable

from memokit.backends import MemoryBackend
from memokit.constants import Predicate, is_nullish

logger = logging.getLogger(__name__)


def never(result: Any, *args: Any) -> bool:
    """Default `should_recalculate`: trust every cached result."""
    return False


def always(result: Any, *args: Any) -> bool:
    """Default `should_cache`: cache every non-None result."""
    return True


@dataclass
class MemoizeOptions:
    """Options for `memoize()`. Every field is optional.

    - cache: object with `get(args)`, `set(args, value)`, `delete(args)`. Defaults to a new
      `MemoryBackend`.
    - should_recalculate: `(result, *args) -> bool`, run on every cache hit; True means ignore the
      cached result and call the function again. Defaults to never.
    - should_cache: `(result, *args) -> bool`, run on every newly computed non-None result; False
      means don't cache it (and drop any old entry). Defaults to always.
    """
    cache: Any = None
    should_recalculate: Predicate|None = None
    should_cache: Predicate|None = None

    def resolved(self) -> MemoizeOptions:
        """Returns a copy with all defaults filled in."""
        return MemoizeOptions(
            cache=self.cache if self.cache is not None else MemoryBackend(),
            should_recalculate=self.should_recalculate or never,
            should_cache=self.should_cache or always,
        )


def memoize(fn: Callable|None = None,
            *,
            cache: Any = None,
            should_recalculate: Predicate|None = None,
            should_cache: Predicate|None = None) -> Callable:
    """Memoizes `fn`, keyed on its positional arguments.

    Can be used directly (`memoize(fn, ...)`) or as a decorator, with or without options.

    On each call:
    1. Looks up `cache.get(args)`.
    2. If that's not None/CACHE_MISS and `should_recalculate` says no, returns it without calling
       `fn`.
    3. Otherwise calls `fn(*args)` (exceptions propagate, nothing gets cached).
    4. If the result is not None and `should_cache` approves, `cache.set(args, result)`,
    5. else `cache.delete(args)`.
    6. Returns the result.

    The returned function has `.cache` and `.__wrapped__` attributes.
    """
    if fn is None:
        return partial(memoize, cache=cache, should_recalculate=should_recalculate, should_cache=should_cache)
    if not callable(fn):
        raise TypeError(f'Cannot memoize non-callable {fn!r}')
    options = MemoizeOptions(cache, should_recalculate, should_cache).resolved()
    cache = options.cache
    should_recalculate = options.should_recalculate
    should_cache = options.should_cache

    @wraps(fn)
    def memoized(*args: Any) -> Any:
        result = cache.get(args)
        if not is_nullish(result):
            if not should_recalculate(result, *args):
                return result
            logger.debug(f'Recalculating cached result of {fn!r} for {args!r}')
        result = fn(*args)
        if not is_nullish(result) and should_cache(result, *args):
            cache.set(args, result)
        else:
            cache.delete(args)
        return result

    memoized.cache = cache
    return memoized
