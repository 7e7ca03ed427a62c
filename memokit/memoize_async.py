"""Memoization of async (or sync) functions, with deduplication of concurrent calls.

Example:

    from memokit import memoize_async

    @memoize_async
    async def fetch(url):
        ...

    # only one fetch actually runs; both callers get its result
    a, b = await asyncio.gather(fetch(url), fetch(url))

The result cache follows the same rules as `memoize()`. On top of it there's a second, always
synchronous "promise cache" holding the task of every call still in flight, so a concurrent call
with the same args attaches to that task instead of starting its own. The entry is removed as soon
as the task finishes, whether it succeeded or raised.
"""

from __future__ import annotations

import asyncio
import inspect

from dataclasses import dataclass
from functools import partial, wraps
from typing import Any, Awaitable, Callable

from memokit.backends import MemoryBackend
from memokit.constants import Predicate, is_nullish
from memokit.memoize import MemoizeOptions, memoize


async def resolve(value: Any) -> Any:
    """Awaits `value` if it's awaitable, else returns it as-is."""
    if inspect.isawaitable(value):
        return await value
    return value


@dataclass
class AsyncMemoizeOptions(MemoizeOptions):
    """Options for `memoize_async()`.

    Same as `MemoizeOptions`, except that the cache operations and both predicates may also return
    awaitables, plus:
    - promise_cache: a *synchronous* cache for the tasks of in-flight calls. Defaults to a new
      `MemoryBackend`.
    """
    promise_cache: Any = None

    def resolved(self) -> AsyncMemoizeOptions:
        base = super().resolved()
        return AsyncMemoizeOptions(
            cache=base.cache,
            should_recalculate=base.should_recalculate,
            should_cache=base.should_cache,
            promise_cache=self.promise_cache if self.promise_cache is not None else MemoryBackend(),
        )


def memoize_async(fn: Callable|None = None,
                  *,
                  cache: Any = None,
                  promise_cache: Any = None,
                  should_recalculate: Predicate|None = None,
                  should_cache: Predicate|None = None) -> Callable[..., Awaitable]:
    """Memoizes `fn`, which may be a coroutine function or a plain one.

    The returned function is always a coroutine function. Concurrent calls with equivalent args
    share a single underlying computation (and its result or exception). A None result or an
    exception is never cached.

    Cancelling one caller doesn't cancel the shared computation.
    """
    if fn is None:
        return partial(memoize_async, cache=cache, promise_cache=promise_cache,
                       should_recalculate=should_recalculate, should_cache=should_cache)
    if not callable(fn):
        raise TypeError(f'Cannot memoize non-callable {fn!r}')
    options = AsyncMemoizeOptions(cache, should_recalculate, should_cache, promise_cache).resolved()
    cache = options.cache
    promise_cache = options.promise_cache
    should_recalculate = options.should_recalculate
    should_cache = options.should_cache

    async def compute(*args: Any) -> Any:
        try:
            result = await resolve(cache.get(args))
            if not is_nullish(result) and not await resolve(should_recalculate(result, *args)):
                return result
            result = await resolve(fn(*args))
            if not is_nullish(result) and await resolve(should_cache(result, *args)):
                await resolve(cache.set(args, result))
            else:
                await resolve(cache.delete(args))
            return result
        finally:
            promise_cache.delete(args)

    # a task that already finished (e.g. with an eager task factory) must not stay in flight
    start = memoize(
        lambda *args: asyncio.ensure_future(compute(*args)),
        cache=promise_cache,
        should_cache=lambda task, *args: not task.done(),
    )

    @wraps(fn)
    async def memoized(*args: Any) -> Any:
        return await asyncio.shield(start(*args))

    memoized.cache = cache
    memoized.promise_cache = promise_cache
    return memoized
