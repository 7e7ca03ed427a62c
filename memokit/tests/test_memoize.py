"""Tests out memokit.memoize"""

from __future__ import annotations

import pytest

from memokit.backends import MemoryBackend, SQLBackend, StorageBackend
from memokit.constants import CACHE_MISS
from memokit.memoize import MemoizeOptions, always, memoize, never

from .test_functions import Counter


class FakeCache:
    """Cache whose behavior is given by plain functions, recording deletes."""
    def __init__(self, get=lambda args: None):
        self._get = get
        self.sets: list = []
        self.deletes: list = []

    def get(self, args):
        return self._get(args)

    def set(self, args, value):
        self.sets.append((args, value))

    def delete(self, args):
        self.deletes.append(args)


class FailingCache(MemoryBackend):
    """Memory cache whose writes fail."""
    def _set_value(self, key, value, args):
        raise IOError('disk full')


def test_primitive_args():
    """Test that identical args hit the cache and different ones don't."""
    counter = Counter()

    def fn(a, b, c):
        counter()
        return f'{a}{b}{str(c).lower()}'

    memo_fn = memoize(fn)
    assert memo_fn('a', 1, True) == 'a1true'
    assert counter.count == 1
    assert memo_fn('a', 1, True) == 'a1true'
    assert counter.count == 1

    assert memo_fn('b', 2, False) == 'b2false'
    assert counter.count == 2
    assert memo_fn('b', 2, False) == 'b2false'
    assert counter.count == 2

def test_variadic_args():
    counter = Counter()

    def fn(*args):
        counter()
        return ' '.join(map(str, args))

    memo_fn = memoize(fn)
    assert memo_fn('a', 'b') == 'a b'
    assert memo_fn('a', 'b') == 'a b'
    assert counter.count == 1
    assert memo_fn(1, 2, 3) == '1 2 3'
    assert memo_fn(1, 2, 3) == '1 2 3'
    assert counter.count == 2

def test_structured_args():
    """Test that dicts and sets in different orders share an entry."""
    counter = Counter()

    def fn(mapping, items):
        counter()
        return len(mapping) + len(items)

    memo_fn = memoize(fn)
    assert memo_fn({'a': 1, 'b': 2}, {30, 20, 10}) == 5
    assert memo_fn({'b': 2, 'a': 1}, {10, 30, 20}) == 5
    assert counter.count == 1

def test_never_caches_nullish():
    """Test that None results are recomputed on every call."""
    counter = Counter()

    def fn(value):
        counter()
        return None if value == 'none' else value

    memo_fn = memoize(fn)
    assert memo_fn('none') is None
    assert counter.count == 1
    assert memo_fn('none') is None
    assert counter.count == 2

    assert memo_fn('defined') == 'defined'
    assert counter.count == 3
    assert memo_fn('defined') == 'defined'
    assert counter.count == 3

def test_caches_falsy_values():
    """Test that falsy but non-None results are cached."""
    counter = Counter()

    def fn(value):
        counter()
        return value

    memo_fn = memoize(fn)
    for value in (0, '', False, []):
        memo_fn(value)
        memo_fn(value)
    assert counter.count == 4

def test_deletes_entries_when_nullish():
    """Test that a None result deletes the existing entry."""
    counter = Counter()

    def fn(value):
        return value if counter() == 1 else None

    cache = FakeCache()
    memo_fn = memoize(fn, cache=cache)
    assert memo_fn(1) == 1
    assert cache.sets == [((1,), 1)]
    assert cache.deletes == []

    assert memo_fn(1) is None
    assert cache.deletes == [(1,)]

def test_always_recalculates_nullish():
    """Test that both None and CACHE_MISS from the cache mean "not cached"."""
    counter = Counter()

    def fn(value):
        counter()
        return 0

    def get(args):
        if args[0] == 0:
            return CACHE_MISS
        if args[0] < 0:
            return None
        return args[0]

    memo_fn = memoize(fn, cache=FakeCache(get))
    assert memo_fn(1) == 1
    assert counter.count == 0

    assert memo_fn(0) == 0
    assert counter.count == 1
    assert memo_fn(0) == 0
    assert counter.count == 2

    assert memo_fn(-1) == 0
    assert counter.count == 3

def test_custom_should_cache():
    """Test that results rejected by should_cache are recomputed."""
    counter = Counter()

    def fn(a, b):
        counter()
        return a + b

    memo_fn = memoize(fn, should_cache=lambda result, a, b: len(result) >= 3)
    assert memo_fn('a', 'b') == 'ab'
    assert counter.count == 1
    assert memo_fn('a', 'b') == 'ab'
    assert counter.count == 2

    assert memo_fn('foo', 'bar') == 'foobar'
    assert counter.count == 3
    assert memo_fn('foo', 'bar') == 'foobar'
    assert counter.count == 3

def test_rejected_result_deletes_entry():
    """Test that a result refused by should_cache drops the old entry."""
    table = {'["skip"]': 'stale'}
    memo_fn = memoize(
        lambda a: a,
        cache=MemoryBackend(table),
        should_recalculate=lambda result, a: result == 'stale',
        should_cache=lambda result, a: result != 'skip',
    )
    assert memo_fn('skip') == 'skip'
    assert table == {}

def test_custom_should_recalculate():
    """Test that should_recalculate can force a recompute on hits."""
    counter = Counter()

    def fn(a, b):
        counter()
        return a + b

    memo_fn = memoize(
        fn,
        should_recalculate=lambda result, a, b: a == 0 or b == 0,
        cache=FakeCache(lambda args: 0),
    )
    assert memo_fn(0, 1) == 1
    assert counter.count == 1

    assert memo_fn(3, 0) == 3
    assert counter.count == 2

    assert memo_fn(1, 2) == 0
    assert counter.count == 2

def test_never_caches_on_raise():
    """Test that exceptions propagate and nothing is cached."""
    counter = Counter()
    table = {}

    def fn(a):
        counter()
        if a:
            raise ValueError('test')
        return a

    memo_fn = memoize(fn, cache=MemoryBackend(table))
    assert memo_fn(False) is False
    assert counter.count == 1

    with pytest.raises(ValueError, match='test'):
        memo_fn(True)
    assert counter.count == 2
    with pytest.raises(ValueError, match='test'):
        memo_fn(True)
    assert counter.count == 3
    assert table == {'[false]': False}

def test_policy_errors_propagate():
    """Test that exceptions in the predicates propagate and nothing is cached."""
    def boom(result, *args):
        raise RuntimeError('policy')

    table = {}
    memo_fn = memoize(lambda a: a, cache=MemoryBackend(table), should_cache=boom)
    with pytest.raises(RuntimeError, match='policy'):
        memo_fn(1)
    assert table == {}

    memo_fn = memoize(lambda a: a, cache=MemoryBackend({'[1]': 1}), should_recalculate=boom)
    with pytest.raises(RuntimeError, match='policy'):
        memo_fn(1)

def test_cache_errors_propagate():
    """Test that a failing cache write raises to the caller."""
    counter = Counter()
    memo_fn = memoize(lambda a: counter(), cache=FailingCache())
    with pytest.raises(IOError, match='disk full'):
        memo_fn(1)
    assert counter.count == 1

def test_decorator_forms():
    """Test usage as a bare decorator and with options."""
    counter = Counter()

    @memoize
    def double(x):
        """Doubles x."""
        counter()
        return 2 * x

    assert double(2) == 4
    assert double(2) == 4
    assert counter.count == 1
    assert double.__name__ == 'double'
    assert double.__doc__ == 'Doubles x.'
    assert isinstance(double.cache, MemoryBackend)
    assert double.__wrapped__(3) == 6

    cache = MemoryBackend()

    @memoize(cache=cache, should_cache=lambda result, x: result > 10)
    def triple(x):
        return 3 * x

    assert triple(2) == 6
    assert triple(5) == 15
    assert triple.cache is cache
    assert (5,) in cache
    assert (2,) not in cache

def test_non_callable():
    with pytest.raises(TypeError):
        memoize(42)

def test_each_wrapper_gets_own_cache():
    """Test that the default cache is created per wrapped function."""
    first = memoize(lambda x: 'first')
    second = memoize(lambda x: 'second')
    assert first(1) == 'first'
    assert second(1) == 'second'
    assert first.cache is not second.cache

def test_options_resolved():
    """Test that defaults are filled in once."""
    options = MemoizeOptions().resolved()
    assert isinstance(options.cache, MemoryBackend)
    assert options.should_recalculate is never
    assert options.should_cache is always
    assert never('x') is False
    assert always('x') is True

def test_storage_backend_values():
    """Test memoizing into a string storage with extended value types."""
    storage = {}
    memo_fn = memoize(lambda a, b: {a: {b}}, cache=StorageBackend(storage, 'val:map'))
    assert memo_fn(1, 'b') == {1: {'b'}}
    assert storage == {'val:map[1,"b"]': '{"$map":[[1,{"$set":["b"]}]]}'}
    assert memo_fn(1, 'b') == {1: {'b'}}

def test_sql_backend():
    counter = Counter()

    def fn(*args):
        counter()
        return list(args)

    cache = SQLBackend(key_prefix='memo:')
    memo_fn = memoize(fn, cache=cache)
    assert memo_fn('a', 2**60) == ['a', 2**60]
    assert memo_fn('a', 2**60) == ['a', 2**60]
    assert counter.count == 1
    assert list(cache.iter_keys()) == ['memo:["a","1152921504606846976"]']
    cache.close()
