"""Key normalizers: turn a call's argument tuple into a canonical string.

The default `SmartKeyer` walks the arguments with an ordered list of (predicate, encoder) pairs,
first match wins, and dumps the result as compact JSON. Unordered collections (mappings and sets)
are sorted so that insertion order never changes the key.
"""

from __future__ import annotations

import array
import dataclasses
import hashlib
import itertools
import json
import re
import weakref

from abc import ABC, abstractmethod
from collections.abc import Mapping
from datetime import date, datetime, time
from enum import Enum
from typing import Any, Callable, Generic
from urllib.parse import ParseResult, SplitResult

from memokit.constants import KeyT, MAX_SAFE_INT

# re flag letters, in the order python prints them in inline groups
_REGEX_FLAGS = (
    (re.ASCII, 'a'),
    (re.IGNORECASE, 'i'),
    (re.LOCALE, 'L'),
    (re.MULTILINE, 'm'),
    (re.DOTALL, 's'),
    (re.VERBOSE, 'x'),
)


def regex_flags(pattern: re.Pattern) -> str:
    """Returns the letters for the non-default flags of a compiled `pattern`."""
    return ''.join(letter for flag, letter in _REGEX_FLAGS if pattern.flags & flag)


def regex_from_flags(source: str, flags: str) -> re.Pattern:
    """Inverse of `regex_flags`: compiles `source` with the flags named by `flags`."""
    value = 0
    by_letter = {letter: flag for flag, letter in _REGEX_FLAGS}
    for letter in flags:
        try:
            value |= by_letter[letter]
        except KeyError:
            raise ValueError(f"Unknown regex flag {letter!r} in {flags!r}")
    return re.compile(source, value)


def is_ndarray(obj: Any) -> bool:
    """Checks for a numpy array without importing numpy unless it's already loaded."""
    return type(obj).__module__ == 'numpy' and type(obj).__name__ == 'ndarray'


class _IdentityTokens:
    """Hands out process-unique tokens for values that have no structural encoding.

    Weakref-able objects keep their token for as long as they live. Others are held here for the
    life of the keyer, so their `id()` can't be reused by a new object with the same token.
    """
    def __init__(self):
        self._tokens: weakref.WeakKeyDictionary = weakref.WeakKeyDictionary()
        self._pinned: dict[int, tuple[Any, int]] = {}
        self._counter = itertools.count(1)

    def __call__(self, obj: Any) -> str:
        name = f'{type(obj).__module__}.{type(obj).__qualname__}'
        try:
            n = self._tokens.get(obj)
            if n is None:
                n = self._tokens[obj] = next(self._counter)
        except TypeError:  # not weakref-able, or unhashable
            n = self._pinned_number(obj)
        return f'<{name}#{n}>'

    def _pinned_number(self, obj: Any) -> int:
        pinned = self._pinned.get(id(obj))
        if pinned is not None and pinned[0] is obj:
            return pinned[1]
        n = next(self._counter)
        self._pinned[id(obj)] = (obj, n)
        return n


class Keyer(ABC, Generic[KeyT]):
    """Base class for converting a call's arguments into a cache key.

    Keyers are callable, so anywhere a keyer is accepted a plain function `(args) -> key` works too.
    """
    @abstractmethod
    def make_key(self, args: tuple) -> KeyT:
        """Convert positional arguments into a cache key.

        Args:
            args: Tuple of positional arguments

        Returns:
            A key suitable for the cache backend
        """
        pass

    def __call__(self, args: tuple) -> KeyT:
        return self.make_key(args)


class SmartKeyer(Keyer[str]):
    """Converts arguments into a canonical JSON string.

    Handles, in order:
    - None/bool/str/float → as-is
    - int → as-is if within the float-safe range, else its decimal string
    - datetime/date/time → isoformat
    - urllib SplitResult/ParseResult → the full url
    - compiled regex → "/pattern/flags"
    - numpy arrays → nested lists
    - bytes/bytearray/memoryview/array.array → list of ints
    - mappings → object with sorted keys (or sorted [key, value] entries, with non-string keys)
    - sets/frozensets → list sorted by each element's key
    - lists/tuples → lists
    - dataclasses → object of fields, Enums → their value
    - everything else → an identity token only equal to itself
    """
    def __init__(self):
        self._tokens = _IdentityTokens()
        self._encoders: list[tuple[Callable[[Any], bool], Callable[[Any], Any]]] = [
            (lambda v: v is None or isinstance(v, (bool, str, float)), lambda v: v),
            (lambda v: isinstance(v, int), self._encode_int),
            (lambda v: isinstance(v, (datetime, date, time)), lambda v: v.isoformat()),
            (lambda v: isinstance(v, (SplitResult, ParseResult)), lambda v: v.geturl()),
            (lambda v: isinstance(v, re.Pattern), lambda v: f'/{v.pattern}/{regex_flags(v)}'),
            (is_ndarray, lambda v: v.tolist()),
            (lambda v: isinstance(v, (bytes, bytearray, memoryview, array.array)), list),
            (lambda v: isinstance(v, Mapping), self._encode_mapping),
            (lambda v: isinstance(v, (set, frozenset)), self._encode_set),
            (lambda v: isinstance(v, (list, tuple)), lambda v: [self.normalize(x) for x in v]),
            (lambda v: dataclasses.is_dataclass(v) and not isinstance(v, type), self._encode_dataclass),
            (lambda v: isinstance(v, Enum), lambda v: self.normalize(v.value)),
        ]

    def make_key(self, args: tuple) -> str:
        return self.dumps(self.normalize(tuple(args)))

    @staticmethod
    def dumps(obj: Any) -> str:
        return json.dumps(obj, separators=(',', ':'), ensure_ascii=False)

    def normalize(self, value: Any) -> Any:
        """Converts `value` into plain json-able data, canonicalizing unordered collections."""
        for matches, encode in self._encoders:
            if matches(value):
                return encode(value)
        return self._tokens(value)

    def _encode_int(self, value: int) -> int|str:
        return value if abs(value) <= MAX_SAFE_INT else str(value)

    def _encode_mapping(self, value: Mapping) -> dict|list:
        if all(isinstance(k, str) for k in value.keys()):
            return {k: self.normalize(value[k]) for k in sorted(value.keys())}
        # [key, value] entries, so that e.g. 1 and '1' stay distinct keys
        entries = [[self.normalize(k), self.normalize(v)] for k, v in value.items()]
        return sorted(entries, key=lambda entry: self.dumps(entry[0]))

    def _encode_set(self, value: set|frozenset) -> list:
        return sorted((self.normalize(x) for x in value), key=self.dumps)

    def _encode_dataclass(self, value: Any) -> dict:
        return {f.name: self.normalize(getattr(value, f.name)) for f in dataclasses.fields(value)}


class HashStringKeyer(Keyer[str]):
    """Hash keyer that returns string digests of the `SmartKeyer` key.

    Useful for stores with limits on key length. If using a hashlib algorithm, returns
    hexdigest(); with a custom hash function, converts its result to a string.
    """
    def __init__(self, hash_func: str | Callable[[str], Any] = 'sha256'):
        """The input `hash_func` should be either:

        - A string naming a `hashlib` algorithm (e.g. 'sha256', 'md5')
        - A callable that takes a string and returns a hash value

        Defaults to 'sha256'.
        """
        self._string_maker = SmartKeyer()
        if isinstance(hash_func, str):
            if hash_func not in hashlib.algorithms_available:
                raise ValueError(f"Hash algorithm '{hash_func}' not found in hashlib")
            self._hash_func = lambda s: hashlib.new(hash_func, s.encode('utf-8')).hexdigest()
        else:
            self._hash_func = lambda s: str(hash_func(s))

    def make_key(self, args: tuple) -> str:
        return self._hash_func(self._string_maker.make_key(args))
