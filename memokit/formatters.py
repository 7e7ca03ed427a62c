"""Value serializers for caches that store strings."""

from __future__ import annotations

import array
import dataclasses
import json
import re

from abc import ABC, abstractmethod
from datetime import date, datetime, time
from enum import Enum
from typing import Any, Callable
from urllib.parse import ParseResult, SplitResult

from memokit.constants import MAX_SAFE_INT
from memokit.keyers import is_ndarray, regex_flags, regex_from_flags


class CacheFormatter(ABC):
    """Base class for serialization formats."""
    @abstractmethod
    def dumps(self, obj: Any) -> str:
        """Serialize object to a string."""
        pass

    @abstractmethod
    def loads(self, data: str) -> Any:
        """Deserialize a string to an object."""
        pass


class JsonFormatter(CacheFormatter):
    """JSON serialization format."""
    def __init__(self, EncoderCls=json.JSONEncoder, DecoderCls=json.JSONDecoder, indent=None):
        self.EncoderCls = EncoderCls
        self.DecoderCls = DecoderCls
        self.indent = indent

    def dumps(self, obj: Any) -> str:
        return json.dumps(obj, cls=self.EncoderCls, ensure_ascii=False, indent=self.indent, separators=None if self.indent else (',', ':'))

    def loads(self, data: str) -> Any:
        return json.loads(data, cls=self.DecoderCls)


def _load_ndarray(payload: dict) -> Any:
    import numpy as np
    return np.array(payload['data'], dtype=payload['dtype']).reshape(payload['shape'])


class SmartJsonFormatter(JsonFormatter):
    """JSON format that round-trips common non-json types via single-field tagged objects.

    Currently:
    - big ints (outside the float-safe range): {"$bigint": "123..."}
    - compiled regexes: {"$regexp": {"s": pattern, "f": flags}}
    - numpy.ndarray: {"$ndarray": {"dtype": ..., "shape": [...], "data": [...]}}
    - array.array: {"$array": {"t": typecode, "v": [...]}}
    - bytearray: {"$bytearray": [ints]}, bytes/memoryview: {"$bytes": [ints]}
    - dicts with any non-string key, or whose only key is one of these tags:
      {"$map": [[key, value], ...]}
    - set, frozenset, tuple: {"$set": [...]}, {"$frozenset": [...]}, {"$tuple": [...]}

    Some types are written as plain values and are NOT restored by `loads()`:
    - datetime/date/time turn into their isoformat string
    - urllib SplitResult/ParseResult turn into the url string
    - dataclasses turn into a dict of their fields, and Enums into their value
    So either avoid these in cached values or accept `datetime | str` etc. on the way out.
    """
    def __init__(self, indent=None):
        super().__init__(indent=indent)
        # order matters: first match wins (e.g. bool before int, url tuples before tuple)
        self._encoders: list[tuple[Callable[[Any], bool], Callable[[Any], Any]]] = [
            (lambda v: v is None or isinstance(v, (bool, str, float)), lambda v: v),
            (lambda v: isinstance(v, int), self._encode_int),
            (lambda v: isinstance(v, (datetime, date, time)), lambda v: v.isoformat()),
            (lambda v: isinstance(v, (SplitResult, ParseResult)), lambda v: v.geturl()),
            (lambda v: isinstance(v, re.Pattern), lambda v: {'$regexp': {'s': v.pattern, 'f': regex_flags(v)}}),
            (is_ndarray, lambda v: {'$ndarray': {'dtype': str(v.dtype), 'shape': list(v.shape), 'data': v.ravel().tolist()}}),
            (lambda v: isinstance(v, array.array), lambda v: {'$array': {'t': v.typecode, 'v': v.tolist()}}),
            (lambda v: isinstance(v, bytearray), lambda v: {'$bytearray': list(v)}),
            (lambda v: isinstance(v, (bytes, memoryview)), lambda v: {'$bytes': list(bytes(v))}),
            (lambda v: isinstance(v, dict), self._encode_dict),
            (lambda v: isinstance(v, set), lambda v: {'$set': [self.encode(x) for x in v]}),
            (lambda v: isinstance(v, frozenset), lambda v: {'$frozenset': [self.encode(x) for x in v]}),
            (lambda v: isinstance(v, tuple), lambda v: {'$tuple': [self.encode(x) for x in v]}),
            (lambda v: isinstance(v, list), lambda v: [self.encode(x) for x in v]),
            (lambda v: dataclasses.is_dataclass(v) and not isinstance(v, type), self._encode_dataclass),
            (lambda v: isinstance(v, Enum), lambda v: self.encode(v.value)),
        ]
        self._decoders: dict[str, Callable[[Any], Any]] = {
            '$bigint': int,
            '$regexp': lambda v: regex_from_flags(v['s'], v['f']),
            '$ndarray': _load_ndarray,
            '$array': lambda v: array.array(v['t'], v['v']),
            '$bytearray': bytearray,
            '$bytes': bytes,
            '$map': lambda v: {k: val for k, val in v},
            '$set': set,
            '$frozenset': frozenset,
            '$tuple': tuple,
        }

    def dumps(self, obj: Any) -> str:
        return super().dumps(self.encode(obj))

    def loads(self, data: str) -> Any:
        return json.loads(data, object_hook=self.decode)

    def encode(self, value: Any) -> Any:
        """Converts `value` into plain json-able data, tagging the types we know how to restore."""
        for matches, encode in self._encoders:
            if matches(value):
                return encode(value)
        raise TypeError(f'Object of type {type(value).__name__} is not serializable')

    def decode(self, obj: dict) -> Any:
        """Object hook for json: rebuilds tagged objects, passes everything else through."""
        if len(obj) == 1:
            tag, value = next(iter(obj.items()))
            if tag in self._decoders:
                return self._decoders[tag](value)
        return obj

    def _encode_int(self, value: int) -> int|dict:
        return value if abs(value) <= MAX_SAFE_INT else {'$bigint': str(value)}

    def _encode_dict(self, value: dict) -> dict:
        # a lone key that looks like a tag has to go through $map, or loads() would decode it
        if all(isinstance(k, str) for k in value) and not (len(value) == 1 and next(iter(value)) in self._decoders):
            return {k: self.encode(v) for k, v in value.items()}
        return {'$map': [[self.encode(k), self.encode(v)] for k, v in value.items()]}

    def _encode_dataclass(self, value: Any) -> dict:
        return {f.name: self.encode(getattr(value, f.name)) for f in dataclasses.fields(value)}
