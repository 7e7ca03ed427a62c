from .backends import (
    AsyncBackendView,
    CacheBackend,
    MemoryBackend,
    SQLBackend,
    StorageBackend,
)
from .constants import CACHE_MISS, is_nullish
from .formatters import CacheFormatter, JsonFormatter, SmartJsonFormatter
from .keyers import Keyer, SmartKeyer, HashStringKeyer
from .memoize import MemoizeOptions, memoize
from .memoize_async import AsyncMemoizeOptions, memoize_async

__all__ = [
    'AsyncBackendView',
    'CacheBackend',
    'MemoryBackend',
    'SQLBackend',
    'StorageBackend',
    'CACHE_MISS',
    'is_nullish',
    'CacheFormatter',
    'JsonFormatter',
    'SmartJsonFormatter',
    'Keyer',
    'SmartKeyer',
    'HashStringKeyer',
    'MemoizeOptions',
    'memoize',
    'AsyncMemoizeOptions',
    'memoize_async',
]
