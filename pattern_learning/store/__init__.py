"""Pattern storage: primary map, secondary indexes, criteria filters, backends."""

from .backend import JsonFileBackend, MemoryBackend
from .core import PatternStore
from .index import PatternIndex

__all__ = ["PatternStore", "PatternIndex", "JsonFileBackend", "MemoryBackend"]
