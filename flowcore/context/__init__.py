"""
Prompt context: tiered cache, invalidation wiring and assembly.
"""

from flowcore.context.assembler import ContextAssembler, create_store
from flowcore.context.cache import CacheEntry, CacheTier, ContextCache
from flowcore.context.invalidation import Debouncer, InvalidationWiring

__all__ = [
    "CacheEntry",
    "CacheTier",
    "ContextAssembler",
    "ContextCache",
    "Debouncer",
    "InvalidationWiring",
    "create_store",
]
