"""Persistent stores used during a scan run."""

from .checkpoint import CheckpointStore
from .content_cache import ContentCache, cache_key

__all__ = ["CheckpointStore", "ContentCache", "cache_key"]
