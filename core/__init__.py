"""Core package exports for the gamma levels overlay."""

# Re-export commonly used modules for convenience.
from . import snapshot, watcher, store, annotations, reload

__all__ = [
    "snapshot",
    "watcher",
    "store",
    "annotations",
    "reload",
]
