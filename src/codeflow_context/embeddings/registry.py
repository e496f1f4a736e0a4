"""
Project-Aware FAISS Index Registry

This module provides a registry for managing per-project FAISS indexes.
Each project root gets its own isolated vector index.

Thread Safety
-------------
- The registry is protected by an RLock
- Individual FaissIndex instances have their own locks
- Safe for concurrent use across async request handlers
"""

from __future__ import annotations

import logging
from pathlib import Path
from threading import RLock
from typing import Dict

from .index import FaissIndex, FaissIndexError, FaissPersistenceError
from ..projects import get_project_data_path

logger = logging.getLogger("codeflow.index")


# ---------------------------------------------------------------------
# Global Index Registry
# ---------------------------------------------------------------------

_index_registry: Dict[Path, FaissIndex] = {}
_registry_lock = RLock()


def get_project_index(root: str | Path) -> FaissIndex:
    """
    Get the FAISS index for a project, loading it from disk on first use.
    The cached instance reloads by itself when the build script saves the
    same location later.

    The returned index is not initialized if the project was never
    ingested; callers that write must call `initialize()` first.

    Raises
    ------
    InvalidProjectError
        If the project root is invalid.
    """
    location = get_project_data_path(root)

    with _registry_lock:
        if location in _index_registry:
            return _index_registry[location]

        index = FaissIndex(location)

        try:
            index.load()
        except FaissPersistenceError:
            logger.exception("Could not load index at %s; starting empty", location)

        _index_registry[location] = index
        return index


def save_all_project_indexes() -> int:
    """
    Persist all loaded, initialized project indexes to disk.

    Returns the number of indexes saved.
    """
    with _registry_lock:
        count = 0
        for location, index in _index_registry.items():
            try:
                if not index.is_initialized():
                    continue
                index.save()
                count += 1
            except FaissIndexError:
                logger.exception("Failed to save index at %s", location)
        return count


def clear_registry() -> None:
    """
    Forget all loaded indexes (does not delete files).
    """
    with _registry_lock:
        _index_registry.clear()
