"""
FAISS Vector Index

This module implements a persistent FAISS-backed vector index for storing
and searching embedded project chunks.

One index lives in one directory (its *location*); the same location names
the same logical store across process restarts.

Key Properties
--------------
- Explicit ID management via IndexIDMap2
- Append-only inserts; `clear()` is the only removal
- Idempotent initialization
- Persistence of index + metadata side by side
- Concurrency-safe (thread locking), so queries may run while an
  ingestion run is inserting
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from threading import RLock
from typing import Dict, List, Literal, Optional, Set, Tuple

import faiss
import numpy as np

from .models import IndexedChunk, SearchHit
from ..config import settings

logger = logging.getLogger("codeflow.index")

INDEX_FILENAME = "faiss_index.bin"
META_FILENAME = "index_meta.json"

Metric = Literal["ip", "l2"]

# (inode, mtime_ns, size) of the metadata file; every save replaces the file.
DiskSignature = Tuple[int, int, int]


# ---------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------

class FaissIndexError(RuntimeError):
    """Base error for FAISS index failures."""


class FaissPersistenceError(FaissIndexError):
    """Raised when index persistence fails."""


# ---------------------------------------------------------------------
# FAISS Index Wrapper
# ---------------------------------------------------------------------

class FaissIndex:
    """
    Persistent FAISS index with explicit ID mapping.

    With the `ip` metric vectors are L2-normalized and the index reports
    cosine similarity as a native score. With `l2` it reports squared
    euclidean distance between normalized vectors.
    """

    def __init__(
        self,
        location: str | Path,
        metric: Optional[Metric] = None,
    ) -> None:
        """
        Parameters
        ----------
        location : str | Path
            Directory holding the index and its metadata.

        metric : Optional[str]
            "ip" or "l2". Defaults to settings.vector_metric. An existing
            index on disk keeps the metric it was created with.
        """
        self._location = Path(location)
        self._metric: Metric = metric or settings.vector_metric

        self._index: Optional[faiss.IndexIDMap2] = None
        self._dim: Optional[int] = None
        self._doc_map: Dict[int, IndexedChunk] = {}
        self._next_id: int = 0
        self._initialized = False

        # Disk state this instance last loaded or wrote, and whether it
        # holds changes not yet saved.
        self._disk_sig: Optional[DiskSignature] = None
        self._dirty = False

        self._lock = RLock()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def location(self) -> Path:
        return self._location

    @property
    def metric(self) -> Metric:
        return self._metric

    @property
    def index_path(self) -> Path:
        return self._location / INDEX_FILENAME

    @property
    def meta_path(self) -> Path:
        return self._location / META_FILENAME

    def __len__(self) -> int:
        with self._lock:
            self._refresh()
            return len(self._doc_map)

    # ------------------------------------------------------------------
    # Internal Helpers
    # ------------------------------------------------------------------

    def _init_index(self, dim: int) -> None:
        if self._metric == "ip":
            base = faiss.IndexFlatIP(dim)
        else:
            base = faiss.IndexFlatL2(dim)
        self._index = faiss.IndexIDMap2(base)
        self._dim = dim

    def _as_matrix(self, vectors: List[List[float]]) -> np.ndarray:
        matrix = np.asarray(vectors, dtype="float32")
        faiss.normalize_L2(matrix)
        return matrix

    def _validate_embeddings(
        self,
        embeddings: List[List[float]],
        docs: List[IndexedChunk],
    ) -> None:
        if len(embeddings) != len(docs):
            raise FaissIndexError(
                "Embedding count does not match chunk count."
            )

        dim = self._dim or len(embeddings[0])
        if dim == 0:
            raise FaissIndexError("Embedding vectors must be non-empty.")

        for i, emb in enumerate(embeddings):
            if len(emb) != dim:
                raise FaissIndexError(
                    f"Inconsistent embedding dimensionality at index {i}: "
                    f"expected {dim}, got {len(emb)}."
                )

    def _disk_signature(self) -> Optional[DiskSignature]:
        try:
            st = self.meta_path.stat()
        except FileNotFoundError:
            return None
        return (st.st_ino, st.st_mtime_ns, st.st_size)

    def _refresh(self) -> None:
        """
        Reload if another instance (usually the build script) saved this
        location since we last loaded or wrote it. Unsaved local changes
        are never discarded.
        """
        sig = self._disk_signature()
        if sig is None or sig == self._disk_sig or self._dirty:
            return
        logger.info("Index at %s changed on disk; reloading", self._location)
        self.load()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def is_initialized(self) -> bool:
        """True once this location holds a store (created here or elsewhere)."""
        with self._lock:
            self._refresh()
            return self._initialized

    def initialize(self) -> None:
        """
        Create the store at its location if it does not exist yet.

        Safe to call on an already-initialized store; existing data on
        disk is loaded rather than overwritten.
        """
        with self._lock:
            if self._initialized:
                self._refresh()
                return

            if self.meta_path.exists():
                self.load()
                return

            try:
                self._location.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise FaissPersistenceError(
                    f"Cannot create index directory {self._location}: {exc}"
                ) from exc

            self._initialized = True
            self._dirty = True
            self.save()
            logger.info("Created index at %s (metric=%s)", self._location, self._metric)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def insert(self, vector: List[float], chunk: IndexedChunk) -> None:
        """Insert a single (vector, metadata) pair."""
        self.add_documents([chunk], [vector])

    def add_documents(
        self,
        docs: List[IndexedChunk],
        embeddings: List[List[float]],
    ) -> None:
        """
        Add chunks and their embeddings to the index.

        This operation is atomic with respect to the in-memory index and map.
        """
        if not docs:
            return

        with self._lock:
            if not self._initialized:
                raise FaissIndexError(
                    f"Index at {self._location} is not initialized."
                )

            self._validate_embeddings(embeddings, docs)

            if self._index is None:
                self._init_index(len(embeddings[0]))

            ids = np.arange(
                self._next_id,
                self._next_id + len(docs),
                dtype="int64",
            )

            vectors = self._as_matrix(embeddings)

            try:
                self._index.add_with_ids(vectors, ids)
            except Exception as exc:
                raise FaissIndexError(
                    f"Failed to add vectors to FAISS: {type(exc).__name__}"
                ) from exc

            self._next_id += len(docs)
            self._dirty = True

            for i, doc in zip(ids, docs):
                self._doc_map[int(i)] = doc

    def query(
        self,
        query_emb: List[float],
        k: int = 5,
    ) -> List[SearchHit]:
        """
        Return up to `k` nearest chunks, most similar first.
        """
        if k <= 0:
            return []

        with self._lock:
            self._refresh()
            if self._index is None or not self._doc_map:
                return []

            if len(query_emb) != self._dim:
                raise FaissIndexError(
                    f"Query dimensionality {len(query_emb)} does not match index ({self._dim})."
                )

            q = self._as_matrix([query_emb])
            values, idxs = self._index.search(q, k)

            hits: List[SearchHit] = []

            for value, idx in zip(values[0], idxs[0]):
                idx = int(idx)
                if idx == -1:
                    continue

                doc = self._doc_map.get(idx)
                if doc is None:
                    continue

                if self._metric == "ip":
                    hits.append(SearchHit(chunk=doc, score=float(value)))
                else:
                    hits.append(SearchHit(chunk=doc, distance=float(value)))

            return hits

    def dedup_keys(self) -> Set[str]:
        """Dedup keys of every stored chunk."""
        with self._lock:
            self._refresh()
            return {doc.dedup_key for doc in self._doc_map.values()}

    def clear(self) -> None:
        """
        Drop every stored item. The store stays initialized.
        """
        with self._lock:
            self._index = None
            self._dim = None
            self._doc_map.clear()
            self._next_id = 0
            self._dirty = True
            if self.index_path.exists():
                self.index_path.unlink()
            logger.info("Cleared index at %s", self._location)

    def get_stats(self) -> dict:
        """
        Return index statistics for diagnostics.
        """
        with self._lock:
            initialized = self.is_initialized()
            files = {d.source_file for d in self._doc_map.values()}
            return {
                "location": str(self._location),
                "initialized": initialized,
                "metric": self._metric,
                "dimension": self._dim,
                "total_vectors": self._index.ntotal if self._index is not None else 0,
                "total_files": len(files),
                "indexed_files": sorted(files),
            }

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self) -> None:
        """
        Persist both FAISS index and metadata to disk.

        Raises
        ------
        FaissPersistenceError
            If another instance saved this location after our last load
            and we hold unsaved changes; its data is left untouched.
        """
        with self._lock:
            if not self._initialized:
                return

            sig = self._disk_signature()
            if sig is not None and sig != self._disk_sig:
                if not self._dirty:
                    self.load()
                    return
                raise FaissPersistenceError(
                    f"Index at {self._location} was saved by another writer; "
                    "refusing to overwrite it"
                )

            try:
                self._location.mkdir(parents=True, exist_ok=True)
                if self._index is not None:
                    faiss.write_index(self._index, str(self.index_path))
            except Exception as exc:
                raise FaissPersistenceError(
                    f"Failed to write FAISS index: {type(exc).__name__}"
                ) from exc

            meta = {
                "metric": self._metric,
                "dimension": self._dim,
                "next_id": self._next_id,
                "doc_map": {
                    str(k): v.model_dump(mode="json")
                    for k, v in self._doc_map.items()
                },
            }

            tmp_path = self.meta_path.with_suffix(".json.tmp")
            try:
                with tmp_path.open("w", encoding="utf-8") as f:
                    json.dump(meta, f)
                tmp_path.replace(self.meta_path)
            except Exception as exc:
                raise FaissPersistenceError(
                    f"Failed to write FAISS metadata: {type(exc).__name__}"
                ) from exc

            self._disk_sig = self._disk_signature()
            self._dirty = False

    def load(self) -> None:
        """
        Load index and metadata from disk if available.
        """
        with self._lock:
            sig = self._disk_signature()
            if sig is None:
                return

            try:
                with self.meta_path.open("r", encoding="utf-8") as f:
                    data = json.load(f)

                self._metric = data.get("metric", self._metric)
                self._dim = data.get("dimension")
                self._next_id = int(data.get("next_id", 0))
                self._doc_map = {
                    int(k): IndexedChunk(**v)
                    for k, v in data.get("doc_map", {}).items()
                }
            except Exception as exc:
                raise FaissPersistenceError(
                    f"Failed to load FAISS metadata: {type(exc).__name__}"
                ) from exc

            if self.index_path.exists():
                try:
                    self._index = faiss.read_index(str(self.index_path))
                except Exception as exc:
                    raise FaissPersistenceError(
                        f"Failed to read FAISS index: {type(exc).__name__}"
                    ) from exc
            else:
                self._index = None

            self._initialized = True
            self._disk_sig = sig
            self._dirty = False
