import hashlib
from typing import List
from unittest.mock import AsyncMock

import pytest

from codeflow_context.config import settings
from codeflow_context.embeddings.embedder import Embedder, EmbeddingError
from codeflow_context.embeddings.index import FaissIndex
from codeflow_context.embeddings.models import IndexedChunk, RetrievedItem

DIM = 16


def fake_vector(text: str) -> List[float]:
    """Deterministic, never-zero embedding derived from the text bytes."""
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    return [float(b) + 1.0 for b in digest[:DIM]]


def make_item(source_file: str, idx: int, score: float, text: str = None) -> RetrievedItem:
    return RetrievedItem(
        text=text or f"{source_file} chunk {idx}",
        source_file=source_file,
        extension=".ts",
        sequence_index=idx,
        score=score,
    )


def make_chunk(source_file: str, idx: int, text: str) -> IndexedChunk:
    return IndexedChunk(text=text, source_file=source_file, extension=".ts", sequence_index=idx)


@pytest.fixture(autouse=True)
def isolated_data_root(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "data_root", str(tmp_path / "indexes"))
    yield


@pytest.fixture
def embedder():
    """Embedder double; texts containing 'EMBED_FAIL' raise EmbeddingError."""
    mock = AsyncMock(spec=Embedder)

    async def _embed_one(text: str) -> List[float]:
        if "EMBED_FAIL" in text:
            raise EmbeddingError("provider unavailable")
        return fake_vector(text)

    mock.embed_one.side_effect = _embed_one
    return mock


@pytest.fixture
def index(tmp_path):
    idx = FaissIndex(tmp_path / "store", metric="ip")
    idx.initialize()
    return idx


@pytest.fixture
def project(tmp_path):
    root = tmp_path / "project"
    root.mkdir()
    return root
