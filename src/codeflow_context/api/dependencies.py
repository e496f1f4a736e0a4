from functools import lru_cache
from typing import Callable

from ..config import settings
from ..embeddings.embedder import Embedder
from ..embeddings.index import FaissIndex
from ..embeddings.registry import get_project_index
from ..retrieval.gate import GateSettings
from ..retrieval.retriever import MultiViewRetriever
from ..sessions.store import SessionStore, session_store

IndexResolver = Callable[[str], FaissIndex]


@lru_cache
def get_embedder() -> Embedder:
    return Embedder()


def get_index_resolver() -> IndexResolver:
    return get_project_index


def get_session_store() -> SessionStore:
    return session_store


@lru_cache
def get_gate_settings() -> GateSettings:
    return GateSettings.from_settings(settings)


def build_retriever(index: FaissIndex, embedder: Embedder) -> MultiViewRetriever:
    return MultiViewRetriever(
        index,
        embedder,
        radius=settings.window_radius,
        line_weight=settings.line_weight,
        window_weight=settings.window_weight,
    )
