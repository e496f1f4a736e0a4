import pytest
from pydantic import ValidationError

from codeflow_context.config import Settings
from codeflow_context.ingestion.pipeline import IngestOptions


@pytest.mark.parametrize(
    "overrides",
    [
        {"window_radius": -1},
        {"line_weight": 1.5},
        {"window_weight": -0.1},
        {"line_weight": 0.0, "window_weight": 0.0},
        {"default_top_k": 0},
        {"inline_pause_ms": -300},
        {"inline_comment_pattern": "[unclosed"},
        {"ingest_extensions": ["", "  "]},
        {"embedding_base_url": "not a url"},
        {"embedding_base_url": "ftp://example.com/v1/embeddings"},
        {"session_idle_seconds": 0},
        {"port": 0},
    ],
)
def test_invalid_settings_rejected(overrides):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **overrides)


def test_defaults():
    s = Settings(_env_file=None)

    assert s.window_radius == 40
    assert (s.line_weight, s.window_weight) == (0.55, 0.35)
    assert (s.inline_pause_ms, s.inline_throttle_ms, s.inline_max_lines) == (300, 800, 12)


def test_environment_prefix(monkeypatch):
    monkeypatch.setenv("CODEFLOW_WINDOW_RADIUS", "12")
    monkeypatch.setenv("CODEFLOW_VECTOR_METRIC", "l2")

    s = Settings(_env_file=None)

    assert s.window_radius == 12
    assert s.vector_metric == "l2"


def test_extensions_normalized():
    s = Settings(_env_file=None, ingest_extensions=["TS", ".Vue"])
    assert s.ingest_extensions == [".ts", ".vue"]


def test_blank_api_key_means_none():
    assert Settings(_env_file=None, embedding_api_key="").embedding_api_key_value() is None
    assert Settings(_env_file=None, embedding_api_key="sk-x").embedding_api_key_value() == "sk-x"


@pytest.mark.parametrize(
    "overrides",
    [
        {"min_doc_chunk_length": 0},
        {"min_code_chunk_length": -1},
        {"max_chunk_chars": 0},
        {"unknown_option": True},
    ],
)
def test_invalid_ingest_options_rejected(overrides):
    with pytest.raises(ValidationError):
        IngestOptions(**overrides)


def test_embedding_url_kept_verbatim():
    s = Settings(_env_file=None, embedding_base_url="http://localhost:8080/v1/embeddings")
    assert str(s.embedding_base_url) == "http://localhost:8080/v1/embeddings"
