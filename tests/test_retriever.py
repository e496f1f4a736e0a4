from unittest.mock import MagicMock

import httpx
import pytest

from codeflow_context.embeddings.index import FaissIndex, FaissIndexError
from codeflow_context.embeddings.models import SearchHit
from codeflow_context.retrieval.cancellation import CancellationToken, RequestCancelled
from codeflow_context.retrieval.fusion import fuse
from codeflow_context.retrieval.retriever import MultiViewRetriever, extract_window

from conftest import fake_vector, make_chunk, make_item


TEN_LINES = "\n".join(f"line {i}" for i in range(10))


class TestWindow:

    def test_window_clamped_at_file_start(self):
        window = extract_window(TEN_LINES, 0, radius=40)
        assert window.split("\n") == [f"line {i}" for i in range(10)]

    def test_symmetric_window(self):
        window = extract_window(TEN_LINES, 5, radius=2)
        assert window.split("\n") == ["line 3", "line 4", "line 5", "line 6", "line 7"]

    def test_line_past_end(self):
        assert extract_window(TEN_LINES, 100, radius=3) == ""


class TestFusion:

    def test_max_not_sum(self):
        combined = fuse(
            [make_item("a.ts", 0, 0.9)],
            [make_item("a.ts", 0, 0.9)],
            top_k=5,
        )

        assert len(combined) == 1
        assert combined[0].score == pytest.approx(0.495)

    def test_window_hit_can_raise_score(self):
        combined = fuse(
            [make_item("a.ts", 0, 0.1)],
            [make_item("a.ts", 0, 1.0)],
            top_k=5,
        )
        assert combined[0].score == pytest.approx(0.35)

    def test_line_view_outranks_window_view(self):
        combined = fuse(
            [make_item("line.ts", 0, 1.0)],
            [make_item("window.ts", 0, 1.0)],
            top_k=5,
        )

        assert [i.source_file for i in combined] == ["line.ts", "window.ts"]
        assert combined[0].score > combined[1].score

    def test_ties_keep_first_seen_order(self):
        combined = fuse(
            [make_item("a.ts", 0, 0.5), make_item("b.ts", 0, 0.5), make_item("c.ts", 0, 0.5)],
            [],
            top_k=5,
        )
        assert [i.source_file for i in combined] == ["a.ts", "b.ts", "c.ts"]

    def test_truncates_to_top_k(self):
        line = [make_item("a.ts", i, 1.0 - i * 0.1) for i in range(6)]
        assert len(fuse(line, [], top_k=3)) == 3

    def test_inputs_not_mutated(self):
        item = make_item("a.ts", 0, 0.9)
        fuse([item], [], top_k=1)
        assert item.score == 0.9


@pytest.fixture
def mock_index():
    mock = MagicMock(spec=FaissIndex)
    mock.is_initialized.return_value = True
    mock.location = "mock"
    mock.query.return_value = [
        SearchHit(chunk=make_chunk("a.ts", 0, "export const a = 1"), score=0.8),
        SearchHit(chunk=make_chunk("b.ts", 2, "export const b = 2"), distance=0.3),
    ]
    return mock


class TestRetrieve:

    async def test_empty_input_short_circuits(self, mock_index, embedder):
        retriever = MultiViewRetriever(mock_index, embedder)

        result = await retriever.retrieve("", "   ", 0)

        assert result.combined == [] and result.by_line == [] and result.by_window == []
        embedder.embed_one.assert_not_awaited()
        mock_index.query.assert_not_called()

    async def test_both_views_queried_and_fused(self, mock_index, embedder):
        retriever = MultiViewRetriever(mock_index, embedder)

        result = await retriever.retrieve(TEN_LINES, "  const a", 3, top_k=5)

        assert embedder.embed_one.await_count == 2
        awaited_texts = {c.args[0] for c in embedder.embed_one.await_args_list}
        assert awaited_texts == {"const a", TEN_LINES}
        assert mock_index.query.call_count == 2

        assert [i.score for i in result.by_line] == pytest.approx([0.8, 0.7])
        assert [i.source_file for i in result.combined] == ["a.ts", "b.ts"]
        assert result.combined[0].score == pytest.approx(0.8 * 0.55)

    async def test_only_window_view_when_prefix_blank(self, mock_index, embedder):
        retriever = MultiViewRetriever(mock_index, embedder)

        result = await retriever.retrieve(TEN_LINES, "", 3)

        assert embedder.embed_one.await_count == 1
        assert result.by_line == []
        assert len(result.by_window) == 2

    async def test_failed_view_degrades_to_empty(self, mock_index, embedder):
        retriever = MultiViewRetriever(mock_index, embedder)

        result = await retriever.retrieve(TEN_LINES, "EMBED_FAIL here", 3)

        assert result.by_line == []
        assert len(result.by_window) == 2
        assert result.combined[0].score == pytest.approx(0.8 * 0.35)

    async def test_query_failure_degrades_to_empty(self, mock_index, embedder):
        mock_index.query.side_effect = FaissIndexError("broken")
        retriever = MultiViewRetriever(mock_index, embedder)

        result = await retriever.retrieve(TEN_LINES, "const a", 3)

        assert result.combined == []

    async def test_uninitialized_store_short_circuits(self, mock_index, embedder):
        mock_index.is_initialized.return_value = False
        retriever = MultiViewRetriever(mock_index, embedder)

        result = await retriever.retrieve(TEN_LINES, "const a", 3)

        assert result.combined == []
        embedder.embed_one.assert_not_awaited()

    async def test_cancelled_token_stops_before_embedding(self, mock_index, embedder):
        token = CancellationToken()
        token.cancel()
        retriever = MultiViewRetriever(mock_index, embedder)

        with pytest.raises(RequestCancelled):
            await retriever.retrieve(TEN_LINES, "const a", 3, token=token)

        embedder.embed_one.assert_not_awaited()
        mock_index.query.assert_not_called()

    async def test_against_real_index(self, index, embedder):
        index.insert(fake_vector("const a"), make_chunk("a.ts", 0, "const a"))
        index.insert(fake_vector("unrelated"), make_chunk("z.ts", 0, "unrelated"))
        retriever = MultiViewRetriever(index, embedder)

        result = await retriever.retrieve("const a", "const a", 0, top_k=1)

        assert [i.source_file for i in result.combined] == ["a.ts"]
        assert result.combined[0].score == pytest.approx(0.55, abs=1e-4)

    async def test_unexpected_embedding_error_degrades_view(self, mock_index, embedder):
        async def invalid_url_on_line_view(text):
            if "\n" not in text:
                raise httpx.InvalidURL("bad embedding endpoint")
            return fake_vector(text)

        embedder.embed_one.side_effect = invalid_url_on_line_view
        retriever = MultiViewRetriever(mock_index, embedder)

        result = await retriever.retrieve(TEN_LINES, "const a", 3)

        assert result.by_line == []
        assert len(result.by_window) == 2

    async def test_unexpected_query_error_degrades_view(self, mock_index, embedder):
        mock_index.query.side_effect = RuntimeError("faiss search crashed")
        retriever = MultiViewRetriever(mock_index, embedder)

        result = await retriever.retrieve(TEN_LINES, "const a", 3)

        assert result.combined == []
