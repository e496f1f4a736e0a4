import httpx
import pytest

from codeflow_context.embeddings.index import FaissIndex
from codeflow_context.ingestion.pipeline import (
    IngestOptions,
    discover_files,
    ingest,
    rebuild,
)
from codeflow_context.projects import InvalidProjectError

from conftest import fake_vector


def write(root, rel, content):
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


@pytest.fixture
def small_project(project):
    write(project, "README.md", "# Admin Template\n\nA Vue3 admin scaffold with tables.\n")
    write(project, "src/api/user.ts", "export function getUser(id: number) {\n  return http.get(`/user/${id}`)\n}\n")
    write(project, "src/views/List.vue", "<template>\n  <simple-table :columns=\"cols\" />\n</template>\n")
    return project


class TestIdempotence:

    async def test_second_run_inserts_nothing(self, small_project, index, embedder):
        first = await ingest(small_project, index=index, embedder=embedder)
        size_after_first = len(index)

        second = await ingest(small_project, index=index, embedder=embedder)

        assert first.chunks_inserted == size_after_first > 0
        assert second.files_scanned == first.files_scanned
        assert second.chunks_inserted == 0
        assert second.skipped_duplicate == first.chunks_inserted
        assert len(index) == size_after_first

    async def test_rerun_from_persisted_store(self, small_project, tmp_path, embedder):
        location = tmp_path / "persisted"
        first = await ingest(small_project, index=FaissIndex(location), embedder=embedder)

        reopened = FaissIndex(location)
        second = await ingest(small_project, index=reopened, embedder=embedder)

        assert second.chunks_inserted == 0
        assert len(reopened) == first.chunks_inserted

    async def test_without_dedup_store_grows(self, small_project, index, embedder):
        options = IngestOptions(deduplicate=False)
        first = await ingest(small_project, options, index=index, embedder=embedder)
        await ingest(small_project, options, index=index, embedder=embedder)

        assert len(index) == 2 * first.chunks_inserted


class TestLengthFiltering:

    async def test_doc_boundary_at_twelve(self, project, index, embedder):
        write(project, "notes.md", "a" * 11 + "\n\n" + "b" * 12 + "\n")

        report = await ingest(project, index=index, embedder=embedder)

        assert report.chunks_inserted == 1
        assert report.skipped_short == 1
        hit = index.query(fake_vector("b" * 12), k=1)[0]
        assert hit.chunk.text == "b" * 12
        assert hit.chunk.sequence_index == 1
        assert hit.chunk.extension == ".md"

    async def test_code_boundary_at_six(self, project, index, embedder):
        write(project, "five.ts", "abcde")
        write(project, "six.ts", "abcdef")

        report = await ingest(project, index=index, embedder=embedder)

        assert report.chunks_inserted == 1
        assert index.get_stats()["indexed_files"] == ["six.ts"]


class TestFailureIsolation:

    async def test_unreadable_file_is_skipped(self, project, index, embedder):
        (project / "broken.ts").write_bytes(b"\xff\xfe\xfa not utf-8")
        write(project, "ok.ts", "export const ok = true")

        report = await ingest(project, index=index, embedder=embedder)

        assert report.files_scanned == 2
        assert report.read_failures == 1
        assert report.chunks_inserted == 1

    async def test_embedding_failure_skips_chunk_only(self, project, index, embedder):
        write(project, "bad.ts", "const EMBED_FAIL = 1")
        write(project, "good.ts", "const fine = 1")

        report = await ingest(project, index=index, embedder=embedder)

        assert report.embedding_failures == 1
        assert report.chunks_inserted == 1
        assert report.failures == 1

    async def test_missing_root_rejected(self, tmp_path, index, embedder):
        with pytest.raises(InvalidProjectError):
            await ingest(tmp_path / "nope", index=index, embedder=embedder)


class TestDiscovery:

    def test_vendor_directories_excluded(self, project):
        write(project, "node_modules/lib/index.js", "module.exports = {}")
        write(project, "src/deep/node_modules/x.ts", "export {}")
        write(project, "src/app.ts", "export {}")
        write(project, "image.png", "not text")

        found = [p.relative_to(project).as_posix() for p in discover_files(project)]

        assert found == ["src/app.ts"]


class TestProgressAndRebuild:

    async def test_progress_events(self, small_project, index, embedder):
        events = []
        await ingest(small_project, index=index, embedder=embedder, on_progress=events.append)

        assert [e.files_done for e in events] == [1, 2, 3]
        assert all(e.files_total == 3 for e in events)

    async def test_rebuild_drops_stale_chunks(self, small_project, index, embedder):
        await ingest(small_project, index=index, embedder=embedder)
        (small_project / "src/views/List.vue").unlink()

        report = await rebuild(small_project, index=index, embedder=embedder)

        assert report.files_scanned == 2
        assert "src/views/List.vue" not in index.get_stats()["indexed_files"]
        assert len(index) == report.chunks_inserted


class TestUnexpectedFailures:

    async def test_unexpected_embedding_error_skips_chunk(self, project, index, embedder):
        async def invalid_url_for_a(text):
            if "alpha" in text:
                raise httpx.InvalidURL("bad embedding endpoint")
            return fake_vector(text)

        embedder.embed_one.side_effect = invalid_url_for_a
        write(project, "a.ts", "const alpha = 1")
        write(project, "b.ts", "const beta = 2")

        report = await ingest(project, index=index, embedder=embedder)

        assert report.embedding_failures == 1
        assert report.chunks_inserted == 1
        assert index.dedup_keys() == {"b.ts::0::14"}

    async def test_aborted_run_keeps_inserted_chunks(self, project, tmp_path, embedder):
        write(project, "a.ts", "const alpha = 1")
        write(project, "b.ts", "const beta = 2")
        location = tmp_path / "aborted"

        def stop_after_first(event):
            raise RuntimeError("stop")

        with pytest.raises(RuntimeError):
            await ingest(project, index=FaissIndex(location), embedder=embedder, on_progress=stop_after_first)

        reopened = FaissIndex(location)
        reopened.load()
        assert reopened.dedup_keys() == {"a.ts::0::15"}
