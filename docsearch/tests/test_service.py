"""End-to-end tests for DocumentSearchService over the in-memory backend."""

import pytest

from docsearch.errors import InvalidInputError, NotFoundError
from docsearch.pipeline.config import Config
from docsearch.service import create_index, create_service
from docsearch.storage.memory import InMemoryVectorIndex
from docsearch.storage.vectorstore import PgVectorIndex

INVOICE_TEXT = (
    "Fitzer GmbH invoice for the delivery of replacement rotor blades. "
    "The amount is due within thirty days of the invoice date."
)
MANUAL_TEXT = (
    "Drone maintenance manual. Inspect the rotor blades before every flight "
    "and replace cracked blades immediately."
)


class TestIngestion:
    @pytest.mark.asyncio
    async def test_index_text_then_search(self, service):
        async with service:
            result = await service.index_text(INVOICE_TEXT, title="Fitzer invoice")
            await service.index_text(MANUAL_TEXT, title="Drone manual")

            results = await service.search("Fitzer invoice")

        assert result.status == "indexed"
        assert results[0].document_id == result.doc_id
        assert results[0].document_title == "Fitzer invoice"

    @pytest.mark.asyncio
    async def test_index_directory(self, service, docs_dir):
        report = await service.index_document(str(docs_dir))

        assert report["total"] == 3
        assert report["indexed"] == 3
        documents = await service.list_documents()
        assert len(documents) == 3

        report = await service.index_document(str(docs_dir))
        assert report["skipped"] == 3

    @pytest.mark.asyncio
    async def test_index_missing_path(self, service, tmp_path):
        with pytest.raises(InvalidInputError):
            await service.index_document(str(tmp_path / "missing"))

    @pytest.mark.asyncio
    async def test_remove_document(self, service):
        result = await service.index_text(INVOICE_TEXT, title="Fitzer invoice")

        removed = await service.remove_document(result.doc_id)

        assert removed == result.chunks_added
        assert await service.search("Fitzer invoice") == []
        with pytest.raises(NotFoundError):
            await service.get_document(result.doc_id)


    @pytest.mark.asyncio
    async def test_remove_path_after_file_is_deleted(self, service, docs_dir):
        await service.index_document(str(docs_dir))
        notes = docs_dir / "notes.txt"
        notes.unlink()

        removed = await service.remove_path(notes)

        assert removed >= 1
        assert (await service.stats()).total_documents == 2
        with pytest.raises(NotFoundError):
            await service.remove_path(notes)


class TestRebuild:
    @pytest.mark.asyncio
    async def test_clear_reports_counts(self, service, docs_dir):
        await service.index_document(str(docs_dir))
        before = await service.stats()

        report = await service.clear()

        assert report == {
            "reset": False,
            "documents_deleted": 3,
            "chunks_deleted": before.total_chunks,
        }
        assert (await service.stats()).total_documents == 0
        assert service.pipeline._states == {}

    @pytest.mark.asyncio
    async def test_reset_empties_index(self, service):
        result = await service.index_text(INVOICE_TEXT, title="Fitzer invoice")

        report = await service.clear(reset=True)

        assert report["reset"] is True
        assert report["documents_deleted"] is None
        assert await service.index.get_document(result.doc_id) is None
        assert service.pipeline.state(result.doc_id) is None

    @pytest.mark.asyncio
    async def test_reindex_rebuilds_from_path(self, service, docs_dir):
        await service.index_text(INVOICE_TEXT, title="Fitzer invoice")
        await service.index_document(str(docs_dir))

        report = await service.reindex(docs_dir)

        assert report["cleared"]["documents_deleted"] == 4
        assert report["indexed"] == 3
        assert report["skipped"] == 0
        assert (await service.stats()).total_documents == 3

    @pytest.mark.asyncio
    async def test_reindex_defaults_to_docs_dir(self, config, memory_index, embedder, docs_dir):
        config.indexing.docs_dir = str(docs_dir)
        service = create_service(config, index=memory_index, embedder=embedder)

        report = await service.reindex()

        assert service.docs_dir == docs_dir
        assert report["indexed"] == 3

    @pytest.mark.asyncio
    async def test_reindex_missing_path_keeps_index(self, service, tmp_path):
        await service.index_text(INVOICE_TEXT, title="Fitzer invoice")

        with pytest.raises(InvalidInputError):
            await service.reindex(tmp_path / "missing")

        assert (await service.stats()).total_documents == 1


class TestQueries:
    @pytest.mark.asyncio
    async def test_get_context(self, service):
        await service.index_text(INVOICE_TEXT, title="Fitzer invoice")
        await service.index_text(MANUAL_TEXT, title="Drone manual")

        bundle = await service.get_context("rotor blades", threshold=0.1)

        assert bundle.context.startswith("[1] ")
        assert set(bundle.document_ids) == {
            d.id for d in await service.list_documents()
        }

    @pytest.mark.asyncio
    async def test_document_scoped_queries(self, service):
        result = await service.index_text(MANUAL_TEXT, title="Drone manual")
        await service.index_text(INVOICE_TEXT, title="Fitzer invoice")

        within = await service.search_within_document(result.doc_id, "rotor blades")
        context = await service.get_document_context(result.doc_id)
        similar = await service.find_similar_chunks(context["chunks"][0].chunk_id)

        assert {r.document_id for r in within} == {result.doc_id}
        assert context["document"].title == "Drone manual"
        assert all(r.chunk_id != context["chunks"][0].chunk_id for r in similar)

    @pytest.mark.asyncio
    async def test_list_documents_with_filters(self, service):
        await service.index_text(INVOICE_TEXT, title="Fitzer invoice")
        await service.index_text(MANUAL_TEXT, title="Drone manual")

        invoices = await service.list_documents(filters={"document_type": "invoice"})

        assert [d.title for d in invoices] == ["Fitzer invoice"]


class TestDiagnostics:
    @pytest.mark.asyncio
    async def test_stats(self, service):
        await service.index_text(INVOICE_TEXT, title="Fitzer invoice")

        stats = await service.stats()

        assert stats.total_documents == 1
        assert stats.total_chunks >= 1
        assert stats.by_type == {"invoice": 1}

    @pytest.mark.asyncio
    async def test_embedding_check(self, service):
        report = await service.test_embedding_service()

        assert report["ok"] is True
        assert report["actual_dimension"] == report["expected_dimension"]

    @pytest.mark.asyncio
    async def test_close_releases_embedder(self, service, embedder):
        async with service:
            pass

        assert embedder.closed


class TestFactory:
    def test_memory_backend(self, config):
        index = create_index(config)

        assert isinstance(index, InMemoryVectorIndex)
        assert index.dimension == config.embedding.dimensions

    def test_postgres_backend(self):
        config = Config.from_dict(
            {"storage": {"backend": "postgres", "database_url": "postgresql://localhost/docs"}}
        )

        assert isinstance(create_index(config), PgVectorIndex)

    def test_postgres_backend_requires_url(self, monkeypatch):
        for name in ("DATABASE_URL", "POSTGRES_HOST", "POSTGRES_USER", "POSTGRES_DB"):
            monkeypatch.delenv(name, raising=False)

        with pytest.raises(ValueError, match="database_url"):
            create_service(Config.from_dict({"storage": {"backend": "postgres"}}))
