# tests/test_ingestion_service.py
import json
import logging
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from config import LOGGER_NAME
from core.domain import BackendProbeResult, DocumentLoadResult
from core.errors import IngestionError, VectorStoreError
from services.document_processor import DocumentProcessor
from services.ingestion_service import IngestionService

from conftest import StaticTextExtractor, make_chunks


def _processor_returning(chunks):
    processor = MagicMock(spec=DocumentProcessor)
    processor.load_all_documents = AsyncMock(return_value=DocumentLoadResult(
        chunks=chunks, files_attempted=1, files_with_chunks=1 if chunks else 0
    ))
    return processor


def _networked_store(embedding_service, failing_batch_start=None):
    """Stand-in for ChromaDB: rejects the batch that starts at failing_batch_start."""
    store = MagicMock()
    store.name = "ChromaDB"

    async def add_chunks(batch):
        if batch[0].chunk_index == failing_batch_start:
            raise VectorStoreError("batch rejected")
        return [c.with_embedding(embedding_service.embed(c.content)) for c in batch]

    store.add_chunks = AsyncMock(side_effect=add_chunks)
    return store


def _snapshot(settings):
    return json.loads(Path(settings.SNAPSHOT_PATH).read_text(encoding="utf-8"))


@pytest.mark.asyncio
async def test_failed_batch_is_reported_and_others_succeed(settings, embedding_service):
    chunks = make_chunks(10)
    store = _networked_store(embedding_service, failing_batch_start=4)
    service = IngestionService(
        settings, _processor_returning(chunks), embedding_service,
        connect_networked=AsyncMock(return_value=BackendProbeResult.connected(store))
    )

    report = await service.ingest(["doc.html"])

    assert store.add_chunks.await_count == 5
    assert report.total_batches == 5
    assert report.failed_batches == [3]
    assert report.succeeded_batches == 4
    assert report.backend is store
    assert not report.used_fallback


@pytest.mark.asyncio
async def test_failed_batch_warning_does_not_claim_chunks_are_absent(settings, embedding_service, caplog):
    caplog.set_level(logging.WARNING, logger=LOGGER_NAME)
    store = _networked_store(embedding_service, failing_batch_start=4)
    service = IngestionService(
        settings, _processor_returning(make_chunks(10)), embedding_service,
        connect_networked=AsyncMock(return_value=BackendProbeResult.connected(store))
    )

    await service.ingest(["doc.html"])

    warnings = [r.getMessage() for r in caplog.records if r.levelno == logging.WARNING]
    assert any("1/5 batches failed ([3])" in w for w in warnings)
    assert any("may be missing from ChromaDB" in w for w in warnings)
    assert not any("are missing" in w for w in warnings)


@pytest.mark.asyncio
async def test_snapshot_is_the_complete_copy(settings, embedding_service):
    chunks = make_chunks(10)
    store = _networked_store(embedding_service, failing_batch_start=4)
    service = IngestionService(
        settings, _processor_returning(chunks), embedding_service,
        connect_networked=AsyncMock(return_value=BackendProbeResult.connected(store))
    )

    report = await service.ingest(["doc.html"])

    assert report.snapshot_path == settings.SNAPSHOT_PATH
    data = _snapshot(settings)
    assert [d["metadata"]["chunkId"] for d in data["documents"]] == [c.chunk_id for c in chunks]
    # only the two chunks of the rejected batch needed embedding locally
    assert embedding_service.embedded_texts == [chunks[4].content, chunks[5].content]


@pytest.mark.asyncio
async def test_unreachable_store_falls_back_to_local(settings, embedding_service):
    chunks = make_chunks(3)
    service = IngestionService(
        settings, _processor_returning(chunks), embedding_service,
        connect_networked=AsyncMock(return_value=BackendProbeResult.unavailable("refused"))
    )

    report = await service.ingest(["doc.html"])

    assert report.used_fallback
    assert report.backend_name == "FAISS (in-memory)"
    assert await report.backend.count() == 3
    assert len(_snapshot(settings)["documents"]) == 3


@pytest.mark.asyncio
async def test_force_local_skips_the_probe(settings, embedding_service):
    connect = AsyncMock()
    service = IngestionService(
        settings, _processor_returning(make_chunks(2)), embedding_service, connect_networked=connect
    )

    report = await service.ingest(["doc.html"], force_local=True)

    connect.assert_not_awaited()
    assert report.used_fallback
    assert Path(settings.SNAPSHOT_PATH).is_file()


@pytest.mark.asyncio
async def test_no_chunks_is_an_error(settings, embedding_service):
    connect = AsyncMock()
    service = IngestionService(
        settings, _processor_returning([]), embedding_service, connect_networked=connect
    )

    with pytest.raises(IngestionError):
        await service.ingest(["leeg.html"])
    connect.assert_not_awaited()
    assert not Path(settings.SNAPSHOT_PATH).exists()


@pytest.mark.asyncio
async def test_reingestion_produces_identical_snapshot(settings, embedding_service, tmp_path):
    source = tmp_path / "saldering.html"
    source.write_bytes(b"<html></html>")
    processor = DocumentProcessor(
        StaticTextExtractor({"saldering.html": "Saldering.\n\n" + "Terugleveren loont. " * 120}),
        chunk_size=settings.CHUNK_SIZE,
        chunk_overlap=settings.CHUNK_OVERLAP
    )
    service = IngestionService(settings, processor, embedding_service)

    await service.ingest([source], force_local=True)
    first = _snapshot(settings)
    await service.ingest([source], force_local=True)
    second = _snapshot(settings)

    assert first == second
    ids = [d["metadata"]["chunkId"] for d in first["documents"]]
    assert len(ids) == len(set(ids)) > 1
