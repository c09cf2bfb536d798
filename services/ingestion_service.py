# services/ingestion_service.py
"""Ingestion: documents -> chunks -> networked store (batched) + local snapshot"""
import logging
import time
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Sequence, Union

from config import LOGGER_NAME, Settings
from core.domain import BackendProbeResult, BatchResult, Chunk, IngestionReport
from core.errors import IngestionError
from core.interfaces import IEmbeddingService, IVectorStore
from services.async_processor import BatchWorkerPool, partition
from services.document_processor import DocumentProcessor
from services.factory import connect_networked_store, create_local_store

logger = logging.getLogger(LOGGER_NAME)


class IngestionService:
    """
    Orchestrates a full ingestion run.

    Networked path: chunks are inserted in batches of INSERT_BATCH_SIZE by
    INSERT_CONCURRENCY workers; a failing batch is recorded and skipped.
    Afterwards the full chunk set (failed batches included) is written to the
    local snapshot, which is therefore the complete copy of the run. Failed
    batch numbers are reported so the gap in the networked store is visible.

    Fallback path (forced, or networked store unreachable): the local store
    is built from all chunks and persisted.
    """

    def __init__(
        self,
        settings: Settings,
        document_processor: DocumentProcessor,
        embedding_service: IEmbeddingService,
        connect_networked: Optional[Callable[[], Awaitable[BackendProbeResult]]] = None
    ):
        self.settings = settings
        self.document_processor = document_processor
        self.embedding_service = embedding_service
        self._connect_networked = connect_networked or (
            lambda: connect_networked_store(settings, embedding_service)
        )
        self.worker_pool = BatchWorkerPool(
            concurrency=settings.INSERT_CONCURRENCY,
            timeout=settings.REQUEST_TIMEOUT
        )

    async def ingest(
        self,
        source_paths: Sequence[Union[str, Path]],
        force_local: bool = False
    ) -> IngestionReport:
        start = time.perf_counter()

        loaded = await self.document_processor.load_all_documents(source_paths)
        if not loaded.chunks:
            raise IngestionError(
                f"No documents were successfully processed ({loaded.files_attempted} files attempted)"
            )

        if force_local:
            logger.info("Networked store skipped on request; building local store")
            report = await self._build_local_store(loaded.chunks)
        else:
            probe = await self._connect_networked()
            if probe.is_connected:
                report = await self._ingest_networked(probe.backend, loaded.chunks)
            else:
                logger.warning(f"Networked store unavailable ({probe.reason}); falling back to local store")
                report = await self._build_local_store(loaded.chunks)

        report.elapsed_seconds = time.perf_counter() - start
        logger.info(
            f"Ingestion finished in {report.elapsed_seconds:.2f}s: {report.total_chunks} chunks "
            f"into {report.backend_name}"
        )
        return report

    async def _ingest_networked(self, store: IVectorStore, chunks: List[Chunk]) -> IngestionReport:
        batches = partition(chunks, self.settings.INSERT_BATCH_SIZE)
        logger.info(
            f"Adding {len(chunks)} chunks to {store.name} in {len(batches)} batches of "
            f"{self.settings.INSERT_BATCH_SIZE} (concurrency {self.settings.INSERT_CONCURRENCY})"
        )

        results = await self.worker_pool.run(batches, store.add_chunks, label="Insert batch")
        failed = [r.batch_number for r in results if not r.success]
        if failed:
            logger.warning(
                f"{len(failed)}/{len(batches)} batches failed ({failed}); their chunks may be missing "
                f"from {store.name} (a timed-out insert can still land) and are kept in the local snapshot"
            )
        else:
            logger.info(f"All {len(batches)} batches stored in {store.name}")

        snapshot_path = await self._persist_safety_copy(_merge_embedded(batches, results))

        return IngestionReport(
            backend=store,
            backend_name=store.name,
            total_chunks=len(chunks),
            total_batches=len(batches),
            failed_batches=failed,
            snapshot_path=snapshot_path,
            used_fallback=False,
        )

    async def _persist_safety_copy(self, chunks: List[Chunk]) -> Optional[str]:
        """Secondary copy of a networked run. A failure here does not undo the run."""
        try:
            local = create_local_store(self.settings, self.embedding_service)
            await local.add_chunks(chunks)
            return await local.save(self.settings.SNAPSHOT_PATH)
        except Exception as e:
            logger.error(f"Could not write local safety snapshot: {e}", exc_info=True)
            return None

    async def _build_local_store(self, chunks: List[Chunk]) -> IngestionReport:
        local = create_local_store(self.settings, self.embedding_service)
        await local.add_chunks(chunks)
        snapshot_path = await local.save(self.settings.SNAPSHOT_PATH)

        return IngestionReport(
            backend=local,
            backend_name=local.name,
            total_chunks=len(chunks),
            snapshot_path=snapshot_path,
            used_fallback=True,
        )


def _merge_embedded(batches: List[List[Chunk]], results: List[BatchResult]) -> List[Chunk]:
    """Chunks in original order, taking the embedded copy wherever the batch succeeded."""
    merged: List[Chunk] = []
    for batch, result in zip(batches, results):
        stored = result.value if result.success and isinstance(result.value, list) else None
        merged.extend(stored if stored and len(stored) == len(batch) else batch)
    return merged
