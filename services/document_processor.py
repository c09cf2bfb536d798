# services/document_processor.py
"""Turn raw knowledge-base articles into overlapping, content-addressed chunks"""
import asyncio
import logging
import time
from pathlib import Path
from typing import Iterable, List, Sequence, Union

from langchain_core.documents import Document as LangchainDocument
from langchain_text_splitters import RecursiveCharacterTextSplitter

from config import LOGGER_NAME
from core.domain import Chunk, DocumentLoadResult
from core.errors import DocumentProcessingError, ErrorCode
from core.interfaces import ITextExtractor
from utils.common import generate_chunk_id, get_file_extension

logger = logging.getLogger(LOGGER_NAME)

# Paragraph > line > sentence > word > hard character cut
SEMANTIC_SEPARATORS: List[str] = ["\n\n", "\n", ". ", "? ", "! ", "; ", ", ", " ", ""]

PathLike = Union[str, Path]


def discover_sources(data_path: PathLike, extensions: Iterable[str]) -> List[Path]:
    """Sorted files directly under data_path whose extension is accepted."""
    root = Path(data_path)
    if not root.is_dir():
        raise FileNotFoundError(f"Data dir not found: {root}")

    accepted = {ext.lower().lstrip('.') for ext in extensions}
    return sorted(
        p for p in root.iterdir()
        if p.is_file() and get_file_extension(p.name) in accepted
    )


class DocumentProcessor:
    """
    Extracts text from source documents and splits it into Chunks.

    A failing document yields zero chunks and is logged; it never affects the
    other documents of the same load.
    """

    def __init__(
        self,
        text_extractor: ITextExtractor,
        chunk_size: int = 1000,
        chunk_overlap: int = 200
    ) -> None:
        self.text_extractor = text_extractor
        self.text_splitter = RecursiveCharacterTextSplitter(
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
            separators=SEMANTIC_SEPARATORS
        )

    async def _extract_and_split(self, raw: bytes, source_id: str) -> List[Chunk]:
        """
        Raises:
            DocumentProcessingError: extraction or splitting failed, or the body is empty.
        """
        try:
            extracted = await asyncio.to_thread(self.text_extractor.extract, raw, source_id)
        except Exception as e:
            raise DocumentProcessingError(
                f"Text extraction failed for {source_id}: {e}", ErrorCode.PROCESSING_FAILED
            ) from e

        if not extracted.body_text.strip():
            raise DocumentProcessingError(f"No content found in {source_id}", ErrorCode.NO_TEXT_FOUND)

        try:
            docs = self.text_splitter.split_documents([
                LangchainDocument(
                    page_content=extracted.body_text,
                    metadata={"source": source_id, "title": extracted.title}
                )
            ])
        except Exception as e:
            raise DocumentProcessingError(
                f"Splitting failed for {source_id}: {e}", ErrorCode.PROCESSING_FAILED
            ) from e

        return [
            Chunk(
                content=doc.page_content,
                source_id=source_id,
                chunk_index=index,
                chunk_id=generate_chunk_id(doc.page_content, source_id, index),
                title=extracted.title,
            )
            for index, doc in enumerate(docs)
        ]

    async def process_document(self, raw: bytes, source_id: str) -> List[Chunk]:
        """Extract, split and identify one document. Returns [] on any failure."""
        try:
            chunks = await self._extract_and_split(raw, source_id)
        except DocumentProcessingError as e:
            if e.error_code == ErrorCode.NO_TEXT_FOUND:
                logger.warning(f"{e}, skipping")
            else:
                logger.error(str(e), exc_info=True)
            return []

        logger.info(f"{source_id}: {len(chunks)} chunks created")
        return chunks

    async def process_file(self, path: PathLike) -> List[Chunk]:
        """Read one file and process it; the file name is the source id."""
        path = Path(path)
        try:
            raw = await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            logger.error(f"Could not read {path}: {e}")
            return []
        return await self.process_document(raw, path.name)

    async def load_all_documents(self, source_paths: Sequence[PathLike]) -> DocumentLoadResult:
        """Process every file concurrently and flatten the chunks in input order."""
        start = time.perf_counter()
        logger.info(f"Processing {len(source_paths)} files in parallel...")

        per_file = await asyncio.gather(*(self.process_file(p) for p in source_paths))

        result = DocumentLoadResult(
            chunks=[chunk for chunks in per_file for chunk in chunks],
            files_attempted=len(source_paths),
            files_with_chunks=sum(1 for chunks in per_file if chunks),
            elapsed_seconds=time.perf_counter() - start,
        )

        logger.info(
            f"File processing summary: {result.files_with_chunks}/{result.files_attempted} files "
            f"produced chunks, {result.total_chunks} chunks total, "
            f"average chunk size {result.average_chunk_size} characters, "
            f"{result.elapsed_seconds:.2f}s"
        )
        return result
