# core/domain.py
"""Domain models shared across the pipeline."""
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional

# ============= Enums =============

class ProbeStatus(str, Enum):
    """Outcome of a networked vector store connectivity probe."""
    CONNECTED = "connected"
    UNAVAILABLE = "unavailable"


class BackendChoice(str, Enum):
    """Which vector store a session or ingestion run commits to."""
    NETWORKED = "networked"
    LOCAL_SNAPSHOT = "local_snapshot"
    LOCAL_EMPTY = "local_empty"


# ============= Domain Models =============

@dataclass(frozen=True)
class Chunk:
    """Unit of retrievable knowledge. Immutable once created."""
    content: str
    source_id: str
    chunk_index: int
    chunk_id: str
    title: str
    embedding: Optional[List[float]] = None

    @property
    def metadata(self) -> Dict[str, Any]:
        """Flat metadata stored next to the text in both backends."""
        return {
            "source": self.source_id,
            "title": self.title,
            "chunkIndex": self.chunk_index,
            "chunkId": self.chunk_id,
        }

    @classmethod
    def from_metadata(
        cls,
        content: str,
        metadata: Dict[str, Any],
        embedding: Optional[List[float]] = None
    ) -> "Chunk":
        """Rebuild a chunk from stored text + metadata."""
        return cls(
            content=content,
            source_id=metadata.get("source", ""),
            chunk_index=int(metadata.get("chunkIndex", 0)),
            chunk_id=metadata.get("chunkId", ""),
            title=metadata.get("title", ""),
            embedding=embedding,
        )

    def with_embedding(self, embedding: List[float]) -> "Chunk":
        return replace(self, embedding=list(embedding))


@dataclass
class ExtractedDocument:
    """Output of the text-extraction collaborator."""
    title: str
    body_text: str


@dataclass
class ChunkSearchResult:
    """A retrieved chunk with its similarity score in [0, 1]"""
    chunk: Chunk
    score: float


@dataclass
class RetrievalResult:
    """Chunks ordered by descending similarity."""
    results: List[ChunkSearchResult] = field(default_factory=list)

    @property
    def chunks(self) -> List[Chunk]:
        return [r.chunk for r in self.results]

    @property
    def sources(self) -> List[str]:
        """Source ids deduplicated in first-seen order."""
        return list(dict.fromkeys(r.chunk.source_id for r in self.results))

    @property
    def is_empty(self) -> bool:
        return not self.results

    def __len__(self) -> int:
        return len(self.results)


@dataclass
class ChatResponse:
    """Answer returned to the caller of the chatbot."""
    answer: str
    sources: List[str] = field(default_factory=list)
    found_relevant_info: bool = False

    def __post_init__(self):
        if not self.found_relevant_info and self.sources:
            raise ValueError("sources must be empty when found_relevant_info is False")


@dataclass
class DocumentLoadResult:
    """Chunks produced from a set of source files, with aggregate statistics."""
    chunks: List[Chunk]
    files_attempted: int
    files_with_chunks: int
    elapsed_seconds: float = 0.0

    @property
    def total_chunks(self) -> int:
        return len(self.chunks)

    @property
    def average_chunk_size(self) -> int:
        if not self.chunks:
            return 0
        return round(sum(len(c.content) for c in self.chunks) / len(self.chunks))


@dataclass
class BatchResult:
    """Outcome of one batch handed to the worker pool (batch_number is 1-based)."""
    batch_number: int
    size: int
    success: bool
    value: Any = None
    error: Optional[str] = None


@dataclass
class BackendProbeResult:
    """Connected(handle) | Unavailable(reason)."""
    status: ProbeStatus
    backend: Any = None
    reason: Optional[str] = None

    @classmethod
    def connected(cls, backend: Any) -> "BackendProbeResult":
        return cls(status=ProbeStatus.CONNECTED, backend=backend)

    @classmethod
    def unavailable(cls, reason: str) -> "BackendProbeResult":
        return cls(status=ProbeStatus.UNAVAILABLE, reason=reason)

    @property
    def is_connected(self) -> bool:
        return self.status == ProbeStatus.CONNECTED


@dataclass
class IngestionReport:
    """What an ingestion run produced and where it went."""
    backend: Any
    backend_name: str
    total_chunks: int
    total_batches: int = 0
    failed_batches: List[int] = field(default_factory=list)
    snapshot_path: Optional[str] = None
    used_fallback: bool = False
    elapsed_seconds: float = 0.0

    @property
    def succeeded_batches(self) -> int:
        return self.total_batches - len(self.failed_batches)
