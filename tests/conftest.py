# tests/conftest.py
import hashlib
import re
from typing import Dict, List, Optional
from unittest.mock import MagicMock

import numpy as np
import pytest

from config import Settings
from core.domain import Chunk, ExtractedDocument
from core.interfaces import IEmbeddingService, ILLMService, ITextExtractor
from utils.common import generate_chunk_id

_TOKEN = re.compile(r"\w+")


class HashingEmbeddingService(IEmbeddingService):
    """Deterministic bag-of-words embedding: every token hashes to one dimension."""

    def __init__(self, dim: int = 256):
        self.dim = dim
        self.calls = 0
        self.embedded_texts: List[str] = []

    def embed(self, text: str) -> List[float]:
        vec = np.zeros(self.dim, dtype="float32")
        for token in _TOKEN.findall(text.lower()):
            vec[int(hashlib.md5(token.encode("utf-8")).hexdigest(), 16) % self.dim] += 1.0
        norm = np.linalg.norm(vec)
        if norm == 0:
            vec[0] = 1.0
        else:
            vec /= norm
        return vec.tolist()

    async def generate_embeddings(self, texts: List[str], batch_size: Optional[int] = None) -> List[List[float]]:
        self.calls += 1
        self.embedded_texts.extend(texts)
        return [self.embed(t) for t in texts]

    async def generate_query_embedding(self, query: str) -> List[float]:
        self.calls += 1
        return self.embed(query)


class StaticTextExtractor(ITextExtractor):
    """Returns a fixed body per source id; raises for ids listed in `failing`."""

    def __init__(self, bodies: Dict[str, str], failing: tuple = ()):
        self.bodies = bodies
        self.failing = set(failing)

    def extract(self, raw: bytes, source_id: str) -> ExtractedDocument:
        if source_id in self.failing:
            raise ValueError(f"cannot parse {source_id}")
        return ExtractedDocument(title=f"Titel {source_id}", body_text=self.bodies.get(source_id, ""))


def make_chunk(content: str, source_id: str = "doc.html", chunk_index: int = 0, embedding=None) -> Chunk:
    return Chunk(
        content=content,
        source_id=source_id,
        chunk_index=chunk_index,
        chunk_id=generate_chunk_id(content, source_id, chunk_index),
        title=source_id,
        embedding=embedding,
    )


def make_chunks(n: int, source_id: str = "doc.html") -> List[Chunk]:
    return [make_chunk(f"chunk nummer {i} over onderwerp {i}", source_id, i) for i in range(n)]


@pytest.fixture
def embedding_service() -> HashingEmbeddingService:
    return HashingEmbeddingService()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        DATA_PATH=str(tmp_path / "data"),
        SNAPSHOT_PATH=str(tmp_path / "storage" / "vectorstore.json"),
        LOG_FILE_PATH=str(tmp_path / "log" / "rag_system.log"),
        INSERT_BATCH_SIZE=2,
        INSERT_CONCURRENCY=3,
        REQUEST_TIMEOUT=5,
    )


@pytest.fixture
def llm() -> MagicMock:
    fake = MagicMock(spec=ILLMService)
    fake.chat.return_value = {"answer": "Een antwoord uit de context.", "status": "success"}
    return fake


SALDERING_HTML = b"""<html>
<head><title>Terugleververgoeding bij zonnepanelen</title>
<script>var tracking = "saldering";</script></head>
<body>
<h1>Terugleververgoeding bij zonnepanelen</h1>
<p>Saldering is de regeling waarbij de stroom die je zonnepanelen terugleveren
wordt verrekend met de stroom die je verbruikt.</p>

<p>Zonneplan betaalt daarnaast een terugleververgoeding voor teruggeleverde stroom.</p>
</body></html>"""

WARMTEPOMP_HTML = b"""<html><head><title>Warmtepomp installeren</title></head>
<body><p>Een hybride warmtepomp verwarmt je huis grotendeels elektrisch.</p></body></html>"""

LENING_HTML = b"""<html><head><title>Financiering</title></head>
<body><p>Met een lening financier je de aanschaf in maandelijkse termijnen.</p></body></html>"""


@pytest.fixture
def knowledge_base(tmp_path):
    """Three crawled articles on disk, as the ingest command finds them."""
    data = tmp_path / "data"
    data.mkdir()
    (data / "energie_terugleververgoeding-bij-zonnepanelen.html").write_bytes(SALDERING_HTML)
    (data / "warmtepomp_installatie.html").write_bytes(WARMTEPOMP_HTML)
    (data / "financiering_lening.html").write_bytes(LENING_HTML)
    (data / "notities.txt").write_text("geen html")
    return data
