"""
Document registry and ingestion pipeline.

Ingestion (re)chunks a document, rebuilds its lexical entries wholesale
and replaces its chunk vectors. Mutations are serialized through one
asyncio lock; queries never take it.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from ..models import Document, utc_now_iso
from ..parsers import StructuredChunker, TextChunker, chunk_for_embedding
from ..storage import PersistentStore
from .embedder import CachingEmbedder
from .lexical import LexicalIndex
from .vector_store import ChunkVectorStore

logger = logging.getLogger(__name__)


class DocumentRegistry(PersistentStore):
    """The set of ingested documents, in insertion order."""

    store_name = "document registry"

    def __init__(self, path=None):
        super().__init__(path)
        self.documents: dict[str, Document] = {}

    def __len__(self) -> int:
        return len(self.documents)

    def __contains__(self, doc_id: str) -> bool:
        return doc_id in self.documents

    def get(self, doc_id: str) -> Optional[Document]:
        return self.documents.get(doc_id)

    def list_documents(self) -> list[Document]:
        return list(self.documents.values())

    def upsert(self, document: Document) -> Document:
        """Register a document.

        Re-registering keeps ``created_at`` and moves ``updated_at`` forward,
        which changes the corpus hash.
        """
        existing = self.documents.get(document.doc_id)
        if existing is not None:
            document.created_at = existing.created_at
            if document.updated_at <= existing.updated_at:
                document.updated_at = utc_now_iso()
        self.documents[document.doc_id] = document
        self.schedule_save()
        return document

    def remove(self, doc_id: str) -> Optional[Document]:
        document = self.documents.pop(doc_id, None)
        if document is not None:
            self.schedule_save()
        return document

    def to_payload(self) -> list[dict]:
        return [d.to_dict() for d in self.documents.values()]

    def from_payload(self, payload: list[dict]):
        self.documents = {}
        for data in payload:
            document = Document.from_dict(data)
            self.documents[document.doc_id] = document


@dataclass
class IngestReport:
    """Outcome of ingesting one document."""
    doc_id: str
    lexical_chunks: int
    embedding_chunks: int
    embedded: int
    replaced: bool = False

    def to_dict(self) -> dict:
        return {
            "doc_id": self.doc_id,
            "lexical_chunks": self.lexical_chunks,
            "embedding_chunks": self.embedding_chunks,
            "embedded": self.embedded,
            "replaced": self.replaced,
        }


class DocumentIngestor:
    """Single-writer ingestion: chunk, index lexically, embed."""

    def __init__(
        self,
        registry: DocumentRegistry,
        lexical_index: LexicalIndex,
        vector_store: ChunkVectorStore,
        embedder: Optional[CachingEmbedder] = None,
        text_chunker: Optional[TextChunker] = None,
        structured_chunker: Optional[StructuredChunker] = None,
    ):
        self.registry = registry
        self.lexical_index = lexical_index
        self.vector_store = vector_store
        self.embedder = embedder
        self.text_chunker = text_chunker or TextChunker()
        self.structured_chunker = structured_chunker or StructuredChunker()
        self._lock = asyncio.Lock()

    async def ingest(self, document: Document) -> IngestReport:
        """(Re)index a document and its embeddings.

        Embeddings are computed and checked before anything is touched, so a
        dimension mismatch leaves the registry and both indexes unchanged.

        Raises:
            DimensionMismatchError: If the embeddings cannot join the vector index
        """
        async with self._lock:
            replaced = document.doc_id in self.registry
            lexical_chunks = self.text_chunker.chunk(document.text)
            embedding_chunks = chunk_for_embedding(document, self.text_chunker, self.structured_chunker)

            embeddings = []
            if self.embedder is not None and embedding_chunks:
                embeddings = await self.embedder.embed_many([c.text for c in embedding_chunks])
                self.vector_store.check_dimension(embeddings, replacing=document.doc_id)

            self.registry.upsert(document)
            self.lexical_index.index_document(document.doc_id, document.name, lexical_chunks)
            if replaced:
                self.vector_store.remove_document(document.doc_id)
            embedded = 0
            if embeddings:
                embedded = self.vector_store.index_document_chunks(
                    document.doc_id, document.name, embedding_chunks, embeddings
                )
                if embedded < len(embedding_chunks):
                    logger.warning(
                        f"[INGEST] {document.doc_id}: {len(embedding_chunks) - embedded} chunks without embedding"
                    )

            report = IngestReport(
                doc_id=document.doc_id,
                lexical_chunks=len(lexical_chunks),
                embedding_chunks=len(embedding_chunks),
                embedded=embedded,
                replaced=replaced,
            )
            logger.info(
                f"[INGEST] {document.doc_id} ({document.name}): {report.lexical_chunks} lexical chunks, "
                f"{report.embedded}/{report.embedding_chunks} embedded"
            )
            return report

    async def remove(self, doc_id: str) -> bool:
        """Drop a document, its lexical entries and its vectors."""
        async with self._lock:
            document = self.registry.remove(doc_id)
            lexical = self.lexical_index.remove_document(doc_id)
            vectors = self.vector_store.remove_document(doc_id)
            removed = document is not None or lexical or vectors > 0
            if removed:
                logger.info(f"[INGEST] Removed {doc_id} ({vectors} vectors)")
            return removed
