"""Query and indexing payloads of the RAG core."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from shared.models.chunk import DocumentChunk
from shared.models.entities import EntityType


class RAGQueryContext(BaseModel):
    """Optional retrieval filter attached to a question.

    Attributes:
        scope_id (str | None): Restrict retrieval to one site (the site itself and its children).
        entity_type (EntityType | None): Restrict retrieval to one entity type.
        limit (int | None): Number of chunks to retrieve. Falls back to RAG_TOP_K.
    """

    scope_id: str | None = None
    entity_type: EntityType | None = None
    limit: int | None = Field(default=None, ge=1)


class RAGQuery(BaseModel):
    question: str
    user_id: str
    context: RAGQueryContext | None = None


class RAGResponse(BaseModel):
    answer: str
    sources: list[DocumentChunk]
    confidence: float = Field(ge=0.0, le=1.0)
    query: str
    processing_time_ms: float

    def to_wire(self) -> dict:
        """Serialise for HTTP callers, sources without their embeddings."""
        data = self.model_dump(mode="json", exclude={"sources"})
        data["sources"] = [source.without_embedding() for source in self.sources]
        return data


class TypeIndexReport(BaseModel):
    status: Literal["ok", "failed"] = "ok"
    processed: int = 0
    indexed: int = 0
    skipped: int = 0
    failed: int = 0
    error: str | None = None


class IndexReport(BaseModel):
    """Outcome of one indexing run, per entity type."""

    started_at: datetime
    finished_at: datetime | None = None
    duration_ms: float = 0.0
    types: dict[EntityType, TypeIndexReport] = Field(default_factory=dict)

    @property
    def total_processed(self) -> int:
        return sum(t.processed for t in self.types.values())

    @property
    def total_indexed(self) -> int:
        return sum(t.indexed for t in self.types.values())

    @property
    def total_skipped(self) -> int:
        return sum(t.skipped for t in self.types.values())

    @property
    def total_failed(self) -> int:
        return sum(t.failed for t in self.types.values())

    def to_wire(self) -> dict:
        data = self.model_dump(mode="json")
        data["totals"] = {
            "processed": self.total_processed,
            "indexed": self.total_indexed,
            "skipped": self.total_skipped,
            "failed": self.total_failed,
        }
        return data
