from datetime import datetime

from pydantic import BaseModel, Field

from shared.models.entities import EntityType

Scalar = str | int | float | bool | None


class ChunkMetadata(BaseModel):
    """Filterable metadata of an indexed chunk.

    Attributes:
        entity_type (EntityType): Type of the source entity.
        entity_id (str): Id of the source entity.
        entity_name (str): Display name used in prompts and sources.
        created_at (datetime | None): Creation time of the source entity.
        updated_at (datetime | None): Last change of the source entity. Used as ranking tie-break.
        scope_id (str | None): Parent site id for site-scoped entities.
        status (str | None): Business status of the entity, if any.
        extra (dict[str, Scalar]): Type-specific scalar fields.
    """

    entity_type: EntityType
    entity_id: str
    entity_name: str
    created_at: datetime | None = None
    updated_at: datetime | None = None
    scope_id: str | None = None
    status: str | None = None
    extra: dict[str, Scalar] = Field(default_factory=dict)


class DocumentChunk(BaseModel):
    """One indexed unit of business knowledge: text, metadata and embedding."""

    id: str
    content: str
    metadata: ChunkMetadata
    embedding: list[float]

    def without_embedding(self) -> dict:
        """Serialise the chunk for API responses (vectors are not sent to callers)."""
        return self.model_dump(mode="json", exclude={"embedding"})


class ScoredChunk(BaseModel):
    chunk: DocumentChunk
    score: float
