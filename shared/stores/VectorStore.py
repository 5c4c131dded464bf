"""File-backed vector store for document chunks.

Holds every chunk in memory as an immutable snapshot (chunk dict plus a
row-normalised numpy matrix). Mutations build a new snapshot, persist it and
then swap the reference, so readers always see either the old or the new
state and never take the lock.
"""

import asyncio
from datetime import datetime

import numpy as np
from pydantic import ValidationError

from shared.helper.HelperConfig import HelperConfig
from shared.helper.snapshot import read_snapshot, write_snapshot
from shared.models.chunk import DocumentChunk, ScoredChunk
from shared.models.entities import EntityType
from shared.models.errors import DimensionMismatch, InvalidRequest, StoreCorruption

SNAPSHOT_VERSION = 1
SCORE_PRECISION = 9  # digits kept when comparing scores for tie-breaks


class _Snapshot:
    """Immutable view of the store contents."""

    def __init__(self, chunks: dict[str, DocumentChunk]):
        self.chunks = chunks
        self.ids: list[str] = list(chunks.keys())
        self.dimension: int | None = len(chunks[self.ids[0]].embedding) if self.ids else None
        if self.ids:
            matrix = np.asarray([chunks[i].embedding for i in self.ids], dtype=np.float64)
            norms = np.linalg.norm(matrix, axis=1, keepdims=True)
            # zero-norm rows stay zero and score 0 against everything
            self.matrix = np.divide(matrix, norms, out=np.zeros_like(matrix), where=norms > 0)
        else:
            self.matrix = np.zeros((0, 0), dtype=np.float64)


def _updated_sort_key(chunk: DocumentChunk) -> tuple:
    # most recent first, missing timestamps last
    updated: datetime | None = chunk.metadata.updated_at
    if updated is None:
        return (1, 0.0)
    return (0, -updated.timestamp())


class VectorStore:
    def __init__(self, helper_config: HelperConfig, path: str | None = None):
        self.logging = helper_config.get_logger()
        self.path = path or helper_config.get_string_val("RAG_STORE_PATH", default="data/vector_store.json")
        self._lock = asyncio.Lock()
        self._snapshot = self._load()

    ##########################################
    ############## PERSISTENCE ###############
    ##########################################

    def _load(self) -> _Snapshot:
        """Load the persisted snapshot eagerly.

        Returns:
            _Snapshot: The loaded contents, empty if no file exists yet.

        Raises:
            StoreCorruption: If the file is unreadable, malformed or inconsistent.
        """
        data = read_snapshot(self.path)
        if data is None:
            self.logging.info("No vector store found at '%s'. Starting empty.", self.path)
            return _Snapshot({})

        if not isinstance(data, dict) or not isinstance(data.get("chunks"), list):
            raise StoreCorruption(self.path, "missing 'chunks' list")
        if data.get("version") != SNAPSHOT_VERSION:
            raise StoreCorruption(self.path, f"unsupported snapshot version {data.get('version')!r}")

        chunks: dict[str, DocumentChunk] = {}
        dimension: int | None = None
        for raw in data["chunks"]:
            try:
                chunk = DocumentChunk.model_validate(raw)
            except ValidationError as exc:
                raise StoreCorruption(self.path, f"invalid chunk: {exc.errors()[0].get('msg')}")
            if chunk.id in chunks:
                raise StoreCorruption(self.path, f"duplicate chunk id '{chunk.id}'")
            if dimension is None:
                dimension = len(chunk.embedding)
            elif len(chunk.embedding) != dimension:
                raise StoreCorruption(
                    self.path,
                    f"chunk '{chunk.id}' has dimension {len(chunk.embedding)}, expected {dimension}",
                )
            chunks[chunk.id] = chunk

        self.logging.info("Loaded %d chunks (dimension %s) from '%s'.", len(chunks), dimension, self.path)
        return _Snapshot(chunks)

    async def _commit(self, chunks: dict[str, DocumentChunk]) -> None:
        """Persist a new chunk set and swap it in. Must be called with the lock held."""
        snapshot = _Snapshot(chunks)
        payload = {
            "version": SNAPSHOT_VERSION,
            "dimension": snapshot.dimension,
            "chunks": [c.model_dump(mode="json") for c in chunks.values()],
        }
        await asyncio.to_thread(write_snapshot, self.path, payload)
        self._snapshot = snapshot

    ##########################################
    ############### CHECKER ##################
    ##########################################

    @staticmethod
    def _check_dimensions(chunks: list[DocumentChunk], expected: int | None) -> None:
        for chunk in chunks:
            if expected is None:
                expected = len(chunk.embedding)
            elif len(chunk.embedding) != expected:
                raise DimensionMismatch(expected, len(chunk.embedding), chunk.id)

    ##########################################
    ################ GETTER ##################
    ##########################################

    @property
    def dimension(self) -> int | None:
        return self._snapshot.dimension

    def __len__(self) -> int:
        return len(self._snapshot.ids)

    def get(self, chunk_id: str) -> DocumentChunk | None:
        return self._snapshot.chunks.get(chunk_id)

    def all(self) -> list[DocumentChunk]:
        return list(self._snapshot.chunks.values())

    def stats(self) -> dict[str, int]:
        """Chunk count per entity type, every type present (zeros included)."""
        counts = {entity_type.value: 0 for entity_type in EntityType}
        for chunk in self._snapshot.chunks.values():
            counts[chunk.metadata.entity_type.value] += 1
        return counts

    ##########################################
    ############### MUTATION #################
    ##########################################

    async def upsert(self, chunk: DocumentChunk) -> None:
        """Insert a chunk or replace the one with the same id.

        Raises:
            DimensionMismatch: If the embedding length differs from the other chunks.
        """
        async with self._lock:
            current = self._snapshot.chunks
            other = next((c for cid, c in current.items() if cid != chunk.id), None)
            if other is not None and len(other.embedding) != len(chunk.embedding):
                raise DimensionMismatch(len(other.embedding), len(chunk.embedding), chunk.id)
            chunks = dict(current)
            chunks[chunk.id] = chunk
            await self._commit(chunks)

    async def replace_type(self, entity_type: EntityType, chunks: list[DocumentChunk]) -> dict[str, int]:
        """Replace every chunk of one entity type by a new set.

        Chunks of the type that are not in the new set are removed; the new set
        is upserted. The whole set is validated first, and if validation or
        persistence fails the store keeps its prior state.

        Args:
            entity_type (EntityType): The type being replaced.
            chunks (list[DocumentChunk]): The complete new set for that type.

        Returns:
            dict[str, int]: {"upserted": n, "removed": n}

        Raises:
            InvalidRequest: If a chunk belongs to another type or ids repeat.
            DimensionMismatch: If the set disagrees with itself or with the other types.
        """
        entity_type = EntityType(entity_type)
        seen: set[str] = set()
        for chunk in chunks:
            if chunk.metadata.entity_type != entity_type:
                raise InvalidRequest(
                    f"Chunk '{chunk.id}' has type '{chunk.metadata.entity_type.value}', expected '{entity_type.value}'."
                )
            if chunk.id in seen:
                raise InvalidRequest(f"Duplicate chunk id '{chunk.id}' in replacement set.")
            seen.add(chunk.id)

        async with self._lock:
            current = self._snapshot.chunks
            kept = {
                cid: c for cid, c in current.items()
                if c.metadata.entity_type != entity_type and cid not in seen
            }
            expected = len(next(iter(kept.values())).embedding) if kept else None
            self._check_dimensions(chunks, expected)

            removed = sum(
                1 for cid, c in current.items()
                if c.metadata.entity_type == entity_type and cid not in seen
            )
            kept.update({c.id: c for c in chunks})
            await self._commit(kept)

        self.logging.debug(
            "Replaced type '%s': %d upserted, %d removed.", entity_type.value, len(chunks), removed
        )
        return {"upserted": len(chunks), "removed": removed}

    async def remove(self, entity_id: str, entity_type: EntityType | None = None) -> int:
        """Remove every chunk of an entity.

        Args:
            entity_id (str): Id of the source entity.
            entity_type (EntityType | None): Narrow to one type, since ids are only unique per type.

        Returns:
            int: Number of chunks removed.
        """
        async with self._lock:
            current = self._snapshot.chunks
            chunks = {
                cid: c for cid, c in current.items()
                if not (
                    c.metadata.entity_id == entity_id
                    and (entity_type is None or c.metadata.entity_type == entity_type)
                )
            }
            removed = len(current) - len(chunks)
            if removed:
                await self._commit(chunks)
            return removed

    async def remove_chunk(self, chunk_id: str) -> bool:
        async with self._lock:
            if chunk_id not in self._snapshot.chunks:
                return False
            chunks = dict(self._snapshot.chunks)
            del chunks[chunk_id]
            await self._commit(chunks)
            return True

    async def clear(self) -> None:
        async with self._lock:
            await self._commit({})
        self.logging.info("Vector store cleared.")

    ##########################################
    ################ SEARCH ##################
    ##########################################

    def query(
        self,
        query_embedding: list[float],
        k: int,
        entity_type: EntityType | None = None,
        scope_id: str | None = None,
    ) -> list[ScoredChunk]:
        """Rank chunks by cosine similarity to a query vector.

        Filters are applied before ranking. Equal scores are ordered by most
        recent updated_at (chunks without one come last), then by id.

        Args:
            query_embedding (list[float]): The query vector.
            k (int): Maximum number of results.
            entity_type (EntityType | None): Keep only chunks of this type.
            scope_id (str | None): Keep only chunks of this site (its children and the site itself).

        Returns:
            list[ScoredChunk]: At most k results, best first.

        Raises:
            DimensionMismatch: If the query vector has the wrong length.
        """
        snapshot = self._snapshot
        if k <= 0 or not snapshot.ids:
            return []
        if len(query_embedding) != snapshot.dimension:
            raise DimensionMismatch(snapshot.dimension, len(query_embedding))

        rows = [
            i for i, cid in enumerate(snapshot.ids)
            if self._matches(snapshot.chunks[cid], entity_type, scope_id)
        ]
        if not rows:
            return []

        query = np.asarray(query_embedding, dtype=np.float64)
        norm = np.linalg.norm(query)
        if norm > 0:
            scores = snapshot.matrix[rows] @ (query / norm)
        else:
            scores = np.zeros(len(rows), dtype=np.float64)

        ranked = sorted(
            zip(rows, scores.tolist()),
            key=lambda item: (
                -round(item[1], SCORE_PRECISION),
                _updated_sort_key(snapshot.chunks[snapshot.ids[item[0]]]),
                snapshot.ids[item[0]],
            ),
        )
        return [
            ScoredChunk(chunk=snapshot.chunks[snapshot.ids[row]], score=float(score))
            for row, score in ranked[:k]
        ]

    @staticmethod
    def _matches(chunk: DocumentChunk, entity_type: EntityType | None, scope_id: str | None) -> bool:
        metadata = chunk.metadata
        if entity_type is not None and metadata.entity_type != entity_type:
            return False
        if scope_id is not None:
            if metadata.scope_id == scope_id:
                return True
            return metadata.entity_type == EntityType.SITE and metadata.entity_id == scope_id
        return True
