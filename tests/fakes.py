"""Test doubles for the LLM backend and the business data provider."""

import asyncio
import re

from shared.models.chunk import ChunkMetadata, DocumentChunk
from shared.models.entities import EntityType
from shared.models.errors import BackendUnavailable

# words the fake embedding counts, plus a constant bias dimension
VOCABULARY = ["lantin", "namur", "liège", "chantier", "ciment", "grue"]


def keyword_embedding(text: str) -> list[float]:
    words = re.findall(r"\w+", text.lower())
    return [float(words.count(term)) for term in VOCABULARY] + [1.0]


class FakeLLMClient:
    """Stands in for LLMClientInterface: deterministic keyword embeddings, canned answers."""

    def __init__(self, embed_fn=keyword_embedding, answer: str = "Réponse de test.", embed_delay: float = 0.0):
        self.embed_fn = embed_fn
        self.answer = answer
        self.embed_delay = embed_delay
        self.embed_calls = 0
        self.generate_calls = 0
        self.prompts: list[str] = []
        self.fail_embed = False
        self.fail_generate = False
        self.fail_on: set[str] = set()
        self.healthy = True
        self.models = ["nomic-embed-text:latest", "llama3.2:3b"]
        self.embed_model = "nomic-embed-text:latest"
        self.chat_model = "llama3.2:3b"

    def get_engine_name(self) -> str:
        return "fake"

    def get_base_url(self) -> str:
        return "http://fake-llm"

    def has_required_models(self, models: list[str]) -> bool:
        return self.embed_model in models and self.chat_model in models

    async def health(self) -> bool:
        return self.healthy

    async def list_models(self) -> list[str]:
        if not self.healthy:
            raise BackendUnavailable("fake backend down")
        return list(self.models)

    async def embed(self, text: str) -> list[float]:
        self.embed_calls += 1
        if self.embed_delay:
            await asyncio.sleep(self.embed_delay)
        if self.fail_embed or any(marker in text for marker in self.fail_on):
            raise BackendUnavailable("fake embedding backend unreachable")
        return self.embed_fn(text)

    async def generate(self, prompt: str, options: dict | None = None) -> str:
        self.generate_calls += 1
        self.prompts.append(prompt)
        if self.fail_generate:
            raise BackendUnavailable("fake generation backend unreachable")
        return self.answer


class FakeDataClient:
    """Stands in for DataClientInterface, serving raw entity records from memory."""

    def __init__(self, entities: dict[EntityType, list[dict]] | None = None):
        self.entities: dict[EntityType, list[dict]] = entities or {}
        self.failing: set[EntityType] = set()
        self.fetch_calls: list[EntityType] = []

    def get_engine_name(self) -> str:
        return "fake"

    async def do_fetch_entities(self, entity_type: EntityType) -> list[dict]:
        self.fetch_calls.append(entity_type)
        if entity_type in self.failing:
            raise BackendUnavailable(f"fake provider cannot list '{entity_type.value}'")
        return [dict(record) for record in self.entities.get(entity_type, [])]


def make_chunk(
    chunk_id: str,
    embedding: list[float],
    entity_type: EntityType = EntityType.SITE,
    entity_id: str | None = None,
    content: str | None = None,
    updated_at=None,
    scope_id: str | None = None,
) -> DocumentChunk:
    return DocumentChunk(
        id=chunk_id,
        content=content or f"content of {chunk_id}",
        metadata=ChunkMetadata(
            entity_type=entity_type,
            entity_id=entity_id or chunk_id,
            entity_name=chunk_id,
            updated_at=updated_at,
            scope_id=scope_id,
        ),
        embedding=embedding,
    )


SITES = [
    {"id": 1, "reference": "CH-001", "name": "Lantin", "status": "En cours", "client_name": "Dupont"},
    {"id": 2, "reference": "CH-002", "name": "Namur", "status": "En cours", "client_name": "Martin"},
    {"id": 3, "reference": "CH-003", "name": "Liège", "status": "Terminé", "client_name": "Lambert"},
]


