import time

from shared.clients.llm.LLMClientInterface import LLMClientInterface
from shared.helper.EmbeddingCache import EmbeddingCache
from shared.helper.HelperConfig import HelperConfig
from shared.models.chunk import ScoredChunk
from shared.models.entities import EntityType
from shared.models.errors import InvalidRequest
from shared.models.rag import RAGQuery, RAGResponse
from shared.stores.VectorStore import VectorStore

NO_GROUNDING_ANSWER = (
    "Je n'ai pas trouvé d'informations pertinentes dans la base de données pour répondre à votre question."
)

TYPE_LABELS: dict[EntityType, str] = {
    EntityType.SITE: "chantier",
    EntityType.CLIENT: "client",
    EntityType.ORDER: "commande",
    EntityType.PROGRESS_STATEMENT: "état d'avancement",
    EntityType.SUBCONTRACTOR: "sous-traitant",
    EntityType.DOCUMENT: "document",
    EntityType.NOTE: "note",
    EntityType.REMARK: "remarque de réception",
    EntityType.MATERIAL: "matériau",
    EntityType.RACK: "rack",
    EntityType.MACHINE: "machine",
    EntityType.EXPENSE: "dépense",
    EntityType.TASK: "tâche",
    EntityType.CLIENT_CHOICE: "choix client",
}

PROMPT_TEMPLATE = """Vous êtes un assistant intelligent pour l'application {app_name}, spécialisé dans la gestion de chantiers de construction.

CONTEXTE DE L'APPLICATION:
Vous avez accès aux informations de {app_name} incluant :
- Chantiers, clients, commandes, états d'avancement
- Sous-traitants et équipes
- Inventaire : matériaux, racks, machines/équipements
- Documents, notes, remarques, tâches et choix clients

INFORMATIONS PERTINENTES:
{context}

QUESTION DE L'UTILISATEUR:
{question}

INSTRUCTIONS IMPORTANTES:
1. Répondez UNIQUEMENT en français
2. Basez votre réponse EXCLUSIVEMENT sur les informations fournies dans le contexte ci-dessus
3. NE PAS ajouter d'informations qui ne sont pas dans le contexte
4. Pour les questions sur le stock/inventaire, donnez des informations précises sur les quantités et localisations
5. Si les informations ne sont pas suffisantes, indiquez-le clairement
6. Soyez précis et concis
7. Utilisez un ton professionnel et technique approprié au secteur de la construction
8. Pour les montants, utilisez le format français (ex: 1 234,56 €)
9. Pour l'inventaire, indiquez clairement les quantités disponibles et les emplacements
10. IMPORTANT: Ne mentionnez que les informations qui sont explicitement dans le contexte fourni

RÉPONSE:"""


def compute_confidence(scores: list[float]) -> float:
    """Confidence of an answer from the similarity of the retrieved top-k chunks.

    0.7 * best score + 0.3 * mean score, scores clamped at 0, result capped
    at 1. Non-decreasing in every score.
    """
    if not scores:
        return 0.0
    clamped = [max(0.0, s) for s in scores]
    value = 0.7 * max(clamped) + 0.3 * (sum(clamped) / len(clamped))
    return round(min(1.0, value), 4)


class QueryEngine:
    """Answers questions grounded in the vector store: embed -> retrieve -> prompt -> generate."""

    def __init__(
        self,
        helper_config: HelperConfig,
        llm_client: LLMClientInterface,
        vector_store: VectorStore,
        embedding_cache: EmbeddingCache | None = None,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._llm_client = llm_client
        self._vector_store = vector_store

        self.top_k = int(helper_config.get_number_val("RAG_TOP_K", default=6))
        self.max_top_k = int(helper_config.get_number_val("RAG_MAX_TOP_K", default=20))
        self.min_similarity = float(helper_config.get_number_val("RAG_MIN_SIMILARITY", default=0.3))
        self.app_name = helper_config.get_string_val("RAG_APP_NAME", default="SecoTech")
        self._cache = embedding_cache or EmbeddingCache(
            max_size=int(helper_config.get_number_val("RAG_EMBED_CACHE_SIZE", default=100)),
            ttl_seconds=float(helper_config.get_number_val("RAG_EMBED_CACHE_TTL", default=3600)),
        )

    ##########################################
    ################ GETTER ##################
    ##########################################

    def cache_stats(self) -> dict:
        return self._cache.stats()

    def _resolve_k(self, query: RAGQuery) -> int:
        limit = query.context.limit if query.context and query.context.limit else self.top_k
        return max(1, min(int(limit), self.max_top_k))

    ##########################################
    ################ PROMPT ##################
    ##########################################

    @staticmethod
    def build_context(results: list[ScoredChunk]) -> str:
        blocks = []
        for index, result in enumerate(results, start=1):
            metadata = result.chunk.metadata
            blocks.append(
                f"[Source {index}]\n"
                f"Type: {TYPE_LABELS[metadata.entity_type]}\n"
                f"Entité: {metadata.entity_name}\n"
                f"Contenu: {result.chunk.content}\n"
                "---"
            )
        return "\n".join(blocks)

    def build_prompt(self, question: str, results: list[ScoredChunk]) -> str:
        return PROMPT_TEMPLATE.format(app_name=self.app_name, context=self.build_context(results), question=question)

    ##########################################
    ################# CORE ###################
    ##########################################

    async def _embed_question(self, question: str) -> list[float]:
        embedding = self._cache.get(question)
        if embedding is None:
            embedding = await self._llm_client.embed(question)
            self._cache.put(question, embedding)
        return embedding

    async def answer(self, query: RAGQuery) -> RAGResponse:
        """Answer a question from the indexed data.

        Args:
            query (RAGQuery): The question, its owner and an optional retrieval filter.

        Returns:
            RAGResponse: The answer with its sources and confidence. When no
                chunk passes the similarity threshold the answer says so and
                confidence is 0.

        Raises:
            InvalidRequest: If the question is empty.
            BackendUnavailable: If embedding or generation cannot reach the backend.
            InvalidBackendResponse: If the backend answers with an unusable payload.
            DimensionMismatch: If the question embedding does not fit the indexed vectors.
        """
        started = time.perf_counter()
        question = query.question.strip()
        if not question:
            raise InvalidRequest("question must not be empty")

        context = query.context
        k = self._resolve_k(query)
        self.logging.info("RAG query from user '%s' (k=%d): '%s'", query.user_id, k, question[:120])

        embedding = await self._embed_question(question)
        results = self._vector_store.query(
            embedding,
            k,
            entity_type=context.entity_type if context else None,
            scope_id=context.scope_id if context else None,
        )
        grounded = [r for r in results if r.score >= self.min_similarity]
        self.logging.debug(
            "Retrieved %d chunk(s), %d above similarity %.2f.", len(results), len(grounded), self.min_similarity
        )

        if not grounded:
            return RAGResponse(
                answer=NO_GROUNDING_ANSWER,
                sources=[],
                confidence=0.0,
                query=query.question,
                processing_time_ms=self._elapsed_ms(started),
            )

        answer = await self._llm_client.generate(self.build_prompt(question, grounded))
        # scored over the whole top-k; the threshold only gates grounding
        confidence = compute_confidence([r.score for r in results])
        response = RAGResponse(
            answer=answer,
            sources=[r.chunk for r in grounded],
            confidence=confidence,
            query=query.question,
            processing_time_ms=self._elapsed_ms(started),
        )
        self.logging.info(
            "RAG answer for user '%s': %d source(s), confidence %.2f, %.0f ms.",
            query.user_id, len(grounded), confidence, response.processing_time_ms,
        )
        return response

    @staticmethod
    def _elapsed_ms(started: float) -> float:
        return round((time.perf_counter() - started) * 1000, 2)
