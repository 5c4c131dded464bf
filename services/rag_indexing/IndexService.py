"""Indexing service.

Reads every entity type from the business data provider, turns each entity
into one chunk, embeds it through the LLM client and replaces the chunks of
that type in the vector store in a single step.
"""

import asyncio
import time
from datetime import datetime, timezone

from pydantic import TypeAdapter, ValidationError

from services.rag_indexing.ChunkBuilder import ChunkBuilder, ChunkDraft
from shared.clients.data.DataClientInterface import DataClientInterface
from shared.clients.llm.LLMClientInterface import LLMClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.chunk import DocumentChunk
from shared.models.entities import BusinessEntity, EntityType
from shared.models.errors import RAGError
from shared.models.rag import IndexReport, TypeIndexReport
from shared.stores.VectorStore import VectorStore

_entity_adapter = TypeAdapter(BusinessEntity)


class IndexService:
    """Orchestrates indexing runs. Concurrent runs of the same scope are coalesced."""

    def __init__(
        self,
        helper_config: HelperConfig,
        data_client: DataClientInterface,
        llm_client: LLMClientInterface,
        vector_store: VectorStore,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._data_client = data_client
        self._llm_client = llm_client
        self._vector_store = vector_store
        self._builder = ChunkBuilder()
        self.concurrency = max(1, int(helper_config.get_number_val("INDEX_CONCURRENCY", default=5)))

        self._inflight: dict[str, asyncio.Task] = {}
        self.last_report: IndexReport | None = None

    ##########################################
    ################ GETTER ##################
    ##########################################

    @property
    def is_running(self) -> bool:
        return any(not task.done() for task in self._inflight.values())

    ##########################################
    ############## SINGLE FLIGHT #############
    ##########################################

    async def _single_flight(self, key: str, entity_types: list[EntityType]) -> IndexReport:
        """Join the run in flight for key, or start one.

        The run is shielded, so a caller that gives up does not cancel it for
        the other callers.
        """
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.create_task(self._run(entity_types))
            self._inflight[key] = task

            def _forget(done: asyncio.Task, key: str = key) -> None:
                if self._inflight.get(key) is done:
                    del self._inflight[key]

            task.add_done_callback(_forget)
        else:
            self.logging.info("Indexing run '%s' already in progress, joining it.", key)
        return await asyncio.shield(task)

    async def index_all(self) -> IndexReport:
        """Reindex every entity type."""
        return await self._single_flight("all", list(EntityType))

    async def index_scoped(self, entity_type: EntityType) -> IndexReport:
        """Reindex a single entity type."""
        entity_type = EntityType(entity_type)
        return await self._single_flight(entity_type.value, [entity_type])

    async def cancel_running(self) -> int:
        """Cancel every run in flight and wait for them to unwind.

        Types already replaced by a cancelled run stay replaced.

        Returns:
            int: Number of runs cancelled.
        """
        tasks = [task for task in self._inflight.values() if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            self.logging.warning("Cancelled %d indexing run(s).", len(tasks))
        return len(tasks)

    ##########################################
    ################ CORE RUN ################
    ##########################################

    async def _run(self, entity_types: list[EntityType]) -> IndexReport:
        started = time.perf_counter()
        report = IndexReport(started_at=datetime.now(timezone.utc))
        self.logging.info("Starting indexing of %d entity type(s)...", len(entity_types))

        for entity_type in entity_types:
            type_report = await self._index_type(entity_type)
            report.types[entity_type] = type_report
            log = self.logging.warning if type_report.status == "failed" else self.logging.info
            log(
                "Indexed '%s': %d processed, %d indexed, %d skipped, %d failed%s",
                entity_type.value,
                type_report.processed,
                type_report.indexed,
                type_report.skipped,
                type_report.failed,
                f" (type failed: {type_report.error})" if type_report.error else ".",
            )

        report.finished_at = datetime.now(timezone.utc)
        report.duration_ms = round((time.perf_counter() - started) * 1000, 2)
        self.last_report = report
        self.logging.info(
            "Indexing complete in %.0f ms: %d processed, %d indexed, %d skipped, %d failed.",
            report.duration_ms,
            report.total_processed,
            report.total_indexed,
            report.total_skipped,
            report.total_failed,
            color="green",
        )
        return report

    async def _index_type(self, entity_type: EntityType) -> TypeIndexReport:
        """Rebuild the chunks of one entity type.

        If the provider fails, or every entity fails to embed, the type is
        reported failed and its current chunks are left as they are.
        """
        try:
            records = await self._data_client.do_fetch_entities(entity_type)
        except RAGError as exc:
            self.logging.error("Fetching '%s' entities failed: %s", entity_type.value, exc)
            return TypeIndexReport(status="failed", error=str(exc))

        type_report = TypeIndexReport(processed=len(records))
        drafts: dict[str, ChunkDraft] = {}
        for record in records:
            draft = self._build_draft(entity_type, record)
            if draft is None:
                type_report.skipped += 1
                continue
            if draft.id in drafts:
                self.logging.warning("Duplicate '%s' entity id=%s, keeping the last one.", entity_type.value, draft.metadata.entity_id)
                type_report.skipped += 1
            drafts[draft.id] = draft

        sem = asyncio.Semaphore(self.concurrency)
        results = await asyncio.gather(
            *[self._embed_draft(draft, sem) for draft in drafts.values()],
            return_exceptions=True,
        )
        chunks: list[DocumentChunk] = []
        for draft, result in zip(drafts.values(), results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                type_report.failed += 1
                self.logging.error("Embedding failed for '%s': %s", draft.id, result)
            else:
                chunks.append(result)

        if drafts and not chunks:
            type_report.status = "failed"
            type_report.error = "every embedding failed, previous chunks kept"
            return type_report

        try:
            await self._vector_store.replace_type(entity_type, chunks)
        except RAGError as exc:
            self.logging.error("Replacing '%s' chunks failed: %s", entity_type.value, exc)
            type_report.status = "failed"
            type_report.error = str(exc)
            return type_report

        type_report.indexed = len(chunks)
        return type_report

    def _build_draft(self, entity_type: EntityType, record: dict) -> ChunkDraft | None:
        try:
            entity = _entity_adapter.validate_python({**record, "entity_type": entity_type.value})
        except ValidationError as exc:
            self.logging.warning(
                "Skipping invalid '%s' record id=%s: %s",
                entity_type.value, record.get("id"), exc.errors()[0].get("msg"),
            )
            return None
        return self._builder.build(entity)

    async def _embed_draft(self, draft: ChunkDraft, sem: asyncio.Semaphore) -> DocumentChunk:
        async with sem:
            embedding = await self._llm_client.embed(draft.content)
        return draft.with_embedding(embedding)
