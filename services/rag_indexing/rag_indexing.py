"""Index runner entry point.

Rebuilds the vector store from the business data provider in one pass.
The API server does the same on POST /rag/index or on its periodic
schedule; this runner is meant for cron jobs and first-time setup.

Usage:
    python -m services.rag_indexing.rag_indexing            # all entity types
    python -m services.rag_indexing.rag_indexing site task  # selected types
"""

import asyncio
import sys

from services.rag_indexing.IndexService import IndexService
from shared.clients.data.DataClientManager import DataClientManager
from shared.clients.llm.LLMClientManager import LLMClientManager
from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import setup_logging
from shared.models.entities import EntityType
from shared.stores.VectorStore import VectorStore


async def main(argv: list[str]) -> int:
    """Run the indexing pipeline.

    Returns:
        int: Process exit code (0 when every type indexed, 1 otherwise).
    """
    logger = setup_logging()
    config = HelperConfig(logger=logger)

    try:
        entity_types = [EntityType(arg) for arg in argv]
    except ValueError as e:
        logger.error("%s. Known types: %s", e, ", ".join(t.value for t in EntityType))
        return 2

    data_client = DataClientManager(helper_config=config).get_client()
    llm_client = LLMClientManager(helper_config=config).get_client()
    vector_store = VectorStore(helper_config=config)

    try:
        # without the embedding backend there is nothing to index
        await llm_client.boot()
        if not await llm_client.health():
            logger.error("LLM backend '%s' is not reachable at %s. Aborting.", llm_client.get_engine_name(), llm_client.get_base_url())
            return 1

        await data_client.boot()

        index_service = IndexService(
            helper_config=config,
            data_client=data_client,
            llm_client=llm_client,
            vector_store=vector_store,
        )
        if entity_types:
            failed = False
            for entity_type in entity_types:
                report = await index_service.index_scoped(entity_type)
                failed = failed or any(t.status == "failed" for t in report.types.values())
        else:
            report = await index_service.index_all()
            failed = any(t.status == "failed" for t in report.types.values())
        return 1 if failed else 0
    finally:
        await llm_client.close()
        await data_client.close()


if __name__ == "__main__":
    sys.exit(asyncio.run(main(sys.argv[1:])))
