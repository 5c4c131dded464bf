"""FastAPI application entry point for the site RAG service."""

import os
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from shared.logging.logging_setup import setup_logging
from shared.helper.HelperConfig import HelperConfig
from shared.clients.data.DataClientInterface import DataClientInterface
from shared.clients.llm.LLMClientInterface import LLMClientInterface
from shared.clients.data.DataClientManager import DataClientManager
from shared.clients.llm.LLMClientManager import LLMClientManager
from shared.models.errors import InvalidRequest, RAGError
from shared.stores.ConversationStore import ConversationStore
from shared.stores.VectorStore import VectorStore
from services.rag_indexing.IndexService import IndexService
from services.scheduler.PeriodicTask import PeriodicTask
from server.core.QueryEngine import QueryEngine
from server.routers.ConversationRouter import router as conversation_router
from server.routers.IndexRouter import router as index_router
from server.routers.QueryRouter import router as query_router
from server.routers.StatusRouter import router as status_router

logging = setup_logging()
app_version = os.getenv("APP_VERSION", "unknown")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # when the app starts
    helper_config = HelperConfig(logger=logging)
    app.state.logging = logging
    app.state.helper_config = helper_config

    llm_client = LLMClientManager(helper_config=helper_config).get_client()
    data_client = DataClientManager(helper_config=helper_config).get_client()

    # a corrupt store aborts startup here with StoreCorruption
    vector_store = VectorStore(helper_config=helper_config)
    conversation_store = ConversationStore(helper_config=helper_config)

    logging.info("Booting all clients...")
    for client in [llm_client, data_client]:
        await client.boot()
    logging.info("All clients booted successfully.")

    index_service = IndexService(
        helper_config=helper_config,
        data_client=data_client,
        llm_client=llm_client,
        vector_store=vector_store,
    )

    app.state.llm_client = llm_client
    app.state.data_client = data_client
    app.state.vector_store = vector_store
    app.state.conversation_store = conversation_store
    app.state.index_service = index_service
    app.state.query_engine = QueryEngine(
        helper_config=helper_config,
        llm_client=llm_client,
        vector_store=vector_store,
    )
    app.state.answer_timeout = float(helper_config.get_number_val("RAG_ANSWER_TIMEOUT", default=120))

    await check_connections(llm_client, data_client)

    conversation_ttl = timedelta(seconds=float(helper_config.get_number_val("CONVERSATION_TTL", default=7 * 24 * 3600)))
    periodic_tasks = [
        PeriodicTask(
            helper_config=helper_config,
            name="conversation-purge",
            interval_seconds=helper_config.get_number_val("CONVERSATION_PURGE_INTERVAL", default=600),
            action=lambda: conversation_store.purge_expired(conversation_ttl),
        ),
        PeriodicTask(
            helper_config=helper_config,
            name="reindex",
            interval_seconds=helper_config.get_number_val("RAG_REINDEX_INTERVAL", default=0),
            action=index_service.index_all,
        ),
    ]
    for task in periodic_tasks:
        task.start()
    app.state.periodic_tasks = periodic_tasks

    # while the app is running...
    yield

    # when the app shuts down, stop background work and close all client connections
    logging.info("Shutting down, stopping background tasks...")
    for task in periodic_tasks:
        await task.stop()
    await index_service.cancel_running()
    for client in [llm_client, data_client]:
        await client.close()
    logging.info("All clients closed.")


app = FastAPI(
    title="site_rag",
    description=(
        "Retrieval-augmented question answering over construction-site data "
        "(sites, clients, orders, inventory, tasks...). Business entities are "
        "embedded into a local vector store via POST /rag/index and queried via "
        "POST /rag/query. Per-user conversations live under /rag/conversation."
    ),
    version=app_version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


async def rag_error_handler(request: Request, exc: RAGError) -> JSONResponse:
    """Render typed failures as {"error": {"kind", "message"}}."""
    if exc.status_code >= 500:
        request.app.state.logging.error("%s on %s %s: %s", exc.kind, request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render malformed request bodies as a 400 invalid_request error."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ())) or "body"
    error = InvalidRequest(f"Invalid field '{location}': {first.get('msg', 'malformed request')}")
    return await rag_error_handler(request, error)


def register_routes(target: FastAPI) -> None:
    target.add_exception_handler(RAGError, rag_error_handler)
    target.add_exception_handler(RequestValidationError, validation_error_handler)
    target.include_router(conversation_router)
    target.include_router(index_router)
    target.include_router(query_router)
    target.include_router(status_router)


register_routes(app)


async def check_connections(llm_client: LLMClientInterface, data_client: DataClientInterface) -> None:
    """Check connectivity to the configured backends on startup.

    Failures are non-fatal: the server stays up, /rag/health reports the
    backend state and indexing or queries fail with typed errors until the
    backends come back.
    """
    if not await llm_client.health():
        logging.warning(
            "LLM backend '%s' is not reachable at %s. Embedding and chat will fail until it is.",
            llm_client.get_engine_name(),
            llm_client.get_base_url(),
        )
    else:
        try:
            models = await llm_client.list_models()
            if not llm_client.has_required_models(models):
                logging.warning(
                    "LLM backend is missing a model (embed: %s, chat: %s). Installed: %s",
                    llm_client.embed_model, llm_client.chat_model, ", ".join(models) or "none",
                )
        except RAGError as exc:
            logging.warning("Could not list LLM models: %s", exc)

    try:
        result = await data_client.do_healthcheck()
        logging.debug("Data provider healthcheck answered %d.", result.status_code)
    except RAGError as exc:
        logging.warning("Data provider '%s' is not reachable: %s. Indexing will fail.", data_client.get_engine_name(), exc)


if __name__ == "__main__":
    import uvicorn

    logging.info(
        "Starting site_rag API Server v%s from root dir: %s on port 8000...",
        app_version,
        os.environ.get("ROOT_DIR", "unknown"),
    )
    uvicorn.run(app, host="0.0.0.0", port=8000)
