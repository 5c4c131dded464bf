from fastapi import APIRouter, Depends, Request

from server.dependencies.auth import get_user_id, verify_api_key
from server.models.responses import StatusResponse
from shared.models.errors import RAGError

router = APIRouter(prefix="/rag", tags=["status"], dependencies=[Depends(verify_api_key), Depends(get_user_id)])


@router.get("/status")
async def get_status(request: Request) -> StatusResponse:
    """Chunk counts per entity type, the state of the indexer and of the background tasks."""
    vector_store = request.app.state.vector_store
    index_service = request.app.state.index_service
    stats = vector_store.stats()
    total = sum(stats.values())
    last_report = index_service.last_report
    return StatusResponse(
        stats=stats,
        total=total,
        is_indexed=total > 0,
        is_indexing=index_service.is_running,
        last_report=last_report.to_wire() if last_report else None,
        tasks=[task.status() for task in request.app.state.periodic_tasks],
    )


@router.get("/health")
async def get_health(request: Request) -> dict:
    """Reachability of the LLM backend, installed models and store state. Never fails."""
    llm_client = request.app.state.llm_client
    vector_store = request.app.state.vector_store
    conversation_store = request.app.state.conversation_store
    logging = request.app.state.logging

    healthy = await llm_client.health()
    models: list[str] = []
    if healthy:
        try:
            models = await llm_client.list_models()
        except RAGError as exc:
            logging.warning("Listing models failed: %s", exc)
            healthy = False
    models_available = healthy and llm_client.has_required_models(models)

    return {
        "backend": {
            "healthy": healthy,
            "engine": llm_client.get_engine_name(),
            "base_url": llm_client.get_base_url(),
            "embed_model": llm_client.embed_model,
            "chat_model": llm_client.chat_model,
            "models": models,
            "models_available": models_available,
        },
        "vector_store": {
            "healthy": True,
            "dimension": vector_store.dimension,
            "total": len(vector_store),
            "stats": vector_store.stats(),
        },
        "conversations": conversation_store.stats(),
        "overall": healthy and models_available,
    }
