from fastapi import APIRouter, Depends, Request

from server.dependencies.auth import get_user_id, verify_api_key
from server.models.requests import IndexRequest
from server.models.responses import IndexResponse
from shared.models.errors import InvalidRequest

router = APIRouter(prefix="/rag/index", tags=["index"], dependencies=[Depends(verify_api_key)])


@router.post("")
async def manage_index(request: Request, body: IndexRequest, user_id: str = Depends(get_user_id)) -> IndexResponse:
    """Trigger indexing or manage the vector store.

    Actions:
        index-all: reindex every entity type (joins a run already in progress).
        index-type: reindex the type given in "entity_type".
        clear: drop every chunk.
        stats: only report the chunk counts.

    Returns:
        IndexResponse: The action, chunk counts per type after it, and the
            indexing report for index actions.
    """
    index_service = request.app.state.index_service
    vector_store = request.app.state.vector_store
    logging = request.app.state.logging

    report = None
    if body.action == "index-all":
        logging.info("Full reindex requested by user '%s'.", user_id)
        report = (await index_service.index_all()).to_wire()
    elif body.action == "index-type":
        if body.entity_type is None:
            raise InvalidRequest("Action 'index-type' requires an 'entity_type'.")
        logging.info("Reindex of '%s' requested by user '%s'.", body.entity_type.value, user_id)
        report = (await index_service.index_scoped(body.entity_type)).to_wire()
    elif body.action == "clear":
        logging.warning("Vector store clear requested by user '%s'.", user_id)
        await vector_store.clear()

    return IndexResponse(action=body.action, stats=vector_store.stats(), report=report)
