import asyncio

from fastapi import APIRouter, Depends, Request

from server.dependencies.auth import get_user_id, verify_api_key
from server.models.requests import QueryRequest
from shared.models.errors import BackendUnavailable
from shared.models.rag import RAGQuery

router = APIRouter(prefix="/rag/query", tags=["query"], dependencies=[Depends(verify_api_key)])


@router.post("")
async def query_rag(request: Request, body: QueryRequest, user_id: str = Depends(get_user_id)) -> dict:
    """Answer a question from the indexed business data.

    Body: {"question": "...", "context"?: {"scope_id"?, "entity_type"?, "limit"?}}

    Returns:
        dict: The RAGResponse, sources without their embeddings.

    Raises:
        InvalidRequest: 400 if the question is missing or empty.
        BackendUnavailable: 503 if the backend is down or the answer timed out.
    """
    query_engine = request.app.state.query_engine
    timeout = request.app.state.answer_timeout

    query = RAGQuery(question=body.question, user_id=user_id, context=body.context)
    try:
        response = await asyncio.wait_for(query_engine.answer(query), timeout=timeout)
    except asyncio.TimeoutError:
        raise BackendUnavailable(f"No answer from the backend within {timeout:.0f}s.")
    return response.to_wire()
