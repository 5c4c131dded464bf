from fastapi import APIRouter, Depends, Request

from server.dependencies.auth import get_user_id, verify_api_key
from server.models.requests import ConversationAppendRequest
from server.models.responses import ConversationResponse, SuccessResponse

router = APIRouter(prefix="/rag/conversation", tags=["conversation"], dependencies=[Depends(verify_api_key)])


@router.get("")
async def get_conversation(request: Request, user_id: str = Depends(get_user_id)) -> ConversationResponse:
    """Return the caller's conversation, oldest message first."""
    conversation_store = request.app.state.conversation_store
    return ConversationResponse(conversation=conversation_store.load(user_id))


@router.post("")
async def append_message(
    request: Request,
    body: ConversationAppendRequest,
    user_id: str = Depends(get_user_id),
) -> SuccessResponse:
    """Append one message to the caller's conversation.

    Body: {"message": {"type": "user" | "assistant", "content": "...", "timestamp"?: "...", "metadata"?: {...}}}

    Raises:
        InvalidRequest: 400 if the message is missing its type or content.
    """
    await request.app.state.conversation_store.append(user_id, body.message)
    return SuccessResponse()


@router.delete("")
async def clear_conversation(request: Request, user_id: str = Depends(get_user_id)) -> SuccessResponse:
    await request.app.state.conversation_store.clear(user_id)
    return SuccessResponse()
