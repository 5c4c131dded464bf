from pydantic import BaseModel

from shared.models.conversation import ConversationMessage


class ConversationResponse(BaseModel):
    conversation: list[ConversationMessage]


class SuccessResponse(BaseModel):
    success: bool = True


class IndexResponse(BaseModel):
    action: str
    stats: dict[str, int]
    report: dict | None = None


class StatusResponse(BaseModel):
    stats: dict[str, int]
    total: int
    is_indexed: bool
    is_indexing: bool
    last_report: dict | None = None
    tasks: list[dict] = []
