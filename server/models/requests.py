from typing import Literal

from pydantic import BaseModel, field_validator

from shared.models.conversation import ConversationMessage
from shared.models.entities import EntityType
from shared.models.rag import RAGQueryContext


class ConversationAppendRequest(BaseModel):
    message: ConversationMessage


class IndexRequest(BaseModel):
    action: Literal["index-all", "index-type", "clear", "stats"]
    entity_type: EntityType | None = None


class QueryRequest(BaseModel):
    question: str
    context: RAGQueryContext | None = None

    @field_validator("question")
    @classmethod
    def _require_question(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("question must not be empty")
        return value
