"""Typed failures of the RAG subsystem.

Every error carries a stable ``kind`` string and the HTTP status the API
renders it with. Callers receive ``{"error": {"kind": ..., "message": ...}}``,
never a stack trace.
"""


class RAGError(Exception):
    """Base class for all typed RAG failures."""

    kind: str = "rag_error"
    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


class BackendUnavailable(RAGError):
    """The embedding/generation backend is unreachable, timed out or refused the request."""

    kind = "backend_unavailable"
    status_code = 503


class InvalidBackendResponse(RAGError):
    """The backend answered with a payload that cannot be interpreted."""

    kind = "invalid_backend_response"
    status_code = 502


class DimensionMismatch(RAGError):
    """An embedding's length does not match the dimension of the vector store."""

    kind = "dimension_mismatch"
    status_code = 409

    def __init__(self, expected: int, actual: int, chunk_id: str | None = None) -> None:
        target = f" for chunk '{chunk_id}'" if chunk_id else ""
        super().__init__(f"Embedding dimension {actual}{target} does not match store dimension {expected}.")
        self.expected = expected
        self.actual = actual
        self.chunk_id = chunk_id


class StoreCorruption(RAGError):
    """A persisted store cannot be read back. Clear the file and reindex."""

    kind = "store_corruption"
    status_code = 500

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Persisted store '{path}' is unreadable: {reason}. Remove it and reindex.")
        self.path = path
        self.reason = reason


class InvalidRequest(RAGError):
    """The caller sent a malformed request."""

    kind = "invalid_request"
    status_code = 400


class Unauthorized(RAGError):
    """The caller did not present a valid API key or user identity."""

    kind = "unauthorized"
    status_code = 401
