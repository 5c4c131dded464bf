from pydantic import BaseModel


class EntitiesListResponse(BaseModel):
    """One page of raw entities returned by the business data provider."""

    results: list[dict]
    currentPage: int
    nextPage: int | None = None
    overallCount: int | None = None
