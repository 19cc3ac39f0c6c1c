from fastapi import APIRouter, Depends, Request

from server.dependencies.auth import verify_api_key
from shared.models.vectorstore import SearchOptions, SearchResponse

router = APIRouter(prefix="/search", tags=["search"])


@router.post("")
async def search_files(
    request: Request,
    body: SearchOptions,
    _: None = Depends(verify_api_key),
) -> SearchResponse:
    """Search the completed files of the vector store.

    Args:
        request (Request): FastAPI request (provides app.state.vectorstore_service).
        body (SearchOptions): JSON body with query, limit and threshold.
        _ (None): Auth dependency result (unused).

    Returns:
        SearchResponse: Ranked results with snippets and scores.
    """
    return await request.app.state.vectorstore_service.search(body)
