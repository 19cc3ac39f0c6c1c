from fastapi import APIRouter, Depends, File, Query, Request, UploadFile

from server.dependencies.auth import verify_api_key
from server.models.responses import DeleteResponse
from shared.models.vectorstore import MAX_SEARCH_LIMIT, FileStatus, StatusRequest, StatusResponse, UploadResponse

router = APIRouter(prefix="/files", tags=["files"])


@router.post("/upload")
async def upload_files(
    request: Request,
    files: list[UploadFile] = File(...),
    _: None = Depends(verify_api_key),
) -> UploadResponse:
    """Upload up to MAX_FILES_PER_BATCH files as one batch.

    Args:
        request (Request): FastAPI request (provides app.state.vectorstore_service).
        files (list[UploadFile]): Multipart parts named "files".
        _ (None): Auth dependency result (unused).

    Returns:
        UploadResponse: The accepted files and the batch id.
    """
    return await request.app.state.vectorstore_service.upload(files)


@router.post("/status")
async def get_status(
    request: Request,
    body: StatusRequest,
    _: None = Depends(verify_api_key),
) -> StatusResponse:
    """Processing status of a batch (batchId) or of a list of files (fileIds)."""
    return await request.app.state.vectorstore_service.get_status(body)


@router.get("/list")
async def list_files(
    request: Request,
    limit: int = Query(default=20, ge=1, le=MAX_SEARCH_LIMIT),
    _: None = Depends(verify_api_key),
) -> list[FileStatus]:
    return await request.app.state.vectorstore_service.list_files(limit)


@router.delete("/{file_id}")
async def delete_file(
    request: Request,
    file_id: str,
    _: None = Depends(verify_api_key),
) -> DeleteResponse:
    return await request.app.state.vectorstore_service.delete_file(file_id)
