from fastapi import UploadFile

from shared.clients.vectorstore.VectorStoreClientInterface import VectorStoreClientInterface
from shared.clients.vectorstore.exceptions import ValidationError
from shared.helper.HelperConfig import HelperConfig
from shared.models.vectorstore import (
    MAX_FILE_SIZE,
    BatchStatusType,
    FileStatus,
    FileStatusType,
    FileUpload,
    SearchOptions,
    SearchResponse,
    StatusRequest,
    StatusResponse,
    UploadResponse,
)
from server.models.responses import DeleteResponse

# browsers and curl send this when they do not know the type, the extension is more precise
_GENERIC_CONTENT_TYPE = "application/octet-stream"


class VectorStoreService:
    """Maps API requests onto the configured vector store client."""

    def __init__(self, helper_config: HelperConfig, vectorstore_client: VectorStoreClientInterface) -> None:
        self.logging = helper_config.get_logger()
        self._client = vectorstore_client

    ##########################################
    ############### CORE #####################
    ##########################################

    async def upload(self, uploads: list[UploadFile]) -> UploadResponse:
        """Read multipart uploads and hand them to the client as one batch.

        Raises:
            ValidationError: If a part has no filename or the request is invalid.
        """
        files: list[FileUpload] = []
        for i, upload in enumerate(uploads):
            if not upload.filename:
                raise ValidationError(f"File {i + 1}: filename is required.")
            if upload.size is not None and upload.size > MAX_FILE_SIZE:
                raise ValidationError(
                    f"File {i + 1} ({upload.filename}): File size should be less than {MAX_FILE_SIZE // 1024 // 1024}MB"
                )
            content_type = upload.content_type if upload.content_type != _GENERIC_CONTENT_TYPE else None
            files.append(FileUpload(filename=upload.filename, content=await upload.read(), mime_type=content_type))

        self.logging.info("VectorStoreService.upload: %d file(s).", len(files))
        return await self._client.do_upload_files(files)

    async def get_status(self, request: StatusRequest) -> StatusResponse:
        """Status of a batch, or the aggregate status of a list of files.

        Raises:
            ValidationError: If neither a batch id nor file ids are given.
            NotFoundError: If the batch or any file is unknown.
        """
        if request.batch_id:
            return await self._client.do_get_batch_status(request.batch_id)
        if not request.file_ids:
            raise ValidationError("Either batchId or fileIds is required.")

        statuses: list[FileStatus] = [await self._client.do_get_file(file_id) for file_id in request.file_ids]
        completed = sum(1 for s in statuses if s.status == FileStatusType.COMPLETED)
        failed = sum(1 for s in statuses if s.status == FileStatusType.FAILED)

        if completed == len(statuses):
            status = BatchStatusType.COMPLETED
        elif failed == len(statuses):
            status = BatchStatusType.FAILED
        else:
            status = BatchStatusType.IN_PROGRESS

        return StatusResponse(
            success=True,
            status=status,
            completed_count=completed,
            in_progress_count=len(statuses) - completed - failed,
            failed_count=failed,
            files=statuses,
        )

    async def list_files(self, limit: int) -> list[FileStatus]:
        return await self._client.do_list_files(limit=limit)

    async def delete_file(self, file_id: str) -> DeleteResponse:
        await self._client.do_delete_file(file_id)
        return DeleteResponse(deleted=True, id=file_id)

    async def search(self, options: SearchOptions) -> SearchResponse:
        self.logging.info(
            "VectorStoreService.search: query='%s', limit=%d, threshold=%.2f",
            options.query[:80], options.limit, options.threshold,
        )
        results = await self._client.do_search(options.query, limit=options.limit, threshold=options.threshold)
        return SearchResponse(query=options.query, results=results, total=len(results))
