from abc import abstractmethod
import asyncio
import mimetypes
import os
from typing import Any, Callable

from shared.clients.ClientInterface import ClientInterface
from shared.clients.vectorstore.exceptions import ProcessingTimeoutError, ValidationError
from shared.helper.HelperConfig import HelperConfig
from shared.models.vectorstore import (
    DEFAULT_MAX_WAIT_MS,
    MAX_FILE_SIZE,
    MAX_FILES_PER_BATCH,
    SUPPORTED_FILE_TYPES,
    BatchStatus,
    BatchStatusType,
    FileStatus,
    FileUpload,
    SearchResult,
    StatusResponse,
    UploadResponse,
)

# explicit table first, mimetypes does not know .md on every platform
_EXTENSION_TYPES: dict[str, str] = {
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".markdown": "text/markdown",
    ".csv": "text/csv",
    ".pdf": "application/pdf",
    ".json": "application/json",
    ".xls": "application/vnd.ms-excel",
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ".doc": "application/msword",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}


def resolve_mime_type(filename: str, mime_type: str | None = None) -> str | None:
    """Return the normalised content type, given explicitly or guessed from the file extension."""
    if mime_type and mime_type.strip():
        return mime_type.split(";")[0].strip().lower()
    ext = os.path.splitext(filename)[1].lower()
    return _EXTENSION_TYPES.get(ext) or mimetypes.guess_type(filename)[0]


def get_upload_problem(size_bytes: int, mime_type: str | None) -> str | None:
    """Return why a file cannot be accepted (size or type), or None if it can."""
    if size_bytes > MAX_FILE_SIZE:
        return f"File size should be less than {MAX_FILE_SIZE // 1024 // 1024}MB"
    if mime_type not in SUPPORTED_FILE_TYPES:
        return f"File type should be one of: {', '.join(SUPPORTED_FILE_TYPES)}"
    return None


class VectorStoreClientInterface(ClientInterface):
    """Contract of a vector store: upload, status tracking and search.

    Engines implement the abstract do_* operations. Waiting, batch uploads and
    request validation are shared here so all engines behave the same at the
    boundary.
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self.poll_interval_ms = helper_config.get_number_val(
            f"{self.get_client_type().upper()}_POLL_INTERVAL_MS",
            default=self._get_default_poll_interval_ms(),
        )

    ##########################################
    ############### CHECKER ##################
    ##########################################

    def validate_upload_request(self, files: list[FileUpload]) -> None:
        """Validate a multi-file upload as a whole, before anything is accepted.

        Args:
            files (list[FileUpload]): The files of the request.

        Raises:
            ValidationError: If the request is empty, has too many files, or any file is oversized or of an unsupported type.
        """
        if not files:
            raise ValidationError("No files uploaded.")
        if len(files) > MAX_FILES_PER_BATCH:
            raise ValidationError(f"Too many files: {len(files)} (maximum {MAX_FILES_PER_BATCH} per batch).")

        problems: list[str] = []
        for i, file in enumerate(files):
            problem = get_upload_problem(file.size_bytes, resolve_mime_type(file.filename, file.mime_type))
            if problem:
                problems.append(f"File {i + 1} ({file.filename}): {problem}")
        if problems:
            raise ValidationError("; ".join(problems))

    def validate_batch_file_ids(self, file_ids: list[str]) -> None:
        """Raises ValidationError for an empty batch or one above MAX_FILES_PER_BATCH."""
        if not file_ids:
            raise ValidationError("A batch needs at least one file id.")
        if len(file_ids) > MAX_FILES_PER_BATCH:
            raise ValidationError(f"Too many files: {len(file_ids)} (maximum {MAX_FILES_PER_BATCH} per batch).")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "vectorstore"

    def _get_default_poll_interval_ms(self) -> int:
        """Poll interval used when waiting on remote state, overridable per engine."""
        return 2000

    @abstractmethod
    def get_vector_store_id(self) -> str:
        """Returns the id of the vector store this client writes to."""
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    @abstractmethod
    async def do_upload_file(
        self,
        filename: str,
        content: str | bytes,
        mime_type: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> FileStatus:
        """Upload a single file and start processing it.

        Returns as soon as the file is registered. Processing outcome is reported
        through the file status, never raised.

        Args:
            filename (str): Name of the file, must not be blank.
            content (str | bytes): Raw file content.
            mime_type (str | None): Content type; guessed from the extension if omitted.
            metadata (dict | None): Free-form metadata stored with the file.

        Returns:
            FileStatus: The registered file, usually in "uploading" or "processing".

        Raises:
            ValidationError: If the filename is blank.
        """
        pass

    @abstractmethod
    async def do_create_batch(self, file_ids: list[str]) -> BatchStatus:
        """Group uploaded files into a batch tracked in aggregate.

        Raises:
            ValidationError: If the batch is empty or larger than MAX_FILES_PER_BATCH.
            NotFoundError: If any file id is unknown.
        """
        pass

    @abstractmethod
    async def do_get_file(self, file_id: str) -> FileStatus:
        """Returns the current status of a file. Raises NotFoundError for unknown ids."""
        pass

    @abstractmethod
    async def do_get_batch(self, batch_id: str) -> BatchStatus:
        """Returns the aggregate state of a batch. Raises NotFoundError for unknown ids."""
        pass

    @abstractmethod
    async def do_cancel_batch(self, batch_id: str) -> BatchStatus:
        """Cancel a batch. Cancelling an already cancelled batch is a no-op."""
        pass

    @abstractmethod
    async def do_search(self, query: str, limit: int = 10, threshold: float = 0.0) -> list[SearchResult]:
        """Search completed files.

        Args:
            query (str): Free-text query, must not be blank.
            limit (int): Maximum number of results, clamped to [1, MAX_SEARCH_LIMIT].
            threshold (float): Minimum score in [0, 1].

        Returns:
            list[SearchResult]: Results ordered by descending score.

        Raises:
            ValidationError: If the query is blank or the threshold is out of range.
        """
        pass

    @abstractmethod
    async def do_list_files(self, limit: int = 20) -> list[FileStatus]:
        """List files of the vector store, oldest first."""
        pass

    @abstractmethod
    async def do_delete_file(self, file_id: str) -> None:
        """Remove a file from the vector store. Raises NotFoundError for unknown ids."""
        pass

    async def do_get_batch_status(self, batch_id: str) -> StatusResponse:
        """Returns the status-response view of a batch."""
        return StatusResponse.from_batch(await self.do_get_batch(batch_id))

    async def do_upload_files(self, files: list[FileUpload]) -> UploadResponse:
        """Upload several files and group them into one batch.

        The whole request is validated first; a single invalid file rejects the
        request and nothing is uploaded.

        Args:
            files (list[FileUpload]): Files to upload (1 to MAX_FILES_PER_BATCH).

        Returns:
            UploadResponse: The uploaded files, the vector store id and the batch id.

        Raises:
            ValidationError: If the request is invalid.
        """
        self.validate_upload_request(files)

        statuses: list[FileStatus] = []
        for file in files:
            statuses.append(
                await self.do_upload_file(file.filename, file.content, mime_type=file.mime_type, metadata=file.metadata)
            )
        batch = await self.do_create_batch([status.id for status in statuses])
        self.logging.info("Uploaded %d file(s) as batch %s.", len(statuses), batch.id)
        return UploadResponse(
            success=True,
            files=statuses,
            vector_store_id=self.get_vector_store_id(),
            batch_id=batch.id,
            message=f"Successfully uploaded {len(statuses)} file(s). Processing in vector store...",
        )

    async def do_wait_for_processing(self, file_id: str, timeout_ms: float = DEFAULT_MAX_WAIT_MS) -> FileStatus:
        """Wait until a file reaches a terminal state ("completed" or "failed").

        Completion and timeout race; whichever comes first wins and the other
        side is cancelled.

        Args:
            file_id (str): The file to wait for.
            timeout_ms (float): Time budget in milliseconds.

        Returns:
            FileStatus: The terminal status of the file.

        Raises:
            NotFoundError: If the file id is unknown.
            ProcessingTimeoutError: If the budget elapsed first. The status is unknown, not failed.
        """
        try:
            return await asyncio.wait_for(self._await_file_terminal(file_id), timeout=timeout_ms / 1000)
        except asyncio.TimeoutError:
            self.logging.warning("File %s did not finish processing within %sms.", file_id, timeout_ms)
            raise ProcessingTimeoutError(
                f"File {file_id} did not complete processing within {timeout_ms}ms",
                target_id=file_id,
                timeout_ms=timeout_ms,
            )

    async def do_wait_for_batch(
        self,
        batch_id: str,
        timeout_ms: float = DEFAULT_MAX_WAIT_MS,
        on_progress: Callable[[StatusResponse], None] | None = None,
    ) -> StatusResponse:
        """Wait until no file of the batch is in progress, or the batch is cancelled.

        Args:
            batch_id (str): The batch to wait for.
            timeout_ms (float): Time budget in milliseconds.
            on_progress (Callable | None): Called with every observed status.

        Returns:
            StatusResponse: The final observed status.

        Raises:
            NotFoundError: If the batch id is unknown.
            ProcessingTimeoutError: If the budget elapsed first.
        """

        async def _poll() -> StatusResponse:
            while True:
                batch = await self.do_get_batch(batch_id)
                status = StatusResponse.from_batch(batch)
                if on_progress:
                    on_progress(status)
                if batch.is_settled or batch.status == BatchStatusType.CANCELLED:
                    return status
                await asyncio.sleep(self.poll_interval_ms / 1000)

        try:
            return await asyncio.wait_for(_poll(), timeout=timeout_ms / 1000)
        except asyncio.TimeoutError:
            self.logging.warning("Batch %s did not settle within %sms.", batch_id, timeout_ms)
            raise ProcessingTimeoutError(
                f"Batch {batch_id} did not complete processing within {timeout_ms}ms",
                target_id=batch_id,
                timeout_ms=timeout_ms,
            )

    ##########################################
    ############### HELPERS ##################
    ##########################################

    async def _await_file_terminal(self, file_id: str) -> FileStatus:
        """Poll the file status until it is terminal. Engines with a completion signal override this."""
        while True:
            status = await self.do_get_file(file_id)
            if status.status.is_terminal:
                return status
            await asyncio.sleep(self.poll_interval_ms / 1000)
