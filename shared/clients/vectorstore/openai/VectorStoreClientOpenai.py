import uuid
from datetime import datetime, timezone
from typing import Any

from shared.clients.vectorstore.VectorStoreClientInterface import (
    VectorStoreClientInterface,
    get_upload_problem,
    resolve_mime_type,
)
from shared.clients.vectorstore.exceptions import ValidationError, VectorStoreError
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig
from shared.models.vectorstore import (
    MAX_SEARCH_LIMIT,
    BatchStatus,
    BatchStatusType,
    FileCounts,
    FileStatus,
    FileStatusType,
    FileUpload,
    SearchResult,
    UploadResponse,
    utcnow,
)

_SNIPPET_LENGTH = 160

# remote vector store file status -> local status
_FILE_STATUS_MAP: dict[str, FileStatusType] = {
    "in_progress": FileStatusType.PROCESSING,
    "completed": FileStatusType.COMPLETED,
    "failed": FileStatusType.FAILED,
    "cancelled": FileStatusType.FAILED,
}

# remote file batch status -> local status, a batch being cancelled is already past cancel
_BATCH_STATUS_MAP: dict[str, BatchStatusType] = {
    "in_progress": BatchStatusType.IN_PROGRESS,
    "completed": BatchStatusType.COMPLETED,
    "failed": BatchStatusType.FAILED,
    "cancelling": BatchStatusType.CANCELLED,
    "cancelled": BatchStatusType.CANCELLED,
}


class VectorStoreClientOpenai(VectorStoreClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", default="https://api.openai.com/v1", val_type="string")
        self._api_key = self.get_config_val("API_KEY", default=None, val_type="string")
        self._store_id = self.get_config_val("STORE_ID", default="", val_type="string") or None
        self._store_name = self.get_config_val("STORE_NAME", default="RAG Chat Vector Store", val_type="string")

        # file id -> filename, vector store file objects do not carry the name
        self._filenames: dict[str, str] = {}
        # batch id -> file ids, batch objects only carry counts
        self._batch_files: dict[str, list[str]] = {}
        # uploads rejected locally before reaching the backend
        self._rejected: dict[str, FileStatus] = {}

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Openai"

    def get_vector_store_id(self) -> str:
        if not self._store_id:
            raise VectorStoreError("No vector store available. Call boot() first or set VECTORSTORE_OPENAI_STORE_ID.")
        return self._store_id

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default="https://api.openai.com/v1"),
            EnvConfig(env_key="API_KEY", val_type="string", default=None),
            EnvConfig(env_key="STORE_ID", val_type="string", default=""),
            EnvConfig(env_key="STORE_NAME", val_type="string", default="RAG Chat Vector Store"),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "OpenAI-Beta": "assistants=v2",
        }

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return "/models"

    def _get_endpoint_files(self) -> str:
        return "/files"

    def _get_endpoint_vector_stores(self) -> str:
        return "/vector_stores"

    def _get_endpoint_vector_store(self) -> str:
        return f"/vector_stores/{self.get_vector_store_id()}"

    def _get_endpoint_store_files(self) -> str:
        return f"{self._get_endpoint_vector_store()}/files"

    def _get_endpoint_store_file(self, file_id: str) -> str:
        return f"{self._get_endpoint_vector_store()}/files/{file_id}"

    def _get_endpoint_batches(self) -> str:
        return f"{self._get_endpoint_vector_store()}/file_batches"

    def _get_endpoint_batch(self, batch_id: str) -> str:
        return f"{self._get_endpoint_vector_store()}/file_batches/{batch_id}"

    def _get_endpoint_search(self) -> str:
        return f"{self._get_endpoint_vector_store()}/search"

    ##########################################
    ########### PAYLOAD BUILDER ##############
    ##########################################

    def get_search_payload(self, query: str, limit: int, threshold: float) -> dict:
        payload: dict[str, Any] = {"query": query, "max_num_results": limit}
        if threshold > 0:
            payload["ranking_options"] = {"score_threshold": threshold}
        return payload

    def get_batch_payload(self, file_ids: list[str]) -> dict:
        return {"file_ids": list(dict.fromkeys(file_ids))}

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    def extract_file_status(self, raw: dict) -> FileStatus:
        """Convert a vector store file object into a FileStatus."""
        file_id = raw.get("id", "")
        status = _FILE_STATUS_MAP.get(raw.get("status", ""), FileStatusType.PROCESSING)
        error = None
        if status == FileStatusType.FAILED:
            last_error = raw.get("last_error") or {}
            error = last_error.get("message") or ("Processing cancelled" if raw.get("status") == "cancelled" else "Processing failed")
        return FileStatus(
            id=file_id,
            filename=raw.get("filename") or self._filenames.get(file_id, file_id),
            status=status,
            created_at=_from_timestamp(raw.get("created_at")),
            completed_at=_from_timestamp(raw["completed_at"]) if status.is_terminal and raw.get("completed_at") else None,
            error=error,
            metadata=raw.get("attributes") or None,
        )

    def extract_batch_status(self, raw: dict, file_ids: list[str] | None = None) -> BatchStatus:
        """Convert a file batch object into a BatchStatus. Cancelled files count as failed."""
        counts = raw.get("file_counts", {})
        status = _BATCH_STATUS_MAP.get(raw.get("status", ""), BatchStatusType.IN_PROGRESS)
        return BatchStatus(
            id=raw.get("id", ""),
            file_ids=file_ids or [],
            status=status,
            file_counts=FileCounts(
                completed=counts.get("completed", 0),
                in_progress=counts.get("in_progress", 0),
                failed=counts.get("failed", 0) + counts.get("cancelled", 0),
            ),
            created_at=_from_timestamp(raw.get("created_at")),
        )

    def extract_search_result(self, raw: dict) -> SearchResult:
        text = " ".join(
            part.get("text", "") for part in raw.get("content", []) if part.get("type", "text") == "text"
        ).strip()
        snippet = text if len(text) <= _SNIPPET_LENGTH else f"{text[:_SNIPPET_LENGTH].rstrip()}..."
        file_id = raw.get("file_id", "")
        return SearchResult(
            file_id=file_id,
            filename=raw.get("filename") or self._filenames.get(file_id, file_id),
            snippet=snippet,
            score=min(1.0, max(0.0, float(raw.get("score", 0.0)))),
        )

    ##########################################
    ############### LIFECYCLE ################
    ##########################################

    async def boot(self) -> None:
        """Open the HTTP client and make sure the vector store exists.

        Raises:
            NotFoundError: If the configured store id does not exist.
        """
        await super().boot()
        if self._store_id:
            await self.do_request("GET", endpoint=self._get_endpoint_vector_store(), raise_on_error=True)
            self.logging.info("Using existing vector store %s.", self._store_id)
            return

        response = await self.do_request(
            "POST",
            endpoint=self._get_endpoint_vector_stores(),
            json={"name": self._store_name},
            raise_on_error=True,
        )
        self._store_id = response.json()["id"]
        self.logging.info("Created vector store %s (%s).", self._store_id, self._store_name)

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_upload_file(
        self,
        filename: str,
        content: str | bytes,
        mime_type: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> FileStatus:
        file_id, problem = await self._upload_raw_file(filename, content, mime_type)
        if problem:
            return self._rejected[file_id]

        payload: dict[str, Any] = {"file_id": file_id}
        if metadata:
            payload["attributes"] = metadata
        response = await self.do_request(
            "POST", endpoint=self._get_endpoint_store_files(), json=payload, raise_on_error=True
        )
        status = self.extract_file_status(response.json())
        self.logging.info("Attached file %s (%s) to vector store %s.", file_id, filename, self._store_id)
        return status

    async def do_upload_files(self, files: list[FileUpload]) -> UploadResponse:
        """Upload all files first and attach them to the store with a single file batch.

        Files rejected locally keep their failed status and are left out of the
        batch. No batch is created when every file was rejected.
        """
        self.validate_upload_request(files)

        uploaded: list[tuple[str, FileUpload]] = []
        rejected: dict[int, FileStatus] = {}
        for i, file in enumerate(files):
            file_id, problem = await self._upload_raw_file(file.filename, file.content, file.mime_type)
            if problem:
                rejected[i] = self._rejected[file_id]
            else:
                uploaded.append((file_id, file))

        batch = await self.do_create_batch([file_id for file_id, _ in uploaded]) if uploaded else None
        processing = iter(
            FileStatus(id=file_id, filename=file.filename, status=FileStatusType.PROCESSING, created_at=batch.created_at, metadata=file.metadata)
            for file_id, file in uploaded
        )
        statuses = [rejected[i] if i in rejected else next(processing) for i in range(len(files))]

        self.logging.info(
            "Uploaded %d file(s) as batch %s, %d rejected.", len(uploaded), batch.id if batch else None, len(rejected)
        )
        return UploadResponse(
            success=True,
            files=statuses,
            vector_store_id=self.get_vector_store_id(),
            batch_id=batch.id if batch else None,
            message=f"Successfully uploaded {len(uploaded)} file(s). Processing in vector store...",
        )

    async def do_create_batch(self, file_ids: list[str]) -> BatchStatus:
        self.validate_batch_file_ids(file_ids)
        payload = self.get_batch_payload(file_ids)
        response = await self.do_request("POST", endpoint=self._get_endpoint_batches(), json=payload, raise_on_error=True)
        batch = self.extract_batch_status(response.json(), file_ids=payload["file_ids"])
        self._batch_files[batch.id] = batch.file_ids
        self.logging.info("Created file batch %s with %d file(s).", batch.id, len(batch.file_ids))
        return batch

    async def do_get_file(self, file_id: str) -> FileStatus:
        if file_id in self._rejected:
            return self._rejected[file_id]
        response = await self.do_request("GET", endpoint=self._get_endpoint_store_file(file_id), raise_on_error=True)
        return self.extract_file_status(response.json())

    async def do_get_batch(self, batch_id: str) -> BatchStatus:
        response = await self.do_request("GET", endpoint=self._get_endpoint_batch(batch_id), raise_on_error=True)
        return self.extract_batch_status(response.json(), file_ids=self._batch_files.get(batch_id))

    async def do_cancel_batch(self, batch_id: str) -> BatchStatus:
        batch = await self.do_get_batch(batch_id)
        if batch.status == BatchStatusType.CANCELLED:
            self.logging.debug("Batch %s is already cancelled.", batch_id)
            return batch
        response = await self.do_request(
            "POST", endpoint=f"{self._get_endpoint_batch(batch_id)}/cancel", raise_on_error=True
        )
        self.logging.info("Cancelled file batch %s.", batch_id)
        return self.extract_batch_status(response.json(), file_ids=self._batch_files.get(batch_id))

    async def do_search(self, query: str, limit: int = 10, threshold: float = 0.0) -> list[SearchResult]:
        if not isinstance(query, str) or not query.strip():
            raise ValidationError("Search query must not be empty.")
        if not 0.0 <= threshold <= 1.0:
            raise ValidationError(f"Threshold must be between 0 and 1, got {threshold}.")
        limit = max(1, min(int(limit), MAX_SEARCH_LIMIT))

        response = await self.do_request(
            "POST",
            endpoint=self._get_endpoint_search(),
            json=self.get_search_payload(query, limit, threshold),
            raise_on_error=True,
        )
        results = [self.extract_search_result(item) for item in response.json().get("data", [])]
        # the backend may round its threshold differently
        results = [r for r in results if r.score >= threshold]
        results.sort(key=lambda r: r.score, reverse=True)
        self.logging.info("Search %r returned %d result(s).", query[:80], len(results))
        return results[:limit]

    async def do_list_files(self, limit: int = 20) -> list[FileStatus]:
        response = await self.do_request(
            "GET",
            endpoint=self._get_endpoint_store_files(),
            params={"limit": limit, "order": "asc"},
            raise_on_error=True,
        )
        return [self.extract_file_status(item) for item in response.json().get("data", [])]

    async def do_delete_file(self, file_id: str) -> None:
        if self._rejected.pop(file_id, None) is not None:
            return
        await self.do_request("DELETE", endpoint=self._get_endpoint_store_file(file_id), raise_on_error=True)
        self._filenames.pop(file_id, None)
        self.logging.info("Deleted file %s from vector store %s.", file_id, self._store_id)

    ##########################################
    ############### HELPERS ##################
    ##########################################

    async def _upload_raw_file(self, filename: str, content: str | bytes, mime_type: str | None) -> tuple[str, str | None]:
        """Upload file content to the files endpoint.

        Files that can never be processed (empty, oversized, unsupported type)
        are not sent; they get a local id and a failed status instead.

        Returns:
            tuple[str, str | None]: The file id and the rejection reason, if any.

        Raises:
            ValidationError: If the filename is blank.
        """
        if not isinstance(filename, str) or not filename.strip():
            raise ValidationError("Filename is required.")
        if not isinstance(content, (str, bytes)):
            raise ValidationError(f"Unsupported content for '{filename}': expected str or bytes.")

        raw = content.encode("utf-8") if isinstance(content, str) else content
        resolved_type = resolve_mime_type(filename, mime_type)
        problem = get_upload_problem(len(raw), resolved_type) or (None if raw.strip() else "File is empty")
        if problem:
            file_id = f"file-local-{uuid.uuid4().hex}"
            now = utcnow()
            self._rejected[file_id] = FileStatus(
                id=file_id, filename=filename, status=FileStatusType.FAILED, created_at=now, completed_at=now, error=problem
            )
            self.logging.warning("Rejected upload of %s: %s", filename, problem)
            return file_id, problem

        response = await self.do_request(
            "POST",
            endpoint=self._get_endpoint_files(),
            data={"purpose": "assistants"},
            files={"file": (filename, raw, resolved_type or "application/octet-stream")},
            raise_on_error=True,
        )
        file_id = response.json()["id"]
        self._filenames[file_id] = filename
        self.logging.debug("Uploaded %s as %s (%d bytes).", filename, file_id, len(raw))
        return file_id, None


def _from_timestamp(value: Any) -> datetime:
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    return utcnow()
