import uuid
from typing import Any

from shared.clients.vectorstore.VectorStoreClientInterface import (
    VectorStoreClientInterface,
    get_upload_problem,
    resolve_mime_type,
)
from shared.clients.vectorstore.exceptions import ValidationError
from shared.clients.vectorstore.memory.BatchTracker import BatchTracker
from shared.clients.vectorstore.memory.FileRecordStore import FileRecordStore
from shared.clients.vectorstore.memory.KeywordSearchEngine import KeywordSearchEngine
from shared.clients.vectorstore.memory.ProcessingScheduler import (
    AsyncioProcessingScheduler,
    ProcessingScheduler,
    ScheduledHandle,
)
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig
from shared.models.vectorstore import (
    MAX_SEARCH_LIMIT,
    BatchStatus,
    FileRecord,
    FileStatus,
    FileStatusType,
    SearchOptions,
    SearchResult,
)


class VectorStoreClientMemory(VectorStoreClientInterface):
    """Deterministic in-memory vector store.

    Each instance owns its record store, batch tracker and scheduler; nothing is
    shared between instances. Files move uploading -> processing -> completed
    (or failed) after PROCESSING_DELAY_MS, driven by the scheduler.
    """

    def __init__(self, helper_config: HelperConfig, scheduler: ProcessingScheduler | None = None):
        super().__init__(helper_config=helper_config)
        self._api_key = self.get_config_val("API_KEY", default=None, val_type="string")
        self._store_id = self.get_config_val("STORE_ID", default="vs-memory", val_type="string")
        self.processing_delay_ms = self.get_config_val("PROCESSING_DELAY_MS", default=50, val_type="number")

        self._scheduler = scheduler or AsyncioProcessingScheduler()
        self._records = FileRecordStore(logger=self.logging)
        self._batches = BatchTracker(records=self._records, logger=self.logging)
        self._search_engine = KeywordSearchEngine()
        self._pending: dict[str, list[ScheduledHandle]] = {}

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Memory"

    def _get_default_poll_interval_ms(self) -> int:
        return 10

    def get_vector_store_id(self) -> str:
        return self._store_id

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="API_KEY", val_type="string", default=None),
            EnvConfig(env_key="STORE_ID", val_type="string", default="vs-memory"),
            EnvConfig(env_key="PROCESSING_DELAY_MS", val_type="number", default=50),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        return {}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return f"memory://{self._store_id}"

    def _get_endpoint_healthcheck(self) -> str:
        return "/"

    ##########################################
    ############### LIFECYCLE ################
    ##########################################

    async def boot(self) -> None:
        """Nothing to connect to; the store is ready on construction."""
        self.logging.debug("In-memory vector store %s ready.", self._store_id)

    async def close(self) -> None:
        """Cancel all pending state transitions."""
        cancelled = self._scheduler.cancel_all()
        self._pending.clear()
        if cancelled:
            self.logging.debug("Cancelled %d pending transition(s) on close.", cancelled)

    async def do_healthcheck(self) -> bool:
        return True

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
        if not isinstance(filename, str) or not filename.strip():
            raise ValidationError("Filename is required.")
        if not isinstance(content, (str, bytes)):
            raise ValidationError(f"Unsupported content for '{filename}': expected str or bytes.")

        raw = content.encode("utf-8") if isinstance(content, str) else content
        text = content if isinstance(content, str) else raw.decode("utf-8", errors="replace")
        resolved_type = resolve_mime_type(filename, mime_type)

        record = self._records.add(FileRecord(
            id=f"file-{uuid.uuid4().hex}",
            filename=filename,
            content=text,
            mime_type=resolved_type,
            size_bytes=len(raw),
            metadata=metadata,
        ))

        problem = get_upload_problem(len(raw), resolved_type)
        if problem is None and not text.strip():
            problem = "File is empty"
        self._schedule_processing(record.id, problem)

        self.logging.info("Accepted upload %s (%s, %d bytes).", record.id, filename, len(raw))
        return record.to_status()

    async def do_create_batch(self, file_ids: list[str]) -> BatchStatus:
        self.validate_batch_file_ids(file_ids)
        batch = self._batches.create(file_ids)
        self.logging.info("Created batch %s with %d file(s).", batch.id, len(batch.file_ids))
        return batch

    async def do_get_file(self, file_id: str) -> FileStatus:
        return self._records.get(file_id).to_status()

    async def do_get_batch(self, batch_id: str) -> BatchStatus:
        return self._batches.get(batch_id)

    async def do_cancel_batch(self, batch_id: str) -> BatchStatus:
        if not self._batches.mark_cancelled(batch_id):
            self.logging.debug("Batch %s is already cancelled.", batch_id)
            return self._batches.get(batch_id)

        cancelled = 0
        for file_id in self._batches.get_file_ids(batch_id):
            if file_id in self._records and self._fail_file(file_id, "Processing cancelled"):
                cancelled += 1
        self.logging.info("Cancelled batch %s (%d file(s) stopped).", batch_id, cancelled)
        return self._batches.get(batch_id)

    async def do_search(self, query: str, limit: int = 10, threshold: float = 0.0) -> list[SearchResult]:
        if not isinstance(query, str) or not query.strip():
            raise ValidationError("Search query must not be empty.")
        if not 0.0 <= threshold <= 1.0:
            raise ValidationError(f"Threshold must be between 0 and 1, got {threshold}.")
        options = SearchOptions(query=query, limit=max(1, min(int(limit), MAX_SEARCH_LIMIT)), threshold=threshold)

        snapshot = self._records.snapshot(status=FileStatusType.COMPLETED)
        results = self._search_engine.search(snapshot, options.query, options.limit, options.threshold)
        self.logging.info(
            "Search %r over %d completed file(s) returned %d result(s).",
            options.query[:80], len(snapshot), len(results),
        )
        return results

    async def do_list_files(self, limit: int = 20) -> list[FileStatus]:
        return [record.to_status() for record in self._records.snapshot()[:limit]]

    async def do_delete_file(self, file_id: str) -> None:
        self._records.get(file_id)
        self._cancel_pending(file_id)
        self._records.remove(file_id)
        self.logging.info("Deleted file %s.", file_id)

    ##########################################
    ############## SIMULATION ################
    ##########################################

    def simulate_processing_failure(self, file_id: str, error: str) -> bool:
        """Fail a file that is still processing. Returns False if it already finished."""
        return self._fail_file(file_id, error)

    def simulate_batch_failure(self, batch_id: str, error: str = "Batch processing failed") -> int:
        """Fail every unfinished file of a batch and return how many were failed."""
        return sum(
            1 for file_id in self._batches.get_file_ids(batch_id)
            if file_id in self._records and self._fail_file(file_id, error)
        )

    def reset(self) -> None:
        """Drop all files and batches and cancel pending transitions."""
        self._scheduler.cancel_all()
        self._pending.clear()
        self._records.clear()
        self._batches.clear()

    ##########################################
    ############### HELPERS ##################
    ##########################################

    async def _await_file_terminal(self, file_id: str) -> FileStatus:
        await self._records.completion_event(file_id).wait()
        return self._records.get(file_id).to_status()

    def _schedule_processing(self, file_id: str, problem: str | None) -> None:
        """Schedule uploading -> processing at half the delay and the outcome at the full delay."""

        def _start() -> None:
            if file_id in self._records:
                self._records.transition(file_id, FileStatusType.PROCESSING)

        def _finish() -> None:
            self._pending.pop(file_id, None)
            if file_id not in self._records:
                return
            if problem:
                if self._records.transition(file_id, FileStatusType.FAILED, error=problem):
                    self.logging.warning("File %s failed processing: %s", file_id, problem)
            elif self._records.transition(file_id, FileStatusType.COMPLETED):
                self.logging.info("File %s completed processing.", file_id)

        self._pending[file_id] = [
            self._scheduler.schedule(self.processing_delay_ms / 2, _start),
            self._scheduler.schedule(self.processing_delay_ms, _finish),
        ]

    def _cancel_pending(self, file_id: str) -> None:
        for handle in self._pending.pop(file_id, []):
            handle.cancel()

    def _fail_file(self, file_id: str, error: str) -> bool:
        self._cancel_pending(file_id)
        return self._records.transition(file_id, FileStatusType.FAILED, error=error)
