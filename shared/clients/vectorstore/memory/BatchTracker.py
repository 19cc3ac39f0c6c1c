import logging
import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from shared.clients.vectorstore.exceptions import NotFoundError
from shared.clients.vectorstore.memory.FileRecordStore import FileRecordStore
from shared.models.vectorstore import BatchStatus, BatchStatusType, FileCounts, FileStatusType, utcnow


class _BatchEntry(BaseModel):
    id: str
    file_ids: tuple[str, ...]
    created_at: datetime = Field(default_factory=utcnow)
    cancelled: bool = False


class BatchTracker:
    """Groups uploaded files into batches and aggregates their status.

    A batch stores only its member ids and whether it was cancelled. Counts and
    status are derived from the file records on every read, so there is a
    single source of truth for processing state.
    """

    def __init__(self, records: FileRecordStore, logger: logging.Logger):
        self.logging = logger
        self._records = records
        self._batches: dict[str, _BatchEntry] = {}

    def create(self, file_ids: list[str]) -> BatchStatus:
        """Create a batch over existing files. Duplicate ids collapse to their first occurrence.

        Raises:
            NotFoundError: If any id is unknown at call time.
        """
        unknown = [file_id for file_id in file_ids if file_id not in self._records]
        if unknown:
            raise NotFoundError(f"Unknown file id(s): {', '.join(unknown)}")

        entry = _BatchEntry(id=f"batch-{uuid.uuid4().hex}", file_ids=tuple(dict.fromkeys(file_ids)))
        self._batches[entry.id] = entry
        self.logging.debug("Created batch %s with %d file(s).", entry.id, len(entry.file_ids))
        return self._aggregate(entry)

    def get(self, batch_id: str) -> BatchStatus:
        return self._aggregate(self._get_entry(batch_id))

    def get_file_ids(self, batch_id: str) -> tuple[str, ...]:
        return self._get_entry(batch_id).file_ids

    def mark_cancelled(self, batch_id: str) -> bool:
        """Flag a batch as cancelled. Returns False if it already was."""
        entry = self._get_entry(batch_id)
        if entry.cancelled:
            return False
        entry.cancelled = True
        return True

    def clear(self) -> None:
        self._batches.clear()

    def _get_entry(self, batch_id: str) -> _BatchEntry:
        entry = self._batches.get(batch_id)
        if entry is None:
            raise NotFoundError(f"Batch '{batch_id}' not found.")
        return entry

    def _aggregate(self, entry: _BatchEntry) -> BatchStatus:
        counts = FileCounts()
        for file_id in entry.file_ids:
            if file_id not in self._records:
                # deleted after batching
                counts.failed += 1
                continue
            status = self._records.get(file_id).status
            if status == FileStatusType.COMPLETED:
                counts.completed += 1
            elif status == FileStatusType.FAILED:
                counts.failed += 1
            else:
                counts.in_progress += 1

        total = len(entry.file_ids)
        if entry.cancelled:
            status = BatchStatusType.CANCELLED
        elif counts.completed == total:
            status = BatchStatusType.COMPLETED
        elif counts.failed == total:
            status = BatchStatusType.FAILED
        else:
            status = BatchStatusType.IN_PROGRESS

        return BatchStatus(
            id=entry.id,
            file_ids=list(entry.file_ids),
            status=status,
            file_counts=counts,
            created_at=entry.created_at,
        )
