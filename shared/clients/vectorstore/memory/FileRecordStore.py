import asyncio
import logging

from shared.clients.vectorstore.exceptions import NotFoundError
from shared.models.vectorstore import FileRecord, FileStatusType, utcnow

# uploading -> processing -> {completed | failed}; completed and failed are terminal
_ALLOWED_TRANSITIONS: dict[FileStatusType, set[FileStatusType]] = {
    FileStatusType.UPLOADING: {FileStatusType.PROCESSING, FileStatusType.COMPLETED, FileStatusType.FAILED},
    FileStatusType.PROCESSING: {FileStatusType.COMPLETED, FileStatusType.FAILED},
    FileStatusType.COMPLETED: set(),
    FileStatusType.FAILED: set(),
}


class FileRecordStore:
    """In-memory table of uploaded files and their lifecycle state.

    Owned by exactly one client instance. Records keep upload order, which is
    the tie-breaker for search ranking. Every record has a completion event
    that is set once, on its terminal transition.
    """

    def __init__(self, logger: logging.Logger):
        self.logging = logger
        self._records: dict[str, FileRecord] = {}
        self._events: dict[str, asyncio.Event] = {}

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, file_id: str) -> bool:
        return file_id in self._records

    def add(self, record: FileRecord) -> FileRecord:
        if record.id in self._records:
            raise ValueError(f"Duplicate file id '{record.id}'.")
        self._records[record.id] = record
        self._events[record.id] = asyncio.Event()
        if record.status.is_terminal:
            self._events[record.id].set()
        return record

    def get(self, file_id: str) -> FileRecord:
        """Return the record for an id.

        Raises:
            NotFoundError: If the id is unknown.
        """
        record = self._records.get(file_id)
        if record is None:
            raise NotFoundError(f"File '{file_id}' not found.")
        return record

    def transition(self, file_id: str, status: FileStatusType, error: str | None = None) -> bool:
        """Move a record to a new status.

        Transitions out of a terminal state are ignored, so a late timer can
        never overwrite an outcome.

        Args:
            file_id (str): The record to update.
            status (FileStatusType): The target status.
            error (str | None): Failure reason, stored only for "failed".

        Returns:
            bool: True if the record changed, False if the transition was ignored.

        Raises:
            NotFoundError: If the id is unknown.
        """
        record = self.get(file_id)
        if status not in _ALLOWED_TRANSITIONS[record.status]:
            self.logging.debug("Ignoring transition of file %s from %s to %s.", file_id, record.status.value, status.value)
            return False

        record.status = status
        if status == FileStatusType.FAILED:
            record.error = error or "Processing failed"
        if status.is_terminal:
            record.completed_at = utcnow()
            self._events[file_id].set()
        return True

    def completion_event(self, file_id: str) -> asyncio.Event:
        self.get(file_id)
        return self._events[file_id]

    def snapshot(self, status: FileStatusType | None = None) -> list[FileRecord]:
        """Copy of the records at call time, in upload order, optionally filtered by status."""
        return [
            record.model_copy()
            for record in self._records.values()
            if status is None or record.status == status
        ]

    def remove(self, file_id: str) -> FileRecord:
        record = self.get(file_id)
        del self._records[file_id]
        # release anyone still waiting on a removed file
        self._events.pop(file_id).set()
        return record

    def clear(self) -> None:
        for event in self._events.values():
            event.set()
        self._records.clear()
        self._events.clear()
