"""Pydantic models and constants for vector store ingestion, status tracking and search.

Wire-facing models serialise with camelCase aliases (``createdAt``,
``vectorStoreId``, ...) and accept either the alias or the field name on input.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

MAX_FILE_SIZE = 512 * 1024 * 1024  # 512 MiB
MAX_FILES_PER_BATCH = 20
DEFAULT_SEARCH_LIMIT = 10
MAX_SEARCH_LIMIT = 100
DEFAULT_POLL_INTERVAL_MS = 2000
DEFAULT_MAX_WAIT_MS = 5 * 60 * 1000

SUPPORTED_FILE_TYPES = (
    "text/plain",
    "text/markdown",
    "text/csv",
    "application/pdf",
    "application/json",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FileStatusType(str, Enum):
    UPLOADING = "uploading"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (FileStatusType.COMPLETED, FileStatusType.FAILED)


class BatchStatusType(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class WireModel(BaseModel):
    """Base for all models exchanged with callers."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FileStatus(WireModel):
    """Public view of an uploaded file and its processing state."""

    id: str
    filename: str
    status: FileStatusType
    created_at: datetime
    completed_at: datetime | None = None
    error: str | None = None
    metadata: dict[str, Any] | None = None


class FileRecord(BaseModel):
    """Internal record of an uploaded file, including the text used for indexing.

    Only the owning store mutates ``status``, ``error`` and ``completed_at``.
    """

    id: str
    filename: str
    status: FileStatusType = FileStatusType.UPLOADING
    created_at: datetime = Field(default_factory=utcnow)
    completed_at: datetime | None = None
    error: str | None = None
    content: str = ""
    mime_type: str | None = None
    size_bytes: int = 0
    metadata: dict[str, Any] | None = None

    def to_status(self) -> FileStatus:
        return FileStatus(
            id=self.id,
            filename=self.filename,
            status=self.status,
            created_at=self.created_at,
            completed_at=self.completed_at,
            error=self.error,
            metadata=self.metadata,
        )


class FileUpload(BaseModel):
    """A single file handed to a batch upload."""

    filename: str = Field(min_length=1)
    content: str | bytes
    mime_type: str | None = None
    metadata: dict[str, Any] | None = None

    @property
    def size_bytes(self) -> int:
        return len(self.content.encode("utf-8")) if isinstance(self.content, str) else len(self.content)


class SearchOptions(WireModel):
    query: str = Field(min_length=1)
    limit: int = Field(default=DEFAULT_SEARCH_LIMIT, ge=1, le=MAX_SEARCH_LIMIT)
    threshold: float = Field(default=0.0, ge=0.0, le=1.0)


class SearchResult(WireModel):
    file_id: str
    filename: str
    snippet: str
    score: float = Field(ge=0.0, le=1.0)


class SearchResponse(WireModel):
    query: str
    results: list[SearchResult]
    total: int


class FileCounts(WireModel):
    completed: int = 0
    in_progress: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.completed + self.in_progress + self.failed


class BatchStatus(WireModel):
    """Aggregate view of a batch; counts always sum to ``len(file_ids)``."""

    id: str
    file_ids: list[str]
    status: BatchStatusType
    file_counts: FileCounts
    created_at: datetime

    @property
    def is_settled(self) -> bool:
        return self.file_counts.in_progress == 0


class UploadResponse(WireModel):
    success: bool
    files: list[FileStatus]
    vector_store_id: str
    batch_id: str | None = None
    message: str


class StatusRequest(WireModel):
    batch_id: str | None = None
    file_ids: list[str] | None = None


class StatusResponse(WireModel):
    success: bool
    status: BatchStatusType
    completed_count: int = Field(ge=0)
    in_progress_count: int = Field(ge=0)
    failed_count: int = Field(ge=0)
    files: list[FileStatus] | None = None

    @classmethod
    def from_batch(cls, batch: BatchStatus) -> "StatusResponse":
        return cls(
            success=True,
            status=batch.status,
            completed_count=batch.file_counts.completed,
            in_progress_count=batch.file_counts.in_progress,
            failed_count=batch.file_counts.failed,
        )
