"""
rental_batch.domain.types -- Frozen dataclasses for the batch system.

No I/O. Status fields are string enums; collections are tuples.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID


class BatchJobStatus(str, Enum):
    """Job-level lifecycle status."""

    PENDING = "pending"  # Submitted, not yet started
    RUNNING = "running"
    COMPLETED = "completed"  # No item failed
    FAILED = "failed"  # Nothing succeeded and at least one item failed
    PARTIALLY_COMPLETED = "partially_completed"  # Some items failed


class BatchItemStatus(str, Enum):
    """Per-item status within a batch job."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"  # Nothing to do, e.g. already penalized


@dataclass(frozen=True)
class BatchJob:
    """Snapshot of a batch job. ``idempotency_key`` is unique across jobs."""

    job_id: UUID
    job_name: str
    task_type: str
    status: BatchJobStatus
    idempotency_key: str
    parameters: dict[str, Any] = field(default_factory=dict)
    total_items: int = 0
    succeeded_items: int = 0
    failed_items: int = 0
    skipped_items: int = 0
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_by: str | None = None
    error_summary: str | None = None


@dataclass(frozen=True)
class BatchItemResult:
    """Result of processing one item (one invoice for the penalty sweep)."""

    item_index: int
    item_key: str
    status: BatchItemStatus
    error_code: str | None = None
    error_message: str | None = None
    result_data: dict[str, Any] | None = None
    duration_ms: int = 0
    started_at: datetime | None = None
    completed_at: datetime | None = None


@dataclass(frozen=True)
class BatchRunResult:
    """Outcome of executing a complete batch job."""

    job_id: UUID
    status: BatchJobStatus
    total_items: int
    succeeded: int
    failed: int
    skipped: int
    item_results: tuple[BatchItemResult, ...] = ()
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int = 0

    @property
    def failed_items(self) -> tuple[BatchItemResult, ...]:
        """Items to retry."""
        return tuple(r for r in self.item_results if r.status is BatchItemStatus.FAILED)
