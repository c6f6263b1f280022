"""
BatchExecutor -- SAVEPOINT-per-item batch execution.

Contract:
    Orchestrates the batch job lifecycle: submit (with idempotency),
    execute (SAVEPOINT per item), query.

    - Each item runs in its own SAVEPOINT; a failing item is rolled back and
      recorded without aborting the job.
    - ``idempotency_key`` is unique; resubmitting raises
      ``BatchIdempotencyError``.
    - All timestamps come from the injected Clock.
    - The job row is locked (``FOR UPDATE``) while it executes.

The executor flushes but never commits; the caller owns the transaction.
"""

from __future__ import annotations

import time
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from rental_batch.domain.types import (
    BatchItemResult,
    BatchItemStatus,
    BatchJob,
    BatchJobStatus,
    BatchRunResult,
)
from rental_batch.models.batch import BatchItemModel, BatchJobModel
from rental_batch.tasks.base import BatchItemInput, BatchTask, TaskRegistry
from rental_kernel.domain.clock import Clock, SystemClock
from rental_kernel.exceptions import (
    BatchAlreadyRunningError,
    BatchIdempotencyError,
    BatchJobNotFoundError,
    TaskNotRegisteredError,
)
from rental_kernel.logging_config import LogContext, get_logger

logger = get_logger("batch.executor")


class BatchExecutor:
    """Batch execution engine with SAVEPOINT-per-item isolation."""

    def __init__(
        self,
        session: Session,
        task_registry: TaskRegistry,
        clock: Clock | None = None,
    ):
        self._session = session
        self._task_registry = task_registry
        self._clock = clock or SystemClock()

    # -------------------------------------------------------------------------
    # Submit
    # -------------------------------------------------------------------------

    def submit_job(
        self,
        job_name: str,
        task_type: str,
        idempotency_key: str,
        actor: str = "SYSTEM",
        parameters: dict[str, Any] | None = None,
    ) -> BatchJob:
        """Create a new PENDING batch job.

        Raises:
            TaskNotRegisteredError: If task_type is not in the registry.
            BatchIdempotencyError: If idempotency_key is already used.
        """
        if task_type not in self._task_registry:
            raise TaskNotRegisteredError(task_type)

        existing = self._session.execute(
            select(BatchJobModel).where(
                BatchJobModel.idempotency_key == idempotency_key,
            )
        ).scalar_one_or_none()
        if existing is not None:
            raise BatchIdempotencyError(idempotency_key, str(existing.id))

        model = BatchJobModel(
            job_name=job_name,
            task_type=task_type,
            status=BatchJobStatus.PENDING.value,
            idempotency_key=idempotency_key,
            parameters=parameters or {},
            created_by=actor,
            created_at=self._clock.now(),
        )
        self._session.add(model)
        self._session.flush()

        logger.info(
            "batch_job_submitted",
            extra={
                "job_id": str(model.id),
                "job_name": job_name,
                "task_type": task_type,
                "idempotency_key": idempotency_key,
            },
        )
        return model.to_dto()

    # -------------------------------------------------------------------------
    # Execute
    # -------------------------------------------------------------------------

    def execute_job(self, job_id: UUID) -> BatchRunResult:
        """Execute a PENDING job, one SAVEPOINT per item.

        Raises:
            BatchJobNotFoundError: If job_id does not exist.
            BatchAlreadyRunningError: If the job is not PENDING.
            TaskNotRegisteredError: If task_type is not registered.
        """
        start_time = time.monotonic()

        job_model = self._session.execute(
            select(BatchJobModel)
            .where(BatchJobModel.id == job_id)
            .with_for_update()
        ).scalar_one_or_none()
        if job_model is None:
            raise BatchJobNotFoundError(str(job_id))
        if job_model.status != BatchJobStatus.PENDING.value:
            raise BatchAlreadyRunningError(job_model.job_name, str(job_id))
        if job_model.task_type not in self._task_registry:
            raise TaskNotRegisteredError(job_model.task_type)
        task = self._task_registry.get(job_model.task_type)

        with LogContext.bind(job_id=str(job_id)):
            now = self._clock.now()
            job_model.status = BatchJobStatus.RUNNING.value
            job_model.started_at = now
            self._session.flush()

            parameters = dict(job_model.parameters or {})
            try:
                items = task.prepare_items(
                    parameters=parameters,
                    session=self._session,
                    as_of=now,
                )
            except Exception as exc:
                logger.exception("batch_prepare_failed")
                return self._fail_job(
                    job_model, f"prepare_items failed: {exc}", start_time,
                )

            job_model.total_items = len(items)
            self._session.flush()

            item_results = [
                self._run_item(task, item, parameters, now, job_model)
                for item in items
            ]
            succeeded = sum(1 for r in item_results if r.status is BatchItemStatus.SUCCEEDED)
            failed = sum(1 for r in item_results if r.status is BatchItemStatus.FAILED)
            skipped = sum(1 for r in item_results if r.status is BatchItemStatus.SKIPPED)

            job_model.succeeded_items = succeeded
            job_model.failed_items = failed
            job_model.skipped_items = skipped

            if failed == 0:
                job_model.status = BatchJobStatus.COMPLETED.value
            elif succeeded == 0 and skipped == 0:
                job_model.status = BatchJobStatus.FAILED.value
            else:
                job_model.status = BatchJobStatus.PARTIALLY_COMPLETED.value
            if failed > 0:
                job_model.error_summary = f"{failed} item(s) failed"

            completed_at = self._clock.now()
            job_model.completed_at = completed_at
            total_duration = int((time.monotonic() - start_time) * 1000)
            self._session.flush()

            logger.info(
                "batch_job_completed",
                extra={
                    "job_name": job_model.job_name,
                    "status": job_model.status,
                    "total_items": len(items),
                    "succeeded": succeeded,
                    "failed": failed,
                    "skipped": skipped,
                    "duration_ms": total_duration,
                },
            )

            return BatchRunResult(
                job_id=job_model.id,
                status=BatchJobStatus(job_model.status),
                total_items=len(items),
                succeeded=succeeded,
                failed=failed,
                skipped=skipped,
                item_results=tuple(item_results),
                started_at=job_model.started_at,
                completed_at=completed_at,
                duration_ms=total_duration,
            )

    def _run_item(
        self,
        task: BatchTask,
        item: BatchItemInput,
        parameters: dict[str, Any],
        as_of,
        job_model: BatchJobModel,
    ) -> BatchItemResult:
        item_start = time.monotonic()
        item_started_at = self._clock.now()

        savepoint = self._session.begin_nested()
        try:
            result = task.execute_item(
                item=item,
                parameters=parameters,
                session=self._session,
                as_of=as_of,
            )
        except Exception as exc:
            savepoint.rollback()
            error_code = getattr(exc, "code", "UNHANDLED_EXCEPTION")
            logger.warning(
                "batch_item_failed",
                extra={
                    "item_key": item.item_key,
                    "error_code": error_code,
                    "error": str(exc),
                },
            )
            item_result = BatchItemResult(
                item_index=item.item_index,
                item_key=item.item_key,
                status=BatchItemStatus.FAILED,
                error_code=error_code,
                error_message=str(exc),
                duration_ms=int((time.monotonic() - item_start) * 1000),
                started_at=item_started_at,
                completed_at=self._clock.now(),
            )
        else:
            if result.status is BatchItemStatus.SUCCEEDED:
                savepoint.commit()
            else:
                savepoint.rollback()
            item_result = BatchItemResult(
                item_index=item.item_index,
                item_key=item.item_key,
                status=result.status,
                error_code=result.error_code,
                error_message=result.error_message,
                result_data=result.result_data,
                duration_ms=int((time.monotonic() - item_start) * 1000),
                started_at=item_started_at,
                completed_at=self._clock.now(),
            )

        item_model = BatchItemModel.from_result(
            item_result, job_id=job_model.id, created_by=job_model.created_by,
        )
        item_model.created_at = self._clock.now()
        self._session.add(item_model)
        return item_result

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_job(self, job_id: UUID) -> BatchJob:
        """Raises BatchJobNotFoundError if job_id does not exist."""
        model = self._session.get(BatchJobModel, job_id)
        if model is None:
            raise BatchJobNotFoundError(str(job_id))
        return model.to_dto()

    def get_job_items(self, job_id: UUID) -> tuple[BatchItemResult, ...]:
        models = self._session.execute(
            select(BatchItemModel)
            .where(BatchItemModel.job_id == job_id)
            .order_by(BatchItemModel.item_index)
        ).scalars().all()
        return tuple(m.to_dto() for m in models)

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    def _fail_job(
        self,
        job_model: BatchJobModel,
        error_summary: str,
        start_time: float,
    ) -> BatchRunResult:
        job_model.status = BatchJobStatus.FAILED.value
        job_model.completed_at = self._clock.now()
        job_model.error_summary = error_summary
        self._session.flush()

        return BatchRunResult(
            job_id=job_model.id,
            status=BatchJobStatus.FAILED,
            total_items=0,
            succeeded=0,
            failed=0,
            skipped=0,
            started_at=job_model.started_at,
            completed_at=job_model.completed_at,
            duration_ms=int((time.monotonic() - start_time) * 1000),
        )
