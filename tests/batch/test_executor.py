"""
Tests for rental_batch.services.executor.

Validates BatchExecutor: submit_job, execute_job (SAVEPOINT-per-item),
get_job, get_job_items, idempotency and the re-execution guard.
"""

from datetime import datetime
from typing import Any
from uuid import uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from rental_batch.domain.types import BatchItemStatus, BatchJobStatus
from rental_batch.models.batch import BatchJobModel
from rental_batch.services.executor import BatchExecutor
from rental_batch.tasks.base import (
    BatchItemInput,
    BatchTask,
    BatchTaskResult,
    TaskRegistry,
    default_task_registry,
)
from rental_kernel.exceptions import (
    BatchAlreadyRunningError,
    BatchIdempotencyError,
    BatchJobNotFoundError,
    TaskNotRegisteredError,
)
from rental_modules.billing.orm import RoomModel


# =============================================================================
# Test tasks
# =============================================================================


class _CountingTask:
    """Base for test tasks: ``item_count`` items keyed item-000, item-001, ..."""

    def prepare_items(
        self, parameters: dict[str, Any], session: Session, as_of: datetime,
    ) -> tuple[BatchItemInput, ...]:
        count = parameters.get("item_count", 3)
        return tuple(
            BatchItemInput(item_index=i, item_key=f"item-{i:03d}")
            for i in range(count)
        )


class SuccessTask(_CountingTask):
    """All items succeed."""

    @property
    def task_type(self) -> str:
        return "test.success"

    @property
    def description(self) -> str:
        return "All items succeed"

    def execute_item(self, item, parameters, session, as_of) -> BatchTaskResult:
        return BatchTaskResult(
            status=BatchItemStatus.SUCCEEDED,
            result_data={"processed": item.item_key},
        )


class RoomWritingTask(_CountingTask):
    """Writes a room per item; odd-indexed items raise after writing."""

    @property
    def task_type(self) -> str:
        return "test.rooms"

    @property
    def description(self) -> str:
        return "Odd items fail after a write"

    def execute_item(self, item, parameters, session, as_of) -> BatchTaskResult:
        session.add(RoomModel(floor=1, room_number=item.item_key))
        session.flush()
        if item.item_index % 2 == 1:
            raise ValueError(f"boom {item.item_key}")
        return BatchTaskResult(status=BatchItemStatus.SUCCEEDED)


class SkipTask(_CountingTask):
    @property
    def task_type(self) -> str:
        return "test.skip"

    @property
    def description(self) -> str:
        return "Every item is skipped"

    def execute_item(self, item, parameters, session, as_of) -> BatchTaskResult:
        return BatchTaskResult(status=BatchItemStatus.SKIPPED)


class AllFailTask(_CountingTask):
    @property
    def task_type(self) -> str:
        return "test.fail"

    @property
    def description(self) -> str:
        return "Every item reports failure"

    def execute_item(self, item, parameters, session, as_of) -> BatchTaskResult:
        return BatchTaskResult(
            status=BatchItemStatus.FAILED,
            error_code="TEST_FAILURE",
            error_message="nope",
        )


class BrokenPrepareTask(SuccessTask):
    @property
    def task_type(self) -> str:
        return "test.broken_prepare"

    def prepare_items(self, parameters, session, as_of):
        raise RuntimeError("cannot query")


@pytest.fixture
def registry():
    registry = TaskRegistry()
    for task in (SuccessTask(), RoomWritingTask(), SkipTask(), AllFailTask(), BrokenPrepareTask()):
        registry.register(task)
    return registry


@pytest.fixture
def executor(session, registry, clock):
    return BatchExecutor(session, registry, clock)


def _submit(executor, task_type="test.success", **parameters):
    return executor.submit_job(
        job_name=f"job-{task_type}",
        task_type=task_type,
        idempotency_key=f"{task_type}:{uuid4()}",
        parameters=parameters,
    )


# =============================================================================
# Registry
# =============================================================================


class TestTaskRegistry:
    def test_tasks_satisfy_protocol(self):
        assert isinstance(SuccessTask(), BatchTask)

    def test_duplicate_rejected(self, registry):
        with pytest.raises(ValueError):
            registry.register(SuccessTask())

    def test_unknown_task_type(self, registry):
        with pytest.raises(KeyError):
            registry.get("test.missing")

    def test_default_registry_has_penalty_sweep(self):
        registry = default_task_registry()
        assert "billing.overdue_penalties" in registry
        assert len(registry) == 1


# =============================================================================
# Submit
# =============================================================================


class TestSubmitJob:
    def test_creates_pending_job(self, executor, clock):
        job = _submit(executor, item_count=2)

        assert job.status is BatchJobStatus.PENDING
        assert job.parameters == {"item_count": 2}
        assert job.created_at == clock.now()
        assert job.created_by == "SYSTEM"

    def test_idempotency_key_reuse_rejected(self, executor):
        executor.submit_job("a", "test.success", idempotency_key="same-key")
        with pytest.raises(BatchIdempotencyError):
            executor.submit_job("b", "test.success", idempotency_key="same-key")

    def test_unregistered_task_type(self, executor):
        with pytest.raises(TaskNotRegisteredError):
            executor.submit_job("a", "test.missing", idempotency_key="k")


# =============================================================================
# Execute
# =============================================================================


class TestExecuteJob:
    def test_all_items_succeed(self, executor):
        job = _submit(executor, item_count=3)

        result = executor.execute_job(job.job_id)

        assert result.status is BatchJobStatus.COMPLETED
        assert (result.total_items, result.succeeded, result.failed, result.skipped) == (3, 3, 0, 0)
        assert result.item_results[0].result_data == {"processed": "item-000"}
        stored = executor.get_job(job.job_id)
        assert stored.status is BatchJobStatus.COMPLETED
        assert stored.succeeded_items == 3
        assert stored.completed_at is not None

    def test_failed_item_rolled_back_others_kept(self, session, executor):
        job = _submit(executor, "test.rooms", item_count=4)

        result = executor.execute_job(job.job_id)

        assert result.status is BatchJobStatus.PARTIALLY_COMPLETED
        assert result.succeeded == 2
        assert result.failed == 2
        failed = result.failed_items
        assert [r.item_key for r in failed] == ["item-001", "item-003"]
        assert failed[0].error_code == "UNHANDLED_EXCEPTION"
        assert failed[0].error_message == "boom item-001"
        rooms = session.scalars(select(RoomModel.room_number).order_by(RoomModel.room_number)).all()
        assert rooms == ["item-000", "item-002"]
        assert executor.get_job(job.job_id).error_summary == "2 item(s) failed"

    def test_skipped_items_complete_the_job(self, executor):
        job = _submit(executor, "test.skip", item_count=2)

        result = executor.execute_job(job.job_id)

        assert result.status is BatchJobStatus.COMPLETED
        assert result.skipped == 2

    def test_all_failed(self, executor):
        job = _submit(executor, "test.fail", item_count=2)

        result = executor.execute_job(job.job_id)

        assert result.status is BatchJobStatus.FAILED
        assert result.item_results[0].error_code == "TEST_FAILURE"

    def test_empty_job_completes(self, executor):
        job = _submit(executor, item_count=0)
        result = executor.execute_job(job.job_id)
        assert result.status is BatchJobStatus.COMPLETED
        assert result.total_items == 0

    def test_prepare_failure_fails_job(self, executor):
        job = _submit(executor, "test.broken_prepare")

        result = executor.execute_job(job.job_id)

        assert result.status is BatchJobStatus.FAILED
        assert "cannot query" in executor.get_job(job.job_id).error_summary

    def test_item_results_persisted(self, executor):
        job = _submit(executor, "test.rooms", item_count=2)
        executor.execute_job(job.job_id)

        items = executor.get_job_items(job.job_id)

        assert [i.item_index for i in items] == [0, 1]
        assert [i.status for i in items] == [BatchItemStatus.SUCCEEDED, BatchItemStatus.FAILED]

    def test_cannot_execute_twice(self, executor):
        job = _submit(executor)
        executor.execute_job(job.job_id)
        with pytest.raises(BatchAlreadyRunningError):
            executor.execute_job(job.job_id)

    def test_unknown_job(self, executor):
        with pytest.raises(BatchJobNotFoundError):
            executor.execute_job(uuid4())
        with pytest.raises(BatchJobNotFoundError):
            executor.get_job(uuid4())

    def test_job_row_counts(self, session, executor):
        _submit(executor)
        _submit(executor)
        assert session.scalar(select(func.count()).select_from(BatchJobModel)) == 2

    def test_completion_logged_with_job_context(self, executor, captured_logs):
        job = _submit(executor, item_count=1)
        executor.execute_job(job.job_id)

        completed = [r for r in captured_logs() if r["message"] == "batch_job_completed"]
        assert completed[0]["job_id"] == str(job.job_id)
        assert completed[0]["succeeded"] == 1
