"""
PenaltyScheduler -- one overdue-penalty sweep per call.

Submits a ``billing.overdue_penalties`` job and executes it immediately.
Each call gets a fresh idempotency key, so repeated calls are separate jobs;
repeated sweeps never compound a penalty because penalized invoices are no
longer eligible.
"""

from __future__ import annotations

from uuid import uuid4

from sqlalchemy.orm import Session

from rental_batch.domain.types import BatchRunResult
from rental_batch.services.executor import BatchExecutor
from rental_batch.tasks.base import TaskRegistry
from rental_batch.tasks.billing_tasks import OverduePenaltyTask
from rental_kernel.domain.clock import Clock, SystemClock
from rental_kernel.logging_config import get_logger
from rental_modules.billing.config import BillingConfig

logger = get_logger("batch.penalty_scheduler")


class PenaltyScheduler:
    """Runs the overdue penalty sweep through the batch executor."""

    def __init__(
        self,
        session: Session,
        config: BillingConfig | None = None,
        clock: Clock | None = None,
    ):
        self._session = session
        self._config = config or BillingConfig.with_defaults()
        self._clock = clock or SystemClock()
        self._task = OverduePenaltyTask(self._config)
        registry = TaskRegistry()
        registry.register(self._task)
        self._executor = BatchExecutor(session, registry, self._clock)

    @property
    def executor(self) -> BatchExecutor:
        return self._executor

    def update_overdue_penalties(self) -> BatchRunResult:
        now = self._clock.now()
        job = self._executor.submit_job(
            job_name="overdue-penalty-sweep",
            task_type=self._task.task_type,
            idempotency_key=f"{self._task.task_type}:{now.isoformat()}:{uuid4().hex[:8]}",
            actor=self._config.system_actor,
            parameters={"penalty_rate": str(self._config.penalty_rate)},
        )
        result = self._executor.execute_job(job.job_id)
        logger.info(
            "overdue_penalties_updated",
            extra={
                "job_id": str(job.job_id),
                "penalized": result.succeeded,
                "failed": result.failed,
                "skipped": result.skipped,
            },
        )
        return result
