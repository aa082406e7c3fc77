"""Celery 任务基类：统一记录任务开始、结束与失败"""
from __future__ import annotations

import time

from celery import Task

from core.logging_config import get_logger

logger = get_logger(__name__)


class BaseTask(Task):
    _started_at: dict = {}

    def before_start(self, task_id, args, kwargs):  # type: ignore[override]
        self._started_at[task_id] = time.monotonic()
        logger.info("celery_task_started", task_id=task_id, task_name=self.name)

    def _elapsed_ms(self, task_id) -> float | None:
        started = self._started_at.pop(task_id, None)
        if started is None:
            return None
        return round((time.monotonic() - started) * 1000, 2)

    def on_success(self, retval, task_id, args, kwargs):  # type: ignore[override]
        logger.info(
            "celery_task_success",
            task_id=task_id,
            task_name=self.name,
            duration_ms=self._elapsed_ms(task_id),
            result=retval,
        )

    def on_failure(self, exc, task_id, args, kwargs, einfo):  # type: ignore[override]
        logger.error(
            "celery_task_failure",
            task_id=task_id,
            task_name=self.name,
            duration_ms=self._elapsed_ms(task_id),
            error=str(exc),
            error_type=type(exc).__name__,
        )
