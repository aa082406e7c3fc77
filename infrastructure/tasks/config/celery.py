"""Celery 应用：broker 为 Redis，定时同步任务跑在 low 队列"""
from __future__ import annotations

import os
from typing import Optional

from celery import Celery
from celery.signals import setup_logging
from kombu import Queue

from core.config import settings
from core.logging_config import configure_logging, get_logger
from .beat import CELERY_BEAT_SCHEDULE

logger = get_logger(__name__)

CELERY_IMPORTS = ("infrastructure.tasks.tasks",)


def _redis_url(fallback_env: str) -> Optional[str]:
    return settings.redis.url or os.getenv(fallback_env)


def create_celery_app() -> Celery:
    app = Celery("s3_file_vault")
    app.conf.update(
        broker_url=_redis_url("CELERY_BROKER_URL"),
        result_backend=_redis_url("CELERY_RESULT_BACKEND"),
        task_serializer="json",
        result_serializer="json",
        accept_content=["json"],
        timezone="UTC",
        enable_utc=True,
        # worker 中途退出时任务重新入队，同步本身幂等
        task_acks_late=True,
        task_reject_on_worker_lost=True,
        task_track_started=True,
        worker_prefetch_multiplier=1,
        result_expires=settings.storage.sync_interval_seconds,
        task_default_queue="default",
        task_queues=(Queue("default"), Queue("low")),
        task_routes={"infrastructure.tasks.tasks.sync.*": {"queue": "low"}},
        beat_schedule=CELERY_BEAT_SCHEDULE,
        imports=CELERY_IMPORTS,
        task_always_eager=settings.runs_tasks_eagerly,
    )
    app.autodiscover_tasks(packages=CELERY_IMPORTS)
    return app


celery_app = create_celery_app()


@setup_logging.connect
def _configure_worker_logging(**kwargs):
    # 接管 Celery 自带的日志配置，worker 输出与 API 同格式
    configure_logging()


@celery_app.on_after_configure.connect
def _log_configuration(sender, **kwargs):
    logger.info(
        "celery_configured",
        beat_tasks=sorted(sender.conf.beat_schedule or {}),
        eager=bool(sender.conf.task_always_eager),
    )
