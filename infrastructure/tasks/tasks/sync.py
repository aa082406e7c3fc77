"""Bucket reconciliation Celery tasks"""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

from celery import shared_task
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from application.services.file_sync_service import FileSyncService
from core.logging_config import get_logger
from domain.common.exceptions import StorageOperationException
from infrastructure.adapters.storage_port import S3StoragePortAdapter
from infrastructure.database import engine
from infrastructure.external.storage import build_storage_client
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork
from ..utils.base_task import BaseTask

logger = get_logger(__name__)

SYNC_MAX_ATTEMPTS = 3
SYNC_RETRY_WAIT = wait_exponential(multiplier=1, min=1, max=30)


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, StorageOperationException) and exc.transient


async def run_sync(max_attempts: int = SYNC_MAX_ATTEMPTS) -> Optional[dict]:
    """One reconciliation pass; returns None when storage is not configured."""
    client = build_storage_client()
    try:
        if not client.is_configured:
            logger.info("bucket_sync_skipped", reason="storage_not_configured")
            return None

        service = FileSyncService(SQLAlchemyUnitOfWork, S3StoragePortAdapter(client))
        retrying = AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max_attempts),
            wait=SYNC_RETRY_WAIT,
            retry=retry_if_exception(_is_transient),
            before_sleep=before_sleep_log(logging.getLogger(__name__), logging.WARNING),
        )
        async for attempt in retrying:
            with attempt:
                result = await service.reconcile()
        return result.model_dump()
    finally:
        await client.aclose()
        # Each task run owns its event loop; pooled connections must not outlive it
        await engine.dispose()


@shared_task(
    bind=True,
    base=BaseTask,
    name="infrastructure.tasks.tasks.sync.sync_bucket",
    ignore_result=False,
)
def sync_bucket(self) -> Optional[dict]:
    """Reconcile the stored file catalog with the bucket listing."""
    return asyncio.run(run_sync())
