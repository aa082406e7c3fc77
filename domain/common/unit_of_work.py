"""
Unit of Work 抽象

一次 ``async with uow:`` 即一个事务：正常退出自动提交，异常退出回滚。
``readonly=True`` 时不开启写事务，也不会提交。
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from domain.stored_file.repository import StoredFileRepository


class AbstractUnitOfWork(ABC):
    stored_file_repository: Optional[StoredFileRepository]

    def __init__(self, *, readonly: bool = False) -> None:
        self._readonly = readonly
        self._committed = False
        self.stored_file_repository = None

    @property
    def readonly(self) -> bool:
        return self._readonly

    async def __aenter__(self) -> "AbstractUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc is not None:
            await self.rollback()
            return
        if self._readonly or self._committed:
            return
        await self.commit()

    @abstractmethod
    async def commit(self) -> None:
        ...

    @abstractmethod
    async def rollback(self) -> None:
        ...
