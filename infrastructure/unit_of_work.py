"""SQLAlchemy 版 Unit of Work：一个实例对应一个 AsyncSession"""
from __future__ import annotations

from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, AsyncSessionTransaction

from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.database import AsyncSessionLocal
from infrastructure.repositories.stored_file_repository import (
    SQLAlchemyStoredFileRepository,
)


class SQLAlchemyUnitOfWork(AbstractUnitOfWork):
    """
    同步任务要求“整批成功或整批不生效”，因此写模式下在进入时即 ``begin()``，
    退出时由基类决定 commit / rollback。

    传入 ``session`` 时复用外部会话（测试或嵌套调用），退出时不关闭它。
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        session: Optional[AsyncSession] = None,
        *,
        readonly: bool = False,
    ) -> None:
        super().__init__(readonly=readonly)
        self._session_factory = session_factory
        self._owns_session = session is None
        self.session: Optional[AsyncSession] = session
        self._transaction: Optional[AsyncSessionTransaction] = None

    async def __aenter__(self) -> "SQLAlchemyUnitOfWork":
        if self.session is None:
            self.session = self._session_factory()
        self.stored_file_repository = SQLAlchemyStoredFileRepository(self.session)
        if not self.readonly:
            self._transaction = await self.session.begin()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await super().__aexit__(exc_type, exc, tb)
        finally:
            await self._release()

    async def _release(self) -> None:
        if self._transaction is not None and self._transaction.is_active:
            await self._transaction.close()
        self._transaction = None
        if self._owns_session and self.session is not None:
            await self.session.close()
            self.session = None
        self.stored_file_repository = None

    async def commit(self) -> None:
        if not self.readonly and self.session is not None and self.session.in_transaction():
            await self.session.commit()
        self._committed = True

    async def rollback(self) -> None:
        if self.session is not None and self.session.in_transaction():
            await self.session.rollback()
        self._committed = False
