"""
Base service class.

Provides session handling, bound logging and the result container shared
by all ledger services.
"""

from dataclasses import dataclass
from typing import Any

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession


@dataclass
class ServiceResult:
    """
    Standard service result container.

    Used where a caller (event consumer, API layer) needs a uniform
    success/error envelope instead of domain result objects.
    """

    success: bool
    data: Any = None
    error: str | None = None
    error_code: str | None = None


class BaseService:
    """
    Base service class.

    Services own the transaction: public operations commit on success and
    roll back on failure.
    """

    def __init__(self, session: AsyncSession) -> None:
        """
        Initialize base service.

        Args:
            session: Async database session
        """
        self.session = session
        self.logger = logger.bind(service=self.__class__.__name__)

    async def commit(self) -> None:
        """Commit current transaction."""
        await self.session.commit()

    async def rollback(self) -> None:
        """Rollback current transaction."""
        await self.session.rollback()
