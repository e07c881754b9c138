"""
Base repository.

Generic CRUD plus the two write primitives the ledger relies on for
concurrency safety: atomic counter increments and status-guarded updates.
"""

from collections.abc import Iterable
from typing import Any, Generic, TypeVar

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.models.base import Base

# Generic type for model
ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    Base repository with generic async operations.

    Type Parameters:
        ModelType: SQLAlchemy model class

    Example:
        class ReferralRepository(BaseRepository[Referral]):
            def __init__(self, session: AsyncSession):
                super().__init__(Referral, session)
    """

    def __init__(
        self, model: type[ModelType], session: AsyncSession
    ) -> None:
        """
        Initialize repository.

        Args:
            model: SQLAlchemy model class
            session: Async database session
        """
        self.model = model
        self.session = session

    async def get_by_id(self, id: int) -> ModelType | None:
        """
        Get entity by ID.

        Args:
            id: Entity ID

        Returns:
            Entity or None if not found
        """
        return await self.session.get(self.model, id)

    async def refresh(self, entity: ModelType) -> ModelType:
        """Reload an entity after Core-level updates."""
        await self.session.refresh(entity)
        return entity

    async def get_by(
        self, **filters: Any
    ) -> ModelType | None:
        """
        Get single entity by filters.

        Args:
            **filters: Column filters

        Returns:
            First matching entity or None
        """
        stmt = select(self.model).filter_by(**filters).limit(1)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def find_by(
        self,
        limit: int | None = None,
        offset: int | None = None,
        **filters: Any,
    ) -> list[ModelType]:
        """
        Find entities matching filters.

        Args:
            limit: Max number of results
            offset: Number of results to skip
            **filters: Column filters

        Returns:
            List of matching entities ordered by id
        """
        stmt = select(self.model).filter_by(**filters).order_by(self.model.id)

        if offset:
            stmt = stmt.offset(offset)
        if limit:
            stmt = stmt.limit(limit)

        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def create(self, **data: Any) -> ModelType:
        """
        Create new entity.

        Flushes so unique constraints fire here (IntegrityError)
        rather than at commit.

        Args:
            **data: Entity data

        Returns:
            Created entity
        """
        entity = self.model(**data)
        self.session.add(entity)
        await self.session.flush()
        await self.session.refresh(entity)
        return entity

    async def update(self, id: int, **data: Any) -> ModelType | None:
        """
        Update entity by ID.

        Args:
            id: Entity ID
            **data: Updated data

        Returns:
            Updated entity or None if not found
        """
        entity = await self.get_by_id(id)
        if not entity:
            return None

        for key, value in data.items():
            setattr(entity, key, value)

        await self.session.flush()
        return entity

    async def increment(self, id: int, **deltas: Any) -> bool:
        """
        Atomically add deltas to numeric columns.

        Issues ``UPDATE ... SET col = col + :delta`` so concurrent writers
        never lose an increment.

        Args:
            id: Entity ID
            **deltas: Column name -> amount to add

        Returns:
            True if the row exists
        """
        values = {
            name: getattr(self.model, name) + delta
            for name, delta in deltas.items()
        }
        stmt = (
            update(self.model)
            .where(self.model.id == id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def transition(
        self,
        id: int,
        from_statuses: Iterable[str],
        **values: Any,
    ) -> bool:
        """
        Update a row only while its status is one of ``from_statuses``.

        The WHERE clause is the guard: a concurrent or repeated caller sees
        rowcount 0 and must not apply side effects.

        Args:
            id: Entity ID
            from_statuses: Allowed current statuses
            **values: Columns to set

        Returns:
            True if this call performed the transition
        """
        stmt = (
            update(self.model)
            .where(
                self.model.id == id,
                self.model.status.in_([str(s) for s in from_statuses]),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def count(self, **filters: Any) -> int:
        """
        Count entities matching filters.

        Args:
            **filters: Column filters

        Returns:
            Count of matching entities
        """
        stmt = select(func.count()).select_from(self.model)

        if filters:
            stmt = stmt.filter_by(**filters)

        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def exists(self, **filters: Any) -> bool:
        """
        Check if entity exists.

        Args:
            **filters: Column filters

        Returns:
            True if exists, False otherwise
        """
        count = await self.count(**filters)
        return count > 0

    async def find_paginated(
        self,
        page: int = 1,
        per_page: int = 50,
        order_by: Any = None,
        **filters: Any,
    ) -> tuple[list[ModelType], int]:
        """
        Find entities with pagination.

        Args:
            page: Page number (1-indexed)
            per_page: Items per page
            order_by: Ordering clause (defaults to newest id first)
            **filters: Column filters

        Returns:
            Tuple of (items, total_count)
        """
        page = max(page, 1)

        count_stmt = select(func.count(self.model.id))
        if filters:
            count_stmt = count_stmt.filter_by(**filters)

        count_result = await self.session.execute(count_stmt)
        total = count_result.scalar() or 0

        offset = (page - 1) * per_page
        stmt = (
            select(self.model)
            .filter_by(**filters)
            .order_by(order_by if order_by is not None else self.model.id.desc())
            .offset(offset)
            .limit(per_page)
        )

        result = await self.session.execute(stmt)
        items = list(result.scalars().all())

        return items, total
