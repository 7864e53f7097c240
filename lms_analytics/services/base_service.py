# lms_analytics/services/base_service.py
"""Base service with common CRUD operations."""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from typing import Type, Any, Dict, Optional, List, TypeVar, Generic

from ..core.exceptions import NotFoundError

# Define generic type
T = TypeVar('T')

class BaseService(Generic[T]):
    resource_name = "Record"

    def __init__(self, model: Type[T], db: AsyncSession):
        self.model = model
        self.db = db

    async def get(self, id: Any, include_deleted: bool = False) -> Optional[T]:
        stmt = select(self.model).where(self.model.id == id)
        if not include_deleted:
            stmt = stmt.where(self.model.is_deleted == False)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_or_404(self, id: Any) -> T:
        obj = await self.get(id)
        if not obj:
            raise NotFoundError(self.resource_name, id)
        return obj

    async def get_multi(
        self,
        skip: int = 0,
        limit: int = 100,
        include_deleted: bool = False,
        order_by: Optional[str] = None,
        sort: str = "desc",
        **filters
    ) -> List[T]:
        stmt = select(self.model)

        # Soft delete filter
        if not include_deleted:
            stmt = stmt.where(self.model.is_deleted == False)

        # Equality filters; None means "don't filter"
        for key, value in filters.items():
            if hasattr(self.model, key) and value is not None:
                stmt = stmt.where(getattr(self.model, key) == value)

        if order_by and hasattr(self.model, order_by):
            order_field = getattr(self.model, order_by)
            stmt = stmt.order_by(order_field.desc() if sort.lower() == "desc" else order_field.asc())

        stmt = stmt.offset(skip).limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def create(self, obj_in: Dict) -> T:
        obj = self.model(**obj_in)
        self.db.add(obj)
        await self.db.commit()
        await self.db.refresh(obj)
        return obj

    async def update(self, id: Any, obj_in: Dict) -> T:
        obj = await self.get_or_404(id)
        for key, value in obj_in.items():
            setattr(obj, key, value)
        await self.db.commit()
        await self.db.refresh(obj)
        return obj

    async def soft_delete(self, id: Any) -> bool:
        obj = await self.get(id)
        if not obj:
            return False
        obj.is_deleted = True
        await self.db.commit()
        return True

    async def count(self, **filters) -> int:
        """Count non-deleted records matching the equality filters"""
        stmt = select(func.count()).select_from(self.model).where(self.model.is_deleted == False)
        for key, value in filters.items():
            if hasattr(self.model, key) and value is not None:
                stmt = stmt.where(getattr(self.model, key) == value)
        result = await self.db.execute(stmt)
        return result.scalar() or 0
