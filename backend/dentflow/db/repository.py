"""Tenant-scoped data access.

Every query issued here carries ``model.practice_id == scope.practice_id``.
The RLS policies apply the same filter again at the storage layer.
"""

import logging
from typing import Any, Optional, Sequence, TypeVar
from uuid import UUID

from sqlalchemy import ColumnElement, func, select
from sqlalchemy.exc import IntegrityError

from dentflow.core.exceptions import Conflict, NotFound, TenantContextError
from dentflow.core.tenancy import TenantSession
from dentflow.models.base import TenantMixin

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=TenantMixin)


class TenantRepository:
    """Repository bound to one practice for one transaction."""

    def __init__(self, scope: TenantSession) -> None:
        self.scope = scope
        self.session = scope.session

    def _scoped(self, model: type[ModelT], *conditions: ColumnElement[bool]):
        return select(model).where(model.practice_id == self.scope.practice_id, *conditions)

    async def get(self, model: type[ModelT], id: UUID) -> ModelT:
        """
        Fetch one row by primary key.

        Raises:
            NotFound: If the row does not exist or belongs to another practice
        """
        result = await self.session.execute(self._scoped(model, model.id == id))
        obj = result.scalar_one_or_none()
        if obj is None:
            raise NotFound()
        return obj

    async def first(self, model: type[ModelT], *conditions: ColumnElement[bool]) -> Optional[ModelT]:
        result = await self.session.execute(self._scoped(model, *conditions).limit(1))
        return result.scalars().first()

    async def list(
        self,
        model: type[ModelT],
        *conditions: ColumnElement[bool],
        order_by: Sequence[Any] = (),
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> Sequence[ModelT]:
        query = self._scoped(model, *conditions).order_by(*order_by).offset(offset)
        if limit is not None:
            query = query.limit(limit)
        result = await self.session.execute(query)
        return result.scalars().all()

    async def count(self, model: type[ModelT], *conditions: ColumnElement[bool]) -> int:
        query = (
            select(func.count())
            .select_from(model)
            .where(model.practice_id == self.scope.practice_id, *conditions)
        )
        return (await self.session.execute(query)).scalar_one()

    async def add(self, obj: ModelT) -> ModelT:
        """
        Insert a row into the scoped practice and flush it.

        Raises:
            TenantContextError: If the object already names a different practice
            Conflict: If the row violates a unique constraint
        """
        if obj.practice_id is not None and obj.practice_id != self.scope.practice_id:
            logger.error("Refusing to insert a row for another practice")
            raise TenantContextError()
        obj.practice_id = self.scope.practice_id
        self.session.add(obj)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            logger.warning("Insert rejected by a constraint", extra={"table": obj.__tablename__})
            raise Conflict() from exc
        return obj
