"""
Remote store client — request/response access to the shop tables.

Every call opens its own session and commits before returning, so callers
never hold a transaction across an await on something else.

    store = await RemoteStore.connect("sqlite+aiosqlite:///shop.db")

    plans = await store.select(PlanTable, order_by="product_id")
    await store.update(CartItemTable, {"quantity": 2}, where={"user_id": uid, "plan_id": pid})

Failures propagate as SQLAlchemy exceptions; components turn them into
Error(...) values with `combinators.lift.catching_async`.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any, cast

from sqlalchemy import ColumnElement, Executable, delete, select, update
from sqlalchemy.engine import CursorResult, Row
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from onlypremiums.db import create_database


def _conditions(model: type[Any], where: Mapping[str, object] | None) -> list[ColumnElement[bool]]:
    conditions: list[ColumnElement[bool]] = []
    for column, value in (where or {}).items():
        attr = getattr(model, column)
        conditions.append(attr.is_(None) if value is None else attr == value)
    return conditions


class RemoteStore:
    """CRUD per table with equality filters and single-column ordering."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        engine: AsyncEngine | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._engine = engine

    @classmethod
    async def connect(cls, url: str) -> RemoteStore:
        session_factory, engine = await create_database(url)
        return cls(session_factory, engine)

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()

    # ─────────────────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────────────────

    async def select[M](
        self,
        model: type[M],
        *,
        where: Mapping[str, object] | None = None,
        where_in: tuple[str, Iterable[object]] | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[M]:
        stmt = select(model).where(*_conditions(model, where))
        if where_in is not None:
            column, values = where_in
            stmt = stmt.where(getattr(model, column).in_(list(values)))
        if order_by is not None:
            column_attr = getattr(model, order_by)
            stmt = stmt.order_by(column_attr.desc() if descending else column_attr.asc())
        async with self._session_factory() as session:
            return list((await session.execute(stmt)).scalars().all())

    async def select_one[M](self, model: type[M], **where: object) -> M | None:
        rows = await self.select(model, where=where)
        return rows[0] if rows else None

    async def fetch(self, statement: Executable) -> list[Row[Any]]:
        """Run an arbitrary SELECT, e.g. a join, and return its rows."""
        async with self._session_factory() as session:
            return list((await session.execute(statement)).all())

    # ─────────────────────────────────────────────────────────────────────────
    # Writes
    # ─────────────────────────────────────────────────────────────────────────

    async def insert[M](self, model: type[M], values: Mapping[str, object]) -> M:
        row = model(**values)
        async with self._session_factory() as session:
            session.add(row)
            await session.commit()
        return row

    async def update(
        self,
        model: type[Any],
        values: Mapping[str, object],
        *,
        where: Mapping[str, object],
    ) -> int:
        """Returns the number of rows changed."""
        stmt = (
            update(model)
            .where(*_conditions(model, where))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return await self.execute(stmt)

    async def delete(self, model: type[Any], *, where: Mapping[str, object]) -> int:
        stmt = delete(model).where(*_conditions(model, where)).execution_options(synchronize_session=False)
        return await self.execute(stmt)

    async def execute(self, statement: Executable) -> int:
        """Run a write statement in its own transaction. Returns rowcount."""
        async with self._session_factory() as session:
            cursor = cast(CursorResult[Any], await session.execute(statement))
            await session.commit()
            return cursor.rowcount


__all__ = ("RemoteStore",)
