"""
Idempotency — claim a key once, remember how it ended.

The row that claims the key *is* the business record, so there is no side
table. A model opts in with IdempotencyMixin:

    class OrderTable(Base, IdempotencyMixin):
        __tablename__ = "orders"
        id: Mapped[str] = mapped_column(primary_key=True)

    store = SQLAlchemyStore(
        session_factory,
        model=OrderTable,
        to_pending=lambda key, draft: OrderTable(id=draft.order_id, idempotency_key=key, ...),
    )

    match await store.with_pending(draft).set_pending(key):
        case Ok(True):   # we own the key
        case Ok(False):  # someone else claimed it first
        case Error(e):   # store failure
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Protocol, cast, runtime_checkable

from kungfu import Error, Ok, Result
from sqlalchemy import String, Text, inspect, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import CursorResult
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import Mapped, mapped_column

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# Idempotency Mixin
# ═══════════════════════════════════════════════════════════════════════════════

class IdempotencyMixin:
    """
    Adds:
    - idempotency_key: unique claim key
    - idempotency_status: "processing" | "completed" | "failed"
    - idempotency_value: serialized result once completed
    - idempotency_error: message once failed
    """

    idempotency_key: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    idempotency_status: Mapped[str] = mapped_column(String(20), nullable=False, default="processing")
    idempotency_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    idempotency_error: Mapped[str | None] = mapped_column(Text, nullable=True)


class IdempotencyStatus:
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@runtime_checkable
class IdempotentModel(Protocol):
    idempotency_key: str
    idempotency_status: str
    idempotency_value: str | None
    idempotency_error: str | None


# ═══════════════════════════════════════════════════════════════════════════════
# Records
# ═══════════════════════════════════════════════════════════════════════════════

class RecordState(Enum):
    """
    PENDING → COMPLETED (success)
            → FAILED (error)
    """
    PENDING = auto()
    COMPLETED = auto()
    FAILED = auto()


@dataclass(frozen=True, slots=True)
class IdempotencyRecord:
    key: str
    state: RecordState
    value: str | None
    error: str | None

    @property
    def is_pending(self) -> bool:
        return self.state is RecordState.PENDING

    @property
    def is_completed(self) -> bool:
        return self.state is RecordState.COMPLETED

    @property
    def is_failed(self) -> bool:
        return self.state is RecordState.FAILED


@dataclass(frozen=True, slots=True)
class StoreError:
    message: str
    cause: BaseException | None = None


# ═══════════════════════════════════════════════════════════════════════════════
# Insert ... ON CONFLICT DO NOTHING
# ═══════════════════════════════════════════════════════════════════════════════

def _row_values(model: object) -> dict[str, Any]:
    # unset attributes are left out so column defaults still apply
    return {
        attr.key: getattr(model, attr.key)
        for attr in inspect(type(model)).column_attrs
        if getattr(model, attr.key) is not None
    }


def _insert_ignoring_conflict(session: AsyncSession, model: object, key_column: str = "idempotency_key") -> Any:
    """Dialect-specific INSERT for `model` that does nothing when the key exists."""
    values = _row_values(model)
    bind = session.bind
    dialect = bind.dialect.name if bind is not None else "sqlite"
    factory = pg_insert if dialect == "postgresql" else sqlite_insert
    return factory(type(model)).values(**values).on_conflict_do_nothing(index_elements=[key_column])


# ═══════════════════════════════════════════════════════════════════════════════
# Generic SQLAlchemy Store
# ═══════════════════════════════════════════════════════════════════════════════

class SQLAlchemyStore[M, P]:
    """
    Typed idempotency store over a model with IdempotencyMixin.

    M: model type (OrderTable)
    P: pending data the claiming row is built from (OrderDraft)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        model: type[M],
        to_pending: Callable[[str, P], M],
    ) -> None:
        self._session_factory = session_factory
        self._model = model
        self._to_pending = to_pending
        self._pending: P | None = None

    def with_pending(self, pending: P) -> SQLAlchemyStore[M, P]:
        """Copy of this store that will claim keys with `pending` as the row data."""
        new_store: SQLAlchemyStore[M, P] = SQLAlchemyStore(
            self._session_factory, self._model, self._to_pending
        )
        new_store._pending = pending
        return new_store

    def _by_key(self, key: str) -> Any:
        return select(self._model).where(self._model.idempotency_key == key)  # type: ignore[attr-defined]

    async def get(self, key: str) -> Result[IdempotencyRecord | None, StoreError]:
        try:
            async with self._session_factory() as session:
                row = (await session.execute(self._by_key(key))).scalar_one_or_none()
                if row is None:
                    return Ok(None)
                model = cast(IdempotentModel, row)
                return Ok(self._to_record(model))
        except Exception as e:
            return Error(StoreError(f"Failed to get {key}: {e}", e))

    async def set_pending(self, key: str) -> Result[bool, StoreError]:
        """Claim `key`. Ok(False) when the key already exists."""
        if self._pending is None:
            return Error(StoreError("Pending data not set. Call with_pending() first."))
        try:
            async with self._session_factory() as session:
                model = self._to_pending(key, self._pending)
                cursor = cast(CursorResult[Any], await session.execute(_insert_ignoring_conflict(session, model)))
                await session.commit()
                return Ok(cursor.rowcount > 0)
        except Exception as e:
            return Error(StoreError(f"Failed to claim {key}: {e}", e))

    async def set_completed(self, key: str, value: str) -> Result[None, StoreError]:
        return await self._finish(key, IdempotencyStatus.COMPLETED, value=value)

    async def set_failed(self, key: str, error: object) -> Result[None, StoreError]:
        return await self._finish(key, IdempotencyStatus.FAILED, error=str(error))

    async def _finish(
        self,
        key: str,
        status: str,
        *,
        value: str | None = None,
        error: str | None = None,
    ) -> Result[None, StoreError]:
        try:
            async with self._session_factory() as session:
                row = (await session.execute(self._by_key(key))).scalar_one_or_none()
                if row is None:
                    return Error(StoreError(f"Record not found: {key}"))
                model = cast(IdempotentModel, row)
                model.idempotency_status = status
                model.idempotency_value = value
                model.idempotency_error = error
                await session.commit()
                logger.debug("idempotency key %s -> %s", key, status)
                return Ok(None)
        except Exception as e:
            return Error(StoreError(f"Failed to mark {key} {status}: {e}", e))

    @staticmethod
    def _to_record(model: IdempotentModel) -> IdempotencyRecord:
        match model.idempotency_status:
            case IdempotencyStatus.COMPLETED:
                state = RecordState.COMPLETED
            case IdempotencyStatus.FAILED:
                state = RecordState.FAILED
            case _:
                state = RecordState.PENDING
        return IdempotencyRecord(
            key=model.idempotency_key,
            state=state,
            value=model.idempotency_value,
            error=model.idempotency_error,
        )


__all__ = (
    "IdempotencyMixin",
    "IdempotencyStatus",
    "IdempotentModel",
    "RecordState",
    "IdempotencyRecord",
    "StoreError",
    "SQLAlchemyStore",
)
