"""Credential store: the durable record of bound accounts.

The binding and renewal services depend only on the ``CredentialStore``
protocol. ``SqlCredentialStore`` is the SQLAlchemy-backed implementation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Protocol

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .errors import PersistenceError
from .models import BindingRow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Binding:
    """A chat principal bound to a remote Graph account."""

    chat_id: int
    refresh_token: str
    subject_id: str
    alias: str
    client_id: str
    client_secret: str
    last_success_at: int  # Unix timestamp of the last full success
    extra: str = ""
    id: int | None = None

    def with_renewal(self, refresh_token: str, at: int) -> "Binding":
        """Copy with a rotated refresh token and a new success timestamp."""
        return replace(self, refresh_token=refresh_token, last_success_at=at)

    @classmethod
    def from_row(cls, row: BindingRow) -> "Binding":
        return cls(
            id=row.id,
            chat_id=row.chat_id,
            refresh_token=row.refresh_token,
            subject_id=row.subject_id,
            alias=row.alias,
            client_id=row.client_id,
            client_secret=row.client_secret,
            last_success_at=row.last_success_at,
            extra=row.extra or "",
        )


class CredentialStore(Protocol):
    async def insert(self, binding: Binding) -> Binding: ...

    async def update(self, binding: Binding) -> Binding: ...

    async def query_by_principal(self, chat_id: int) -> list[Binding]: ...

    async def query_all(self) -> list[Binding]: ...

    async def delete(self, chat_id: int, binding_id: int) -> bool: ...


class SqlCredentialStore:
    """CredentialStore over the ``binding`` table.

    Each call runs in its own session and commits before returning, so a
    read issued after a write sees it.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def insert(self, binding: Binding) -> Binding:
        if not binding.refresh_token:
            raise PersistenceError("Refusing to store a binding without a refresh token")
        row = BindingRow(
            chat_id=binding.chat_id,
            refresh_token=binding.refresh_token,
            subject_id=binding.subject_id,
            alias=binding.alias,
            client_id=binding.client_id,
            client_secret=binding.client_secret,
            last_success_at=binding.last_success_at,
            extra=binding.extra,
        )
        try:
            async with self.session_factory() as session:
                session.add(row)
                await session.commit()
                await session.refresh(row)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Insert failed: {e}", details={"reason": str(e)}) from e
        return Binding.from_row(row)

    async def update(self, binding: Binding) -> Binding:
        """Write the mutable fields (refresh token, timestamp, extra) of a stored binding."""
        if binding.id is None:
            raise PersistenceError("Binding has not been stored yet")
        if not binding.refresh_token:
            raise PersistenceError("Refusing to store an empty refresh token", details={"id": binding.id})
        try:
            async with self.session_factory() as session:
                row = await session.get(BindingRow, binding.id)
                if row is None:
                    raise PersistenceError(f"Binding {binding.id} no longer exists", details={"id": binding.id})
                row.refresh_token = binding.refresh_token
                row.last_success_at = binding.last_success_at
                row.extra = binding.extra
                await session.commit()
                await session.refresh(row)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Update failed: {e}", details={"id": binding.id, "reason": str(e)}) from e
        return Binding.from_row(row)

    async def query_by_principal(self, chat_id: int) -> list[Binding]:
        return await self._select(
            select(BindingRow).where(BindingRow.chat_id == chat_id).order_by(BindingRow.id)
        )

    async def query_all(self) -> list[Binding]:
        return await self._select(select(BindingRow).order_by(BindingRow.id))

    async def _select(self, stmt) -> list[Binding]:
        try:
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                return [Binding.from_row(row) for row in result.scalars().all()]
        except SQLAlchemyError as e:
            raise PersistenceError(f"Query failed: {e}", details={"reason": str(e)}) from e

    async def delete(self, chat_id: int, binding_id: int) -> bool:
        """Remove one binding owned by ``chat_id``. Returns False if none matched."""
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    delete(BindingRow).where(
                        BindingRow.id == binding_id, BindingRow.chat_id == chat_id
                    )
                )
                await session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Delete failed: {e}", details={"id": binding_id}) from e
        removed = result.rowcount > 0
        if removed:
            logger.info("Removed binding %s for chat %s", binding_id, chat_id)
        return removed
