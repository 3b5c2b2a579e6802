"""ORM table for bound accounts."""

from __future__ import annotations

from sqlalchemy import BigInteger, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class BindingRow(Base):
    """One chat principal bound to one Graph account through one OAuth app."""

    __tablename__ = "binding"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    chat_id: Mapped[int] = mapped_column(BigInteger, index=True)
    refresh_token: Mapped[str] = mapped_column(Text)
    subject_id: Mapped[str] = mapped_column(String(64))
    alias: Mapped[str] = mapped_column(String(255))
    client_id: Mapped[str] = mapped_column(String(255))
    client_secret: Mapped[str] = mapped_column(String(255))
    last_success_at: Mapped[int] = mapped_column(BigInteger)
    extra: Mapped[str] = mapped_column(Text, default="")

    def __repr__(self) -> str:
        return f"<BindingRow {self.id} chat={self.chat_id} alias={self.alias!r}>"
