"""
Modelos SQLAlchemy de la base local.

- SyncRequest: una fila por sincronización encolada; es a la vez el estado de
  reintentos y el registro de auditoría (nunca se borra).
- OrderMapping: una fila por pedido Appmax sincronizado alguna vez.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import JSON, DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class SyncRequest(Base):
    __tablename__ = "sync_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_order_id: Mapped[str] = mapped_column(String(64), index=True)
    event_type: Mapped[str] = mapped_column(String(100))
    sync_state: Mapped[str] = mapped_column(String(32))
    financial_state: Mapped[str] = mapped_column(String(32))
    payload: Mapped[Dict[str, Any]] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    @property
    def status(self) -> str:
        if self.processed_at is None:
            return "pending"
        return "succeeded" if self.last_error is None else "failed"

    def to_dict(self, include_payload: bool = False) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "source_order_id": self.source_order_id,
            "event_type": self.event_type,
            "sync_state": self.sync_state,
            "financial_state": self.financial_state,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "processed_at": self.processed_at.isoformat() if self.processed_at else None,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "status": self.status,
        }
        if include_payload:
            data["payload"] = self.payload
        return data

    def __repr__(self) -> str:
        return f"<SyncRequest id={self.id} order={self.source_order_id} event={self.event_type} attempts={self.attempts}>"


class OrderMapping(Base):
    __tablename__ = "order_mappings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_order_id: Mapped[str] = mapped_column(String(64), unique=True)
    sink_order_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    last_sync_state: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, index=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_order_id": self.source_order_id,
            "sink_order_id": self.sink_order_id,
            "last_sync_state": self.last_sync_state,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<OrderMapping {self.source_order_id} -> {self.sink_order_id} ({self.last_sync_state})>"
