"""Dedup ledger: one persisted record per (user, physical pass).

Append-only. A record is written only after an email has actually been
sent, and the unique constraint on ``(user_id, event_id)`` is what makes
``record`` atomic: when two writers race on the same key, the database
accepts one insert and rejects the other with an ``IntegrityError``, which
is reported as ``RecordStatus.ALREADY_EXISTS`` rather than as an error.

Known gap: a crash between a successful send and ``record`` leaves no
record, so the next round may notify the same pass again.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import (
    JSON,
    DateTime,
    Integer,
    String,
    UniqueConstraint,
    create_engine,
    func,
    select,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker

from .errors import LedgerError

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class NotificationLog(Base):
    """A dispatched notification for one user and one event."""

    __tablename__ = "notification_logs"
    __table_args__ = (
        UniqueConstraint("user_id", "event_id", name="uq_notification_user_event"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    event_type: Mapped[str] = mapped_column(String(32), nullable=False)
    event_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # Email details
    message_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    subject: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="sent")

    # Snapshot of the pass that triggered the notification
    event_data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self) -> dict:
        return {
            "userId": self.user_id,
            "eventType": self.event_type,
            "eventId": self.event_id,
            "emailDetails": {
                "messageId": self.message_id,
                "subject": self.subject,
                "sentAt": self.sent_at.isoformat() if self.sent_at else None,
                "status": self.status,
            },
            "eventData": self.event_data,
        }

    def __repr__(self) -> str:
        return f"<NotificationLog user_id={self.user_id} event_id={self.event_id}>"


class RecordStatus(Enum):
    RECORDED = "recorded"
    ALREADY_EXISTS = "already_exists"


@dataclass
class LedgerPayload:
    """Dispatch metadata stored alongside the key."""
    event_type: str
    message_id: Optional[str]
    subject: str
    sent_at: datetime
    status: str = "sent"
    event_data: dict = field(default_factory=dict)


class DedupLedger:
    """SQLAlchemy-backed dedup ledger.

    Args:
        url: Database URL, e.g. ``sqlite:///data/passwatch.db``.
        echo: Log emitted SQL.

    Example:
        >>> ledger = DedupLedger("sqlite:///:memory:")
        >>> ledger.exists("u1", "iss-2024-05-12-1430")
        False
    """

    def __init__(self, url: str, echo: bool = False) -> None:
        connect_args = {}
        if url.startswith("sqlite"):
            connect_args = {"check_same_thread": False, "timeout": 30}
        self.engine = create_engine(url, echo=echo, connect_args=connect_args)
        Base.metadata.create_all(self.engine)
        self._session = sessionmaker(bind=self.engine, expire_on_commit=False)

    def exists(self, user_id: str, event_id: str) -> bool:
        """Whether a record already exists for this key."""
        stmt = (
            select(NotificationLog.id)
            .where(NotificationLog.user_id == user_id)
            .where(NotificationLog.event_id == event_id)
            .limit(1)
        )
        try:
            with self._session() as session:
                return session.scalar(stmt) is not None
        except SQLAlchemyError as e:
            raise LedgerError(f"Ledger lookup failed for {user_id}/{event_id}: {e}") from e

    def record(self, user_id: str, event_id: str, payload: LedgerPayload) -> RecordStatus:
        """Insert a record for this key.

        Returns:
            ``RECORDED`` on insert, ``ALREADY_EXISTS`` if the key was taken.

        Raises:
            LedgerError: Any other persistence failure.
        """
        row = NotificationLog(
            user_id=user_id,
            event_type=payload.event_type,
            event_id=event_id,
            message_id=payload.message_id,
            subject=payload.subject,
            sent_at=payload.sent_at,
            status=payload.status,
            event_data=payload.event_data,
        )
        with self._session() as session:
            session.add(row)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                logger.debug("Ledger already holds %s/%s", user_id, event_id)
                return RecordStatus.ALREADY_EXISTS
            except SQLAlchemyError as e:
                session.rollback()
                raise LedgerError(
                    f"Ledger write failed for {user_id}/{event_id}: {e}"
                ) from e

        logger.debug("Recorded %s/%s", user_id, event_id)
        return RecordStatus.RECORDED

    def history(self, user_id: Optional[str] = None, limit: int = 50) -> list[NotificationLog]:
        """Most recent records first, optionally for one user."""
        stmt = select(NotificationLog).order_by(NotificationLog.created_at.desc()).limit(limit)
        if user_id is not None:
            stmt = stmt.where(NotificationLog.user_id == user_id)
        with self._session() as session:
            return list(session.scalars(stmt))

    def count(self) -> int:
        with self._session() as session:
            return session.scalar(select(func.count()).select_from(NotificationLog))
