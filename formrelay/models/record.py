"""
Delivery log model.

One row per attempt to call an external endpoint. Request snapshots are
written once at creation; response columns are written once at completion.
"""
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Float, Index, Integer, String, Text, func, select
from sqlalchemy.orm import DeclarativeBase, Mapped, aliased, column_property, mapped_column

from formrelay.models.delivery import FAILURE_STATUSES, DeliveryStatus


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


class DeliveryRecord(Base):
    """A single logged delivery attempt."""
    __tablename__ = "formrelay_delivery_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    endpoint: Mapped[str] = mapped_column(String(500), nullable=False)
    method: Mapped[str] = mapped_column(String(10), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=DeliveryStatus.PENDING.value,
        index=True,
    )
    request_payload: Mapped[str] = mapped_column(Text, nullable=False, default="")
    request_headers: Mapped[str | None] = mapped_column(Text, nullable=True)
    response_payload: Mapped[str | None] = mapped_column(Text, nullable=True)
    response_headers: Mapped[str | None] = mapped_column(Text, nullable=True)
    response_code: Mapped[int | None] = mapped_column(Integer, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    execution_time: Mapped[float | None] = mapped_column(Float, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Back-reference only; deleting the original leaves retries in place
    retry_of: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)

    __table_args__ = (
        Index("ix_formrelay_delivery_logs_status_created", "status", "created_at"),
    )

    @property
    def delivery_status(self) -> DeliveryStatus:
        return DeliveryStatus(self.status)

    @property
    def is_failure(self) -> bool:
        return self.delivery_status in FAILURE_STATUSES

    @property
    def is_retry(self) -> bool:
        return self.retry_of is not None

    @property
    def total_retries(self) -> int:
        """Retry attempts against this record: the stored count plus linked retry rows."""
        return (self.retry_count or 0) + (self.retries_issued or 0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "source_id": self.source_id,
            "endpoint": self.endpoint,
            "method": self.method,
            "status": self.status,
            "request_payload": self.request_payload,
            "request_headers": self.request_headers,
            "response_payload": self.response_payload,
            "response_headers": self.response_headers,
            "response_code": self.response_code,
            "error_message": self.error_message,
            "execution_time": self.execution_time,
            "retry_count": self.total_retries,
            "retry_of": self.retry_of,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<DeliveryRecord(id={self.id}, endpoint={self.endpoint}, status={self.status})>"


_retry = aliased(DeliveryRecord)

# Counted at read time so the original row is never rewritten by a retry
DeliveryRecord.retries_issued = column_property(
    select(func.count(_retry.id))
    .where(_retry.retry_of == DeliveryRecord.id)
    .correlate_except(_retry)
    .scalar_subquery()
)
