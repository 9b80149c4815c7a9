from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base_class import Base

EVENT_SUPPLIER_INTEGRATION = "supplier_integration"
EVENT_CANCELLATION_INTEGRATION = "cancellation_integration"
EVENT_STATUS_CHANGE = "status_change"
EVENT_TRASHED = "trashed"
EVENT_RESTORED = "restored"

INTEGRATION_EVENT_TYPES = (EVENT_SUPPLIER_INTEGRATION, EVENT_CANCELLATION_INTEGRATION)

TAG_SUCCESS = "success"
TAG_ERROR = "error"
TAG_SKIPPED = "skipped"


class ContractEvent(Base):
    """Append-only audit entry attached to a contract."""

    __tablename__ = "contract_events"
    __table_args__ = (
        Index("ix_contract_events_contract_id", "contract_id"),
        Index("ix_contract_events_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # No FK: the trail outlives a force-deleted contract.
    contract_id: Mapped[int] = mapped_column(Integer, nullable=False)
    actor_id: Mapped[int | None] = mapped_column(Integer)
    event_type: Mapped[str] = mapped_column(String(length=64), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    status_tag: Mapped[str | None] = mapped_column(String(length=16))
    from_status: Mapped[str | None] = mapped_column(String(length=32))
    to_status: Mapped[str | None] = mapped_column(String(length=32))
    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON, nullable=False, default=dict
    )
    raw_payload: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
