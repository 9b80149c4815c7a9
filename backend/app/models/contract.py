from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import JSON, Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base_class import Base

if TYPE_CHECKING:
    from app.models.client import Client
    from app.models.product import Product

STATUS_DRAFT = "draft"
STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_CANCELLED = "cancelled"

CONTRACT_STATUSES = (STATUS_DRAFT, STATUS_PENDING, STATUS_APPROVED, STATUS_CANCELLED)

META_LAST_SUPPLIER_RESPONSE = "last_supplier_response"
META_APPROVAL_SNAPSHOT = "approval_success_snapshot"


class Contract(Base):
    """An insurance contract held by a client for one product."""

    __tablename__ = "contracts"
    __table_args__ = (
        Index("ix_contracts_client_product", "client_id", "product_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    token: Mapped[str] = mapped_column(String(length=64), nullable=False, unique=True)
    client_id: Mapped[int] = mapped_column(ForeignKey("clients.id"), nullable=False)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"), nullable=False)
    organization_id: Mapped[int | None] = mapped_column(Integer)
    owner_id: Mapped[int | None] = mapped_column(Integer)

    status: Mapped[str] = mapped_column(String(length=32), nullable=False, default=STATUS_PENDING)
    contract_number: Mapped[str | None] = mapped_column(String(length=64))
    c_number: Mapped[str | None] = mapped_column(String(length=64))
    start_date: Mapped[date | None] = mapped_column(Date)
    end_date: Mapped[date | None] = mapped_column(Date)

    description: Mapped[str | None] = mapped_column(Text)
    value: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    address: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    integration_meta: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    client: Mapped["Client"] = relationship("Client", lazy="joined", innerjoin=True)
    product: Mapped["Product"] = relationship("Product", lazy="joined", innerjoin=True)

    @property
    def is_trashed(self) -> bool:
        return self.deleted_at is not None

    def get_meta(self, key: str) -> Any:
        return (self.integration_meta or {}).get(key)

    def set_meta(self, key: str, value: Any) -> None:
        # Reassign so the JSON column is flagged dirty.
        meta = dict(self.integration_meta or {})
        meta[key] = value
        self.integration_meta = meta
