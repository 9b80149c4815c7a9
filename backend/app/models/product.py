from __future__ import annotations

from decimal import Decimal

from sqlalchemy import Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base_class import Base


class Product(Base):
    """Insured plan sold through a carrier."""

    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    supplier: Mapped[str | None] = mapped_column(String(length=128))
    plan_code: Mapped[str | None] = mapped_column(String(length=16))
    cost_price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
