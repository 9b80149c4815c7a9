"""Read-only lookups into the client directory and product catalog."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.client import Client
from app.models.product import Product


@dataclass(frozen=True)
class ClientProfile:
    id: int
    name: str
    document: str | None
    birth_date: date | None
    gender: str | None
    state_code: str | None
    permission_id: str | None


@dataclass(frozen=True)
class ProductProfile:
    id: int
    name: str
    supplier: str | None
    plan_code: str | None
    cost_price: Decimal | None


class ClientDirectory:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self, client_id: int) -> ClientProfile | None:
        client = self.db.get(Client, client_id)
        if client is None:
            return None
        return ClientProfile(
            id=client.id,
            name=client.name,
            document=client.document,
            birth_date=client.birth_date,
            gender=client.gender,
            state_code=client.state_code,
            permission_id=client.permission_id,
        )

    def lock(self, client_id: int) -> None:
        """Take a row lock on the client for the rest of the transaction."""
        self.db.execute(select(Client.id).where(Client.id == client_id).with_for_update())


class ProductCatalog:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self, product_id: int) -> ProductProfile | None:
        product = self.db.get(Product, product_id)
        if product is None:
            return None
        return ProductProfile(
            id=product.id,
            name=product.name,
            supplier=product.supplier,
            plan_code=product.plan_code,
            cost_price=product.cost_price,
        )

    def supplier_of(self, product_id: int) -> str | None:
        product = self.get(product_id)
        return product.supplier if product else None
