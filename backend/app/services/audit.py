"""Append-only audit trail of contract lifecycle events."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session, lazyload

from app.models.client import Client
from app.models.contract import Contract
from app.models.contract_event import (
    EVENT_STATUS_CHANGE,
    INTEGRATION_EVENT_TYPES,
    ContractEvent,
)
from app.models.product import Product

logger = logging.getLogger(__name__)

DEFAULT_RECENT_LIMIT = 10
MAX_RECENT_LIMIT = 100


def mask_document(document: str | None) -> str | None:
    if not document:
        return None
    if len(document) <= 5:
        return "****"
    return f"{document[:3]}****{document[-2:]}"


@dataclass
class RecentEventFilters:
    supplier: str | None = None
    status: str | None = None
    date_from: date | None = None
    date_to: date | None = None
    event_types: Sequence[str] | None = INTEGRATION_EVENT_TYPES


@dataclass
class RecentEvent:
    id: int
    event_type: str
    description: str | None
    status_tag: str | None
    created_at: datetime
    contract_id: int
    contract_number: str | None
    contract_token: str | None
    client_name: str | None
    supplier: str | None


def clamp_limit(limit: int | None) -> int:
    if limit is None or limit < 1 or limit > MAX_RECENT_LIMIT:
        return DEFAULT_RECENT_LIMIT
    return limit


class AuditLog:
    """Writes and reads ``ContractEvent`` rows.

    Entries are only ever inserted. Writes are flushed, not committed; the
    caller's transaction decides when they become visible.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def record(
        self,
        contract: Contract,
        event_type: str,
        description: str | None = None,
        *,
        status_tag: str | None = None,
        metadata: dict[str, Any] | None = None,
        raw_payload: str | None = None,
        actor_id: int | None = None,
        from_status: str | None = None,
        to_status: str | None = None,
    ) -> ContractEvent:
        meta = dict(metadata or {})
        if status_tag is not None:
            meta.setdefault("status", status_tag)
        event = ContractEvent(
            contract_id=contract.id,
            actor_id=actor_id,
            event_type=event_type,
            description=description,
            status_tag=status_tag,
            from_status=from_status,
            to_status=to_status,
            metadata_=meta,
            raw_payload=raw_payload,
        )
        self.db.add(event)
        self.db.flush()
        logger.info(
            "Contract %s event %s [%s]: %s",
            contract.id,
            event_type,
            status_tag or "-",
            description,
        )
        return event

    def record_status_change(
        self,
        contract: Contract,
        from_status: str | None,
        to_status: str,
        description: str | None = None,
        *,
        metadata: dict[str, Any] | None = None,
        raw_payload: str | None = None,
        actor_id: int | None = None,
    ) -> ContractEvent:
        meta = {"from": from_status, "to": to_status, **(metadata or {})}
        return self.record(
            contract,
            EVENT_STATUS_CHANGE,
            description or f"Status changed from {from_status} to {to_status}",
            metadata=meta,
            raw_payload=raw_payload,
            actor_id=actor_id,
            from_status=from_status,
            to_status=to_status,
        )

    def list_for_contract(self, contract_id: int) -> list[ContractEvent]:
        stmt = (
            select(ContractEvent)
            .where(ContractEvent.contract_id == contract_id)
            .order_by(ContractEvent.created_at, ContractEvent.id)
        )
        return list(self.db.scalars(stmt))

    def list_recent(
        self, filters: RecentEventFilters | None = None, limit: int | None = DEFAULT_RECENT_LIMIT
    ) -> list[RecentEvent]:
        """Newest-first events joined with contract and client identifiers."""
        filters = filters or RecentEventFilters()
        stmt = (
            select(ContractEvent, Contract, Client, Product)
            .outerjoin(Contract, Contract.id == ContractEvent.contract_id)
            .outerjoin(Client, Client.id == Contract.client_id)
            .outerjoin(Product, Product.id == Contract.product_id)
            # Events of force-deleted contracts stay in the feed.
            .options(lazyload(Contract.client), lazyload(Contract.product))
        )
        if filters.event_types:
            stmt = stmt.where(ContractEvent.event_type.in_(list(filters.event_types)))
        if filters.status:
            stmt = stmt.where(ContractEvent.status_tag == filters.status)
        if filters.supplier:
            stmt = stmt.where(Product.supplier.ilike(f"%{filters.supplier}%"))
        if filters.date_from:
            stmt = stmt.where(ContractEvent.created_at >= datetime.combine(filters.date_from, time.min))
        if filters.date_to:
            upper = datetime.combine(filters.date_to + timedelta(days=1), time.min)
            stmt = stmt.where(ContractEvent.created_at < upper)
        stmt = stmt.order_by(ContractEvent.created_at.desc(), ContractEvent.id.desc()).limit(
            clamp_limit(limit)
        )

        rows: list[RecentEvent] = []
        for event, contract, client, product in self.db.execute(stmt).all():
            rows.append(
                RecentEvent(
                    id=event.id,
                    event_type=event.event_type,
                    description=event.description,
                    status_tag=event.status_tag,
                    created_at=event.created_at,
                    contract_id=event.contract_id,
                    contract_number=(contract.contract_number or contract.c_number) if contract else None,
                    contract_token=contract.token if contract else None,
                    client_name=client.name if client else None,
                    supplier=product.supplier if product else None,
                )
            )
        return rows
