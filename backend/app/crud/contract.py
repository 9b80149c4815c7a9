from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from app.models.contract import Contract


def get_contract(db: Session, contract_id: int, *, include_trashed: bool = False) -> Contract | None:
    contract = db.get(Contract, contract_id)
    if contract is None or (contract.is_trashed and not include_trashed):
        return None
    return contract


def get_contract_for_update(db: Session, contract_id: int) -> Contract | None:
    stmt = select(Contract).where(Contract.id == contract_id).with_for_update()
    return db.scalars(stmt).first()


def list_contracts(
    db: Session,
    *,
    status: str | None = None,
    search: str | None = None,
    trashed: bool = False,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Contract], int]:
    stmt = select(Contract)
    if trashed:
        stmt = stmt.where(Contract.deleted_at.is_not(None))
    else:
        stmt = stmt.where(Contract.deleted_at.is_(None))
    if status:
        stmt = stmt.where(Contract.status == status)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(
            or_(
                Contract.contract_number.ilike(pattern),
                Contract.c_number.ilike(pattern),
                Contract.description.ilike(pattern),
            )
        )
    total = db.scalar(select(func.count()).select_from(stmt.subquery())) or 0
    contracts = list(
        db.scalars(stmt.order_by(Contract.created_at.desc(), Contract.id.desc()).offset(offset).limit(limit))
    )
    return contracts, total
