from collections.abc import Generator
from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.security import get_current_user
from app.db.session import SessionLocal
from app.services.audit import AuditLog
from app.services.contracts import ContractLifecycle
from app.services.permissions import AdminListPermissions, PermissionService
from app.services.state_machine import ContractStateMachine
from app.services.supplier.gateway import SupplierConfig, SupplierGateway


def get_db() -> Generator[Session, None, None]:
    """Yield a database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@lru_cache
def get_gateway() -> SupplierGateway:
    """Process-wide carrier gateway sharing one HTTP connection pool."""
    return SupplierGateway(SupplierConfig.from_settings())


def get_permission_service() -> PermissionService:
    return AdminListPermissions(get_settings().ADMIN_USER_IDS)


def get_audit_log(db: Session = Depends(get_db)) -> AuditLog:
    return AuditLog(db)


def get_lifecycle(
    db: Session = Depends(get_db),
    gateway: SupplierGateway = Depends(get_gateway),
    permissions: PermissionService = Depends(get_permission_service),
) -> ContractLifecycle:
    machine = ContractStateMachine(db, gateway)
    return ContractLifecycle(db, machine, permissions)


__all__ = [
    "get_audit_log",
    "get_current_user",
    "get_db",
    "get_gateway",
    "get_lifecycle",
    "get_permission_service",
]
