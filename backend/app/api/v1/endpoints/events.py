from __future__ import annotations

from datetime import date
from typing import Literal

from fastapi import APIRouter, Depends, Query

from app.api.v1.dependencies import get_audit_log, get_current_user, get_permission_service
from app.core.security import CurrentUser
from app.schemas.event import RecentEventRead, RecentEventsPage
from app.services import permissions as perms
from app.services.audit import DEFAULT_RECENT_LIMIT, AuditLog, RecentEventFilters
from app.services.permissions import PermissionService

router = APIRouter()


@router.get("/recent", response_model=RecentEventsPage)
def recent_events(
    supplier: str | None = Query(default=None, description="Carrier name, partial match"),
    status: Literal["success", "error", "skipped"] | None = Query(default=None),
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    limit: int = Query(default=DEFAULT_RECENT_LIMIT),
    audit: AuditLog = Depends(get_audit_log),
    permissions: PermissionService = Depends(get_permission_service),
    user: CurrentUser = Depends(get_current_user),
) -> RecentEventsPage:
    """Recent carrier integration events for operational dashboards."""
    perms.ensure_allowed(permissions, user.id, perms.ACTION_VIEW)
    filters = RecentEventFilters(
        supplier=supplier,
        status=status,
        date_from=date_from,
        date_to=date_to,
    )
    rows = audit.list_recent(filters, limit)
    return RecentEventsPage(data=[RecentEventRead.model_validate(row, from_attributes=True) for row in rows])
