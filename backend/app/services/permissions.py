from __future__ import annotations

from typing import Iterable, Protocol

from app.core.exceptions import PermissionDeniedError

ACTION_CREATE = "contracts.create"
ACTION_EDIT = "contracts.edit"
ACTION_CANCEL = "contracts.cancel"
ACTION_DELETE = "contracts.delete"
ACTION_VIEW = "contracts.view"


class PermissionService(Protocol):
    def can(self, user_id: int | None, action: str) -> bool: ...


class AdminListPermissions:
    """Grants every action to the configured admins; everyone when none are set."""

    def __init__(self, admin_ids: Iterable[int] = ()) -> None:
        self.admin_ids = frozenset(admin_ids)

    def can(self, user_id: int | None, action: str) -> bool:
        if not self.admin_ids:
            return True
        return user_id in self.admin_ids


def ensure_allowed(permissions: PermissionService, user_id: int | None, action: str) -> None:
    if not permissions.can(user_id, action):
        raise PermissionDeniedError(action, user_id)
