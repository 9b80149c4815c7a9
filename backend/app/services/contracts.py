"""Request-facing coordinator for the contract lifecycle.

Sequences validate → check uniqueness → persist → integrate → audit →
finalize for creation, update and cancellation. The contract row is
committed before the carrier is contacted, so a failed or skipped
integration never loses the contract; the outcome is reported next to it.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date

from sqlalchemy.orm import Session

from app import crud
from app.core.exceptions import (
    CancellationBlockedError,
    ContractLifecycleError,
    ContractNotFoundError,
    IllegalTransitionError,
    IntegrationFailedError,
)
from app.models.contract import (
    STATUS_APPROVED,
    STATUS_CANCELLED,
    STATUS_DRAFT,
    STATUS_PENDING,
    Contract,
)
from app.models.contract_event import ContractEvent
from app.schemas.contract import ContractCreate, ContractUpdate, IntegrationOutcome
from app.services import permissions as perms
from app.services.permissions import PermissionService
from app.services.state_machine import (
    REASON_MISSING_OPERATION,
    ContractStateMachine,
    TransitionResult,
)

logger = logging.getLogger(__name__)


@dataclass
class LifecycleOutcome:
    contract: Contract
    integration: TransitionResult | None = None

    @property
    def integration_summary(self) -> IntegrationOutcome | None:
        if self.integration is None:
            return None
        return to_integration_outcome(self.integration)


def to_integration_outcome(result: TransitionResult) -> IntegrationOutcome:
    supplier = result.supplier_result
    return IntegrationOutcome(
        attempted=result.attempted,
        success=result.success,
        status_tag=result.status_tag,
        message=result.message,
        reason=result.reason,
        return_code=supplier.return_code if supplier else None,
    )


class ContractLifecycle:
    def __init__(
        self,
        db: Session,
        machine: ContractStateMachine,
        permissions: PermissionService,
    ) -> None:
        self.db = db
        self.machine = machine
        self.permissions = permissions

    # -- reads ------------------------------------------------------------

    def get_contract(self, contract_id: int, actor_id: int | None, *, include_trashed: bool = False) -> Contract:
        perms.ensure_allowed(self.permissions, actor_id, perms.ACTION_VIEW)
        contract = crud.get_contract(self.db, contract_id, include_trashed=include_trashed)
        if contract is None:
            raise ContractNotFoundError(contract_id)
        return contract

    def list_contracts(
        self,
        actor_id: int | None,
        *,
        status: str | None = None,
        search: str | None = None,
        trashed: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Contract], int]:
        perms.ensure_allowed(self.permissions, actor_id, perms.ACTION_VIEW)
        return crud.list_contracts(
            self.db, status=status, search=search, trashed=trashed, limit=limit, offset=offset
        )

    def list_events(self, contract_id: int, actor_id: int | None) -> list[ContractEvent]:
        self.get_contract(contract_id, actor_id, include_trashed=True)
        return self.machine.audit.list_for_contract(contract_id)

    def _load_for_update(self, contract_id: int) -> Contract:
        contract = crud.get_contract_for_update(self.db, contract_id)
        if contract is None or contract.is_trashed:
            raise ContractNotFoundError(contract_id)
        return contract

    # -- create -----------------------------------------------------------

    def create_contract(self, data: ContractCreate, actor_id: int | None) -> LifecycleOutcome:
        perms.ensure_allowed(self.permissions, actor_id, perms.ACTION_CREATE)

        attrs = data.model_dump()
        requested = attrs.pop("status", None)
        if requested == STATUS_CANCELLED:
            raise IllegalTransitionError(None, None, STATUS_CANCELLED)
        initial = requested if requested in (STATUS_DRAFT, STATUS_PENDING) else STATUS_PENDING

        contract = self.machine.create({**attrs, "status": initial}, actor_id)
        self.db.commit()

        integration: TransitionResult | None = None
        if self.machine.is_integrated(contract):
            integration = self.machine.try_approve(contract, actor_id)
        elif requested == STATUS_APPROVED:
            self.machine.set_status(contract, STATUS_APPROVED, actor_id, "Approved at creation.")
        self.db.commit()
        self.db.refresh(contract)

        if integration is not None and not integration.success:
            logger.warning(
                "Contract %s saved but carrier integration %s: %s",
                contract.id,
                integration.status_tag,
                integration.message,
            )
        return LifecycleOutcome(contract=contract, integration=integration)

    # -- update -----------------------------------------------------------

    def update_contract(self, contract_id: int, data: ContractUpdate, actor_id: int | None) -> LifecycleOutcome:
        perms.ensure_allowed(self.permissions, actor_id, perms.ACTION_EDIT)
        contract = self._load_for_update(contract_id)

        changes = data.model_dump(exclude_unset=True)
        target = changes.pop("status", None)
        if target == STATUS_CANCELLED and contract.status != STATUS_CANCELLED:
            # Cancellation goes through its own endpoint.
            raise IllegalTransitionError(contract.id, contract.status, STATUS_CANCELLED)
        # Validate everything before touching the row.
        if target is not None and target != contract.status:
            self.machine.check_transition(contract, target)
        start_date = changes.get("start_date", contract.start_date)
        end_date = changes.get("end_date", contract.end_date)
        if start_date and end_date and end_date < start_date:
            raise ContractLifecycleError("end_date must not be before start_date", contract_id=contract.id)
        reopens = "end_date" in changes and (end_date is None or end_date >= date.today())
        if target in (STATUS_PENDING, STATUS_APPROVED) or (reopens and contract.status != STATUS_CANCELLED):
            self.machine.ensure_unique(contract.client_id, contract.product_id, exclude_id=contract.id)

        for field_name, value in changes.items():
            setattr(contract, field_name, value)

        if target == STATUS_PENDING and contract.status == STATUS_DRAFT:
            self.machine.set_status(contract, STATUS_PENDING, actor_id)

        integration: TransitionResult | None = None
        if contract.status not in (STATUS_APPROVED, STATUS_CANCELLED):
            if self.machine.is_integrated(contract):
                integration = self.machine.try_approve(contract, actor_id)
            elif target == STATUS_APPROVED:
                self.machine.set_status(contract, STATUS_APPROVED, actor_id)

        self.db.commit()
        self.db.refresh(contract)
        return LifecycleOutcome(contract=contract, integration=integration)

    # -- explicit transitions ---------------------------------------------

    def cancel_contract(self, contract_id: int, actor_id: int | None, *, force: bool = False) -> LifecycleOutcome:
        perms.ensure_allowed(self.permissions, actor_id, perms.ACTION_CANCEL)
        contract = self._load_for_update(contract_id)

        result = self.machine.cancel(contract, actor_id, force=force)
        # Audit entries of failed attempts are kept.
        self.db.commit()
        self.db.refresh(contract)

        if not result.success:
            if result.reason == REASON_MISSING_OPERATION:
                raise CancellationBlockedError(contract.id, result.message, result.reason)
            raise IntegrationFailedError(
                contract.id,
                result.message,
                result.supplier_result.return_code if result.supplier_result else None,
            )
        return LifecycleOutcome(contract=contract, integration=result)

    def retry_integration(self, contract_id: int, actor_id: int | None) -> LifecycleOutcome:
        """Re-run the carrier approval for a contract that is not approved yet."""
        perms.ensure_allowed(self.permissions, actor_id, perms.ACTION_EDIT)
        contract = self._load_for_update(contract_id)
        if not self.machine.is_integrated(contract):
            raise ContractLifecycleError(
                f"Contract {contract.id} is not sold through the integrated carrier",
                contract_id=contract.id,
            )
        result = self.machine.try_approve(contract, actor_id)
        self.db.commit()
        self.db.refresh(contract)
        return LifecycleOutcome(contract=contract, integration=result)

    # -- trash ------------------------------------------------------------

    def move_to_trash(self, contract_id: int, actor_id: int | None) -> Contract:
        perms.ensure_allowed(self.permissions, actor_id, perms.ACTION_DELETE)
        contract = self._load_for_update(contract_id)
        self.machine.move_to_trash(contract, actor_id)
        self.db.commit()
        self.db.refresh(contract)
        return contract

    def restore(self, contract_id: int, actor_id: int | None) -> Contract:
        perms.ensure_allowed(self.permissions, actor_id, perms.ACTION_DELETE)
        contract = crud.get_contract(self.db, contract_id, include_trashed=True)
        if contract is None:
            raise ContractNotFoundError(contract_id)
        self.machine.restore(contract, actor_id)
        self.db.commit()
        self.db.refresh(contract)
        return contract

    def force_delete(self, contract_id: int, actor_id: int | None) -> None:
        perms.ensure_allowed(self.permissions, actor_id, perms.ACTION_DELETE)
        contract = crud.get_contract(self.db, contract_id, include_trashed=True)
        if contract is None:
            raise ContractNotFoundError(contract_id)
        self.machine.force_delete(contract, actor_id)
        self.db.commit()
