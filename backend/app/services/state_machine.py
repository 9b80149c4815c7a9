"""
Contract state machine.

All status changes go through ``TRANSITIONS``; anything not listed there is
rejected with ``IllegalTransitionError`` before the carrier is contacted or
the audit log is written.

    draft ──submit──▶ pending
      │                  │
      └────approve───────┴──▶ approved ──cancel──▶ cancelled (terminal)

Approval and cancellation of contracts whose product belongs to the
integrated carrier are driven by the carrier's answer. Every integration
attempt, including skipped ones, writes exactly one integration event, and
every status change writes one ``status_change`` event.
"""
from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Callable

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.core.exceptions import (
    DuplicateContractError,
    IllegalTransitionError,
    InvalidReferenceError,
    TrashStateError,
)
from app.models.contract import (
    META_APPROVAL_SNAPSHOT,
    META_LAST_SUPPLIER_RESPONSE,
    STATUS_APPROVED,
    STATUS_CANCELLED,
    STATUS_DRAFT,
    STATUS_PENDING,
    Contract,
)
from app.models.contract_event import (
    EVENT_CANCELLATION_INTEGRATION,
    EVENT_RESTORED,
    EVENT_SUPPLIER_INTEGRATION,
    EVENT_TRASHED,
    TAG_ERROR,
    TAG_SKIPPED,
    TAG_SUCCESS,
    ContractEvent,
)
from app.services.audit import AuditLog, mask_document
from app.services.directory import ClientDirectory, ProductCatalog
from app.services.supplier.codec import (
    FAILURE_PRECONDITION,
    CancelPolicyRequest,
    IssuePolicyRequest,
    NormalizedResult,
    normalize_document,
)
from app.services.supplier.gateway import SupplierGateway

logger = logging.getLogger(__name__)

DEFAULT_STATE_CODE = "SP"

REASON_HOLDER_MISSING = "holder_missing"
REASON_HOLDER_NOT_CLIENT = "holder_not_client"
REASON_INSUFFICIENT_DATA = "insufficient_client_data"
REASON_PRECONDITION = "precondition_failed"
REASON_NOT_INTEGRATED = "supplier_not_integrated"
REASON_MISSING_OPERATION = "missing_operation_number"
REASON_FORCED = "forced_cancellation"


def _not_trashed(contract: Contract) -> bool:
    return not contract.is_trashed


@dataclass(frozen=True)
class Transition:
    name: str
    sources: frozenset[str]
    target: str
    guard: Callable[[Contract], bool] = _not_trashed


TRANSITIONS: tuple[Transition, ...] = (
    Transition("submit", frozenset({STATUS_DRAFT}), STATUS_PENDING),
    Transition("approve", frozenset({STATUS_DRAFT, STATUS_PENDING}), STATUS_APPROVED),
    Transition("cancel", frozenset({STATUS_APPROVED}), STATUS_CANCELLED),
)

INITIAL_STATUSES = frozenset({STATUS_DRAFT, STATUS_PENDING})


def find_transition(from_status: str, to_status: str) -> Transition | None:
    for transition in TRANSITIONS:
        if from_status in transition.sources and transition.target == to_status:
            return transition
    return None


@dataclass
class TransitionResult:
    """What happened when the machine tried to move a contract."""

    contract: Contract
    success: bool
    status_tag: str
    message: str
    attempted: bool = False
    reason: str | None = None
    supplier_result: NormalizedResult | None = None
    event: ContractEvent | None = None
    details: dict[str, Any] = field(default_factory=dict)


class ContractStateMachine:
    def __init__(
        self,
        db: Session,
        gateway: SupplierGateway,
        audit: AuditLog | None = None,
        clients: ClientDirectory | None = None,
        products: ProductCatalog | None = None,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self.db = db
        self.gateway = gateway
        self.audit = audit or AuditLog(db)
        self.clients = clients or ClientDirectory(db)
        self.products = products or ProductCatalog(db)
        self.supplier_permission_id = settings.SUPPLIER_PERMISSION_ID
        self.default_plan_code = settings.DEFAULT_PLAN_CODE
        self.default_premium = settings.DEFAULT_PREMIUM

    # -- guards -----------------------------------------------------------

    def check_transition(self, contract: Contract, target: str) -> Transition:
        transition = find_transition(contract.status, target)
        if transition is None or not transition.guard(contract):
            raise IllegalTransitionError(contract.id, contract.status, target)
        return transition

    def ensure_unique(self, client_id: int, product_id: int, exclude_id: int | None = None) -> None:
        """Reject a second active contract for the same client and product.

        Active means not cancelled, not in the trash and with coverage that
        has not ended (an open end date counts as active).
        """
        stmt = select(Contract).where(
            Contract.client_id == client_id,
            Contract.product_id == product_id,
            Contract.status != STATUS_CANCELLED,
            Contract.deleted_at.is_(None),
            or_(Contract.end_date.is_(None), Contract.end_date >= date.today()),
        )
        if exclude_id is not None:
            stmt = stmt.where(Contract.id != exclude_id)
        existing = self.db.scalars(stmt.order_by(Contract.id).limit(1)).first()
        if existing is not None:
            raise DuplicateContractError(
                client_id,
                product_id,
                existing.id,
                existing.contract_number or existing.c_number,
            )

    def is_integrated(self, contract: Contract) -> bool:
        return self.gateway.handles(self.products.supplier_of(contract.product_id))

    # -- creation ---------------------------------------------------------

    def create(self, attrs: dict[str, Any], actor_id: int | None = None) -> Contract:
        status = attrs.get("status") or STATUS_PENDING
        if status not in INITIAL_STATUSES:
            raise IllegalTransitionError(None, None, status)

        client_id = attrs["client_id"]
        product_id = attrs["product_id"]
        if self.clients.get(client_id) is None:
            raise InvalidReferenceError("client_id", client_id)
        if self.products.get(product_id) is None:
            raise InvalidReferenceError("product_id", product_id)

        # Serialises concurrent creations for the same client until commit.
        self.clients.lock(client_id)
        self.ensure_unique(client_id, product_id)

        contract = Contract(
            token=uuid.uuid4().hex,
            client_id=client_id,
            product_id=product_id,
            organization_id=attrs.get("organization_id"),
            owner_id=attrs.get("owner_id") or actor_id,
            status=status,
            contract_number=attrs.get("contract_number"),
            start_date=attrs.get("start_date"),
            end_date=attrs.get("end_date"),
            description=attrs.get("description"),
            value=attrs.get("value"),
            address=attrs.get("address"),
            integration_meta={},
        )
        self.db.add(contract)
        self.db.flush()
        logger.info(
            "Created contract %s (%s) for client %s product %s",
            contract.id,
            status,
            client_id,
            product_id,
        )
        return contract

    # -- approval ---------------------------------------------------------

    def try_approve(self, contract: Contract, actor_id: int | None = None) -> TransitionResult:
        self.check_transition(contract, STATUS_APPROVED)

        client = self.clients.get(contract.client_id)
        if client is None:
            return self._skip_approval(
                contract,
                actor_id,
                "Integration not executed: contract holder not found.",
                REASON_HOLDER_MISSING,
            )

        if not client.permission_id or client.permission_id == self.supplier_permission_id:
            return self._skip_approval(
                contract,
                actor_id,
                "Integration not executed: holder is a supplier.",
                REASON_HOLDER_NOT_CLIENT,
                holder_permission=client.permission_id,
            )

        document = normalize_document(client.document)
        missing = []
        if not document:
            missing.append("document")
        if not client.birth_date:
            missing.append("birth_date")
        if missing:
            return self._skip_approval(
                contract,
                actor_id,
                "Integration not executed: insufficient holder data.",
                REASON_INSUFFICIENT_DATA,
                missing_fields=missing,
            )

        product = self.products.get(contract.product_id)
        config = self.gateway.config
        address = contract.address or {}
        request = IssuePolicyRequest(
            product_code=config.product_code,
            sales_channel=config.sales_channel,
            partner_operation_id=contract.token,
            plan_code=(product.plan_code if product else None) or self.default_plan_code,
            premium=str(product.cost_price if product and product.cost_price is not None else self.default_premium),
            insured_name=client.name,
            birth_date=client.birth_date,
            sex=client.gender,
            state_code=address.get("state") or client.state_code or DEFAULT_STATE_CODE,
            document_number=document,
            coverage_start=contract.start_date,
            coverage_end=contract.end_date,
        )
        request_summary = {
            "partner_operation_id": request.partner_operation_id,
            "plan_code": request.plan_code,
            "premium": request.premium,
            "state_code": request.state_code,
            "coverage_start": contract.start_date.isoformat() if contract.start_date else None,
            "coverage_end": contract.end_date.isoformat() if contract.end_date else None,
            "document_masked": mask_document(document),
        }

        result = self.gateway.issue_policy(request)
        if result.failure_kind == FAILURE_PRECONDITION:
            return self._skip_approval(
                contract,
                actor_id,
                f"Integration not executed: {result.return_message}",
                REASON_PRECONDITION,
                request=request_summary,
            )

        contract.set_meta(META_LAST_SUPPLIER_RESPONSE, result.to_dict())
        raw_payload = _raw_payload(result)
        metadata = {"request": request_summary, "response": result.to_dict()}

        if not result.success:
            event = self.audit.record(
                contract,
                EVENT_SUPPLIER_INTEGRATION,
                f"Carrier integration failed: {result.return_message}",
                status_tag=TAG_ERROR,
                metadata=metadata,
                raw_payload=raw_payload,
                actor_id=actor_id,
            )
            return TransitionResult(
                contract=contract,
                success=False,
                status_tag=TAG_ERROR,
                message=result.return_message,
                attempted=True,
                reason=result.failure_kind,
                supplier_result=result,
                event=event,
            )

        if result.policy_number:
            contract.contract_number = result.policy_number
        if result.certificate_number:
            contract.c_number = result.certificate_number
        contract.set_meta(
            META_APPROVAL_SNAPSHOT,
            {
                "operation_number": result.operation_number,
                "sales_channel": request.sales_channel,
                "invoice_period": config.current_invoice_period(),
                "policy_number": result.policy_number,
                "certificate_number": result.certificate_number,
                "return_code": result.return_code,
                "approved_at": datetime.now(timezone.utc).isoformat(),
            },
        )
        event = self.audit.record(
            contract,
            EVENT_SUPPLIER_INTEGRATION,
            "Carrier integration succeeded.",
            status_tag=TAG_SUCCESS,
            metadata=metadata,
            raw_payload=raw_payload,
            actor_id=actor_id,
        )
        self._apply_status(
            contract,
            STATUS_APPROVED,
            actor_id,
            "Status set to approved by carrier integration.",
            raw_payload=raw_payload,
        )
        return TransitionResult(
            contract=contract,
            success=True,
            status_tag=TAG_SUCCESS,
            message=result.return_message,
            attempted=True,
            supplier_result=result,
            event=event,
        )

    def _skip_approval(
        self, contract: Contract, actor_id: int | None, description: str, reason: str, **extra: Any
    ) -> TransitionResult:
        event = self.audit.record(
            contract,
            EVENT_SUPPLIER_INTEGRATION,
            description,
            status_tag=TAG_SKIPPED,
            metadata={"reason": reason, **extra},
            actor_id=actor_id,
        )
        return TransitionResult(
            contract=contract,
            success=False,
            status_tag=TAG_SKIPPED,
            message=description,
            reason=reason,
            event=event,
            details=extra,
        )

    # -- cancellation -----------------------------------------------------

    def cancel(self, contract: Contract, actor_id: int | None = None, force: bool = False) -> TransitionResult:
        self.check_transition(contract, STATUS_CANCELLED)

        if not self.is_integrated(contract):
            event = self.audit.record(
                contract,
                EVENT_CANCELLATION_INTEGRATION,
                "Cancellation without carrier integration.",
                status_tag=TAG_SKIPPED,
                metadata={"reason": REASON_NOT_INTEGRATED},
                actor_id=actor_id,
            )
            self._apply_status(contract, STATUS_CANCELLED, actor_id)
            return TransitionResult(
                contract=contract,
                success=True,
                status_tag=TAG_SKIPPED,
                message="Contract cancelled.",
                reason=REASON_NOT_INTEGRATED,
                event=event,
            )

        snapshot = contract.get_meta(META_APPROVAL_SNAPSHOT) or {}
        operation_number = snapshot.get("operation_number")
        if not operation_number:
            if not force:
                message = "Operation number is required to cancel with the carrier."
                event = self.audit.record(
                    contract,
                    EVENT_CANCELLATION_INTEGRATION,
                    message,
                    status_tag=TAG_SKIPPED,
                    metadata={"reason": REASON_MISSING_OPERATION},
                    actor_id=actor_id,
                )
                return TransitionResult(
                    contract=contract,
                    success=False,
                    status_tag=TAG_SKIPPED,
                    message=message,
                    reason=REASON_MISSING_OPERATION,
                    event=event,
                )

            logger.warning("Contract %s force-cancelled without carrier call", contract.id)
            event = self.audit.record(
                contract,
                EVENT_CANCELLATION_INTEGRATION,
                "Forced cancellation: carrier was not notified.",
                status_tag=TAG_SKIPPED,
                metadata={
                    "reason": REASON_FORCED,
                    "forced": True,
                    "unsafe": True,
                    "missing": REASON_MISSING_OPERATION,
                },
                actor_id=actor_id,
            )
            self._apply_status(
                contract,
                STATUS_CANCELLED,
                actor_id,
                "Status set to cancelled by forced cancellation.",
                metadata={"forced": True},
            )
            return TransitionResult(
                contract=contract,
                success=True,
                status_tag=TAG_SKIPPED,
                message="Contract cancelled without carrier confirmation.",
                reason=REASON_FORCED,
                event=event,
            )

        config = self.gateway.config
        request = CancelPolicyRequest(
            operation_number=operation_number,
            sales_channel=snapshot.get("sales_channel") or config.sales_channel,
            invoice_period=snapshot.get("invoice_period") or config.current_invoice_period(),
        )
        result = self.gateway.cancel_policy(request)
        contract.set_meta(META_LAST_SUPPLIER_RESPONSE, result.to_dict())
        raw_payload = _raw_payload(result)
        metadata = {
            "request": {
                "operation_number": request.operation_number,
                "sales_channel": request.sales_channel,
                "invoice_period": request.invoice_period,
            },
            "response": result.to_dict(),
        }

        if not result.success:
            tag = TAG_SKIPPED if result.failure_kind == FAILURE_PRECONDITION else TAG_ERROR
            event = self.audit.record(
                contract,
                EVENT_CANCELLATION_INTEGRATION,
                f"Carrier cancellation failed: {result.return_message}",
                status_tag=tag,
                metadata=metadata,
                raw_payload=raw_payload,
                actor_id=actor_id,
            )
            return TransitionResult(
                contract=contract,
                success=False,
                status_tag=tag,
                message=result.return_message,
                attempted=tag == TAG_ERROR,
                reason=result.failure_kind,
                supplier_result=result,
                event=event,
            )

        event = self.audit.record(
            contract,
            EVENT_CANCELLATION_INTEGRATION,
            "Carrier cancellation succeeded.",
            status_tag=TAG_SUCCESS,
            metadata=metadata,
            raw_payload=raw_payload,
            actor_id=actor_id,
        )
        self._apply_status(
            contract,
            STATUS_CANCELLED,
            actor_id,
            "Status set to cancelled by carrier integration.",
            raw_payload=raw_payload,
        )
        return TransitionResult(
            contract=contract,
            success=True,
            status_tag=TAG_SUCCESS,
            message=result.return_message,
            attempted=True,
            supplier_result=result,
            event=event,
        )

    # -- manual status changes --------------------------------------------

    def set_status(
        self, contract: Contract, target: str, actor_id: int | None = None, description: str | None = None
    ) -> ContractEvent:
        self.check_transition(contract, target)
        return self._apply_status(contract, target, actor_id, description)

    def _apply_status(
        self,
        contract: Contract,
        target: str,
        actor_id: int | None,
        description: str | None = None,
        *,
        raw_payload: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ContractEvent:
        previous = contract.status
        contract.status = target
        self.db.flush()
        return self.audit.record_status_change(
            contract,
            previous,
            target,
            description,
            metadata=metadata,
            raw_payload=raw_payload,
            actor_id=actor_id,
        )

    # -- trash ------------------------------------------------------------

    def move_to_trash(self, contract: Contract, actor_id: int | None = None) -> ContractEvent:
        if contract.is_trashed:
            raise TrashStateError(contract.id, f"Contract {contract.id} is already in the trash")
        if contract.status != STATUS_CANCELLED:
            raise TrashStateError(
                contract.id, f"Only cancelled contracts can be moved to the trash (status: {contract.status})"
            )
        contract.deleted_at = datetime.now(timezone.utc)
        self.db.flush()
        return self.audit.record(contract, EVENT_TRASHED, "Contract moved to the trash.", actor_id=actor_id)

    def restore(self, contract: Contract, actor_id: int | None = None) -> ContractEvent:
        if not contract.is_trashed:
            raise TrashStateError(contract.id, f"Contract {contract.id} is not in the trash")
        contract.deleted_at = None
        self.db.flush()
        return self.audit.record(contract, EVENT_RESTORED, "Contract restored from the trash.", actor_id=actor_id)

    def force_delete(self, contract: Contract, actor_id: int | None = None) -> None:
        if not contract.is_trashed:
            raise TrashStateError(
                contract.id, f"Contract {contract.id} must be in the trash before permanent deletion"
            )
        logger.warning("Contract %s (%s) permanently deleted by user %s", contract.id, contract.token, actor_id)
        self.db.delete(contract)
        self.db.flush()


def _raw_payload(result: NormalizedResult) -> str:
    return json.dumps(
        {"request": result.request_payload, "response": result.raw},
        ensure_ascii=False,
        indent=2,
    )
