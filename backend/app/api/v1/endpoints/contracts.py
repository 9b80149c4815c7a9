from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Response

from app.api.v1.dependencies import get_current_user, get_lifecycle
from app.core.security import CurrentUser
from app.schemas.contract import (
    ContractCreate,
    ContractOutcome,
    ContractRead,
    ContractsPage,
    ContractStatus,
    ContractUpdate,
)
from app.schemas.event import ContractEventRead
from app.services.contracts import ContractLifecycle, LifecycleOutcome

logger = logging.getLogger(__name__)

router = APIRouter()


def _outcome(outcome: LifecycleOutcome) -> ContractOutcome:
    return ContractOutcome(
        contract=ContractRead.model_validate(outcome.contract, from_attributes=True),
        integration=outcome.integration_summary,
    )


@router.post("", response_model=ContractOutcome, status_code=201)
def create_contract(
    payload: ContractCreate,
    lifecycle: ContractLifecycle = Depends(get_lifecycle),
    user: CurrentUser = Depends(get_current_user),
) -> ContractOutcome:
    outcome = lifecycle.create_contract(payload, user.id)
    return _outcome(outcome)


@router.get("", response_model=ContractsPage)
def list_contracts(
    status: ContractStatus | None = Query(default=None),
    search: str | None = Query(default=None, description="Matches contract number, certificate or description"),
    trashed: bool = Query(default=False, description="List the trash instead of live contracts"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    lifecycle: ContractLifecycle = Depends(get_lifecycle),
    user: CurrentUser = Depends(get_current_user),
) -> ContractsPage:
    contracts, total = lifecycle.list_contracts(
        user.id, status=status, search=search, trashed=trashed, limit=limit, offset=offset
    )
    return ContractsPage(
        items=[ContractRead.model_validate(c, from_attributes=True) for c in contracts],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{contract_id}", response_model=ContractRead)
def read_contract(
    contract_id: int,
    include_trashed: bool = Query(default=False),
    lifecycle: ContractLifecycle = Depends(get_lifecycle),
    user: CurrentUser = Depends(get_current_user),
) -> ContractRead:
    contract = lifecycle.get_contract(contract_id, user.id, include_trashed=include_trashed)
    return ContractRead.model_validate(contract, from_attributes=True)


@router.patch("/{contract_id}", response_model=ContractOutcome)
def update_contract(
    contract_id: int,
    payload: ContractUpdate,
    lifecycle: ContractLifecycle = Depends(get_lifecycle),
    user: CurrentUser = Depends(get_current_user),
) -> ContractOutcome:
    outcome = lifecycle.update_contract(contract_id, payload, user.id)
    return _outcome(outcome)


@router.post("/{contract_id}/cancel", response_model=ContractOutcome)
def cancel_contract(
    contract_id: int,
    force: bool = Query(default=False, description="Cancel without carrier confirmation"),
    lifecycle: ContractLifecycle = Depends(get_lifecycle),
    user: CurrentUser = Depends(get_current_user),
) -> ContractOutcome:
    if force:
        logger.warning("User %s requested forced cancellation of contract %s", user.id, contract_id)
    outcome = lifecycle.cancel_contract(contract_id, user.id, force=force)
    return _outcome(outcome)


@router.post("/{contract_id}/integration/retry", response_model=ContractOutcome)
def retry_integration(
    contract_id: int,
    lifecycle: ContractLifecycle = Depends(get_lifecycle),
    user: CurrentUser = Depends(get_current_user),
) -> ContractOutcome:
    outcome = lifecycle.retry_integration(contract_id, user.id)
    return _outcome(outcome)


@router.get("/{contract_id}/events", response_model=list[ContractEventRead])
def list_contract_events(
    contract_id: int,
    lifecycle: ContractLifecycle = Depends(get_lifecycle),
    user: CurrentUser = Depends(get_current_user),
) -> list[ContractEventRead]:
    events = lifecycle.list_events(contract_id, user.id)
    return [ContractEventRead.model_validate(e, from_attributes=True) for e in events]


@router.delete("/{contract_id}", response_model=ContractRead)
def move_to_trash(
    contract_id: int,
    lifecycle: ContractLifecycle = Depends(get_lifecycle),
    user: CurrentUser = Depends(get_current_user),
) -> ContractRead:
    contract = lifecycle.move_to_trash(contract_id, user.id)
    return ContractRead.model_validate(contract, from_attributes=True)


@router.post("/{contract_id}/restore", response_model=ContractRead)
def restore_contract(
    contract_id: int,
    lifecycle: ContractLifecycle = Depends(get_lifecycle),
    user: CurrentUser = Depends(get_current_user),
) -> ContractRead:
    contract = lifecycle.restore(contract_id, user.id)
    return ContractRead.model_validate(contract, from_attributes=True)


@router.delete("/{contract_id}/force", status_code=204)
def force_delete_contract(
    contract_id: int,
    lifecycle: ContractLifecycle = Depends(get_lifecycle),
    user: CurrentUser = Depends(get_current_user),
) -> Response:
    lifecycle.force_delete(contract_id, user.id)
    return Response(status_code=204)
