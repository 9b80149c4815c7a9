"""Pydantic schemas package."""
from app.schemas.contract import (
    ContractBase,
    ContractCreate,
    ContractOutcome,
    ContractRead,
    ContractsPage,
    ContractUpdate,
    IntegrationOutcome,
)
from app.schemas.event import ContractEventRead, RecentEventRead, RecentEventsPage

__all__ = [
    "ContractBase",
    "ContractCreate",
    "ContractOutcome",
    "ContractRead",
    "ContractsPage",
    "ContractUpdate",
    "IntegrationOutcome",
    "ContractEventRead",
    "RecentEventRead",
    "RecentEventsPage",
]
