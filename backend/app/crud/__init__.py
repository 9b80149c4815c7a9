"""CRUD operations."""
from app.crud.contract import (
    get_contract,
    get_contract_for_update,
    list_contracts,
)

__all__ = [
    "get_contract",
    "get_contract_for_update",
    "list_contracts",
]
