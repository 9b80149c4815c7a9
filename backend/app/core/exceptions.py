"""Typed errors raised by the contract lifecycle.

Each error carries a machine-readable ``code`` and the HTTP status the API
layer answers with; the single exception handler in ``app.main`` turns them
into JSON responses.
"""
from __future__ import annotations

from typing import Any


class ContractLifecycleError(Exception):
    """Base class for lifecycle errors surfaced to API callers."""

    code = "CONTRACT_ERROR"
    status_code = 400

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, **self.details}


class ContractNotFoundError(ContractLifecycleError):
    code = "CONTRACT_NOT_FOUND"
    status_code = 404

    def __init__(self, contract_id: int) -> None:
        super().__init__(f"Contract {contract_id} not found", contract_id=contract_id)


class DuplicateContractError(ContractLifecycleError):
    """Raised when a client already holds an active contract for the product."""

    code = "DUPLICATE_ACTIVE_CONTRACT"
    status_code = 409

    def __init__(
        self,
        client_id: int,
        product_id: int,
        existing_contract_id: int,
        existing_contract_number: str | None,
    ) -> None:
        reference = existing_contract_number or f"#{existing_contract_id}"
        super().__init__(
            f"Client {client_id} already has an active contract ({reference}) "
            f"for product {product_id}",
            client_id=client_id,
            product_id=product_id,
            existing_contract_id=existing_contract_id,
            existing_contract_number=existing_contract_number,
        )


class IllegalTransitionError(ContractLifecycleError):
    code = "ILLEGAL_TRANSITION"
    status_code = 409

    def __init__(self, contract_id: int | None, from_status: str | None, to_status: str) -> None:
        super().__init__(
            f"Contract {contract_id} cannot move from '{from_status}' to '{to_status}'",
            contract_id=contract_id,
            from_status=from_status,
            to_status=to_status,
        )


class TrashStateError(ContractLifecycleError):
    code = "TRASH_STATE"
    status_code = 409

    def __init__(self, contract_id: int, message: str) -> None:
        super().__init__(message, contract_id=contract_id)


class PermissionDeniedError(ContractLifecycleError):
    code = "PERMISSION_DENIED"
    status_code = 403

    def __init__(self, action: str, user_id: int | None) -> None:
        super().__init__(
            f"User {user_id} is not allowed to perform '{action}'",
            action=action,
            user_id=user_id,
        )


class CancellationBlockedError(ContractLifecycleError):
    """Cancellation preconditions are not met and no carrier call was made."""

    code = "CANCELLATION_BLOCKED"
    status_code = 422

    def __init__(self, contract_id: int, message: str, reason: str) -> None:
        super().__init__(message, contract_id=contract_id, reason=reason)


class IntegrationFailedError(ContractLifecycleError):
    """The carrier rejected the request or could not be reached."""

    code = "INTEGRATION_FAILED"
    status_code = 502

    def __init__(self, contract_id: int, message: str, return_code: str | None = None) -> None:
        super().__init__(message, contract_id=contract_id, return_code=return_code)


class SupplierPreconditionError(ValueError):
    """Raised by the codec when a required request field is empty."""

    def __init__(self, missing: list[str]) -> None:
        super().__init__("Missing required fields: " + ", ".join(missing))
        self.missing = missing


class InvalidReferenceError(ContractLifecycleError):
    code = "INVALID_REFERENCE"
    status_code = 422

    def __init__(self, field: str, value: int) -> None:
        super().__init__(f"Unknown {field} {value}", field=field, value=value)
