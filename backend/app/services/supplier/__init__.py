"""Carrier integration: SOAP codec and HTTP gateway."""
from app.services.supplier.codec import (
    CancelPolicyRequest,
    Credentials,
    IssuePolicyRequest,
    NormalizedResult,
)
from app.services.supplier.gateway import SupplierConfig, SupplierGateway

__all__ = [
    "CancelPolicyRequest",
    "Credentials",
    "IssuePolicyRequest",
    "NormalizedResult",
    "SupplierConfig",
    "SupplierGateway",
]
