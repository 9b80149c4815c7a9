"""ORM models."""

# Import all models so they are registered with SQLAlchemy
from app.models.client import Client  # noqa
from app.models.contract import Contract  # noqa
from app.models.contract_event import ContractEvent  # noqa
from app.models.product import Product  # noqa

__all__ = [
    "Client",
    "Contract",
    "ContractEvent",
    "Product",
]
