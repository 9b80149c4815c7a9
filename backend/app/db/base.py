"""Import all models here for Alembic migrations."""
from app.db.base_class import Base
from app.models.client import Client
from app.models.contract import Contract
from app.models.contract_event import ContractEvent
from app.models.product import Product
