"""Shared fixtures: in-memory database, seeded directory and a fake carrier."""
from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import app.db.base  # noqa: F401  (registers every model on the metadata)
from app.api.v1.dependencies import get_db, get_gateway, get_permission_service
from app.db.base_class import Base
from app.main import app
from app.models.client import Client
from app.models.product import Product
from app.services.audit import AuditLog
from app.services.contracts import ContractLifecycle
from app.services.permissions import AdminListPermissions
from app.services.state_machine import ContractStateMachine
from app.services.supplier.gateway import SupplierConfig, SupplierGateway
from support import (
    CARRIER_PASSWORD,
    CARRIER_URL,
    CLIENT_ID,
    CLIENT_NO_BIRTH_DATE_ID,
    CLIENT_SUPPLIER_ID,
    PRODUCT_ID,
    PRODUCT_OTHER_CARRIER_ID,
    FakeCarrier,
)


def _seed(session: Session) -> None:
    session.add_all(
        [
            Client(
                id=CLIENT_ID,
                name="Maria Souza",
                document="123.456.789-09",
                birth_date=date(1977, 5, 18),
                gender="F",
                state_code="mg",
                permission_id="7",
            ),
            Client(
                id=CLIENT_NO_BIRTH_DATE_ID,
                name="Joao Lima",
                document="98765432100",
                birth_date=None,
                gender="M",
                state_code="SP",
                permission_id="7",
            ),
            Client(
                id=CLIENT_SUPPLIER_ID,
                name="Fornecedor Ltda",
                document="11222333000181",
                birth_date=date(1990, 1, 1),
                gender="NI",
                state_code="RJ",
                permission_id="6",
            ),
            Product(
                id=PRODUCT_ID,
                name="Seguro Acidentes Pessoais",
                supplier="SulAmerica Seguros",
                plan_code="2",
                cost_price=Decimal("3.96"),
            ),
            Product(
                id=PRODUCT_OTHER_CARRIER_ID,
                name="Assistencia Residencial",
                supplier="Other Insurer",
                plan_code="1",
                cost_price=Decimal("10.00"),
            ),
        ]
    )
    session.commit()


@pytest.fixture
def carrier() -> FakeCarrier:
    return FakeCarrier()


@pytest.fixture
def supplier_config() -> SupplierConfig:
    return SupplierConfig(
        url=CARRIER_URL,
        username="partner-user",
        password=CARRIER_PASSWORD,
        product_code="10124",
        sales_channel="SITE",
        carrier_name="SulAmerica",
        invoice_period="102026",
        timeout_seconds=5.0,
    )


@pytest.fixture
def gateway(supplier_config: SupplierConfig, carrier: FakeCarrier):
    client = httpx.Client(transport=httpx.MockTransport(carrier))
    gateway = SupplierGateway(supplier_config, client=client)
    yield gateway
    gateway.close()


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    seed_session = factory()
    _seed(seed_session)
    seed_session.close()
    return factory


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def audit(db: Session) -> AuditLog:
    return AuditLog(db)


@pytest.fixture
def machine(db: Session, gateway: SupplierGateway) -> ContractStateMachine:
    return ContractStateMachine(db, gateway)


@pytest.fixture
def lifecycle(db: Session, machine: ContractStateMachine) -> ContractLifecycle:
    return ContractLifecycle(db, machine, AdminListPermissions())


@pytest.fixture
def coverage() -> dict:
    today = date.today()
    return {"start_date": today, "end_date": today + timedelta(days=365)}


@pytest.fixture
def make_contract(machine: ContractStateMachine, db: Session, coverage: dict):
    """Persist a contract straight through the state machine."""

    def _make(client_id: int = CLIENT_ID, product_id: int = PRODUCT_ID, **attrs):
        data = {"client_id": client_id, "product_id": product_id, **coverage, **attrs}
        contract = machine.create(data, actor_id=1)
        db.commit()
        return contract

    return _make


@pytest.fixture
def api_client(session_factory, gateway: SupplierGateway):
    """TestClient wired to the in-memory database and the fake carrier."""

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_permission_service] = lambda: AdminListPermissions()
    with TestClient(app, headers={"Authorization": "Bearer 1"}) as client:
        yield client
    app.dependency_overrides.clear()
