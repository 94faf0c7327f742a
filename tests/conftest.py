from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from backoffice.api.auth import get_current_user
from backoffice.database import get_db, init_db
from backoffice.main import app
from backoffice.models.customer import Customer
from backoffice.models.product import Product
from backoffice.models.user import User
from backoffice.schemas.invoice import InvoiceCreate, InvoiceItemIn
from backoffice.schemas.product import ProductCreate
from backoffice.services import invoice_service, product_service, settings_service


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    settings_service.get_settings(session)
    session.commit()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    def override_user():
        return User(id="test-user", username="tester", display_name="Tester", role="admin", active=True)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_user
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_product(db):
    def _make(name="Candle", stock=0, price="9.90", sku=None, minimum=0) -> Product:
        return product_service.create_product(db, ProductCreate(
            name=name, sku=sku, selling_price=Decimal(price), stock_current=stock, stock_minimum=minimum,
        ))
    return _make


@pytest.fixture
def customer(db) -> Customer:
    c = Customer(name="Erika Mustermann", address="Hauptstr. 1", zip_code="10115", city="Berlin")
    db.add(c)
    db.commit()
    db.refresh(c)
    return c


@pytest.fixture
def make_invoice(db, customer):
    def _make(items=None, **kwargs):
        if items is None:
            items = [InvoiceItemIn(title="Service", quantity=1, unit_price=Decimal("100"))]
        return invoice_service.create_invoice(db, InvoiceCreate(customer_id=customer.id, items=items, **kwargs))
    return _make
