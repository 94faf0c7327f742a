import threading
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from backoffice.database import init_db
from backoffice.exceptions import InsufficientStockError
from backoffice.models.customer import Customer
from backoffice.models.invoice import Invoice, InvoiceStatus
from backoffice.models.product import Product
from backoffice.schemas.invoice import InvoiceCreate, InvoiceItemIn
from backoffice.schemas.product import ProductCreate
from backoffice.services import invoice_service, numbering_service, product_service, settings_service, stock_service


@pytest.fixture
def session_factory(tmp_path):
    # File-backed so every worker gets its own connection
    engine = create_engine(
        f"sqlite:///{tmp_path / 'backoffice.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    init_db(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    with factory() as db:
        settings_service.get_settings(db)
        db.commit()
    yield factory
    engine.dispose()


@pytest.fixture
def customer_id(session_factory) -> str:
    with session_factory() as db:
        customer = Customer(name="Erika Mustermann", city="Berlin")
        db.add(customer)
        db.commit()
        return customer.id


def _run_in_parallel(func, args_list):
    """Call ``func`` once per argument tuple, each on its own thread, released together."""
    barrier = threading.Barrier(len(args_list))
    results = [None] * len(args_list)

    def worker(index, args):
        barrier.wait()
        try:
            results[index] = func(*args)
        except Exception as exc:
            results[index] = exc

    threads = [threading.Thread(target=worker, args=(i, args)) for i, args in enumerate(args_list)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)
    return results


def _invoice_data(customer_id, product_id=None, quantity=1):
    item = InvoiceItemIn(product_id=product_id, title="Vase", quantity=quantity, unit_price=Decimal("20"))
    return InvoiceCreate(customer_id=customer_id, items=[item])


def test_competing_finalizes_cannot_oversell(session_factory, customer_id):
    with session_factory() as db:
        product = product_service.create_product(
            db, ProductCreate(name="Vase", selling_price=Decimal("20"), stock_current=1)
        )
        product_id = product.id
        invoice_ids = [
            invoice_service.create_invoice(db, _invoice_data(customer_id, product_id)).id for _ in range(2)
        ]

    def finalize(invoice_id):
        with session_factory() as db:
            return invoice_service.finalize_invoice(db, invoice_id).status

    results = _run_in_parallel(finalize, [(invoice_id,) for invoice_id in invoice_ids])

    assert results.count(InvoiceStatus.SENT) == 1
    assert sum(isinstance(r, InsufficientStockError) for r in results) == 1

    with session_factory() as db:
        product = db.get(Product, product_id)
        assert product.stock_current == 0
        assert stock_service.ledger_balance(db, product_id) == 0
        assert stock_service.find_ledger_drift(db) == []
        statuses = sorted(db.get(Invoice, invoice_id).status.value for invoice_id in invoice_ids)
        assert statuses == ["Draft", "Sent"]


def test_parallel_creates_get_distinct_numbers(session_factory, customer_id):
    workers = 8

    def create():
        with session_factory() as db:
            return invoice_service.create_invoice(db, _invoice_data(customer_id)).invoice_number

    results = _run_in_parallel(create, [() for _ in range(workers)])

    assert not [r for r in results if isinstance(r, Exception)]
    with session_factory() as db:
        row = settings_service.get_settings(db)
        expected = {
            numbering_service.format_invoice_number(row.invoice_prefix, row.invoice_year, n)
            for n in range(1, workers + 1)
        }
        assert row.invoice_current_number == workers
    assert set(results) == expected
