import logging

from sqlalchemy.orm import Session

from backoffice.database import atomic, reject_nulls
from backoffice.exceptions import NotFoundError, ReferentialConflictError
from backoffice.models.customer import Customer
from backoffice.models.invoice import Invoice
from backoffice.schemas.customer import CustomerCreate, CustomerUpdate

logger = logging.getLogger(__name__)


def create_customer(db: Session, data: CustomerCreate) -> Customer:
    with atomic(db):
        customer = Customer(**data.model_dump())
        db.add(customer)
    db.refresh(customer)
    return customer


def get_customer(db: Session, customer_id: str) -> Customer:
    customer = db.query(Customer).filter(Customer.id == customer_id).first()
    if not customer:
        raise NotFoundError("Customer", customer_id)
    return customer


def list_customers(db: Session, q: str = "", skip: int = 0, limit: int = 100) -> tuple[int, list[Customer]]:
    query = db.query(Customer)
    if q:
        query = query.filter(
            Customer.name.ilike(f"%{q}%")
            | Customer.email.ilike(f"%{q}%")
            | Customer.company.ilike(f"%{q}%")
            | Customer.city.ilike(f"%{q}%")
        )
    total = query.count()
    return total, query.order_by(Customer.name).offset(skip).limit(limit).all()


def update_customer(db: Session, customer_id: str, data: CustomerUpdate) -> Customer:
    customer = get_customer(db, customer_id)
    changes = data.model_dump(exclude_unset=True)
    reject_nulls(Customer, changes)
    with atomic(db):
        for field, val in changes.items():
            setattr(customer, field, val)
    db.refresh(customer)
    return customer


def delete_customer(db: Session, customer_id: str) -> None:
    customer = get_customer(db, customer_id)
    if db.query(Invoice).filter(Invoice.customer_id == customer_id).count():
        raise ReferentialConflictError("Cannot delete customer with existing invoices")
    with atomic(db):
        db.delete(customer)
    logger.info("Deleted customer %s (%s)", customer.name, customer_id)


def count_invoices(db: Session, customer_id: str) -> int:
    return db.query(Invoice).filter(Invoice.customer_id == customer_id).count()
