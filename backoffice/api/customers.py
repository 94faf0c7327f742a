from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from backoffice.api.auth import get_current_user
from backoffice.database import get_db
from backoffice.schemas.customer import CustomerCreate, CustomerList, CustomerOut, CustomerUpdate
from backoffice.services import customer_service

router = APIRouter(prefix="/customers", tags=["Customers"], dependencies=[Depends(get_current_user)])


def _customer_out(db: Session, customer) -> CustomerOut:
    out = CustomerOut.model_validate(customer)
    out.invoice_count = customer_service.count_invoices(db, customer.id)
    return out


@router.get("", response_model=CustomerList)
def list_customers(
    q: str = "",
    skip: int = 0,
    limit: int = Query(100, le=500),
    db: Session = Depends(get_db),
):
    total, customers = customer_service.list_customers(db, q=q, skip=skip, limit=limit)
    return CustomerList(total=total, customers=[_customer_out(db, c) for c in customers])


@router.post("", response_model=CustomerOut, status_code=201)
def create_customer(data: CustomerCreate, db: Session = Depends(get_db)):
    return _customer_out(db, customer_service.create_customer(db, data))


@router.get("/{customer_id}", response_model=CustomerOut)
def get_customer(customer_id: str, db: Session = Depends(get_db)):
    return _customer_out(db, customer_service.get_customer(db, customer_id))


@router.patch("/{customer_id}", response_model=CustomerOut)
def update_customer(customer_id: str, data: CustomerUpdate, db: Session = Depends(get_db)):
    return _customer_out(db, customer_service.update_customer(db, customer_id, data))


@router.delete("/{customer_id}", status_code=204)
def delete_customer(customer_id: str, db: Session = Depends(get_db)):
    customer_service.delete_customer(db, customer_id)
