from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from backoffice.api.auth import get_current_user
from backoffice.database import get_db
from backoffice.schemas.product import (
    ProductCreate,
    ProductOut,
    ProductUpdate,
    StockAdjust,
    StockMovementOut,
)
from backoffice.services import product_service, stock_service

router = APIRouter(prefix="/products", tags=["Products"], dependencies=[Depends(get_current_user)])


@router.post("", response_model=ProductOut, status_code=201)
def create_product(data: ProductCreate, db: Session = Depends(get_db)):
    return product_service.create_product(db, data)


@router.get("", response_model=list[ProductOut])
def list_products(
    skip: int = 0,
    limit: int = Query(100, le=500),
    search: str | None = None,
    category: str | None = None,
    low_stock: bool = False,
    db: Session = Depends(get_db),
):
    return product_service.list_products(
        db, skip=skip, limit=limit, search=search, category=category, low_stock=low_stock
    )


@router.get("/low-stock", response_model=list[ProductOut])
def low_stock(db: Session = Depends(get_db)):
    return product_service.get_low_stock(db)


@router.get("/{product_id}", response_model=ProductOut)
def get_product(product_id: str, db: Session = Depends(get_db)):
    return product_service.get_product(db, product_id)


@router.patch("/{product_id}", response_model=ProductOut)
def update_product(product_id: str, data: ProductUpdate, db: Session = Depends(get_db)):
    return product_service.update_product(db, product_id, data)


@router.delete("/{product_id}", status_code=204)
def delete_product(product_id: str, db: Session = Depends(get_db)):
    product_service.delete_product(db, product_id)


@router.post("/{product_id}/stock", response_model=ProductOut)
def adjust_stock(product_id: str, data: StockAdjust, db: Session = Depends(get_db)):
    return stock_service.adjust_stock(db, product_id, data.quantity, data.reason, data.reference)


@router.get("/{product_id}/movements", response_model=list[StockMovementOut])
def list_movements(product_id: str, limit: int | None = Query(None, ge=1), db: Session = Depends(get_db)):
    return stock_service.list_movements(db, product_id, limit=limit)
