from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from backoffice.api.auth import get_current_user
from backoffice.database import get_db
from backoffice.services import report_service

router = APIRouter(prefix="/reports", tags=["Reports"], dependencies=[Depends(get_current_user)])


@router.get("/dashboard")
def dashboard(db: Session = Depends(get_db)):
    return {
        **report_service.dashboard_summary(db),
        "low_stock": report_service.low_stock(db),
        "recent_invoices": report_service.recent_invoices(db),
    }


@router.get("/low-stock")
def low_stock_report(limit: int = 50, db: Session = Depends(get_db)):
    return report_service.low_stock(db, limit=limit)


@router.get("/top-products")
def top_products_report(limit: int = 10, db: Session = Depends(get_db)):
    return report_service.top_products(db, limit=limit)


@router.get("/movements")
def stock_movement_report(
    product_id: str | None = None,
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
    limit: int = 50,
    db: Session = Depends(get_db),
):
    return report_service.stock_movements(
        db, product_id=product_id, start_date=start_date, end_date=end_date, limit=limit
    )
