from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from backoffice.api.auth import get_current_user
from backoffice.database import get_db
from backoffice.models.invoice import Invoice, InvoiceStatus
from backoffice.schemas.invoice import (
    AuditLogOut,
    InvoiceCreate,
    InvoiceItemOut,
    InvoiceItemsReplace,
    InvoiceList,
    InvoiceOut,
    InvoiceUpdate,
    NumberPreview,
)
from backoffice.services import invoice_service, numbering_service, pdf_service, settings_service

router = APIRouter(prefix="/invoices", tags=["Invoices"], dependencies=[Depends(get_current_user)])


def _invoice_to_out(inv: Invoice) -> InvoiceOut:
    return InvoiceOut(
        id=inv.id,
        invoice_number=inv.invoice_number,
        invoice_date=inv.invoice_date,
        delivery_date=inv.delivery_date,
        due_date=inv.due_date,
        status=inv.status,
        customer_id=inv.customer_id,
        customer_name=inv.customer.name if inv.customer else "",
        discount=inv.discount,
        shipping_cost=inv.shipping_cost,
        subtotal=inv.subtotal,
        vat_rate=inv.vat_rate,
        vat_amount=inv.vat_amount,
        total=inv.total,
        notes=inv.notes or "",
        items=[InvoiceItemOut.model_validate(i) for i in inv.items],
        created_at=inv.created_at,
        updated_at=inv.updated_at,
    )


@router.get("", response_model=InvoiceList)
def list_invoices(
    search: str = "",
    status: InvoiceStatus | None = None,
    customer_id: str = "",
    skip: int = 0,
    limit: int = Query(50, le=500),
    db: Session = Depends(get_db),
):
    total, invoices = invoice_service.list_invoices(
        db, search=search, status=status, customer_id=customer_id, skip=skip, limit=limit
    )
    return InvoiceList(total=total, invoices=[_invoice_to_out(i) for i in invoices])


@router.get("/number-preview", response_model=NumberPreview)
def number_preview(db: Session = Depends(get_db)):
    """Number the next invoice would get. Nothing is reserved."""
    return NumberPreview(next_invoice_number=numbering_service.preview_next_number(settings_service.get_settings(db)))


@router.post("", response_model=InvoiceOut, status_code=201)
def create_invoice(data: InvoiceCreate, db: Session = Depends(get_db)):
    return _invoice_to_out(invoice_service.create_invoice(db, data))


@router.get("/{invoice_id}", response_model=InvoiceOut)
def get_invoice(invoice_id: str, db: Session = Depends(get_db)):
    return _invoice_to_out(invoice_service.get_invoice(db, invoice_id))


@router.patch("/{invoice_id}", response_model=InvoiceOut)
def update_invoice(invoice_id: str, data: InvoiceUpdate, db: Session = Depends(get_db)):
    return _invoice_to_out(invoice_service.update_invoice(db, invoice_id, data))


@router.put("/{invoice_id}/items", response_model=InvoiceOut)
def replace_items(invoice_id: str, data: InvoiceItemsReplace, db: Session = Depends(get_db)):
    return _invoice_to_out(invoice_service.update_invoice_items(db, invoice_id, data.items))


@router.delete("/{invoice_id}", status_code=204)
def delete_invoice(invoice_id: str, db: Session = Depends(get_db)):
    invoice_service.delete_invoice(db, invoice_id)


@router.post("/{invoice_id}/finalize", response_model=InvoiceOut)
def finalize_invoice(invoice_id: str, db: Session = Depends(get_db)):
    return _invoice_to_out(invoice_service.finalize_invoice(db, invoice_id))


@router.post("/{invoice_id}/paid", response_model=InvoiceOut)
def mark_paid(invoice_id: str, db: Session = Depends(get_db)):
    return _invoice_to_out(invoice_service.mark_invoice_paid(db, invoice_id))


@router.post("/{invoice_id}/cancel", response_model=InvoiceOut)
def cancel_invoice(invoice_id: str, db: Session = Depends(get_db)):
    return _invoice_to_out(invoice_service.cancel_invoice(db, invoice_id))


@router.get("/{invoice_id}/audit", response_model=list[AuditLogOut])
def audit_trail(invoice_id: str, db: Session = Depends(get_db)):
    return invoice_service.get_audit_trail(db, invoice_id)


@router.get("/{invoice_id}/pdf")
def invoice_pdf(invoice_id: str, db: Session = Depends(get_db)):
    invoice = invoice_service.get_invoice(db, invoice_id)
    pdf = pdf_service.render_invoice_pdf(invoice, settings_service.get_settings(db))
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="{invoice.invoice_number}.pdf"'},
    )
