# marketplace/api/routers/invoices.py
from typing import List

from fastapi import APIRouter, Depends

from marketplace.api.deps import get_services
from marketplace.domain.schemas import InvoiceGenerateIn, InvoiceOut
from marketplace.domain.statuses import InvoiceType
from marketplace.services.container import Services

router = APIRouter(prefix="/invoices", tags=["invoices"])


@router.post("/orders/{order_pk}", response_model=InvoiceOut, status_code=201)
def generate_invoice(order_pk: str, payload: InvoiceGenerateIn, svc: Services = Depends(get_services)):
    if payload.type == InvoiceType.VENDOR:
        return svc.invoices.generate_vendor_invoice(order_pk, payload.comments)
    return svc.invoices.generate_customer_invoice(order_pk, payload.comments, payload.payment_status)


@router.get("/orders/{order_pk}", response_model=List[InvoiceOut])
def list_order_invoices(order_pk: str, svc: Services = Depends(get_services)):
    return svc.invoices.list_for_order(order_pk)


@router.get("/view/{token}", response_model=InvoiceOut)
def view_invoice(token: str, svc: Services = Depends(get_services)):
    """Public, unauthenticated: whoever holds the link can see the bill."""
    return svc.invoices.get_by_token(token)


@router.delete("/{invoice_id}", status_code=204)
def delete_invoice(invoice_id: str, svc: Services = Depends(get_services)):
    svc.invoices.soft_delete(invoice_id)
