import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Response, status

from ..core.events import ChangeEvent, EventBus, get_event_bus
from ..core.security import require_roles
from ..db.repository import CrmRepository, get_repository
from ..schemas.auth import CurrentUser
from ..schemas.crm import Invoice, InvoiceCreate, InvoiceItemIn, InvoiceStatusUpdate, InvoiceUpdate
from ..services.documents import (
    DocumentClient,
    DocumentInput,
    DocumentValidationError,
    LineItem,
    compute_totals,
    document_filename,
    document_reference,
    render_document,
)
from ..services.workflow import InvalidTransitionError, check_invoice_transition

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/invoices", tags=["invoices"])

admin_only = require_roles(["admin"])


def priced_items(items: List[InvoiceItemIn], tax_rate) -> tuple:
    """Line rows with their totals, plus the header amounts derived from them."""
    totals = compute_totals([LineItem(**i.model_dump()) for i in items], tax_rate)
    rows: List[Dict[str, Any]] = [
        {**item.model_dump(), "total": line_total}
        for item, line_total in zip(items, totals.line_totals)
    ]
    amounts = {"amount": totals.subtotal, "tax_amount": totals.tax, "total_amount": totals.total}
    return rows, amounts


async def _get_or_404(repo: CrmRepository, invoice_id: str) -> Dict[str, Any]:
    row = await repo.get_invoice(invoice_id)
    if not row:
        raise HTTPException(status_code=404, detail="Facture introuvable")
    return row


@router.get("", response_model=List[Invoice])
async def list_invoices(
    current_user: CurrentUser = Depends(admin_only),
    repo: CrmRepository = Depends(get_repository),
):
    return [Invoice(**r) for r in await repo.list_invoices()]


@router.get("/{invoice_id}", response_model=Invoice)
async def get_invoice(
    invoice_id: str,
    current_user: CurrentUser = Depends(admin_only),
    repo: CrmRepository = Depends(get_repository),
):
    return Invoice(**await _get_or_404(repo, invoice_id))


@router.post("", response_model=Invoice, status_code=status.HTTP_201_CREATED)
async def create_invoice(
    payload: InvoiceCreate,
    current_user: CurrentUser = Depends(admin_only),
    repo: CrmRepository = Depends(get_repository),
    bus: EventBus = Depends(get_event_bus),
):
    if payload.due_date < payload.issue_date:
        raise HTTPException(status_code=400, detail="L'échéance doit suivre la date d'émission")

    items, amounts = priced_items(payload.items, payload.tax_rate)
    data = {**payload.model_dump(exclude={"items"}), **amounts}
    try:
        row = await repo.create_invoice(data, items)
    except Exception:
        logger.exception("Failed to create invoice for %s", payload.client_email)
        raise HTTPException(status_code=500, detail="Erreur lors de la création de la facture")

    bus.publish(ChangeEvent("invoices", "insert", row["id"]))
    return Invoice(**row)


@router.put("/{invoice_id}", response_model=Invoice)
async def update_invoice(
    invoice_id: str,
    payload: InvoiceUpdate,
    current_user: CurrentUser = Depends(admin_only),
    repo: CrmRepository = Depends(get_repository),
    bus: EventBus = Depends(get_event_bus),
):
    current = await _get_or_404(repo, invoice_id)
    if current["status"] != "draft":
        raise HTTPException(status_code=400, detail="Seules les factures en brouillon sont modifiables")

    fields = payload.model_dump(exclude_unset=True, exclude={"items"})
    issue_date = fields.get("issue_date", current["issue_date"])
    due_date = fields.get("due_date", current["due_date"])
    if due_date < issue_date:
        raise HTTPException(status_code=400, detail="L'échéance doit suivre la date d'émission")

    items = None
    if payload.items is not None or "tax_rate" in fields:
        tax_rate = fields.get("tax_rate", current["tax_rate"])
        source = payload.items if payload.items is not None else [InvoiceItemIn(**i) for i in current["items"]]
        items, amounts = priced_items(source, tax_rate)
        fields.update(amounts)

    try:
        row = await repo.update_invoice(invoice_id, fields, items)
    except Exception:
        logger.exception("Failed to update invoice %s", invoice_id)
        raise HTTPException(status_code=500, detail="Erreur lors de la mise à jour de la facture")
    if not row:
        raise HTTPException(status_code=404, detail="Facture introuvable")

    bus.publish(ChangeEvent("invoices", "update", invoice_id))
    return Invoice(**row)


@router.patch("/{invoice_id}/status", response_model=Invoice)
async def update_invoice_status(
    invoice_id: str,
    payload: InvoiceStatusUpdate,
    current_user: CurrentUser = Depends(admin_only),
    repo: CrmRepository = Depends(get_repository),
    bus: EventBus = Depends(get_event_bus),
):
    current = await _get_or_404(repo, invoice_id)
    try:
        changed = check_invoice_transition(current["status"], payload.status)
    except InvalidTransitionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not changed:
        return Invoice(**current)

    row = await repo.update_invoice(invoice_id, {"status": payload.status})
    bus.publish(ChangeEvent("invoices", "update", invoice_id))
    logger.info("Invoice %s: %s -> %s", current["invoice_number"], current["status"], payload.status)
    return Invoice(**row)


@router.delete("/{invoice_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_invoice(
    invoice_id: str,
    current_user: CurrentUser = Depends(admin_only),
    repo: CrmRepository = Depends(get_repository),
    bus: EventBus = Depends(get_event_bus),
):
    if not await repo.delete_invoice(invoice_id):
        raise HTTPException(status_code=404, detail="Facture introuvable")
    bus.publish(ChangeEvent("invoices", "delete", invoice_id))


@router.get("/{invoice_id}/pdf")
async def invoice_pdf(
    invoice_id: str,
    current_user: CurrentUser = Depends(admin_only),
    repo: CrmRepository = Depends(get_repository),
):
    invoice = Invoice(**await _get_or_404(repo, invoice_id))
    doc = DocumentInput(
        kind="invoice",
        number=document_reference(invoice.invoice_number, invoice.id),
        client=DocumentClient(name=invoice.client_name, email=invoice.client_email, address=invoice.client_address),
        items=[LineItem(description=i.description, quantity=i.quantity, unit_price=i.unit_price) for i in invoice.items],
        tax_rate=invoice.tax_rate,
        issue_date=invoice.issue_date,
        due_date=invoice.due_date,
        notes=invoice.notes,
    )
    try:
        pdf = render_document(doc)
    except DocumentValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{document_filename(doc)}"'},
    )
