import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException, Response, status

from ..core.config import settings
from ..core.events import ChangeEvent, EventBus, get_event_bus
from ..core.security import require_roles
from ..db.repository import CrmRepository, get_repository
from ..schemas.auth import CurrentUser
from ..schemas.sales import (
    PENDING_STATUSES,
    SIGNED_STATUSES,
    UNSENT_STATUSES,
    Prospect,
    ProspectCreate,
    ProspectUpdate,
    SalesDashboard,
    SalesPartner,
    SalesQuote,
    SalesQuoteCreate,
    SalesQuoteStatusUpdate,
    SignedQuote,
)
from ..services import catalog
from ..services.documents import (
    DocumentClient,
    DocumentInput,
    DocumentValidationError,
    LineItem,
    document_filename,
    document_reference,
    render_document,
    to_cents,
)
from ..services.email_service import EmailDeliveryError, Mailer, get_mailer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sales", tags=["sales"])

sales_access = require_roles(["sales", "admin"])

RECENT_QUOTES = 5


async def current_partner(
    current_user: CurrentUser = Depends(sales_access),
    repo: CrmRepository = Depends(get_repository),
) -> SalesPartner:
    row = await repo.get_sales_partner_by_user(current_user.id)
    if not row:
        raise HTTPException(status_code=403, detail="Aucun profil commercial associé à ce compte")
    return SalesPartner(**row)


async def _own_prospect(repo: CrmRepository, partner: SalesPartner, prospect_id: str) -> Prospect:
    row = await repo.get_prospect(prospect_id)
    # another partner's prospect is reported as missing
    if not row or row["sales_partner_id"] != partner.id:
        raise HTTPException(status_code=404, detail="Prospect introuvable")
    return Prospect(**row)


async def _own_quote(repo: CrmRepository, partner: SalesPartner, quote_id: str) -> SalesQuote:
    row = await repo.get_quote(quote_id)
    if not row or row["sales_partner_id"] != partner.id:
        raise HTTPException(status_code=404, detail="Devis introuvable")
    return SalesQuote(**row)


def commission(amount: Decimal, rate: Decimal) -> Decimal:
    return to_cents(Decimal(amount) * Decimal(rate) / 100)


def build_quote_content(payload: SalesQuoteCreate) -> Dict[str, Any]:
    """Resolve the selected pack and add-ons against the catalog."""
    category = catalog.get_category(payload.category_id)
    if not category:
        raise HTTPException(status_code=400, detail="Catégorie inconnue")
    plan = catalog.get_plan(category, payload.plan_name)
    if not plan:
        raise HTTPException(status_code=400, detail="Formule inconnue pour cette catégorie")

    available = {a.id: a for a in catalog.addons_for(category.id)}
    unknown = [a for a in payload.addon_ids if a not in available]
    if unknown:
        raise HTTPException(status_code=400, detail=f"Options indisponibles : {', '.join(unknown)}")

    options = [
        {"id": a.id, "name": a.name, "price": a.price}
        for a in (available[i] for i in dict.fromkeys(payload.addon_ids))
    ]
    pack_price = catalog.parse_price(plan.price)
    is_custom = payload.custom_price is not None
    if pack_price is None and not is_custom:
        raise HTTPException(status_code=400, detail="Formule sur devis : un prix personnalisé est requis")
    base_amount = (pack_price or 0) + sum(o["price"] for o in options)
    final_amount = float(payload.custom_price) if is_custom else base_amount

    return {
        "category": category.id,
        "category_label": category.label,
        "selected_pack": {"name": plan.name, "price": pack_price},
        "selected_options": options,
        "base_amount": base_amount,
        "final_amount": final_amount,
        "is_custom_price": is_custom,
        "client_notes": payload.client_notes,
        "internal_notes": payload.internal_notes,
        "valid_until": (date.today() + timedelta(days=settings.QUOTE_VALIDITY_DAYS)).isoformat(),
    }


def quote_line_items(content: Dict[str, Any], amount: Decimal) -> List[LineItem]:
    pack = content.get("selected_pack") or {}
    options = content.get("selected_options") or []
    if content.get("is_custom_price"):
        # a negotiated price replaces the itemised catalog prices
        names = [f"Formule {pack.get('name', '')}".strip()] + [o["name"] for o in options]
        return [LineItem(description=" + ".join(names), quantity=1, unit_price=amount)]

    items = []
    if pack:
        label = content.get("category_label") or content.get("category", "")
        items.append(LineItem(description=f"{label} - Formule {pack['name']}", quantity=1, unit_price=pack["price"]))
    items.extend(LineItem(description=o["name"], quantity=1, unit_price=o["price"]) for o in options)
    return items


def document_client(prospect: Optional[Prospect]) -> DocumentClient:
    if prospect is None:
        return DocumentClient()
    name = prospect.full_name
    if prospect.company_name:
        name = f"{name} ({prospect.company_name})"
    city = " ".join(p for p in (prospect.postal_code, prospect.city) if p)
    address = "\n".join(p for p in (prospect.address, city) if p) or None
    return DocumentClient(name=name, email=prospect.email, address=address, phone=prospect.phone)


# ==============================
# DASHBOARD
# ==============================
@router.get("/dashboard", response_model=SalesDashboard)
async def sales_dashboard(
    partner: SalesPartner = Depends(current_partner),
    repo: CrmRepository = Depends(get_repository),
):
    prospects = [Prospect(**r) for r in await repo.list_prospects(partner.id)]
    quotes = [SalesQuote(**r) for r in await repo.list_quotes(partner.id)]
    names = {p.id: p.full_name for p in prospects}
    rate = partner.commission_rate if partner.commission_rate is not None else Decimal(
        str(settings.DEFAULT_COMMISSION_RATE)
    )

    signed = [q for q in quotes if q.status in SIGNED_STATUSES]
    pending = [q for q in quotes if q.status in PENDING_STATUSES]
    return SalesDashboard(
        prospects_count=len(prospects),
        quotes_count=len(quotes),
        quotes_accepted=len(signed),
        commission_rate=rate,
        total_commission=sum((commission(q.amount, rate) for q in signed), Decimal("0")),
        pending_commission=sum((commission(q.amount, rate) for q in pending), Decimal("0")),
        recent_quotes=quotes[:RECENT_QUOTES],
        signed_quotes=[
            SignedQuote(
                id=q.id,
                client_name=names.get(q.prospect_id, "Client"),
                total_amount=q.amount,
                commission_earned=commission(q.amount, rate),
                signed_at=q.created_at,
            )
            for q in signed
        ],
    )


# ==============================
# PROSPECTS
# ==============================
@router.get("/prospects", response_model=List[Prospect])
async def list_prospects(
    partner: SalesPartner = Depends(current_partner),
    repo: CrmRepository = Depends(get_repository),
):
    return [Prospect(**r) for r in await repo.list_prospects(partner.id)]


@router.get("/prospects/{prospect_id}", response_model=Prospect)
async def get_prospect(
    prospect_id: str,
    partner: SalesPartner = Depends(current_partner),
    repo: CrmRepository = Depends(get_repository),
):
    return await _own_prospect(repo, partner, prospect_id)


@router.post("/prospects", response_model=Prospect, status_code=status.HTTP_201_CREATED)
async def create_prospect(
    payload: ProspectCreate,
    partner: SalesPartner = Depends(current_partner),
    repo: CrmRepository = Depends(get_repository),
    bus: EventBus = Depends(get_event_bus),
):
    data = payload.model_dump()
    data["email"] = data["email"].strip().lower()
    row = await repo.create_prospect(partner.id, data)
    bus.publish(ChangeEvent("prospects", "insert", row["id"]))
    return Prospect(**row)


@router.put("/prospects/{prospect_id}", response_model=Prospect)
async def update_prospect(
    prospect_id: str,
    payload: ProspectUpdate,
    partner: SalesPartner = Depends(current_partner),
    repo: CrmRepository = Depends(get_repository),
    bus: EventBus = Depends(get_event_bus),
):
    await _own_prospect(repo, partner, prospect_id)
    row = await repo.update_prospect(prospect_id, payload.model_dump(exclude_unset=True))
    bus.publish(ChangeEvent("prospects", "update", prospect_id))
    return Prospect(**row)


@router.delete("/prospects/{prospect_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_prospect(
    prospect_id: str,
    partner: SalesPartner = Depends(current_partner),
    repo: CrmRepository = Depends(get_repository),
    bus: EventBus = Depends(get_event_bus),
):
    await _own_prospect(repo, partner, prospect_id)
    await repo.delete_prospect(prospect_id)
    bus.publish(ChangeEvent("prospects", "delete", prospect_id))


# ==============================
# QUOTES
# ==============================
@router.get("/quotes", response_model=List[SalesQuote])
async def list_quotes(
    partner: SalesPartner = Depends(current_partner),
    repo: CrmRepository = Depends(get_repository),
):
    return [SalesQuote(**r) for r in await repo.list_quotes(partner.id)]


@router.get("/quotes/{quote_id}", response_model=SalesQuote)
async def get_quote(
    quote_id: str,
    partner: SalesPartner = Depends(current_partner),
    repo: CrmRepository = Depends(get_repository),
):
    return await _own_quote(repo, partner, quote_id)


@router.post("/quotes", response_model=SalesQuote, status_code=status.HTTP_201_CREATED)
async def create_quote(
    payload: SalesQuoteCreate,
    partner: SalesPartner = Depends(current_partner),
    repo: CrmRepository = Depends(get_repository),
    bus: EventBus = Depends(get_event_bus),
):
    content = build_quote_content(payload)
    if payload.prospect_id:
        await _own_prospect(repo, partner, payload.prospect_id)

    try:
        row = await repo.create_quote({
            "sales_partner_id": partner.id,
            "prospect_id": payload.prospect_id,
            "amount": Decimal(str(content["final_amount"])),
            "status": "assigned" if payload.prospect_id else "draft",
            "content": content,
        })
    except Exception:
        logger.exception("Failed to store quote for partner %s", partner.id)
        raise HTTPException(status_code=500, detail="Erreur lors de la création du devis")

    bus.publish(ChangeEvent("quotes", "insert", row["id"]))
    logger.info("Partner %s created quote %s (%s)", partner.id, row.get("quote_number"), content["final_amount"])
    return SalesQuote(**row)


@router.patch("/quotes/{quote_id}/status", response_model=SalesQuote)
async def update_quote_status(
    quote_id: str,
    payload: SalesQuoteStatusUpdate,
    partner: SalesPartner = Depends(current_partner),
    repo: CrmRepository = Depends(get_repository),
    bus: EventBus = Depends(get_event_bus),
):
    await _own_quote(repo, partner, quote_id)
    row = await repo.update_quote_status(quote_id, payload.status)
    bus.publish(ChangeEvent("quotes", "update", quote_id))
    return SalesQuote(**row)


async def quote_document(repo: CrmRepository, quote: SalesQuote) -> Tuple[DocumentInput, Optional[Prospect]]:
    prospect_row = await repo.get_prospect(quote.prospect_id) if quote.prospect_id else None
    prospect = Prospect(**prospect_row) if prospect_row else None

    valid_until = quote.content.get("valid_until")
    doc = DocumentInput(
        kind="quote",
        number=document_reference(quote.quote_number, quote.id),
        client=document_client(prospect),
        items=quote_line_items(quote.content, quote.amount),
        tax_rate=Decimal(str(settings.DEFAULT_TAX_RATE)),
        issue_date=quote.created_at.date(),
        valid_until=date.fromisoformat(valid_until) if valid_until else None,
        notes=quote.content.get("client_notes"),
    )
    return doc, prospect


def _render(doc: DocumentInput) -> bytes:
    try:
        return render_document(doc)
    except DocumentValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/quotes/{quote_id}/pdf")
async def quote_pdf(
    quote_id: str,
    partner: SalesPartner = Depends(current_partner),
    repo: CrmRepository = Depends(get_repository),
):
    quote = await _own_quote(repo, partner, quote_id)
    doc, _ = await quote_document(repo, quote)
    pdf = _render(doc)

    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{document_filename(doc)}"'},
    )


@router.post("/quotes/{quote_id}/send", response_model=SalesQuote)
async def send_quote(
    quote_id: str,
    partner: SalesPartner = Depends(current_partner),
    repo: CrmRepository = Depends(get_repository),
    mailer: Mailer = Depends(get_mailer),
    bus: EventBus = Depends(get_event_bus),
):
    """E-mail the quote PDF to its prospect; drafts and assigned quotes become 'sent'."""
    quote = await _own_quote(repo, partner, quote_id)
    doc, prospect = await quote_document(repo, quote)
    pdf = _render(doc)
    if prospect is None or not prospect.email:
        raise HTTPException(status_code=400, detail="Adresse e-mail du client manquante")

    try:
        await mailer.send_quote_document(prospect.email, prospect.full_name, doc.number, pdf, document_filename(doc))
    except EmailDeliveryError:
        raise HTTPException(status_code=502, detail="Échec de l'envoi du devis par e-mail")

    if quote.status not in UNSENT_STATUSES:
        return quote
    row = await repo.update_quote_status(quote_id, "sent")
    bus.publish(ChangeEvent("quotes", "update", quote_id))
    logger.info("Quote %s sent to %s", doc.number, prospect.email)
    return SalesQuote(**row)
