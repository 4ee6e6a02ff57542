import logging
from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from ..core.config import settings
from ..core.events import WATCHED_TABLES, ChangeEvent, EventBus, get_event_bus
from ..core.security import require_roles
from ..db.repository import CrmRepository, get_repository
from ..schemas.ai import AssistantRequest
from ..schemas.auth import CurrentUser, InviteRequest, InviteResponse
from ..schemas.leads import (
    CallBooking,
    CallBookingNote,
    CallBookingNoteUpdate,
    Client,
    ClientStatus,
    ClientStatusUpdate,
    QuoteRequest,
    QuoteRequestStatusUpdate,
)
from ..services.assistant import AssistantClient, AssistantError, build_messages, event_stream, get_assistant
from ..services.auth_provider import AuthProvider, AuthProviderError, get_auth_provider
from ..services.clients import aggregate_clients, client_stats, filter_clients, find_client
from ..services.email_service import Mailer, get_mailer
from ..services.exports import clients_csv, export_filename, quote_requests_csv
from ..services.sse import SSE_HEADERS, encode_event
from .public import cancel_booking

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])

admin_only = require_roles(["admin"])


async def load_clients(repo: CrmRepository) -> Dict[str, Any]:
    """Fetch everything the dashboard shows and derive the client list."""
    quotes = [QuoteRequest(**r) for r in await repo.list_quote_requests(settings.LEADS_PAGE_SIZE)]
    bookings = [CallBooking(**r) for r in await repo.list_call_bookings(settings.LEADS_PAGE_SIZE)]
    statuses = [ClientStatus(**r) for r in await repo.list_client_statuses(settings.STATUSES_PAGE_SIZE)]
    partners = {p["id"]: p.get("full_name") or p.get("email") for p in await repo.list_sales_partners()}
    return {
        "quotes": quotes,
        "bookings": bookings,
        "statuses": statuses,
        "clients": aggregate_clients(quotes, bookings, statuses, partners),
    }


# ==============================
# DASHBOARD AND CLIENTS
# ==============================
@router.get("/dashboard", response_model=Dict[str, Any])
async def dashboard(
    current_user: CurrentUser = Depends(admin_only),
    repo: CrmRepository = Depends(get_repository),
):
    try:
        data = await load_clients(repo)
        notes = [CallBookingNote(**n) for n in await repo.list_call_notes()]
    except Exception:
        logger.exception("Dashboard load failed")
        raise HTTPException(status_code=500, detail="Erreur lors du chargement du tableau de bord")

    return {
        "quote_requests": data["quotes"],
        "call_bookings": data["bookings"],
        "client_statuses": data["statuses"],
        "call_notes": {n.call_booking_id: n for n in notes},
        "clients": data["clients"],
        "stats": client_stats(data["clients"]),
        "pending_quotes": sum(1 for q in data["quotes"] if q.status == "pending"),
        "upcoming_calls": sum(1 for b in data["bookings"] if b.status in ("pending", "confirmed")),
    }


@router.get("/clients", response_model=List[Client])
async def list_clients(
    search: Optional[str] = Query(None, max_length=200),
    current_user: CurrentUser = Depends(admin_only),
    repo: CrmRepository = Depends(get_repository),
):
    data = await load_clients(repo)
    return filter_clients(data["clients"], search)


@router.get("/clients/{email}", response_model=Client)
async def get_client(
    email: str,
    current_user: CurrentUser = Depends(admin_only),
    repo: CrmRepository = Depends(get_repository),
):
    client = find_client((await load_clients(repo))["clients"], email)
    if not client:
        raise HTTPException(status_code=404, detail="Client introuvable")
    return client


@router.put("/clients/{email}/status", response_model=ClientStatus)
async def set_client_status(
    email: str,
    payload: ClientStatusUpdate,
    current_user: CurrentUser = Depends(admin_only),
    repo: CrmRepository = Depends(get_repository),
    bus: EventBus = Depends(get_event_bus),
):
    row = await repo.upsert_client_status(email.strip().lower(), payload.status, payload.notes)
    bus.publish(ChangeEvent("client_statuses", "update", row["client_email"]))
    logger.info("Client %s moved to %s by %s", row["client_email"], payload.status, current_user.id)
    return ClientStatus(**row)


# ==============================
# CSV EXPORTS
# ==============================
def _csv_response(content: str, name: str) -> Response:
    return Response(
        content=content.encode("utf-8"),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{export_filename(name, date.today())}"'},
    )


@router.get("/exports/quote-requests")
async def export_quote_requests(
    current_user: CurrentUser = Depends(admin_only),
    repo: CrmRepository = Depends(get_repository),
):
    quotes = [QuoteRequest(**r) for r in await repo.list_quote_requests(settings.LEADS_PAGE_SIZE)]
    return _csv_response(quote_requests_csv(quotes), "export-quotes")


@router.get("/exports/clients")
async def export_clients(
    search: Optional[str] = Query(None, max_length=200),
    current_user: CurrentUser = Depends(admin_only),
    repo: CrmRepository = Depends(get_repository),
):
    clients = filter_clients((await load_clients(repo))["clients"], search)
    return _csv_response(clients_csv(clients), "export-clients")


# ==============================
# QUOTE REQUESTS
# ==============================
@router.patch("/quote-requests/{quote_id}/status", response_model=QuoteRequest)
async def update_quote_request_status(
    quote_id: str,
    payload: QuoteRequestStatusUpdate,
    current_user: CurrentUser = Depends(admin_only),
    repo: CrmRepository = Depends(get_repository),
    bus: EventBus = Depends(get_event_bus),
):
    row = await repo.update_quote_request_status(quote_id, payload.status)
    if not row:
        raise HTTPException(status_code=404, detail="Demande de devis introuvable")
    bus.publish(ChangeEvent("quote_requests", "update", quote_id))
    return QuoteRequest(**row)


@router.delete("/quote-requests/{quote_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_quote_request(
    quote_id: str,
    current_user: CurrentUser = Depends(admin_only),
    repo: CrmRepository = Depends(get_repository),
    bus: EventBus = Depends(get_event_bus),
):
    if not await repo.delete_quote_request(quote_id):
        raise HTTPException(status_code=404, detail="Demande de devis introuvable")
    bus.publish(ChangeEvent("quote_requests", "delete", quote_id))


# ==============================
# CALL BOOKINGS
# ==============================
@router.get("/call-bookings", response_model=List[CallBooking])
async def list_call_bookings(
    current_user: CurrentUser = Depends(admin_only),
    repo: CrmRepository = Depends(get_repository),
):
    return [CallBooking(**r) for r in await repo.list_call_bookings(settings.LEADS_PAGE_SIZE)]


@router.put("/call-bookings/{booking_id}/notes", response_model=CallBookingNote)
async def save_call_notes(
    booking_id: str,
    payload: CallBookingNoteUpdate,
    current_user: CurrentUser = Depends(admin_only),
    repo: CrmRepository = Depends(get_repository),
    bus: EventBus = Depends(get_event_bus),
):
    if not await repo.get_call_booking(booking_id):
        raise HTTPException(status_code=404, detail="Rendez-vous introuvable")
    row = await repo.upsert_call_note(booking_id, payload.model_dump())
    bus.publish(ChangeEvent("call_booking_notes", "update", booking_id))
    return CallBookingNote(**row)


@router.post("/call-bookings/{booking_id}/cancel", response_model=CallBooking)
async def admin_cancel_call(
    booking_id: str,
    current_user: CurrentUser = Depends(admin_only),
    repo: CrmRepository = Depends(get_repository),
    bus: EventBus = Depends(get_event_bus),
    mailer: Mailer = Depends(get_mailer),
):
    return await cancel_booking(booking_id, repo, bus, mailer)


@router.delete("/call-bookings/{booking_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_call_booking(
    booking_id: str,
    current_user: CurrentUser = Depends(admin_only),
    repo: CrmRepository = Depends(get_repository),
    bus: EventBus = Depends(get_event_bus),
):
    if not await repo.delete_call_booking(booking_id):
        raise HTTPException(status_code=404, detail="Rendez-vous introuvable")
    bus.publish(ChangeEvent("call_bookings", "delete", booking_id))


# ==============================
# TEAM
# ==============================
@router.post("/users/invite", response_model=InviteResponse, status_code=status.HTTP_201_CREATED)
async def invite_user(
    payload: InviteRequest,
    current_user: CurrentUser = Depends(admin_only),
    repo: CrmRepository = Depends(get_repository),
    provider: AuthProvider = Depends(get_auth_provider),
):
    try:
        user_id = await provider.invite_user(
            payload.email,
            {"full_name": payload.full_name, "role": payload.role},
            redirect_to=f"{settings.SITE_URL}/auth/callback",
        )
    except AuthProviderError as e:
        raise HTTPException(status_code=502, detail=str(e))

    await repo.set_user_role(user_id, payload.role)
    if payload.role == "sales":
        rate = payload.commission_rate if payload.commission_rate is not None else settings.DEFAULT_COMMISSION_RATE
        await repo.create_sales_partner(user_id, payload.email, payload.full_name, rate)
    logger.info("%s invited %s as %s", current_user.id, payload.email, payload.role)
    return InviteResponse(user_id=user_id, email=payload.email, role=payload.role)


# ==============================
# REALTIME CHANGES
# ==============================
@router.get("/events")
async def change_events(
    request: Request,
    tables: Optional[str] = Query(None, description="Comma separated table names"),
    current_user: CurrentUser = Depends(admin_only),
    bus: EventBus = Depends(get_event_bus),
):
    wanted = {t.strip() for t in tables.split(",") if t.strip() in WATCHED_TABLES} if tables else None

    async def stream():
        async for event in bus.subscribe(wanted, heartbeat=15.0):
            if await request.is_disconnected():
                break
            if event is None:
                yield ": ping\n\n"
            else:
                yield encode_event(event.to_dict())

    return StreamingResponse(stream(), media_type="text/event-stream", headers=SSE_HEADERS)


# ==============================
# AI ASSISTANT
# ==============================
@router.post("/ai-assistant")
async def ai_assistant(
    payload: AssistantRequest,
    current_user: CurrentUser = Depends(admin_only),
    assistant: AssistantClient = Depends(get_assistant),
):
    try:
        tokens = await assistant.open_stream(build_messages(payload))
    except AssistantError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    return StreamingResponse(
        event_stream(tokens),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
        background=BackgroundTask(tokens.aclose),
    )
