import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from ..core.config import settings
from ..core.events import ChangeEvent, EventBus, get_event_bus
from ..db.repository import CrmRepository, get_repository
from ..schemas.ai import ChatRequest
from ..schemas.leads import CallBooking, CallBookingCreate, QuoteRequest, QuoteRequestCreate
from ..services import catalog, wizard
from ..services.assistant import AssistantClient, AssistantError, build_chat_messages, event_stream, get_assistant
from ..services.email_service import EmailDeliveryError, Mailer, get_mailer
from ..services.estimator import QuoteEstimate, QuoteFormData, confidence_label, estimate_quote, format_price
from ..services.sse import SSE_HEADERS

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/public", tags=["public"])


# ==============================
# LEAD FORMS
# ==============================
@router.post("/quote-requests", response_model=QuoteRequest, status_code=status.HTTP_201_CREATED)
async def submit_quote_request(
    payload: QuoteRequestCreate,
    repo: CrmRepository = Depends(get_repository),
    bus: EventBus = Depends(get_event_bus),
    mailer: Mailer = Depends(get_mailer),
):
    if not payload.consent_given:
        raise HTTPException(status_code=400, detail="Consentement requis")

    try:
        row = await repo.create_quote_request(payload.model_dump())
    except Exception:
        logger.exception("Failed to store quote request from %s", payload.email)
        raise HTTPException(status_code=500, detail="Erreur lors de l'enregistrement de la demande")

    quote = QuoteRequest(**row)
    bus.publish(ChangeEvent("quote_requests", "insert", quote.id))

    # the request is stored either way; a mail outage must not lose the lead
    try:
        await mailer.send_quote_request_emails(quote)
    except EmailDeliveryError as e:
        logger.error("Quote request %s stored but e-mails failed: %s", quote.id, e)

    return quote


@router.post("/call-bookings", response_model=CallBooking, status_code=status.HTTP_201_CREATED)
async def book_call(
    payload: CallBookingCreate,
    repo: CrmRepository = Depends(get_repository),
    bus: EventBus = Depends(get_event_bus),
    mailer: Mailer = Depends(get_mailer),
):
    try:
        row = await repo.create_call_booking(payload.model_dump())
    except Exception:
        logger.exception("Failed to store call booking for %s", payload.email)
        raise HTTPException(status_code=500, detail="Erreur lors de la réservation")

    booking = CallBooking(**row)
    bus.publish(ChangeEvent("call_bookings", "insert", booking.id))

    try:
        await mailer.send_call_booking_emails(booking)
    except EmailDeliveryError as e:
        logger.error("Call booking %s stored but e-mails failed: %s", booking.id, e)

    return booking


async def cancel_booking(booking_id: str, repo: CrmRepository, bus: EventBus, mailer: Mailer) -> CallBooking:
    """Shared by the public cancel link and the admin cancel action."""
    row = await repo.get_call_booking(booking_id)
    if not row:
        raise HTTPException(status_code=404, detail="Rendez-vous introuvable")
    if row["status"] == "cancelled":
        raise HTTPException(status_code=409, detail="Ce rendez-vous est déjà annulé")

    booking = CallBooking(**await repo.update_call_booking_status(booking_id, "cancelled"))
    bus.publish(ChangeEvent("call_bookings", "update", booking.id))

    try:
        await mailer.send_call_cancellation_emails(booking)
    except EmailDeliveryError as e:
        logger.error("Booking %s cancelled but e-mails failed: %s", booking.id, e)
    return booking


@router.post("/call-bookings/{booking_id}/cancel", response_model=CallBooking)
async def cancel_call(
    booking_id: str,
    repo: CrmRepository = Depends(get_repository),
    bus: EventBus = Depends(get_event_bus),
    mailer: Mailer = Depends(get_mailer),
):
    return await cancel_booking(booking_id, repo, bus, mailer)


# ==============================
# PRICING CATALOG
# ==============================
@router.get("/pricing", response_model=List[catalog.Category])
async def list_pricing():
    return catalog.PRICING


@router.get("/pricing/{category_id}", response_model=Dict[str, Any])
async def get_pricing(category_id: str):
    category = catalog.get_category(category_id)
    if not category:
        raise HTTPException(status_code=404, detail="Catégorie introuvable")
    return {"category": category, "addons": catalog.addons_for(category_id)}


# ==============================
# QUOTE WIZARD
# ==============================
@router.get("/wizard/{service_type}", response_model=Dict[str, Any])
async def get_wizard(service_type: str):
    resolved = wizard.ServiceType.parse(service_type) or wizard.DEFAULT_SERVICE_TYPE
    steps = wizard.get_wizard_config(resolved)
    return {
        "service_type": resolved.value,
        "total_steps": len(steps),
        "steps": [step._asdict() for step in steps],
        "options": {step.id: wizard.STEP_OPTIONS[step.id] for step in steps if step.id in wizard.STEP_OPTIONS},
    }


@router.post("/wizard/estimate", response_model=Dict[str, Any])
async def estimate(form: QuoteFormData):
    result: QuoteEstimate = estimate_quote(form)
    return {
        **result.model_dump(),
        "confidence_label": confidence_label(result.confidence),
        "display": {
            "min": format_price(result.min),
            "max": format_price(result.max),
            "recommended": format_price(result.recommended),
        },
    }


# ==============================
# SITE CHATBOT
# ==============================
@router.post("/chatbot")
async def chatbot(
    payload: ChatRequest,
    assistant: AssistantClient = Depends(get_assistant),
):
    if payload.messages[-1].role != "user":
        raise HTTPException(status_code=400, detail="Le dernier message doit venir de l'utilisateur")

    try:
        tokens = await assistant.open_stream(
            build_chat_messages(payload),
            temperature=settings.CHATBOT_TEMPERATURE,
            max_tokens=settings.CHATBOT_MAX_TOKENS,
        )
    except AssistantError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    return StreamingResponse(
        event_stream(tokens),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
        background=BackgroundTask(tokens.aclose),
    )
