import logging
from datetime import date
from decimal import Decimal
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from ..core.events import ChangeEvent, EventBus, get_event_bus
from ..core.security import require_roles
from ..db.repository import CrmRepository, get_repository
from ..schemas.auth import CurrentUser
from ..schemas.crm import (
    Opportunity,
    OpportunityCreate,
    OpportunityStageUpdate,
    OpportunityUpdate,
    PipelineStats,
)
from ..services.documents import to_cents
from ..services.workflow import (
    STAGE_PROBABILITY,
    InvalidTransitionError,
    check_opportunity_transition,
    is_closed_stage,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/opportunities", tags=["opportunities"])

admin_only = require_roles(["admin"])


def pipeline_stats(opportunities: List[Opportunity]) -> PipelineStats:
    zero = Decimal("0")
    open_deals = [o for o in opportunities if not is_closed_stage(o.stage)]
    won = [o for o in opportunities if o.stage == "closed_won"]
    lost = [o for o in opportunities if o.stage == "closed_lost"]
    closed = len(won) + len(lost)

    won_value = sum((o.amount or zero for o in won), zero)
    return PipelineStats(
        total_opportunities=len(opportunities),
        total_value=to_cents(sum((o.amount or zero for o in open_deals), zero)),
        weighted_value=to_cents(sum(((o.amount or zero) * o.probability / 100 for o in open_deals), zero)),
        won_count=len(won),
        won_value=to_cents(won_value),
        lost_count=len(lost),
        avg_deal_size=to_cents(won_value / len(won)) if won else zero,
        conversion_rate=round(len(won) / closed * 100, 1) if closed else 0.0,
    )


async def _get_or_404(repo: CrmRepository, opportunity_id: str) -> Opportunity:
    row = await repo.get_opportunity(opportunity_id)
    if not row:
        raise HTTPException(status_code=404, detail="Opportunité introuvable")
    return Opportunity(**row)


@router.get("", response_model=List[Opportunity])
async def list_opportunities(
    current_user: CurrentUser = Depends(admin_only),
    repo: CrmRepository = Depends(get_repository),
):
    return [Opportunity(**r) for r in await repo.list_opportunities()]


@router.get("/pipeline", response_model=PipelineStats)
async def get_pipeline(
    current_user: CurrentUser = Depends(admin_only),
    repo: CrmRepository = Depends(get_repository),
):
    return pipeline_stats([Opportunity(**r) for r in await repo.list_opportunities()])


@router.get("/{opportunity_id}", response_model=Opportunity)
async def get_opportunity(
    opportunity_id: str,
    current_user: CurrentUser = Depends(admin_only),
    repo: CrmRepository = Depends(get_repository),
):
    return await _get_or_404(repo, opportunity_id)


@router.post("", response_model=Opportunity, status_code=status.HTTP_201_CREATED)
async def create_opportunity(
    payload: OpportunityCreate,
    current_user: CurrentUser = Depends(admin_only),
    repo: CrmRepository = Depends(get_repository),
    bus: EventBus = Depends(get_event_bus),
):
    data = payload.model_dump()
    data["assigned_to"] = data["assigned_to"] or current_user.id
    row = await repo.create_opportunity({**data, "stage": "prospecting"})
    bus.publish(ChangeEvent("opportunities", "insert", row["id"]))
    return Opportunity(**row)


@router.put("/{opportunity_id}", response_model=Opportunity)
async def update_opportunity(
    opportunity_id: str,
    payload: OpportunityUpdate,
    current_user: CurrentUser = Depends(admin_only),
    repo: CrmRepository = Depends(get_repository),
    bus: EventBus = Depends(get_event_bus),
):
    await _get_or_404(repo, opportunity_id)
    row = await repo.update_opportunity(opportunity_id, payload.model_dump(exclude_unset=True))
    bus.publish(ChangeEvent("opportunities", "update", opportunity_id))
    return Opportunity(**row)


@router.patch("/{opportunity_id}/stage", response_model=Opportunity)
async def move_opportunity(
    opportunity_id: str,
    payload: OpportunityStageUpdate,
    current_user: CurrentUser = Depends(admin_only),
    repo: CrmRepository = Depends(get_repository),
    bus: EventBus = Depends(get_event_bus),
):
    current = await _get_or_404(repo, opportunity_id)
    try:
        changed = check_opportunity_transition(current.stage, payload.stage)
    except InvalidTransitionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not changed:
        return current

    fields = {"stage": payload.stage, "probability": STAGE_PROBABILITY[payload.stage]}
    if payload.stage == "closed_lost":
        if not (payload.lost_reason or "").strip():
            raise HTTPException(status_code=400, detail="Merci d'indiquer la raison de la perte")
        fields["lost_reason"] = payload.lost_reason.strip()
    if is_closed_stage(payload.stage):
        fields["actual_close_date"] = date.today()

    row = await repo.update_opportunity(opportunity_id, fields)
    bus.publish(ChangeEvent("opportunities", "update", opportunity_id))
    logger.info("Opportunity %s: %s -> %s", opportunity_id, current.stage, payload.stage)
    return Opportunity(**row)


@router.delete("/{opportunity_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_opportunity(
    opportunity_id: str,
    current_user: CurrentUser = Depends(admin_only),
    repo: CrmRepository = Depends(get_repository),
    bus: EventBus = Depends(get_event_bus),
):
    if not await repo.delete_opportunity(opportunity_id):
        raise HTTPException(status_code=404, detail="Opportunité introuvable")
    bus.publish(ChangeEvent("opportunities", "delete", opportunity_id))
