import logging
from datetime import date
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from ..core.events import ChangeEvent, EventBus, get_event_bus
from ..core.security import require_roles
from ..db.repository import CrmRepository, get_repository
from ..schemas.auth import CurrentUser
from ..schemas.crm import Project, ProjectCreate, ProjectStatusUpdate, ProjectUpdate
from ..services.workflow import InvalidTransitionError, check_project_transition

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/projects", tags=["projects"])

admin_only = require_roles(["admin"])


async def _get_or_404(repo: CrmRepository, project_id: str) -> Project:
    row = await repo.get_project(project_id)
    if not row:
        raise HTTPException(status_code=404, detail="Projet introuvable")
    return Project(**row)


@router.get("", response_model=List[Project])
async def list_projects(
    current_user: CurrentUser = Depends(admin_only),
    repo: CrmRepository = Depends(get_repository),
):
    return [Project(**r) for r in await repo.list_projects()]


@router.get("/{project_id}", response_model=Project)
async def get_project(
    project_id: str,
    current_user: CurrentUser = Depends(admin_only),
    repo: CrmRepository = Depends(get_repository),
):
    return await _get_or_404(repo, project_id)


@router.post("", response_model=Project, status_code=status.HTTP_201_CREATED)
async def create_project(
    payload: ProjectCreate,
    current_user: CurrentUser = Depends(admin_only),
    repo: CrmRepository = Depends(get_repository),
    bus: EventBus = Depends(get_event_bus),
):
    if payload.start_date and payload.expected_end_date and payload.expected_end_date < payload.start_date:
        raise HTTPException(status_code=400, detail="La date de fin doit suivre la date de début")

    row = await repo.create_project({**payload.model_dump(), "status": "planned"})
    bus.publish(ChangeEvent("projects", "insert", row["id"]))
    return Project(**row)


@router.put("/{project_id}", response_model=Project)
async def update_project(
    project_id: str,
    payload: ProjectUpdate,
    current_user: CurrentUser = Depends(admin_only),
    repo: CrmRepository = Depends(get_repository),
    bus: EventBus = Depends(get_event_bus),
):
    await _get_or_404(repo, project_id)
    row = await repo.update_project(project_id, payload.model_dump(exclude_unset=True))
    bus.publish(ChangeEvent("projects", "update", project_id))
    return Project(**row)


@router.patch("/{project_id}/status", response_model=Project)
async def update_project_status(
    project_id: str,
    payload: ProjectStatusUpdate,
    current_user: CurrentUser = Depends(admin_only),
    repo: CrmRepository = Depends(get_repository),
    bus: EventBus = Depends(get_event_bus),
):
    current = await _get_or_404(repo, project_id)
    try:
        changed = check_project_transition(current.status, payload.status)
    except InvalidTransitionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not changed:
        return current

    fields = {"status": payload.status}
    if payload.status == "in_progress" and current.start_date is None:
        fields["start_date"] = date.today()
    if payload.status == "delivered":
        fields["actual_end_date"] = date.today()

    row = await repo.update_project(project_id, fields)
    bus.publish(ChangeEvent("projects", "update", project_id))
    logger.info("Project %s: %s -> %s", project_id, current.status, payload.status)
    return Project(**row)


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_project(
    project_id: str,
    current_user: CurrentUser = Depends(admin_only),
    repo: CrmRepository = Depends(get_repository),
    bus: EventBus = Depends(get_event_bus),
):
    if not await repo.delete_project(project_id):
        raise HTTPException(status_code=404, detail="Projet introuvable")
    bus.publish(ChangeEvent("projects", "delete", project_id))
