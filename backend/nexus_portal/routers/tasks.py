from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from ..core.events import ChangeEvent, EventBus, get_event_bus
from ..core.security import require_roles
from ..db.repository import CrmRepository, get_repository
from ..schemas.auth import CurrentUser
from ..schemas.crm import Task, TaskCreate, TaskMove

router = APIRouter(prefix="/admin/tasks", tags=["tasks"])

admin_only = require_roles(["admin"])


@router.get("", response_model=List[Task])
async def list_tasks(
    current_user: CurrentUser = Depends(admin_only),
    repo: CrmRepository = Depends(get_repository),
):
    return [Task(**r) for r in await repo.list_tasks()]


@router.post("", response_model=Task, status_code=status.HTTP_201_CREATED)
async def create_task(
    payload: TaskCreate,
    current_user: CurrentUser = Depends(admin_only),
    repo: CrmRepository = Depends(get_repository),
    bus: EventBus = Depends(get_event_bus),
):
    content = payload.content.strip()
    if not content:
        raise HTTPException(status_code=400, detail="La tâche est vide")
    row = await repo.create_task(content, payload.column_id)
    bus.publish(ChangeEvent("admin_tasks", "insert", row["id"]))
    return Task(**row)


@router.patch("/{task_id}", response_model=Task)
async def move_task(
    task_id: str,
    payload: TaskMove,
    current_user: CurrentUser = Depends(admin_only),
    repo: CrmRepository = Depends(get_repository),
    bus: EventBus = Depends(get_event_bus),
):
    row = await repo.move_task(task_id, payload.column_id)
    if not row:
        raise HTTPException(status_code=404, detail="Tâche introuvable")
    bus.publish(ChangeEvent("admin_tasks", "update", task_id))
    return Task(**row)


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(
    task_id: str,
    current_user: CurrentUser = Depends(admin_only),
    repo: CrmRepository = Depends(get_repository),
    bus: EventBus = Depends(get_event_bus),
):
    if not await repo.delete_task(task_id):
        raise HTTPException(status_code=404, detail="Tâche introuvable")
    bus.publish(ChangeEvent("admin_tasks", "delete", task_id))
