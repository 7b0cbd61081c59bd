# routers/tasks.py
from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from auth.deps import get_current_user
from config import settings
from db.database import get_db
from repositories.task_repository import TaskRepository
from schemas.task import (
    Priority,
    TaskCreate,
    TaskFilters,
    TaskRecord,
    TaskSort,
    TaskStatus,
    TaskUpdate,
)
from services.task_service import TaskService

from datetime import date
from uuid import UUID
from typing import List, Optional

router = APIRouter(prefix="/tasks", tags=["Tasks"])


# -------------------------
# dependencies
# -------------------------
def get_task_service(db: Session = Depends(get_db)) -> TaskService:
    repository = TaskRepository(db, lock_timeout_ms=settings.lock_timeout_ms)
    return TaskService(repository, complete_attempts=settings.complete_tx_attempts)


# -------------------------
# endpoints
# -------------------------
@router.get("/", response_model=List[TaskRecord])
def get_tasks(
    priority: Optional[int] = Query(None, ge=1, le=5),
    task_status: Optional[TaskStatus] = Query(None, alias="status"),
    title: Optional[str] = Query(None, max_length=255),
    description: Optional[str] = Query(None),
    due_date: Optional[date] = Query(None, description="YYYY-MM-DD"),
    completed_at: Optional[date] = Query(None, description="YYYY-MM-DD"),
    sort: Optional[str] = Query(None, description="例: created_at:desc,priority:asc"),
    service: TaskService = Depends(get_task_service),
    user=Depends(get_current_user),
):
    filters = TaskFilters(
        priority=Priority(priority) if priority is not None else None,
        status=task_status,
        title=title,
        description=description,
        due_date=due_date,
        completed_at=completed_at,
    )
    return service.list_tasks(user.user_id, filters, TaskSort.parse(sort))


@router.post("/", response_model=TaskRecord, status_code=status.HTTP_201_CREATED)
def create_task(
    task: TaskCreate,
    service: TaskService = Depends(get_task_service),
    user=Depends(get_current_user),
):
    return service.create_task(user.user_id, task)


@router.get("/{task_id}", response_model=TaskRecord)
def get_task(
    task_id: UUID,
    service: TaskService = Depends(get_task_service),
    user=Depends(get_current_user),
):
    return service.get_task(user.user_id, task_id)


@router.put("/{task_id}", response_model=TaskRecord)
@router.patch("/{task_id}", response_model=TaskRecord)
def update_task(
    task_id: UUID,
    task_update: TaskUpdate,
    service: TaskService = Depends(get_task_service),
    user=Depends(get_current_user),
):
    return service.update_task(user.user_id, task_id, task_update)


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_task(
    task_id: UUID,
    service: TaskService = Depends(get_task_service),
    user=Depends(get_current_user),
):
    service.delete_task(user.user_id, task_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{task_id}/complete", response_model=TaskRecord)
def complete_task(
    task_id: UUID,
    service: TaskService = Depends(get_task_service),
    user=Depends(get_current_user),
):
    return service.complete_task(user.user_id, task_id)
