from fastapi import APIRouter, Depends, Response

from taskvault.models.tasks import CreateTaskRequest, Task, UpdateTaskRequest
from taskvault.security import require_owner
from taskvault.services import tasks as tasks_service

router = APIRouter(prefix="/tasks", tags=["tasks"])


# Preflight requests carry no credentials.

@router.options("")
@router.options("/{path:path}")
def preflight(path: str = "") -> Response:
    return Response(status_code=200)


@router.get("")
def list_tasks(owner_id: str = Depends(require_owner)) -> list[Task]:
    return tasks_service.list_tasks(owner_id)


@router.post("", status_code=201)
def create_task(request: CreateTaskRequest | None = None, owner_id: str = Depends(require_owner)) -> Task:
    request = request or CreateTaskRequest()
    return tasks_service.create_task(owner_id, request.title, request.description, request.status)


@router.put("/{task_id}")
def update_task(task_id: str, request: UpdateTaskRequest | None = None, owner_id: str = Depends(require_owner)) -> Task:
    fields = request.supplied_fields() if request else {}
    return tasks_service.update_task(owner_id, task_id, fields)


@router.delete("/{task_id}", status_code=204)
def delete_task(task_id: str, owner_id: str = Depends(require_owner)) -> Response:
    tasks_service.delete_task(owner_id, task_id)
    return Response(status_code=204)
