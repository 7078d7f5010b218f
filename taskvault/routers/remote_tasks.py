from fastapi import APIRouter

from taskvault.models.tasks import CreateTaskRequest, Task, UpdateTaskRequest
from taskvault.services import tasks_client

router = APIRouter(prefix="/api/tasks", tags=["tasks"])


@router.get("")
def list_tasks() -> list[Task]:
    return tasks_client.list_tasks()


@router.post("", status_code=201)
def create_task(request: CreateTaskRequest) -> Task:
    return tasks_client.create_task(request.title or "", request.description or "", request.status)


@router.put("/{task_id}")
def update_task(task_id: str, request: UpdateTaskRequest) -> Task:
    return tasks_client.update_task(task_id, request.supplied_fields())


@router.delete("/{task_id}", status_code=204)
def delete_task(task_id: str):
    tasks_client.delete_task(task_id)
