from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class TaskStatus(str, Enum):
    TODO = "todo"
    IN_PROGRESS = "in-progress"
    DONE = "done"


ALLOWED_STATUSES = [s.value for s in TaskStatus]
DEFAULT_TITLE = "Untitled task"


class Task(BaseModel):
    """A stored task. Serialized with camelCase keys, which are also the DynamoDB attribute names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    owner_id: str
    task_id: str
    title: str
    description: str = ""
    status: TaskStatus = TaskStatus.TODO
    created_at: str
    updated_at: str

    def to_item(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


# status is left untyped on requests so an out-of-range value can be
# reported with the allowed set instead of a generic validation error.

class CreateTaskRequest(BaseModel):
    title: str | None = None
    description: str | None = None
    status: Any = None


class UpdateTaskRequest(BaseModel):
    title: str | None = None
    description: str | None = None
    status: Any = None

    def supplied_fields(self) -> dict:
        """Fields the caller actually sent, including ones sent as null."""
        return self.model_dump(exclude_unset=True)
