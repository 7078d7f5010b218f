import logging
import uuid
from datetime import datetime, timezone

from boto3.dynamodb.conditions import Key
from botocore.exceptions import BotoCoreError, ClientError

from taskvault.dynamo import get_table
from taskvault.exceptions import NoUpdatableFieldsError, StoreError, TaskNotFoundError
from taskvault.models.tasks import ALLOWED_STATUSES, DEFAULT_TITLE, Task, TaskStatus
from taskvault.services.update_expression import build_update

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    # Millisecond UTC timestamps with a Z suffix sort lexicographically.
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _handle_store_error(e: Exception, action: str):
    raise StoreError(f"DynamoDB {action} failed: {e}") from e


def list_tasks(owner_id: str) -> list[Task]:
    """Return every task stored under the owner. Order is not guaranteed."""
    table = get_table()
    kwargs = {"KeyConditionExpression": Key("ownerId").eq(owner_id)}
    items: list[dict] = []
    try:
        while True:
            result = table.query(**kwargs)
            items.extend(result.get("Items", []))
            last_key = result.get("LastEvaluatedKey")
            if not last_key:
                break
            kwargs["ExclusiveStartKey"] = last_key
    except (ClientError, BotoCoreError) as e:
        _handle_store_error(e, "query")
    logger.debug("Listed %d tasks for owner %s", len(items), owner_id)
    return [Task.model_validate(item) for item in items]


def create_task(
    owner_id: str,
    title: str | None = None,
    description: str | None = None,
    status: str | None = None,
) -> Task:
    """Create a task with server-assigned id and timestamps.

    An absent or unknown status falls back to ``todo`` instead of failing.
    """
    now = _now_iso()
    task = Task(
        owner_id=owner_id,
        task_id=str(uuid.uuid4()),
        title=title or DEFAULT_TITLE,
        description=description or "",
        status=status if status in ALLOWED_STATUSES else TaskStatus.TODO,
        created_at=now,
        updated_at=now,
    )
    try:
        get_table().put_item(Item=task.to_item())
    except (ClientError, BotoCoreError) as e:
        _handle_store_error(e, "put_item")
    logger.debug("Created task %s for owner %s", task.task_id, owner_id)
    return task


def update_task(owner_id: str, task_id: str, fields: dict) -> Task:
    """Apply only the supplied fields and refresh ``updatedAt`` in one write.

    Validation happens before any call to DynamoDB.
    """
    plan = build_update(fields, _now_iso())
    if not plan.has_changes:
        raise NoUpdatableFieldsError("No updatable fields provided")

    try:
        result = get_table().update_item(
            Key={"ownerId": owner_id, "taskId": task_id},
            ConditionExpression="attribute_exists(taskId)",
            ReturnValues="ALL_NEW",
            **plan.as_kwargs(),
        )
    except ClientError as e:
        if e.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
            raise TaskNotFoundError(f"Task {task_id} not found") from e
        _handle_store_error(e, "update_item")
    except BotoCoreError as e:
        _handle_store_error(e, "update_item")
    logger.debug("Updated task %s for owner %s", task_id, owner_id)
    return Task.model_validate(result["Attributes"])


def delete_task(owner_id: str, task_id: str) -> None:
    """Delete a task. Deleting a key that does not exist is not an error."""
    try:
        get_table().delete_item(Key={"ownerId": owner_id, "taskId": task_id})
    except (ClientError, BotoCoreError) as e:
        _handle_store_error(e, "delete_item")
    logger.debug("Deleted task %s for owner %s", task_id, owner_id)
