"""Lazily-created DynamoDB table handle for the task store.

The table is keyed by ``ownerId`` (partition) and ``taskId`` (sort). Every
query is partition-scoped, so no secondary index is needed.
"""

import boto3

from taskvault.config import get_settings

_table = None


def get_table():
    """Return the boto3 Table resource for the tasks table, creating it on first use."""
    global _table
    if _table is None:
        settings = get_settings()
        resource = boto3.resource(
            "dynamodb",
            region_name=settings.aws_region,
            endpoint_url=settings.dynamodb_endpoint_url or None,
        )
        _table = resource.Table(settings.tasks_table)
    return _table


def reset_table() -> None:
    """Drop the cached handle so the next call picks up new settings."""
    global _table
    _table = None
