"""Build DynamoDB SET expressions for sparse task updates.

Only fields the caller actually supplied take part; a field that was not sent
is left alone, while a field sent as null is written as an empty string. Field
names that are DynamoDB reserved words go through ``#name`` placeholders.
"""

from dataclasses import dataclass, field

from taskvault.exceptions import InvalidStatusError
from taskvault.models.tasks import ALLOWED_STATUSES

UPDATABLE_FIELDS = ("title", "description", "status")
TIMESTAMP_FIELD = "updatedAt"

# Subset of https://docs.aws.amazon.com/amazondynamodb/latest/developerguide/ReservedWords.html
# covering the attribute names this table can carry.
RESERVED_WORDS = frozenset({"status", "name", "date", "timestamp", "data", "value", "owner", "user", "comment"})


@dataclass
class UpdatePlan:
    expression: str
    names: dict[str, str] = field(default_factory=dict)
    values: dict[str, object] = field(default_factory=dict)
    has_changes: bool = False

    def as_kwargs(self) -> dict:
        """Keyword arguments for ``Table.update_item``."""
        kwargs = {
            "UpdateExpression": self.expression,
            "ExpressionAttributeValues": self.values,
        }
        if self.names:
            kwargs["ExpressionAttributeNames"] = self.names
        return kwargs


def _name_ref(name: str, names: dict[str, str]) -> str:
    if name.lower() in RESERVED_WORDS:
        names[f"#{name}"] = name
        return f"#{name}"
    return name


def validate_status(status) -> str:
    if status not in ALLOWED_STATUSES:
        raise InvalidStatusError(status, ALLOWED_STATUSES)
    return status


def build_update(fields: dict, now: str) -> UpdatePlan:
    """Translate supplied fields into an update plan.

    Raises InvalidStatusError before anything is built if ``status`` is present
    and not allowed. Unknown keys are ignored. The ``updatedAt`` refresh is
    always the last assignment and never counts toward ``has_changes``.
    """
    if "status" in fields:
        validate_status(fields["status"])

    assignments = []
    names: dict[str, str] = {}
    values: dict[str, object] = {}

    for name in UPDATABLE_FIELDS:
        if name not in fields:
            continue
        value = fields[name]
        if value is None:
            value = ""
        assignments.append(f"{_name_ref(name, names)} = :{name}")
        values[f":{name}"] = value

    has_changes = bool(assignments)
    assignments.append(f"{TIMESTAMP_FIELD} = :{TIMESTAMP_FIELD}")
    values[f":{TIMESTAMP_FIELD}"] = now

    return UpdatePlan(
        expression="SET " + ", ".join(assignments),
        names=names,
        values=values,
        has_changes=has_changes,
    )
