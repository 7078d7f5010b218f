import copy
import itertools

import jwt
import pytest
import requests
from botocore.exceptions import ClientError
from fastapi.testclient import TestClient

from taskvault.auth import PkceFlow, TokenCache
from taskvault.config import Settings
from taskvault.session_store import MemorySessionStore

TEST_SIGNING_KEY = "taskvault-unit-tests-signing-key-0123456789"


# --- Canned identity provider responses ---

DOMAIN = "https://auth.example.com"

TOKEN_BODY = {
    "access_token": "access-1",
    "id_token": "id-1",
    "refresh_token": "refresh-1",
    "expires_in": 3600,
    "token_type": "Bearer",
}


def token_response(mocker, status: int, body=None, json_error: bool = False):
    resp = mocker.MagicMock(spec=requests.Response)
    resp.status_code = status
    resp.ok = status < 400
    resp.text = ""
    if json_error:
        resp.json.side_effect = ValueError("not json")
    else:
        resp.json.return_value = body
    return resp


class FakeTable:
    """In-memory stand-in for a boto3 DynamoDB Table keyed by (ownerId, taskId).

    Understands the subset of expressions the task store emits.
    """

    def __init__(self, page_size: int | None = None):
        self.items: dict[tuple[str, str], dict] = {}
        self.calls: list[tuple[str, dict]] = []
        self.page_size = page_size

    @staticmethod
    def _key(key: dict) -> tuple[str, str]:
        return key["ownerId"], key["taskId"]

    def put_item(self, Item: dict):
        self.calls.append(("put_item", {"Item": Item}))
        self.items[self._key(Item)] = copy.deepcopy(Item)
        return {}

    def query(self, KeyConditionExpression, ExclusiveStartKey=None):
        self.calls.append(("query", {"KeyConditionExpression": KeyConditionExpression}))
        key, owner_id = KeyConditionExpression.get_expression()["values"]
        assert key.name == "ownerId"
        matches = [copy.deepcopy(v) for (owner, _), v in self.items.items() if owner == owner_id]
        start = 0
        if ExclusiveStartKey:
            ids = [m["taskId"] for m in matches]
            start = ids.index(ExclusiveStartKey["taskId"]) + 1
        if self.page_size is None:
            return {"Items": matches[start:]}
        page = matches[start:start + self.page_size]
        result = {"Items": page}
        if start + self.page_size < len(matches):
            result["LastEvaluatedKey"] = {"ownerId": owner_id, "taskId": page[-1]["taskId"]}
        return result

    def update_item(self, Key, UpdateExpression, ExpressionAttributeValues,
                    ExpressionAttributeNames=None, ConditionExpression=None, ReturnValues=None):
        self.calls.append(("update_item", {
            "Key": Key,
            "UpdateExpression": UpdateExpression,
            "ExpressionAttributeValues": ExpressionAttributeValues,
            "ExpressionAttributeNames": ExpressionAttributeNames,
            "ConditionExpression": ConditionExpression,
            "ReturnValues": ReturnValues,
        }))
        names = ExpressionAttributeNames or {}
        item = self.items.get(self._key(Key))
        if ConditionExpression == "attribute_exists(taskId)" and item is None:
            raise ClientError(
                {"Error": {"Code": "ConditionalCheckFailedException", "Message": "The conditional request failed"}},
                "UpdateItem",
            )
        if item is None:
            item = dict(Key)
            self.items[self._key(Key)] = item
        assert UpdateExpression.startswith("SET ")
        for assignment in UpdateExpression[len("SET "):].split(", "):
            lhs, placeholder = assignment.split(" = ")
            # A bare reserved word would fail to parse in DynamoDB.
            assert lhs != "status", UpdateExpression
            if lhs.startswith("#"):
                lhs = names[lhs]
            item[lhs] = ExpressionAttributeValues[placeholder]
        return {"Attributes": copy.deepcopy(item)}

    def delete_item(self, Key):
        self.calls.append(("delete_item", {"Key": Key}))
        self.items.pop(self._key(Key), None)
        return {}

    def writes(self) -> list[str]:
        return [op for op, _ in self.calls if op in ("put_item", "update_item", "delete_item")]


@pytest.fixture
def fake_table(mocker):
    table = FakeTable()
    mocker.patch("taskvault.services.tasks.get_table", return_value=table)
    return table


@pytest.fixture
def clock(mocker):
    """Strictly increasing millisecond timestamps for the task store."""
    ticks = itertools.count()
    return mocker.patch(
        "taskvault.services.tasks._now_iso",
        side_effect=lambda: f"2025-01-01T00:00:{next(ticks):02d}.000Z",
    )


@pytest.fixture
def make_token():
    def _make(sub: str | None = "u1", **claims) -> str:
        payload = dict(claims)
        if sub is not None:
            payload["sub"] = sub
        return jwt.encode(payload, TEST_SIGNING_KEY, algorithm="HS256")
    return _make


@pytest.fixture
def auth_headers(make_token):
    def _headers(sub: str = "u1") -> dict:
        return {"Authorization": f"Bearer {make_token(sub)}"}
    return _headers


@pytest.fixture
def api_client(fake_table, clock):
    """TestClient for the task API backed by the fake table."""
    from taskvault.main import api
    return TestClient(api)


# --- Client-side login fixtures ---

@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        auth_domain=DOMAIN,
        auth_client_id="client-123",
        auth_redirect_uri="http://localhost:5173/auth/callback",
        auth_logout_uri="http://localhost:5173/",
    )


@pytest.fixture
def now():
    """Mutable clock for the token cache: bump now[0] to move time forward."""
    return [1_000_000.0]


@pytest.fixture
def cache(now):
    return TokenCache(MemorySessionStore(), clock=lambda: now[0])


@pytest.fixture
def http(mocker):
    return mocker.MagicMock(spec=requests.Session)


@pytest.fixture
def flow(cache, settings, http):
    return PkceFlow(cache, settings=settings, session=http)
