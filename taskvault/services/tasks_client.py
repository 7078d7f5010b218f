"""Calls the task API on behalf of the logged-in user."""

import requests

from taskvault.auth import TokenCache, get_token_cache
from taskvault.config import get_settings
from taskvault.exceptions import AuthenticationError, IntegrationError
from taskvault.http_client import get_session
from taskvault.models.tasks import Task


def _base_url() -> str:
    base = get_settings().api_base_url
    if not base:
        raise IntegrationError("Task API URL not configured. Set API_BASE_URL in .env")
    return base.rstrip("/")


def _headers(cache: TokenCache | None) -> dict:
    token = (cache or get_token_cache()).get_access_token()
    return {"Authorization": f"Bearer {token}"}


def _handle_response(resp: requests.Response) -> dict | list | None:
    if resp.status_code == 401:
        raise AuthenticationError(f"Task API rejected the access token: {resp.text[:200]}")
    if resp.status_code >= 400:
        raise IntegrationError(resp.text or f"Request failed with {resp.status_code}")
    if resp.status_code == 204:
        return None
    return resp.json()


def list_tasks(cache: TokenCache | None = None) -> list[Task]:
    resp = get_session().get(f"{_base_url()}/tasks", headers=_headers(cache))
    return [Task.model_validate(t) for t in _handle_response(resp)]


def create_task(
    title: str,
    description: str = "",
    status: str | None = None,
    cache: TokenCache | None = None,
) -> Task:
    body = {"title": title, "description": description}
    if status is not None:
        body["status"] = status
    resp = get_session().post(f"{_base_url()}/tasks", json=body, headers=_headers(cache))
    return Task.model_validate(_handle_response(resp))


def update_task(task_id: str, fields: dict, cache: TokenCache | None = None) -> Task:
    """Send only ``fields``; keys left out are not touched on the server."""
    resp = get_session().put(f"{_base_url()}/tasks/{task_id}", json=fields, headers=_headers(cache))
    return Task.model_validate(_handle_response(resp))


def delete_task(task_id: str, cache: TokenCache | None = None) -> None:
    resp = get_session().delete(f"{_base_url()}/tasks/{task_id}", headers=_headers(cache))
    _handle_response(resp)
