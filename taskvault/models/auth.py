from enum import Enum

from pydantic import BaseModel


class FlowState(str, Enum):
    IDLE = "idle"
    AWAITING_REDIRECT = "awaiting_redirect"
    CODE_RECEIVED = "code_received"
    EXCHANGING = "exchanging"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"


class TokenSet(BaseModel):
    access_token: str
    id_token: str | None = None
    refresh_token: str | None = None
    expires_in: int | None = None
    token_type: str = "Bearer"
    obtained_at: float | None = None  # epoch seconds, set locally on exchange


class PendingAuth(BaseModel):
    code_verifier: str


class FlowRecord(BaseModel):
    """PKCE flow state as persisted in session storage between redirects."""

    state: FlowState = FlowState.IDLE
    code: str | None = None
    error: str | None = None


class AuthStatus(BaseModel):
    state: FlowState
    authenticated: bool
    message: str
