"""Client-side login: Authorization Code grant with PKCE against the identity provider.

Flow states are persisted to session storage at every transition, so the
callback can be handled by a different process than the one that started the
login:

    idle -> awaiting_redirect -> code_received -> exchanging -> authenticated | failed

No step is retried. A failed exchange is terminal for that attempt and the user
starts a new login.
"""

import base64
import hashlib
import logging
import secrets
import time
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import requests
from fastapi import APIRouter, Request
from fastapi.responses import RedirectResponse
from pydantic import ValidationError

from taskvault.config import Settings, get_settings
from taskvault.exceptions import AuthenticationError, TokenExchangeError
from taskvault.http_client import get_session
from taskvault.models.auth import AuthStatus, FlowRecord, FlowState, PendingAuth, TokenSet
from taskvault.session_store import FileSessionStore, SessionStore

logger = logging.getLogger(__name__)

TOKENS_KEY = "tokens"
PENDING_KEY = "pending_auth"
FLOW_KEY = "auth_flow"


# --- PKCE helpers ---

def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def generate_code_verifier() -> str:
    """32 random bytes, base64url-encoded without padding (43 characters)."""
    return _b64url(secrets.token_bytes(32))


def code_challenge(verifier: str) -> str:
    """S256 challenge: base64url(SHA-256(verifier)) without padding."""
    return _b64url(hashlib.sha256(verifier.encode("ascii")).digest())


def strip_query_param(url: str, name: str) -> str:
    parts = urlsplit(url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != name]
    return urlunsplit(parts._replace(query=urlencode(query)))


# --- Token cache ---

class TokenCache:
    """Holds the current token set and pending PKCE state in a session store."""

    def __init__(self, store: SessionStore, clock=time.time):
        self.store = store
        self.clock = clock

    def get_tokens(self) -> TokenSet | None:
        data = self.store.get(TOKENS_KEY)
        return TokenSet.model_validate(data) if data else None

    def set_tokens(self, tokens: TokenSet) -> None:
        self.store.set(TOKENS_KEY, tokens.model_dump())

    def has_valid_token(self) -> bool:
        tokens = self.get_tokens()
        if not tokens or not tokens.access_token:
            return False
        if tokens.expires_in is None or tokens.obtained_at is None:
            return True
        return self.clock() < tokens.obtained_at + tokens.expires_in

    def get_access_token(self) -> str:
        """Return the access token, or raise if the user is not logged in."""
        if not self.has_valid_token():
            raise AuthenticationError("Not logged in. Visit /auth/login to sign in.")
        return self.get_tokens().access_token

    def get_pending(self) -> PendingAuth | None:
        data = self.store.get(PENDING_KEY)
        return PendingAuth.model_validate(data) if data else None

    def set_pending(self, pending: PendingAuth) -> None:
        # One pending login per session; a new one replaces the old.
        self.store.set(PENDING_KEY, pending.model_dump())

    def clear_pending(self) -> None:
        self.store.clear(PENDING_KEY)

    def get_flow(self) -> FlowRecord:
        data = self.store.get(FLOW_KEY)
        return FlowRecord.model_validate(data) if data else FlowRecord()

    def set_flow(self, record: FlowRecord) -> None:
        self.store.set(FLOW_KEY, record.model_dump(mode="json"))

    def clear(self) -> None:
        self.store.clear()


# --- Flow controller ---

class PkceFlow:
    def __init__(self, cache: TokenCache, settings: Settings | None = None, session: requests.Session | None = None):
        self.cache = cache
        self.settings = settings or get_settings()
        self.session = session or get_session()

    def _config(self) -> tuple[str, str]:
        if not self.settings.auth_domain or not self.settings.auth_client_id:
            raise AuthenticationError(
                "Identity provider not configured. Set AUTH_DOMAIN and AUTH_CLIENT_ID in .env"
            )
        return self.settings.auth_domain.rstrip("/"), self.settings.auth_client_id

    def _transition(self, state: FlowState, code: str | None = None, error: str | None = None) -> None:
        logger.info("Login flow -> %s", state.value)
        self.cache.set_flow(FlowRecord(state=state, code=code, error=error))

    @property
    def state(self) -> FlowState:
        return self.cache.get_flow().state

    def start_login(self) -> str:
        """Bind a fresh verifier to the session and return the authorize URL to redirect to."""
        domain, client_id = self._config()
        verifier = generate_code_verifier()
        self.cache.set_pending(PendingAuth(code_verifier=verifier))
        self._transition(FlowState.AWAITING_REDIRECT)
        params = {
            "client_id": client_id,
            "response_type": "code",
            "scope": self.settings.auth_scope,
            "redirect_uri": self.settings.redirect_uri,
            "code_challenge": code_challenge(verifier),
            "code_challenge_method": "S256",
        }
        return f"{domain}/oauth2/authorize?{urlencode(params)}"

    def receive_redirect(self, url: str) -> tuple[str, str | None]:
        """Take the authorization code off a callback URL.

        Returns the URL with ``code`` removed, which the caller must show in
        place of the original whatever happens next, and the code itself.
        """
        code = dict(parse_qsl(urlsplit(url).query)).get("code")
        clean_url = strip_query_param(url, "code")
        if not code:
            return clean_url, None
        if self.cache.has_valid_token():
            # Reload of a page that still carried a spent code.
            self._transition(FlowState.AUTHENTICATED)
        else:
            self._transition(FlowState.CODE_RECEIVED, code=code)
        return clean_url, code

    def exchange_code_for_tokens(self, code: str) -> TokenSet:
        """Trade the authorization code and the bound verifier for a token set."""
        if self.cache.has_valid_token():
            self._transition(FlowState.AUTHENTICATED)
            return self.cache.get_tokens()

        pending = self.cache.get_pending()
        if pending is None:
            self._fail("No pending login for this session: code verifier missing. Start a new login.")

        try:
            domain, client_id = self._config()
        except AuthenticationError as e:
            self._fail(str(e))
        self._transition(FlowState.EXCHANGING, code=code)
        try:
            resp = self.session.post(
                f"{domain}/oauth2/token",
                data={
                    "grant_type": "authorization_code",
                    "client_id": client_id,
                    "code": code,
                    "redirect_uri": self.settings.redirect_uri,
                    "code_verifier": pending.code_verifier,
                },
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except requests.RequestException as e:
            self._fail(f"Token request failed: {e}")

        try:
            data = resp.json()
        except ValueError:
            data = None
        if not resp.ok or not isinstance(data, dict) or not data.get("access_token"):
            self._fail(self._describe_failure(resp, data))

        try:
            tokens = TokenSet.model_validate({**data, "obtained_at": self.cache.clock()})
        except ValidationError as e:
            self._fail(f"Malformed token response: {e.error_count()} invalid field(s)")
        self.cache.set_tokens(tokens)
        self.cache.clear_pending()
        self._transition(FlowState.AUTHENTICATED)
        return tokens

    @staticmethod
    def _describe_failure(resp: requests.Response, data) -> str:
        if isinstance(data, dict) and (data.get("error_description") or data.get("error")):
            return data.get("error_description") or data.get("error")
        if not resp.ok:
            return f"Token request failed with {resp.status_code}"
        return "Token response did not contain an access token"

    def _fail(self, message: str):
        logger.warning("Token exchange failed: %s", message)
        self.cache.clear_pending()
        self._transition(FlowState.FAILED, error=message)
        raise TokenExchangeError(message)

    def handle_redirect(self, url: str) -> str:
        """Process a callback URL end to end and return the URL to display.

        Exchange failures are recorded on the flow (see ``status``) rather than raised.
        """
        clean_url, code = self.receive_redirect(url)
        if code and self.state == FlowState.CODE_RECEIVED:
            try:
                self.exchange_code_for_tokens(code)
            except AuthenticationError:
                pass
        return clean_url

    def resume(self) -> FlowState:
        """Continue a flow interrupted by a restart, from its last persisted state."""
        record = self.cache.get_flow()
        if record.state == FlowState.CODE_RECEIVED and record.code:
            try:
                self.exchange_code_for_tokens(record.code)
            except TokenExchangeError:
                pass
        elif record.state == FlowState.EXCHANGING:
            # The code may already have been spent; it cannot be sent again.
            self.cache.clear_pending()
            self._transition(FlowState.FAILED, error="Login was interrupted during token exchange. Start a new login.")
        return self.state

    def logout(self) -> str:
        """Forget all tokens and return the provider logout URL. Tokens are not revoked."""
        domain, client_id = self._config()
        self.cache.clear()
        self._transition(FlowState.IDLE)
        params = {"client_id": client_id, "logout_uri": self.settings.logout_uri}
        return f"{domain}/logout?{urlencode(params)}"

    def status(self) -> AuthStatus:
        record = self.cache.get_flow()
        authenticated = self.cache.has_valid_token()
        if authenticated:
            message = "Authenticated"
        elif record.state == FlowState.FAILED:
            message = f"Login failed: {record.error}"
        else:
            message = "Not authenticated. Visit /auth/login to sign in."
        return AuthStatus(state=record.state, authenticated=authenticated, message=message)


def get_token_cache() -> TokenCache:
    return TokenCache(FileSessionStore(get_settings().session_file))


def get_flow() -> PkceFlow:
    return PkceFlow(get_token_cache())


# --- Auth router ---

router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/login")
def login():
    """Redirect to the identity provider's sign-in page."""
    return RedirectResponse(get_flow().start_login())


@router.get("/callback", response_model=None)
def callback(request: Request) -> RedirectResponse | AuthStatus:
    """Handle the provider redirect: drop the code from the address bar, then exchange it."""
    flow = get_flow()
    if "code" not in request.query_params:
        return flow.status()
    return RedirectResponse(flow.handle_redirect(str(request.url)))


@router.get("/logout")
def logout():
    """Clear local tokens and redirect to the provider logout page."""
    return RedirectResponse(get_flow().logout())


@router.get("/status")
def auth_status() -> AuthStatus:
    return get_flow().status()
