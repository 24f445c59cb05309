"""Token lifecycle manager: login, registration, silent refresh, auto-renewal.

Security contract:
- Only one refresh call is ever in flight; concurrent callers share it, so two
  refreshes never race to invalidate each other's refresh token
- An unauthorized response triggers at most one refresh and exactly one retry
- A refused refresh token or a second 401 clears the session (memory + storage)
- Transport failures never clear the session; the caller may retry
- Tokens are never logged
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Any, Callable

import httpx
from jose import JWTError, jwt

from docuright.errors import (
    AuthError,
    DocuRightError,
    ExpiredSession,
    InvalidCredentials,
    NetworkError,
    RefreshFailed,
    RegistrationRejected,
    ServerError,
)
from docuright.events import ViewBroadcaster
from docuright.sessions.models import (
    Credentials,
    Profile,
    Session,
    SessionState,
    SessionView,
    User,
)
from docuright.storage.store import SESSION_KEY, PersistentStore
from docuright.timers import Timer
from docuright.transport import ApiTransport, extract_error_message

if TYPE_CHECKING:
    from docuright.usage.meter import UsageMeter

logger = logging.getLogger(__name__)

# ── Configuration ─────────────────────────────────────────────────────────

_DEFAULT_ACCESS_TOKEN_TTL = 3600.0  # Backend access tokens live 60 minutes
_DEFAULT_REFRESH_LEAD = 600.0  # Renew 10 minutes before expiry
_DEFAULT_MIN_REFRESH_DELAY = 5.0
_DEFAULT_REFRESH_RETRY_DELAY = 60.0  # After a transient auto-refresh failure


class TokenLifecycleManager:
    """Owns the authenticated session and keeps it alive."""

    def __init__(
        self,
        transport: ApiTransport,
        store: PersistentStore,
        *,
        usage_meter: UsageMeter | None = None,
        access_token_ttl: float = _DEFAULT_ACCESS_TOKEN_TTL,
        refresh_lead: float = _DEFAULT_REFRESH_LEAD,
        min_refresh_delay: float = _DEFAULT_MIN_REFRESH_DELAY,
        refresh_retry_delay: float = _DEFAULT_REFRESH_RETRY_DELAY,
    ):
        self._transport = transport
        self._store = store
        self._usage_meter = usage_meter
        self._access_token_ttl = access_token_ttl
        self._refresh_lead = refresh_lead
        self._min_refresh_delay = min_refresh_delay
        self._refresh_retry_delay = refresh_retry_delay

        self._session: Session | None = None
        self._is_loading = True
        self._refresh_task: asyncio.Task | None = None
        self._refresh_for: Session | None = None
        self._timer = Timer("token-auto-refresh")
        self._views: ViewBroadcaster[SessionView] = ViewBroadcaster("session")

    # ── Observable state ──────────────────────────────────────────────────

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def user(self) -> User | None:
        return self._session.user if self._session else None

    @property
    def is_authenticated(self) -> bool:
        return self._session is not None

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def refresh_in_flight(self) -> bool:
        return self._refresh_task is not None and not self._refresh_task.done()

    @property
    def state(self) -> SessionState:
        if self.refresh_in_flight:
            return SessionState.REFRESHING
        if self._session is not None:
            return SessionState.AUTHENTICATED
        return SessionState.UNAUTHENTICATED

    @property
    def auto_refresh_armed(self) -> bool:
        return self._timer.armed

    @property
    def view(self) -> SessionView:
        return SessionView(
            user=self.user,
            is_authenticated=self.is_authenticated,
            is_loading=self._is_loading,
            state=self.state,
        )

    def subscribe(self, callback: Callable[[SessionView], None]) -> str:
        return self._views.subscribe(callback)

    def unsubscribe(self, sub_id: str) -> None:
        self._views.unsubscribe(sub_id)

    def _publish(self) -> None:
        self._views.publish(self.view)

    # ── Startup ───────────────────────────────────────────────────────────

    async def initialize(self) -> SessionState:
        """Restore and validate the persisted session. Never raises."""
        self._is_loading = True
        stored = self._store.get_model(SESSION_KEY, Session, None)
        if stored is None:
            self._is_loading = False
            self._publish()
            return self.state

        self._session = stored
        try:
            response = await self._transport.request("GET", "/auth/validate", token=stored.access_token)
            valid = response.is_success
        except NetworkError:
            logger.warning("Session validation unreachable; trying refresh")
            valid = False

        if valid:
            self.schedule_auto_refresh()
        else:
            try:
                await self.refresh()
            except DocuRightError as e:
                logger.info("Stored session could not be renewed (%s); signing out", type(e).__name__)
                self.logout()

        self._is_loading = False
        self._publish()
        return self.state

    # ── Sign in / out ─────────────────────────────────────────────────────

    async def login(self, credentials: Credentials) -> Session:
        """Sign in. Raises InvalidCredentials, ServerError or a transport error."""
        body = {"email": credentials.email, "password": credentials.password}
        return await self._authenticate("/auth/login", body, InvalidCredentials, "Login failed")

    async def register(self, credentials: Credentials, profile: Profile | None = None) -> Session:
        """Create an account and sign in. Claims (clears) the anonymous usage ledger."""
        body: dict[str, Any] = {
            "email": credentials.email,
            "password": credentials.password,
            "fullName": profile.full_name if profile else None,
        }
        if self._usage_meter is not None:
            anonymous_session_id = self._usage_meter.anonymous_session_id()
            if anonymous_session_id:
                body["anonymousSessionId"] = anonymous_session_id
        return await self._authenticate("/auth/register", body, RegistrationRejected, "Registration failed")

    async def _authenticate(
        self,
        path: str,
        body: dict[str, Any],
        rejected: type[AuthError],
        fallback: str,
    ) -> Session:
        response = await self._transport.request("POST", path, json=body)
        if response.status_code >= 500:
            raise ServerError(extract_error_message(response, fallback), status_code=response.status_code)
        if not response.is_success:
            raise rejected(extract_error_message(response, fallback))
        try:
            session = Session.model_validate(response.json())
        except ValueError as e:
            raise ServerError(f"{fallback}: malformed response", status_code=response.status_code) from e

        self._session = session
        self._is_loading = False
        self._store.set(SESSION_KEY, session)
        if self._usage_meter is not None:
            self._usage_meter.reset()
        self.schedule_auto_refresh()
        self._publish()
        logger.info("Signed in user %s via %s", session.user.id, path)
        return session

    def logout(self) -> None:
        """Drop the session everywhere and disarm the timer. Idempotent."""
        self._timer.cancel()
        had_session = self._session is not None
        self._session = None
        self._store.remove(SESSION_KEY)
        self._publish()
        if had_session:
            logger.info("Signed out")

    # ── Refresh ───────────────────────────────────────────────────────────

    async def refresh(self) -> Session:
        """Renew the access token, joining an in-flight refresh if there is one.

        Raises RefreshFailed (session cleared) when the refresh token is refused,
        or a NetworkError (session kept) when the backend is unreachable.
        """
        if self.refresh_in_flight and self._refresh_for is self._session:
            logger.debug("Joining in-flight token refresh")
        else:
            # An in-flight refresh for a replaced session is left to finish on its own
            task = asyncio.get_running_loop().create_task(self._do_refresh(), name="token-refresh")
            task.add_done_callback(self._refresh_done)
            self._refresh_task = task
            self._refresh_for = self._session
            self._publish()
        return await asyncio.shield(self._refresh_task)

    def _refresh_done(self, task: asyncio.Task) -> None:
        if not task.cancelled():
            task.exception()  # Retrieved by awaiters; marks it handled if none remain
        self._publish()

    async def _do_refresh(self) -> Session:
        current = self._session
        if current is None:
            raise RefreshFailed("No refresh token available")

        response = await self._transport.request(
            "POST", "/auth/refresh", json={"refreshToken": current.refresh_token}
        )
        if response.status_code >= 500:
            raise ServerError(
                extract_error_message(response, "Token refresh failed"), status_code=response.status_code
            )
        if not response.is_success:
            logger.warning("Refresh token rejected (HTTP %d)", response.status_code)
            self._logout_if_current(current)
            raise RefreshFailed(extract_error_message(response, "Token refresh failed"))

        try:
            renewed = self._merge_refresh(current, response)
        except (ValueError, TypeError):
            logger.warning("Malformed refresh response")
            self._logout_if_current(current)
            raise RefreshFailed("Token refresh failed: malformed response") from None

        if self._session is not current:
            # Signed out or signed in again while the call was in flight
            if self._session is None:
                raise ExpiredSession("Signed out during token refresh")
            return self._session

        self._session = renewed
        self._store.set(SESSION_KEY, renewed)
        self.schedule_auto_refresh()
        logger.info("Access token refreshed for user %s", renewed.user.id)
        return renewed

    def _logout_if_current(self, refreshed: Session) -> None:
        # A newer sign-in must survive the rejection of an older refresh token
        if self._session is refreshed:
            logger.info("Signing out after refused token refresh")
            self.logout()

    @staticmethod
    def _merge_refresh(current: Session, response: httpx.Response) -> Session:
        data = response.json()
        if not isinstance(data, dict):
            raise TypeError("refresh response is not an object")
        # The backend may omit the refresh token and user; keep ours then
        merged: dict[str, Any] = {
            "refreshToken": current.refresh_token,
            "user": current.user.model_dump(by_alias=True),
        }
        merged.update({k: v for k, v in data.items() if v is not None})
        return Session.model_validate(merged)

    # ── Authorized calls ──────────────────────────────────────────────────

    async def authorized_request(self, method: str, path: str, *, json: Any = None) -> httpx.Response:
        """Send an authenticated request, renewing the token once on 401.

        Non-401 responses are returned untouched. Raises ExpiredSession if
        there is no session or the retried request is still unauthorized.
        """
        sent_with = self._session
        if sent_with is None:
            raise ExpiredSession("Authentication required")

        response = await self._transport.request(method, path, json=json, token=sent_with.access_token)
        if response.status_code != 401:
            return response

        logger.info("%s %s unauthorized; renewing access token", method, path)
        current = self._session
        if current is not None and current.access_token != sent_with.access_token:
            renewed = current  # Someone else already refreshed
        else:
            renewed = await self.refresh()

        retry = await self._transport.request(method, path, json=json, token=renewed.access_token)
        if retry.status_code == 401:
            logger.warning("%s %s still unauthorized after refresh; signing out", method, path)
            self.logout()
            raise ExpiredSession("Your session has expired. Please sign in again.")
        return retry

    # ── Auto-refresh timer ────────────────────────────────────────────────

    def refresh_delay(self, access_token: str) -> float:
        """Seconds until the token should be renewed.

        Uses the JWT ``exp`` claim when the token carries one, otherwise the
        configured lifetime counted from now.
        """
        lifetime = self._access_token_ttl
        try:
            claims = jwt.get_unverified_claims(access_token)
        except JWTError:
            claims = {}
        exp = claims.get("exp")
        if isinstance(exp, (int, float)):
            lifetime = exp - time.time()
        return max(self._min_refresh_delay, lifetime - self._refresh_lead)

    def schedule_auto_refresh(self) -> float | None:
        """Arm the single-shot renewal timer. Returns the delay, or None without a session."""
        if self._session is None:
            self._timer.cancel()
            return None
        delay = self.refresh_delay(self._session.access_token)
        self._timer.arm(delay, self._auto_refresh)
        logger.debug("Auto-refresh armed in %.1fs", delay)
        return delay

    async def _auto_refresh(self) -> None:
        if self._session is None:
            return
        try:
            await self.refresh()
        except AuthError:
            logger.warning("Auto-refresh failed; session cleared")
        except NetworkError as e:
            if self._session is not None:
                logger.warning(
                    "Auto-refresh unreachable (%s); retrying in %.0fs",
                    type(e).__name__,
                    self._refresh_retry_delay,
                )
                self._timer.arm(self._refresh_retry_delay, self._auto_refresh)

    async def aclose(self) -> None:
        """Disarm timers. The session itself stays persisted."""
        self._timer.cancel()
