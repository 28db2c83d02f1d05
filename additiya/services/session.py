"""
Session state machine and the authenticated request path.

States and transitions:

    UNAUTHENTICATED --login/register--> AUTHENTICATED
    AUTHENTICATED --401/403--> EXPIRED_PENDING_RECOVERY --clear + redirect--> UNAUTHENTICATED
    AUTHENTICATED --logout--> UNAUTHENTICATED

SessionController is the sole authority that turns an expired credential into
a credential clear plus a redirect signal. Everything else receives an
``AuthExpired`` error in a ``Result`` and observes the post-state.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

import structlog

from additiya.domain.errors import (
    AuthExpired,
    ClientError,
    NetworkFailure,
    PersistenceError,
    ServerRejected,
    ValidationError,
)
from additiya.domain.models import Registration, RedirectReason, SessionState
from additiya.domain.result import Result
from additiya.domain.validation import validate_login, validate_registration
from additiya.services.api_transport import ApiResponse, ApiTransport
from additiya.services.token_store import TokenStore, credential_fingerprint

logger = structlog.get_logger(__name__)

LOGIN_PATH = "/api/auth/login"
REGISTER_PATH = "/api/auth/register"

EXPIRY_STATUS_CODES = frozenset({401, 403})

StateListener = Callable[[SessionState], None]
Payload = dict[str, Any]


class EntryNavigator(Protocol):
    """UI hook that sends the user back to the entry screen."""

    def redirect_to_entry(self, reason: RedirectReason) -> None: ...


class AuthorizedRequester(Protocol):
    """
    The authenticated request path, as seen by ProfileSync and the media pipeline.

    Consumers depend on this one method only; tests script responses and
    completion order against it without HTTP.
    """

    async def authorized_request(
        self, method: str, path: str, body: Payload | None = None
    ) -> Result[Payload, ClientError]: ...


class SessionController:
    """
    Owns authentication state and classifies every backend response.

    Outcomes of ``authorized_request``:
    - Ok(payload): 2xx with ``success`` not false; payload is the ``data`` object
    - AuthExpired: 401/403, or signed out or no credential stored (no network call made)
    - any other ClientError: NetworkFailure, ServerRejected, PersistenceError
    """

    def __init__(
        self,
        token_store: TokenStore,
        transport: ApiTransport,
        navigator: EntryNavigator | None = None,
        logout_path: str | None = None,
    ) -> None:
        self._token_store = token_store
        self._transport = transport
        self._navigator = navigator
        self._logout_path = logout_path
        self._state = SessionState.UNAUTHENTICATED
        self._listeners: list[StateListener] = []
        self._recovery_lock = asyncio.Lock()
        self.logger = logger.bind(component="session_controller")

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_authenticated(self) -> bool:
        return self._state is SessionState.AUTHENTICATED

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        """Register a state-change callback. Returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_state(self, new_state: SessionState) -> None:
        if new_state is self._state:
            return
        previous, self._state = self._state, new_state
        self.logger.info("session_state_changed", previous=previous.value, state=new_state.value)
        for listener in list(self._listeners):
            try:
                listener(new_state)
            except Exception as e:
                self.logger.error("session_listener_failed", error=str(e))

    def _redirect(self, reason: RedirectReason) -> None:
        self.logger.info("redirect_to_entry", reason=reason.value)
        if self._navigator is None:
            return
        try:
            self._navigator.redirect_to_entry(reason)
        except Exception as e:
            self.logger.error("redirect_failed", reason=reason.value, error=str(e))

    async def restore(self) -> SessionState:
        """Derive the initial state from the stored credential (call at process start)."""
        try:
            present = await self._token_store.is_present()
        except PersistenceError:
            self.logger.warning("session_restore_storage_unavailable")
            present = False
        self._set_state(SessionState.AUTHENTICATED if present else SessionState.UNAUTHENTICATED)
        return self._state

    # ------------------------------------------------------------------
    # Login / registration
    # ------------------------------------------------------------------

    async def login(self, email: str, password: str) -> Result[SessionState, ClientError]:
        """Exchange email and password for a credential and start a session."""
        errors = validate_login(email, password)
        if errors:
            return Result.err(ValidationError(errors))

        result = await self._public_request(
            "POST",
            LOGIN_PATH,
            {"email": email.strip().lower(), "password": password},
            rejection_fallback="Invalid email or password.",
        )
        if result.is_err():
            return Result.err(result.unwrap_err())

        credential = self._extract_credential(result.unwrap())
        if credential is None:
            self.logger.warning("login_response_missing_credential")
            return Result.err(ServerRejected(fallback="Sign in failed. Please try again."))

        return await self._begin_session(credential)

    async def register(self, registration: Registration) -> Result[SessionState, ClientError]:
        """
        Create an account.

        If the backend answers with a credential the session starts right
        away; otherwise the state stays UNAUTHENTICATED and the user signs in.
        """
        errors = validate_registration(registration.model_dump())
        if errors:
            return Result.err(ValidationError(errors))

        result = await self._public_request(
            "POST",
            REGISTER_PATH,
            registration.to_wire(),
            rejection_fallback="Something went wrong. Please try again.",
        )
        if result.is_err():
            return Result.err(result.unwrap_err())

        credential = self._extract_credential(result.unwrap())
        if credential is None:
            self.logger.info("registration_completed", session_started=False)
            return Result.ok(self._state)

        self.logger.info("registration_completed", session_started=True)
        return await self._begin_session(credential)

    async def _begin_session(self, credential: str) -> Result[SessionState, ClientError]:
        try:
            await self._token_store.store(credential)
        except PersistenceError as e:
            return Result.err(e)
        self._set_state(SessionState.AUTHENTICATED)
        return Result.ok(self._state)

    @staticmethod
    def _extract_credential(payload: Payload) -> str | None:
        token = payload.get("token")
        if isinstance(token, str) and token.strip():
            return token
        return None

    async def _public_request(
        self, method: str, path: str, body: Payload, rejection_fallback: str
    ) -> Result[Payload, ClientError]:
        try:
            response = await self._transport.send(method, path, json=body)
        except NetworkFailure as e:
            return Result.err(e)
        # On public endpoints 401/403 means bad credentials, not an expired session
        return self._classify(response, fallback=rejection_fallback)

    # ------------------------------------------------------------------
    # Authenticated requests
    # ------------------------------------------------------------------

    async def authorized_request(
        self, method: str, path: str, body: Payload | None = None
    ) -> Result[Payload, ClientError]:
        """Attach the current credential, perform the call and classify the outcome."""
        if self._state is SessionState.UNAUTHENTICATED:
            # A credential left behind by a failed clear is never sent
            self.logger.info("authorized_request_while_signed_out", method=method, path=path)
            await self._recover(None, RedirectReason.NO_CREDENTIAL)
            return Result.err(AuthExpired())

        try:
            credential = await self._token_store.read()
        except PersistenceError as e:
            return Result.err(e)

        if credential is None:
            self.logger.info("authorized_request_without_credential", method=method, path=path)
            await self._recover(None, RedirectReason.NO_CREDENTIAL)
            return Result.err(AuthExpired())

        try:
            response = await self._transport.send(method, path, json=body, token=credential)
        except NetworkFailure as e:
            return Result.err(e)

        if response.status_code in EXPIRY_STATUS_CODES:
            self.logger.warning(
                "session_expired",
                status=response.status_code,
                path=path,
                fingerprint=credential_fingerprint(credential),
            )
            await self._recover(credential, RedirectReason.SESSION_EXPIRED)
            return Result.err(AuthExpired(status_code=response.status_code))

        return self._classify(response)

    def _classify(self, response: ApiResponse, fallback: str | None = None) -> Result[Payload, ClientError]:
        body = response.body
        if response.is_success and body.get("success") is not False:
            data = body.get("data")
            return Result.ok(data if isinstance(data, dict) else {})

        rejection = ServerRejected.from_body(body, response.status_code, fallback=fallback)
        self.logger.warning(
            "request_rejected", status=response.status_code, message=rejection.server_message
        )
        return Result.err(rejection)

    async def _recover(self, expired_credential: str | None, reason: RedirectReason) -> None:
        """
        Clear the credential and signal the redirect.

        Serialised so that concurrent 401s produce one clear and one redirect.
        A 401 for a credential that has since been replaced is ignored.
        """
        async with self._recovery_lock:
            if expired_credential is not None:
                try:
                    current = await self._token_store.read()
                except PersistenceError:
                    current = expired_credential
                if current is None and self._state is SessionState.UNAUTHENTICATED:
                    return  # Another request already recovered
                if current is not None and current != expired_credential:
                    self.logger.info("stale_expiry_ignored")
                    return
                self._set_state(SessionState.EXPIRED_PENDING_RECOVERY)

            await self._clear_credential()
            self._set_state(SessionState.UNAUTHENTICATED)
            self._redirect(reason)

    async def _clear_credential(self) -> None:
        try:
            await self._token_store.clear()
        except PersistenceError:
            # State still resets when the store is unreachable
            self.logger.warning("credential_clear_failed_state_reset_anyway")

    # ------------------------------------------------------------------
    # Logout
    # ------------------------------------------------------------------

    async def logout(self, confirm: Callable[[], Awaitable[bool]] | None = None) -> bool:
        """
        End the session locally.

        Returns False only when ``confirm`` declines. The optional remote
        notification is best effort; its failure never blocks local termination.
        """
        if confirm is not None and not await confirm():
            self.logger.info("logout_cancelled")
            return False

        if self._logout_path:
            await self._notify_logout(self._logout_path)

        await self._clear_credential()
        self._set_state(SessionState.UNAUTHENTICATED)
        self._redirect(RedirectReason.LOGGED_OUT)
        return True

    async def _notify_logout(self, path: str) -> None:
        try:
            credential = await self._token_store.read()
        except PersistenceError:
            return
        if credential is None:
            return
        try:
            response = await self._transport.send("POST", path, token=credential)
        except NetworkFailure as e:
            self.logger.warning("logout_notification_failed", reason=e.reason)
            return
        if not response.is_success:
            self.logger.warning("logout_notification_rejected", status=response.status_code)
