"""
Tests for the session state machine and the authenticated request path.

Runs the real ApiTransport and TokenStore against the in-process backend, so
status-code classification is exercised end to end.
"""

import asyncio
from typing import Any
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from additiya.adapters.simulated_backend import SimulatedBackend
from additiya.adapters.storage import InMemoryStorage
from additiya.config import APIConfig
from additiya.domain.errors import (
    AuthExpired,
    NetworkFailure,
    PersistenceError,
    ServerRejected,
    ValidationError,
)
from additiya.domain.models import RedirectReason, Registration, SessionState
from additiya.services.api_transport import ApiResponse, ApiTransport
from additiya.services.profile_sync import PROFILE_PATH
from additiya.services.session import SessionController
from additiya.services.token_store import TokenStore


class TestRestore:
    @pytest.mark.asyncio
    async def test_starts_unauthenticated_without_credential(self, session: SessionController) -> None:
        assert await session.restore() is SessionState.UNAUTHENTICATED
        assert not session.is_authenticated

    @pytest.mark.asyncio
    async def test_starts_authenticated_with_stored_credential(
        self, session: SessionController, token_store: TokenStore
    ) -> None:
        await token_store.store("tok-from-last-run")
        assert await session.restore() is SessionState.AUTHENTICATED

    @pytest.mark.asyncio
    async def test_unreadable_storage_starts_unauthenticated(
        self, session: SessionController, storage: InMemoryStorage
    ) -> None:
        storage.available = False
        assert await session.restore() is SessionState.UNAUTHENTICATED


class TestLogin:
    @pytest.mark.asyncio
    async def test_success_stores_credential(
        self,
        session: SessionController,
        token_store: TokenStore,
        backend: SimulatedBackend,
        seeded_user: dict[str, Any],
    ) -> None:
        result = await session.login(f"  {seeded_user['email'].upper()} ", seeded_user["password"])

        assert result.unwrap() is SessionState.AUTHENTICATED
        assert session.is_authenticated
        assert await token_store.is_present()
        sent = backend.requests_to("/api/auth/login")[0]
        assert sent.body == {"email": seeded_user["email"], "password": seeded_user["password"]}
        assert sent.authorized is False

    @pytest.mark.asyncio
    async def test_wrong_password_is_rejected_not_expired(
        self,
        session: SessionController,
        navigator: Any,
        seeded_user: dict[str, Any],
    ) -> None:
        result = await session.login(seeded_user["email"], "wrong-password")

        error = result.unwrap_err()
        assert isinstance(error, ServerRejected)
        assert error.user_message == "Invalid email or password"
        assert session.state is SessionState.UNAUTHENTICATED
        assert navigator.redirects == []

    @pytest.mark.asyncio
    async def test_rejection_without_message_uses_fallback(
        self, session: SessionController, backend: SimulatedBackend, seeded_user: dict[str, Any]
    ) -> None:
        backend.fail_next(401)

        result = await session.login(seeded_user["email"], seeded_user["password"])

        assert result.unwrap_err().user_message == "Invalid email or password."

    @pytest.mark.asyncio
    async def test_invalid_form_never_reaches_network(
        self, session: SessionController, backend: SimulatedBackend
    ) -> None:
        result = await session.login("not-an-email", "")

        error = result.unwrap_err()
        assert isinstance(error, ValidationError)
        assert set(error.field_errors) == {"email", "password"}
        assert backend.requests == []

    @pytest.mark.asyncio
    async def test_response_without_token_is_rejected(
        self, session: SessionController, transport: ApiTransport, seeded_user: dict[str, Any]
    ) -> None:
        reply = ApiResponse(200, {"success": True, "data": {"user": {}}})

        with patch.object(transport, "send", AsyncMock(return_value=reply)):
            result = await session.login(seeded_user["email"], seeded_user["password"])

        assert isinstance(result.unwrap_err(), ServerRejected)
        assert session.state is SessionState.UNAUTHENTICATED

    @pytest.mark.asyncio
    async def test_storage_failure_keeps_state(
        self, session: SessionController, storage: InMemoryStorage, seeded_user: dict[str, Any]
    ) -> None:
        storage.available = False

        result = await session.login(seeded_user["email"], seeded_user["password"])

        assert isinstance(result.unwrap_err(), PersistenceError)
        assert session.state is SessionState.UNAUTHENTICATED

    @pytest.mark.asyncio
    async def test_offline_is_network_failure(
        self, session: SessionController, backend: SimulatedBackend, seeded_user: dict[str, Any]
    ) -> None:
        backend.offline = True

        result = await session.login(seeded_user["email"], seeded_user["password"])

        error = result.unwrap_err()
        assert isinstance(error, NetworkFailure)
        assert error.retryable


class TestRegister:
    def _registration(self, **overrides: str) -> Registration:
        values = {
            "name": " Ravi Kumar ",
            "email": "Ravi.Kumar@Example.com",
            "address": "14 MG Road, Indiranagar",
            "phone": "9988776655",
            "password": "ravi-pass",
            "confirm_password": "ravi-pass",
        }
        return Registration(**{**values, **overrides})

    @pytest.mark.asyncio
    async def test_registration_with_token_starts_session(
        self, session: SessionController, backend: SimulatedBackend
    ) -> None:
        result = await session.register(self._registration())

        assert result.unwrap() is SessionState.AUTHENTICATED
        sent = backend.requests_to("/api/auth/register")[0].body
        assert sent is not None
        assert sent["name"] == "Ravi Kumar"
        assert sent["email"] == "ravi.kumar@example.com"
        assert "confirm_password" not in sent

    @pytest.mark.asyncio
    async def test_registration_without_token_stays_signed_out(
        self, token_store: TokenStore, navigator: Any
    ) -> None:
        backend = SimulatedBackend(register_issues_token=False)
        async with httpx.AsyncClient(transport=backend.transport(), base_url="http://b.test") as client:
            session = SessionController(
                token_store, ApiTransport(APIConfig(base_url="http://b.test"), client=client), navigator
            )
            result = await session.register(self._registration())

        assert result.unwrap() is SessionState.UNAUTHENTICATED
        assert not await token_store.is_present()
        assert backend.user("ravi.kumar@example.com") is not None

    @pytest.mark.asyncio
    async def test_duplicate_account_shows_server_message(
        self, session: SessionController, seeded_user: dict[str, Any]
    ) -> None:
        result = await session.register(self._registration(email=seeded_user["email"]))

        assert result.unwrap_err().user_message == "User already exists"

    @pytest.mark.asyncio
    async def test_password_mismatch_is_local(
        self, session: SessionController, backend: SimulatedBackend
    ) -> None:
        result = await session.register(self._registration(confirm_password="other-pass"))

        error = result.unwrap_err()
        assert isinstance(error, ValidationError)
        assert error.field_errors == {"confirm_password": "Passwords do not match"}
        assert backend.requests == []


class TestAuthorizedRequest:
    @pytest.mark.asyncio
    async def test_success_returns_data_payload(
        self, signed_in_session: SessionController, seeded_user: dict[str, Any]
    ) -> None:
        result = await signed_in_session.authorized_request("GET", PROFILE_PATH)

        assert result.unwrap()["user"]["email"] == seeded_user["email"]

    @pytest.mark.asyncio
    async def test_no_credential_is_expired_without_network_call(
        self, session: SessionController, backend: SimulatedBackend, navigator: Any
    ) -> None:
        result = await session.authorized_request("GET", PROFILE_PATH)

        assert isinstance(result.unwrap_err(), AuthExpired)
        assert backend.requests == []
        assert session.state is SessionState.UNAUTHENTICATED
        assert navigator.redirects == [RedirectReason.NO_CREDENTIAL]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403])
    async def test_expiry_clears_credential_and_redirects(
        self,
        signed_in_session: SessionController,
        backend: SimulatedBackend,
        token_store: TokenStore,
        navigator: Any,
        status: int,
    ) -> None:
        backend.fail_next(status, "Not authorized, token failed")

        result = await signed_in_session.authorized_request("GET", PROFILE_PATH)

        error = result.unwrap_err()
        assert isinstance(error, AuthExpired)
        assert error.status_code == status
        assert not await token_store.is_present()
        assert signed_in_session.state is SessionState.UNAUTHENTICATED
        assert navigator.redirects == [RedirectReason.SESSION_EXPIRED]

    @pytest.mark.asyncio
    async def test_transitions_pass_through_pending_recovery(
        self, signed_in_session: SessionController, backend: SimulatedBackend
    ) -> None:
        states: list[SessionState] = []
        signed_in_session.add_listener(states.append)
        backend.revoke_all_tokens()

        await signed_in_session.authorized_request("GET", PROFILE_PATH)

        assert states == [SessionState.EXPIRED_PENDING_RECOVERY, SessionState.UNAUTHENTICATED]

    @pytest.mark.asyncio
    async def test_concurrent_expiries_signal_once(
        self,
        signed_in_session: SessionController,
        backend: SimulatedBackend,
        navigator: Any,
    ) -> None:
        backend.revoke_all_tokens()

        results = await asyncio.gather(
            *(signed_in_session.authorized_request("GET", PROFILE_PATH) for _ in range(3))
        )

        assert all(isinstance(r.unwrap_err(), AuthExpired) for r in results)
        assert navigator.redirects == [RedirectReason.SESSION_EXPIRED]
        assert signed_in_session.state is SessionState.UNAUTHENTICATED

    @pytest.mark.asyncio
    async def test_stale_expiry_keeps_newer_credential(
        self,
        signed_in_session: SessionController,
        backend: SimulatedBackend,
        token_store: TokenStore,
        navigator: Any,
        seeded_user: dict[str, Any],
    ) -> None:
        old_token = await token_store.read()
        assert old_token is not None
        backend.queue_delays(0.1)

        in_flight = asyncio.create_task(signed_in_session.authorized_request("GET", PROFILE_PATH))
        await asyncio.sleep(0.02)
        backend.expire_token(old_token)
        relogin = await signed_in_session.login(seeded_user["email"], seeded_user["password"])
        result = await in_flight

        assert relogin.is_ok()
        assert isinstance(result.unwrap_err(), AuthExpired)
        assert await token_store.read() not in (None, old_token)
        assert signed_in_session.state is SessionState.AUTHENTICATED
        assert navigator.redirects == []

    @pytest.mark.asyncio
    async def test_success_false_is_server_rejected(
        self, signed_in_session: SessionController, backend: SimulatedBackend
    ) -> None:
        backend.fail_next(200, "Profile is locked")

        result = await signed_in_session.authorized_request("GET", PROFILE_PATH)

        error = result.unwrap_err()
        assert isinstance(error, ServerRejected)
        assert error.user_message == "Profile is locked"
        assert signed_in_session.is_authenticated

    @pytest.mark.asyncio
    async def test_server_error_without_message_uses_generic_text(
        self, signed_in_session: SessionController, backend: SimulatedBackend
    ) -> None:
        backend.fail_next(500)

        result = await signed_in_session.authorized_request("GET", PROFILE_PATH)

        error = result.unwrap_err()
        assert isinstance(error, ServerRejected)
        assert error.status_code == 500
        assert error.user_message == ServerRejected.default_message

    @pytest.mark.asyncio
    async def test_network_failure_keeps_session(
        self,
        signed_in_session: SessionController,
        backend: SimulatedBackend,
        token_store: TokenStore,
    ) -> None:
        backend.offline = True

        result = await signed_in_session.authorized_request("GET", PROFILE_PATH)

        assert isinstance(result.unwrap_err(), NetworkFailure)
        assert signed_in_session.is_authenticated
        assert await token_store.is_present()


class TestLogout:
    @pytest.mark.asyncio
    async def test_logout_clears_and_redirects(
        self, signed_in_session: SessionController, token_store: TokenStore, navigator: Any
    ) -> None:
        assert await signed_in_session.logout() is True

        assert signed_in_session.state is SessionState.UNAUTHENTICATED
        assert not await token_store.is_present()
        assert navigator.redirects == [RedirectReason.LOGGED_OUT]

    @pytest.mark.asyncio
    async def test_declined_confirmation_keeps_session(
        self, signed_in_session: SessionController, navigator: Any
    ) -> None:
        async def decline() -> bool:
            return False

        assert await signed_in_session.logout(decline) is False
        assert signed_in_session.is_authenticated
        assert navigator.redirects == []

    @pytest.mark.asyncio
    async def test_logout_succeeds_when_clear_fails(
        self, signed_in_session: SessionController, storage: InMemoryStorage
    ) -> None:
        storage.available = False

        assert await signed_in_session.logout() is True
        assert signed_in_session.state is SessionState.UNAUTHENTICATED

    @pytest.mark.asyncio
    async def test_leftover_credential_is_never_sent_after_logout(
        self,
        signed_in_session: SessionController,
        storage: InMemoryStorage,
        token_store: TokenStore,
        backend: SimulatedBackend,
        navigator: Any,
    ) -> None:
        storage.available = False
        await signed_in_session.logout()
        storage.available = True
        assert await token_store.is_present()

        result = await signed_in_session.authorized_request("GET", PROFILE_PATH)

        assert isinstance(result.unwrap_err(), AuthExpired)
        assert backend.requests_to(PROFILE_PATH) == []
        assert not await token_store.is_present()
        assert signed_in_session.state is SessionState.UNAUTHENTICATED
        assert navigator.redirects == [RedirectReason.LOGGED_OUT, RedirectReason.NO_CREDENTIAL]

    @pytest.mark.asyncio
    async def test_remote_notification_is_best_effort(
        self,
        token_store: TokenStore,
        transport: ApiTransport,
        backend: SimulatedBackend,
        seeded_user: dict[str, Any],
    ) -> None:
        session = SessionController(token_store, transport, logout_path="/api/auth/logout")
        await session.login(seeded_user["email"], seeded_user["password"])
        backend.offline = True

        assert await session.logout() is True
        assert not await token_store.is_present()
        assert len(backend.requests_to("/api/auth/logout")) == 1

    @pytest.mark.asyncio
    async def test_remote_notification_sends_credential(
        self,
        token_store: TokenStore,
        transport: ApiTransport,
        backend: SimulatedBackend,
        seeded_user: dict[str, Any],
    ) -> None:
        session = SessionController(token_store, transport, logout_path="/api/auth/logout")
        await session.login(seeded_user["email"], seeded_user["password"])

        await session.logout()

        (notification,) = backend.requests_to("/api/auth/logout", method="POST")
        assert notification.authorized


class TestListeners:
    @pytest.mark.asyncio
    async def test_listener_sees_transitions_and_can_unsubscribe(
        self, session: SessionController, seeded_user: dict[str, Any]
    ) -> None:
        states: list[SessionState] = []
        unsubscribe = session.add_listener(states.append)

        await session.login(seeded_user["email"], seeded_user["password"])
        unsubscribe()
        await session.logout()

        assert states == [SessionState.AUTHENTICATED]

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_break_transition(
        self, session: SessionController, seeded_user: dict[str, Any]
    ) -> None:
        def broken(state: SessionState) -> None:
            raise RuntimeError("ui gone")

        session.add_listener(broken)

        result = await session.login(seeded_user["email"], seeded_user["password"])

        assert result.is_ok()
        assert session.is_authenticated
