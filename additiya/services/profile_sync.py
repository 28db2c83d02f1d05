"""
Profile synchronisation for the profile view and the profile-edit form.

Several call sites ask for a refresh (mount, focus, pull-to-refresh, after an
upload, entering edit mode) and their requests may complete in any order.
Every operation that can change the snapshot takes a sequence number; a
result commits only if its sequence is above the last committed one, so the
snapshot always reflects the newest request that completed.
"""

from collections.abc import Callable, Mapping

import structlog
from pydantic import ValidationError as SchemaError

from additiya.domain.errors import Busy, ClientError, ServerRejected, ValidationError
from additiya.domain.models import EDITABLE_FIELDS, DraftProfile, FetchTrigger, ProfileSnapshot
from additiya.domain.result import Result
from additiya.domain.validation import validate_profile_fields
from additiya.services.session import AuthorizedRequester

logger = structlog.get_logger(__name__)

PROFILE_PATH = "/api/auth/profile"

SnapshotListener = Callable[[ProfileSnapshot | None], None]


def compute_diff(
    draft: DraftProfile | Mapping[str, str], snapshot: ProfileSnapshot | None
) -> dict[str, str]:
    """
    Fields whose trimmed draft value differs from the snapshot.

    With no snapshot every non-empty draft field counts as changed.
    """
    values = draft.model_dump() if isinstance(draft, DraftProfile) else dict(draft)
    baseline = snapshot.editable_values() if snapshot is not None else {}

    diff: dict[str, str] = {}
    for field in EDITABLE_FIELDS:
        trimmed = (values.get(field) or "").strip()
        if trimmed != baseline.get(field, ""):
            diff[field] = trimmed
    return diff


class ProfileSync:
    """Owns the ProfileSnapshot. All reads return the immutable committed value."""

    def __init__(self, session: AuthorizedRequester, consumer: str = "profile") -> None:
        self._session = session
        self._snapshot: ProfileSnapshot | None = None
        self._issued_sequence = 0
        self._committed_sequence = 0
        self._fetches_in_flight = 0
        self._update_pending = False
        self._listeners: list[SnapshotListener] = []
        self.logger = logger.bind(component="profile_sync", consumer=consumer)

    @property
    def snapshot(self) -> ProfileSnapshot | None:
        return self._snapshot

    @property
    def is_refreshing(self) -> bool:
        return self._fetches_in_flight > 0

    @property
    def update_pending(self) -> bool:
        return self._update_pending

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """Call ``listener`` after every commit. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _next_sequence(self) -> int:
        self._issued_sequence += 1
        return self._issued_sequence

    def _commit(self, sequence: int, snapshot: ProfileSnapshot | None, source: str) -> bool:
        if sequence <= self._committed_sequence:
            self.logger.info(
                "stale_profile_result_dropped",
                source=source,
                sequence=sequence,
                committed_sequence=self._committed_sequence,
            )
            return False

        self._committed_sequence = sequence
        self._snapshot = snapshot
        self.logger.debug("profile_snapshot_committed", source=source, sequence=sequence)
        self._notify(snapshot)
        return True

    def _notify(self, snapshot: ProfileSnapshot | None) -> None:
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                self.logger.error("snapshot_listener_failed", error=str(e))

    async def fetch(
        self, trigger: FetchTrigger = FetchTrigger.MANUAL_REFRESH
    ) -> Result[ProfileSnapshot | None, ClientError]:
        """
        Refresh the snapshot from the server.

        Returns the committed snapshot. When a newer request already
        committed, this response is dropped and that newer snapshot is
        returned instead.
        """
        sequence = self._next_sequence()
        self._fetches_in_flight += 1
        self.logger.debug("profile_fetch_started", trigger=trigger.value, sequence=sequence)
        try:
            result = await self._session.authorized_request("GET", PROFILE_PATH)
        finally:
            self._fetches_in_flight -= 1

        if result.is_err():
            error = result.unwrap_err()
            self.logger.warning(
                "profile_fetch_failed",
                trigger=trigger.value,
                sequence=sequence,
                error_type=type(error).__name__,
            )
            return Result.err(error)

        user = result.unwrap().get("user")
        if not isinstance(user, dict):
            self.logger.warning("profile_missing_from_response", trigger=trigger.value)
            return Result.err(ServerRejected(fallback="Failed to load profile."))

        try:
            fetched = ProfileSnapshot.from_wire(user)
        except SchemaError as e:
            self.logger.warning(
                "profile_payload_invalid", trigger=trigger.value, errors=e.error_count()
            )
            return Result.err(ServerRejected(fallback="Failed to load profile."))

        self._commit(sequence, fetched, source=f"fetch:{trigger.value}")
        return Result.ok(self._snapshot)

    def begin_edit(self) -> DraftProfile:
        """Seed an edit form from the current snapshot."""
        return DraftProfile.from_snapshot(self._snapshot)

    def has_unsaved_changes(self, draft: DraftProfile) -> bool:
        return bool(compute_diff(draft, self._snapshot))

    async def update(self, diff: Mapping[str, str]) -> Result[ProfileSnapshot | None, ClientError]:
        """
        Send a partial update and merge the confirmed fields.

        Raises:
            ValueError: ``diff`` names a field that is not editable.
        """
        unknown = set(diff) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValueError(f"not editable: {', '.join(sorted(unknown))}")

        if not diff:
            return Result.ok(self._snapshot)

        if self._update_pending:
            self.logger.info("profile_update_rejected_busy")
            return Result.err(Busy("profile_update"))

        self._update_pending = True
        sequence = self._next_sequence()
        try:
            result = await self._session.authorized_request("PUT", PROFILE_PATH, dict(diff))
        finally:
            self._update_pending = False

        if result.is_err():
            error = result.unwrap_err()
            self.logger.warning(
                "profile_update_failed", fields=sorted(diff), error_type=type(error).__name__
            )
            return Result.err(error)

        confirmed = result.unwrap().get("user")
        if not isinstance(confirmed, dict):
            self.logger.warning("profile_update_not_echoed", fields=sorted(diff))
            return Result.ok(self._snapshot)

        try:
            if self._snapshot is None:
                merged = ProfileSnapshot.from_wire(confirmed)
            else:
                merged = self._snapshot.merged(confirmed)
        except SchemaError as e:
            self.logger.warning(
                "profile_update_echo_invalid", fields=sorted(diff), errors=e.error_count()
            )
            return Result.err(ServerRejected(fallback="Failed to update profile."))

        self._commit(sequence, merged, source="update")
        self.logger.info("profile_updated", fields=sorted(diff))
        return Result.ok(self._snapshot)

    async def save_draft(self, draft: DraftProfile) -> Result[ProfileSnapshot | None, ClientError]:
        """Validate the form and send only what changed."""
        errors = validate_profile_fields(draft.model_dump())
        if errors:
            return Result.err(ValidationError(errors))
        return await self.update(compute_diff(draft, self._snapshot))

    def merge_photo(self, photo_ref: str) -> ProfileSnapshot | None:
        """
        Apply a confirmed photo reference.

        Returns None when there is no snapshot yet; the caller should fetch.
        """
        if self._snapshot is None:
            return None
        self._commit(
            self._next_sequence(), self._snapshot.merged({"profile_photo": photo_ref}), source="photo"
        )
        return self._snapshot

    def reset(self) -> None:
        """Forget the snapshot, e.g. when the session ends. In-flight results are dropped."""
        self._committed_sequence = self._next_sequence()
        self._snapshot = None
        self.logger.info("profile_snapshot_reset")
        self._notify(None)
