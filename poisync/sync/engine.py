"""Pull/merge/push reconciliation between the local store and the backend.

A sync is two independent phases run in a fixed order: pull (merge server
changes into the local store, advance the cursor), then push (upload the full
local snapshot). Each phase classifies its own failures; neither can stop the
other from running, and nothing here raises past ``sync()``.
"""

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from .errors import AuthenticationError, ServerError, SyncError
from .models import SyncOutcome, SyncResult, SyncStatus, utc_now_iso

if TYPE_CHECKING:
    from ..identity import IdentityProvider
    from ..store import CursorStore, LocalFavoritesStore
    from .remote import RemoteSyncClient

logger = logging.getLogger(__name__)


def _classify(phase: str, exc: Exception) -> SyncError:
    """Turn any exception raised inside a phase into a SyncError."""
    if isinstance(exc, SyncError):
        error = exc
    else:
        error = SyncError(f"Unexpected error: {type(exc).__name__} - {exc}", exc)

    if isinstance(error, ServerError) and error.is_permission_error:
        logger.error(
            f"[{phase}] Backend rejected the request with HTTP {error.code}; "
            "check credentials and access to /api/v1/sync/**"
        )
    elif isinstance(error, AuthenticationError):
        logger.error(f"[{phase}] {error}")
    else:
        logger.warning(f"[{phase}] {type(error).__name__}: {error}")
    return error


class SyncEngine:
    """Orchestrates pull, merge and push for one user's favorites.

    Collaborators are injected; the engine never reaches for global state.
    """

    def __init__(
        self,
        store: "LocalFavoritesStore",
        cursor: "CursorStore",
        remote: "RemoteSyncClient",
        identity: "IdentityProvider",
        cursor_clock_fallback: bool = True,
    ):
        """Initialize the engine.

        Args:
            store: Local favorites store to merge into and snapshot from.
            cursor: Persistent last-synchronized timestamp.
            remote: Backend client.
            identity: Supplies the signed-in user.
            cursor_clock_fallback: Use device time as the new cursor when the
                server omits one. When False the cursor is left unchanged.
        """
        self.store = store
        self.cursor = cursor
        self.remote = remote
        self.identity = identity
        self.cursor_clock_fallback = cursor_clock_fallback
        self._last_outcome: SyncOutcome | None = None

    def _resolve_user(self, user_id: str | None) -> str:
        current = self.identity.current_user_id()
        if not current:
            raise AuthenticationError("User is not authenticated")
        return user_id or current

    async def pull(self, user_id: str | None = None) -> SyncOutcome:
        """Merge server changes since the cursor into the local store.

        Returns:
            SyncOutcome whose result carries added/updated/removed counts and
            the timestamp stored as the new cursor.
        """
        try:
            user_id = self._resolve_user(user_id)
            since = self.cursor.get()
            logger.debug(f"[PULL] user={user_id} since={since or 'never'}")

            response = await self.remote.pull(user_id, since)
            logger.debug(f"[PULL] Received {len(response.records)} favorites")

            added = updated = removed = 0
            for wire in response.records:
                if wire.is_favorite:
                    record = wire.to_record()
                    record.user_id = user_id
                    exists = self.store.contains(record.poi_id, user_id)
                    self.store.upsert(record)
                    if exists:
                        updated += 1
                    else:
                        added += 1
                else:
                    # Absent keys still count: the server said "not a favorite"
                    self.store.delete(wire.poi_id, user_id)
                    removed += 1

            server_timestamp = response.server_timestamp
            if server_timestamp:
                self.cursor.set(server_timestamp)
            elif self.cursor_clock_fallback:
                server_timestamp = utc_now_iso()
                logger.warning(
                    "[PULL] Server sent no timestamp; using device clock "
                    f"{server_timestamp} as cursor"
                )
                self.cursor.set(server_timestamp)
            else:
                logger.warning("[PULL] Server sent no timestamp; cursor left unchanged")

        except Exception as e:
            return SyncOutcome(
                status=SyncStatus.FAILED,
                errors=[_classify("PULL", e)],
                timestamp=datetime.now(),
            )

        message = f"Pull: {added} added, {updated} updated, {removed} removed"
        logger.info(f"[PULL] {message}")
        return SyncOutcome(
            status=SyncStatus.SUCCESS,
            result=SyncResult(
                server_timestamp=server_timestamp,
                favorites_added=added,
                favorites_updated=updated,
                favorites_removed=removed,
                message=message,
            ),
            timestamp=datetime.now(),
        )

    async def push(self, user_id: str | None = None) -> SyncOutcome:
        """Upload the entire local snapshot in one request.

        Every record goes out as an upsert with one shared fresh timestamp.
        Local removals are not sent: the store keeps no tombstones.
        """
        try:
            user_id = self._resolve_user(user_id)
            snapshot = self.store.list(user_id)
            if not snapshot:
                logger.debug("[PUSH] No local favorites; sending empty snapshot")

            timestamp = utc_now_iso()
            wire_records = [record.to_wire(timestamp) for record in snapshot]
            await self.remote.push(wire_records)

        except Exception as e:
            return SyncOutcome(
                status=SyncStatus.FAILED,
                errors=[_classify("PUSH", e)],
                timestamp=datetime.now(),
            )

        logger.info(f"[PUSH] Sent {len(wire_records)} favorites")
        return SyncOutcome(
            status=SyncStatus.SUCCESS,
            records_pushed=len(wire_records),
            timestamp=datetime.now(),
        )

    async def sync(self, user_id: str | None = None) -> SyncOutcome:
        """Pull, then push, then combine the two outcomes.

        Push is attempted whatever pull returned. The combined outcome is
        FAILED only when both phases failed.
        """
        logger.info(f"[SYNC] Starting sync for {user_id or 'current user'}")

        pull_outcome = await self.pull(user_id)
        push_outcome = await self.push(user_id)
        outcome = self._combine(pull_outcome, push_outcome)

        self._last_outcome = outcome
        log = logger.info if outcome.ok else logger.error
        log(f"[SYNC] {outcome.status.value}: {outcome.message}")
        return outcome

    @staticmethod
    def _combine(pull: SyncOutcome, push: SyncOutcome) -> SyncOutcome:
        now = datetime.now()

        if pull.ok:
            counts = pull.result
            if push.ok:
                push_part = f"Push: {push.records_pushed} favorites sent"
            else:
                push_part = f"Push failed: {push.error}"
            message = (
                f"{push_part}. "
                f"Pull: {counts.favorites_added} added, "
                f"{counts.favorites_updated} updated, "
                f"{counts.favorites_removed} removed"
            )
            return SyncOutcome(
                status=SyncStatus.SUCCESS,
                result=SyncResult(
                    server_timestamp=counts.server_timestamp,
                    favorites_added=counts.favorites_added,
                    favorites_updated=counts.favorites_updated,
                    favorites_removed=counts.favorites_removed,
                    message=message,
                ),
                records_pushed=push.records_pushed,
                errors=list(push.errors),
                timestamp=now,
            )

        if push.ok:
            return SyncOutcome(
                status=SyncStatus.PARTIAL,
                result=SyncResult(
                    server_timestamp=None,
                    message=(
                        f"Partial sync: push succeeded "
                        f"({push.records_pushed} favorites sent), "
                        f"pull failed: {pull.error}"
                    ),
                ),
                records_pushed=push.records_pushed,
                errors=list(pull.errors),
                timestamp=now,
            )

        return SyncOutcome(
            status=SyncStatus.FAILED,
            result=SyncResult(
                message=(
                    "Both pull and push failed.\n"
                    f"Pull: {pull.error}\n"
                    f"Push: {push.error}"
                ),
            ),
            errors=[*pull.errors, *push.errors],
            timestamp=now,
        )

    @property
    def last_outcome(self) -> SyncOutcome | None:
        """Outcome of the most recent ``sync()`` call."""
        return self._last_outcome
