"""SQLite storage for listings, preference profiles and the notification queue."""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from pathlib import Path
from uuid import uuid4

import aiosqlite

from rental_alerts.db.row_mappers import (
    build_listing_insert,
    row_to_listing,
    row_to_notification,
    row_to_preferences,
)
from rental_alerts.logging import get_logger
from rental_alerts.models import (
    ClaimedNotification,
    Coordinates,
    Listing,
    NotificationRecord,
    NotificationStatus,
    UserContact,
    UserPreferences,
)

logger = get_logger(__name__)

_ID_CHUNK_SIZE = 500


def _now() -> str:
    return datetime.now(UTC).isoformat()


class ListingStorage:
    """SQLite-based store behind the matching and notification pipeline."""

    def __init__(self, db_path: str) -> None:
        """Initialize storage with database path.

        Args:
            db_path: Path to SQLite database file, or ":memory:" for in-memory.
        """
        self.db_path = db_path
        self._conn: aiosqlite.Connection | None = None
        self._ensure_directory()

    def _ensure_directory(self) -> None:
        """Ensure the directory for the database exists."""
        if self.db_path != ":memory:":
            path = Path(self.db_path)
            path.parent.mkdir(parents=True, exist_ok=True)

    async def _get_connection(self) -> aiosqlite.Connection:
        """Get or create the database connection."""
        if self._conn is None:
            self._conn = await aiosqlite.connect(self.db_path)
            self._conn.row_factory = aiosqlite.Row
            await self._conn.execute("PRAGMA journal_mode=WAL")
            await self._conn.execute("PRAGMA busy_timeout=5000")
            await self._conn.execute("PRAGMA synchronous=NORMAL")
        return self._conn

    async def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    async def initialize(self) -> None:
        """Initialize the database schema."""
        conn = await self._get_connection()
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS listings (
                id TEXT PRIMARY KEY,
                url TEXT NOT NULL UNIQUE,
                kind TEXT,
                street TEXT,
                neighborhood TEXT,
                city TEXT,
                rent REAL,
                condo_fee REAL,
                bedrooms INTEGER,
                suites INTEGER,
                parking_spots INTEGER,
                area_sqm REAL,
                description TEXT,
                latitude REAL,
                longitude REAL,
                images TEXT,
                created_at TEXT NOT NULL
            )
        """)
        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_listings_created_at
            ON listings(created_at)
        """)

        # One active profile per user; filters is the camelCase JSON document
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS preferences (
                user_id TEXT PRIMARY KEY,
                filters TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        await conn.execute("""
            CREATE TABLE IF NOT EXISTS user_profiles (
                user_id TEXT PRIMARY KEY,
                phone_number TEXT
            )
        """)

        # No foreign key on listing_id: a record whose listing is gone still
        # has to drain to 'failed'.
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS notifications (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                listing_id TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending',
                attempts INTEGER NOT NULL DEFAULT 0,
                claim_token TEXT,
                claimed_at TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                UNIQUE(user_id, listing_id)
            )
        """)
        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_notifications_status
            ON notifications(status, created_at)
        """)
        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_notifications_claim_token
            ON notifications(claim_token)
        """)

        await conn.commit()

        logger.info("database_initialized", db_path=self.db_path)

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    async def save_listing(self, listing: Listing) -> bool:
        """Insert a new listing; existing listings are left untouched.

        Returns:
            True if the listing was inserted, False if it already existed.
        """
        conn = await self._get_connection()
        columns, values = build_listing_insert(listing)
        col_list = ", ".join(columns)
        placeholders = ", ".join("?" for _ in columns)
        cursor = await conn.execute(
            f"INSERT INTO listings ({col_list}) VALUES ({placeholders}) ON CONFLICT DO NOTHING",
            values,
        )
        await conn.commit()

        inserted = cursor.rowcount == 1
        logger.debug("listing_saved", listing_id=listing.id, inserted=inserted)
        return inserted

    async def is_seen_url(self, url: str) -> bool:
        """Check whether a listing with this URL is already stored."""
        conn = await self._get_connection()
        cursor = await conn.execute("SELECT 1 FROM listings WHERE url = ?", (url,))
        return await cursor.fetchone() is not None

    async def get_listing(self, listing_id: str) -> Listing | None:
        conn = await self._get_connection()
        cursor = await conn.execute("SELECT * FROM listings WHERE id = ?", (listing_id,))
        row = await cursor.fetchone()
        return row_to_listing(row) if row is not None else None

    async def get_listings_by_ids(self, listing_ids: list[str]) -> dict[str, Listing]:
        """Batch-load listings keyed by ID; unknown IDs are absent from the result."""
        if not listing_ids:
            return {}
        conn = await self._get_connection()
        found: dict[str, Listing] = {}
        for i in range(0, len(listing_ids), _ID_CHUNK_SIZE):
            chunk = listing_ids[i : i + _ID_CHUNK_SIZE]
            placeholders = ",".join("?" * len(chunk))
            cursor = await conn.execute(
                f"SELECT * FROM listings WHERE id IN ({placeholders})", chunk
            )
            for row in await cursor.fetchall():
                try:
                    found[row["id"]] = row_to_listing(row)
                except (TypeError, ValueError) as e:
                    logger.warning("listing_row_unreadable", listing_id=row["id"], error=str(e))
        return found

    async def get_all_listings(self) -> list[Listing]:
        """All stored listings, newest first."""
        conn = await self._get_connection()
        cursor = await conn.execute("SELECT * FROM listings ORDER BY created_at DESC")
        rows = await cursor.fetchall()
        return [row_to_listing(row) for row in rows]

    async def set_listing_coordinates(self, listing_id: str, coords: Coordinates) -> bool:
        """Backfill coordinates for a listing that has none.

        Coordinates already on a listing are never overwritten.

        Returns:
            True if the coordinates were written.
        """
        conn = await self._get_connection()
        cursor = await conn.execute(
            """
            UPDATE listings
            SET latitude = ?, longitude = ?
            WHERE id = ? AND latitude IS NULL AND longitude IS NULL
            """,
            (coords.latitude, coords.longitude, listing_id),
        )
        await conn.commit()
        updated = cursor.rowcount == 1
        if updated:
            logger.debug("listing_coordinates_backfilled", listing_id=listing_id)
        return updated

    # ------------------------------------------------------------------
    # Preferences and contacts
    # ------------------------------------------------------------------

    async def save_preferences(self, preferences: UserPreferences) -> None:
        """Upsert a user's profile; the latest write replaces prior filters."""
        conn = await self._get_connection()
        now = _now()
        await conn.execute(
            """
            INSERT INTO preferences (user_id, filters, created_at, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(user_id) DO UPDATE SET
                filters = excluded.filters,
                updated_at = excluded.updated_at
            """,
            (preferences.user_id, json.dumps(preferences.filters_document()), now, now),
        )
        await conn.commit()
        logger.debug("preferences_saved", user_id=preferences.user_id)

    async def get_preferences(self, user_id: str) -> UserPreferences | None:
        conn = await self._get_connection()
        cursor = await conn.execute("SELECT * FROM preferences WHERE user_id = ?", (user_id,))
        row = await cursor.fetchone()
        return row_to_preferences(row) if row is not None else None

    async def get_all_preferences(self) -> list[UserPreferences]:
        """All readable profiles. Unparseable profiles are logged and skipped."""
        conn = await self._get_connection()
        cursor = await conn.execute("SELECT * FROM preferences ORDER BY created_at ASC")
        rows = await cursor.fetchall()
        profiles = [row_to_preferences(row) for row in rows]
        return [p for p in profiles if p is not None]

    async def save_user_contact(self, contact: UserContact) -> None:
        conn = await self._get_connection()
        await conn.execute(
            """
            INSERT INTO user_profiles (user_id, phone_number) VALUES (?, ?)
            ON CONFLICT(user_id) DO UPDATE SET phone_number = excluded.phone_number
            """,
            (contact.user_id, contact.phone_number),
        )
        await conn.commit()

    # ------------------------------------------------------------------
    # Notification queue
    # ------------------------------------------------------------------

    async def insert_notification_if_absent(self, user_id: str, listing_id: str) -> bool:
        """Queue a pending notification unless one already exists for the pair.

        Returns:
            True if a new record was created, False if the pair was already queued
            (in any state).
        """
        conn = await self._get_connection()
        now = _now()
        cursor = await conn.execute(
            """
            INSERT INTO notifications (user_id, listing_id, status, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(user_id, listing_id) DO NOTHING
            """,
            (user_id, listing_id, NotificationStatus.PENDING.value, now, now),
        )
        await conn.commit()
        return cursor.rowcount == 1

    async def get_notification(self, notification_id: int) -> NotificationRecord | None:
        conn = await self._get_connection()
        cursor = await conn.execute(
            "SELECT * FROM notifications WHERE id = ?", (notification_id,)
        )
        row = await cursor.fetchone()
        return row_to_notification(row) if row is not None else None

    async def get_notifications(
        self,
        *,
        user_id: str | None = None,
        listing_id: str | None = None,
        status: NotificationStatus | None = None,
    ) -> list[NotificationRecord]:
        """Query notification records, oldest first."""
        clauses: list[str] = []
        params: list[str] = []
        if user_id is not None:
            clauses.append("user_id = ?")
            params.append(user_id)
        if listing_id is not None:
            clauses.append("listing_id = ?")
            params.append(listing_id)
        if status is not None:
            clauses.append("status = ?")
            params.append(status.value)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        conn = await self._get_connection()
        cursor = await conn.execute(
            f"SELECT * FROM notifications {where} ORDER BY created_at ASC, id ASC", params
        )
        rows = await cursor.fetchall()
        return [row_to_notification(row) for row in rows]

    async def release_stale_claims(self, older_than: timedelta) -> int:
        """Return abandoned claims to pending.

        A dispatcher that crashed mid-batch leaves records in ``processing``;
        once the claim is older than ``older_than`` another run may pick them up.

        Returns:
            Number of records released.
        """
        conn = await self._get_connection()
        cutoff = (datetime.now(UTC) - older_than).isoformat()
        cursor = await conn.execute(
            """
            UPDATE notifications
            SET status = ?, claim_token = NULL, claimed_at = NULL, updated_at = ?
            WHERE status = ? AND claimed_at < ?
            """,
            (
                NotificationStatus.PENDING.value,
                _now(),
                NotificationStatus.PROCESSING.value,
                cutoff,
            ),
        )
        await conn.commit()
        count = cursor.rowcount
        if count:
            logger.warning("stale_claims_released", count=count)
        return count

    async def claim_pending_notifications(self, limit: int) -> list[ClaimedNotification]:
        """Atomically claim up to ``limit`` of the oldest pending records.

        The claim is a single conditional UPDATE, so two overlapping callers
        can never claim the same record. Claimed records are returned joined
        with their listing and the recipient's phone number (either may be
        missing).
        """
        conn = await self._get_connection()
        token = uuid4().hex
        now = _now()
        await conn.execute(
            """
            UPDATE notifications
            SET status = ?, claim_token = ?, claimed_at = ?, updated_at = ?,
                attempts = attempts + 1
            WHERE status = ?
              AND id IN (
                SELECT id FROM notifications
                WHERE status = ?
                ORDER BY created_at ASC, id ASC
                LIMIT ?
              )
            """,
            (
                NotificationStatus.PROCESSING.value,
                token,
                now,
                now,
                NotificationStatus.PENDING.value,
                NotificationStatus.PENDING.value,
                limit,
            ),
        )
        await conn.commit()

        cursor = await conn.execute(
            """
            SELECT n.*, up.phone_number AS phone_number
            FROM notifications n
            LEFT JOIN user_profiles up ON up.user_id = n.user_id
            WHERE n.claim_token = ?
            ORDER BY n.created_at ASC, n.id ASC
            """,
            (token,),
        )
        rows = await cursor.fetchall()
        if not rows:
            return []

        listings = await self.get_listings_by_ids(list({row["listing_id"] for row in rows}))
        claimed: list[ClaimedNotification] = []
        for row in rows:
            try:
                record = row_to_notification(row)
            except (TypeError, ValueError) as e:
                logger.error(
                    "notification_row_unreadable", notification_id=row["id"], error=str(e)
                )
                await self.finish_notification(row["id"], token, NotificationStatus.FAILED)
                continue
            claimed.append(
                ClaimedNotification(
                    record=record,
                    claim_token=token,
                    listing=listings.get(row["listing_id"]),
                    phone_number=row["phone_number"] or None,
                )
            )
        logger.debug("notifications_claimed", count=len(claimed), claim_token=token)
        return claimed

    async def finish_notification(
        self, notification_id: int, claim_token: str, status: NotificationStatus
    ) -> bool:
        """Move a claimed record out of ``processing``.

        ``status`` is a terminal state, or PENDING to hand the record back for
        another delivery attempt. The update only applies while the caller
        still holds the claim, so terminal records never change again.

        Returns:
            True if the transition was applied.
        """
        if status == NotificationStatus.PROCESSING:
            raise ValueError("Cannot finish a notification into the processing state")

        conn = await self._get_connection()
        cursor = await conn.execute(
            """
            UPDATE notifications
            SET status = ?, claim_token = NULL, claimed_at = NULL, updated_at = ?
            WHERE id = ? AND status = ? AND claim_token = ?
            """,
            (
                status.value,
                _now(),
                notification_id,
                NotificationStatus.PROCESSING.value,
                claim_token,
            ),
        )
        await conn.commit()
        applied = cursor.rowcount == 1
        if not applied:
            logger.warning(
                "notification_claim_lost",
                notification_id=notification_id,
                status=status.value,
            )
        return applied
