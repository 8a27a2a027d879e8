"""
SQLite Session Store

Stores analysis sessions and their derived artifacts in a local SQLite file.
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Iterator, Optional

from follower_insights.errors import PersistenceError
from follower_insights.models.entities import (
    RELATIONSHIP_CATEGORIES,
    Contact,
    FollowEvent,
    IngestDiagnostics,
    RelationshipSets,
    SessionSummary,
    UnfollowedProfile,
)
from follower_insights.storage.base import LIST_FOLLOWING, SessionStore

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS analysis_sessions (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    created_at TEXT NOT NULL,
    previous_session_id TEXT,
    followers_count INTEGER NOT NULL DEFAULT 0,
    following_count INTEGER NOT NULL DEFAULT 0,
    mutual_count INTEGER NOT NULL DEFAULT 0,
    followers_only_count INTEGER NOT NULL DEFAULT 0,
    following_only_count INTEGER NOT NULL DEFAULT 0,
    pending_requests_count INTEGER NOT NULL DEFAULT 0,
    total_events INTEGER NOT NULL DEFAULT 0,
    total_unfollows INTEGER NOT NULL DEFAULT 0,
    detected_unfollows INTEGER NOT NULL DEFAULT 0,
    imported_unfollows INTEGER NOT NULL DEFAULT 0,
    diagnostics TEXT
);

CREATE TABLE IF NOT EXISTS contacts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT NOT NULL,
    list_name TEXT NOT NULL,
    position INTEGER NOT NULL,
    handle TEXT NOT NULL,
    profile_url TEXT,
    observed_at INTEGER,
    FOREIGN KEY (session_id) REFERENCES analysis_sessions (id)
);

CREATE TABLE IF NOT EXISTS follower_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT NOT NULL,
    position INTEGER NOT NULL,
    event_timestamp INTEGER NOT NULL,
    handle TEXT NOT NULL,
    direction TEXT NOT NULL CHECK (direction IN ('follower', 'following')),
    followers_count INTEGER NOT NULL CHECK (followers_count >= 0),
    following_count INTEGER NOT NULL CHECK (following_count >= 0),
    FOREIGN KEY (session_id) REFERENCES analysis_sessions (id),
    UNIQUE (session_id, handle, direction)
);

CREATE TABLE IF NOT EXISTS unfollowed_profiles (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT NOT NULL,
    handle TEXT NOT NULL,
    profile_url TEXT,
    unfollowed_at INTEGER NOT NULL,
    source TEXT NOT NULL CHECK (source IN ('detected', 'imported')),
    FOREIGN KEY (session_id) REFERENCES analysis_sessions (id)
);

CREATE INDEX IF NOT EXISTS idx_contacts_session_list
    ON contacts (session_id, list_name);
CREATE INDEX IF NOT EXISTS idx_follower_events_session
    ON follower_events (session_id, position);
CREATE INDEX IF NOT EXISTS idx_unfollowed_session
    ON unfollowed_profiles (session_id);
"""

CHILD_TABLES = ("contacts", "follower_events", "unfollowed_profiles")


class SQLiteSessionStore(SessionStore):
    """SessionStore backed by SQLite.

    Each thread gets its own connection. A session's rows are written inside
    one ``BEGIN IMMEDIATE`` transaction, and WAL journaling lets readers see
    the last committed state while another upload is being written.
    """

    def __init__(self, db_path: str | Path = "data/follower_insights.db", timeout: float = 30.0):
        """Initialize the store and create tables if needed.

        Args:
            db_path: Path to the SQLite database file
            timeout: Seconds to wait for a competing writer
        """
        self.db_path = Path(db_path)
        self.timeout = timeout
        self._local = threading.local()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path), timeout=self.timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        return conn

    def _initialize_db(self) -> None:
        conn = None
        try:
            conn = self._connect()
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(SCHEMA_SQL)
            logger.debug(f"Session store initialized at {self.db_path}")
        except sqlite3.Error as e:
            logger.error(f"Error initializing database: {e}")
            raise PersistenceError(f"Could not initialize database at {self.db_path}: {e}") from e
        finally:
            if conn:
                conn.close()

    @property
    def _active_connection(self) -> Optional[sqlite3.Connection]:
        return getattr(self._local, "conn", None)

    @staticmethod
    def _rollback(conn: sqlite3.Connection) -> None:
        if conn.in_transaction:
            conn.execute("ROLLBACK")

    @contextmanager
    def transaction(self) -> Iterator["SQLiteSessionStore"]:
        """Run the enclosed writes in one transaction.

        Nested calls join the outer transaction.

        Raises:
            PersistenceError: If any statement fails; nothing is committed
        """
        if self._active_connection is not None:
            yield self
            return

        conn = self._connect()
        self._local.conn = conn
        try:
            conn.execute("BEGIN IMMEDIATE")
            yield self
            conn.execute("COMMIT")
        except sqlite3.Error as e:
            self._rollback(conn)
            logger.error(f"Session write failed, rolled back: {e}")
            raise PersistenceError(f"Session write failed: {e}") from e
        except BaseException:
            self._rollback(conn)
            raise
        finally:
            self._local.conn = None
            conn.close()

    @contextmanager
    def _write(self) -> Iterator[sqlite3.Connection]:
        if self._active_connection is None:
            with self.transaction():
                with self._write() as conn:
                    yield conn
            return

        # Out-of-range parameters fail at bind time with OverflowError or ValueError
        try:
            yield self._active_connection
        except (sqlite3.Error, OverflowError, ValueError) as e:
            logger.error(f"Session write failed: {e}")
            raise PersistenceError(f"Session write failed: {e}") from e

    @contextmanager
    def _read(self) -> Iterator[sqlite3.Connection]:
        if self._active_connection is not None:
            yield self._active_connection
            return

        conn = self._connect()
        try:
            yield conn
        except sqlite3.Error as e:
            logger.error(f"Database query error: {e}")
            raise PersistenceError(f"Database query failed: {e}") from e
        finally:
            conn.close()

    # -- Writes ----------------------------------------------------------

    def create_session(self, summary: SessionSummary) -> None:
        with self._write() as conn:
            conn.execute(
                """
                INSERT INTO analysis_sessions (
                    id, created_at, previous_session_id,
                    followers_count, following_count, mutual_count,
                    followers_only_count, following_only_count, pending_requests_count,
                    total_events, total_unfollows, detected_unfollows, imported_unfollows,
                    diagnostics
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    summary.session_id,
                    summary.created_at.isoformat(),
                    summary.previous_session_id,
                    summary.followers_count,
                    summary.following_count,
                    summary.mutual_count,
                    summary.followers_only_count,
                    summary.following_only_count,
                    summary.pending_requests_count,
                    summary.total_events,
                    summary.total_unfollows,
                    summary.detected_unfollows,
                    summary.imported_unfollows,
                    summary.diagnostics.model_dump_json(),
                ),
            )

    def save_contacts(self, session_id: str, list_name: str, contacts: list[Contact]) -> None:
        with self._write() as conn:
            conn.executemany(
                """
                INSERT INTO contacts (session_id, list_name, position, handle, profile_url, observed_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                [
                    (session_id, list_name, position, c.handle, c.profile_url, c.observed_at)
                    for position, c in enumerate(contacts)
                ],
            )

    def save_relationship_sets(self, session_id: str, sets: RelationshipSets) -> None:
        with self._write():
            for category in RELATIONSHIP_CATEGORIES:
                self.save_contacts(session_id, category.value, sets.for_category(category))

    def save_timeline(self, session_id: str, events: list[FollowEvent]) -> None:
        with self._write() as conn:
            conn.executemany(
                """
                INSERT INTO follower_events (
                    session_id, position, event_timestamp, handle, direction,
                    followers_count, following_count
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        session_id,
                        position,
                        e.timestamp,
                        e.handle,
                        e.direction.value,
                        e.followers_count_after,
                        e.following_count_after,
                    )
                    for position, e in enumerate(events)
                ],
            )

    def save_unfollowed(self, session_id: str, records: list[UnfollowedProfile]) -> None:
        with self._write() as conn:
            conn.executemany(
                """
                INSERT INTO unfollowed_profiles (session_id, handle, profile_url, unfollowed_at, source)
                VALUES (?, ?, ?, ?, ?)
                """,
                [
                    (session_id, r.handle, r.profile_url, r.unfollowed_at, r.source.value)
                    for r in records
                ],
            )

    def delete_session(self, session_id: str) -> bool:
        with self._write() as conn:
            for table in CHILD_TABLES:
                conn.execute(f"DELETE FROM {table} WHERE session_id = ?", (session_id,))
            cursor = conn.execute("DELETE FROM analysis_sessions WHERE id = ?", (session_id,))
            return cursor.rowcount > 0

    def cleanup(self, older_than_days: int = 7) -> int:
        cutoff = (datetime.now() - timedelta(days=older_than_days)).isoformat()
        with self._write() as conn:
            rows = conn.execute(
                "SELECT id FROM analysis_sessions WHERE created_at < ?", (cutoff,)
            ).fetchall()
            for row in rows:
                self.delete_session(row["id"])

        if rows:
            logger.info(f"Removed {len(rows)} sessions older than {older_than_days} days")
        return len(rows)

    # -- Reads -----------------------------------------------------------

    @staticmethod
    def _row_to_summary(row: sqlite3.Row) -> SessionSummary:
        diagnostics = (
            IngestDiagnostics.model_validate_json(row["diagnostics"])
            if row["diagnostics"] else IngestDiagnostics()
        )
        return SessionSummary(
            session_id=row["id"],
            created_at=datetime.fromisoformat(row["created_at"]),
            previous_session_id=row["previous_session_id"],
            followers_count=row["followers_count"],
            following_count=row["following_count"],
            mutual_count=row["mutual_count"],
            followers_only_count=row["followers_only_count"],
            following_only_count=row["following_only_count"],
            pending_requests_count=row["pending_requests_count"],
            total_events=row["total_events"],
            total_unfollows=row["total_unfollows"],
            detected_unfollows=row["detected_unfollows"],
            imported_unfollows=row["imported_unfollows"],
            diagnostics=diagnostics,
        )

    @staticmethod
    def _fetch_contacts(conn: sqlite3.Connection, session_id: str, list_name: str) -> list[Contact]:
        rows = conn.execute(
            """
            SELECT handle, profile_url, observed_at FROM contacts
            WHERE session_id = ? AND list_name = ?
            ORDER BY position
            """,
            (session_id, list_name),
        ).fetchall()
        return [
            Contact(handle=r["handle"], profile_url=r["profile_url"], observed_at=r["observed_at"])
            for r in rows
        ]

    def get_latest_session_id(self) -> Optional[str]:
        with self._read() as conn:
            row = conn.execute(
                "SELECT id FROM analysis_sessions ORDER BY seq DESC LIMIT 1"
            ).fetchone()
        return row["id"] if row else None

    def get_previous_following(self, session_id: str) -> tuple[Optional[str], list[Contact]]:
        with self._read() as conn:
            current = conn.execute(
                "SELECT seq FROM analysis_sessions WHERE id = ?", (session_id,)
            ).fetchone()
            if current:
                previous = conn.execute(
                    "SELECT id FROM analysis_sessions WHERE seq < ? ORDER BY seq DESC LIMIT 1",
                    (current["seq"],),
                ).fetchone()
            else:
                previous = conn.execute(
                    "SELECT id FROM analysis_sessions WHERE id != ? ORDER BY seq DESC LIMIT 1",
                    (session_id,),
                ).fetchone()

            if previous is None:
                return None, []
            return previous["id"], self._fetch_contacts(conn, previous["id"], LIST_FOLLOWING)

    def get_session(self, session_id: str) -> Optional[SessionSummary]:
        with self._read() as conn:
            row = conn.execute(
                "SELECT * FROM analysis_sessions WHERE id = ?", (session_id,)
            ).fetchone()
        return self._row_to_summary(row) if row else None

    def list_sessions(self, limit: int = 10) -> list[SessionSummary]:
        with self._read() as conn:
            rows = conn.execute(
                "SELECT * FROM analysis_sessions ORDER BY seq DESC LIMIT ?", (limit,)
            ).fetchall()
        return [self._row_to_summary(row) for row in rows]

    def get_contacts(self, session_id: str, list_name: str) -> list[Contact]:
        with self._read() as conn:
            return self._fetch_contacts(conn, session_id, list_name)

    def get_timeline(self, session_id: str) -> list[FollowEvent]:
        with self._read() as conn:
            rows = conn.execute(
                """
                SELECT event_timestamp, handle, direction, followers_count, following_count
                FROM follower_events WHERE session_id = ?
                ORDER BY position
                """,
                (session_id,),
            ).fetchall()
        return [
            FollowEvent(
                timestamp=r["event_timestamp"],
                handle=r["handle"],
                direction=r["direction"],
                followers_count_after=r["followers_count"],
                following_count_after=r["following_count"],
            )
            for r in rows
        ]

    def get_unfollowed(self, session_id: str) -> list[UnfollowedProfile]:
        with self._read() as conn:
            rows = conn.execute(
                """
                SELECT handle, profile_url, unfollowed_at, source FROM unfollowed_profiles
                WHERE session_id = ? ORDER BY id
                """,
                (session_id,),
            ).fetchall()
        return [
            UnfollowedProfile(
                handle=r["handle"],
                profile_url=r["profile_url"],
                unfollowed_at=r["unfollowed_at"],
                source=r["source"],
                session_id=session_id,
            )
            for r in rows
        ]
