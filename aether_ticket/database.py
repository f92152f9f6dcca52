"""SQLite-backed ticket repository.

Each operation opens and closes its own connection; no connection is shared
between calls. Every single-row write is atomic on its own, which is the only
consistency guarantee the ticket commands rely on.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

import aiosqlite

from aether_ticket.errors import (
    DuplicateChannelError,
    StorageInitError,
    StorageReadError,
    StorageWriteError,
)

DATABASE_FILE_MODE = 0o600
SQLITE_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

_CREATE_TICKETS_TABLE = """
CREATE TABLE IF NOT EXISTS tickets (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    channel_id TEXT NOT NULL UNIQUE,
    user_id TEXT NOT NULL,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    closed_at DATETIME,
    transcript TEXT
)
"""

_SELECT_COLUMNS = "id, channel_id, user_id, created_at, closed_at, transcript"


@dataclass(frozen=True, slots=True)
class TicketRecord:
    """A persisted ticket channel."""

    id: int
    channel_id: str
    user_id: str
    created_at: datetime | None
    closed_at: datetime | None
    transcript: str | None

    @property
    def is_open(self) -> bool:
        """Whether the ticket has not been closed yet."""
        return self.closed_at is None

    @property
    def is_closed(self) -> bool:
        """Whether the ticket has been closed."""
        return self.closed_at is not None

    @classmethod
    def from_row(cls, row: sqlite3.Row | tuple) -> TicketRecord:
        """Build a record from a ``tickets`` row."""
        return cls(
            id=int(row[0]),
            channel_id=str(row[1]),
            user_id=str(row[2]),
            created_at=_parse_timestamp(row[3]),
            closed_at=_parse_timestamp(row[4]),
            transcript=row[5],
        )


class TicketRepository:
    """Durable store of ticket records keyed by Discord channel id."""

    def __init__(self, path: Path | str) -> None:
        """Initialize the repository for the database file at ``path``."""
        self.path = Path(path)
        self.log = logging.getLogger(__name__)
        self._schema_ready = False

    async def initialize(self) -> None:
        """Ensure the database file and ``tickets`` table exist.

        Raises:
            StorageInitError: If the file cannot be opened or the schema cannot be created.
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            async with aiosqlite.connect(self.path) as db:
                await db.execute(_CREATE_TICKETS_TABLE)
                await db.commit()
        except (sqlite3.Error, OSError) as e:
            msg = f"Failed to initialize ticket database at {self.path}"
            raise StorageInitError(msg) from e

        try:
            self.path.chmod(DATABASE_FILE_MODE)
        except OSError as e:
            self.log.warning("Unable to enforce secure permissions on %s: %s", self.path, e)

        self._schema_ready = True
        self.log.info("Tickets table initialized at %s", self.path)

    async def create(self, channel_id: int | str, user_id: int | str) -> None:
        """Insert a new open ticket record.

        Raises:
            DuplicateChannelError: If a record already exists for ``channel_id``.
            StorageWriteError: If the write fails for any other reason.
        """
        channel_key = str(channel_id)
        await self._ensure_schema(StorageWriteError)

        try:
            async with aiosqlite.connect(self.path) as db:
                await db.execute(
                    "INSERT INTO tickets (channel_id, user_id) VALUES (?, ?)",
                    (channel_key, str(user_id)),
                )
                await db.commit()
        except sqlite3.IntegrityError as e:
            raise DuplicateChannelError(channel_key) from e
        except (sqlite3.Error, OSError) as e:
            msg = f"Failed to create ticket record for channel {channel_key}"
            raise StorageWriteError(msg) from e

        self.log.info("Ticket record created: %s for user %s", channel_key, user_id)

    async def close(self, channel_id: int | str, transcript: str | None = None) -> None:
        """Mark the ticket for ``channel_id`` as closed and store its transcript.

        ``closed_at`` keeps its first value if the ticket is closed again; the
        transcript is replaced. Succeeds without effect when no record matches.

        Raises:
            StorageWriteError: If the update fails.
        """
        channel_key = str(channel_id)
        await self._ensure_schema(StorageWriteError)

        try:
            async with aiosqlite.connect(self.path) as db:
                cursor = await db.execute(
                    "UPDATE tickets SET closed_at = COALESCE(closed_at, CURRENT_TIMESTAMP), transcript = ? "
                    "WHERE channel_id = ?",
                    (transcript or None, channel_key),
                )
                await db.commit()
        except (sqlite3.Error, OSError) as e:
            msg = f"Failed to close ticket record for channel {channel_key}"
            raise StorageWriteError(msg) from e

        if cursor.rowcount:
            self.log.info("Ticket record closed: %s", channel_key)
        else:
            self.log.debug("No ticket record to close for channel %s", channel_key)

    async def get(self, channel_id: int | str) -> TicketRecord | None:
        """Return the ticket record for ``channel_id``, or None if there is none.

        Raises:
            StorageReadError: If the lookup fails.
        """
        channel_key = str(channel_id)
        await self._ensure_schema(StorageReadError)

        try:
            async with aiosqlite.connect(self.path) as db:
                cursor = await db.execute(
                    f"SELECT {_SELECT_COLUMNS} FROM tickets WHERE channel_id = ?",  # noqa: S608
                    (channel_key,),
                )
                row = await cursor.fetchone()
        except (sqlite3.Error, OSError) as e:
            msg = f"Failed to read ticket record for channel {channel_key}"
            raise StorageReadError(msg) from e

        return TicketRecord.from_row(row) if row else None

    async def list_by_user(self, user_id: int | str) -> list[TicketRecord]:
        """Return every ticket owned by ``user_id``, newest first.

        Raises:
            StorageReadError: If the lookup fails.
        """
        await self._ensure_schema(StorageReadError)

        try:
            async with aiosqlite.connect(self.path) as db:
                cursor = await db.execute(
                    f"SELECT {_SELECT_COLUMNS} FROM tickets WHERE user_id = ? "  # noqa: S608
                    "ORDER BY created_at DESC, id DESC",
                    (str(user_id),),
                )
                rows = await cursor.fetchall()
        except (sqlite3.Error, OSError) as e:
            msg = f"Failed to list ticket records for user {user_id}"
            raise StorageReadError(msg) from e

        return [TicketRecord.from_row(row) for row in rows]

    async def _ensure_schema(self, error_cls: type[Exception]) -> None:
        # Heals a store whose start-up initialization failed.
        if self._schema_ready:
            return

        try:
            await self.initialize()
        except StorageInitError as e:
            raise error_cls(str(e)) from e


def _parse_timestamp(value: str | datetime | None) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)

    try:
        parsed = datetime.strptime(value, SQLITE_TIMESTAMP_FORMAT)  # noqa: DTZ007
    except ValueError:
        parsed = datetime.fromisoformat(value)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
