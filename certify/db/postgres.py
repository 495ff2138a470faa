"""
PostgreSQL Audit Log

Durable, append-only audit trail for external indexers.

Provides:
- Atomic batch append under a FOR UPDATE lock on the head row
- Lock/statement timeouts so a busy log fails fast instead of hanging
- Verification of the stored chain

THREAD SAFETY:
Connection and cursor live in the AppendContext, never on the store,
so one instance can be shared across threads.
"""

import json
from contextlib import contextmanager
from typing import Any, Callable, Generator, Optional
from uuid import UUID

import psycopg2
from psycopg2.extras import Json

from ..observability import get_logger
from ..schemas import AuditEvent, EventType
from .store import (
    AppendContext,
    AuditLog,
    AuditLogError,
    AuditLogUnavailable,
    ChainHead,
)

logger = get_logger(__name__)


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS audit_events (
    event_id            UUID PRIMARY KEY,
    sequence_number     BIGINT NOT NULL UNIQUE CHECK (sequence_number >= 0),
    event_type          TEXT NOT NULL,
    actor               TEXT NOT NULL,
    payload_json        JSONB NOT NULL,
    previous_event_hash CHAR(64),
    event_hash          CHAR(64) NOT NULL UNIQUE,
    created_at          TIMESTAMPTZ NOT NULL
);

CREATE TABLE IF NOT EXISTS audit_head (
    id              BOOLEAN PRIMARY KEY DEFAULT TRUE CHECK (id),
    last_sequence   BIGINT NOT NULL,
    last_event_hash CHAR(64)
);

CREATE OR REPLACE FUNCTION audit_events_immutable() RETURNS trigger AS $$
BEGIN
    RAISE EXCEPTION 'audit_events is append-only';
END;
$$ LANGUAGE plpgsql;

DROP TRIGGER IF EXISTS audit_events_no_update ON audit_events;
CREATE TRIGGER audit_events_no_update
    BEFORE UPDATE OR DELETE ON audit_events
    FOR EACH ROW EXECUTE FUNCTION audit_events_immutable();
"""

_SELECT_COLUMNS = """
    event_id, sequence_number, event_type, actor, payload_json,
    previous_event_hash, event_hash, created_at
"""


class PostgresAuditLog(AuditLog):
    """
    PostgreSQL implementation of AuditLog.

    Usage:
        log = PostgresAuditLog(lambda: psycopg2.connect(dsn))
        log.ensure_schema()
    """

    LOCK_TIMEOUT_MS = 2000
    STATEMENT_TIMEOUT_MS = 10000

    PGCODE_LOCK_NOT_AVAILABLE = "55P03"
    PGCODE_QUERY_CANCELED = "57014"

    def __init__(
        self,
        connection_factory: Callable[[], Any],
        lock_timeout_ms: int = LOCK_TIMEOUT_MS,
        statement_timeout_ms: int = STATEMENT_TIMEOUT_MS,
    ):
        super().__init__()
        self._connection_factory = connection_factory
        self._lock_timeout_ms = lock_timeout_ms
        self._statement_timeout_ms = statement_timeout_ms

    def _connect(self):
        try:
            return self._connection_factory()
        except psycopg2.OperationalError as e:
            raise AuditLogUnavailable(f"Could not connect to the audit database: {e}") from e

    def _translate(self, e: psycopg2.Error, action: str) -> AuditLogError:
        """Map a driver error onto the audit log error hierarchy."""
        pgcode = getattr(e, "pgcode", None)
        if pgcode in (self.PGCODE_LOCK_NOT_AVAILABLE, self.PGCODE_QUERY_CANCELED):
            return AuditLogUnavailable(f"Audit log busy while trying to {action}. Try again.")
        if isinstance(e, psycopg2.OperationalError):
            return AuditLogUnavailable(f"Audit database unavailable while trying to {action}: {e}")
        return AuditLogError(f"Audit database rejected the attempt to {action}: {e}")

    def ensure_schema(self) -> None:
        """Create tables and the append-only trigger if missing."""
        conn = self._connect()
        try:
            with conn.cursor() as cursor:
                cursor.execute(SCHEMA_SQL)
            conn.commit()
        except psycopg2.Error as e:
            raise self._translate(e, "create the schema") from e
        finally:
            conn.close()

    @contextmanager
    def begin_append(self) -> Generator[AppendContext, None, None]:
        conn = self._connect()
        cursor = None
        ctx = None

        try:
            try:
                conn.autocommit = False
                cursor = conn.cursor()
                head = self._lock_head(cursor)
            except psycopg2.Error as e:
                raise self._translate(e, "lock the chain head") from e

            ctx = AppendContext(head=head, _log=self, _conn=conn, _cursor=cursor)
            yield ctx

        finally:
            if ctx is None or not ctx._committed:
                self._discard(conn)
            try:
                if cursor is not None:
                    cursor.close()
            finally:
                conn.close()

    def _lock_head(self, cursor) -> ChainHead:
        cursor.execute(f"SET LOCAL lock_timeout = '{self._lock_timeout_ms}ms'")
        cursor.execute(f"SET LOCAL statement_timeout = '{self._statement_timeout_ms}ms'")
        cursor.execute("""
            INSERT INTO audit_head (id, last_sequence, last_event_hash)
            VALUES (TRUE, -1, NULL)
            ON CONFLICT (id) DO NOTHING
        """)
        cursor.execute("""
            SELECT last_sequence, last_event_hash
            FROM audit_head
            WHERE id = TRUE
            FOR UPDATE
        """)
        row = cursor.fetchone()
        return ChainHead(last_sequence=row[0], last_event_hash=row[1])

    @staticmethod
    def _discard(conn) -> None:
        try:
            conn.rollback()
        except psycopg2.Error as e:
            logger.warning("Rollback failed on audit connection", error=str(e))

    def _do_commit(self, ctx: AppendContext, events: list[AuditEvent]) -> list[AuditEvent]:
        if ctx._cursor is None or ctx._conn is None:
            raise AuditLogError("_do_commit called outside begin_append context")

        cursor = ctx._cursor
        self._check_batch(ctx.head, events)

        try:
            for event in events:
                cursor.execute("""
                    INSERT INTO audit_events (
                        event_id, sequence_number, event_type, actor,
                        payload_json, previous_event_hash, event_hash, created_at
                    ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                """, (
                    str(event.event_id),
                    event.sequence_number,
                    event.event_type.value,
                    event.actor,
                    Json(event.payload),
                    event.previous_event_hash,
                    event.event_hash,
                    event.created_at,
                ))

            if events:
                cursor.execute("""
                    UPDATE audit_head
                    SET last_sequence = %s, last_event_hash = %s
                    WHERE id = TRUE
                """, (events[-1].sequence_number, events[-1].event_hash))

            ctx._conn.commit()
        except psycopg2.Error as e:
            raise self._translate(e, "append audit events") from e

        return list(events)

    def _do_rollback(self, ctx: AppendContext) -> None:
        if ctx._conn is not None:
            self._discard(ctx._conn)

    def _query(self, sql: str, params: tuple = ()) -> list[tuple]:
        conn = self._connect()
        try:
            with conn.cursor() as cursor:
                cursor.execute(sql, params)
                return cursor.fetchall()
        except psycopg2.Error as e:
            raise self._translate(e, "read audit events") from e
        finally:
            conn.close()

    def list_all(self) -> list[AuditEvent]:
        rows = self._query(
            f"SELECT {_SELECT_COLUMNS} FROM audit_events ORDER BY sequence_number"
        )
        return [self._row_to_event(row) for row in rows]

    def list_since(self, sequence_number: int) -> list[AuditEvent]:
        rows = self._query(
            f"SELECT {_SELECT_COLUMNS} FROM audit_events "
            "WHERE sequence_number >= %s ORDER BY sequence_number",
            (sequence_number,),
        )
        return [self._row_to_event(row) for row in rows]

    def get_head(self) -> ChainHead:
        rows = self._query("SELECT last_sequence, last_event_hash FROM audit_head WHERE id = TRUE")
        if not rows:
            return ChainHead(last_sequence=-1, last_event_hash=None)
        return ChainHead(last_sequence=rows[0][0], last_event_hash=rows[0][1])

    def get_event_count(self) -> int:
        return self._query("SELECT COUNT(*) FROM audit_events")[0][0]

    @staticmethod
    def _row_to_event(row: tuple) -> AuditEvent:
        payload: Optional[Any] = row[4]
        if isinstance(payload, str):
            payload = json.loads(payload)

        return AuditEvent(
            event_id=row[0] if isinstance(row[0], UUID) else UUID(str(row[0])),
            sequence_number=row[1],
            event_type=EventType(row[2]),
            actor=row[3],
            payload=payload,
            previous_event_hash=row[5],
            event_hash=row[6],
            created_at=row[7],
        )
