"""
PostgreSQL-based implementation of the HistoryStore interface.

This module persists diagnostic runs and alerts using the asyncpg library. The
diagnostic engine only appends runs and alerts and reads recent runs; the alert
acknowledgement and health history queries serve operators.

The 'result' column is plain TEXT rather than JSONB so that a corrupted summary
can be stored and read back as-is; decoding it is the reader's concern.
"""

import logging
from typing import List, Optional, Sequence

from asyncpg import Pool, Record

from serp_diagnostics.analysis.anomaly import decode_run
from serp_diagnostics.contracts import HistoryStore
from serp_diagnostics.domain import (
    AlertRecord,
    AlertStatus,
    EngineHealthPoint,
    RunRecord,
    Severity,
    TargetConfig,
)
from serp_diagnostics.serialization import dump_params

# Module logger
logger = logging.getLogger(__name__)

CREATE_SCHEMA_SQL = """
    CREATE TABLE IF NOT EXISTS diagnostic_run (
        id          TEXT PRIMARY KEY,
        run_type    TEXT NOT NULL,
        engine_id   TEXT NOT NULL,
        params      TEXT NOT NULL,
        result      TEXT NOT NULL,
        status      TEXT NOT NULL,
        created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
    );
    CREATE INDEX IF NOT EXISTS diagnostic_run_engine_created_idx
        ON diagnostic_run (engine_id, created_at DESC);

    CREATE TABLE IF NOT EXISTS alert (
        id                 TEXT PRIMARY KEY,
        diagnostic_run_id  TEXT REFERENCES diagnostic_run (id) ON DELETE CASCADE,
        engine_id          TEXT NOT NULL,
        alert_type         TEXT NOT NULL,
        status             TEXT NOT NULL DEFAULT 'pending',
        message            TEXT NOT NULL,
        severity           TEXT NOT NULL DEFAULT 'warning',
        created_at         TIMESTAMPTZ NOT NULL DEFAULT NOW()
    );

    CREATE TABLE IF NOT EXISTS monitoring_config (
        engine_id       TEXT PRIMARY KEY,
        params          TEXT NOT NULL,
        interval_hours  INTEGER NOT NULL DEFAULT 1,
        enabled         BOOLEAN NOT NULL DEFAULT TRUE,
        last_run_at     TIMESTAMPTZ,
        created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at      TIMESTAMPTZ NOT NULL DEFAULT NOW()
    );
"""

UPSERT_CONFIG_SQL = """
    INSERT INTO monitoring_config (engine_id, params, interval_hours, enabled)
    VALUES ($1, $2, $3, $4)
    ON CONFLICT (engine_id) DO NOTHING;
"""

INSERT_RUN_SQL = """
    INSERT INTO diagnostic_run (id, run_type, engine_id, params, result, status, created_at)
    VALUES ($1, $2, $3, $4, $5, $6, COALESCE($7, NOW()));
"""

LIST_RECENT_RUNS_SQL = """
    SELECT id, engine_id, run_type, params, result, status, created_at
    FROM diagnostic_run
    WHERE engine_id = $1
    ORDER BY created_at DESC
    LIMIT $2;
"""

INSERT_ALERT_SQL = """
    INSERT INTO alert (id, diagnostic_run_id, engine_id, alert_type, status, message,
                       severity, created_at)
    VALUES ($1, $2, $3, $4, $5, $6, $7, COALESCE($8, NOW()));
"""

LIST_ALERTS_SQL = """
    SELECT id, engine_id, alert_type, message, severity, diagnostic_run_id, status, created_at
    FROM alert
    WHERE $1::TEXT IS NULL OR status = $1
    ORDER BY created_at DESC
    LIMIT $2 OFFSET $3;
"""

COUNT_UNREAD_ALERTS_SQL = "SELECT COUNT(*) FROM alert WHERE status = 'pending'"

SET_ALERT_STATUS_SQL = "UPDATE alert SET status = $2 WHERE id = $1"

MARK_ALL_ALERTS_READ_SQL = "UPDATE alert SET status = 'read' WHERE status = 'pending'"

TOUCH_LAST_RUN_SQL = """
    UPDATE monitoring_config
    SET last_run_at = NOW(), updated_at = NOW()
    WHERE engine_id = $1;
"""


def map_run(record: Record) -> RunRecord:
    """
    Converts a database record to a RunRecord domain object.

    Args:
        record: A 'diagnostic_run' row.

    Returns:
        RunRecord: The run, with its result text left undecoded.
    """
    return RunRecord(**dict(record))


def map_alert(record: Record) -> AlertRecord:
    modified_record = {
        **dict(record),
        "severity": Severity(record["severity"]),
        "status": AlertStatus(record["status"]),
    }
    return AlertRecord(**modified_record)


def to_health_point(run: RunRecord) -> EngineHealthPoint:
    """
    Projects a run onto the figures charted in an engine's health history.

    Figures that cannot be read from a corrupted result are None.
    """
    decoded = decode_run(run)
    report = decoded.summary.deep_analysis if decoded else None
    upstream = decoded.summary.upstream if decoded else None
    return EngineHealthPoint(
        id=run.id,
        engine_id=run.engine_id,
        status=run.status,
        missing_sections=report.total_missing if report else None,
        critical_missing=report.critical_missing if report else None,
        is_blocked=upstream.is_blocked if upstream else None,
        created_at=run.created_at,
    )


class PostgresHistoryStore(HistoryStore):
    """
    A PostgreSQL-based implementation of the HistoryStore interface.

    Database errors are not handled here: they propagate to the caller, which
    decides whether the failure is fatal.
    """

    def __init__(self, pool: Pool) -> None:
        """
        Initializes a new PostgresHistoryStore instance.

        Args:
            pool: A connection pool to the PostgreSQL database.
        """
        self._pool: Pool = pool

    async def ensure_schema(self, targets: Sequence[TargetConfig] = ()) -> None:
        """
        Creates the tables if needed and registers the given targets.

        Already registered targets are left untouched.

        Args:
            targets: The monitored engines to register in 'monitoring_config'.
        """
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute(CREATE_SCHEMA_SQL)
                if targets:
                    await conn.executemany(
                        UPSERT_CONFIG_SQL,
                        [
                            (t.engine_id, dump_params(t.params), t.interval_hours, t.enabled)
                            for t in targets
                        ],
                    )
        logger.info(f"Schema ready, {len(targets)} target(s) registered.")

    async def insert_run(self, record: RunRecord) -> None:
        async with self._pool.acquire() as conn:
            await conn.execute(
                INSERT_RUN_SQL,
                record.id,
                record.run_type,
                record.engine_id,
                record.params,
                record.result,
                record.status,
                record.created_at,
            )
        logger.debug(f"Stored run {record.id} for {record.engine_id} ({record.status}).")

    async def list_recent_runs(self, engine_id: str, limit: int) -> List[RunRecord]:
        async with self._pool.acquire() as conn:
            records = await conn.fetch(LIST_RECENT_RUNS_SQL, engine_id, limit)
        return [map_run(record) for record in records]

    async def insert_alert(self, record: AlertRecord) -> None:
        async with self._pool.acquire() as conn:
            await conn.execute(
                INSERT_ALERT_SQL,
                record.id,
                record.diagnostic_run_id,
                record.engine_id,
                record.alert_type,
                record.status.value,
                record.message,
                record.severity.value,
                record.created_at,
            )
        logger.info(
            f"Alert created: {record.severity.value.upper()} - {record.engine_id}: {record.message}"
        )

    async def touch_last_run(self, engine_id: str) -> None:
        async with self._pool.acquire() as conn:
            await conn.execute(TOUCH_LAST_RUN_SQL, engine_id)

    async def list_alerts(
        self, status: Optional[AlertStatus] = None, limit: int = 50, offset: int = 0
    ) -> List[AlertRecord]:
        """
        Returns alerts, newest first, optionally filtered by status.

        Args:
            status: Only return alerts in this status, or all alerts if None.
            limit: Maximum number of alerts to return.
            offset: Number of alerts to skip.

        Returns:
            List[AlertRecord]: The matching alerts.
        """
        async with self._pool.acquire() as conn:
            records = await conn.fetch(
                LIST_ALERTS_SQL, status.value if status else None, limit, offset
            )
        return [map_alert(record) for record in records]

    async def count_unread_alerts(self) -> int:
        async with self._pool.acquire() as conn:
            return await conn.fetchval(COUNT_UNREAD_ALERTS_SQL)

    async def mark_alert_read(self, alert_id: str) -> None:
        await self._set_alert_status(alert_id, AlertStatus.READ)

    async def mark_alert_dismissed(self, alert_id: str) -> None:
        await self._set_alert_status(alert_id, AlertStatus.DISMISSED)

    async def mark_all_alerts_read(self) -> None:
        async with self._pool.acquire() as conn:
            await conn.execute(MARK_ALL_ALERTS_READ_SQL)

    async def engine_health_history(self, engine_id: str, days: int = 7) -> List[EngineHealthPoint]:
        """
        Returns the health history of an engine, newest first.

        The history covers the last days*24 runs, one run per hour at the
        default interval.

        Args:
            engine_id: The engine whose history is requested.
            days: Number of days to cover, between 1 and 30.

        Returns:
            List[EngineHealthPoint]: One point per run.

        Raises:
            ValueError: If days is outside the allowed range.
        """
        if not isinstance(days, int) or not 1 <= days <= 30:
            raise ValueError("days must be an integer between 1 and 30.")

        runs = await self.list_recent_runs(engine_id, days * 24)
        return [to_health_point(run) for run in runs]

    async def _set_alert_status(self, alert_id: str, status: AlertStatus) -> None:
        async with self._pool.acquire() as conn:
            await conn.execute(SET_ALERT_STATUS_SQL, alert_id, status.value)
