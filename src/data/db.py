"""
Business Hours Engine — SQLite storage.

Reference implementation of the ScheduleRepository and AgentRepository ports.
Schedules are stored as JSON documents next to a few indexed columns
(active / default / open projection) and a trigger table rebuilt on every
save. Both stores share one SQLite file so agent queries can join against the
schedules' open projection.

sqlite3 is blocking, so every public method runs its query through
asyncio.to_thread. Status writes are single conditional UPDATE statements:
the guard is evaluated by SQLite, never read-then-written in Python.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import uuid
from pathlib import Path
from typing import Any, Callable

from src.core.errors import RepositoryUnavailable, ScheduleNotFound
from src.data.models import (
    Agent,
    AgentStatus,
    Schedule,
    StatusGuard,
    TriggerAction,
    TriggerKey,
)

logger = logging.getLogger(__name__)

_SCHEMA = """
    CREATE TABLE IF NOT EXISTS schedules (
        id          TEXT    PRIMARY KEY,
        name        TEXT    NOT NULL,
        kind        TEXT    NOT NULL,
        active      INTEGER NOT NULL DEFAULT 1,
        is_default  INTEGER NOT NULL DEFAULT 0,
        is_open     INTEGER NOT NULL DEFAULT 0,
        document    TEXT    NOT NULL
    );
    CREATE TABLE IF NOT EXISTS schedule_triggers (
        schedule_id TEXT NOT NULL,
        day_of_week TEXT NOT NULL,
        time        TEXT NOT NULL,
        action      TEXT NOT NULL
    );
    CREATE INDEX IF NOT EXISTS idx_schedule_triggers_key
        ON schedule_triggers (day_of_week, time, action);
    CREATE TABLE IF NOT EXISTS schedule_departments (
        department_id TEXT PRIMARY KEY,
        schedule_id   TEXT NOT NULL
    );
    CREATE TABLE IF NOT EXISTS agents (
        id                     TEXT    PRIMARY KEY,
        status                 TEXT    NOT NULL DEFAULT 'not-available',
        status_system_modified INTEGER NOT NULL DEFAULT 0,
        manual_status          TEXT
    );
    CREATE TABLE IF NOT EXISTS agent_schedules (
        agent_id    TEXT NOT NULL,
        schedule_id TEXT NOT NULL,
        PRIMARY KEY (agent_id, schedule_id)
    );
"""


def _placeholders(values: list) -> str:
    return ", ".join("?" for _ in values)


class _SQLiteStore:
    """Connection handling shared by the schedule and agent stores."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from src.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.executescript(_SCHEMA)
        logger.debug("Business hour tables initialized at %s", self._db_path)

    async def _run(self, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return await asyncio.to_thread(fn, *args)
        except sqlite3.Error as exc:
            raise RepositoryUnavailable(f"SQLite error on {self._db_path}: {exc}") from exc


class ScheduleDB(_SQLiteStore):
    """SQLite-backed storage for business hour schedules."""

    def _row_to_schedule(self, conn: sqlite3.Connection, row: sqlite3.Row) -> Schedule:
        departments = [
            r["department_id"]
            for r in conn.execute(
                "SELECT department_id FROM schedule_departments WHERE schedule_id = ? "
                "ORDER BY department_id",
                (row["id"],),
            ).fetchall()
        ]
        schedule = Schedule.model_validate_json(row["document"])
        return schedule.model_copy(update={
            "id": row["id"],
            "is_default": bool(row["is_default"]),
            "department_ids": departments,
        })

    # -- writes --------------------------------------------------------------

    def _upsert(self, schedule: Schedule) -> str:
        with self._connect() as conn:
            if schedule.id:
                schedule_id = schedule.id
                cursor = conn.execute(
                    """
                    UPDATE schedules
                       SET name = ?, kind = ?, active = ?, is_default = ?, document = ?
                     WHERE id = ?
                    """,
                    (
                        schedule.name, schedule.kind.value, int(schedule.active),
                        int(schedule.is_default), schedule.model_dump_json(),
                        schedule_id,
                    ),
                )
                if cursor.rowcount == 0:
                    raise ScheduleNotFound(f"Schedule {schedule_id} not found")
            else:
                schedule_id = uuid.uuid4().hex
                stored = schedule.model_copy(update={"id": schedule_id})
                conn.execute(
                    """
                    INSERT INTO schedules (id, name, kind, active, is_default, document)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        schedule_id, schedule.name, schedule.kind.value,
                        int(schedule.active), int(schedule.is_default),
                        stored.model_dump_json(),
                    ),
                )

            conn.execute("DELETE FROM schedule_triggers WHERE schedule_id = ?", (schedule_id,))
            for window in schedule.open_windows():
                for boundary, action in (
                    (window.start, TriggerAction.OPEN),
                    (window.finish, TriggerAction.CLOSE),
                ):
                    if boundary.trigger is None:
                        continue
                    conn.execute(
                        "INSERT INTO schedule_triggers (schedule_id, day_of_week, time, action) "
                        "VALUES (?, ?, ?, ?)",
                        (schedule_id, boundary.trigger.day_of_week,
                         boundary.trigger.time, action.value),
                    )

            conn.execute("DELETE FROM schedule_departments WHERE schedule_id = ?", (schedule_id,))
            for department_id in schedule.department_ids:
                conn.execute(
                    "INSERT OR REPLACE INTO schedule_departments (department_id, schedule_id) "
                    "VALUES (?, ?)",
                    (department_id, schedule_id),
                )
        logger.info("Schedule %s '%s' saved", schedule_id, schedule.name)
        return schedule_id

    async def upsert(self, schedule: Schedule) -> str:
        """Insert a schedule (no id) or replace the stored document (with id)."""
        return await self._run(self._upsert, schedule)

    def _delete(self, schedule_id: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM schedule_triggers WHERE schedule_id = ?", (schedule_id,))
            conn.execute("DELETE FROM schedule_departments WHERE schedule_id = ?", (schedule_id,))
            conn.execute("DELETE FROM schedules WHERE id = ?", (schedule_id,))
        logger.info("Schedule %s deleted", schedule_id)

    async def delete(self, schedule_id: str) -> None:
        await self._run(self._delete, schedule_id)

    def _set_open(self, schedule_ids: list[str], is_open: bool) -> None:
        if not schedule_ids:
            return
        with self._connect() as conn:
            conn.execute(
                f"UPDATE schedules SET is_open = ? WHERE id IN ({_placeholders(schedule_ids)})",
                (int(is_open), *schedule_ids),
            )

    async def set_open(self, schedule_ids: list[str], is_open: bool) -> None:
        """Update the "currently open" projection of the given schedules."""
        await self._run(self._set_open, list(schedule_ids), is_open)

    def _remove_department(self, department_id: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "DELETE FROM schedule_departments WHERE department_id = ?", (department_id,),
            )

    async def remove_department(self, department_id: str) -> None:
        await self._run(self._remove_department, department_id)

    def _clear_default(self, schedule_id: str) -> None:
        with self._connect() as conn:
            conn.execute("UPDATE schedules SET is_default = 0 WHERE id = ?", (schedule_id,))

    async def clear_default(self, schedule_id: str) -> None:
        await self._run(self._clear_default, schedule_id)

    # -- reads ---------------------------------------------------------------

    def _fetch(self, query: str, params: tuple = ()) -> list[Schedule]:
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
            return [self._row_to_schedule(conn, r) for r in rows]

    async def get(self, schedule_id: str) -> Schedule | None:
        found = await self._run(
            self._fetch, "SELECT * FROM schedules WHERE id = ?", (schedule_id,),
        )
        return found[0] if found else None

    async def find_default(self) -> Schedule | None:
        found = await self._run(
            self._fetch, "SELECT * FROM schedules WHERE is_default = 1 ORDER BY id LIMIT 1",
        )
        return found[0] if found else None

    async def list_active(self) -> list[Schedule]:
        return await self._run(
            self._fetch, "SELECT * FROM schedules WHERE active = 1 ORDER BY name",
        )

    async def find_active_by_trigger(self, key: TriggerKey) -> list[Schedule]:
        return await self._run(
            self._fetch,
            """
            SELECT DISTINCT s.* FROM schedules s
              JOIN schedule_triggers t ON t.schedule_id = s.id
             WHERE s.active = 1 AND t.day_of_week = ? AND t.time = ? AND t.action = ?
            """,
            (key.day_of_week, key.time, key.action.value),
        )

    async def find_by_department(self, department_id: str) -> Schedule | None:
        found = await self._run(
            self._fetch,
            """
            SELECT s.* FROM schedules s
              JOIN schedule_departments d ON d.schedule_id = s.id
             WHERE d.department_id = ?
            """,
            (department_id,),
        )
        return found[0] if found else None

    def _triggers(self) -> list[tuple[str, TriggerKey]]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT t.schedule_id, t.day_of_week, t.time, t.action
                  FROM schedule_triggers t
                  JOIN schedules s ON s.id = t.schedule_id
                 WHERE s.active = 1
                 ORDER BY t.schedule_id, t.day_of_week, t.time, t.action
                """
            ).fetchall()
        return [
            (
                r["schedule_id"],
                TriggerKey(r["day_of_week"], r["time"], TriggerAction(r["action"])),
            )
            for r in rows
        ]

    async def find_active_schedules_needing_triggers(self) -> list[tuple[str, TriggerKey]]:
        """Return (schedule_id, trigger key) for every open-day boundary of active schedules."""
        return await self._run(self._triggers)


class AgentDB(_SQLiteStore):
    """SQLite-backed storage for the agent facets owned by the engine."""

    @staticmethod
    def _row_to_agent(row: sqlite3.Row, schedule_ids: list[str]) -> Agent:
        return Agent(
            id=row["id"],
            schedule_ids=schedule_ids,
            status=AgentStatus(row["status"]),
            status_system_modified=bool(row["status_system_modified"]),
            manual_status=AgentStatus(row["manual_status"]) if row["manual_status"] else None,
        )

    def _add(self, agent_id: str, status: AgentStatus) -> Agent:
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO agents (id, status, status_system_modified) VALUES (?, ?, 0)",
                (agent_id, status.value),
            )
        logger.info("Agent %s registered with status %s", agent_id, status.value)
        return Agent(id=agent_id, status=status)

    async def add(
        self, agent_id: str, status: AgentStatus = AgentStatus.NOT_AVAILABLE,
    ) -> Agent:
        """Register an agent record (normally done by the agent subsystem)."""
        return await self._run(self._add, agent_id, status)

    def _get(self, agent_id: str) -> Agent | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM agents WHERE id = ?", (agent_id,)).fetchone()
            if row is None:
                return None
            schedule_ids = [
                r["schedule_id"]
                for r in conn.execute(
                    "SELECT schedule_id FROM agent_schedules WHERE agent_id = ? "
                    "ORDER BY schedule_id",
                    (agent_id,),
                ).fetchall()
            ]
        return self._row_to_agent(row, schedule_ids)

    async def get(self, agent_id: str) -> Agent | None:
        return await self._run(self._get, agent_id)

    def _assign(self, agent_ids: list[str], schedule_id: str) -> None:
        with self._connect() as conn:
            conn.executemany(
                "INSERT OR IGNORE INTO agent_schedules (agent_id, schedule_id) VALUES (?, ?)",
                [(agent_id, schedule_id) for agent_id in agent_ids],
            )
        logger.info("Schedule %s assigned to %d agents", schedule_id, len(agent_ids))

    async def assign_schedule(self, agent_ids: list[str], schedule_id: str) -> None:
        await self._run(self._assign, list(agent_ids), schedule_id)

    def _unassign(self, schedule_id: str, agent_ids: list[str] | None) -> list[str]:
        query = "SELECT agent_id FROM agent_schedules WHERE schedule_id = ?"
        params: list = [schedule_id]
        if agent_ids is not None:
            if not agent_ids:
                return []
            query += f" AND agent_id IN ({_placeholders(agent_ids)})"
            params.extend(agent_ids)

        with self._connect() as conn:
            affected = [r["agent_id"] for r in conn.execute(query, params).fetchall()]
            if affected:
                conn.execute(
                    "DELETE FROM agent_schedules WHERE schedule_id = ? "
                    f"AND agent_id IN ({_placeholders(affected)})",
                    (schedule_id, *affected),
                )
        logger.info("Schedule %s unassigned from %d agents", schedule_id, len(affected))
        return affected

    async def unassign_schedule(
        self, schedule_id: str, agent_ids: list[str] | None = None,
    ) -> list[str]:
        """Detach a schedule from the given agents (or all). Returns who was affected."""
        return await self._run(
            self._unassign, schedule_id, list(agent_ids) if agent_ids is not None else None,
        )

    def _unassign_all(self, agent_ids: list[str]) -> None:
        if not agent_ids:
            return
        with self._connect() as conn:
            conn.execute(
                f"DELETE FROM agent_schedules WHERE agent_id IN ({_placeholders(agent_ids)})",
                agent_ids,
            )

    async def unassign_all_schedules(self, agent_ids: list[str]) -> None:
        await self._run(self._unassign_all, list(agent_ids))

    def _find_ids(self, schedule_ids: list[str]) -> list[str]:
        if not schedule_ids:
            return []
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT DISTINCT agent_id FROM agent_schedules "
                f"WHERE schedule_id IN ({_placeholders(schedule_ids)}) ORDER BY agent_id",
                schedule_ids,
            ).fetchall()
        return [r["agent_id"] for r in rows]

    async def find_ids_by_schedules(self, schedule_ids: list[str]) -> list[str]:
        return await self._run(self._find_ids, list(schedule_ids))

    def _set_status(
        self,
        agent_id: str,
        status: AgentStatus,
        set_by_engine: bool,
        guard: StatusGuard | None,
    ) -> bool:
        marker = int(set_by_engine)
        query = """
            UPDATE agents SET status = ?, status_system_modified = ?
             WHERE id = ?
               AND NOT (status = ? AND status_system_modified = ?)
        """
        params: list = [status.value, marker, agent_id, status.value, marker]

        if guard is not None:
            if guard.engine_managed_only:
                query += " AND status_system_modified = 1"
            if guard.skip_manual_status is not None:
                query += " AND (manual_status IS NULL OR manual_status != ?)"
                params.append(guard.skip_manual_status.value)
            if guard.outside_open_windows_only:
                query += """
                   AND NOT EXISTS (
                       SELECT 1 FROM agent_schedules a
                         JOIN schedules s ON s.id = a.schedule_id
                        WHERE a.agent_id = agents.id AND s.active = 1 AND s.is_open = 1
                   )
                """

        with self._connect() as conn:
            cursor = conn.execute(query, params)
        changed = cursor.rowcount > 0
        if changed:
            logger.debug("Agent %s status set to %s", agent_id, status.value)
        return changed

    async def set_status(
        self,
        agent_id: str,
        status: AgentStatus,
        set_by_engine: bool = True,
        guard: StatusGuard | None = None,
    ) -> bool:
        """Conditionally write an agent's status. Returns True if a row changed.

        A write that would leave both status and marker unchanged is skipped.
        """
        return await self._run(self._set_status, agent_id, status, set_by_engine, guard)

    def _set_manual(self, agent_id: str, status: AgentStatus) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE agents SET status = ?, manual_status = ?, status_system_modified = 0 "
                "WHERE id = ?",
                (status.value, status.value, agent_id),
            )
        logger.info("Agent %s manually set status %s", agent_id, status.value)

    async def set_manual_status(self, agent_id: str, status: AgentStatus) -> None:
        await self._run(self._set_manual, agent_id, status)

    def _clear_markers(self, agent_ids: list[str] | None) -> int:
        query = "UPDATE agents SET status_system_modified = 0 WHERE status_system_modified = 1"
        params: list = []
        if agent_ids is not None:
            if not agent_ids:
                return 0
            query += f" AND id IN ({_placeholders(agent_ids)})"
            params.extend(agent_ids)
        with self._connect() as conn:
            cursor = conn.execute(query, params)
        return cursor.rowcount

    async def clear_engine_markers(self, agent_ids: list[str] | None = None) -> int:
        """Hand status control back to the given agents (or all).

        Returns how many were engine-managed.
        """
        return await self._run(
            self._clear_markers, list(agent_ids) if agent_ids is not None else None,
        )

    def _within(self, agent_id: str) -> bool:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT 1 FROM agent_schedules a
                  JOIN schedules s ON s.id = a.schedule_id
                 WHERE a.agent_id = ? AND s.active = 1 AND s.is_open = 1
                 LIMIT 1
                """,
                (agent_id,),
            ).fetchone()
        return row is not None

    async def is_within_active_window(self, agent_id: str) -> bool:
        return await self._run(self._within, agent_id)
