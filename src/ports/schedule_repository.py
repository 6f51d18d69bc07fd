"""Schedule repository port — abstract interface for schedule persistence.

Core modules depend on this protocol, never on a specific store.
Implementations raise ``RepositoryUnavailable`` on transient store failures.
"""

from __future__ import annotations

from typing import Protocol

from src.data.models import Schedule, TriggerKey


class ScheduleRepository(Protocol):
    """Abstract schedule store used by core modules."""

    async def get(self, schedule_id: str) -> Schedule | None: ...

    async def upsert(self, schedule: Schedule) -> str: ...

    async def delete(self, schedule_id: str) -> None: ...

    async def find_default(self) -> Schedule | None: ...

    async def list_active(self) -> list[Schedule]: ...

    async def find_active_schedules_needing_triggers(
        self,
    ) -> list[tuple[str, TriggerKey]]: ...

    async def find_active_by_trigger(self, key: TriggerKey) -> list[Schedule]: ...

    async def set_open(self, schedule_ids: list[str], is_open: bool) -> None: ...

    async def find_by_department(self, department_id: str) -> Schedule | None: ...

    async def remove_department(self, department_id: str) -> None: ...

    async def clear_default(self, schedule_id: str) -> None: ...
