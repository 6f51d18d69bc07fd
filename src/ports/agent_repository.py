"""Agent repository port — abstract interface for agent availability state.

The agent record itself belongs to the agent-management subsystem; this
protocol covers only the facets the business hour engine touches.
"""

from __future__ import annotations

from typing import Protocol

from src.data.models import Agent, AgentStatus, StatusGuard


class AgentRepository(Protocol):
    """Abstract agent store used by core modules."""

    async def get(self, agent_id: str) -> Agent | None: ...

    async def assign_schedule(self, agent_ids: list[str], schedule_id: str) -> None: ...

    async def unassign_schedule(
        self, schedule_id: str, agent_ids: list[str] | None = None,
    ) -> list[str]: ...

    async def unassign_all_schedules(self, agent_ids: list[str]) -> None: ...

    async def find_ids_by_schedules(self, schedule_ids: list[str]) -> list[str]: ...

    async def set_status(
        self,
        agent_id: str,
        status: AgentStatus,
        set_by_engine: bool = True,
        guard: StatusGuard | None = None,
    ) -> bool: ...

    async def set_manual_status(self, agent_id: str, status: AgentStatus) -> None: ...

    async def clear_engine_markers(self, agent_ids: list[str] | None = None) -> int: ...

    async def is_within_active_window(self, agent_id: str) -> bool: ...
