"""Lifecycle hooks — entry points for the agent-management subsystem.

Maps agent, department, schedule and feature events onto behavior and
schedule-type operations. No logic of its own beyond shaping arguments.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from src.data.models import AgentStatus, Schedule

if TYPE_CHECKING:
    from src.core.behavior import BusinessHourBehavior
    from src.core.schedule_types import ScheduleTypeStrategy
    from src.ports.agent_repository import AgentRepository

logger = logging.getLogger(__name__)


class LifecycleHooks:
    def __init__(
        self,
        behavior: BusinessHourBehavior,
        types: ScheduleTypeStrategy,
        agents: AgentRepository,
    ) -> None:
        self._behavior = behavior
        self._types = types
        self._agents = agents

    async def agent_created(self, agent_id: str) -> None:
        await self._behavior.on_new_agent_created(agent_id)

    async def agents_added_to_department(self, department_id: str, agent_ids: list[str]) -> None:
        await self._behavior.on_agent_added_to_group(department_id, list(agent_ids))

    async def agents_removed_from_department(
        self, department_id: str, agent_ids: list[str],
    ) -> None:
        await self._behavior.on_agent_removed_from_group(department_id, list(agent_ids))

    async def department_removed(self, department_id: str, agent_ids: list[str]) -> None:
        await self._behavior.on_group_removed(department_id, list(agent_ids))

    async def schedule_saved(self, draft: Schedule | dict[str, Any]) -> str:
        return await self._types.save(draft)

    async def schedule_removed(self, schedule_id: str) -> None:
        await self._types.remove_by_id(schedule_id)

    async def feature_disabled(self) -> None:
        await self._behavior.on_disable()

    async def feature_enabled(self) -> None:
        await self._behavior.on_start()

    async def agent_status_change_requested(self, agent_id: str, status: AgentStatus) -> bool:
        """Apply an agent's own status choice if no schedule currently holds them online."""
        if not await self._behavior.can_agent_change_status_manually(agent_id):
            logger.warning(
                "Agent %s may not change status to %s while inside business hours",
                agent_id, status.value,
            )
            return False
        await self._agents.set_manual_status(agent_id, status)
        return True
