"""
Business Hours Engine — Behavior.

Reacts to trigger firings by opening/closing schedules and keeps every
affected agent's live status in line with the schedules assigned to them.

Schedule state (Disabled / Open / Closed) is never held here: Disabled means
``active`` is false, Open/Closed is the store's "currently open" projection,
which every operation re-derives rather than patches. Any operation can
therefore be retried wholesale after a RepositoryUnavailable.

Two variants share this class and are selected by ``BehaviorMode``:

* SINGLE — one default schedule applies to everyone; department events are
  ignored and only the default schedule produces triggers.
* MULTIPLE — departments carry their own custom schedules; agents follow the
  schedules of the departments they belong to, falling back to the default.

Concurrency: this module takes no locks. The job scheduler must not run two
firings of the same trigger key at once. Status writes rely on the
repository's atomic guarded updates to stay correct against concurrent
firings of different keys and manual status changes.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Callable

from src.core.errors import AgentNotFound
from src.core.time_normalizer import filter_open_schedules, is_open_at
from src.data.models import (
    AgentStatus,
    Schedule,
    StatusGuard,
    TriggerAction,
    TriggerKey,
)

if TYPE_CHECKING:
    from src.ports.agent_repository import AgentRepository
    from src.ports.schedule_repository import ScheduleRepository

logger = logging.getLogger(__name__)

# A manual "not available" is never overridden when a schedule opens.
_OPEN_GUARD = StatusGuard(skip_manual_status=AgentStatus.NOT_AVAILABLE)
# Closing only takes agents down once none of their schedules is still open.
_CLOSE_GUARD = StatusGuard(outside_open_windows_only=True)
# Explicit status changes only touch agents the engine already manages.
_ENGINE_GUARD = StatusGuard(
    engine_managed_only=True,
    skip_manual_status=AgentStatus.NOT_AVAILABLE,
)


class BehaviorMode(str, Enum):
    SINGLE = "single"
    MULTIPLE = "multiple"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BusinessHourBehavior:
    """Open/close state machine and agent availability synchronizer."""

    def __init__(
        self,
        schedules: ScheduleRepository,
        agents: AgentRepository,
        mode: BehaviorMode = BehaviorMode.SINGLE,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._schedules = schedules
        self._agents = agents
        self.mode = mode
        self._clock = clock

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    async def find_trigger_keys(self) -> set[TriggerKey]:
        """Every (day, time, action) the job scheduler must register."""
        pairs = await self._schedules.find_active_schedules_needing_triggers()
        if self.mode is BehaviorMode.SINGLE:
            default = await self._schedules.find_default()
            if default is None:
                return set()
            pairs = [(sid, key) for sid, key in pairs if sid == default.id]
        return {key for _, key in pairs}

    async def on_open(self, day: str, time: str) -> None:
        """Open every active schedule starting at (day, time) and bring its agents online."""
        schedules = await self._trigger_targets(TriggerKey(day, time, TriggerAction.OPEN))
        if not schedules:
            logger.debug("No schedule opens at %s %s", day, time)
            return

        schedule_ids = [s.id for s in schedules]
        await self._schedules.set_open(schedule_ids, True)

        changed = 0
        for agent_id in await self._agents.find_ids_by_schedules(schedule_ids):
            if await self._agents.set_status(agent_id, AgentStatus.AVAILABLE, guard=_OPEN_GUARD):
                changed += 1
        logger.info(
            "Opened %d schedule(s) at %s %s, %d agent(s) made available",
            len(schedule_ids), day, time, changed,
        )

    async def on_close(self, day: str, time: str) -> None:
        """Close every active schedule finishing at (day, time).

        An agent goes offline only once all of its assigned active schedules
        are closed; the repository checks that inside the same UPDATE.
        """
        schedules = await self._trigger_targets(TriggerKey(day, time, TriggerAction.CLOSE))
        if not schedules:
            logger.debug("No schedule closes at %s %s", day, time)
            return

        schedule_ids = [s.id for s in schedules]
        await self._schedules.set_open(schedule_ids, False)

        changed = 0
        for agent_id in await self._agents.find_ids_by_schedules(schedule_ids):
            if await self._agents.set_status(
                agent_id, AgentStatus.NOT_AVAILABLE, guard=_CLOSE_GUARD,
            ):
                changed += 1
        logger.info(
            "Closed %d schedule(s) at %s %s, %d agent(s) made not available",
            len(schedule_ids), day, time, changed,
        )

    async def _trigger_targets(self, key: TriggerKey) -> list[Schedule]:
        schedules = await self._schedules.find_active_by_trigger(key)
        if self.mode is BehaviorMode.SINGLE:
            schedules = [s for s in schedules if s.is_default]
        return schedules

    # ------------------------------------------------------------------
    # Feature and schedule lifecycle
    # ------------------------------------------------------------------

    async def on_disable(self) -> None:
        """Hand status control back to the agents; current statuses are kept."""
        cleared = await self._agents.clear_engine_markers()
        logger.info("Business hours disabled, engine marker cleared on %d agent(s)", cleared)

    async def on_start(self) -> None:
        """Re-derive which schedules are open right now and re-sync their agents."""
        schedules = await self._schedules.list_active()
        if self.mode is BehaviorMode.SINGLE:
            schedules = [s for s in schedules if s.is_default]

        now = self._clock()
        open_ids = {s.id for s in filter_open_schedules(schedules, now)}
        closed_ids = [s.id for s in schedules if s.id not in open_ids]
        await self._schedules.set_open(sorted(open_ids), True)
        await self._schedules.set_open(closed_ids, False)

        agent_ids = await self._agents.find_ids_by_schedules([s.id for s in schedules])
        for agent_id in agent_ids:
            await self._sync_agent(agent_id)
        logger.info(
            "Business hours started: %d open, %d closed, %d agent(s) synced",
            len(open_ids), len(closed_ids), len(agent_ids),
        )

    async def after_save(self, schedule: Schedule) -> None:
        """Bring the open projection and agents in line with a freshly saved schedule."""
        if self.mode is BehaviorMode.SINGLE and not schedule.is_default:
            return

        if not schedule.active:
            await self._schedules.set_open([schedule.id], False)
            agent_ids = await self._agents.find_ids_by_schedules([schedule.id])
            cleared = await self._agents.clear_engine_markers(agent_ids)
            logger.info(
                "Schedule %s saved as inactive, engine marker cleared on %d agent(s)",
                schedule.id, cleared,
            )
            return

        is_open = is_open_at(schedule, self._clock())
        await self._schedules.set_open([schedule.id], is_open)
        for agent_id in await self._agents.find_ids_by_schedules([schedule.id]):
            await self._sync_agent(agent_id)
        logger.info("Schedule %s saved, currently %s", schedule.id, "open" if is_open else "closed")

    async def on_remove_schedule(self, schedule: Schedule) -> None:
        """Detach a schedule from every agent and department before it is deleted."""
        removed = await self._agents.unassign_schedule(schedule.id)
        for department_id in schedule.department_ids:
            await self._schedules.remove_department(department_id)
        # Only reachable for direct callers, ScheduleTypeStrategy refuses to remove the default.
        if schedule.is_default:
            await self._schedules.clear_default(schedule.id)

        await self._fallback_to_default(removed, excluding=schedule.id)
        for agent_id in removed:
            await self._sync_agent(agent_id)
        logger.info("Schedule %s detached from %d agent(s)", schedule.id, len(removed))

    # ------------------------------------------------------------------
    # Departments
    # ------------------------------------------------------------------

    async def on_agent_added_to_group(self, group_id: str, agent_ids: list[str]) -> None:
        if self.mode is BehaviorMode.SINGLE or not agent_ids:
            return

        schedule = await self._schedules.find_by_department(group_id)
        if schedule is None:
            schedule = await self._schedules.find_default()
            if schedule is None:
                logger.debug("Department %s has no schedule and there is no default", group_id)
                return

        await self._agents.assign_schedule(agent_ids, schedule.id)
        for agent_id in agent_ids:
            await self._sync_agent(agent_id)
        logger.info(
            "%d agent(s) added to department %s follow schedule %s",
            len(agent_ids), group_id, schedule.id,
        )

    async def on_agent_removed_from_group(self, group_id: str, agent_ids: list[str]) -> None:
        if self.mode is BehaviorMode.SINGLE or not agent_ids:
            return

        schedule = await self._schedules.find_by_department(group_id)
        if schedule is None:
            logger.debug("Department %s has no schedule, nothing to detach", group_id)
            return

        removed = await self._agents.unassign_schedule(schedule.id, agent_ids)
        await self._fallback_to_default(removed, excluding=schedule.id)
        for agent_id in removed:
            await self._sync_agent(agent_id)
        logger.info(
            "%d agent(s) removed from department %s no longer follow schedule %s",
            len(removed), group_id, schedule.id,
        )

    async def on_group_removed(self, group_id: str, agent_ids: list[str]) -> None:
        if self.mode is BehaviorMode.SINGLE:
            return
        await self.on_agent_removed_from_group(group_id, agent_ids)
        await self._schedules.remove_department(group_id)
        logger.info("Department %s detached from its schedule", group_id)

    # ------------------------------------------------------------------
    # Agents
    # ------------------------------------------------------------------

    async def on_new_agent_created(self, agent_id: str) -> None:
        """Give a new agent the default schedule's current availability.

        Open default: assign it and make the agent available.
        Closed default: only mark the agent not available, without assigning
        the schedule, so the agent keeps manual control of their status.
        """
        logger.debug("Executing on_new_agent_created for agent %s", agent_id)
        await self._require_agent(agent_id)

        default = await self._schedules.find_default()
        if default is None:
            logger.debug("No default business hour found for agent %s", agent_id)
            return

        if not is_open_at(default, self._clock()):
            logger.debug(
                "Default business hour is closed, setting agent %s to %s",
                agent_id, AgentStatus.NOT_AVAILABLE.value,
            )
            await self._agents.set_status(agent_id, AgentStatus.NOT_AVAILABLE, set_by_engine=False)
            return

        await self._schedules.set_open([default.id], True)
        await self._agents.assign_schedule([agent_id], default.id)
        await self._agents.set_status(agent_id, AgentStatus.AVAILABLE, guard=_OPEN_GUARD)
        logger.debug("Setting agent %s to status %s", agent_id, AgentStatus.AVAILABLE.value)

    async def can_agent_change_status_manually(self, agent_id: str) -> bool:
        """Manual changes are refused while any assigned schedule expects the agent online."""
        await self._require_agent(agent_id)
        return not await self._agents.is_within_active_window(agent_id)

    async def set_agent_status(self, agent_id: str, status: AgentStatus) -> bool:
        """Engine-side status change for an engine-managed agent.

        Agents who chose "not available" themselves are left alone, and a write
        that would change nothing is skipped by the repository.
        """
        return await self._agents.set_status(agent_id, status, guard=_ENGINE_GUARD)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _require_agent(self, agent_id: str) -> None:
        if await self._agents.get(agent_id) is None:
            raise AgentNotFound(f"Agent {agent_id} not found")

    async def _sync_agent(self, agent_id: str) -> bool:
        agent = await self._agents.get(agent_id)
        if agent is None or not agent.schedule_ids:
            return False
        if await self._agents.is_within_active_window(agent_id):
            return await self._agents.set_status(agent_id, AgentStatus.AVAILABLE, guard=_OPEN_GUARD)
        return await self._agents.set_status(
            agent_id, AgentStatus.NOT_AVAILABLE, guard=_CLOSE_GUARD,
        )

    async def _fallback_to_default(self, agent_ids: list[str], excluding: str) -> None:
        if not agent_ids:
            return
        default = await self._schedules.find_default()
        if default is None or default.id == excluding:
            return

        orphans = []
        for agent_id in agent_ids:
            agent = await self._agents.get(agent_id)
            if agent is not None and not agent.schedule_ids:
                orphans.append(agent_id)
        if orphans:
            await self._agents.assign_schedule(orphans, default.id)


def create_behavior(
    schedules: ScheduleRepository,
    agents: AgentRepository,
    mode: str | None = None,
    clock: Callable[[], datetime] = _utcnow,
) -> BusinessHourBehavior:
    """Return the behavior variant matching BUSINESS_HOUR_MODE (or ``mode``)."""
    if mode is None:
        from src.config import settings
        mode = settings.BUSINESS_HOUR_MODE

    try:
        behavior_mode = BehaviorMode(mode.lower())
    except ValueError:
        raise ValueError(f"Unknown BUSINESS_HOUR_MODE: {mode!r}") from None

    return BusinessHourBehavior(schedules, agents, mode=behavior_mode, clock=clock)
