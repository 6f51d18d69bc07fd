"""Tests for src.core.lifecycle — event → behavior dispatch."""

from unittest.mock import AsyncMock

import pytest

from src.core.lifecycle import LifecycleHooks
from src.data.models import AgentStatus


@pytest.fixture
def behavior():
    return AsyncMock()


@pytest.fixture
def types():
    return AsyncMock()


@pytest.fixture
def agents():
    return AsyncMock()


@pytest.fixture
def hooks(behavior, types, agents):
    return LifecycleHooks(behavior, types, agents)


class TestAgentAndDepartmentEvents:
    @pytest.mark.asyncio
    async def test_agent_created(self, hooks, behavior):
        await hooks.agent_created("a1")
        behavior.on_new_agent_created.assert_awaited_once_with("a1")

    @pytest.mark.asyncio
    async def test_agents_added_to_department(self, hooks, behavior):
        await hooks.agents_added_to_department("sales", ("a1", "a2"))
        behavior.on_agent_added_to_group.assert_awaited_once_with("sales", ["a1", "a2"])

    @pytest.mark.asyncio
    async def test_agents_removed_from_department(self, hooks, behavior):
        await hooks.agents_removed_from_department("sales", ["a1"])
        behavior.on_agent_removed_from_group.assert_awaited_once_with("sales", ["a1"])

    @pytest.mark.asyncio
    async def test_department_removed(self, hooks, behavior):
        await hooks.department_removed("sales", ["a1"])
        behavior.on_group_removed.assert_awaited_once_with("sales", ["a1"])


class TestScheduleAndFeatureEvents:
    @pytest.mark.asyncio
    async def test_schedule_saved_goes_through_types(self, hooks, types):
        types.save.return_value = "s1"
        assert await hooks.schedule_saved({"name": "Support"}) == "s1"
        types.save.assert_awaited_once_with({"name": "Support"})

    @pytest.mark.asyncio
    async def test_schedule_removed(self, hooks, types):
        await hooks.schedule_removed("s1")
        types.remove_by_id.assert_awaited_once_with("s1")

    @pytest.mark.asyncio
    async def test_feature_disabled(self, hooks, behavior):
        await hooks.feature_disabled()
        behavior.on_disable.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_feature_enabled(self, hooks, behavior):
        await hooks.feature_enabled()
        behavior.on_start.assert_awaited_once()


class TestStatusChangeRequests:
    @pytest.mark.asyncio
    async def test_allowed_outside_business_hours(self, hooks, behavior, agents):
        behavior.can_agent_change_status_manually.return_value = True
        assert await hooks.agent_status_change_requested("a1", AgentStatus.NOT_AVAILABLE) is True
        agents.set_manual_status.assert_awaited_once_with("a1", AgentStatus.NOT_AVAILABLE)

    @pytest.mark.asyncio
    async def test_refused_inside_business_hours(self, hooks, behavior, agents):
        behavior.can_agent_change_status_manually.return_value = False
        assert await hooks.agent_status_change_requested("a1", AgentStatus.NOT_AVAILABLE) is False
        agents.set_manual_status.assert_not_awaited()
