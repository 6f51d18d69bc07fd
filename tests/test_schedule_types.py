"""Tests for src.core.schedule_types — the schedule save/remove gate."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.core.behavior import BehaviorMode, BusinessHourBehavior
from src.core.errors import (
    DefaultScheduleConflict,
    DefaultScheduleRemovalError,
    FinishEqualsStart,
    ScheduleNotFound,
)
from src.core.schedule_types import SCHEDULE_TYPES, ScheduleTypeStrategy
from src.data.models import AgentStatus, ScheduleKind

MONDAY_OPEN = datetime(2026, 1, 12, 3, 0, tzinfo=timezone.utc)   # 12:00 Tokyo


def _draft(name="Support-JP", kind="custom", start="09:00", finish="17:00", **extra):
    """An operator edit as it arrives from the API layer."""
    draft = {
        "name": name,
        "kind": kind,
        "active": True,
        "timezone": {"name": "Asia/Tokyo"},
        "windows": [
            {"day": "Monday", "open": True, "start": {"time": start}, "finish": {"time": finish}},
            {"day": "Sunday", "open": False, "start": {"time": "00:00"}, "finish": {"time": "00:00"}},
        ],
    }
    draft.update(extra)
    return draft


@pytest.fixture
def behavior(schedule_db, agent_db):
    return BusinessHourBehavior(
        schedule_db, agent_db, mode=BehaviorMode.MULTIPLE, clock=lambda: MONDAY_OPEN,
    )


@pytest.fixture
def types(schedule_db, behavior):
    return ScheduleTypeStrategy(schedule_db, behavior, server_offset_hours=0)


class TestSave:
    @pytest.mark.asyncio
    async def test_insert_normalizes_and_returns_id(self, types, schedule_db):
        schedule_id = await types.save(_draft())

        stored = await schedule_db.get(schedule_id)
        monday = stored.windows[0]
        assert monday.start.time == "09:00"
        assert monday.start.utc.day_of_week == "Monday"
        assert monday.start.utc.time == "00:00"
        assert monday.finish.trigger.time == "08:00"
        assert stored.timezone.utc == "+09:00"

    @pytest.mark.asyncio
    async def test_active_is_coerced(self, types, schedule_db):
        schedule_id = await types.save(_draft(active=0))
        assert (await schedule_db.get(schedule_id)).active is False

    @pytest.mark.asyncio
    async def test_invalid_window_writes_nothing(self, types, schedule_db):
        with pytest.raises(FinishEqualsStart) as exc_info:
            await types.save(_draft(start="10:00", finish="10:00"))
        assert exc_info.value.code == "error-business-hour-finish-time-equals-start-time"
        assert await schedule_db.list_active() == []

    @pytest.mark.asyncio
    async def test_update_by_id(self, types, schedule_db):
        schedule_id = await types.save(_draft())
        assert await types.save(_draft(id=schedule_id, name="Support-JP v2")) == schedule_id
        assert (await schedule_db.get(schedule_id)).name == "Support-JP v2"

    @pytest.mark.asyncio
    async def test_update_unknown_id(self, types):
        with pytest.raises(ScheduleNotFound):
            await types.save(_draft(id="missing"))

    @pytest.mark.asyncio
    async def test_only_one_default(self, types, schedule_db):
        first = await types.save(_draft(name="Default", kind="default", department_ids=["x"]))
        second = await types.save(_draft(name="Default v2", kind="default"))

        assert second == first
        default = await schedule_db.find_default()
        assert default.name == "Default v2"
        assert default.department_ids == []

    @pytest.mark.asyncio
    async def test_custom_cannot_become_second_default(self, types, schedule_db):
        custom_id = await types.save(_draft(name="Support-JP"))
        default_id = await types.save(_draft(name="Default", kind="default"))

        with pytest.raises(DefaultScheduleConflict) as exc_info:
            await types.save(_draft(name="Support-JP", kind="default", id=custom_id))
        assert exc_info.value.code == "error-business-hour-default-already-exists"

        assert (await schedule_db.find_default()).id == default_id
        assert (await schedule_db.get(custom_id)).is_default is False

    @pytest.mark.asyncio
    async def test_default_cannot_be_saved_as_custom(self, types, schedule_db):
        default_id = await types.save(_draft(name="Default", kind="default"))

        with pytest.raises(DefaultScheduleRemovalError):
            await types.save(_draft(name="Default", kind="custom", id=default_id))

        assert (await schedule_db.find_default()).id == default_id

    @pytest.mark.asyncio
    async def test_default_saved_by_its_own_id(self, types, schedule_db):
        default_id = await types.save(_draft(name="Default", kind="default"))
        renamed = _draft(name="Default v2", kind="default", id=default_id)
        assert await types.save(renamed) == default_id
        assert (await schedule_db.find_default()).name == "Default v2"

    @pytest.mark.asyncio
    async def test_custom_is_never_default(self, types, schedule_db):
        schedule_id = await types.save(_draft(is_default=True))
        assert (await schedule_db.get(schedule_id)).is_default is False
        assert await schedule_db.find_default() is None

    @pytest.mark.asyncio
    async def test_missing_timezone_falls_back_to_setting(self, schedule_db):
        types = ScheduleTypeStrategy(schedule_db, AsyncMock(), server_offset_hours=0)
        fake_settings = MagicMock(DEFAULT_TIMEZONE="Asia/Tokyo")
        with patch("src.core.schedule_types.settings", fake_settings):
            schedule_id = await types.save(_draft(timezone={}))

        stored = await schedule_db.get(schedule_id)
        assert stored.timezone.name == "Asia/Tokyo"
        assert stored.windows[0].start.utc.time == "00:00"

    @pytest.mark.asyncio
    async def test_after_save_receives_stored_schedule(self, schedule_db):
        behavior = AsyncMock()
        types = ScheduleTypeStrategy(schedule_db, behavior, server_offset_hours=0)

        schedule_id = await types.save(_draft())

        behavior.after_save.assert_awaited_once()
        saved = behavior.after_save.call_args.args[0]
        assert saved.id == schedule_id
        assert saved.windows[0].start.utc is not None

    @pytest.mark.asyncio
    async def test_saving_open_schedule_syncs_its_agents(self, types, schedule_db, agent_db):
        schedule_id = await types.save(_draft())
        await agent_db.add("a1")
        await agent_db.assign_schedule(["a1"], schedule_id)

        await types.save(_draft(id=schedule_id))

        assert (await agent_db.get("a1")).status is AgentStatus.AVAILABLE


class TestGetAndRemove:
    @pytest.mark.asyncio
    async def test_get_by_id(self, types):
        schedule_id = await types.save(_draft())
        assert (await types.get_by_id(schedule_id)).name == "Support-JP"
        assert await types.get_by_id("missing") is None

    @pytest.mark.asyncio
    async def test_remove_detaches_then_deletes(self, types, schedule_db, agent_db):
        schedule_id = await types.save(_draft(department_ids=["sales"]))
        await agent_db.add("a1")
        await agent_db.assign_schedule(["a1"], schedule_id)

        await types.remove_by_id(schedule_id)

        assert await types.get_by_id(schedule_id) is None
        assert await schedule_db.find_by_department("sales") is None
        assert (await agent_db.get("a1")).schedule_ids == []

    @pytest.mark.asyncio
    async def test_remove_unknown(self, types):
        with pytest.raises(ScheduleNotFound):
            await types.remove_by_id("missing")

    @pytest.mark.asyncio
    async def test_default_cannot_be_removed(self, types, schedule_db):
        default_id = await types.save(_draft(kind="default"))
        with pytest.raises(DefaultScheduleRemovalError):
            await types.remove_by_id(default_id)
        assert await schedule_db.get(default_id) is not None


def test_registry_covers_every_kind():
    assert set(SCHEDULE_TYPES) == set(ScheduleKind)
    assert SCHEDULE_TYPES[ScheduleKind.DEFAULT].removable is False
    assert SCHEDULE_TYPES[ScheduleKind.CUSTOM].removable is True
