import re
from datetime import datetime, timedelta, timezone

import pytest

from session_agent.builtin_tools import default_catalog, get_weather_information
from session_agent.executor import Failure, Success, ToolExecutor
from session_agent.scheduler import SchedulerStore
from session_agent.session import SessionContext
from session_agent.state import SessionStateStore
from session_agent.storage import InMemoryStore

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def context():
    store = InMemoryStore()
    return SessionContext(
        "s1",
        SessionStateStore(store, "s1"),
        SchedulerStore(store, "s1", clock=lambda: NOW),
    )


@pytest.fixture
def executor():
    return ToolExecutor(default_catalog())


def task_id_from(outcome):
    return re.match(r"Task (\S+) scheduled", outcome.value).group(1)


class TestCatalog:
    def test_tools(self):
        catalog = default_catalog()

        assert sorted(catalog.names) == [
            "cancelScheduledTask",
            "getLocalTime",
            "getScheduledTasks",
            "getWeatherInformation",
            "scheduleTask",
            "setClimberProfile",
        ]
        assert catalog.requires_confirmation("getWeatherInformation")
        assert catalog.confirmation_for("getWeatherInformation") is get_weather_information

    def test_schedule_input_schema_lists_trigger_kinds(self):
        schema = default_catalog().get("scheduleTask").schema()

        assert set(schema["required"]) == {"description", "when"}


class TestLocalTimeAndWeather:
    @pytest.mark.asyncio
    async def test_local_time(self, executor, context):
        outcome = await executor.execute("getLocalTime", {"location": "Paris"}, context)

        assert outcome == Success("10am")

    @pytest.mark.asyncio
    async def test_weather_after_approval(self, executor, context):
        outcome = await executor.execute_confirmed(
            "getWeatherInformation", {"city": "Lyon"}, context
        )

        assert outcome == Success("The weather in Lyon is sunny")


class TestScheduling:
    @pytest.mark.asyncio
    async def test_schedule_cancel_then_list(self, executor, context):
        at = (NOW + timedelta(days=1)).isoformat()

        scheduled = await executor.execute(
            "scheduleTask",
            {"description": "Call mom", "when": {"kind": "at", "at": at}},
            context,
        )
        assert scheduled.ok
        assert 'for type "at"' in scheduled.value
        task_id = task_id_from(scheduled)

        canceled = await executor.execute("cancelScheduledTask", {"task_id": task_id}, context)
        assert canceled == Success(f"Task {task_id} has been successfully canceled.")

        listed = await executor.execute("getScheduledTasks", {}, context)
        assert [(t["id"], t["description"], t["status"]) for t in listed.value] == [
            (task_id, "Call mom", "canceled")
        ]

    @pytest.mark.asyncio
    async def test_empty_list(self, executor, context):
        outcome = await executor.execute("getScheduledTasks", {}, context)

        assert outcome == Success("No scheduled tasks found.")

    @pytest.mark.asyncio
    async def test_past_time_is_failure(self, executor, context):
        outcome = await executor.execute(
            "scheduleTask",
            {"description": "Too late", "when": {"kind": "at", "at": "2020-01-01T00:00:00Z"}},
            context,
        )

        assert isinstance(outcome, Failure)
        assert "not in the future" in outcome.message
        assert await context.scheduler.list() == []

    @pytest.mark.asyncio
    async def test_unknown_trigger_kind_is_validation_failure(self, executor, context):
        outcome = await executor.execute(
            "scheduleTask",
            {"description": "x", "when": {"kind": "someday"}},
            context,
        )

        assert outcome.kind == "validation"

    @pytest.mark.asyncio
    async def test_cron_schedule(self, executor, context):
        outcome = await executor.execute(
            "scheduleTask",
            {"description": "Hangboard", "when": {"kind": "cron", "expression": "0 18 * * 1"}},
            context,
        )

        assert outcome.ok
        task = (await context.scheduler.list())[0]
        assert task.recurring
        assert task.payload == {"description": "Hangboard"}
        assert task.handler_name == "execute_task"

    @pytest.mark.asyncio
    async def test_cancel_unknown_is_failure(self, executor, context):
        outcome = await executor.execute("cancelScheduledTask", {"task_id": "task_x"}, context)

        assert isinstance(outcome, Failure)
        assert "not found" in outcome.message

    @pytest.mark.asyncio
    async def test_cancel_twice_is_failure(self, executor, context):
        scheduled = await executor.execute(
            "scheduleTask",
            {"description": "x", "when": {"kind": "after", "seconds": 30}},
            context,
        )
        task_id = task_id_from(scheduled)
        await executor.execute("cancelScheduledTask", {"task_id": task_id}, context)

        again = await executor.execute("cancelScheduledTask", {"task_id": task_id}, context)

        assert "already canceled" in again.message


class TestClimberProfile:
    @pytest.mark.asyncio
    async def test_profile_saved_to_state(self, executor, context):
        outcome = await executor.execute(
            "setClimberProfile",
            {"bouldering_grade": "V4", "weaknesses": ["crimps", "slopers"]},
            context,
        )

        assert outcome.value.startswith("Profile saved! Bouldering: V4")
        assert "crimps, slopers" in outcome.value
        profile = (await context.state.get())["climberProfile"]
        assert profile["bouldering_grade"] == "V4"
        assert profile["sport_grade"] is None
        assert "updated_at" in profile

    @pytest.mark.asyncio
    async def test_profile_keeps_other_state(self, executor, context):
        await context.state.merge({"units": "metric"})

        await executor.execute("setClimberProfile", {"goal": "Send my project"}, context)

        state = await context.state.get()
        assert state["units"] == "metric"
        assert state["climberProfile"]["goal"] == "Send my project"
