"""Tools shipped with the default climbing-coach session."""

import logging
from datetime import datetime, timezone
from typing import Optional

from pydantic import Field

from session_agent.scheduler import Trigger, describe_trigger, trigger_adapter
from session_agent.tools import Tool, ToolCatalog, ToolInput

logger = logging.getLogger(__name__)


class CityInput(ToolInput):
    city: str = Field(..., description="City to report the weather for")


class GetWeatherInformationTool(Tool):
    """Needs a human to approve it; see ``get_weather_information``."""

    name = "getWeatherInformation"
    description = "show the weather in a given city to the user"
    input_model = CityInput
    execution_kind = "confirm"


async def get_weather_information(context, city: str) -> str:
    logger.info(f"Getting weather information for {city}")
    return f"The weather in {city} is sunny"


class LocationInput(ToolInput):
    location: str = Field(..., description="Place to get the local time for")


class GetLocalTimeTool(Tool):
    name = "getLocalTime"
    description = "get the local time for a specified location"
    input_model = LocationInput

    async def execute(self, context, location: str) -> str:
        logger.info(f"Getting local time for {location}")
        return "10am"


class ScheduleTaskInput(ToolInput):
    description: str = Field(..., description="What should happen when the task runs")
    when: Trigger = Field(
        ...,
        description=(
            "When to run: {kind: 'at', at: ISO time}, "
            "{kind: 'after', seconds: delay} or {kind: 'cron', expression: cron}"
        ),
    )


class ScheduleTaskTool(Tool):
    name = "scheduleTask"
    description = "A tool to schedule a task to be executed at a later time"
    input_model = ScheduleTaskInput
    mutates_state = True

    async def execute(self, context, description: str, when: dict) -> str:
        trigger = trigger_adapter.validate_python(when)
        task_id = await context.scheduler.create(
            trigger, "execute_task", {"description": description}
        )
        return (
            f'Task {task_id} scheduled for type "{trigger.kind}" : '
            f"{describe_trigger(trigger)}"
        )


class EmptyInput(ToolInput):
    pass


class GetScheduledTasksTool(Tool):
    name = "getScheduledTasks"
    description = "List all tasks that have been scheduled"
    input_model = EmptyInput

    async def execute(self, context):
        tasks = await context.scheduler.list()
        if not tasks:
            return "No scheduled tasks found."
        return [
            {
                "id": task.id,
                "description": (task.payload or {}).get("description")
                if isinstance(task.payload, dict)
                else task.payload,
                "trigger": task.trigger.model_dump(mode="json"),
                "status": task.status,
                "next_run_at": task.next_run_at.isoformat() if task.next_run_at else None,
            }
            for task in tasks
        ]


class CancelTaskInput(ToolInput):
    task_id: str = Field(..., description="The ID of the task to cancel")


class CancelScheduledTaskTool(Tool):
    name = "cancelScheduledTask"
    description = "Cancel a scheduled task using its ID"
    input_model = CancelTaskInput
    mutates_state = True

    async def execute(self, context, task_id: str) -> str:
        await context.scheduler.cancel(task_id)
        return f"Task {task_id} has been successfully canceled."


class ClimberProfileInput(ToolInput):
    bouldering_grade: Optional[str] = Field(
        None, description="Climber's current bouldering grade. ie) V4, V5"
    )
    sport_grade: Optional[str] = Field(
        None, description="Climber's current sport climbing grade. ie) 5.10a, 5.13d"
    )
    weaknesses: Optional[list[str]] = Field(
        None,
        description=(
            "techniques to improve: crimps, slopers, pinches, pockets, heelhooks, "
            "body tension, weight shifting, dynamic movement, body positioning"
        ),
    )
    injuries: Optional[str] = Field(
        None, description="Any current injuries or limitation to work around."
    )
    goal: Optional[str] = Field(None, description="What the climber is working towards.")


class SetClimberProfileTool(Tool):
    name = "setClimberProfile"
    description = (
        "Save climber's profile including climbing grade, weaknesses, and goals "
        "for personalized training plan"
    )
    input_model = ClimberProfileInput
    mutates_state = True

    async def execute(
        self,
        context,
        bouldering_grade: Optional[str] = None,
        sport_grade: Optional[str] = None,
        weaknesses: Optional[list[str]] = None,
        injuries: Optional[str] = None,
        goal: Optional[str] = None,
    ) -> str:
        profile = {
            "bouldering_grade": bouldering_grade,
            "sport_grade": sport_grade,
            "weaknesses": weaknesses,
            "injuries": injuries,
            "goal": goal,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        await context.state.merge({"climberProfile": profile})
        return (
            f"Profile saved! Bouldering: {bouldering_grade or 'not set'}, "
            f"Sport: {sport_grade or 'not set'}, "
            f"Weaknesses: {', '.join(weaknesses or []) or 'none specified'}, "
            f"Goal: {goal or 'not set'}"
        )


def default_catalog() -> ToolCatalog:
    return ToolCatalog(
        [
            GetWeatherInformationTool(),
            GetLocalTimeTool(),
            ScheduleTaskTool(),
            GetScheduledTasksTool(),
            CancelScheduledTaskTool(),
            SetClimberProfileTool(),
        ],
        confirmations={"getWeatherInformation": get_weather_information},
    )
