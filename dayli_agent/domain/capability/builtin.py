"""Built-in capabilities bound to the schedule, task and email service ports."""

from typing import Dict, Any, List, Optional, Literal
from datetime import date
import structlog
from pydantic import Field, model_validator

from dayli_agent.domain.capability.capability import CapabilityParams
from dayli_agent.domain.capability.capability_registry import CapabilityRegistry
from dayli_agent.domain.clock import at_local_time, localize
from dayli_agent.domain.errors import CapabilityError, RecordNotFoundError
from dayli_agent.domain.models.context_snapshot import ContextSnapshot
from dayli_agent.domain.models.operation import ErrorCode
from dayli_agent.domain.models.records import TimeBlock
from dayli_agent.domain.services.interfaces import EmailService, ScheduleService, TaskService
from dayli_agent.domain.understanding.entity_extractor import resolve_date
from dayli_agent.domain.understanding.time_parser import (
    LAST_MINUTE, add_minutes, find_block_by_description, to_military_time, to_minutes
)

logger = structlog.get_logger(__name__)

BlockType = Literal["work", "focus", "email", "break", "meeting", "blocked"]


class DateParams(CapabilityParams):
    date: Optional[str] = Field(None, description="YYYY-MM-DD, defaults to the viewing date")


class CreateTimeBlockParams(DateParams):
    type: BlockType = "work"
    title: str
    start_time: str = Field(description="HH:MM or natural time such as 2pm")
    end_time: Optional[str] = Field(None, description="Defaults to one hour after start")
    description: Optional[str] = None


class BlockReferenceParams(DateParams):
    block_id: Optional[str] = None
    block_description: Optional[str] = Field(None, description="Title, time or type of the block")

    @model_validator(mode="after")
    def _needs_block(self):
        if not self.block_id and not self.block_description:
            raise ValueError("blockId or blockDescription is required")
        return self


class MoveTimeBlockParams(BlockReferenceParams):
    new_start_time: str
    new_end_time: Optional[str] = Field(None, description="Defaults to keeping the block's duration")


class DeleteTimeBlockParams(BlockReferenceParams):
    reason: Optional[str] = None


class CreateTaskParams(CapabilityParams):
    title: str
    priority: Literal["high", "medium", "low"] = "medium"
    estimated_minutes: int = Field(30, gt=0)
    description: Optional[str] = None


class TaskIdParams(CapabilityParams):
    task_id: str


class ViewEmailsParams(DateParams):
    limit: int = Field(20, gt=0)


class EmailIdParams(CapabilityParams):
    email_id: str


def target_date(value: Optional[str], context: ContextSnapshot) -> date:
    """Date a capability acts on; relative words anchor to the viewing date"""

    viewing_date = context.temporal.viewing_date
    if not value:
        return viewing_date

    resolved = resolve_date(value.strip(), viewing_date)
    if resolved is None:
        raise CapabilityError(f"Unrecognized date '{value}'", ErrorCode.INVALID_PARAMETERS, recoverable=False)
    return resolved


def clock_time(value: str) -> str:
    resolved = to_military_time(value)
    if resolved is None:
        raise CapabilityError(f"Unrecognized time '{value}'", ErrorCode.INVALID_PARAMETERS, recoverable=False)
    return resolved


def _local_hhmm(moment, tz_name: str) -> str:
    return localize(moment, tz_name).strftime("%H:%M")


def _block_payload(block: TimeBlock, tz_name: str) -> Dict[str, Any]:
    payload = block.model_dump(mode="json")
    payload["localStart"] = _local_hhmm(block.start_time, tz_name)
    payload["localEnd"] = _local_hhmm(block.end_time, tz_name)
    return payload


def register_builtin_capabilities(
    registry: CapabilityRegistry,
    schedule_service: ScheduleService,
    task_service: TaskService,
    email_service: EmailService
) -> List[str]:
    """Register the schedule, task and email capabilities and return their names"""

    async def find_block(params: BlockReferenceParams, context: ContextSnapshot) -> TimeBlock:
        user_id = context.user_id
        if params.block_id:
            block = await schedule_service.get_time_block(user_id, params.block_id)
            if block is None:
                raise CapabilityError(f"Time block {params.block_id} not found")
            return block

        tz_name = context.temporal.timezone
        day = target_date(params.date, context)
        blocks = await schedule_service.get_schedule_for_date(user_id, day)
        block = find_block_by_description(
            blocks,
            params.block_description,
            start_of=lambda b: (localize(b.start_time, tz_name).hour, localize(b.start_time, tz_name).minute)
        )
        if block is None:
            raise CapabilityError(f"No block matching '{params.block_description}' on {day.isoformat()}")
        return block

    @registry.capability("schedule_viewSchedule", "schedule", DateParams)
    async def view_schedule(params: DateParams, context: ContextSnapshot) -> Dict[str, Any]:
        """View the time blocks scheduled for a date"""
        day = target_date(params.date, context)
        blocks = await schedule_service.get_schedule_for_date(context.user_id, day)
        tz_name = context.temporal.timezone
        return {"date": day.isoformat(), "blocks": [_block_payload(b, tz_name) for b in blocks]}

    @registry.capability("schedule_createTimeBlock", "schedule", CreateTimeBlockParams)
    async def create_time_block(params: CreateTimeBlockParams, context: ContextSnapshot) -> Dict[str, Any]:
        """Create a time block of a given type on a date"""
        day = target_date(params.date, context)
        start = clock_time(params.start_time)
        end = clock_time(params.end_time) if params.end_time else add_minutes(start, 60)
        if end <= start:
            raise CapabilityError("End time must be after start time", ErrorCode.INVALID_PARAMETERS, recoverable=False)

        block = await schedule_service.create_time_block(
            context.user_id, day, start, end, params.type, params.title, params.description
        )
        logger.info("Created time block", block_id=block.id, date=day.isoformat(), start=start, end=end)
        return {"data": _block_payload(block, context.temporal.timezone)}

    @registry.capability("schedule_moveTimeBlock", "schedule", MoveTimeBlockParams)
    async def move_time_block(params: MoveTimeBlockParams, context: ContextSnapshot) -> Dict[str, Any]:
        """Move an existing time block to a new start time"""
        block = await find_block(params, context)
        tz_name = context.temporal.timezone

        start = clock_time(params.new_start_time)
        if params.new_end_time:
            end = clock_time(params.new_end_time)
        else:
            duration = int((block.end_time - block.start_time).total_seconds() // 60)
            if to_minutes(start) + duration > LAST_MINUTE:
                raise CapabilityError(
                    "Block would run past the end of the day", ErrorCode.INVALID_PARAMETERS, recoverable=False
                )
            end = add_minutes(start, duration)
        if end <= start:
            raise CapabilityError("End time must be after start time", ErrorCode.INVALID_PARAMETERS, recoverable=False)

        day = target_date(params.date, context) if params.date else localize(block.start_time, tz_name).date()
        try:
            updated = await schedule_service.update_time_block(
                context.user_id,
                block.id,
                start_time=at_local_time(day, start, tz_name),
                end_time=at_local_time(day, end, tz_name)
            )
        except RecordNotFoundError as e:
            raise CapabilityError(str(e)) from e

        return {
            "data": _block_payload(updated, tz_name),
            "previousTime": {
                "startTime": _local_hhmm(block.start_time, tz_name),
                "endTime": _local_hhmm(block.end_time, tz_name),
            },
        }

    @registry.capability("schedule_deleteTimeBlock", "schedule", DeleteTimeBlockParams, recoverable_on_error=False)
    async def delete_time_block(params: DeleteTimeBlockParams, context: ContextSnapshot) -> Dict[str, Any]:
        """Delete a time block by id or description"""
        block = await find_block(params, context)
        await schedule_service.delete_time_block(context.user_id, block.id)
        logger.info("Deleted time block", block_id=block.id, reason=params.reason)
        return {"data": {"id": block.id, "title": block.title}, "deleted": True}

    @registry.capability("task_viewTasks", "task", DateParams)
    async def view_tasks(params: DateParams, context: ContextSnapshot) -> Dict[str, Any]:
        """View the open task backlog"""
        tasks = await task_service.get_task_backlog(context.user_id)
        return {"tasks": [t.model_dump(mode="json") for t in tasks]}

    @registry.capability("task_createTask", "task", CreateTaskParams)
    async def create_task(params: CreateTaskParams, context: ContextSnapshot) -> Dict[str, Any]:
        """Add a task to the backlog"""
        task = await task_service.create_task(
            context.user_id, params.title, params.priority, params.estimated_minutes, params.description
        )
        return {"data": task.model_dump(mode="json")}

    @registry.capability("task_completeTask", "task", TaskIdParams)
    async def complete_task(params: TaskIdParams, context: ContextSnapshot) -> Dict[str, Any]:
        """Mark a task as completed"""
        try:
            task = await task_service.complete_task(context.user_id, params.task_id)
        except RecordNotFoundError as e:
            raise CapabilityError(str(e)) from e
        return {"data": task.model_dump(mode="json")}

    @registry.capability("email_viewEmails", "email", ViewEmailsParams)
    async def view_emails(params: ViewEmailsParams, context: ContextSnapshot) -> Dict[str, Any]:
        """View unprocessed emails, newest first"""
        emails = await email_service.list_unprocessed(context.user_id)
        return {"emails": [e.model_dump(mode="json") for e in emails[:params.limit]]}

    @registry.capability("email_archiveEmail", "email", EmailIdParams)
    async def archive_email(params: EmailIdParams, context: ContextSnapshot) -> Dict[str, Any]:
        """Archive an email"""
        try:
            email = await email_service.archive_email(context.user_id, params.email_id)
        except RecordNotFoundError as e:
            raise CapabilityError(str(e)) from e
        return {"data": email.model_dump(mode="json")}

    return [
        "schedule_viewSchedule", "schedule_createTimeBlock", "schedule_moveTimeBlock",
        "schedule_deleteTimeBlock", "task_viewTasks", "task_createTask", "task_completeTask",
        "email_viewEmails", "email_archiveEmail",
    ]
