from typing import Dict, List, Any, Optional, Sequence, Union, Awaitable
import asyncio
import time
import structlog
from datetime import date, datetime

from dayli_agent.domain.clock import Clock, localize, system_clock
from dayli_agent.domain.context.memory.operation_ledger import OperationLedger
from dayli_agent.domain.context.reference_resolver import mentioned_entities
from dayli_agent.domain.models.context_snapshot import (
    ActiveProposal, BreakPreferences, ContextSnapshot, ConversationMessage, EmailSummary,
    LunchTime, MemoryContext, OperationSummary, ScheduleBlock, StateContext, TaskSummary,
    TemporalContext, UserPatterns, WorkHours
)
from dayli_agent.domain.models.records import Email, Proposal, Task, TimeBlock, UserPreferences
from dayli_agent.domain.services.interfaces import (
    EmailService, PreferenceService, ProposalSource, ScheduleService, TaskService
)
from dayli_agent.infrastructure.observability.logging import agent_logger, metrics_collector

logger = structlog.get_logger(__name__)

RECENT_MESSAGE_LIMIT = 10
RECENT_OPERATION_LIMIT = 10
MENTIONED_OPERATION_LIMIT = 5
BATCH_EMAIL_TIMES = ["08:00", "16:00"]

_TASK_STATUS = {"backlog": "pending", "scheduled": "in_progress"}
_TASK_PRIORITY = {"high": 1, "medium": 2, "low": 3}

MessageLike = Union[ConversationMessage, Dict[str, Any]]


def to_schedule_block(block: TimeBlock) -> ScheduleBlock:
    return ScheduleBlock(
        id=block.id,
        type=block.type,
        title=block.title,
        start_time=block.start_time,
        end_time=block.end_time,
        description=block.description,
        metadata=block.metadata
    )


def to_task_summary(task: Task) -> TaskSummary:
    return TaskSummary(
        id=task.id,
        title=task.title,
        status=_TASK_STATUS.get(task.status, "pending"),
        priority=_TASK_PRIORITY.get(task.priority, 3),
        due_date=task.due_date,
        estimated_minutes=task.estimated_minutes,
        tags=task.tags
    )


def to_email_summary(email: Email) -> EmailSummary:
    return EmailSummary(
        id=email.id,
        subject=email.subject,
        sender=email.sender,
        received_at=email.received_at,
        priority=email.priority,
        preview=email.snippet
    )


def to_active_proposal(proposal: Proposal) -> ActiveProposal:
    return ActiveProposal(
        id=proposal.id,
        type=proposal.type,
        workflow_name=proposal.workflow_name,
        date=proposal.date,
        data=proposal.data,
        expires_at=proposal.expires_at
    )


def derive_patterns(preferences: Optional[UserPreferences]) -> UserPatterns:
    """User patterns from stored preferences, or the defaults when there are none"""

    if preferences is None:
        return UserPatterns()

    break_duration = preferences.break_schedule.morning_break_duration or BreakPreferences().duration
    return UserPatterns(
        work_hours=WorkHours(start=preferences.work_start_time, end=preferences.work_end_time),
        lunch_time=LunchTime(start=preferences.lunch_start_time, duration=preferences.lunch_duration_minutes),
        break_preferences=BreakPreferences(duration=break_duration),
        common_phrases=preferences.common_phrases,
        email_times=list(BATCH_EMAIL_TIMES) if preferences.email_preferences.batch_processing else []
    )


def to_conversation(history: Sequence[MessageLike]) -> List[ConversationMessage]:
    messages = []
    for message in list(history)[-RECENT_MESSAGE_LIMIT:]:
        if isinstance(message, ConversationMessage):
            messages.append(message)
        else:
            messages.append(ConversationMessage.model_validate(message))
    return messages


class ContextAssembler:
    """Assembles a context snapshot from the service ports and pipeline memory"""

    def __init__(
        self,
        schedule_service: ScheduleService,
        task_service: TaskService,
        preference_service: PreferenceService,
        ledger: OperationLedger,
        email_service: Optional[EmailService] = None,
        proposal_source: Optional[ProposalSource] = None,
        clock: Clock = system_clock,
        default_timezone: str = "America/New_York",
        fetch_timeout: float = 5.0
    ):
        self.schedule_service = schedule_service
        self.task_service = task_service
        self.preference_service = preference_service
        self.email_service = email_service
        self.proposal_source = proposal_source
        self.ledger = ledger
        self.clock = clock
        self.default_timezone = default_timezone
        self.fetch_timeout = fetch_timeout

    async def build_context(
        self,
        user_id: str,
        conversation_history: Sequence[MessageLike] = (),
        viewing_date_override: Optional[Union[date, str]] = None
    ) -> ContextSnapshot:
        """Build the snapshot; degrades per source and never raises"""

        start_time = time.monotonic()
        logger.info("Building context", user_id=user_id)

        try:
            context = await self._assemble(user_id, conversation_history, viewing_date_override)
            minimal = False
        except Exception as e:
            logger.error("Context assembly failed, using minimal context", user_id=user_id, error=str(e))
            context = self.minimal_context(user_id)
            minimal = True

        duration_ms = (time.monotonic() - start_time) * 1000
        metrics_collector.record_latency("context", duration_ms)
        agent_logger.log_context_assembly(
            user_id=user_id,
            viewing_date=context.temporal.viewing_date.isoformat(),
            duration_ms=duration_ms,
            degraded_sources=context.degraded_sources,
            minimal=minimal
        )
        return context

    def minimal_context(self, user_id: str, degraded_sources: Sequence[str] = ()) -> ContextSnapshot:
        """Empty state, default patterns, viewing today"""

        now = localize(self.clock(), self.default_timezone)
        return ContextSnapshot(
            user_id=user_id,
            temporal=TemporalContext(
                now=now,
                viewing_date=now.date(),
                timezone=self.default_timezone,
                is_today=True
            ),
            degraded_sources=list(degraded_sources)
        )

    async def _fetch(self, source: str, read: Awaitable[Any], default: Any, degraded: List[str]) -> Any:
        """Await one source with a timeout; failures degrade to the default"""

        try:
            return await asyncio.wait_for(read, timeout=self.fetch_timeout)
        except asyncio.TimeoutError:
            logger.warning("Context source timed out", source=source, timeout=self.fetch_timeout)
        except Exception as e:
            logger.warning("Context source failed", source=source, error=str(e), error_type=type(e).__name__)
        degraded.append(source)
        return default

    def _viewing_date(self, override: Optional[Union[date, str]], now: datetime) -> date:
        if override is None:
            return now.date()
        if isinstance(override, str):
            return date.fromisoformat(override)
        return override

    async def _assemble(
        self,
        user_id: str,
        conversation_history: Sequence[MessageLike],
        viewing_date_override: Optional[Union[date, str]]
    ) -> ContextSnapshot:
        degraded: List[str] = []
        instant = self.clock()

        # Provisional day in the default timezone; corrected once preferences are known
        provisional_date = self._viewing_date(viewing_date_override, localize(instant, self.default_timezone))

        reads = [
            self._fetch("preferences", self.preference_service.get_user_preferences(user_id), None, degraded),
            self._fetch("schedule", self.schedule_service.get_schedule_for_date(user_id, provisional_date), [], degraded),
            self._fetch("tasks", self.task_service.get_task_backlog(user_id), [], degraded),
        ]
        if self.email_service is not None:
            reads.append(self._fetch("emails", self.email_service.list_unprocessed(user_id), [], degraded))
        if self.proposal_source is not None:
            reads.append(self._fetch("proposals", self.proposal_source.get_active_proposals(user_id), [], degraded))

        results = await asyncio.gather(*reads)
        preferences, schedule, tasks = results[0], results[1], results[2]
        emails = results[3] if self.email_service is not None else []
        proposals = results[-1] if self.proposal_source is not None else []

        if len(degraded) >= len(reads):
            logger.error("Every context source failed", user_id=user_id, sources=degraded)
            return self.minimal_context(user_id, degraded)

        timezone = (preferences.timezone if preferences else None) or self.default_timezone
        now = localize(instant, timezone)
        viewing_date = self._viewing_date(viewing_date_override, now)

        if viewing_date != provisional_date:
            # The user's timezone puts "today" on another day than the default one
            logger.debug("Re-reading schedule for user timezone", timezone=timezone, viewing_date=viewing_date.isoformat())
            if "schedule" in degraded:
                degraded.remove("schedule")
            schedule = await self._fetch(
                "schedule", self.schedule_service.get_schedule_for_date(user_id, viewing_date), [], degraded
            )

        schedule_blocks = sorted((to_schedule_block(b) for b in schedule), key=lambda b: b.start_time)
        operations = await self.ledger.recent(RECENT_OPERATION_LIMIT)
        summaries = [
            OperationSummary(
                capability=op.capability,
                params=op.params,
                result=op.result,
                timestamp=op.timestamp,
                affected_entities=op.affected_entities
            )
            for op in operations
        ]

        return ContextSnapshot(
            user_id=user_id,
            temporal=TemporalContext(
                now=now,
                viewing_date=viewing_date,
                timezone=timezone,
                is_today=viewing_date == now.date()
            ),
            state=StateContext(
                schedule=schedule_blocks,
                tasks=[to_task_summary(t) for t in tasks],
                emails=[to_email_summary(e) for e in emails]
            ),
            memory=MemoryContext(
                recent_messages=to_conversation(conversation_history),
                recent_operations=summaries,
                active_proposals=[to_active_proposal(p) for p in proposals],
                mentioned_entities=mentioned_entities(summaries[:MENTIONED_OPERATION_LIMIT], schedule_blocks)
            ),
            patterns=derive_patterns(preferences),
            degraded_sources=degraded
        )
