import asyncio
import time
from datetime import date, datetime, timezone

from dayli_agent.domain.context.context_assembler import ContextAssembler, derive_patterns, to_task_summary
from dayli_agent.domain.context.memory.operation_ledger import OperationLedger
from dayli_agent.domain.context.state.proposal_store import InMemoryProposalStore
from dayli_agent.domain.models.operation import TrackedOperation
from dayli_agent.domain.models.records import (
    BreakSchedule, EmailPreferences, Task, UserPreferences
)
from dayli_agent.domain.services.in_memory import (
    InMemoryEmailService,
    InMemoryPreferenceService,
    InMemoryScheduleService,
    InMemoryTaskService,
)


class _BrokenTaskService:
    async def get_task_backlog(self, user_id):
        raise ConnectionError("task store down")


class _SlowScheduleService:
    async def get_schedule_for_date(self, user_id, day):
        await asyncio.sleep(1)
        return []


class _BrokenPreferenceService:
    async def get_user_preferences(self, user_id):
        raise ConnectionError("preferences down")


class _SleepyPreferenceService:
    async def get_user_preferences(self, user_id):
        await asyncio.sleep(0.3)
        return None


class _SleepyScheduleService:
    async def get_schedule_for_date(self, user_id, day):
        await asyncio.sleep(0.3)
        return []


class _RecordingScheduleService:
    def __init__(self):
        self.days = []

    async def get_schedule_for_date(self, user_id, day):
        self.days.append(day)
        return []


class _BrokenScheduleService:
    async def get_schedule_for_date(self, user_id, day):
        raise ConnectionError("schedule down")


def _make_assembler(clock, **overrides) -> ContextAssembler:
    components = {
        "schedule_service": InMemoryScheduleService(),
        "task_service": InMemoryTaskService(),
        "preference_service": InMemoryPreferenceService(),
        "ledger": OperationLedger(),
        "email_service": InMemoryEmailService(),
        "proposal_source": InMemoryProposalStore(clock=clock),
        "clock": clock,
        "fetch_timeout": 0.05,
    }
    components.update(overrides)
    return ContextAssembler(**components)


class TestContextAssembler:
    async def test_viewing_date_override(self, clock):
        context = await _make_assembler(clock).build_context("user_1", [], "2024-07-04")

        assert context.temporal.viewing_date == date(2024, 7, 4)
        assert context.temporal.is_today is False
        assert context.temporal.now.hour == 12
        assert context.degraded_sources == []

    async def test_viewing_date_defaults_to_local_today(self, clock):
        context = await _make_assembler(clock).build_context("user_1")

        assert context.temporal.viewing_date == date(2024, 7, 10)
        assert context.temporal.is_today is True

    async def test_user_timezone_decides_today(self):
        late_evening_utc = datetime(2024, 7, 11, 2, 0, tzinfo=timezone.utc)
        preferences = InMemoryPreferenceService()
        await preferences.set_preferences(UserPreferences(user_id="user_1", timezone="America/Los_Angeles"))

        context = await _make_assembler(
            lambda: late_evening_utc, preference_service=preferences
        ).build_context("user_1")

        assert context.temporal.timezone == "America/Los_Angeles"
        assert context.temporal.viewing_date == date(2024, 7, 10)

    async def test_schedule_is_reread_when_user_timezone_moves_the_day(self):
        evening_in_new_york = datetime(2024, 7, 11, 2, 0, tzinfo=timezone.utc)
        preferences = InMemoryPreferenceService()
        await preferences.set_preferences(UserPreferences(user_id="user_1", timezone="Asia/Tokyo"))
        schedule = _RecordingScheduleService()

        context = await _make_assembler(
            lambda: evening_in_new_york, preference_service=preferences, schedule_service=schedule
        ).build_context("user_1")

        assert context.temporal.viewing_date == date(2024, 7, 11)
        assert schedule.days == [date(2024, 7, 10), date(2024, 7, 11)]

    async def test_same_day_reads_schedule_once(self, clock):
        schedule = _RecordingScheduleService()

        await _make_assembler(clock, schedule_service=schedule).build_context("user_1")

        assert schedule.days == [date(2024, 7, 10)]

    async def test_sources_are_read_concurrently(self, clock):
        assembler = _make_assembler(
            clock,
            preference_service=_SleepyPreferenceService(),
            schedule_service=_SleepyScheduleService(),
            fetch_timeout=1.0,
        )

        started = time.monotonic()
        context = await assembler.build_context("user_1")
        elapsed = time.monotonic() - started

        assert context.degraded_sources == []
        assert elapsed < 0.5

    async def test_state_memory_and_patterns(self, clock):
        schedule = InMemoryScheduleService()
        later = await schedule.create_time_block("user_1", date(2024, 7, 10), "14:00", "15:00", "work", "Focus")
        earlier = await schedule.create_time_block("user_1", date(2024, 7, 10), "09:00", "09:30", "meeting", "Standup")
        tasks = InMemoryTaskService()
        await tasks.add_task(Task(id="T1", user_id="user_1", title="Report", priority="high", status="scheduled"))
        ledger = OperationLedger()
        await ledger.record(TrackedOperation(
            capability="schedule_createTimeBlock",
            affected_entities={"blocks": [later.id]},
            user_id="user_1",
        ))
        proposals = InMemoryProposalStore(clock=clock)
        await proposals.save_proposal("user_1", "schedule", "workflow_schedule", date(2024, 7, 10), {})

        context = await _make_assembler(
            clock, schedule_service=schedule, task_service=tasks, ledger=ledger, proposal_source=proposals
        ).build_context("user_1", [{"role": "user", "content": "hi"}])

        assert [b.id for b in context.state.schedule] == [earlier.id, later.id]
        assert context.state.tasks[0].status == "in_progress"
        assert context.state.tasks[0].priority == 1
        assert context.memory.recent_messages[0].content == "hi"
        assert context.memory.recent_operations[0].capability == "schedule_createTimeBlock"
        assert context.memory.mentioned_entities.primary.id == later.id
        assert context.memory.mentioned_entities.primary.name == "Focus"
        assert context.memory.active_proposals[0].workflow_name == "workflow_schedule"

    async def test_keeps_last_ten_messages(self, clock):
        history = [{"role": "user", "content": str(i)} for i in range(15)]
        context = await _make_assembler(clock).build_context("user_1", history)

        assert [m.content for m in context.memory.recent_messages] == [str(i) for i in range(5, 15)]

    async def test_failed_source_is_degraded(self, clock):
        context = await _make_assembler(clock, task_service=_BrokenTaskService()).build_context("user_1")

        assert context.degraded_sources == ["tasks"]
        assert context.state.tasks == []

    async def test_slow_source_times_out(self, clock):
        context = await _make_assembler(clock, schedule_service=_SlowScheduleService()).build_context("user_1")

        assert context.degraded_sources == ["schedule"]

    async def test_every_source_failing_gives_minimal_context(self, clock):
        assembler = _make_assembler(
            clock,
            schedule_service=_BrokenScheduleService(),
            task_service=_BrokenTaskService(),
            preference_service=_BrokenPreferenceService(),
            email_service=None,
            proposal_source=None,
        )

        context = await assembler.build_context("user_1", [], "2024-07-04")

        assert sorted(context.degraded_sources) == ["preferences", "schedule", "tasks"]
        assert context.temporal.viewing_date == date(2024, 7, 10)
        assert context.state.schedule == []

    async def test_unexpected_error_gives_minimal_context(self, clock):
        context = await _make_assembler(clock).build_context("user_1", [{"role": "robot"}])

        assert context.temporal.is_today is True
        assert context.memory.recent_messages == []


class TestConverters:
    def test_task_summary_mapping(self):
        summary = to_task_summary(Task(id="T1", user_id="u", title="x", priority="low"))
        assert summary.status == "pending"
        assert summary.priority == 3

    def test_default_patterns(self):
        patterns = derive_patterns(None)
        assert patterns.work_hours.start == "09:00"
        assert patterns.email_times == []

    def test_patterns_from_preferences(self):
        patterns = derive_patterns(UserPreferences(
            user_id="u",
            work_start_time="08:00",
            lunch_duration_minutes=45,
            break_schedule=BreakSchedule(morning_break_duration=20),
            email_preferences=EmailPreferences(batch_processing=True),
            common_phrases={"my morning block": "Deep Work"},
        ))

        assert patterns.work_hours.start == "08:00"
        assert patterns.lunch_time.duration == 45
        assert patterns.break_preferences.duration == 20
        assert patterns.email_times == ["08:00", "16:00"]
        assert patterns.common_phrases == {"my morning block": "Deep Work"}
