"""Ports to the external persistence services.

The pipeline reads context and executes built-in capabilities through these
protocols only; how records are stored is outside this package.
"""

from typing import List, Optional, Protocol, Any
from datetime import date

from dayli_agent.domain.models.records import Email, Proposal, Task, TimeBlock, UserPreferences


class ScheduleService(Protocol):
    async def get_schedule_for_date(self, user_id: str, day: date) -> List[TimeBlock]: ...

    async def get_time_block(self, user_id: str, block_id: str) -> Optional[TimeBlock]: ...

    async def create_time_block(
        self,
        user_id: str,
        day: date,
        start_time: str,
        end_time: str,
        block_type: str,
        title: str,
        description: Optional[str] = None,
    ) -> TimeBlock: ...

    async def update_time_block(self, user_id: str, block_id: str, **changes: Any) -> TimeBlock: ...

    async def delete_time_block(self, user_id: str, block_id: str) -> None: ...


class TaskService(Protocol):
    async def get_task_backlog(self, user_id: str) -> List[Task]: ...

    async def create_task(
        self,
        user_id: str,
        title: str,
        priority: str = "medium",
        estimated_minutes: int = 30,
        description: Optional[str] = None,
    ) -> Task: ...

    async def complete_task(self, user_id: str, task_id: str) -> Task: ...


class PreferenceService(Protocol):
    async def get_user_preferences(self, user_id: str) -> Optional[UserPreferences]: ...


class EmailService(Protocol):
    async def list_unprocessed(self, user_id: str) -> List[Email]: ...

    async def archive_email(self, user_id: str, email_id: str) -> Email: ...


class ProposalSource(Protocol):
    async def get_active_proposals(self, user_id: str, limit: int = 5) -> List[Proposal]: ...
