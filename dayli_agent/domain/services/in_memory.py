from typing import Dict, List, Optional, Any
import asyncio
from collections import defaultdict
from datetime import date

from dayli_agent.domain.clock import at_local_time, localize
from dayli_agent.domain.errors import RecordNotFoundError
from dayli_agent.domain.models.records import Email, Task, TimeBlock, UserPreferences


class InMemoryScheduleService:
    """Time blocks kept in process memory, per user"""

    def __init__(self, timezone: str = "America/New_York"):
        self.timezone = timezone
        self.blocks: Dict[str, Dict[str, TimeBlock]] = defaultdict(dict)
        self._lock = asyncio.Lock()

    async def add_block(self, block: TimeBlock) -> TimeBlock:
        async with self._lock:
            self.blocks[block.user_id][block.id] = block
            return block

    async def get_schedule_for_date(self, user_id: str, day: date) -> List[TimeBlock]:
        async with self._lock:
            blocks = [
                b for b in self.blocks.get(user_id, {}).values()
                if localize(b.start_time, self.timezone).date() == day
            ]
            return sorted(blocks, key=lambda b: b.start_time)

    async def get_time_block(self, user_id: str, block_id: str) -> Optional[TimeBlock]:
        async with self._lock:
            return self.blocks.get(user_id, {}).get(block_id)

    async def create_time_block(
        self,
        user_id: str,
        day: date,
        start_time: str,
        end_time: str,
        block_type: str,
        title: str,
        description: Optional[str] = None
    ) -> TimeBlock:
        block = TimeBlock(
            user_id=user_id,
            start_time=at_local_time(day, start_time, self.timezone),
            end_time=at_local_time(day, end_time, self.timezone),
            type=block_type,
            title=title,
            description=description
        )
        return await self.add_block(block)

    async def update_time_block(self, user_id: str, block_id: str, **changes: Any) -> TimeBlock:
        async with self._lock:
            block = self.blocks.get(user_id, {}).get(block_id)
            if block is None:
                raise RecordNotFoundError("Time block", block_id)

            updated = block.model_copy(update=changes)
            self.blocks[user_id][block_id] = updated
            return updated

    async def delete_time_block(self, user_id: str, block_id: str) -> None:
        async with self._lock:
            if self.blocks.get(user_id, {}).pop(block_id, None) is None:
                raise RecordNotFoundError("Time block", block_id)


class InMemoryTaskService:
    """Task backlog kept in process memory"""

    def __init__(self):
        self.tasks: Dict[str, Dict[str, Task]] = defaultdict(dict)
        self._lock = asyncio.Lock()

    async def add_task(self, task: Task) -> Task:
        async with self._lock:
            self.tasks[task.user_id][task.id] = task
            return task

    async def get_task_backlog(self, user_id: str) -> List[Task]:
        async with self._lock:
            return [t for t in self.tasks.get(user_id, {}).values() if t.status != "completed"]

    async def create_task(
        self,
        user_id: str,
        title: str,
        priority: str = "medium",
        estimated_minutes: int = 30,
        description: Optional[str] = None
    ) -> Task:
        task = Task(
            user_id=user_id,
            title=title,
            priority=priority,
            estimated_minutes=estimated_minutes,
            description=description
        )
        return await self.add_task(task)

    async def complete_task(self, user_id: str, task_id: str) -> Task:
        async with self._lock:
            task = self.tasks.get(user_id, {}).get(task_id)
            if task is None:
                raise RecordNotFoundError("Task", task_id)

            completed = task.model_copy(update={"status": "completed"})
            self.tasks[user_id][task_id] = completed
            return completed


class InMemoryPreferenceService:
    def __init__(self):
        self.preferences: Dict[str, UserPreferences] = {}

    async def set_preferences(self, preferences: UserPreferences) -> None:
        self.preferences[preferences.user_id] = preferences

    async def get_user_preferences(self, user_id: str) -> Optional[UserPreferences]:
        return self.preferences.get(user_id)


class InMemoryEmailService:
    """Inbox kept in process memory"""

    def __init__(self):
        self.emails: Dict[str, Dict[str, Email]] = defaultdict(dict)
        self._lock = asyncio.Lock()

    async def add_email(self, email: Email) -> Email:
        async with self._lock:
            self.emails[email.user_id][email.id] = email
            return email

    async def list_unprocessed(self, user_id: str) -> List[Email]:
        async with self._lock:
            inbox = [e for e in self.emails.get(user_id, {}).values() if not e.archived]
            return sorted(inbox, key=lambda e: e.received_at, reverse=True)

    async def archive_email(self, user_id: str, email_id: str) -> Email:
        async with self._lock:
            email = self.emails.get(user_id, {}).get(email_id)
            if email is None:
                raise RecordNotFoundError("Email", email_id)

            archived = email.model_copy(update={"archived": True})
            self.emails[user_id][email_id] = archived
            return archived
