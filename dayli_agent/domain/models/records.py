"""Records exchanged with the external schedule, task, email and preference services."""

from typing import Dict, Any, List, Optional, Literal
from pydantic import BaseModel, Field
from datetime import date, datetime
import uuid

# Proposal has a field named "date"
DateType = date


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


class TimeBlock(BaseModel):
    id: str = Field(default_factory=lambda: _new_id("block"))
    user_id: str
    start_time: datetime
    end_time: datetime
    type: Literal["work", "focus", "email", "break", "meeting", "blocked"] = "work"
    title: str
    description: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class Task(BaseModel):
    id: str = Field(default_factory=lambda: _new_id("task"))
    user_id: str
    title: str
    status: Literal["backlog", "scheduled", "completed"] = "backlog"
    priority: Literal["high", "medium", "low"] = "medium"
    estimated_minutes: int = 30
    description: Optional[str] = None
    due_date: Optional[date] = None
    tags: List[str] = Field(default_factory=list)


class Email(BaseModel):
    id: str = Field(default_factory=lambda: _new_id("email"))
    user_id: str
    subject: str
    sender: str
    received_at: datetime
    priority: Literal["urgent", "normal", "low"] = "normal"
    snippet: Optional[str] = None
    archived: bool = False


class BreakSchedule(BaseModel):
    lunch_time: str = "12:00"
    lunch_duration: int = 60
    morning_break_duration: Optional[int] = None


class EmailPreferences(BaseModel):
    quick_reply_minutes: int = 5
    batch_processing: bool = False


class UserPreferences(BaseModel):
    user_id: str
    timezone: Optional[str] = None
    work_start_time: str = "09:00"
    work_end_time: str = "17:00"
    lunch_start_time: str = "12:00"
    lunch_duration_minutes: int = 60
    break_schedule: BreakSchedule = Field(default_factory=BreakSchedule)
    email_preferences: EmailPreferences = Field(default_factory=EmailPreferences)
    common_phrases: Dict[str, str] = Field(default_factory=dict)


class Proposal(BaseModel):
    """Workflow output held until the user confirms it"""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    type: Literal["schedule", "tasks", "emails"]
    workflow_name: str
    date: Optional[DateType] = None
    data: Any = None
    created_at: datetime
    expires_at: datetime
