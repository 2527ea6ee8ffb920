from typing import Dict, Any, List, Optional, Literal
from pydantic import BaseModel, ConfigDict, Field
from datetime import date, datetime

# ActiveProposal has a field named "date"
DateType = date


EntityType = Literal["block", "task", "email", "meeting"]


class FrozenModel(BaseModel):
    """Base for snapshot parts that must not change once built"""
    model_config = ConfigDict(frozen=True)


class TemporalContext(FrozenModel):
    """Where the user is in time, and which day they are looking at"""
    now: datetime = Field(description="Wall-clock time in the user's timezone")
    viewing_date: date = Field(description="Date the user is currently viewing")
    timezone: str = Field(default="America/New_York", description="IANA timezone name")
    is_today: bool = Field(default=True, description="Whether viewing_date equals now's date")


class ScheduleBlock(FrozenModel):
    """A time block visible on the viewing date"""
    id: str
    type: str = Field(description="work, meeting, email, break or blocked")
    title: str
    start_time: datetime
    end_time: datetime
    description: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def duration_minutes(self) -> int:
        return int((self.end_time - self.start_time).total_seconds() // 60)


class TaskSummary(FrozenModel):
    """An active (not completed) task"""
    id: str
    title: str
    status: Literal["pending", "in_progress"] = "pending"
    priority: int = Field(default=3, ge=1, le=4, description="1 is highest")
    due_date: Optional[date] = None
    estimated_minutes: Optional[int] = None
    tags: List[str] = Field(default_factory=list)


class EmailSummary(FrozenModel):
    """An unprocessed email"""
    id: str
    subject: str
    sender: str
    received_at: datetime
    priority: Literal["urgent", "normal", "low"] = "normal"
    preview: Optional[str] = None


class StateContext(FrozenModel):
    """Current state of everything the user might reference"""
    schedule: List[ScheduleBlock] = Field(default_factory=list)
    tasks: List[TaskSummary] = Field(default_factory=list)
    emails: List[EmailSummary] = Field(default_factory=list)


class ConversationMessage(FrozenModel):
    """One chat turn"""
    role: Literal["user", "assistant", "system"]
    content: str
    timestamp: Optional[datetime] = None


class OperationSummary(FrozenModel):
    """Recently executed operation, as seen by the understanding stage"""
    capability: str
    params: Dict[str, Any] = Field(default_factory=dict)
    result: Any = None
    timestamp: datetime
    affected_entities: Dict[str, List[str]] = Field(default_factory=dict)


class ActiveProposal(FrozenModel):
    """Workflow proposal awaiting the user's confirmation"""
    id: str
    type: str
    workflow_name: str
    date: Optional[DateType] = None
    data: Any = None
    expires_at: datetime


class MentionedEntity(FrozenModel):
    """Entity recently touched or mentioned in the conversation"""
    type: EntityType
    id: str
    name: str
    last_mentioned: datetime


class MentionedEntities(FrozenModel):
    """Entities available for pronoun resolution"""
    primary: Optional[MentionedEntity] = Field(None, description="Most recent entity, used for 'it'")
    secondary: Optional[MentionedEntity] = Field(None, description="Second most recent, for 'the other one'")
    all: List[MentionedEntity] = Field(default_factory=list)


class MemoryContext(FrozenModel):
    """Conversation memory used for reference resolution"""
    recent_messages: List[ConversationMessage] = Field(default_factory=list)
    recent_operations: List[OperationSummary] = Field(default_factory=list)
    active_proposals: List[ActiveProposal] = Field(default_factory=list)
    mentioned_entities: MentionedEntities = Field(default_factory=MentionedEntities)


class WorkHours(FrozenModel):
    start: str = "09:00"
    end: str = "17:00"


class LunchTime(FrozenModel):
    start: str = "12:00"
    duration: int = 60


class BreakPreferences(FrozenModel):
    duration: int = 15
    frequency: int = 2


class MeetingPreferences(FrozenModel):
    default_duration: int = 30
    buffer_time: int = 15


class UserPatterns(FrozenModel):
    """Learned behavioral patterns of the user"""
    work_hours: WorkHours = Field(default_factory=WorkHours)
    lunch_time: LunchTime = Field(default_factory=LunchTime)
    break_preferences: BreakPreferences = Field(default_factory=BreakPreferences)
    meeting_preferences: MeetingPreferences = Field(default_factory=MeetingPreferences)
    common_phrases: Dict[str, str] = Field(default_factory=dict, description="'my morning block' -> 'Deep Work'")
    email_times: List[str] = Field(default_factory=list)


class ContextSnapshot(FrozenModel):
    """Point-in-time context needed to interpret one utterance"""
    user_id: str
    temporal: TemporalContext
    state: StateContext = Field(default_factory=StateContext)
    memory: MemoryContext = Field(default_factory=MemoryContext)
    patterns: UserPatterns = Field(default_factory=UserPatterns)
    degraded_sources: List[str] = Field(default_factory=list, description="Sources that failed during assembly")

    def block_by_id(self, block_id: str) -> Optional[ScheduleBlock]:
        for block in self.state.schedule:
            if block.id == block_id:
                return block
        return None
