from typing import Dict, Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime, timezone
from enum import Enum
import uuid


ENTITY_KINDS = ("blocks", "tasks", "emails", "meetings")


class ErrorCode(str, Enum):
    """Structured error codes returned to callers"""
    CAPABILITY_NOT_FOUND = "CAPABILITY_NOT_FOUND"
    NO_CAPABILITY = "NO_CAPABILITY"
    INVALID_PARAMETERS = "INVALID_PARAMETERS"
    CAPABILITY_TIMEOUT = "CAPABILITY_TIMEOUT"
    EXECUTION_FAILED = "EXECUTION_FAILED"
    INVALID_PLAN = "INVALID_PLAN"
    STEP_FAILED = "STEP_FAILED"


class StepStatus(str, Enum):
    """Outcome of one step in a multi-step plan"""
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"
    NOT_RUN = "not_run"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TrackedOperation(BaseModel):
    """Record of one executed capability call (or one composite dispatch)"""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = Field(default_factory=_utcnow)
    capability: str
    params: Dict[str, Any] = Field(default_factory=dict)
    result: Any = None
    affected_entities: Dict[str, List[str]] = Field(default_factory=dict, description="Entity ids keyed by kind")
    user_id: str

    def entity_ids(self, kind: str) -> List[str]:
        return list(self.affected_entities.get(kind) or [])


class ExecutionError(BaseModel):
    """Error part of an execution result"""
    message: str
    code: ErrorCode
    recoverable: bool


class ExecutionResult(BaseModel):
    """Sole contract returned to callers of the dispatcher"""
    success: bool
    result: Any = None
    error: Optional[ExecutionError] = None
    operation: TrackedOperation


class StepOutcome(BaseModel):
    """Per-step record kept inside a multi-step parent operation"""
    index: int
    capability: str
    status: StepStatus
    result: Optional[ExecutionResult] = None
