"""Pipeline data models."""

from dayli_agent.domain.models.context_snapshot import (
    ActiveProposal,
    ContextSnapshot,
    ConversationMessage,
    MemoryContext,
    MentionedEntities,
    MentionedEntity,
    OperationSummary,
    ScheduleBlock,
    StateContext,
    TemporalContext,
    UserPatterns,
)
from dayli_agent.domain.models.execution_plan import (
    Ambiguity,
    Execution,
    ExecutionPlan,
    ExecutionType,
    Intent,
    PlanMetadata,
    PlanStep,
    ResolvedEntity,
    ResolvedReferences,
    ResolvedValue,
)
from dayli_agent.domain.models.operation import (
    ErrorCode,
    ExecutionError,
    ExecutionResult,
    StepOutcome,
    StepStatus,
    TrackedOperation,
)

__all__ = [
    "ActiveProposal",
    "Ambiguity",
    "ContextSnapshot",
    "ConversationMessage",
    "ErrorCode",
    "Execution",
    "ExecutionError",
    "ExecutionPlan",
    "ExecutionResult",
    "ExecutionType",
    "Intent",
    "MemoryContext",
    "MentionedEntities",
    "MentionedEntity",
    "OperationSummary",
    "PlanMetadata",
    "PlanStep",
    "ResolvedEntity",
    "ResolvedReferences",
    "ResolvedValue",
    "ScheduleBlock",
    "StateContext",
    "StepOutcome",
    "StepStatus",
    "TemporalContext",
    "TrackedOperation",
    "UserPatterns",
]
