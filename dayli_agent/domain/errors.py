"""Exceptions raised inside the understanding and execution pipeline.

None of these reach the caller of the pipeline: each stage turns them into a
degraded but valid output (fallback plan, failed ExecutionResult, minimal
context).
"""

from typing import Optional

from dayli_agent.domain.models.operation import ErrorCode


class DayliError(Exception):
    """Base class for pipeline errors"""
    pass


class PlanGenerationError(DayliError):
    """The language model failed or returned output that does not fit the plan schema"""
    pass


class PlanValidationError(DayliError):
    """A schema-valid plan violates an execution rule"""
    pass


class CapabilityRegistrationError(DayliError):
    """A capability could not be added to the registry"""
    pass


class CapabilityError(DayliError):
    """Raised by capability handlers to classify their own failure.

    recoverable=True lets a multi-step plan continue past the failed step;
    recoverable=False aborts the remaining steps.
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.EXECUTION_FAILED,
        recoverable: bool = True,
        details: Optional[dict] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.recoverable = recoverable
        self.details = details or {}


class RecordNotFoundError(DayliError):
    """A service could not find the schedule, task or email record asked for"""

    def __init__(self, record_type: str, record_id: str):
        super().__init__(f"{record_type} {record_id} not found")
        self.record_type = record_type
        self.record_id = record_id
