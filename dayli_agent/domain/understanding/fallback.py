"""Keyword matching used when the language model cannot produce a valid plan."""

from dayli_agent.domain.models.execution_plan import (
    Execution, ExecutionPlan, ExecutionType, Intent, PlanMetadata
)

APPROVAL_WORKFLOW = "workflow_schedule"
APPROVAL_CONFIDENCE = 0.8
CONVERSATION_CONFIDENCE = 0.5


def is_approval_request(utterance: str) -> bool:
    lower = utterance.lower()
    return "approve" in lower and ("schedule" in lower or "proposal" in lower)


def keyword_fallback(utterance: str) -> ExecutionPlan:
    """Deterministic plan for an utterance; never raises"""

    if is_approval_request(utterance):
        return ExecutionPlan(
            intent=Intent(primary="approve_proposal", confidence=APPROVAL_CONFIDENCE, reasoning="Keyword match for approval"),
            execution=Execution(
                type=ExecutionType.WORKFLOW,
                workflow_name=APPROVAL_WORKFLOW,
                parameters={"isApproval": True}
            ),
            metadata=PlanMetadata(context_used=["keywords"], confidence=APPROVAL_CONFIDENCE, source="fallback")
        )

    return ExecutionPlan(
        intent=Intent(
            primary="conversation",
            confidence=CONVERSATION_CONFIDENCE,
            reasoning="No clear intent detected, defaulting to conversation"
        ),
        execution=Execution(type=ExecutionType.SINGLE),
        metadata=PlanMetadata(confidence=CONVERSATION_CONFIDENCE, source="fallback")
    )
