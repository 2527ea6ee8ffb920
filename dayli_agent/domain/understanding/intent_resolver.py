"""Intent Resolver: turns one utterance plus a context snapshot into an ExecutionPlan.

Order of work:
    cache lookup -> deterministic extraction -> prompt -> model -> merge -> validate
    -> cache -> approval routing -> unresolved-reference gate

Model failures of any kind fall back to keyword matching, so ``understand``
never raises.
"""

from typing import List, Optional
import time
import structlog
from langchain_core.language_models import BaseChatModel

from dayli_agent.domain.capability.capability_registry import CapabilityRegistry
from dayli_agent.domain.clock import localize
from dayli_agent.domain.context.memory.response_cache import ResponseCache
from dayli_agent.domain.context.reference_resolver import has_antecedent
from dayli_agent.domain.errors import PlanValidationError
from dayli_agent.domain.models.context_snapshot import ContextSnapshot
from dayli_agent.domain.models.execution_plan import (
    Ambiguity, AmbiguityOption, Execution, ExecutionPlan, ExecutionType, Intent, ResolvedValue
)
from dayli_agent.domain.understanding.entity_extractor import ExtractedEntities, extract_entities
from dayli_agent.domain.understanding.fallback import keyword_fallback
from dayli_agent.domain.understanding.plan_generator import PlanGenerator
from dayli_agent.domain.understanding.prompt_builder import build_prompt
from dayli_agent.infrastructure.observability.logging import agent_logger, metrics_collector

logger = structlog.get_logger(__name__)

# View capabilities that get {"date": ...} when the model leaves parameters out
VIEW_CAPABILITIES = ("schedule_viewSchedule", "task_viewTasks", "email_viewEmails")

APPROVAL_CONFIDENCE = 0.9
UNRESOLVED_REFERENCE = "unresolved_reference"


def cache_key(utterance: str, context: ContextSnapshot) -> str:
    """Normalized utterance + hour of day + schedule non-empty + task count + viewing date"""

    temporal = context.temporal
    hour = localize(temporal.now, temporal.timezone).hour
    has_schedule = "true" if context.state.schedule else "false"
    return (
        f"{utterance.lower().strip()}_{hour}_{has_schedule}_"
        f"{len(context.state.tasks)}_{temporal.viewing_date.isoformat()}"
    )


def _merge_values(existing: List[ResolvedValue], extracted: List[ResolvedValue]) -> List[ResolvedValue]:
    # The model's resolution wins when both resolved the same phrase
    seen = {value.original.lower() for value in existing}
    return [*existing, *(value for value in extracted if value.original.lower() not in seen)]


def merge_extracted(plan: ExecutionPlan, extracted: ExtractedEntities) -> ExecutionPlan:
    """Add deterministic date and time resolutions the plan does not already have"""

    if not extracted.dates and not extracted.times:
        return plan

    resolved = plan.resolved.model_copy(update={
        "dates": _merge_values(plan.resolved.dates, extracted.dates),
        "times": _merge_values(plan.resolved.times, extracted.times),
    })
    return plan.model_copy(update={"resolved": resolved})


def route_approval(plan: ExecutionPlan, utterance: str, context: ContextSnapshot) -> ExecutionPlan:
    """Send "approve ..." to the workflow behind the newest active proposal"""

    proposals = context.memory.active_proposals
    if not proposals or "approve" not in utterance.lower():
        return plan

    proposal = proposals[0]
    proposal_date = proposal.date or context.temporal.viewing_date
    logger.info("Routing to proposal approval", proposal_id=proposal.id, workflow=proposal.workflow_name)

    return plan.model_copy(update={
        "intent": Intent(
            primary="approve_proposal",
            confidence=APPROVAL_CONFIDENCE,
            reasoning="User is approving an active proposal"
        ),
        "execution": Execution(
            type=ExecutionType.WORKFLOW,
            workflow_name=proposal.workflow_name,
            parameters={"isApproval": True, "proposalId": proposal.id, "date": proposal_date.isoformat()}
        ),
        "ambiguities": [],
    })


def gate_unresolved_references(
    plan: ExecutionPlan,
    extracted: ExtractedEntities,
    context: ContextSnapshot
) -> ExecutionPlan:
    """Attach an ambiguity when "it" has nothing it could refer to"""

    if not extracted.references:
        return plan
    if plan.resolved.blocks or plan.resolved.entities:
        return plan
    if has_antecedent(context):
        return plan
    if any(a.type == UNRESOLVED_REFERENCE for a in plan.ambiguities):
        return plan

    reference = extracted.references[0]
    options = [
        AmbiguityOption(value=block.id, display=block.title)
        for block in context.state.schedule[:5]
    ]
    ambiguity = Ambiguity(
        type=UNRESOLVED_REFERENCE,
        message=f"No recent item to reference with '{reference}'",
        options=options
    )
    logger.info("Unresolved reference", reference=reference, user_id=context.user_id)
    return plan.model_copy(update={"ambiguities": [*plan.ambiguities, ambiguity]})


def _context_used(context: ContextSnapshot) -> List[str]:
    used = ["temporal", "patterns"]
    if context.state.schedule:
        used.append("schedule")
    if context.memory.recent_messages:
        used.append("conversation")
    if context.memory.recent_operations:
        used.append("operations")
    if context.memory.active_proposals:
        used.append("proposals")
    return used


class IntentResolver:
    """Understanding engine backed by a chat model"""

    def __init__(
        self,
        model: BaseChatModel,
        registry: CapabilityRegistry,
        cache: ResponseCache,
        low_confidence_threshold: float = 0.7,
        model_timeout: Optional[float] = None
    ):
        self.registry = registry
        self.cache = cache
        self.low_confidence_threshold = low_confidence_threshold
        self.generator = PlanGenerator(model, timeout=model_timeout)

    async def understand(self, utterance: str, context: ContextSnapshot) -> ExecutionPlan:
        """Resolve the utterance against the context; never raises"""

        start_time = time.monotonic()
        key = cache_key(utterance, context)
        extracted = extract_entities(utterance, context.temporal.viewing_date)

        cached = await self.cache.get(key)
        if cached is not None:
            metrics_collector.increment_counter("understanding.cache_hit")
            plan = self._finalize(cached, utterance, extracted, context)
            self._log(utterance, context, plan, start_time, cached=True)
            return plan

        metrics_collector.increment_counter("understanding.cache_miss")

        try:
            catalog = await self.registry.get_catalog()
            prompt = build_prompt(utterance, context, catalog, extracted)
            plan = await self.generator.generate(prompt)
            plan = merge_extracted(plan, extracted)
            plan = self.validate(plan, context)
            plan = plan.model_copy(update={"metadata": plan.metadata.model_copy(update={
                "processing_time_ms": (time.monotonic() - start_time) * 1000,
                "context_used": plan.metadata.context_used or _context_used(context),
                "confidence": plan.metadata.confidence or plan.intent.confidence,
                "source": "model",
            })})
        except Exception as e:
            logger.warning("Understanding fell back to keywords", error=str(e), error_type=type(e).__name__)
            metrics_collector.increment_counter("understanding.fallback")
            plan = self._fallback(utterance, extracted, start_time)
        else:
            await self.cache.set(key, plan)

        plan = self._finalize(plan, utterance, extracted, context)
        self._log(utterance, context, plan, start_time)
        return plan

    def validate(self, plan: ExecutionPlan, context: ContextSnapshot) -> ExecutionPlan:
        """Fill allowed defaults and reject plans that cannot be executed"""

        execution = plan.execution

        if execution.type == ExecutionType.SINGLE:
            if execution.capability in VIEW_CAPABILITIES and not execution.parameters:
                day = plan.resolved.dates[0].resolved if plan.resolved.dates else context.temporal.viewing_date.isoformat()
                execution = execution.model_copy(update={"parameters": {"date": day}})

        elif execution.type == ExecutionType.WORKFLOW:
            if not execution.workflow_name:
                raise PlanValidationError("Workflow plan does not name a workflow")
            if execution.parameters is None:
                execution = execution.model_copy(update={"parameters": {}})

        elif execution.type == ExecutionType.MULTI_STEP:
            if not execution.steps:
                raise PlanValidationError("Multi-step plan has no steps")

        for resolution in plan.resolved.all_resolutions():
            if resolution.confidence < self.low_confidence_threshold:
                logger.info(
                    "Low-confidence resolution",
                    original=resolution.original,
                    resolved=resolution.resolved,
                    confidence=resolution.confidence
                )

        if execution is plan.execution:
            return plan
        return plan.model_copy(update={"execution": execution})

    def _fallback(self, utterance: str, extracted: ExtractedEntities, start_time: float) -> ExecutionPlan:
        plan = merge_extracted(keyword_fallback(utterance), extracted)
        metadata = plan.metadata.model_copy(update={"processing_time_ms": (time.monotonic() - start_time) * 1000})
        return plan.model_copy(update={"metadata": metadata})

    def _finalize(
        self,
        plan: ExecutionPlan,
        utterance: str,
        extracted: ExtractedEntities,
        context: ContextSnapshot
    ) -> ExecutionPlan:
        # Both steps depend on memory that is not part of the cache key
        routed = route_approval(plan, utterance, context)
        if routed is not plan:
            return routed
        return gate_unresolved_references(plan, extracted, context)

    def _log(self, utterance: str, context: ContextSnapshot, plan: ExecutionPlan, start_time: float, cached: bool = False):
        duration_ms = (time.monotonic() - start_time) * 1000
        metrics_collector.record_latency("understanding", duration_ms)
        agent_logger.log_understanding(
            user_id=context.user_id,
            utterance=utterance,
            intent=plan.intent.primary,
            confidence=plan.intent.confidence,
            source=plan.metadata.source,
            cached=cached,
            duration_ms=duration_ms
        )
