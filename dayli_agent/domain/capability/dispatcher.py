"""Execution Dispatcher: runs a validated plan against the capability registry.

Every call to ``execute`` returns an ExecutionResult and records exactly one
TrackedOperation in the ledger. Failures never propagate as exceptions.
"""

from typing import Dict, Any, List, Optional, Tuple
import asyncio
import inspect
import time
import structlog
from pydantic import ValidationError

from dayli_agent.domain.capability.capability import Capability
from dayli_agent.domain.capability.capability_registry import CapabilityRegistry
from dayli_agent.domain.capability.entity_mapping import EntityMapper, merge_entities
from dayli_agent.domain.clock import Clock, system_clock
from dayli_agent.domain.context.memory.operation_ledger import OperationLedger
from dayli_agent.domain.errors import CapabilityError
from dayli_agent.domain.models.context_snapshot import ContextSnapshot
from dayli_agent.domain.models.execution_plan import ExecutionPlan, ExecutionType, PlanStep
from dayli_agent.domain.models.operation import (
    ErrorCode, ExecutionError, ExecutionResult, StepOutcome, StepStatus, TrackedOperation
)
from dayli_agent.infrastructure.observability.logging import agent_logger, metrics_collector

logger = structlog.get_logger(__name__)

MULTI_STEP_OPERATION = "multi_step"


class _CallOutcome:
    """Result of one capability call before it becomes a tracked operation"""

    def __init__(
        self,
        capability: str,
        params: Dict[str, Any],
        success: bool,
        result: Any = None,
        error: Optional[ExecutionError] = None,
        affected_entities: Optional[Dict[str, List[str]]] = None
    ):
        self.capability = capability
        self.params = params
        self.success = success
        self.result = result
        self.error = error
        self.affected_entities = affected_entities or {}

    @property
    def fatal(self) -> bool:
        return self.error is not None and not self.error.recoverable


class ExecutionDispatcher:
    """Dispatches single, workflow and multi-step plans"""

    def __init__(
        self,
        registry: CapabilityRegistry,
        ledger: OperationLedger,
        entity_mapper: Optional[EntityMapper] = None,
        default_timeout: Optional[float] = 30.0,
        clock: Clock = system_clock
    ):
        self.registry = registry
        self.ledger = ledger
        self.entity_mapper = entity_mapper or EntityMapper()
        self.default_timeout = default_timeout
        self.clock = clock

    async def execute(self, plan: ExecutionPlan, context: ContextSnapshot) -> ExecutionResult:
        """Run the plan; the returned result is the only contract with the caller"""

        execution = plan.execution
        start_time = time.monotonic()

        logger.info(
            "Executing plan",
            user_id=context.user_id,
            execution_type=execution.type.value,
            target=execution.target,
            confidence=plan.intent.confidence
        )

        try:
            if plan.needs_clarification:
                outcome = self._failure(
                    execution.target or "unknown",
                    execution.parameters or {},
                    "Plan has unresolved ambiguities and cannot be executed",
                    ErrorCode.INVALID_PLAN,
                    recoverable=True
                )
                result = await self._finish(outcome, context)
            elif execution.type == ExecutionType.MULTI_STEP:
                result = await self._execute_multi_step(execution.steps or [], context)
            elif execution.type == ExecutionType.WORKFLOW:
                result = await self._execute_single(execution.workflow_name, execution.parameters or {}, context)
            else:
                result = await self._execute_single(execution.capability, execution.parameters or {}, context)
        except Exception as e:
            # Anything escaping the mode handlers is an internal fault; it is still reported, never raised
            logger.error("Plan execution failed", user_id=context.user_id, error=str(e), exc_info=True)
            outcome = self._failure(
                execution.target or "unknown",
                execution.parameters or {},
                str(e) or type(e).__name__,
                ErrorCode.EXECUTION_FAILED,
                recoverable=True
            )
            result = await self._finish(outcome, context)

        duration_ms = (time.monotonic() - start_time) * 1000
        metrics_collector.record_latency("dispatch", duration_ms)
        agent_logger.log_capability_execution(
            capability=result.operation.capability,
            user_id=context.user_id,
            duration_ms=duration_ms,
            success=result.success,
            error_code=result.error.code.value if result.error else None
        )
        return result

    async def _execute_single(
        self,
        capability_name: Optional[str],
        parameters: Dict[str, Any],
        context: ContextSnapshot
    ) -> ExecutionResult:
        if not capability_name:
            outcome = self._failure(
                "conversation",
                parameters,
                "Plan does not name a capability to execute",
                ErrorCode.NO_CAPABILITY,
                recoverable=True
            )
        else:
            outcome = await self._dispatch(capability_name, parameters, context)
        return await self._finish(outcome, context)

    async def _execute_multi_step(self, steps: List[PlanStep], context: ContextSnapshot) -> ExecutionResult:
        if not steps:
            outcome = self._failure(
                MULTI_STEP_OPERATION, {"steps": []}, "Multi-step plan has no steps", ErrorCode.INVALID_PLAN, False
            )
            return await self._finish(outcome, context)

        statuses: Dict[int, StepStatus] = {}
        outcomes: List[StepOutcome] = []
        affected: Dict[str, List[str]] = {}
        first_failure: Optional[Tuple[int, _CallOutcome]] = None
        aborted = False

        for index, step in enumerate(steps):
            if aborted:
                statuses[index] = StepStatus.NOT_RUN
                outcomes.append(StepOutcome(index=index, capability=step.capability, status=StepStatus.NOT_RUN))
                continue

            # A dependency counts as met only if that step ran and succeeded
            unmet = [dep for dep in step.depends_on if statuses.get(dep) != StepStatus.SUCCEEDED]
            if unmet:
                logger.info("Skipping step with unmet dependencies", step=index, capability=step.capability, unmet=unmet)
                statuses[index] = StepStatus.SKIPPED
                outcomes.append(StepOutcome(index=index, capability=step.capability, status=StepStatus.SKIPPED))
                continue

            call = await self._dispatch(step.capability, step.parameters, context)
            statuses[index] = StepStatus.SUCCEEDED if call.success else StepStatus.FAILED
            merge_entities(affected, call.affected_entities)
            outcomes.append(StepOutcome(
                index=index,
                capability=step.capability,
                status=statuses[index],
                result=self._to_result(call, self._operation(call, context))
            ))

            if not call.success:
                if first_failure is None:
                    first_failure = (index, call)
                if call.fatal:
                    logger.warning("Aborting multi-step plan after fatal step", step=index, capability=step.capability)
                    aborted = True

        success = first_failure is None
        error = None
        if first_failure is not None:
            index, call = first_failure
            error = ExecutionError(
                message=f"Step {index} ({call.capability}) failed: {call.error.message}",
                code=ErrorCode.STEP_FAILED,
                recoverable=not aborted
            )

        parent = _CallOutcome(
            capability=MULTI_STEP_OPERATION,
            params={"steps": [s.model_dump(by_alias=True) for s in steps]},
            success=success,
            result={"steps": [o.model_dump(mode="json") for o in outcomes]},
            error=error,
            affected_entities=affected
        )
        operation = self._operation(parent, context)
        await self.ledger.record(operation)

        return ExecutionResult(success=success, result=outcomes, error=error, operation=operation)

    async def _dispatch(self, capability_name: str, parameters: Dict[str, Any], context: ContextSnapshot) -> _CallOutcome:
        """Run one capability; never raises"""

        capability = await self.registry.get_capability(capability_name)
        if capability is None:
            return self._failure(
                capability_name,
                parameters,
                f"Capability '{capability_name}' is not registered",
                ErrorCode.CAPABILITY_NOT_FOUND,
                recoverable=False
            )

        try:
            validated = capability.parameter_schema.model_validate(parameters)
        except ValidationError as e:
            return self._failure(
                capability_name,
                parameters,
                f"Invalid parameters for {capability_name}: {e.errors(include_url=False)}",
                ErrorCode.INVALID_PARAMETERS,
                recoverable=False
            )

        try:
            result = await self._invoke(capability, validated, context)
        except CapabilityError as e:
            return self._failure(capability_name, parameters, e.message, e.code, e.recoverable)
        except asyncio.TimeoutError:
            return self._failure(
                capability_name,
                parameters,
                f"Capability '{capability_name}' timed out",
                ErrorCode.CAPABILITY_TIMEOUT,
                recoverable=True
            )
        except Exception as e:
            logger.warning("Capability raised", capability=capability_name, error=str(e), error_type=type(e).__name__)
            return self._failure(
                capability_name,
                parameters,
                str(e) or type(e).__name__,
                ErrorCode.EXECUTION_FAILED,
                recoverable=capability.recoverable_on_error
            )

        return _CallOutcome(
            capability=capability_name,
            params=parameters,
            success=True,
            result=result,
            affected_entities=self.entity_mapper.extract(capability, parameters, result)
        )

    async def _invoke(self, capability: Capability, params: Any, context: ContextSnapshot) -> Any:
        handler = capability.handler
        timeout = capability.timeout if capability.timeout is not None else self.default_timeout

        if inspect.iscoroutinefunction(handler):
            call = handler(params, context)
        else:
            call = asyncio.to_thread(handler, params, context)

        if timeout is None:
            return await call
        return await asyncio.wait_for(call, timeout=timeout)

    def _failure(
        self,
        capability_name: str,
        parameters: Dict[str, Any],
        message: str,
        code: ErrorCode,
        recoverable: bool
    ) -> _CallOutcome:
        # A failed call touched nothing that can be referred back to
        return _CallOutcome(
            capability=capability_name,
            params=parameters,
            success=False,
            error=ExecutionError(message=message, code=code, recoverable=recoverable)
        )

    def _operation(self, outcome: _CallOutcome, context: ContextSnapshot) -> TrackedOperation:
        return TrackedOperation(
            timestamp=self.clock(),
            capability=outcome.capability,
            params=outcome.params,
            result=outcome.result,
            affected_entities=outcome.affected_entities,
            user_id=context.user_id
        )

    def _to_result(self, outcome: _CallOutcome, operation: TrackedOperation) -> ExecutionResult:
        return ExecutionResult(
            success=outcome.success,
            result=outcome.result,
            error=outcome.error,
            operation=operation
        )

    async def _finish(self, outcome: _CallOutcome, context: ContextSnapshot) -> ExecutionResult:
        operation = self._operation(outcome, context)
        await self.ledger.record(operation)
        return self._to_result(outcome, operation)
