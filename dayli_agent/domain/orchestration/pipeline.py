from typing import TypedDict, List, Dict, Any, Optional, Sequence, Union
import uuid
import structlog
from datetime import date
from langgraph.graph import StateGraph, END
from pydantic import BaseModel, Field

from dayli_agent.domain.capability.dispatcher import ExecutionDispatcher
from dayli_agent.domain.context.context_assembler import ContextAssembler, MessageLike
from dayli_agent.domain.models.context_snapshot import ContextSnapshot
from dayli_agent.domain.models.execution_plan import ExecutionPlan, ExecutionType
from dayli_agent.domain.models.operation import ErrorCode, ExecutionResult
from dayli_agent.domain.understanding.intent_resolver import IntentResolver
from dayli_agent.infrastructure.observability.logging import bind_request_context, clear_request_context

logger = structlog.get_logger(__name__)

FAILURE_PREFIX = "I couldn't complete that"
REPHRASE_RESPONSE = "I'm not sure what you'd like me to do. Could you rephrase that?"


class PipelineState(TypedDict, total=False):
    """State carried through the understanding graph"""
    user_id: str
    utterance: str
    history: List[MessageLike]
    viewing_date: Optional[Union[date, str]]
    context: ContextSnapshot
    plan: ExecutionPlan
    execution: Optional[ExecutionResult]
    response: str


class PipelineResult(BaseModel):
    """Everything the caller gets back for one message"""
    response: str
    plan: Optional[ExecutionPlan] = None
    execution: Optional[ExecutionResult] = None
    needs_clarification: bool = False
    degraded_sources: List[str] = Field(default_factory=list)


def _message_text(message: MessageLike) -> str:
    if isinstance(message, dict):
        return str(message.get("content", ""))
    return message.content


def last_user_message(history: Sequence[MessageLike]) -> str:
    for message in reversed(list(history)):
        role = message.get("role") if isinstance(message, dict) else message.role
        if role == "user":
            return _message_text(message)
    return ""


def is_conversational(plan: ExecutionPlan) -> bool:
    return plan.execution.type == ExecutionType.SINGLE and not plan.execution.capability


def clarification_response(plan: ExecutionPlan) -> str:
    lines = ["I need a bit more detail before I do that:"]
    for ambiguity in plan.ambiguities:
        lines.append(f"- {ambiguity.message}")
        if ambiguity.options:
            lines.append("  Options: " + ", ".join(option.display for option in ambiguity.options))
    return "\n".join(lines)


def failure_response(code: str, message: Optional[str] = None) -> str:
    if message:
        return f"{FAILURE_PREFIX} ({code}): {message}"
    return f"{FAILURE_PREFIX} ({code})."


def execution_response(plan: ExecutionPlan, result: ExecutionResult) -> str:
    if not result.success:
        return failure_response(result.error.code.value, result.error.message)

    if plan.execution.type == ExecutionType.MULTI_STEP:
        return f"Done. Completed {len(plan.execution.steps or [])} steps."
    return f"Done: {result.operation.capability}."


class ChatPipeline:
    """Context assembly, understanding and dispatch for one chat message, as a LangGraph graph"""

    def __init__(
        self,
        assembler: ContextAssembler,
        resolver: IntentResolver,
        dispatcher: ExecutionDispatcher
    ):
        self.assembler = assembler
        self.resolver = resolver
        self.dispatcher = dispatcher
        self.workflow = self._create_workflow()

    def _create_workflow(self):
        workflow = StateGraph(PipelineState)

        workflow.add_node("context_builder", self.context_node)
        workflow.add_node("understanding", self.understanding_node)
        workflow.add_node("dispatcher", self.dispatch_node)
        workflow.add_node("clarifier", self.clarification_node)
        workflow.add_node("responder", self.response_node)

        workflow.set_entry_point("context_builder")
        workflow.add_edge("context_builder", "understanding")

        workflow.add_conditional_edges(
            "understanding",
            self.route_after_understanding,
            {
                "clarify": "clarifier",
                "conversation": "responder",
                "execute": "dispatcher"
            }
        )

        workflow.add_edge("dispatcher", "responder")
        workflow.add_edge("clarifier", END)
        workflow.add_edge("responder", END)

        return workflow.compile()

    async def context_node(self, state: PipelineState) -> Dict[str, Any]:
        context = await self.assembler.build_context(
            state["user_id"],
            state.get("history", []),
            state.get("viewing_date")
        )
        return {"context": context}

    async def understanding_node(self, state: PipelineState) -> Dict[str, Any]:
        plan = await self.resolver.understand(state["utterance"], state["context"])
        return {"plan": plan}

    def route_after_understanding(self, state: PipelineState) -> str:
        plan = state["plan"]
        if plan.needs_clarification:
            return "clarify"
        if is_conversational(plan):
            return "conversation"
        return "execute"

    async def dispatch_node(self, state: PipelineState) -> Dict[str, Any]:
        result = await self.dispatcher.execute(state["plan"], state["context"])
        return {"execution": result}

    async def clarification_node(self, state: PipelineState) -> Dict[str, Any]:
        logger.info("Plan needs clarification", ambiguities=len(state["plan"].ambiguities))
        return {"response": clarification_response(state["plan"]), "execution": None}

    async def response_node(self, state: PipelineState) -> Dict[str, Any]:
        plan = state["plan"]
        result = state.get("execution")
        if result is not None:
            return {"response": execution_response(plan, result)}

        if plan.metadata.source == "fallback" or not plan.intent.reasoning:
            return {"response": REPHRASE_RESPONSE}
        return {"response": plan.intent.reasoning}

    async def handle(
        self,
        user_id: str,
        messages: Sequence[MessageLike],
        viewing_date: Optional[Union[date, str]] = None
    ) -> PipelineResult:
        """Process the newest user message; failures become a response, never an exception"""

        request_id = str(uuid.uuid4())
        bind_request_context(request_id, user_id)
        try:
            state = await self.workflow.ainvoke({
                "user_id": user_id,
                "utterance": last_user_message(messages),
                "history": list(messages),
                "viewing_date": viewing_date,
            })
        except Exception as e:
            logger.error("Pipeline failed", user_id=user_id, error=str(e), exc_info=True)
            return PipelineResult(response=failure_response(ErrorCode.EXECUTION_FAILED.value))
        finally:
            clear_request_context()

        plan = state.get("plan")
        context = state.get("context")
        return PipelineResult(
            response=state.get("response") or failure_response(ErrorCode.EXECUTION_FAILED.value),
            plan=plan,
            execution=state.get("execution"),
            needs_clarification=bool(plan and plan.needs_clarification),
            degraded_sources=list(context.degraded_sources) if context else []
        )
