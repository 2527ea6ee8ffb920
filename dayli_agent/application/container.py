"""Wires the pipeline together from settings. Every shared component is built once here and injected."""

from typing import Optional
import structlog
from langchain_core.language_models import BaseChatModel

from dayli_agent.domain.capability.builtin import register_builtin_capabilities
from dayli_agent.domain.capability.capability_registry import CapabilityRegistry
from dayli_agent.domain.capability.dispatcher import ExecutionDispatcher
from dayli_agent.domain.capability.entity_mapping import EntityMapper
from dayli_agent.domain.clock import Clock, system_clock
from dayli_agent.domain.context.context_assembler import ContextAssembler
from dayli_agent.domain.context.memory.operation_ledger import OperationLedger
from dayli_agent.domain.context.memory.response_cache import ResponseCache
from dayli_agent.domain.context.state.proposal_store import InMemoryProposalStore
from dayli_agent.domain.orchestration.pipeline import ChatPipeline
from dayli_agent.domain.services.in_memory import (
    InMemoryEmailService, InMemoryPreferenceService, InMemoryScheduleService, InMemoryTaskService
)
from dayli_agent.domain.services.interfaces import (
    EmailService, PreferenceService, ScheduleService, TaskService
)
from dayli_agent.domain.understanding.intent_resolver import IntentResolver
from dayli_agent.infrastructure.config import Settings
from dayli_agent.infrastructure.llm.model_factory import create_chat_model

logger = structlog.get_logger(__name__)


class AgentContainer:
    """Holds the components of one running agent"""

    def __init__(
        self,
        settings: Settings,
        model: Optional[BaseChatModel] = None,
        schedule_service: Optional[ScheduleService] = None,
        task_service: Optional[TaskService] = None,
        preference_service: Optional[PreferenceService] = None,
        email_service: Optional[EmailService] = None,
        clock: Clock = system_clock,
        register_builtins: bool = True
    ):
        self.settings = settings
        self.clock = clock

        self.schedule_service = schedule_service or InMemoryScheduleService(settings.default_timezone)
        self.task_service = task_service or InMemoryTaskService()
        self.preference_service = preference_service or InMemoryPreferenceService()
        self.email_service = email_service or InMemoryEmailService()

        self.registry = CapabilityRegistry()
        self.ledger = OperationLedger(max_size=settings.ledger_max_size)
        self.cache = ResponseCache(max_size=settings.cache_max_size, ttl_seconds=settings.cache_ttl_seconds)
        self.proposal_store = InMemoryProposalStore(ttl_minutes=settings.proposal_ttl_minutes, clock=clock)

        if register_builtins:
            register_builtin_capabilities(self.registry, self.schedule_service, self.task_service, self.email_service)

        self.model = model or create_chat_model(settings)

        self.assembler = ContextAssembler(
            schedule_service=self.schedule_service,
            task_service=self.task_service,
            preference_service=self.preference_service,
            ledger=self.ledger,
            email_service=self.email_service,
            proposal_source=self.proposal_store,
            clock=clock,
            default_timezone=settings.default_timezone,
            fetch_timeout=settings.context_fetch_timeout
        )
        self.resolver = IntentResolver(
            model=self.model,
            registry=self.registry,
            cache=self.cache,
            low_confidence_threshold=settings.low_confidence_threshold,
            model_timeout=settings.model_timeout
        )
        self.dispatcher = ExecutionDispatcher(
            registry=self.registry,
            ledger=self.ledger,
            entity_mapper=EntityMapper(),
            default_timeout=settings.capability_timeout,
            clock=clock
        )
        self.pipeline = ChatPipeline(self.assembler, self.resolver, self.dispatcher)

        logger.info("Agent container ready", capabilities=len(self.registry.names()))
