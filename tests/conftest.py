"""Shared fixtures: a fixed clock, snapshot factories and fake chat models."""

import json
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import pytest
from langchain_core.language_models.fake_chat_models import FakeListChatModel

from dayli_agent.domain.clock import at_local_time, fixed_clock, localize
from dayli_agent.domain.models.context_snapshot import (
    ActiveProposal,
    ContextSnapshot,
    ConversationMessage,
    MemoryContext,
    OperationSummary,
    ScheduleBlock,
    StateContext,
    TaskSummary,
    TemporalContext,
)
from dayli_agent.domain.context.reference_resolver import mentioned_entities

TZ = "America/New_York"
# 12:00 in New York on 2024-07-10
NOW = datetime(2024, 7, 10, 16, 0, tzinfo=timezone.utc)
VIEWING_DATE = date(2024, 7, 4)


class CountingChatModel(FakeListChatModel):
    """FakeListChatModel that counts how often it is called"""

    calls: int = 0
    last_prompt: str = ""

    def _call(self, messages, stop=None, run_manager=None, **kwargs):
        self.calls += 1
        self.last_prompt = messages[-1].content
        return super()._call(messages, stop=stop, run_manager=run_manager, **kwargs)


class FailingChatModel(FakeListChatModel):
    """Chat model whose every call raises"""

    responses: List[str] = ["unused"]

    def _call(self, messages, stop=None, run_manager=None, **kwargs):
        raise RuntimeError("model unavailable")


def _make_block(
    block_id: str,
    title: str,
    start: str = "09:00",
    end: str = "09:30",
    day: date = VIEWING_DATE,
    block_type: str = "meeting",
) -> ScheduleBlock:
    return ScheduleBlock(
        id=block_id,
        type=block_type,
        title=title,
        start_time=at_local_time(day, start, TZ),
        end_time=at_local_time(day, end, TZ),
    )


def _make_operation(
    capability: str,
    params: Optional[Dict[str, Any]] = None,
    affected: Optional[Dict[str, List[str]]] = None,
    timestamp: datetime = NOW,
) -> OperationSummary:
    return OperationSummary(
        capability=capability,
        params=params or {},
        timestamp=timestamp,
        affected_entities=affected or {},
    )


def _make_context(
    user_id: str = "user_1",
    viewing_date: date = VIEWING_DATE,
    now: datetime = NOW,
    schedule: Sequence[ScheduleBlock] = (),
    tasks: Sequence[TaskSummary] = (),
    operations: Sequence[OperationSummary] = (),
    proposals: Sequence[ActiveProposal] = (),
    messages: Sequence[ConversationMessage] = (),
) -> ContextSnapshot:
    return ContextSnapshot(
        user_id=user_id,
        temporal=TemporalContext(
            now=now,
            viewing_date=viewing_date,
            timezone=TZ,
            is_today=viewing_date == localize(now, TZ).date(),
        ),
        state=StateContext(schedule=list(schedule), tasks=list(tasks)),
        memory=MemoryContext(
            recent_messages=list(messages),
            recent_operations=list(operations),
            active_proposals=list(proposals),
            mentioned_entities=mentioned_entities(list(operations)[:5], schedule),
        ),
    )


def _plan_json(
    capability: Optional[str] = None,
    parameters: Optional[Dict[str, Any]] = None,
    execution_type: str = "single",
    intent: str = "test_intent",
    confidence: float = 0.9,
    resolved: Optional[Dict[str, Any]] = None,
    ambiguities: Optional[List[Any]] = None,
    **execution_extra: Any,
) -> str:
    execution: Dict[str, Any] = {"type": execution_type}
    if capability is not None:
        execution["capability"] = capability
    if parameters is not None:
        execution["parameters"] = parameters
    execution.update(execution_extra)
    return json.dumps({
        "intent": {"primary": intent, "confidence": confidence, "reasoning": "test"},
        "execution": execution,
        "resolved": resolved or {"dates": [], "times": [], "blocks": [], "entities": []},
        "ambiguities": ambiguities or [],
    })


@pytest.fixture
def clock():
    return fixed_clock(NOW)


@pytest.fixture
def make_block():
    return _make_block


@pytest.fixture
def make_operation():
    return _make_operation


@pytest.fixture
def make_context():
    return _make_context


@pytest.fixture
def plan_json():
    return _plan_json


@pytest.fixture
def chat_model():
    """Factory for a counting fake model answering with the given responses in turn"""
    return lambda *responses: CountingChatModel(responses=list(responses))


@pytest.fixture
def failing_model():
    return FailingChatModel()
