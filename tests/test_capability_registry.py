import pytest
from pydantic import ValidationError

from dayli_agent.domain.capability.capability import Capability, CapabilityParams
from dayli_agent.domain.capability.capability_registry import CapabilityRegistry
from dayli_agent.domain.errors import CapabilityRegistrationError


class _MoveParams(CapabilityParams):
    block_id: str
    new_start_time: str
    reason: str = ""


async def _noop(params, context):
    return None


def _make_capability(name: str, category: str = "schedule", **fields) -> Capability:
    return Capability(name=name, category=category, handler=_noop, **fields)


class TestCapability:
    def test_parameter_names_are_camel_case(self):
        capability = _make_capability("schedule_moveTimeBlock", parameter_schema=_MoveParams)

        assert capability.parameter_names() == ["blockId", "newStartTime", "reason"]
        assert capability.required_parameters() == ["blockId", "newStartTime"]

    def test_blank_name_rejected(self):
        with pytest.raises(ValidationError):
            _make_capability("  ")

    def test_workflow_category(self):
        assert _make_capability("workflow_schedule", "workflow").is_workflow
        assert not _make_capability("schedule_view").is_workflow


class TestCapabilityRegistry:
    async def test_register_and_get(self):
        registry = CapabilityRegistry()
        registry.register(_make_capability("schedule_view"))

        capability = await registry.get_capability("schedule_view")
        assert capability.name == "schedule_view"
        assert registry.has("schedule_view")
        assert await registry.get_capability("missing") is None

    def test_duplicate_name_rejected(self):
        registry = CapabilityRegistry()
        registry.register(_make_capability("schedule_view"))

        with pytest.raises(CapabilityRegistrationError):
            registry.register(_make_capability("schedule_view", "task"))

    async def test_decorator_uses_docstring(self):
        registry = CapabilityRegistry()

        @registry.capability("task_create", "task")
        async def create(params, context):
            """Add a task to the backlog"""

        capability = await registry.get_capability("task_create")
        assert capability.description == "Add a task to the backlog"
        assert capability.handler is create

    async def test_by_category_and_search(self):
        registry = CapabilityRegistry()
        registry.register(_make_capability("schedule_view", description="View the day"))
        registry.register(_make_capability("schedule_move"))
        registry.register(_make_capability("task_view", "task"))

        by_category = await registry.get_capabilities_by_category("schedule")
        assert [c.name for c in by_category] == ["schedule_view", "schedule_move"]
        assert [c.name for c in await registry.search_capabilities("day")] == ["schedule_view"]
        assert len(await registry.get_available_capabilities()) == 3

    async def test_unregister(self):
        registry = CapabilityRegistry()
        registry.register(_make_capability("schedule_view"))

        assert registry.unregister("schedule_view") is True
        assert registry.unregister("schedule_view") is False
        assert await registry.get_capabilities_by_category("schedule") == []

    async def test_catalog_sorted_by_category_then_name(self):
        registry = CapabilityRegistry()
        registry.register(_make_capability("task_view", "task"))
        registry.register(_make_capability("schedule_move", parameter_schema=_MoveParams))
        registry.register(_make_capability("email_view", "email"))

        catalog = await registry.get_catalog()

        assert [entry["name"] for entry in catalog] == ["email_view", "schedule_move", "task_view"]
        assert catalog[1]["required"] == ["blockId", "newStartTime"]
