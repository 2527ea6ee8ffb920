import pytest
from langchain_core.language_models.fake_chat_models import FakeListChatModel

from dayli_agent.domain.errors import PlanGenerationError
from dayli_agent.domain.models.execution_plan import ExecutionType
from dayli_agent.domain.understanding.plan_generator import PlanGenerator, message_text, parse_plan


class TestParsePlan:
    def test_plain_json(self, plan_json):
        plan = parse_plan(plan_json("schedule_viewSchedule", {"date": "2024-07-04"}))
        assert plan.execution.capability == "schedule_viewSchedule"
        assert plan.execution.parameters == {"date": "2024-07-04"}

    def test_code_fenced_json(self, plan_json):
        plan = parse_plan("```json\n" + plan_json("task_viewTasks") + "\n```")
        assert plan.execution.capability == "task_viewTasks"

    def test_json_surrounded_by_prose(self, plan_json):
        plan = parse_plan("Here is the plan: " + plan_json("task_viewTasks") + " Hope it helps")
        assert plan.intent.primary == "test_intent"

    def test_conversation_type_becomes_single(self):
        plan = parse_plan('{"intent": {"primary": "chat", "confidence": 0.6}, "execution": {"type": "conversation"}}')
        assert plan.execution.type == ExecutionType.SINGLE
        assert plan.execution.capability is None

    def test_workflow_and_step_aliases(self):
        plan = parse_plan(
            '{"intent": {"primary": "x", "confidence": 0.9},'
            ' "execution": {"type": "multi_step", "steps": ['
            '{"tool": "a", "parameters": {}}, {"capability": "b", "dependsOn": [0]}]}}'
        )
        assert [step.capability for step in plan.execution.steps] == ["a", "b"]
        assert plan.execution.steps[1].depends_on == [0]

    def test_string_ambiguities_are_accepted(self):
        plan = parse_plan(
            '{"intent": {"primary": "x", "confidence": 0.4}, "execution": {"type": "single"},'
            ' "ambiguities": ["Which block?"]}'
        )
        assert plan.needs_clarification
        assert plan.ambiguities[0].message == "Which block?"

    @pytest.mark.parametrize("text", [
        "no json here",
        "{not json}",
        '{"intent": {"primary": "x"}}',
        '{"intent": {"primary": "x", "confidence": 2}, "execution": {"type": "single"}}',
    ])
    def test_rejects_invalid_output(self, text):
        with pytest.raises(PlanGenerationError):
            parse_plan(text)


class TestMessageText:
    def test_content_parts(self):
        assert message_text([{"type": "text", "text": "{"}, "}", {"type": "image_url"}]) == "{}"


class TestPlanGenerator:
    async def test_generate(self, plan_json):
        model = FakeListChatModel(responses=[plan_json("email_viewEmails")])
        plan = await PlanGenerator(model).generate("prompt")
        assert plan.execution.capability == "email_viewEmails"

    async def test_model_failure_is_wrapped(self, failing_model):
        with pytest.raises(PlanGenerationError):
            await PlanGenerator(failing_model, timeout=5).generate("prompt")
