from datetime import datetime, timedelta, timezone

from dayli_agent.domain.context.reference_resolver import (
    find_reference_phrases,
    has_antecedent,
    mentioned_entities,
    resolve_reference,
)
from dayli_agent.domain.models.operation import TrackedOperation


class TestFindReferencePhrases:
    def test_pronoun(self):
        assert find_reference_phrases("Move it to 3pm") == ["it"]

    def test_trailing_demonstrative(self):
        assert find_reference_phrases("Cancel that") == ["that"]

    def test_multi_word_references(self):
        assert find_reference_phrases("Move the other one instead") == ["the other one"]

    def test_words_containing_it_are_not_references(self):
        assert find_reference_phrases("Edit my items list") == []

    def test_no_references(self):
        assert find_reference_phrases("Show my schedule for tomorrow") == []


class TestResolveReference:
    def test_walks_newest_first(self, make_operation):
        operations = [
            make_operation("schedule_moveTimeBlock", affected={"blocks": ["B2"]}),
            make_operation("schedule_createTimeBlock", affected={"blocks": ["B1"]}),
        ]
        assert resolve_reference(operations, "block") == "B2"

    def test_skips_operations_without_that_type(self, make_operation):
        operations = [
            make_operation("task_createTask", affected={"tasks": ["T1"]}),
            make_operation("schedule_createTimeBlock", affected={"blocks": ["B1"]}),
        ]
        assert resolve_reference(operations, "block") == "B1"
        assert resolve_reference(operations, "task") == "T1"

    def test_none_when_nothing_matches(self, make_operation):
        operations = [make_operation("schedule_viewSchedule")]
        assert resolve_reference(operations, "email") is None


class TestMentionedEntities:
    def test_primary_and_secondary(self, make_operation, make_block):
        now = datetime(2024, 7, 10, 16, 0, tzinfo=timezone.utc)
        operations = [
            make_operation("task_createTask", params={"title": "Write report"},
                           affected={"tasks": ["T1"]}, timestamp=now),
            make_operation("schedule_createTimeBlock", affected={"blocks": ["B1"]},
                           timestamp=now - timedelta(minutes=1)),
        ]
        schedule = [make_block("B1", "Deep Work")]

        entities = mentioned_entities(operations, schedule)

        assert entities.primary.id == "T1"
        assert entities.primary.name == "Write report"
        assert entities.secondary.id == "B1"
        # Name falls back to the schedule title when params carry none
        assert entities.secondary.name == "Deep Work"
        assert len(entities.all) == 2

    def test_empty(self):
        entities = mentioned_entities([])
        assert entities.primary is None
        assert entities.all == []


class TestHasAntecedent:
    def test_false_without_memory(self, make_context):
        assert has_antecedent(make_context()) is False

    def test_true_with_affected_entities(self, make_context, make_operation):
        context = make_context(operations=[
            make_operation("schedule_createTimeBlock", affected={"blocks": ["B1"]})
        ])
        assert has_antecedent(context) is True
        assert has_antecedent(context, "block") is True
        assert has_antecedent(context, "email") is False

