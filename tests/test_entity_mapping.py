from pydantic import BaseModel

from dayli_agent.domain.capability.capability import Capability, EntityRule
from dayli_agent.domain.capability.entity_mapping import EntityMapper, extract_ids, merge_entities


async def _noop(params, context):
    return None


def _make_capability(category: str, entity_rule=None) -> Capability:
    return Capability(name=f"{category}_test", category=category, handler=_noop, entity_rule=entity_rule)


class _Result(BaseModel):
    data: dict


class TestExtractIds:
    def test_param_field_wins(self):
        rule = EntityRule(kind="blocks", param_field="blockId", result_paths=("data.id",))
        assert extract_ids(rule, {"blockId": "B1"}, {"data": {"id": "B2"}}) == ["B1"]

    def test_first_matching_result_path(self):
        rule = EntityRule(kind="blocks", result_paths=("data.id", "blocks[].id"))
        assert extract_ids(rule, {}, {"blocks": [{"id": "B1"}, {"id": "B2"}, {}]}) == ["B1", "B2"]

    def test_model_result(self):
        rule = EntityRule(kind="tasks", result_paths=("data.id",))
        assert extract_ids(rule, {}, _Result(data={"id": "T1"})) == ["T1"]

    def test_nothing_found(self):
        rule = EntityRule(kind="tasks", result_paths=("data.id",))
        assert extract_ids(rule, {}, None) == []
        assert extract_ids(rule, {}, {"data": "not a mapping"}) == []


class TestEntityMapper:
    def test_default_rules_by_category(self):
        mapper = EntityMapper()
        assert mapper.extract(_make_capability("email"), {"emailId": "E1"}, None) == {"emails": ["E1"]}
        assert mapper.extract(_make_capability("calendar"), {}, {"data": {"id": "M1"}}) == {"meetings": ["M1"]}

    def test_unknown_category_yields_nothing(self):
        assert EntityMapper().extract(_make_capability("workflow"), {"blockId": "B1"}, None) == {}

    def test_capability_rule_overrides_category(self):
        rule = EntityRule(kind="tasks", result_paths=("created[].id",))
        capability = _make_capability("schedule", entity_rule=rule)

        assert EntityMapper().extract(capability, {}, {"created": [{"id": "T9"}]}) == {"tasks": ["T9"]}

    def test_registered_rule(self):
        mapper = EntityMapper(rules={})
        mapper.register_rule("notes", EntityRule(kind="notes", param_field="noteId"))

        assert mapper.extract(_make_capability("notes"), {"noteId": "N1"}, None) == {"notes": ["N1"]}


class TestMergeEntities:
    def test_concatenates_per_kind(self):
        merged = merge_entities({"blocks": ["B1"]}, {"blocks": ["B2"], "tasks": ["T1"], "emails": []})
        assert merged == {"blocks": ["B1", "B2"], "tasks": ["T1"]}
