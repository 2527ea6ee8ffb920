"""Which entities an operation touched, read from its params and result.

Rules are keyed by capability category and can be replaced per registry or
overridden by a single capability.
"""

from typing import Dict, Any, List, Optional, Mapping
import structlog
from pydantic import BaseModel

from dayli_agent.domain.capability.capability import Capability, EntityRule

logger = structlog.get_logger(__name__)


DEFAULT_ENTITY_RULES: Dict[str, EntityRule] = {
    "schedule": EntityRule(kind="blocks", param_field="blockId", result_paths=("data.id", "blocks[].id")),
    "task": EntityRule(kind="tasks", param_field="taskId", result_paths=("data.id", "tasks[].id")),
    "email": EntityRule(kind="emails", param_field="emailId", result_paths=("data.id", "emails[].id")),
    "calendar": EntityRule(kind="meetings", param_field="meetingId", result_paths=("data.id",)),
}


def _lookup(value: Any, key: str) -> Any:
    if value is None:
        return None
    if isinstance(value, Mapping):
        return value.get(key)
    return getattr(value, key, None)


def _walk(value: Any, segments: List[str]) -> List[Any]:
    if not segments:
        return [] if value is None else [value]

    head, rest = segments[0], segments[1:]
    if head.endswith("[]"):
        items = _lookup(value, head[:-2])
        if not isinstance(items, (list, tuple)):
            return []
        found = []
        for item in items:
            found.extend(_walk(item, rest))
        return found

    return _walk(_lookup(value, head), rest)


def extract_ids(rule: EntityRule, params: Mapping[str, Any], result: Any) -> List[str]:
    """Ids named by the rule; params win over result paths"""

    if rule.param_field:
        value = params.get(rule.param_field)
        if value:
            return [str(value)]

    if isinstance(result, BaseModel):
        result = result.model_dump(by_alias=True)

    for path in rule.result_paths:
        ids = [str(v) for v in _walk(result, path.split(".")) if v not in (None, "")]
        if ids:
            return ids
    return []


class EntityMapper:
    """Resolves the entity rule for a capability and applies it"""

    def __init__(self, rules: Optional[Dict[str, EntityRule]] = None):
        self.rules: Dict[str, EntityRule] = dict(DEFAULT_ENTITY_RULES if rules is None else rules)

    def register_rule(self, category: str, rule: EntityRule) -> None:
        self.rules[category] = rule

    def rule_for(self, capability: Capability) -> Optional[EntityRule]:
        return capability.entity_rule or self.rules.get(capability.category)

    def extract(self, capability: Capability, params: Mapping[str, Any], result: Any) -> Dict[str, List[str]]:
        """Affected entities for one call; an unknown category yields nothing"""

        rule = self.rule_for(capability)
        if rule is None:
            return {}

        try:
            ids = extract_ids(rule, params, result)
        except Exception as e:
            # Extraction is best-effort and must not fail a finished call
            logger.warning("Entity extraction failed", capability=capability.name, error=str(e))
            return {}

        return {rule.kind: ids} if ids else {}


def merge_entities(target: Dict[str, List[str]], extra: Mapping[str, List[str]]) -> Dict[str, List[str]]:
    """Concatenate entity lists per kind, keeping order"""

    for kind, ids in extra.items():
        if ids:
            target.setdefault(kind, []).extend(ids)
    return target
