from typing import Dict, List, Optional, Sequence, Union
import re

from dayli_agent.domain.models.context_snapshot import (
    ContextSnapshot, MentionedEntities, MentionedEntity, OperationSummary, ScheduleBlock
)
from dayli_agent.domain.models.operation import TrackedOperation

OperationLike = Union[TrackedOperation, OperationSummary]

# Singular entity type -> ledger key
ENTITY_KIND_BY_TYPE: Dict[str, str] = {
    "block": "blocks",
    "task": "tasks",
    "email": "emails",
    "meeting": "meetings",
}

_DEFAULT_NAMES = {"block": "Block", "task": "Task", "email": "Email", "meeting": "Meeting"}

_PRONOUN_PATTERN = re.compile(r"\b(it|them|that one|this one|the other one)\b", re.IGNORECASE)
_TRAILING_DEMONSTRATIVE = re.compile(r"\b(that|this)\s*[.?!]*\s*$", re.IGNORECASE)


def find_reference_phrases(utterance: str) -> List[str]:
    """Pronoun-like references that need an antecedent"""

    phrases = [m.group(1).lower() for m in _PRONOUN_PATTERN.finditer(utterance)]
    trailing = _TRAILING_DEMONSTRATIVE.search(utterance)
    if trailing:
        phrases.append(trailing.group(1).lower())
    return list(dict.fromkeys(phrases))


def resolve_reference(operations: Sequence[OperationLike], entity_type: str) -> Optional[str]:
    """First entity of the expected type, walking operations newest-first"""

    kind = ENTITY_KIND_BY_TYPE.get(entity_type, entity_type)
    for operation in operations:
        ids = operation.affected_entities.get(kind) or []
        if ids:
            return ids[0]
    return None


def mentioned_entities(
    operations: Sequence[OperationLike],
    schedule: Sequence[ScheduleBlock] = ()
) -> MentionedEntities:
    """Primary/secondary/all entities from recent operations (newest first)"""

    titles = {block.id: block.title for block in schedule}
    found: List[MentionedEntity] = []

    for operation in operations:
        for entity_type, kind in ENTITY_KIND_BY_TYPE.items():
            ids = operation.affected_entities.get(kind) or []
            if not ids:
                continue
            entity_id = ids[0]
            name = (
                operation.params.get("title")
                or operation.params.get("blockDescription")
                or titles.get(entity_id)
                or _DEFAULT_NAMES[entity_type]
            )
            found.append(MentionedEntity(
                type=entity_type,
                id=entity_id,
                name=str(name),
                last_mentioned=operation.timestamp
            ))

    return MentionedEntities(
        primary=found[0] if found else None,
        secondary=found[1] if len(found) > 1 else None,
        all=found
    )


def has_antecedent(context: ContextSnapshot, entity_type: Optional[str] = None) -> bool:
    """Whether anything in memory could be what "it" points to"""

    operations = context.memory.recent_operations
    if entity_type is not None:
        if resolve_reference(operations, entity_type):
            return True
        return any(e.type == entity_type for e in context.memory.mentioned_entities.all)

    if any(ids for op in operations for ids in op.affected_entities.values()):
        return True
    return bool(context.memory.mentioned_entities.all)

