"""Builds the single prompt that carries everything needed to resolve an utterance.

The prompt states the current and the viewing date, the viewing-day schedule,
recent conversation and operations, user patterns, the resolution rulebook,
the capability catalog and the JSON contract for the answer.
"""

from typing import Dict, Any, List, Optional, Sequence
import json
from datetime import timedelta

from dayli_agent.domain.clock import localize
from dayli_agent.domain.models.context_snapshot import ContextSnapshot
from dayli_agent.domain.understanding.entity_extractor import ExtractedEntities

SYSTEM_ROLE = (
    "You are dayli, a scheduling assistant. You turn one user message into a fully "
    "resolved execution plan and answer with a single JSON object."
)

RECENT_MESSAGE_COUNT = 3
RECENT_OPERATION_COUNT = 3

CATEGORY_TITLES = {
    "schedule": "Schedule",
    "task": "Task",
    "email": "Email",
    "calendar": "Calendar",
    "workflow": "Workflows",
}


def format_temporal_context(context: ContextSnapshot) -> str:
    temporal = context.temporal
    now = localize(temporal.now, temporal.timezone)
    viewing = temporal.viewing_date.isoformat()
    return "\n".join([
        "CRITICAL CONTEXT AWARENESS:",
        f"- Current actual date/time: {now.strftime('%Y-%m-%d %H:%M')} ({now.strftime('%A')}, {temporal.timezone})",
        f"- User is VIEWING: {viewing} ({'today' if temporal.is_today else 'different day'})",
        f'- When user says "today" while viewing {viewing}, they mean {viewing}',
        "- All date references are relative to the VIEWING DATE, not the current date",
    ])


def format_schedule(context: ContextSnapshot) -> str:
    viewing = context.temporal.viewing_date.isoformat()
    schedule = sorted(context.state.schedule, key=lambda b: b.start_time)
    if not schedule:
        return f"CURRENT SCHEDULE (for {viewing}):\nNo blocks scheduled yet."

    tz_name = context.temporal.timezone
    lines = []
    for block in schedule:
        start = localize(block.start_time, tz_name).strftime("%H:%M")
        end = localize(block.end_time, tz_name).strftime("%H:%M")
        line = f'- {start}-{end} [{block.duration_minutes}min] {block.type.upper()}: "{block.title}" (ID: {block.id})'
        if block.description:
            line += f" - {block.description}"
        lines.append(line)

    return f"CURRENT SCHEDULE (for {viewing}):\n" + "\n".join(lines) + f"\n\nTotal blocks: {len(schedule)}"


def format_conversation(context: ContextSnapshot) -> str:
    messages = context.memory.recent_messages[-RECENT_MESSAGE_COUNT:]
    message_lines = [f"{m.role}: {m.content}" for m in messages]

    operation_lines = []
    for op in context.memory.recent_operations[:RECENT_OPERATION_COUNT]:
        entities = [f"{kind}: {', '.join(ids)}" for kind, ids in op.affected_entities.items() if ids]
        params = json.dumps(op.params, default=str, sort_keys=True)
        operation_lines.append(f"- {op.capability}({params}) → {', '.join(entities) or 'no entities'}")

    mentioned = context.memory.mentioned_entities
    mention_lines = []
    if mentioned.primary:
        mention_lines.append(f'- Primary ("it"): {mentioned.primary.type} "{mentioned.primary.name}" (ID: {mentioned.primary.id})')
    if mentioned.secondary:
        mention_lines.append(f'- Secondary ("the other one"): {mentioned.secondary.type} "{mentioned.secondary.name}" (ID: {mentioned.secondary.id})')

    return "\n".join([
        "RECENT CONVERSATION:",
        "\n".join(message_lines) or "No recent messages",
        "",
        "LAST OPERATIONS (newest first):",
        "\n".join(operation_lines) or "No recent operations",
        "",
        "MENTIONED ENTITIES:",
        "\n".join(mention_lines) or "None",
    ])


def format_proposals(context: ContextSnapshot) -> Optional[str]:
    proposals = context.memory.active_proposals
    if not proposals:
        return None
    lines = [
        f"- {p.workflow_name} proposal {p.id} for {p.date.isoformat() if p.date else 'no date'}"
        for p in proposals
    ]
    return "ACTIVE PROPOSALS (awaiting approval):\n" + "\n".join(lines)


def format_user_patterns(context: ContextSnapshot) -> str:
    patterns = context.patterns
    lines = [
        "USER PATTERNS:",
        f"- Work hours: {patterns.work_hours.start} - {patterns.work_hours.end}",
        f"- Lunch typically at: {patterns.lunch_time.start} ({patterns.lunch_time.duration} minutes)",
        f"- Email times: {', '.join(patterns.email_times) or 'not set'}",
        f"- Break preferences: {patterns.break_preferences.duration}min breaks, "
        f"{patterns.break_preferences.frequency} per day",
        f"- Meeting defaults: {patterns.meeting_preferences.default_duration}min meetings with "
        f"{patterns.meeting_preferences.buffer_time}min buffer",
    ]
    if patterns.common_phrases:
        lines.append("- Common phrases:")
        lines.extend(f'  * "{phrase}" = "{meaning}"' for phrase, meaning in patterns.common_phrases.items())
    return "\n".join(lines)


def format_extracted(extracted: Optional[ExtractedEntities]) -> Optional[str]:
    if extracted is None or extracted.is_empty:
        return None

    lines = ["PRE-EXTRACTED ENTITIES (deterministic, anchored to the viewing date):"]
    if extracted.dates:
        lines.append("- Dates: " + ", ".join(f'"{d.original}" = {d.resolved}' for d in extracted.dates))
    if extracted.times:
        lines.append("- Times: " + ", ".join(f'"{t.original}" = {t.resolved}' for t in extracted.times))
    if extracted.durations:
        lines.append("- Durations (minutes): " + ", ".join(str(d) for d in extracted.durations))
    if extracted.people:
        lines.append("- People: " + ", ".join(extracted.people))
    if extracted.references:
        lines.append("- References needing an antecedent: " + ", ".join(f'"{r}"' for r in extracted.references))
    return "\n".join(lines)


def format_resolution_rules(context: ContextSnapshot) -> str:
    viewing = context.temporal.viewing_date.isoformat()
    return f"""RESOLUTION RULES:

### Date Resolution:
- "today" = viewing date ({viewing})
- "tomorrow" = viewing date + 1 day
- "yesterday" = viewing date - 1 day
- "next [day]" = next occurrence of that day from the viewing date
- If no date is specified but a time is mentioned, assume the viewing date
- Past dates add a warning to ambiguities

### Time Resolution:
- Use 24-hour format (14:00, not 2:00 PM)
- "morning" = 09:00, "afternoon" = 13:00, "evening" = 17:00, "night" = 21:00
- Durations ("30 minutes", "2 hours") need no time resolution

### Entity Resolution:
- "it", "that", "the block", "the task" = check recent operations first
- If several entities of the same type qualify, use the most recent
- Named entities ("the Team Standup meeting") = search the schedule by title
- If no entity can be found, add an ambiguity instead of guessing

### Reference Resolution Order:
1. Recent operations (last {RECENT_OPERATION_COUNT})
2. Mentioned entities in the conversation
3. Visible blocks on the viewing date
4. If still ambiguous, ask for clarification

### Edge Case Handling:
- A single block longer than 24 hours is an error
- Overlapping times are flagged for conflict resolution
- Impossible times ("25:00") are flagged as errors"""


def format_capabilities(catalog: Sequence[Dict[str, Any]]) -> str:
    if not catalog:
        return "AVAILABLE CAPABILITIES:\nNone. Answer conversationally."

    grouped: Dict[str, List[Dict[str, Any]]] = {}
    for entry in catalog:
        grouped.setdefault(entry["category"], []).append(entry)

    sections = []
    for category, entries in grouped.items():
        lines = [f"{CATEGORY_TITLES.get(category, category.title())}:"]
        for entry in entries:
            params = ", ".join(
                f"{p}{'' if p in entry['required'] else '?'}" for p in entry["parameters"]
            )
            lines.append(f"- {entry['name']}({params}): {entry['description'] or 'no description'}")
        sections.append("\n".join(lines))

    return "AVAILABLE CAPABILITIES:\n" + "\n\n".join(sections)


def _examples(context: ContextSnapshot) -> List[Dict[str, Any]]:
    viewing = context.temporal.viewing_date
    tomorrow = (viewing + timedelta(days=1)).isoformat()
    return [
        {
            "user": "Block 2 hours for deep work tomorrow morning",
            "plan": {
                "intent": {"primary": "create_time_block", "confidence": 0.95, "reasoning": "Explicit new block"},
                "execution": {
                    "type": "single",
                    "capability": "schedule_createTimeBlock",
                    "parameters": {
                        "date": tomorrow, "startTime": "09:00", "endTime": "11:00",
                        "type": "work", "title": "Deep Work",
                    },
                },
                "resolved": {
                    "dates": [{"original": "tomorrow", "resolved": tomorrow, "confidence": 1.0}],
                    "times": [{"original": "morning", "resolved": "09:00", "confidence": 0.9}],
                    "blocks": [],
                    "entities": [],
                },
                "ambiguities": [],
            },
        },
        {
            "user": "Move it to 3pm",
            "context": 'The most recent operation created the "Team Standup" block block_123',
            "plan": {
                "intent": {"primary": "reschedule_block", "confidence": 0.85, "reasoning": "'it' is the block just created"},
                "execution": {
                    "type": "single",
                    "capability": "schedule_moveTimeBlock",
                    "parameters": {"blockId": "block_123", "newStartTime": "15:00"},
                },
                "resolved": {
                    "dates": [],
                    "times": [{"original": "3pm", "resolved": "15:00", "confidence": 1.0}],
                    "blocks": [{"original": "it", "resolved": "block_123", "confidence": 0.85}],
                    "entities": [{"type": "block", "original": "it", "resolved": "block_123", "confidence": 0.85}],
                },
                "ambiguities": [],
            },
        },
        {
            "user": "Schedule it",
            "context": "No recent operations",
            "plan": {
                "intent": {"primary": "schedule_unknown", "confidence": 0.3, "reasoning": "Nothing for 'it' to refer to"},
                "execution": {"type": "conversation"},
                "resolved": {"dates": [], "times": [], "blocks": [], "entities": []},
                "ambiguities": [
                    {"type": "unresolved_reference", "message": "No recent entity to reference with 'it'"},
                    {"type": "missing_information", "message": "Need to know what to schedule"},
                ],
            },
        },
    ]


def format_examples(context: ContextSnapshot) -> str:
    parts = ["EXAMPLES:"]
    for number, example in enumerate(_examples(context), start=1):
        parts.append(f'\n### Example {number}\nUser: "{example["user"]}"')
        if "context" in example:
            parts.append(f"Context: {example['context']}")
        parts.append("Plan: " + json.dumps(example["plan"], indent=2))
    return "\n".join(parts)


def format_output_contract(context: ContextSnapshot) -> str:
    viewing = context.temporal.viewing_date.isoformat()
    return f"""PARAMETER RULES:
1. Always provide parameters for capabilities; never leave them empty
2. For any capability that needs a date but none was given, use the viewing date ({viewing})
3. Dates are YYYY-MM-DD, times are HH:MM (24-hour)
4. No natural language in parameters: only ids, dates and times
5. Use only parameter names listed in the capability catalog

OUTPUT CONTRACT:
Return ONLY a JSON object with these keys, no explanation or markdown:
- intent: {{"primary": str, "confidence": 0..1, "reasoning": str}}
- execution: {{"type": "single" | "workflow" | "multi_step", "capability"?: str, "workflowName"?: str,
  "parameters"?: object, "steps"?: [{{"capability": str, "parameters": object, "dependsOn": [step index]}}]}}
  Use "single" without a capability for a purely conversational answer.
- resolved: {{"dates": [...], "times": [...], "blocks": [...], "entities": [...]}}, each item
  {{"original": str, "resolved": str, "confidence": 0..1}}; entities also carry "type"
- ambiguities: [{{"type": str, "message": str, "options": [{{"value": any, "display": str}}]}}]

If you cannot confidently resolve something, add it to ambiguities. Do not guess."""


def build_prompt(
    utterance: str,
    context: ContextSnapshot,
    catalog: Sequence[Dict[str, Any]],
    extracted: Optional[ExtractedEntities] = None
) -> str:
    """Assemble the full understanding prompt for one utterance"""

    sections = [
        format_temporal_context(context),
        f'USER MESSAGE: "{utterance}"',
        format_schedule(context),
        format_conversation(context),
        format_proposals(context),
        format_user_patterns(context),
        format_extracted(extracted),
        format_resolution_rules(context),
        format_capabilities(catalog),
        format_examples(context),
        format_output_contract(context),
    ]
    return "\n\n".join(section for section in sections if section)
