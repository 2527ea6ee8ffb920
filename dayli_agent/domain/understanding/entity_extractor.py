"""Deterministic extraction of dates, times, durations, people and references.

Everything here is a pure function of the utterance and the viewing date, so
"today" always means the day the user is looking at, not the wall-clock day.
"""

from typing import List, Optional
import re
from datetime import date, timedelta
from pydantic import BaseModel, ConfigDict, Field

from dayli_agent.domain.context.reference_resolver import find_reference_phrases
from dayli_agent.domain.models.execution_plan import ResolvedValue
from dayli_agent.domain.understanding.time_parser import to_military_time

EXTRACTION_CONFIDENCE = 0.8

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

_DATE_PATTERN = re.compile(
    r"\b(today|tomorrow|yesterday|monday|tuesday|wednesday|thursday|friday|saturday|sunday"
    r"|\d{1,2}/\d{1,2}|\d{4}-\d{2}-\d{2})\b",
    re.IGNORECASE,
)
_TIME_PATTERN = re.compile(
    r"\b(\d{1,2}(?::\d{2})?\s*(?:am|pm)|\d{1,2}:\d{2}|morning|afternoon|evening|night)\b",
    re.IGNORECASE,
)
_DURATION_PATTERN = re.compile(r"\b(\d+)\s*(hour|hr|minute|min)s?\b", re.IGNORECASE)
_PEOPLE_PATTERN = re.compile(r"\b(?:with|from|to|cc)\s+([A-Z][a-z]+(?:\s+[A-Z][a-z]+)?)\b")


class ExtractedEntities(BaseModel):
    """What the extractor found in one utterance"""
    model_config = ConfigDict(frozen=True)

    dates: List[ResolvedValue] = Field(default_factory=list)
    times: List[ResolvedValue] = Field(default_factory=list)
    durations: List[int] = Field(default_factory=list, description="Minutes")
    people: List[str] = Field(default_factory=list)
    references: List[str] = Field(default_factory=list, description="Pronoun-like phrases needing an antecedent")

    @property
    def is_empty(self) -> bool:
        return not (self.dates or self.times or self.durations or self.people or self.references)


def resolve_date(token: str, viewing_date: date) -> Optional[date]:
    """Calendar date for a date token, anchored to the viewing date"""

    token = token.lower()
    if token == "today":
        return viewing_date
    if token == "tomorrow":
        return viewing_date + timedelta(days=1)
    if token == "yesterday":
        return viewing_date - timedelta(days=1)
    if token in WEEKDAYS:
        # Nearest occurrence on or after the viewing date
        ahead = (WEEKDAYS.index(token) - viewing_date.weekday()) % 7
        return viewing_date + timedelta(days=ahead)

    try:
        if "/" in token:
            month, day = (int(part) for part in token.split("/"))
            return date(viewing_date.year, month, day)
        return date.fromisoformat(token)
    except ValueError:
        return None


def _unique(values):
    return list(dict.fromkeys(values))


def extract_dates(utterance: str, viewing_date: date) -> List[ResolvedValue]:
    found = []
    for token in _unique(m.group(1).lower() for m in _DATE_PATTERN.finditer(utterance)):
        resolved = resolve_date(token, viewing_date)
        if resolved is not None:
            found.append(ResolvedValue(original=token, resolved=resolved.isoformat(), confidence=EXTRACTION_CONFIDENCE))
    return found


def extract_times(utterance: str) -> List[ResolvedValue]:
    found = []
    for token in _unique(m.group(1).lower() for m in _TIME_PATTERN.finditer(utterance)):
        resolved = to_military_time(token)
        if resolved is not None:
            found.append(ResolvedValue(original=token, resolved=resolved, confidence=EXTRACTION_CONFIDENCE))
    return found


def extract_durations(utterance: str) -> List[int]:
    durations = []
    for match in _DURATION_PATTERN.finditer(utterance):
        amount = int(match.group(1))
        unit = match.group(2).lower()
        durations.append(amount * 60 if unit in ("hour", "hr") else amount)
    return durations


def extract_people(utterance: str) -> List[str]:
    return _unique(m.group(1) for m in _PEOPLE_PATTERN.finditer(utterance))


def extract_entities(utterance: str, viewing_date: date) -> ExtractedEntities:
    """Run every extractor over the utterance"""

    return ExtractedEntities(
        dates=extract_dates(utterance, viewing_date),
        times=extract_times(utterance),
        durations=extract_durations(utterance),
        people=extract_people(utterance),
        references=find_reference_phrases(utterance),
    )
