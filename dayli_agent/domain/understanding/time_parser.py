"""Parsing of loose clock times ("9am", "3:30 pm", "15:30") and block lookup by description."""

from typing import Dict, Optional, Sequence, Tuple, TypeVar
import re

# Named times of day and the clock time each one stands for
TIME_OF_DAY: Dict[str, str] = {
    "morning": "09:00",
    "afternoon": "13:00",
    "evening": "17:00",
    "night": "21:00",
}

_COLON_TIME = re.compile(r"(\d{1,2}):(\d{2})\s*(am|pm)?")
_SIMPLE_TIME = re.compile(r"(\d{1,2})\s*(am|pm)?")
LAST_MINUTE = 23 * 60 + 59

BlockT = TypeVar("BlockT")


def parse_flexible_time(text: str) -> Optional[Tuple[int, int]]:
    """(hour, minute) for inputs like 9am, 9 am, 9, 9:00, 3:30pm, 15:30 or evening.

    The whole input must be a time; "1530" or "3pm tomorrow" give None.
    """

    if not text or not isinstance(text, str):
        return None

    normalized = text.strip().lower()
    if normalized in TIME_OF_DAY:
        hour, minute = TIME_OF_DAY[normalized].split(":")
        return int(hour), int(minute)

    meridiem = None
    match = _COLON_TIME.fullmatch(normalized)
    if match:
        hour, minute, meridiem = int(match.group(1)), int(match.group(2)), match.group(3)
    else:
        match = _SIMPLE_TIME.fullmatch(normalized)
        if not match:
            return None
        hour, minute, meridiem = int(match.group(1)), 0, match.group(2)

    if meridiem:
        if hour < 1 or hour > 12:
            return None
        if meridiem == "pm" and hour != 12:
            hour += 12
        elif meridiem == "am" and hour == 12:
            hour = 0

    if hour > 23 or minute > 59:
        return None
    return hour, minute


def to_military_time(text: str) -> Optional[str]:
    """HH:MM, or None when the text is not a time"""
    parsed = parse_flexible_time(text)
    if parsed is None:
        return None
    return f"{parsed[0]:02d}:{parsed[1]:02d}"


def to_minutes(hhmm: str) -> int:
    hour, minute = (int(part) for part in hhmm.split(":", 1))
    return hour * 60 + minute


def add_minutes(hhmm: str, minutes: int) -> str:
    """Shift an HH:MM time, clamped to the same day"""
    total = min(max(to_minutes(hhmm) + minutes, 0), LAST_MINUTE)
    return f"{total // 60:02d}:{total % 60:02d}"


def find_block_by_description(blocks: Sequence[BlockT], description: str, start_of=None) -> Optional[BlockT]:
    """Best block for a loose description: title words, start time and type all score.

    ``start_of`` maps a block to its local (hour, minute); when omitted, time
    matching is skipped.
    """

    if not blocks or not description:
        return None

    search = description.lower().strip()

    for block in blocks:
        if block.title.lower() == search:
            return block

    search_time = parse_flexible_time(search) if re.search(r"\d", search) else None
    best, best_score = None, 0

    for block in blocks:
        score = 0
        title = block.title.lower()

        if search in title:
            score += 10
        else:
            title_words = title.split()
            score += 2 * sum(1 for word in search.split() if any(word in t for t in title_words))

        if search_time and start_of is not None:
            hour, minute = start_of(block)
            if hour == search_time[0]:
                score += 5
                if minute == search_time[1]:
                    score += 3

        block_type = (block.type or "").lower()
        if block_type and (block_type in search or search in block_type):
            score += 3

        if block.description and search in block.description.lower():
            score += 2

        if score > best_score:
            best, best_score = block, score

    return best
