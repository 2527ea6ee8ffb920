from dayli_agent.domain.clock import localize
from dayli_agent.domain.understanding.time_parser import (
    add_minutes,
    find_block_by_description,
    parse_flexible_time,
    to_military_time,
)


def _start_of(block):
    local = localize(block.start_time, "America/New_York")
    return local.hour, local.minute


class TestParseFlexibleTime:
    def test_formats(self):
        assert parse_flexible_time("9am") == (9, 0)
        assert parse_flexible_time("9 am") == (9, 0)
        assert parse_flexible_time("3:30pm") == (15, 30)
        assert parse_flexible_time("15:30") == (15, 30)
        assert parse_flexible_time("evening") == (17, 0)

    def test_rejects_invalid(self):
        assert parse_flexible_time("13pm") is None
        assert parse_flexible_time("25:00") is None
        assert parse_flexible_time("") is None
        assert parse_flexible_time("later") is None

    def test_bare_hour(self):
        assert parse_flexible_time("9") == (9, 0)

    def test_rejects_partial_matches(self):
        assert parse_flexible_time("1530") is None
        assert parse_flexible_time("3pm tomorrow") is None
        assert parse_flexible_time("room 12") is None
        assert to_military_time("at 10:30") is None

    def test_military(self):
        assert to_military_time("7pm") == "19:00"
        assert to_military_time("noonish") is None


class TestAddMinutes:
    def test_shift(self):
        assert add_minutes("09:30", 45) == "10:15"

    def test_clamped_to_day(self):
        assert add_minutes("23:30", 60) == "23:59"
        assert add_minutes("00:10", -30) == "00:00"


class TestFindBlockByDescription:
    def test_exact_title(self, make_block):
        blocks = [make_block("B1", "Deep Work"), make_block("B2", "Standup")]
        assert find_block_by_description(blocks, "standup").id == "B2"

    def test_partial_title(self, make_block):
        blocks = [make_block("B1", "Deep Work Session"), make_block("B2", "Team Standup")]
        assert find_block_by_description(blocks, "deep work").id == "B1"

    def test_start_time(self, make_block):
        blocks = [
            make_block("B1", "Focus", start="09:00", end="10:00"),
            make_block("B2", "Focus", start="14:00", end="15:00"),
        ]
        match = find_block_by_description(blocks, "focus at 2pm", start_of=_start_of)
        assert match.id == "B2"

    def test_no_match(self, make_block):
        assert find_block_by_description([make_block("B1", "Standup")], "lunch") is None
        assert find_block_by_description([], "lunch") is None
