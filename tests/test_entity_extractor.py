from datetime import date

from dayli_agent.domain.understanding.entity_extractor import (
    extract_dates,
    extract_durations,
    extract_entities,
    extract_people,
    extract_times,
    resolve_date,
)

# A Thursday, deliberately not the wall-clock day
VIEWING = date(2024, 7, 4)


class TestResolveDate:
    def test_relative_words_anchor_on_viewing_date(self):
        assert resolve_date("today", VIEWING) == date(2024, 7, 4)
        assert resolve_date("tomorrow", VIEWING) == date(2024, 7, 5)
        assert resolve_date("yesterday", VIEWING) == date(2024, 7, 3)

    def test_weekday_is_next_occurrence_on_or_after_viewing_date(self):
        assert resolve_date("friday", VIEWING) == date(2024, 7, 5)
        assert resolve_date("thursday", VIEWING) == date(2024, 7, 4)
        assert resolve_date("monday", VIEWING) == date(2024, 7, 8)

    def test_month_day_uses_viewing_year(self):
        assert resolve_date("7/15", VIEWING) == date(2024, 7, 15)

    def test_iso_date(self):
        assert resolve_date("2024-12-01", VIEWING) == date(2024, 12, 1)

    def test_invalid(self):
        assert resolve_date("13/45", VIEWING) is None
        assert resolve_date("someday", VIEWING) is None


class TestExtractors:
    def test_dates(self):
        dates = extract_dates("Move standup from today to Tomorrow", VIEWING)
        assert [(d.original, d.resolved) for d in dates] == [
            ("today", "2024-07-04"),
            ("tomorrow", "2024-07-05"),
        ]
        assert all(d.confidence == 0.8 for d in dates)

    def test_times(self):
        times = extract_times("Move it to 3pm, or 15:30, or the morning")
        assert [(t.original, t.resolved) for t in times] == [
            ("3pm", "15:00"),
            ("15:30", "15:30"),
            ("morning", "09:00"),
        ]

    def test_twelve_am_and_pm(self):
        assert [t.resolved for t in extract_times("12am and 12pm")] == ["00:00", "12:00"]

    def test_durations_in_minutes(self):
        assert extract_durations("block 2 hours then 30 min") == [120, 30]

    def test_people(self):
        assert extract_people("Meeting with Sarah Chen and notes from Bob") == ["Sarah Chen", "Bob"]

    def test_extract_entities(self):
        entities = extract_entities("Move it to 3pm tomorrow", VIEWING)
        assert entities.references == ["it"]
        assert entities.dates[0].resolved == "2024-07-05"
        assert entities.times[0].resolved == "15:00"
        assert not entities.is_empty

    def test_empty(self):
        assert extract_entities("hello there", VIEWING).is_empty
