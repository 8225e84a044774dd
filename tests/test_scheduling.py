# tests/test_scheduling.py

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from outreach_assistant.agent.scheduling import (
    ParticipantAvailability,
    SchedulingError,
    TimeWindow,
    build_calendar_event,
    clamp_duration,
    clamp_max_suggestions,
    escape_ics_text,
    fold_ics_line,
    ics_param_value,
    parse_time,
    parse_window,
    propose_slots,
    rank_availability,
)


def _dt(hour: int, minute: int = 0) -> datetime:
    return datetime(2030, 5, 6, hour, minute, tzinfo=UTC)


def _w(h1: int, m1: int, h2: int, m2: int) -> TimeWindow:
    return TimeWindow(start=_dt(h1, m1), end=_dt(h2, m2))


def test_parse_time_variants() -> None:
    assert parse_time("2030-05-06T09:00:00Z") == _dt(9)
    assert parse_time("2030-05-06T11:00:00+02:00") == _dt(9)
    assert parse_time("2030-05-06T09:00:00") == _dt(9)
    with pytest.raises(SchedulingError):
        parse_time("tomorrow-ish")
    with pytest.raises(SchedulingError):
        parse_time(None)


def test_parse_window_rejects_inverted_range() -> None:
    with pytest.raises(SchedulingError):
        parse_window({"start": "2030-05-06T10:00:00Z", "end": "2030-05-06T09:00:00Z"})


def test_clamps() -> None:
    assert clamp_duration(None) == 30
    assert clamp_duration(5) == 15
    assert clamp_duration(1000) == 240
    assert clamp_duration("45") == 45
    assert clamp_duration("abc") == 30
    assert clamp_max_suggestions(None) == 6
    assert clamp_max_suggestions(0) == 1
    assert clamp_max_suggestions(50) == 12


def test_propose_slots_slices_sorts_and_caps() -> None:
    windows = [_w(13, 0, 14, 0), _w(9, 0, 10, 10)]

    slots = propose_slots(windows, duration_minutes=30)
    assert [(s.start.hour, s.start.minute) for s in slots] == [(9, 0), (9, 30), (13, 0), (13, 30)]

    capped = propose_slots(windows, duration_minutes=30, max_suggestions=1)
    assert capped == [TimeWindow(_dt(9), _dt(9, 30))]


def test_propose_slots_dedupes_overlapping_windows() -> None:
    slots = propose_slots([_w(9, 0, 10, 0), _w(9, 0, 10, 0)], duration_minutes=60)
    assert slots == [TimeWindow(_dt(9), _dt(10))]


def test_rank_availability_by_overlap_then_start() -> None:
    participants = [
        ParticipantAvailability("Ana", (_w(9, 0, 11, 0),)),
        ParticipantAvailability("Ben", (_w(10, 0, 12, 0),)),
        ParticipantAvailability("Cleo", (_w(10, 30, 11, 0),)),
    ]

    ranked = rank_availability(participants, duration_minutes=30, max_suggestions=3)

    assert [(r.slot.start.hour, r.slot.start.minute) for r in ranked] == [(10, 30), (10, 0), (9, 0)]
    assert ranked[0].available == ("Ana", "Ben", "Cleo")
    assert ranked[0].count == 3
    assert ranked[1].available == ("Ana", "Ben")


def test_escape_ics_text() -> None:
    assert escape_ics_text("a\\b;c,d\ne") == "a\\\\b\\;c\\,d\\ne"


def test_calendar_event_is_stable_and_escaped() -> None:
    attendees = [{"user_id": "u1", "name": "Ana"}, {"user_id": "u2", "name": "Ben, Jr."}]
    a = build_calendar_event(
        title="Plan; review", start=_dt(9), end=_dt(9, 30), attendees=attendees, location="Room 1, HQ"
    )
    b = build_calendar_event(
        title="Plan; review", start=_dt(9), end=_dt(9, 30), attendees=list(reversed(attendees)), location="Room 1, HQ"
    )

    assert a["uid"] == b["uid"]
    assert a["uid"].endswith("@outreach-assistant")
    assert a["duration_minutes"] == 30
    assert "SUMMARY:Plan\\; review" in a["ics"]
    assert "LOCATION:Room 1\\, HQ" in a["ics"]
    assert 'ATTENDEE;CN="Ben, Jr.":invalid:nomail' in a["ics"]
    assert "ATTENDEE;CN=Ana:invalid:nomail" in a["ics"]
    assert "DTSTART:20300506T090000Z" in a["ics"]
    assert a["ics"].startswith("BEGIN:VCALENDAR\r\n")
    assert a["ics"].endswith("END:VCALENDAR\r\n")

    other = build_calendar_event(title="Plan; review", start=_dt(10), end=_dt(10, 30), attendees=attendees)
    assert other["uid"] != a["uid"]


def test_param_values_are_quoted_not_escaped() -> None:
    assert ics_param_value("Ana") == "Ana"
    assert ics_param_value("Ops: on-call; EU") == '"Ops: on-call; EU"'
    assert ics_param_value('Say "hi"') == "Say hi"


def test_long_lines_are_folded_at_75_octets() -> None:
    assert fold_ics_line("SUMMARY:short") == "SUMMARY:short"

    line = "DESCRIPTION:" + "é" * 80
    folded = fold_ics_line(line)
    chunks = folded.split("\r\n")
    assert len(chunks) > 1
    assert all(len(c.encode("utf-8")) <= 75 for c in chunks)
    assert all(c.startswith(" ") for c in chunks[1:])
    assert "".join(c[1:] if i else c for i, c in enumerate(chunks)) == line

    event = build_calendar_event(
        title="x", start=_dt(9), end=_dt(10), attendees=[], description="agenda " * 40
    )
    assert all(len(row.encode("utf-8")) <= 75 for row in event["ics"].split("\r\n"))


def test_calendar_event_requires_positive_duration() -> None:
    with pytest.raises(SchedulingError):
        build_calendar_event(title="x", start=_dt(10), end=_dt(9), attendees=[])
