# src/outreach_assistant/agent/scheduling.py

from __future__ import annotations

"""
Deterministic meeting helpers used as assistant tools.

No I/O here: slot proposal, availability ranking and calendar payloads are pure functions
of their inputs, so the model can call them repeatedly and get the same answer.
"""

import hashlib
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

DEFAULT_SLOT_MINUTES = 30
MIN_SLOT_MINUTES = 15
MAX_SLOT_MINUTES = 240

DEFAULT_MAX_SUGGESTIONS = 6
MIN_SUGGESTIONS = 1
MAX_SUGGESTIONS = 12

PRODID = "-//outreach-assistant//meetings//EN"


class SchedulingError(ValueError):
    pass


@dataclass(slots=True, frozen=True, order=True)
class TimeWindow:
    start: datetime
    end: datetime

    def contains(self, start: datetime, end: datetime) -> bool:
        return self.start <= start and end <= self.end


@dataclass(slots=True, frozen=True)
class RankedSlot:
    slot: TimeWindow
    available: tuple[str, ...]

    @property
    def count(self) -> int:
        return len(self.available)


@dataclass(slots=True, frozen=True)
class ParticipantAvailability:
    name: str
    windows: tuple[TimeWindow, ...]
    user_id: str | None = None


def parse_time(value: Any) -> datetime:
    """ISO-8601 string or datetime -> aware UTC datetime (naive input is taken as UTC)."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        raw = value.strip()
        if raw.endswith(("Z", "z")):
            raw = raw[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(raw)
        except ValueError as exc:
            raise SchedulingError(f"invalid timestamp: {value!r}") from exc
    else:
        raise SchedulingError(f"invalid timestamp: {value!r}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def format_time(dt: datetime) -> str:
    return dt.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def clamp_duration(minutes: Any) -> int:
    try:
        value = int(minutes) if minutes is not None else DEFAULT_SLOT_MINUTES
    except (TypeError, ValueError):
        value = DEFAULT_SLOT_MINUTES
    return max(MIN_SLOT_MINUTES, min(MAX_SLOT_MINUTES, value))


def clamp_max_suggestions(value: Any) -> int:
    try:
        n = int(value) if value is not None else DEFAULT_MAX_SUGGESTIONS
    except (TypeError, ValueError):
        n = DEFAULT_MAX_SUGGESTIONS
    return max(MIN_SUGGESTIONS, min(MAX_SUGGESTIONS, n))


def parse_window(raw: Any) -> TimeWindow:
    if not isinstance(raw, dict):
        raise SchedulingError("each window needs a start and an end")
    start = parse_time(raw.get("start"))
    end = parse_time(raw.get("end"))
    if end <= start:
        raise SchedulingError(f"window ends before it starts: {format_time(start)}")
    return TimeWindow(start=start, end=end)


def slice_windows(windows: list[TimeWindow], duration_minutes: int) -> list[TimeWindow]:
    """All consecutive fixed-length slots inside the windows, sorted and de-duplicated."""
    step = timedelta(minutes=duration_minutes)
    seen: set[TimeWindow] = set()
    out: list[TimeWindow] = []
    for window in sorted(windows):
        cursor = window.start
        while cursor + step <= window.end:
            slot = TimeWindow(start=cursor, end=cursor + step)
            if slot not in seen:
                seen.add(slot)
                out.append(slot)
            cursor += step
    out.sort()
    return out


def propose_slots(
    windows: list[TimeWindow],
    *,
    duration_minutes: Any = None,
    max_suggestions: Any = None,
) -> list[TimeWindow]:
    duration = clamp_duration(duration_minutes)
    cap = clamp_max_suggestions(max_suggestions)
    return slice_windows(windows, duration)[:cap]


def rank_availability(
    participants: list[ParticipantAvailability],
    *,
    duration_minutes: Any = None,
    max_suggestions: Any = None,
) -> list[RankedSlot]:
    """Candidate slots from everyone's windows, most participants available first."""
    duration = clamp_duration(duration_minutes)
    cap = clamp_max_suggestions(max_suggestions)

    all_windows = [w for p in participants for w in p.windows]
    ranked: list[RankedSlot] = []
    for slot in slice_windows(all_windows, duration):
        available = tuple(
            p.name for p in participants if any(w.contains(slot.start, slot.end) for w in p.windows)
        )
        if available:
            ranked.append(RankedSlot(slot=slot, available=available))

    ranked.sort(key=lambda r: (-r.count, r.slot.start))
    return ranked[:cap]


def escape_ics_text(text: str) -> str:
    """Escape a TEXT value for iCalendar (RFC 5545 section 3.3.11)."""
    return (
        (text or "")
        .replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\r\n", "\\n")
        .replace("\n", "\\n")
        .replace("\r", "\\n")
    )


def ics_param_value(value: str) -> str:
    """Parameter value (RFC 5545 section 3.2). Quoted when it contains a colon, semicolon or comma."""
    cleaned = "".join(ch for ch in (value or "") if ch != '"' and (ch == "\t" or ord(ch) >= 0x20))
    if any(ch in cleaned for ch in ":;,"):
        return f'"{cleaned}"'
    return cleaned


def fold_ics_line(line: str, limit: int = 75) -> str:
    """Fold a content line at `limit` octets; continuation lines start with a single space."""
    parts: list[str] = []
    current = ""
    size = 0
    budget = limit
    for ch in line:
        width = len(ch.encode("utf-8"))
        if size + width > budget:
            parts.append(current)
            current, size = "", 0
            budget = limit - 1
        current += ch
        size += width
    parts.append(current)
    return "\r\n ".join(parts)


def _ics_ts(dt: datetime) -> str:
    return dt.astimezone(UTC).strftime("%Y%m%dT%H%M%SZ")


def event_uid(title: str, start: datetime, end: datetime, attendee_keys: list[str]) -> str:
    """Stable id: the same meeting details always produce the same uid."""
    raw = "|".join([title.strip(), _ics_ts(start), _ics_ts(end), *sorted(attendee_keys)])
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()[:24] + "@outreach-assistant"


def build_calendar_event(
    *,
    title: str,
    start: datetime,
    end: datetime,
    attendees: list[dict[str, str]],
    description: str | None = None,
    location: str | None = None,
    organizer: str | None = None,
) -> dict[str, Any]:
    if end <= start:
        raise SchedulingError("meeting must end after it starts")
    title = (title or "").strip() or "Meeting"

    keys = [a.get("user_id") or a.get("name") or "" for a in attendees]
    uid = event_uid(title, start, end, keys)

    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{PRODID}",
        "CALSCALE:GREGORIAN",
        "BEGIN:VEVENT",
        f"UID:{uid}",
        # DTSTAMP pinned to the start time keeps the payload stable across calls.
        f"DTSTAMP:{_ics_ts(start)}",
        f"DTSTART:{_ics_ts(start)}",
        f"DTEND:{_ics_ts(end)}",
        f"SUMMARY:{escape_ics_text(title)}",
    ]
    if description:
        lines.append(f"DESCRIPTION:{escape_ics_text(description)}")
    if location:
        lines.append(f"LOCATION:{escape_ics_text(location)}")
    if organizer:
        lines.append(f"ORGANIZER;CN={ics_param_value(organizer)}:invalid:nomail")
    for a in attendees:
        name = a.get("name") or "Guest"
        lines.append(f"ATTENDEE;CN={ics_param_value(name)}:invalid:nomail")
    lines += ["END:VEVENT", "END:VCALENDAR"]

    return {
        "uid": uid,
        "title": title,
        "start": format_time(start),
        "end": format_time(end),
        "duration_minutes": int((end - start).total_seconds() // 60),
        "description": description or None,
        "location": location or None,
        "attendees": [a.get("name") or "Guest" for a in attendees],
        "ics": "\r\n".join(fold_ics_line(line) for line in lines) + "\r\n",
    }
