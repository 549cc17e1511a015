"""Outbound formats for a committed activity list.

Calendar (.ics), plain text, plan JSON and the ``#plan=`` share fragment.
"""
from __future__ import annotations

import base64
import binascii
import json
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, List, Optional, Tuple
from urllib.parse import quote, unquote
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import ValidationError

from weekendly.errors import PayloadValidationError
from weekendly.schemas import DAYS, Activity, SharePayload, format_validation_error
from weekendly.time_grid import to_minutes, to_time_text

SHARE_FRAGMENT_PREFIX = "#plan="


def upcoming_weekend(today: date) -> Tuple[date, date]:
    """Saturday and Sunday on or after ``today``."""
    weekday = today.weekday()
    saturday = today + timedelta(days=(5 - weekday) % 7)
    sunday = today + timedelta(days=(6 - weekday) % 7)
    return saturday, sunday


def escape_ics(text: str) -> str:
    return (
        str(text or "")
        .replace("\\", "\\\\")
        .replace("\n", "\\n")
        .replace(",", "\\,")
        .replace(";", "\\;")
    )


def _ics_stamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def _zone(timezone_name: str):
    try:
        return ZoneInfo(timezone_name)
    except (ZoneInfoNotFoundError, ValueError):
        return timezone.utc


def build_ics(
    activities: Iterable[Activity],
    app_name: str = "weekendly",
    today: Optional[date] = None,
    now: Optional[datetime] = None,
    timezone_name: str = "UTC",
) -> str:
    now = now or datetime.now(timezone.utc)
    today = today or now.date()
    saturday, sunday = upcoming_weekend(today)
    tzinfo = _zone(timezone_name)
    epoch_ms = int(now.timestamp() * 1000)

    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:-//{app_name}//Planner//EN",
    ]
    for idx, activity in enumerate(activities):
        base = saturday if activity.day == "saturday" else sunday
        minutes = to_minutes(activity.start)
        start = datetime(base.year, base.month, base.day, minutes // 60, minutes % 60, tzinfo=tzinfo)
        end = start + timedelta(minutes=activity.duration_mins)
        lines.extend(
            [
                "BEGIN:VEVENT",
                f"UID:{epoch_ms}-{idx}@{app_name}",
                f"DTSTAMP:{_ics_stamp(now)}",
                f"DTSTART:{_ics_stamp(start)}",
                f"DTEND:{_ics_stamp(end)}",
                f"SUMMARY:{escape_ics(activity.title)}",
                f"DESCRIPTION:{escape_ics(activity.notes or '')}",
                "END:VEVENT",
            ]
        )
    lines.append("END:VCALENDAR")
    return "\r\n".join(lines) + "\r\n"


def format_schedule_text(activities: Iterable[Activity], title: str = "Weekendly Schedule") -> str:
    by_day = {day: [] for day in DAYS}
    for activity in activities:
        by_day[activity.day].append(activity)
    lines = [title, "=" * len(title), ""]
    for day in DAYS:
        lines.append(f"{day.capitalize()}:")
        day_acts = sorted(by_day[day], key=lambda a: a.start_minutes)
        for a in day_acts:
            end = to_time_text(a.end_minutes)
            mood = f" ({a.mood})" if a.mood else ""
            lines.append(f"- {a.start}–{end} • {a.title} [{a.category}]{mood}")
            if a.notes:
                lines.append(f"  Notes: {a.notes}")
        if not day_acts:
            lines.append("- (no activities)")
        lines.append("")
    return "\n".join(lines)


def _payload_dict(theme: Optional[str], activities: Iterable[Activity]) -> dict:
    return {"theme": theme, "activities": [a.to_payload() for a in activities]}


def plan_to_json(theme: Optional[str], activities: Iterable[Activity]) -> str:
    return json.dumps(_payload_dict(theme, activities), ensure_ascii=False, indent=2)


def _parse_share_payload(data) -> SharePayload:
    if not isinstance(data, dict):
        raise PayloadValidationError("Plan payload must be an object")
    try:
        return SharePayload.model_validate(data)
    except ValidationError as exc:
        raise PayloadValidationError(format_validation_error(exc)) from exc


def parse_plan_json(text: str) -> SharePayload:
    try:
        data = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise PayloadValidationError("Plan JSON could not be parsed") from exc
    return _parse_share_payload(data)


def encode_share_fragment(theme: Optional[str], activities: List[Activity]) -> str:
    compact = json.dumps(_payload_dict(theme, activities), ensure_ascii=False, separators=(",", ":"))
    encoded = base64.b64encode(compact.encode("utf-8")).decode("ascii")
    return SHARE_FRAGMENT_PREFIX + quote(encoded, safe="")


def share_url(base_url: str, theme: Optional[str], activities: List[Activity]) -> str:
    base = str(base_url or "").split("#", 1)[0]
    return base + encode_share_fragment(theme, activities)


def decode_share_fragment(fragment: str) -> SharePayload:
    value = str(fragment or "")
    if "#" in value:
        value = "#" + value.split("#", 1)[1]
    if not value.startswith(SHARE_FRAGMENT_PREFIX):
        raise PayloadValidationError("Not a plan share link")
    encoded = unquote(value[len(SHARE_FRAGMENT_PREFIX):])
    try:
        raw = base64.b64decode(encoded, validate=True).decode("utf-8")
        data = json.loads(raw)
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        raise PayloadValidationError("Share link payload is malformed") from exc
    return _parse_share_payload(data)


def strip_share_fragment(url: str) -> str:
    return str(url or "").split("#", 1)[0]
