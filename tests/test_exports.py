import json
import unittest
from datetime import date, datetime, timezone

from weekendly.errors import PayloadValidationError
from weekendly.schemas import Activity
from weekendly.services.exports import (
    build_ics,
    decode_share_fragment,
    encode_share_fragment,
    escape_ics,
    format_schedule_text,
    parse_plan_json,
    plan_to_json,
    share_url,
    strip_share_fragment,
    upcoming_weekend,
)


def make_activity(activity_id, title, start, duration, day="saturday", **extra):
    return Activity(
        id=activity_id, title=title, category="outdoor", day=day, start=start, duration_mins=duration, **extra
    )


class TestUpcomingWeekend(unittest.TestCase):
    def test_midweek(self):
        self.assertEqual(upcoming_weekend(date(2024, 6, 12)), (date(2024, 6, 15), date(2024, 6, 16)))

    def test_on_saturday(self):
        self.assertEqual(upcoming_weekend(date(2024, 6, 15)), (date(2024, 6, 15), date(2024, 6, 16)))

    def test_on_sunday(self):
        self.assertEqual(upcoming_weekend(date(2024, 6, 16)), (date(2024, 6, 22), date(2024, 6, 16)))


class TestCalendarExport(unittest.TestCase):
    def setUp(self):
        self.now = datetime(2024, 6, 12, 8, 0, tzinfo=timezone.utc)
        self.activities = [
            make_activity("a1", "Hike, then swim", "09:30", 60, notes="Bring water; snacks"),
            make_activity("a2", "Brunch", "11:00", 90, day="sunday"),
        ]

    def test_calendar_structure(self):
        body = build_ics(self.activities, app_name="weekendly", today=date(2024, 6, 12), now=self.now)
        lines = body.split("\r\n")
        self.assertEqual(lines[:3], ["BEGIN:VCALENDAR", "VERSION:2.0", "PRODID:-//weekendly//Planner//EN"])
        self.assertEqual(lines[-2:], ["END:VCALENDAR", ""])
        self.assertEqual(body.count("BEGIN:VEVENT"), 2)
        self.assertEqual(body.count("END:VEVENT"), 2)

    def test_event_times_and_text(self):
        body = build_ics(self.activities, today=date(2024, 6, 12), now=self.now)
        epoch_ms = int(self.now.timestamp() * 1000)
        self.assertIn(f"UID:{epoch_ms}-0@weekendly", body)
        self.assertIn(f"UID:{epoch_ms}-1@weekendly", body)
        self.assertIn("DTSTAMP:20240612T080000Z", body)
        self.assertIn("DTSTART:20240615T093000Z", body)
        self.assertIn("DTEND:20240615T103000Z", body)
        self.assertIn("DTSTART:20240616T110000Z", body)
        self.assertIn("DTEND:20240616T123000Z", body)
        self.assertIn("SUMMARY:Hike\\, then swim", body)
        self.assertIn("DESCRIPTION:Bring water\\; snacks", body)

    def test_escape(self):
        self.assertEqual(escape_ics("a\\b\nc,d;e"), "a\\\\b\\nc\\,d\\;e")
        self.assertEqual(escape_ics(None), "")


class TestTextExport(unittest.TestCase):
    def test_lines_per_day(self):
        text = format_schedule_text(
            [
                make_activity("a2", "Lunch", "12:00", 60, mood="social"),
                make_activity("a1", "Hike", "09:30", 60, notes="Trail 4"),
            ]
        )
        lines = text.splitlines()
        self.assertEqual(lines[0], "Weekendly Schedule")
        start = lines.index("Saturday:")
        self.assertEqual(lines[start + 1], "- 09:30–10:30 • Hike [outdoor]")
        self.assertEqual(lines[start + 2], "  Notes: Trail 4")
        self.assertEqual(lines[start + 3], "- 12:00–13:00 • Lunch [outdoor] (social)")
        sunday = lines.index("Sunday:")
        self.assertEqual(lines[sunday + 1], "- (no activities)")


class TestShareAndJson(unittest.TestCase):
    def setUp(self):
        self.activities = [make_activity("a1", "Café ☕", "09:30", 60, notes="naïve")]

    def test_share_fragment_decodes_to_same_plan(self):
        fragment = encode_share_fragment("lazy", self.activities)
        self.assertTrue(fragment.startswith("#plan="))
        payload = decode_share_fragment(fragment)
        self.assertEqual(payload.theme, "lazy")
        self.assertEqual(payload.activities, self.activities)

    def test_share_url_replaces_existing_fragment(self):
        url = share_url("https://example.test/app#old", "family", self.activities)
        self.assertTrue(url.startswith("https://example.test/app#plan="))
        self.assertEqual(decode_share_fragment(url).theme, "family")
        self.assertEqual(strip_share_fragment(url), "https://example.test/app")

    def test_bad_share_fragments(self):
        for value in ("", "#other=1", "#plan=%%%not-base64", "#plan=W10%3D"):
            with self.assertRaises(PayloadValidationError, msg=value):
                decode_share_fragment(value)

    def test_plan_json_round_trip(self):
        text = plan_to_json("adventurous", self.activities)
        self.assertEqual(json.loads(text)["activities"][0]["durationMins"], 60)
        payload = parse_plan_json(text)
        self.assertEqual(payload.theme, "adventurous")
        self.assertEqual(payload.activities, self.activities)

    def test_plan_json_rejects_bad_input(self):
        with self.assertRaises(PayloadValidationError):
            parse_plan_json("{not json")
        with self.assertRaises(PayloadValidationError):
            parse_plan_json("[]")
        with self.assertRaises(PayloadValidationError):
            parse_plan_json(json.dumps({"theme": "lazy", "activities": [{"id": "x"}]}))


if __name__ == "__main__":
    unittest.main(verbosity=2)
