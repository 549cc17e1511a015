import unittest

from weekendly.conflicts import check_schedule, find_conflict, has_conflict, intervals_overlap
from weekendly.errors import ConflictError, PayloadValidationError
from weekendly.schemas import Activity


def make_activity(activity_id, start, duration, day="saturday", title=None):
    return Activity(
        id=activity_id,
        title=title or activity_id,
        category="outdoor",
        day=day,
        start=start,
        duration_mins=duration,
    )


class TestIntervalsOverlap(unittest.TestCase):
    def test_touching_intervals_do_not_overlap(self):
        self.assertFalse(intervals_overlap(600, 660, 660, 720))
        self.assertFalse(intervals_overlap(660, 720, 600, 660))

    def test_partial_and_nested_overlap(self):
        self.assertTrue(intervals_overlap(600, 690, 570, 630))
        self.assertTrue(intervals_overlap(600, 720, 630, 660))
        self.assertTrue(intervals_overlap(630, 660, 600, 720))

    def test_symmetric(self):
        pairs = [(600, 690, 570, 630), (600, 660, 660, 720), (300, 315, 900, 960)]
        for a0, a1, b0, b1 in pairs:
            self.assertEqual(intervals_overlap(a0, a1, b0, b1), intervals_overlap(b0, b1, a0, a1))


class TestFindConflict(unittest.TestCase):
    def test_hike_overlapping_morning_block(self):
        existing = [make_activity("coffee", "09:30", 60)]
        hike = make_activity("hike", "10:00", 90, title="Hike")
        self.assertEqual(find_conflict(existing, hike).id, "coffee")

    def test_lunch_after_block_ending_at_noon(self):
        existing = [make_activity("museum", "11:00", 60)]
        lunch = make_activity("lunch", "12:00", 60, title="Lunch")
        self.assertIsNone(find_conflict(existing, lunch))

    def test_other_day_never_conflicts(self):
        existing = [make_activity("coffee", "09:30", 60, day="sunday")]
        self.assertFalse(has_conflict(existing, make_activity("hike", "10:00", 90)))

    def test_excluded_id_is_ignored(self):
        existing = [make_activity("hike", "10:00", 90)]
        moved = make_activity("hike", "10:30", 90)
        self.assertFalse(has_conflict(existing, moved, exclude_id="hike"))
        self.assertTrue(has_conflict(existing, moved))


class TestCheckSchedule(unittest.TestCase):
    def test_clean_list_passes(self):
        check_schedule([make_activity("a", "10:00", 60), make_activity("b", "11:00", 60), make_activity("c", "10:00", 60, day="sunday")])

    def test_overlap_within_list(self):
        with self.assertRaises(ConflictError) as ctx:
            check_schedule([make_activity("x", "10:00", 60), make_activity("y", "10:15", 60)])
        self.assertEqual(ctx.exception.conflicting.id, "x")

    def test_repeated_id_is_rejected_even_without_overlap(self):
        with self.assertRaises(PayloadValidationError):
            check_schedule([make_activity("a", "10:00", 60), make_activity("a", "14:00", 60)])

    def test_repeated_id_cannot_hide_an_overlap(self):
        with self.assertRaises(PayloadValidationError):
            check_schedule([make_activity("a", "10:00", 60), make_activity("a", "10:30", 60)])


if __name__ == "__main__":
    unittest.main(verbosity=2)
