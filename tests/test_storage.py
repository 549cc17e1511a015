import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path

from weekendly.errors import ConflictError, NotFoundError, PayloadValidationError, StorageWriteFailure
from weekendly.placement import PlacementEngine
from weekendly.schemas import Activity, ActivityDraft, PlanDraft, PlanMetadata, PlanPatch
from weekendly.settings import GridConfig
from weekendly.storage import STATUS_DEGRADED, STATUS_READY, FlatKeyStore, PersistenceStore


def make_activity(activity_id, start="10:00", duration=60, day="saturday"):
    return Activity(id=activity_id, title=activity_id, category="food", day=day, start=start, duration_mins=duration)


class FixedClock:
    def __init__(self):
        self.now = datetime(2024, 6, 12, 8, 0, tzinfo=timezone.utc)

    def __call__(self):
        self.now = self.now + timedelta(seconds=1)
        return self.now


class StoreContract:
    """Behaviour both backends share; subclasses provide ``make_store``."""

    expected_status = None

    async def asyncSetUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)
        self.store = self.make_store()
        self.status = await self.store.init()

    async def asyncTearDown(self):
        await self.store.close()
        self._tmp.cleanup()

    def make_store(self) -> PersistenceStore:
        raise NotImplementedError

    async def test_init_status(self):
        self.assertEqual(self.status, self.expected_status)
        self.assertEqual(self.store.status, self.expected_status)

    async def test_save_and_get_plan(self):
        plan_id = await self.store.save_plan(PlanDraft(theme="lazy", activities=[make_activity("brunch")]))
        self.assertTrue(plan_id.startswith("plan_"))
        plan = await self.store.get_plan(plan_id)
        self.assertEqual(plan.theme, "lazy")
        self.assertEqual(plan.version, 1)
        self.assertEqual(plan.created_at, plan.updated_at)
        self.assertEqual([a.id for a in plan.activities], ["brunch"])

    async def test_save_plan_validates_dict_input(self):
        with self.assertRaises(PayloadValidationError):
            await self.store.save_plan({"theme": "bogus"})

    async def test_update_increments_version_by_one(self):
        plan_id = await self.store.save_plan({"theme": "family"})
        first = await self.store.update_plan(plan_id, {"metadata": {"notes": "rainy"}, "version": 99})
        self.assertEqual(first.version, 2)
        second = await self.store.update_plan(plan_id, PlanPatch(theme="adventurous"))
        self.assertEqual(second.version, 3)
        stored = await self.store.get_plan(plan_id)
        self.assertEqual(stored.version, 3)
        self.assertEqual(stored.theme, "adventurous")
        self.assertEqual(stored.metadata.notes, "rainy")
        self.assertGreater(stored.updated_at, stored.created_at)

    async def test_update_rejects_null_theme_and_activities(self):
        plan_id = await self.store.save_plan(PlanDraft(theme="lazy", activities=[make_activity("nap")]))
        for patch in ({"theme": None}, {"activities": None}):
            with self.assertRaises(PayloadValidationError):
                await self.store.update_plan(plan_id, patch)
        stored = await self.store.get_plan(plan_id)
        self.assertEqual((stored.theme, stored.version), ("lazy", 1))
        self.assertEqual([a.id for a in stored.activities], ["nap"])
        self.assertEqual(len(await self.store.get_all_plans()), 1)

    async def test_overlapping_activities_are_never_stored(self):
        clash = [make_activity("x", "10:00", 60), make_activity("y", "10:15", 60)]
        with self.assertRaises(ConflictError):
            await self.store.save_plan(PlanDraft(theme="lazy", activities=clash))
        with self.assertRaises(ConflictError):
            await self.store.save_theme_plan("family", clash)
        self.assertEqual(await self.store.get_all_plans(), [])

        plan_id = await self.store.save_plan({"theme": "lazy"})
        with self.assertRaises(ConflictError):
            await self.store.update_plan(plan_id, PlanPatch(activities=clash))
        with self.assertRaises(PayloadValidationError):
            await self.store.update_plan(plan_id, PlanPatch(activities=[make_activity("x"), make_activity("x", "14:00")]))
        self.assertEqual((await self.store.get_plan(plan_id)).activities, [])

    async def test_update_missing_plan(self):
        with self.assertRaises(NotFoundError):
            await self.store.update_plan("plan_missing", {"theme": "lazy"})

    async def test_activity_index_follows_plan(self):
        plan_id = await self.store.save_plan({"theme": "lazy", "activities": [make_activity("a").to_payload()]})
        await self.store.update_plan(
            plan_id, PlanPatch(activities=[make_activity("b"), make_activity("c", start="14:00")])
        )
        activities = await self.store.get_plan_activities(plan_id)
        self.assertEqual(sorted(a.id for a in activities), ["b", "c"])

    async def test_delete_cascades(self):
        plan_id = await self.store.save_plan(PlanDraft(theme="lazy", activities=[make_activity("a")]))
        await self.store.delete_plan(plan_id)
        self.assertIsNone(await self.store.get_plan(plan_id))
        self.assertEqual(await self.store.get_plan_activities(plan_id), [])
        self.assertEqual(await self.store.get_all_plans(), [])

    async def test_get_all_plans_in_creation_order(self):
        first = await self.store.save_plan({"theme": "lazy"})
        second = await self.store.save_plan({"theme": "family"})
        self.assertEqual([p.id for p in await self.store.get_all_plans()], [first, second])

    async def test_theme_plan_skips_templates(self):
        await self.store.save_plan(PlanDraft(theme="lazy", metadata=PlanMetadata(is_template=True)))
        self.assertIsNone(await self.store.get_theme_plan("lazy"))

        created = await self.store.save_theme_plan("lazy", [make_activity("nap", "14:00", 90)])
        updated = await self.store.save_theme_plan("lazy", [make_activity("read", "16:00", 60)])
        self.assertEqual(created.id, updated.id)
        self.assertEqual(updated.version, 2)
        loaded = await self.store.load_theme_activities("lazy")
        self.assertEqual([a.id for a in loaded], ["read"])

    async def test_settings_round_trip(self):
        await self.store.save_setting("autoSave", False)
        await self.store.save_setting("startTime", "07:30")
        self.assertIs(await self.store.get_setting("autoSave"), False)
        self.assertEqual(await self.store.get_setting("startTime"), "07:30")
        self.assertIsNone(await self.store.get_setting("missing"))
        await self.store.save_setting("startTime", "09:00")
        self.assertEqual(await self.store.get_setting("startTime"), "09:00")

    async def test_stats(self):
        await self.store.save_plan(PlanDraft(theme="lazy", activities=[make_activity("a"), make_activity("b", "12:00")]))
        await self.store.save_plan(PlanDraft(theme="family"))
        stats = await self.store.get_stats()
        self.assertEqual(stats.total_plans, 2)
        self.assertEqual(stats.total_activities, 2)
        self.assertEqual(stats.storage_used, 0)
        self.assertIsNotNone(stats.last_sync)

    async def test_export_import_round_trip(self):
        plan_id = await self.store.save_plan(PlanDraft(theme="adventurous", activities=[make_activity("hike")]))
        await self.store.save_setting("theme", "dark")
        await self.store.save_setting("notExported", 1)
        exported = await self.store.export_all_data()
        self.assertEqual(exported["settings"], {"theme": "dark"})

        other = PersistenceStore(None, FlatKeyStore(None))
        await other.init()
        new_ids = await other.import_data(exported)
        self.assertEqual(len(new_ids), 1)
        self.assertNotEqual(new_ids[0], plan_id)
        imported = await other.get_plan(new_ids[0])
        self.assertEqual([a.id for a in imported.activities], ["hike"])
        self.assertEqual(await other.get_setting("theme"), "dark")

    async def test_import_is_all_or_nothing_on_bad_plans(self):
        data = {"plans": [{"theme": "lazy"}, {"theme": "nope"}], "settings": {}}
        with self.assertRaises(PayloadValidationError):
            await self.store.import_data(data)
        self.assertEqual(await self.store.get_all_plans(), [])

    async def test_import_rejects_overlapping_plan(self):
        clash = [make_activity("x", "10:00", 60).to_payload(), make_activity("y", "10:15", 60).to_payload()]
        data = {"plans": [{"theme": "lazy"}, {"theme": "family", "activities": clash}], "settings": {}}
        with self.assertRaises(ConflictError):
            await self.store.import_data(data)
        self.assertEqual(await self.store.get_all_plans(), [])

    async def test_engine_commits_through_activity_sink(self):
        plan_id = await self.store.save_plan({"theme": "lazy"})
        engine = PlacementEngine(GridConfig(), [], sink=self.store.activity_sink(plan_id))
        created = await engine.insert("sunday", 600, ActivityDraft(title="Brunch", category="food", duration_mins=60))
        plan = await self.store.get_plan(plan_id)
        self.assertEqual([a.id for a in plan.activities], [created.id])
        self.assertEqual(plan.version, 2)


class TestStructuredBackend(StoreContract, unittest.IsolatedAsyncioTestCase):
    expected_status = STATUS_READY

    def make_store(self):
        url = f"sqlite+aiosqlite:///{self.tmp / 'weekendly.db'}"
        return PersistenceStore(url, FlatKeyStore(None), clock=FixedClock())

    async def test_flat_store_untouched(self):
        await self.store.save_theme_plan("lazy", [make_activity("nap")])
        self.assertEqual(self.store.flat_store.keys(), [])

    async def test_counts_follow_replaced_activities(self):
        plan_id = await self.store.save_plan(PlanDraft(theme="lazy", activities=[make_activity("a"), make_activity("b", "12:00")]))
        await self.store.update_plan(plan_id, PlanPatch(activities=[make_activity("c")]))
        stats = await self.store.get_stats()
        self.assertEqual(stats.total_activities, 1)

    async def test_same_activity_ids_in_two_plans(self):
        first = await self.store.save_plan(PlanDraft(theme="lazy", activities=[make_activity("shared")]))
        second = await self.store.save_plan(PlanDraft(theme="family", activities=[make_activity("shared")]))
        self.assertEqual(len(await self.store.get_plan_activities(first)), 1)
        self.assertEqual(len(await self.store.get_plan_activities(second)), 1)


class TestFlatKeyBackend(StoreContract, unittest.IsolatedAsyncioTestCase):
    expected_status = STATUS_DEGRADED

    def make_store(self):
        return PersistenceStore(None, FlatKeyStore(self.tmp / "flat.json"), clock=FixedClock())

    async def test_theme_mirror_written(self):
        await self.store.save_theme_plan("family", [make_activity("picnic")])
        self.assertIsNotNone(self.store.flat_store.get("plan.family"))
        self.assertEqual((await self.store.get_stats()).total_plans, 1)

    async def test_mirror_used_when_no_plan_exists(self):
        await self.store.backend.write_theme_mirror("adventurous", [make_activity("climb")])
        loaded = await self.store.load_theme_activities("adventurous")
        self.assertEqual([a.id for a in loaded], ["climb"])

    async def test_data_survives_reopen(self):
        plan_id = await self.store.save_plan({"theme": "lazy"})
        reopened = PersistenceStore(None, FlatKeyStore(self.tmp / "flat.json"))
        await reopened.init()
        self.assertIsNotNone(await reopened.get_plan(plan_id))


class TestDegradedMode(unittest.IsolatedAsyncioTestCase):
    async def test_unreachable_database_falls_back(self):
        store = PersistenceStore("sqlite+aiosqlite:////nonexistent-weekendly/dir/w.db", FlatKeyStore(None))
        self.assertEqual(await store.init(), STATUS_DEGRADED)
        plan_id = await store.save_plan({"theme": "lazy"})
        self.assertIsNotNone(await store.get_plan(plan_id))
        await store.close()

    async def test_unknown_driver_falls_back(self):
        store = PersistenceStore("nosuchdriver://localhost/db", FlatKeyStore(None))
        self.assertEqual(await store.init(), STATUS_DEGRADED)

    async def test_backend_requires_init(self):
        store = PersistenceStore(None, FlatKeyStore(None))
        with self.assertRaises(RuntimeError):
            await store.get_all_plans()


class TestWriteFailure(unittest.IsolatedAsyncioTestCase):
    async def test_quota_exceeded_surfaces_failure_and_keeps_memory(self):
        with tempfile.TemporaryDirectory() as td:
            flat = FlatKeyStore(Path(td) / "flat.json", quota_bytes=1200)
            store = PersistenceStore(None, flat)
            await store.init()
            plan_id = await store.save_plan({"theme": "lazy"})
            engine = PlacementEngine(GridConfig(), [], sink=store.activity_sink(plan_id))
            notes = "x" * 2000
            with self.assertRaises(StorageWriteFailure) as ctx:
                await engine.insert(
                    "saturday", 600, ActivityDraft(title="Long", category="home", duration_mins=60, notes=notes)
                )
            self.assertEqual(len(engine.activities), 1)
            self.assertEqual(len(ctx.exception.committed), 1)
            stored = await store.get_plan(plan_id)
            self.assertEqual(stored.activities, [])
            self.assertEqual(stored.version, 1)


if __name__ == "__main__":
    unittest.main(verbosity=2)
