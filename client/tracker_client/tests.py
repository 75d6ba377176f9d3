import asyncio
import json
import logging
import os
import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest import mock

import httpx

from .cache import InMemoryCache, LocalDurableCache
from .config import ClientSettings
from .errors import ErrorKind
from .logging_setup import setup_logging
from .models import Category, Priority, Task, task_from_record
from .store import OrderedTaskStore
from .sync import SyncClient, classify_status

OWNER = "7"
TOKEN = "secret"
BASE_URL = "http://tracker.test/api"


class FakeApi:
    """In-memory stand-in for the task API, served through httpx.MockTransport."""

    def __init__(self):
        self.records = {}
        self.offline = False
        self.calls = []
        self._seq = 0

    def seed(self, *titles):
        for title in titles:
            self._insert({"title": title})

    def _insert(self, body):
        self._seq += 1
        orders = [r["order"] for r in self.records.values()]
        record = {
            "id": f"srv-{self._seq}",
            "userId": OWNER,
            "title": body.get("title", ""),
            "description": body.get("description", ""),
            "category": body.get("category", "Work"),
            "priority": body.get("priority", "Medium"),
            "completed": body.get("completed", False),
            "dueDate": body.get("dueDate"),
            "createdAt": "2026-01-01T00:00:00+00:00",
            "order": max(orders) + 1 if orders else 0,
        }
        self.records[record["id"]] = record
        return record

    def handler(self, request):
        path = request.url.path[len("/api"):]
        body = json.loads(request.content) if request.content else None
        self.calls.append((request.method, path, body))

        if self.offline:
            raise httpx.ConnectError("connection refused", request=request)
        if request.headers.get("Authorization") != f"Bearer {TOKEN}":
            return httpx.Response(401, json={"detail": "Authentication credentials were not provided."})

        if path == "/tasks" and request.method == "GET":
            return httpx.Response(200, json=sorted(self.records.values(), key=lambda r: r["order"]))
        if path == "/tasks" and request.method == "POST":
            return httpx.Response(201, json=self._insert(body))
        if path == "/tasks/reorder":
            if not isinstance(body.get("tasks"), list):
                return httpx.Response(400, json={"message": "Tasks must be an array"})
            for entry in body["tasks"]:
                if entry["id"] in self.records:
                    self.records[entry["id"]]["order"] = entry["order"]
            return httpx.Response(200, json={"message": "Tasks reordered successfully"})

        task_id = path[len("/tasks/"):]
        record = self.records.get(task_id)
        if record is None:
            return httpx.Response(404, json={"detail": "Task not found"})
        if request.method == "PUT":
            record.update({k: v for k, v in body.items() if k not in ("id", "userId", "order")})
            return httpx.Response(200, json=record)
        if request.method == "DELETE":
            del self.records[task_id]
            return httpx.Response(200, json={"message": "Task deleted successfully"})
        return httpx.Response(200, json=record)


def make_task(task_id, title, order, **extra):
    return Task(id=task_id, owner=OWNER, title=title, order=order, **extra)


class StoreTestCase(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.api = FakeApi()
        self.cache = InMemoryCache()
        self.sync = SyncClient(BASE_URL, TOKEN, transport=httpx.MockTransport(self.api.handler))
        self.store = OrderedTaskStore(OWNER, self.sync, self.cache)

    async def asyncTearDown(self):
        await self.store.close()

    async def load(self, *titles):
        self.api.seed(*titles)
        result = await self.store.load()
        self.assertTrue(result.confirmed)
        self.api.calls.clear()

    def titles(self):
        return [t.title for t in self.store.tasks]

    def orders(self):
        return [t.order for t in self.store.tasks]


class LoadTests(StoreTestCase):
    async def test_load_sorts_by_order(self):
        self.api.seed("A", "B", "C")
        self.api.records["srv-1"]["order"] = 2
        self.api.records["srv-3"]["order"] = 0
        result = await self.store.load()
        self.assertEqual(result.applied, True)
        self.assertEqual(self.titles(), ["C", "B", "A"])

    async def test_successful_load_refreshes_cache(self):
        await self.load("A", "B")
        self.assertEqual([t.title for t in self.cache.read(OWNER)], ["A", "B"])

    async def test_offline_load_uses_cached_snapshot_as_is(self):
        snapshot = [make_task("x", "C", 2), make_task("y", "A", 0), make_task("z", "B", 1)]
        self.cache.write(OWNER, snapshot)
        self.api.offline = True

        result = await self.store.load()

        self.assertFalse(result.confirmed)
        self.assertEqual(result.warning, ErrorKind.TRANSPORT)
        self.assertEqual(self.titles(), ["C", "A", "B"])
        self.assertEqual(self.orders(), [2, 0, 1])

    async def test_offline_load_without_cache_seeds_demo_tasks(self):
        self.api.offline = True
        await self.store.load()
        self.assertEqual(len(self.store), 3)
        self.assertEqual(self.orders(), [0, 1, 2])
        self.assertTrue(all(t.owner == OWNER for t in self.store.tasks))
        self.assertEqual(len(self.cache.read(OWNER)), 3)

    async def test_unexpected_server_body_falls_back_to_cache(self):
        def handler(request):
            return httpx.Response(200, json={"detail": "oops"})

        self.cache.write(OWNER, [make_task("x", "Cached", 0)])
        sync = SyncClient(BASE_URL, TOKEN, transport=httpx.MockTransport(handler))
        async with OrderedTaskStore(OWNER, sync, self.cache) as store:
            result = await store.load()
            self.assertEqual(result.warning, ErrorKind.TRANSPORT)
            self.assertEqual([t.title for t in store.tasks], ["Cached"])

    async def test_rejected_credential_is_reported(self):
        self.sync.set_token("wrong")
        self.cache.write(OWNER, [make_task("x", "Cached", 0)])
        result = await self.store.load()
        self.assertEqual(result.warning, ErrorKind.AUTHORIZATION)
        self.assertEqual(self.titles(), ["Cached"])


class MutationTests(StoreTestCase):
    async def test_add_appends_with_next_order(self):
        await self.load("A", "B", "C")
        result = await self.store.add({"title": "D", "category": "Urgent", "priority": "High"})

        self.assertTrue(result.applied)
        self.assertTrue(result.confirmed)
        added = self.store.tasks[-1]
        self.assertEqual(added.order, 3)
        self.assertEqual(added.id, "srv-4")
        self.assertEqual(added.category, Category.URGENT)
        self.assertEqual(added.created_at, datetime(2026, 1, 1, tzinfo=timezone.utc))

    async def test_add_offline_keeps_local_record(self):
        await self.load("A")
        self.api.offline = True
        result = await self.store.add({"title": "B"})

        self.assertTrue(result.applied)
        self.assertFalse(result.confirmed)
        self.assertEqual(result.warning, ErrorKind.TRANSPORT)
        added = self.store.tasks[-1]
        self.assertTrue(added.id.startswith("local-"))
        self.assertEqual(added.order, 1)
        self.assertEqual([t.title for t in self.cache.read(OWNER)], ["A", "B"])

    async def test_update_drops_id_and_owner(self):
        await self.load("A")
        await self.store.update("srv-1", {"title": "A2", "id": "hijack", "owner": "99"})
        task = self.store.get("srv-1")
        self.assertEqual(task.title, "A2")
        self.assertEqual(task.owner, OWNER)
        _, _, body = self.api.calls[-1]
        self.assertEqual(body, {"title": "A2"})

    async def test_failed_update_is_not_rolled_back(self):
        await self.load("A")
        self.api.offline = True
        result = await self.store.update("srv-1", {"priority": Priority.HIGH, "completed": True})

        self.assertEqual(result.warning, ErrorKind.TRANSPORT)
        task = self.store.get("srv-1")
        self.assertEqual(task.priority, Priority.HIGH)
        self.assertTrue(task.completed)
        self.assertTrue(self.cache.read(OWNER)[0].completed)

    async def test_update_of_unconfirmed_task_reports_not_found(self):
        await self.load()
        self.api.offline = True
        await self.store.add({"title": "offline"})
        self.api.offline = False
        local_id = self.store.tasks[0].id

        result = await self.store.update(local_id, {"title": "renamed"})

        self.assertEqual(result.warning, ErrorKind.NOT_FOUND)
        self.assertEqual(self.store.get(local_id).title, "renamed")

    async def test_remove_during_pending_create_deletes_server_copy(self):
        await self.load("A")
        gate = asyncio.Event()

        async def gated(request):
            if request.method == "POST":
                await gate.wait()
            return self.api.handler(request)

        sync = SyncClient(BASE_URL, TOKEN, transport=httpx.MockTransport(gated))
        async with OrderedTaskStore(OWNER, sync, self.cache) as store:
            await store.load()
            adding = asyncio.create_task(store.add({"title": "B"}))
            await asyncio.sleep(0)
            local_id = store.tasks[-1].id
            self.assertTrue(local_id.startswith("local-"))

            removed = await store.remove(local_id)
            self.assertEqual(removed.warning, ErrorKind.NOT_FOUND)

            gate.set()
            added = await adding
            self.assertTrue(added.confirmed)
            self.assertEqual([t.title for t in store.tasks], ["A"])

        self.assertEqual([r["title"] for r in self.api.records.values()], ["A"])
        self.assertIn(("DELETE", "/tasks/srv-2", None), self.api.calls)

    async def test_update_unknown_id_is_noop(self):
        await self.load("A")
        result = await self.store.update("missing", {"title": "x"})
        self.assertFalse(result.applied)
        self.assertEqual(self.api.calls, [])

    async def test_remove_renumbers_remaining(self):
        await self.load("A", "B", "C", "D")
        result = await self.store.remove("srv-2")

        self.assertTrue(result.confirmed)
        self.assertEqual(self.titles(), ["A", "C", "D"])
        self.assertEqual(self.orders(), [0, 1, 2])

    async def test_remove_offline_keeps_removal(self):
        await self.load("A", "B")
        self.api.offline = True
        result = await self.store.remove("srv-1")
        self.assertFalse(result.confirmed)
        self.assertEqual(self.titles(), ["B"])
        self.assertEqual(self.orders(), [0])

    async def test_toggle_completion(self):
        await self.load("A")
        await self.store.toggle_completion("srv-1")
        self.assertTrue(self.store.get("srv-1").completed)
        self.assertTrue(self.api.records["srv-1"]["completed"])
        await self.store.toggle_completion("srv-1")
        self.assertFalse(self.store.get("srv-1").completed)

    async def test_toggle_unknown_id_is_noop(self):
        await self.load("A")
        result = await self.store.toggle_completion("missing")
        self.assertFalse(result.applied)


class MoveTests(StoreTestCase):
    async def test_move_resequences_whole_list(self):
        await self.load("A", "B", "C", "D")
        result = await self.store.move(0, 2)

        self.assertTrue(result.confirmed)
        self.assertEqual(self.titles(), ["B", "C", "A", "D"])
        self.assertEqual(self.orders(), [0, 1, 2, 3])
        method, path, body = self.api.calls[-1]
        self.assertEqual((method, path), ("POST", "/tasks/reorder"))
        self.assertEqual(
            body["tasks"],
            [{"id": "srv-2", "order": 0}, {"id": "srv-3", "order": 1},
             {"id": "srv-1", "order": 2}, {"id": "srv-4", "order": 3}],
        )
        self.assertEqual(self.api.records["srv-1"]["order"], 2)

    async def test_move_to_same_index_changes_nothing(self):
        await self.load("A", "B", "C")
        before = self.store.tasks
        result = await self.store.move(1, 1)
        self.assertFalse(result.applied)
        self.assertEqual(self.store.tasks, before)
        self.assertEqual(self.api.calls, [])

    async def test_move_clamps_indices(self):
        await self.load("A", "B", "C")
        await self.store.move(-5, 10)
        self.assertEqual(self.titles(), ["B", "C", "A"])
        self.assertEqual(self.orders(), [0, 1, 2])

    async def test_move_offline_keeps_new_order(self):
        await self.load("A", "B", "C")
        self.api.offline = True
        result = await self.store.move(2, 0)
        self.assertEqual(result.warning, ErrorKind.TRANSPORT)
        self.assertEqual(self.titles(), ["C", "A", "B"])
        self.assertEqual([t.title for t in self.cache.read(OWNER)], ["C", "A", "B"])

    async def test_reorder_by_id(self):
        await self.load("A", "B", "C")
        await self.store.reorder("srv-3", 0)
        self.assertEqual(self.titles(), ["C", "A", "B"])

    async def test_interleaved_mutations_stay_dense(self):
        await self.load("A", "B")
        await asyncio.gather(
            self.store.add({"title": "C"}),
            self.store.add({"title": "D"}),
            self.store.move(3, 0),
            self.store.remove("srv-1"),
        )
        self.assertEqual(sorted(self.orders()), list(range(len(self.store))))
        self.assertEqual(self.titles(), ["D", "B", "C"])


class ReadTests(StoreTestCase):
    async def asyncSetUp(self):
        await super().asyncSetUp()
        now = datetime.now(timezone.utc)
        self.cache.write(OWNER, [
            make_task("a", "Report", 0, category=Category.WORK, priority=Priority.HIGH,
                      due_date=now - timedelta(days=1)),
            make_task("b", "Gym", 1, category=Category.PERSONAL, priority=Priority.LOW,
                      completed=True, due_date=now - timedelta(days=1)),
            make_task("c", "Taxes", 2, category=Category.URGENT, priority=Priority.HIGH,
                      due_date=now + timedelta(days=3)),
        ])
        self.api.offline = True
        await self.store.load()

    def test_filtered_view(self):
        high = self.store.filtered_view(priority="High")
        self.assertEqual([t.title for t in high], ["Report", "Taxes"])
        open_personal = self.store.filtered_view(category=Category.PERSONAL, include_completed=False)
        self.assertEqual(open_personal, [])
        self.assertEqual(len(self.store.filtered_view()), 3)

    def test_filtered_view_does_not_mutate(self):
        view = self.store.filtered_view()
        view[0].title = "changed"
        self.assertEqual(self.store.get("a").title, "Report")

    def test_stats(self):
        stats = self.store.stats()
        self.assertEqual((stats.total, stats.completed, stats.pending, stats.overdue), (3, 1, 2, 1))


class LifecycleTests(unittest.IsolatedAsyncioTestCase):
    async def test_close_discards_list_and_credential(self):
        api = FakeApi()
        api.seed("A")
        sync = SyncClient(BASE_URL, TOKEN, transport=httpx.MockTransport(api.handler))
        async with OrderedTaskStore(OWNER, sync, InMemoryCache()) as store:
            await store.load()
            self.assertEqual(len(store), 1)
        self.assertEqual(len(store), 0)
        self.assertIsNone(sync.token)

    async def test_for_session_uses_settings(self):
        api = FakeApi()
        api.seed("A")
        with tempfile.TemporaryDirectory() as tmp:
            settings = ClientSettings(api_url=BASE_URL, cache_dir=Path(tmp), timeout_seconds=5.0, log_level="INFO")
            store = OrderedTaskStore.for_session(
                OWNER, TOKEN, settings, transport=httpx.MockTransport(api.handler)
            )
            await store.load()
            await store.close()
            self.assertTrue((Path(tmp) / f"tasks_{OWNER}.json").exists())


class SyncClientTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.api = FakeApi()
        self.sync = SyncClient(BASE_URL, TOKEN, transport=httpx.MockTransport(self.api.handler))

    async def asyncTearDown(self):
        await self.sync.aclose()

    def test_classify_status(self):
        self.assertIsNone(classify_status(200))
        self.assertEqual(classify_status(400), ErrorKind.VALIDATION)
        self.assertEqual(classify_status(401), ErrorKind.AUTHORIZATION)
        self.assertEqual(classify_status(403), ErrorKind.AUTHORIZATION)
        self.assertEqual(classify_status(404), ErrorKind.NOT_FOUND)
        self.assertEqual(classify_status(503), ErrorKind.TRANSPORT)

    async def test_sends_bearer_token(self):
        seen = []

        def handler(request):
            seen.append(request.headers.get("Authorization"))
            return httpx.Response(200, json=[])

        async with SyncClient(BASE_URL, "abc", transport=httpx.MockTransport(handler)) as sync:
            await sync.fetch_all()
        self.assertEqual(seen, ["Bearer abc"])

    async def test_get_missing_task(self):
        result = await self.sync.get("nope")
        self.assertFalse(result.ok)
        self.assertEqual(result.error, ErrorKind.NOT_FOUND)
        self.assertEqual(result.status_code, 404)

    async def test_create_serializes_fields(self):
        due = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
        result = await self.sync.create({"title": "A", "category": Category.PERSONAL, "due_date": due})
        self.assertTrue(result.ok)
        _, _, body = self.api.calls[-1]
        self.assertEqual(body, {"title": "A", "category": "Personal", "dueDate": "2026-03-01T12:00:00+00:00"})
        self.assertEqual(result.value.due_date, due)

    async def test_malformed_body_is_transport_failure(self):
        def handler(request):
            return httpx.Response(200, content=b"<html>", headers={"Content-Type": "text/html"})

        async with SyncClient(BASE_URL, TOKEN, transport=httpx.MockTransport(handler)) as sync:
            result = await sync.fetch_all()
        self.assertEqual(result.error, ErrorKind.TRANSPORT)

    async def test_object_body_is_transport_failure(self):
        def handler(request):
            return httpx.Response(200, json={"detail": "x"})

        async with SyncClient(BASE_URL, TOKEN, transport=httpx.MockTransport(handler)) as sync:
            listed = await sync.fetch_all()
            created = await sync.create({"title": "A"})
            self.assertEqual(listed.error, ErrorKind.TRANSPORT)
            self.assertEqual(created.error, ErrorKind.TRANSPORT)

        def list_handler(request):
            return httpx.Response(200, json=["x"])

        async with SyncClient(BASE_URL, TOKEN, transport=httpx.MockTransport(list_handler)) as sync:
            updated = await sync.update("a", {"title": "B"})
        self.assertEqual(updated.error, ErrorKind.TRANSPORT)

    async def test_reorder_validation_error(self):
        def handler(request):
            return httpx.Response(400, json={"message": "Tasks must be an array"})

        async with SyncClient(BASE_URL, TOKEN, transport=httpx.MockTransport(handler)) as sync:
            result = await sync.reorder([("a", 0)])
        self.assertEqual(result.error, ErrorKind.VALIDATION)


class CacheTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.cache = LocalDurableCache(self.tmp.name)

    def tearDown(self):
        self.tmp.cleanup()

    def test_missing_snapshot(self):
        self.assertIsNone(self.cache.read(OWNER))

    def test_snapshot_keeps_order_and_fields(self):
        due = datetime(2026, 5, 1, tzinfo=timezone.utc)
        self.cache.write(OWNER, [make_task("b", "B", 1, due_date=due), make_task("a", "A", 0)])
        tasks = self.cache.read(OWNER)
        self.assertEqual([t.id for t in tasks], ["b", "a"])
        self.assertEqual(tasks[0].due_date, due)

    def test_snapshots_are_per_owner(self):
        self.cache.write(OWNER, [make_task("a", "A", 0)])
        self.assertIsNone(self.cache.read("someone-else"))

    def test_corrupt_snapshot_is_ignored(self):
        self.cache.path_for(OWNER).write_text("{not json", encoding="utf-8")
        self.assertIsNone(self.cache.read(OWNER))

    def test_snapshot_of_wrong_shape_is_ignored(self):
        for content in ('{"a": 1}', "[1]", '["x"]'):
            self.cache.path_for(OWNER).write_text(content, encoding="utf-8")
            self.assertIsNone(self.cache.read(OWNER), content)

    def test_clear(self):
        self.cache.write(OWNER, [make_task("a", "A", 0)])
        self.cache.clear(OWNER)
        self.assertIsNone(self.cache.read(OWNER))

    def test_owner_key_is_sanitized(self):
        path = self.cache.path_for("../evil")
        self.assertEqual(path.parent, Path(self.tmp.name))


class RecordTests(unittest.TestCase):
    def test_legacy_record_shape(self):
        task = task_from_record(
            {"_id": "abc", "userId": "7", "title": "T", "category": "Work", "priority": "Low",
             "completed": False, "dueDate": "2026-01-02T00:00:00Z", "createdAt": "2026-01-01T00:00:00Z"}
        )
        self.assertEqual(task.id, "abc")
        self.assertEqual(task.order, 0)
        self.assertEqual(task.description, "")
        self.assertEqual(task.due_date, datetime(2026, 1, 2, tzinfo=timezone.utc))


class SettingsTests(unittest.TestCase):
    def test_from_env(self):
        env = {
            "TRACKER_API_URL": "https://tasks.example.com/api/",
            "TRACKER_CACHE_DIR": "/tmp/tracker-cache",
            "TRACKER_TIMEOUT_SECONDS": "not-a-number",
        }
        with mock.patch.dict(os.environ, env):
            settings = ClientSettings.from_env()
        self.assertEqual(settings.api_url, "https://tasks.example.com/api")
        self.assertEqual(settings.cache_dir, Path("/tmp/tracker-cache"))
        self.assertEqual(settings.timeout_seconds, 10.0)


class LoggingSetupTests(unittest.TestCase):
    def setUp(self):
        root = logging.getLogger()
        self._saved = (root.level, list(root.handlers))

    def tearDown(self):
        root = logging.getLogger()
        for h in list(root.handlers):
            root.removeHandler(h)
        level, handlers = self._saved
        root.setLevel(level)
        for h in handlers:
            root.addHandler(h)

    def test_setup_logging_quiets_httpx(self):
        setup_logging("debug")
        self.assertEqual(logging.getLogger().level, logging.DEBUG)
        self.assertEqual(len(logging.getLogger().handlers), 1)
        self.assertEqual(logging.getLogger("httpx").level, logging.WARNING)

    def test_setup_logging_defaults_to_settings_level(self):
        settings = ClientSettings(api_url=BASE_URL, cache_dir=Path("."), timeout_seconds=5.0, log_level="WARNING")
        with mock.patch("tracker_client.logging_setup.get_settings", return_value=settings):
            setup_logging()
        self.assertEqual(logging.getLogger().level, logging.WARNING)
