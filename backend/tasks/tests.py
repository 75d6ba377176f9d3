from unittest import mock

from django.contrib.auth import get_user_model
from django.db import DatabaseError
from django.db.models.query import QuerySet
from django.test import TestCase, override_settings
from rest_framework.authtoken.models import Token
from rest_framework.test import APITestCase

from .models import Task
from .repository import TaskRepository


def make_user(username):
    return get_user_model().objects.create_user(username=username, password="pw")


def orders_of(owner):
    return list(Task.objects.filter(owner=owner).order_by("order").values_list("title", "order"))


class RepositoryTests(TestCase):
    def setUp(self):
        self.alice = make_user("alice")
        self.repo = TaskRepository(self.alice)

    def test_create_appends_after_highest_order(self):
        a = self.repo.create(title="A")
        b = self.repo.create(title="B")
        self.assertEqual((a.order, b.order), (0, 1))

    def test_create_ignores_owner_and_order(self):
        bob = make_user("bob")
        task = self.repo.create(title="A", owner=bob, order=42)
        self.assertEqual(task.owner, self.alice)
        self.assertEqual(task.order, 0)

    def test_delete_closes_gap(self):
        tasks = [self.repo.create(title=t) for t in "ABCD"]
        self.repo.delete(tasks[1].pk)
        self.assertEqual(orders_of(self.alice), [("A", 0), ("C", 1), ("D", 2)])

    def test_get_is_owner_scoped(self):
        task = self.repo.create(title="A")
        other = TaskRepository(make_user("bob"))
        with self.assertRaises(Task.DoesNotExist):
            other.get(task.pk)

    def test_get_rejects_malformed_id(self):
        with self.assertRaises(Task.DoesNotExist):
            self.repo.get("local-123")

    def test_apply_order_skips_unknown_and_malformed_ids(self):
        a = self.repo.create(title="A")
        b = self.repo.create(title="B")
        applied, skipped = self.repo.apply_order(
            [{"id": str(b.pk), "order": 0}, {"id": "nope", "order": 5}, {"id": str(a.pk), "order": 1}]
        )
        self.assertEqual((applied, skipped), (2, 1))
        self.assertEqual(orders_of(self.alice), [("B", 0), ("A", 1)])

    def test_apply_order_falls_back_to_position(self):
        a = self.repo.create(title="A")
        b = self.repo.create(title="B")
        self.repo.apply_order([{"id": str(b.pk)}, {"id": str(a.pk)}])
        self.assertEqual(orders_of(self.alice), [("B", 0), ("A", 1)])

    def test_apply_order_continues_after_failed_entry(self):
        a = self.repo.create(title="A")
        b = self.repo.create(title="B")
        c = self.repo.create(title="C")
        real_update = QuerySet.update

        def flaky_update(queryset, **kwargs):
            if kwargs.get("order") == 2:
                raise DatabaseError("row locked")
            return real_update(queryset, **kwargs)

        with mock.patch.object(QuerySet, "update", autospec=True, side_effect=flaky_update):
            applied, skipped = self.repo.apply_order(
                [{"id": str(c.pk), "order": 0}, {"id": str(a.pk), "order": 2}, {"id": str(b.pk), "order": 1}]
            )

        self.assertEqual((applied, skipped), (2, 1))
        orders = dict(Task.objects.filter(owner=self.alice).values_list("title", "order"))
        self.assertEqual(orders, {"A": 0, "B": 1, "C": 0})

    def test_apply_order_atomic_mode(self):
        a = self.repo.create(title="A")
        b = self.repo.create(title="B")
        applied, skipped = self.repo.apply_order(
            [{"id": str(b.pk), "order": 0}, {"id": str(a.pk), "order": 1}], atomic=True
        )
        self.assertEqual((applied, skipped), (2, 0))
        self.assertEqual(orders_of(self.alice), [("B", 0), ("A", 1)])


class TaskApiTests(APITestCase):
    def setUp(self):
        self.alice = make_user("alice")
        self.bob = make_user("bob")
        self.authenticate(self.alice)

    def authenticate(self, user):
        token = Token.objects.create(user=user)
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {token.key}")

    def create(self, title, **extra):
        payload = {"title": title, "category": "Work", "priority": "High", **extra}
        response = self.client.post("/api/tasks", payload, format="json")
        self.assertEqual(response.status_code, 201, response.data)
        return response.data

    def test_requires_authentication(self):
        self.client.credentials()
        response = self.client.get("/api/tasks")
        self.assertEqual(response.status_code, 401)

    def test_root_is_public(self):
        self.client.credentials()
        response = self.client.get("/api/")
        self.assertEqual(response.status_code, 200)
        self.assertIn("message", response.data)

    def test_create_assigns_server_order_and_owner(self):
        self.create("A")
        created = self.create("B", order=99, userId=str(self.bob.pk))
        self.assertEqual(created["order"], 1)
        self.assertEqual(created["userId"], str(self.alice.pk))
        self.assertFalse(created["completed"])
        self.assertEqual(created["description"], "")

    def test_create_rejects_unknown_category(self):
        response = self.client.post("/api/tasks", {"title": "A", "category": "Chores"}, format="json")
        self.assertEqual(response.status_code, 400)

    def test_list_is_owner_scoped_and_sorted(self):
        a = self.create("A")
        b = self.create("B")
        Task.objects.create(owner=self.bob, title="Bob's", order=0)
        self.client.post(
            "/api/tasks/reorder",
            {"tasks": [{"id": b["id"], "order": 0}, {"id": a["id"], "order": 1}]},
            format="json",
        )
        response = self.client.get("/api/tasks")
        self.assertEqual([t["title"] for t in response.data], ["B", "A"])

    def test_get_other_users_task_is_404(self):
        task = Task.objects.create(owner=self.bob, title="Bob's", order=0)
        response = self.client.get(f"/api/tasks/{task.pk}")
        self.assertEqual(response.status_code, 404)

    def test_update_ignores_owner_field(self):
        created = self.create("A")
        response = self.client.put(
            f"/api/tasks/{created['id']}",
            {"completed": True, "userId": str(self.bob.pk)},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.data["completed"])
        self.assertEqual(Task.objects.get(pk=created["id"]).owner, self.alice)

    def test_update_missing_task_is_404(self):
        response = self.client.put("/api/tasks/local-1", {"completed": True}, format="json")
        self.assertEqual(response.status_code, 404)

    def test_delete_renumbers_remaining(self):
        ids = [self.create(t)["id"] for t in "ABCD"]
        response = self.client.delete(f"/api/tasks/{ids[1]}")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(orders_of(self.alice), [("A", 0), ("C", 1), ("D", 2)])

    def test_delete_missing_task_is_404(self):
        task = Task.objects.create(owner=self.bob, title="Bob's", order=0)
        response = self.client.delete(f"/api/tasks/{task.pk}")
        self.assertEqual(response.status_code, 404)
        self.assertTrue(Task.objects.filter(pk=task.pk).exists())

    def test_reorder_rejects_non_array(self):
        a = self.create("A")
        self.create("B")
        response = self.client.post("/api/tasks/reorder", {"tasks": {"id": a["id"], "order": 1}}, format="json")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(orders_of(self.alice), [("A", 0), ("B", 1)])

    def test_reorder_skips_other_owners_tasks(self):
        a = self.create("A")
        foreign = Task.objects.create(owner=self.bob, title="Bob's", order=0)
        response = self.client.post(
            "/api/tasks/reorder",
            {"tasks": [{"id": str(foreign.pk), "order": 7}, {"id": a["id"], "order": 0}]},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["applied"], 1)
        self.assertEqual(response.data["skipped"], 1)
        foreign.refresh_from_db()
        self.assertEqual(foreign.order, 0)

    @override_settings(TASKS_REORDER_ATOMIC=True)
    def test_reorder_atomic_setting(self):
        a = self.create("A")
        b = self.create("B")
        response = self.client.post(
            "/api/tasks/reorder",
            {"tasks": [{"id": b["id"], "order": 0}, {"id": a["id"], "order": 1}]},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(orders_of(self.alice), [("B", 0), ("A", 1)])

    def test_unexpected_error_is_plain_500(self):
        with mock.patch("tasks.views.TaskRepository.list", side_effect=RuntimeError("boom")):
            response = self.client.get("/api/tasks")
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.data, {"message": "Server error"})
