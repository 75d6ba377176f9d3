# views.py
import logging

from django.conf import settings
from rest_framework import status
from rest_framework.exceptions import NotFound
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from .models import Task
from .repository import TaskRepository
from .serializers import ReorderSerializer, TaskSerializer

logger = logging.getLogger(__name__)


def get_owned_task(repo: TaskRepository, task_id) -> Task:
    """Fetch the caller's task or raise a 404 (also for tasks owned by someone else)."""
    try:
        return repo.get(task_id)
    except Task.DoesNotExist:
        raise NotFound("Task not found")


class ApiRoot(APIView):
    """
    GET /api/
    Unauthenticated welcome message.
    """

    permission_classes = [AllowAny]

    def get(self, request):
        return Response({"message": "Welcome to Task Manager API"})


class TaskListCreate(APIView):
    """
    GET  /api/tasks  -> the caller's tasks sorted by order
    POST /api/tasks  -> create a task appended at the end (order = max + 1)
    """

    def get(self, request):
        tasks = TaskRepository(request.user).list()
        return Response(TaskSerializer(tasks, many=True).data)

    def post(self, request):
        serializer = TaskSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        task = TaskRepository(request.user).create(**serializer.validated_data)
        return Response(TaskSerializer(task).data, status=status.HTTP_201_CREATED)


class TaskDetail(APIView):
    """
    GET    /api/tasks/<id>
    PUT    /api/tasks/<id>  (partial fields; userId/id/order/createdAt ignored)
    DELETE /api/tasks/<id>
    All three answer 404 for unknown tasks and tasks of other users.
    """

    def get(self, request, task_id):
        task = get_owned_task(TaskRepository(request.user), task_id)
        return Response(TaskSerializer(task).data)

    def put(self, request, task_id):
        repo = TaskRepository(request.user)
        task = get_owned_task(repo, task_id)
        serializer = TaskSerializer(task, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        try:
            task = repo.update(task_id, **serializer.validated_data)
        except Task.DoesNotExist:
            # deleted between the lookup and the write
            raise NotFound("Task not found")
        return Response(TaskSerializer(task).data)

    def delete(self, request, task_id):
        repo = TaskRepository(request.user)
        try:
            repo.delete(task_id)
        except Task.DoesNotExist:
            raise NotFound("Task not found")
        return Response({"message": "Task deleted successfully"})


class ReorderTasks(APIView):
    """
    POST /api/tasks/reorder
    Body: {"tasks": [{"id": ..., "order": ...}, ...]}

    Best-effort: each entry is an independent update scoped to the caller.
    Entries for unknown or foreign tasks are skipped. Responds once every
    entry has been attempted.
    """

    def post(self, request):
        serializer = ReorderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        entries = serializer.validated_data["tasks"]

        atomic = getattr(settings, "TASKS_REORDER_ATOMIC", False)
        applied, skipped = TaskRepository(request.user).apply_order(entries, atomic=atomic)
        return Response(
            {"message": "Tasks reordered successfully", "applied": applied, "skipped": skipped},
            status=status.HTTP_200_OK,
        )
