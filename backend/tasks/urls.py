from django.urls import path

from .views import ApiRoot, ReorderTasks, TaskDetail, TaskListCreate

urlpatterns = [
    path("", ApiRoot.as_view(), name="api-root"),
    path("tasks", TaskListCreate.as_view(), name="task-list"),
    path("tasks/reorder", ReorderTasks.as_view(), name="task-reorder"),
    path("tasks/<str:task_id>", TaskDetail.as_view(), name="task-detail"),
]
