import uuid

from django.conf import settings
from django.db import models


class Task(models.Model):
    CATEGORY_CHOICES = [
        ("Work", "Work"),
        ("Personal", "Personal"),
        ("Urgent", "Urgent"),
    ]
    PRIORITY_CHOICES = [
        ("Low", "Low"),
        ("Medium", "Medium"),
        ("High", "High"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    owner = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="tasks")
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    category = models.CharField(max_length=16, choices=CATEGORY_CHOICES, default="Work")
    priority = models.CharField(max_length=16, choices=PRIORITY_CHOICES, default="Medium")
    completed = models.BooleanField(default=False)
    due_date = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    order = models.PositiveIntegerField(default=0)  # dense per owner, not enforced here

    class Meta:
        ordering = ["order"]
        indexes = [models.Index(fields=["owner", "order"], name="tasks_owner_order_idx")]

    def __str__(self):
        return self.title
