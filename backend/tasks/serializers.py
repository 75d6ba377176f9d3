from rest_framework import serializers

from .models import Task


class TaskSerializer(serializers.ModelSerializer):
    """Task in the wire shape used by the API (camelCase keys)."""

    userId = serializers.CharField(source="owner_id", read_only=True)
    dueDate = serializers.DateTimeField(source="due_date", required=False, allow_null=True)
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)
    order = serializers.IntegerField(read_only=True)
    description = serializers.CharField(required=False, allow_blank=True, default="")

    class Meta:
        model = Task
        fields = [
            "id",
            "userId",
            "title",
            "description",
            "category",
            "priority",
            "completed",
            "dueDate",
            "createdAt",
            "order",
        ]
        read_only_fields = ["id"]


class ReorderEntrySerializer(serializers.Serializer):
    # Kept as free text: ids that are not ours are skipped, not rejected.
    id = serializers.CharField()
    order = serializers.IntegerField(min_value=0, required=False)


class ReorderSerializer(serializers.Serializer):
    tasks = serializers.ListField(child=ReorderEntrySerializer())

    def to_internal_value(self, data):
        if not isinstance(data, dict) or not isinstance(data.get("tasks"), list):
            raise serializers.ValidationError({"message": "Tasks must be an array"})
        return super().to_internal_value(data)
