"""JSON serialization helpers and worker ids."""

from core.utils.json_serializers import json_serializer
from core.utils.worker_id import generate_worker_id

__all__ = ["generate_worker_id", "json_serializer"]
