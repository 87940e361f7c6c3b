"""
Per-content-type persistence on top of a ``DbClient``.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Callable

from content_backend.db import DbClient
from content_backend.entities import EntitySchema
from content_backend.errors import NotFound, StoreUnavailable


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class EntityRepository:
    """CRUD for one content type. Every call checks store readiness first."""

    def __init__(
        self,
        db: DbClient,
        schema: EntitySchema,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.schema = schema
        self._clock = clock

    def ensure_ready(self) -> None:
        if not self.db.is_ready():
            raise StoreUnavailable()

    def _not_found(self, entity_id: str) -> NotFound:
        return NotFound(f"{self.schema.name} not found", details=f"id={entity_id}")

    def _sort_at(self, doc: dict) -> float:
        return parse_timestamp(doc[self.schema.sort_field]).timestamp()

    def create(self, fields: dict) -> dict:
        self.ensure_ready()
        now = format_timestamp(self._clock())
        doc = dict(fields)
        doc["_id"] = uuid.uuid4().hex
        doc.setdefault(self.schema.sort_field, now)
        doc["createdAt"] = doc.get("createdAt") or now
        doc["updatedAt"] = now
        return self.db.insert(self.schema.collection, doc, self._sort_at(doc))

    def list(self) -> list[dict]:
        self.ensure_ready()
        return self.db.find_all(self.schema.collection)

    def get(self, entity_id: str) -> dict:
        self.ensure_ready()
        doc = self.db.find_by_id(self.schema.collection, entity_id)
        if doc is None:
            raise self._not_found(entity_id)
        return doc

    def update(self, entity_id: str, partial: dict) -> dict:
        self.ensure_ready()
        fields = {k: v for k, v in partial.items() if k not in {"_id", "createdAt"}}
        fields["updatedAt"] = format_timestamp(self._clock())
        sort_at = None
        if self.schema.sort_field in fields:
            sort_at = self._sort_at(fields)
        doc = self.db.update(self.schema.collection, entity_id, fields, sort_at=sort_at)
        if doc is None:
            raise self._not_found(entity_id)
        return doc

    def delete(self, entity_id: str) -> None:
        self.ensure_ready()
        if not self.db.delete(self.schema.collection, entity_id):
            raise self._not_found(entity_id)
