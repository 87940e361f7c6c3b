"""
Dependency wiring for the FastAPI app.

Clients are built once per application and held on an explicit context
object (``app.state.context``) instead of module globals, so tests can
swap in their own database and storage doubles.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from fastapi import Request

from content_backend.config import Settings
from content_backend.db import DbClient, InMemoryDbClient, PostgresDbClient
from content_backend.entities import EntitySchema, schemas_for_sites
from content_backend.lifecycle import UploadLifecycleManager
from content_backend.media import MediaStoreAdapter, build_policies
from content_backend.repository import EntityRepository
from content_backend.storage import InMemoryStorageClient, S3StorageClient, StorageClient
from content_backend.validation import RequestValidator


@dataclass
class EntityService:
    """Everything a route needs to serve one content type."""

    schema: EntitySchema
    repository: EntityRepository
    validator: RequestValidator
    manager: UploadLifecycleManager


@dataclass
class AppContext:
    settings: Settings
    db: DbClient
    media: MediaStoreAdapter
    services: dict[str, EntityService] = field(default_factory=dict)

    def service(self, schema_name: str) -> EntityService:
        return self.services[schema_name]

    def close(self) -> None:
        self.db.close()
        self.media.close()


def build_db_client(settings: Settings) -> DbClient:
    if settings.use_in_memory_backends or not settings.database_url:
        return InMemoryDbClient()
    return PostgresDbClient(settings.database_url)


def build_storage_client(settings: Settings) -> StorageClient:
    if settings.use_in_memory_backends or not settings.s3_bucket:
        return InMemoryStorageClient(
            base_url=settings.media_public_base_url or InMemoryStorageClient.base_url
        )
    return S3StorageClient(
        bucket=settings.s3_bucket,
        region=settings.s3_region or "",
        endpoint=settings.s3_endpoint,
        access_key_id=settings.aws_access_key_id or "",
        secret_access_key=settings.aws_secret_access_key or "",
        public_base_url=settings.media_public_base_url,
    )


def build_context(
    settings: Settings,
    *,
    db: Optional[DbClient] = None,
    storage: Optional[StorageClient] = None,
) -> AppContext:
    db = db if db is not None else build_db_client(settings)
    storage = storage if storage is not None else build_storage_client(settings)
    media = MediaStoreAdapter(storage, build_policies(settings.max_bytes_for))
    context = AppContext(settings=settings, db=db, media=media)
    for schema in schemas_for_sites(settings.enabled_sites):
        repository = EntityRepository(db, schema)
        context.services[schema.name] = EntityService(
            schema=schema,
            repository=repository,
            validator=RequestValidator(schema),
            manager=UploadLifecycleManager(
                schema, repository, media, namespace_root=settings.media_namespace_root
            ),
        )
    return context


def get_context(request: Request) -> AppContext:
    return request.app.state.context
