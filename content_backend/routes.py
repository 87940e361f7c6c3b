"""
HTTP routes, generated per content type from its schema descriptor.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile

from content_backend.assets import AssetKind, UploadPayload
from content_backend.config import Settings
from content_backend.dependencies import AppContext, get_context
from content_backend.entities import AssetField, EntitySchema
from content_backend.errors import PayloadTooLarge, ValidationError
from content_backend.repository import format_timestamp
from content_backend.schemas import ErrorResponse, HealthResponse, MessageResponse

logger = logging.getLogger(__name__)

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


def upload_size_limit(schema: EntitySchema, settings: Settings) -> Callable[[str], int]:
    """Per-field byte ceiling; fields the schema does not know get the largest one."""
    ceiling = max(settings.max_bytes_for(kind) for kind in AssetKind)

    def limit(name: str) -> int:
        try:
            return settings.max_bytes_for(schema.asset_field(name).kind)
        except KeyError:
            return ceiling

    return limit


async def read_submission(
    request: Request, size_limit: Optional[Callable[[str], int]] = None
) -> tuple[dict, dict[str, list[UploadPayload]]]:
    """Split a request body into text fields and uploaded files.

    Multipart and urlencoded forms may carry files; ``name[]`` keys are
    folded into ``name``. JSON bodies carry fields only. Files over
    ``size_limit(name)`` are rejected before their bytes are read.
    """
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            body = await request.json()
        except ValueError as exc:
            raise ValidationError("Malformed JSON body", details=str(exc)) from exc
        if not isinstance(body, dict):
            raise ValidationError("Request body must be a JSON object")
        return body, {}
    if not content_type.startswith(
        ("multipart/form-data", "application/x-www-form-urlencoded")
    ):
        return {}, {}

    form = await request.form()
    fields: dict = {}
    uploads: dict[str, list[UploadPayload]] = {}
    for key, value in form.multi_items():
        name = key[:-2] if key.endswith("[]") else key
        if isinstance(value, UploadFile):
            if size_limit is not None and value.size is not None:
                limit = size_limit(name)
                if value.size > limit:
                    raise PayloadTooLarge(
                        "File too large",
                        fields=[name],
                        details=f"{value.filename} is {value.size} bytes; limit is {limit}",
                    )
            data = await value.read()
            # Browsers send an empty part for file inputs left blank.
            if not value.filename and not data:
                continue
            uploads.setdefault(name, []).append(
                UploadPayload(
                    filename=value.filename or "",
                    content_type=value.content_type or "",
                    data=data,
                )
            )
        else:
            fields.setdefault(name, value)
    return fields, uploads


def build_health_router() -> APIRouter:
    router = APIRouter()

    @router.get("/", response_model=HealthResponse)
    def health(context: AppContext = Depends(get_context)):
        return HealthResponse(
            message=f"{context.settings.service_title} ✅",
            timestamp=format_timestamp(datetime.now(timezone.utc)),
            database="connected" if context.db.is_ready() else "disconnected",
        )

    return router


def build_entity_router(schema: EntitySchema) -> APIRouter:
    router = APIRouter(prefix=schema.route, tags=[schema.name], responses=ERROR_RESPONSES)
    key = schema.singular

    @router.post("", status_code=201, name=f"create_{key}")
    async def create_entity(request: Request, context: AppContext = Depends(get_context)):
        service = context.service(schema.name)
        await run_in_threadpool(service.repository.ensure_ready)
        form, uploads = await read_submission(
            request, upload_size_limit(schema, context.settings)
        )
        fields = service.validator.validate_create(form)
        entity = await run_in_threadpool(service.manager.create, fields, uploads)
        return JSONResponse(
            status_code=201,
            content={"message": f"{schema.name} created successfully!", key: entity},
        )

    @router.get("", name=f"list_{schema.plural}")
    def list_entities(context: AppContext = Depends(get_context)):
        service = context.service(schema.name)
        return {schema.plural: service.repository.list()}

    @router.get("/{entity_id}", name=f"get_{key}")
    def get_entity(entity_id: str, context: AppContext = Depends(get_context)):
        service = context.service(schema.name)
        return {key: service.repository.get(entity_id)}

    @router.put("/{entity_id}", name=f"update_{key}")
    async def update_entity(
        entity_id: str, request: Request, context: AppContext = Depends(get_context)
    ):
        service = context.service(schema.name)
        await run_in_threadpool(service.repository.ensure_ready)
        form, uploads = await read_submission(
            request, upload_size_limit(schema, context.settings)
        )
        fields = service.validator.validate_update(form)
        entity = await run_in_threadpool(
            service.manager.update, entity_id, fields, uploads
        )
        return {"message": f"{schema.name} updated successfully", key: entity}

    @router.delete("/{entity_id}", response_model=MessageResponse, name=f"delete_{key}")
    def delete_entity(entity_id: str, context: AppContext = Depends(get_context)):
        service = context.service(schema.name)
        service.manager.delete(entity_id)
        return MessageResponse(message=f"{schema.name} deleted successfully")

    for asset in schema.standalone_asset_fields:
        _add_standalone_routes(router, schema, asset)

    return router


def _add_standalone_routes(router: APIRouter, schema: EntitySchema, asset: AssetField) -> None:
    key = schema.singular
    title = asset.name[:1].upper() + asset.name[1:]

    @router.post(f"/{{entity_id}}/{asset.name}", name=f"attach_{key}_{asset.name}")
    async def attach_asset(
        entity_id: str, request: Request, context: AppContext = Depends(get_context)
    ):
        service = context.service(schema.name)
        await run_in_threadpool(service.repository.ensure_ready)
        _, uploads = await read_submission(
            request, upload_size_limit(schema, context.settings)
        )
        files = uploads.get(asset.name) or []
        if len(files) > 1:
            raise ValidationError(f"Only one {asset.name} file is allowed", fields=[asset.name])
        unexpected = sorted(set(uploads) - {asset.name})
        if unexpected:
            raise ValidationError(f"Unexpected field: {unexpected[0]}", fields=unexpected)
        entity = await run_in_threadpool(
            service.manager.attach, entity_id, asset.name, files[0] if files else None
        )
        return {"message": f"{title} uploaded successfully!", key: entity}

    @router.delete(f"/{{entity_id}}/{asset.name}", name=f"detach_{key}_{asset.name}")
    def detach_asset(entity_id: str, context: AppContext = Depends(get_context)):
        service = context.service(schema.name)
        entity = service.manager.detach(entity_id, asset.name)
        return {"message": f"{title} deleted successfully", key: entity}
