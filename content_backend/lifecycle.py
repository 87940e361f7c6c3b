"""
Upload lifecycle management.

Binds uploaded files to entity fields and tears the binding down again.
Every operation is an ordered pipeline of named steps:

    store new assets -> commit the document -> release superseded assets

A failure or cancellation before the commit releases whatever the request
already stored, so a failed commit never strands a fresh upload. Once the
commit has succeeded nothing is rolled back; later release steps are best
effort and only logged when they fail.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional, Sequence

from content_backend.assets import AssetRef, ReleaseResult, UploadPayload
from content_backend.entities import AssetField, EntitySchema
from content_backend.errors import MissingAsset, OperationCancelled, ValidationError
from content_backend.media import MediaStore
from content_backend.repository import EntityRepository

logger = logging.getLogger(__name__)

Uploads = Mapping[str, Sequence[UploadPayload]]


@dataclass
class Step:
    name: str
    run: Callable[[], Any]
    compensate: Optional[Callable[[Any], None]] = None
    commit: bool = False


@dataclass
class Pipeline:
    """Runs steps in order; undoes uncommitted work on failure or cancellation."""

    operation: str
    cancel: Optional[threading.Event] = None
    steps: list[Step] = field(default_factory=list)
    completed: list[str] = field(default_factory=list)
    _undo: list[tuple[Step, Any]] = field(default_factory=list, init=False, repr=False)

    def add(
        self,
        name: str,
        run: Callable[[], Any],
        compensate: Optional[Callable[[Any], None]] = None,
        *,
        commit: bool = False,
    ) -> "Pipeline":
        self.steps.append(Step(name=name, run=run, compensate=compensate, commit=commit))
        return self

    def run(self) -> dict[str, Any]:
        results: dict[str, Any] = {}
        for step in self.steps:
            if self.cancel is not None and self.cancel.is_set():
                logger.warning(
                    "%s cancelled before %s; completed: %s",
                    self.operation,
                    step.name,
                    self.completed,
                )
                self._rollback()
                raise OperationCancelled(self.completed)
            try:
                result = step.run()
            except Exception:
                self._rollback()
                raise
            results[step.name] = result
            self.completed.append(step.name)
            if step.commit:
                self._undo.clear()
            elif step.compensate is not None:
                self._undo.append((step, result))
        return results

    def _rollback(self) -> None:
        while self._undo:
            step, result = self._undo.pop()
            logger.warning("%s: undoing %s", self.operation, step.name)
            step.compensate(result)


@dataclass
class DeleteOutcome:
    entity_id: str
    releases: list[ReleaseResult]

    @property
    def failed_releases(self) -> list[ReleaseResult]:
        return [r for r in self.releases if not r.ok]


class UploadLifecycleManager:
    """Sequences media and repository calls for one content type."""

    def __init__(
        self,
        schema: EntitySchema,
        repository: EntityRepository,
        media: MediaStore,
        namespace_root: str = "",
    ):
        self.schema = schema
        self.repository = repository
        self.media = media
        self.namespace_root = namespace_root

    # -- helpers -----------------------------------------------------------

    def _release(self, ref: AssetRef) -> ReleaseResult:
        result = self.media.release(ref.id, ref.kind)
        if not result.ok:
            logger.warning(
                "Release of %s asset %s failed (ignored): %s",
                ref.kind.value,
                ref.id,
                result.error,
            )
        return result

    def _check_uploads(
        self, uploads: Uploads, allowed: Sequence[AssetField]
    ) -> dict[str, list[UploadPayload]]:
        allowed_names = {a.name: a for a in allowed}
        checked: dict[str, list[UploadPayload]] = {}
        for name, files in uploads.items():
            files = [f for f in files if f is not None]
            if not files:
                continue
            asset = allowed_names.get(name)
            if asset is None:
                raise ValidationError(f"Unexpected field: {name}", fields=[name])
            if len(files) > asset.max_count:
                raise ValidationError(
                    f"Too many files for {name}",
                    fields=[name],
                    details=f"at most {asset.max_count} allowed",
                )
            for upload in files:
                self.media.check(upload, asset.kind)
            checked[name] = files
        return checked

    def _add_stores(
        self,
        pipeline: Pipeline,
        uploads: dict[str, list[UploadPayload]],
        fields: Sequence[AssetField],
    ) -> dict[str, list[AssetRef]]:
        """Queue one store step per file, in field order then array order."""
        stored: dict[str, list[AssetRef]] = {}
        for asset in fields:
            files = uploads.get(asset.name)
            if not files:
                continue
            stored[asset.name] = []
            namespace = self.schema.namespace(self.namespace_root, asset.kind)
            for index, upload in enumerate(files):
                pipeline.add(
                    f"store:{asset.name}[{index}]",
                    self._store_into(stored[asset.name], upload, asset, namespace),
                    self._release,
                )
        return stored

    def _store_into(
        self,
        bucket: list[AssetRef],
        upload: UploadPayload,
        asset: AssetField,
        namespace: str,
    ) -> Callable[[], AssetRef]:
        def run() -> AssetRef:
            ref = self.media.store(upload, asset.kind, namespace)
            bucket.append(ref)
            return ref

        return run

    def _add_releases(
        self, pipeline: Pipeline, superseded: Sequence[tuple[AssetField, AssetRef]]
    ) -> None:
        for index, (asset, ref) in enumerate(superseded):
            pipeline.add(
                f"release:{asset.name}:{index}",
                lambda ref=ref: self._release(ref),
            )

    def _encode(self, stored: dict[str, list[AssetRef]]) -> dict:
        encoded: dict = {}
        for name, refs in stored.items():
            encoded.update(self.schema.asset_field(name).encode(refs))
        return encoded

    # -- operations --------------------------------------------------------

    def create(
        self,
        fields: dict,
        uploads: Uploads,
        cancel: Optional[threading.Event] = None,
    ) -> dict:
        form_assets = self.schema.form_asset_fields
        for asset in form_assets:
            if asset.required and not [f for f in uploads.get(asset.name, ()) if f]:
                raise MissingAsset(asset.name, asset.display_name)
        checked = self._check_uploads(uploads, form_assets)

        pipeline = Pipeline(f"create {self.schema.name}", cancel)
        stored = self._add_stores(pipeline, checked, form_assets)
        pipeline.add(
            "commit",
            lambda: self.repository.create(
                {**fields, **self.schema.empty_assets(), **self._encode(stored)}
            ),
            commit=True,
        )
        entity = pipeline.run()["commit"]
        logger.info("%s created: %s", self.schema.name, entity["_id"])
        return entity

    def update(
        self,
        entity_id: str,
        fields: dict,
        uploads: Uploads,
        cancel: Optional[threading.Event] = None,
    ) -> dict:
        existing = self.repository.get(entity_id)
        form_assets = self.schema.form_asset_fields
        checked = self._check_uploads(uploads, form_assets)
        entity = self._replace(
            f"update {self.schema.name}", entity_id, existing, fields, checked, form_assets, cancel
        )
        logger.info("%s updated: %s", self.schema.name, entity_id)
        return entity

    def attach(
        self,
        entity_id: str,
        field_name: str,
        upload: Optional[UploadPayload],
        cancel: Optional[threading.Event] = None,
    ) -> dict:
        """Store ``upload`` into a single-asset field, replacing what it held."""
        asset = self.schema.asset_field(field_name)
        existing = self.repository.get(entity_id)
        if upload is None:
            raise MissingAsset(asset.name, asset.display_name)
        checked = self._check_uploads({asset.name: [upload]}, [asset])
        entity = self._replace(
            f"attach {self.schema.name}.{asset.name}",
            entity_id,
            existing,
            {},
            checked,
            [asset],
            cancel,
        )
        logger.info("%s %s uploaded to %s", self.schema.name, asset.name, entity_id)
        return entity

    def _replace(
        self,
        operation: str,
        entity_id: str,
        existing: dict,
        fields: dict,
        uploads: dict[str, list[UploadPayload]],
        assets: Sequence[AssetField],
        cancel: Optional[threading.Event],
    ) -> dict:
        pipeline = Pipeline(operation, cancel)
        stored = self._add_stores(pipeline, uploads, assets)
        superseded = [
            (asset, ref)
            for asset in assets
            if asset.name in uploads
            for ref in asset.read(existing)
        ]
        pipeline.add(
            "commit",
            lambda: self.repository.update(entity_id, {**fields, **self._encode(stored)}),
            commit=True,
        )
        self._add_releases(pipeline, superseded)
        return pipeline.run()["commit"]

    def detach(
        self,
        entity_id: str,
        field_name: str,
        cancel: Optional[threading.Event] = None,
    ) -> dict:
        """Release a single-asset field and clear it. No-op when already empty."""
        asset = self.schema.asset_field(field_name)
        existing = self.repository.get(entity_id)
        refs = asset.read(existing)
        if not refs:
            return existing
        pipeline = Pipeline(f"detach {self.schema.name}.{asset.name}", cancel)
        self._add_releases(pipeline, [(asset, ref) for ref in refs])
        pipeline.add(
            "commit",
            lambda: self.repository.update(entity_id, asset.encode([])),
            commit=True,
        )
        entity = pipeline.run()["commit"]
        logger.info("%s %s deleted from %s", self.schema.name, asset.name, entity_id)
        return entity

    def delete(
        self, entity_id: str, cancel: Optional[threading.Event] = None
    ) -> DeleteOutcome:
        """Release every owned asset, then delete the record regardless of outcome."""
        existing = self.repository.get(entity_id)
        owned = self.schema.owned_assets(existing)
        pipeline = Pipeline(f"delete {self.schema.name}", cancel)
        self._add_releases(pipeline, owned)
        pipeline.add("commit", lambda: self.repository.delete(entity_id), commit=True)
        results = pipeline.run()
        releases = [r for name, r in results.items() if name.startswith("release:")]
        outcome = DeleteOutcome(entity_id=entity_id, releases=releases)
        if outcome.failed_releases:
            logger.warning(
                "%s %s deleted with %d unreleased asset(s)",
                self.schema.name,
                entity_id,
                len(outcome.failed_releases),
            )
        logger.info("%s deleted: %s", self.schema.name, entity_id)
        return outcome
