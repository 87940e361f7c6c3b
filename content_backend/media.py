"""
Media store adapter: accepts uploads per asset kind and releases them again.

Objects are laid out under a per-kind resource prefix, so the kind given to
``release`` selects where the object is looked up, the way hosted media
services key deletions on the resource type.
"""

from __future__ import annotations

import logging
import os
import re
import threading
import time
from dataclasses import dataclass
from typing import Callable, Protocol

from botocore.exceptions import BotoCoreError, ClientError

from content_backend.assets import AssetKind, AssetRef, ReleaseResult, UploadPayload
from content_backend.errors import MediaStoreFailure, PayloadTooLarge, UploadRejected
from content_backend.storage import StorageClient

logger = logging.getLogger(__name__)

RESOURCE_PREFIX = {
    AssetKind.IMAGE: "image",
    AssetKind.VIDEO: "video",
    AssetKind.DOCUMENT: "raw",
}


@dataclass(frozen=True)
class KindPolicy:
    mime_prefix: str
    formats: frozenset[str]
    max_bytes: int

    def accepts_type(self, content_type: str) -> bool:
        content_type = (content_type or "").lower()
        if self.mime_prefix.endswith("/"):
            return content_type.startswith(self.mime_prefix)
        return content_type == self.mime_prefix


DEFAULT_FORMATS = {
    AssetKind.IMAGE: frozenset({"jpg", "jpeg", "png", "gif", "webp"}),
    AssetKind.VIDEO: frozenset({"mp4", "mov", "avi", "mkv", "webm"}),
    AssetKind.DOCUMENT: frozenset({"pdf"}),
}

MIME_FAMILIES = {
    AssetKind.IMAGE: "image/",
    AssetKind.VIDEO: "video/",
    AssetKind.DOCUMENT: "application/pdf",
}


def build_policies(max_bytes: Callable[[AssetKind], int]) -> dict[AssetKind, KindPolicy]:
    return {
        kind: KindPolicy(
            mime_prefix=MIME_FAMILIES[kind],
            formats=DEFAULT_FORMATS[kind],
            max_bytes=max_bytes(kind),
        )
        for kind in AssetKind
    }


def sanitize_filename(filename: str) -> str:
    """Return a storage-safe stem: whitespace to ``_``, non-word chars dropped."""
    base = os.path.basename(filename or "")
    safe = re.sub(r"\s+", "_", base)
    safe = re.sub(r"[^\w.-]", "", safe)
    stem = safe.split(".")[0]
    return stem or "upload"


def _extension(filename: str) -> str:
    _, ext = os.path.splitext(filename or "")
    return ext.lstrip(".").lower()


class MediaStore(Protocol):
    def check(self, upload: UploadPayload, kind: AssetKind) -> None:
        ...

    def store(self, upload: UploadPayload, kind: AssetKind, namespace: str) -> AssetRef:
        ...

    def release(self, asset_id: str, kind: AssetKind) -> ReleaseResult:
        ...

    def close(self) -> None:
        ...


class MediaStoreAdapter:
    """Validates uploads against per-kind policies and forwards them to storage."""

    def __init__(
        self,
        client: StorageClient,
        policies: dict[AssetKind, KindPolicy],
        clock: Callable[[], float] = time.time,
    ):
        self.client = client
        self.policies = policies
        self._clock = clock
        self._last_stamp = 0
        self._stamp_lock = threading.Lock()

    def check(self, upload: UploadPayload, kind: AssetKind) -> None:
        """Raise if ``upload`` may not be stored as ``kind``."""
        policy = self.policies[kind]
        if not policy.accepts_type(upload.content_type):
            raise UploadRejected(
                f"Only {kind.value} files are allowed!",
                details=f"{upload.filename}: {upload.content_type or 'unknown type'}",
            )
        ext = _extension(upload.filename)
        if ext not in policy.formats:
            raise UploadRejected(
                f"Unsupported {kind.value} format: {ext or 'none'}",
                details=f"allowed formats: {', '.join(sorted(policy.formats))}",
            )
        if upload.size > policy.max_bytes:
            raise PayloadTooLarge(
                "File too large",
                details=f"{upload.filename} is {upload.size} bytes; limit is {policy.max_bytes}",
            )

    def _next_stamp(self) -> int:
        # Millisecond stamps, bumped so two uploads in one millisecond never collide.
        with self._stamp_lock:
            stamp = int(self._clock() * 1000)
            if stamp <= self._last_stamp:
                stamp = self._last_stamp + 1
            self._last_stamp = stamp
            return stamp

    def make_id(self, upload: UploadPayload, namespace: str) -> str:
        stem = sanitize_filename(upload.filename)
        return f"{namespace.strip('/')}/{self._next_stamp()}-{stem}"

    def object_path(self, asset_id: str, kind: AssetKind) -> str:
        return f"{RESOURCE_PREFIX[kind]}/{asset_id}"

    def store(self, upload: UploadPayload, kind: AssetKind, namespace: str) -> AssetRef:
        self.check(upload, kind)
        asset_id = self.make_id(upload, namespace)
        path = self.object_path(asset_id, kind)
        try:
            self.client.put_bytes(path, upload.data, upload.content_type)
        except (BotoCoreError, ClientError, OSError) as exc:
            logger.error("Upload of %s to %s failed: %s", upload.filename, path, exc)
            raise MediaStoreFailure("Failed to upload file", details=str(exc)) from exc
        logger.info("Stored %s asset %s (%d bytes)", kind.value, asset_id, upload.size)
        return AssetRef(url=self.client.public_url(path), id=asset_id, kind=kind)

    def release(self, asset_id: str, kind: AssetKind) -> ReleaseResult:
        if not asset_id:
            return ReleaseResult(asset_id="", kind=kind, ok=True)
        path = self.object_path(asset_id, kind)
        try:
            existed = self.client.delete(path)
        except Exception as exc:
            logger.warning("Could not release %s asset %s: %s", kind.value, asset_id, exc)
            return ReleaseResult(asset_id=asset_id, kind=kind, ok=False, error=str(exc))
        if not existed:
            logger.info("Asset %s (%s) was already gone", asset_id, kind.value)
        return ReleaseResult(asset_id=asset_id, kind=kind, ok=True)

    def close(self) -> None:
        self.client.close()
