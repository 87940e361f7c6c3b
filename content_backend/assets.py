"""
Value types describing remotely stored media.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Optional


class AssetKind(StrEnum):
    IMAGE = "image"
    VIDEO = "video"
    DOCUMENT = "document"


@dataclass(frozen=True)
class AssetRef:
    """A reference to one file held by the media store.

    A reference is either fully populated or absent altogether; callers
    model absence with ``None`` rather than a half-filled ``AssetRef``.
    """

    url: str
    id: str
    kind: AssetKind

    def __post_init__(self):
        if not self.url or not self.id:
            raise ValueError("AssetRef requires both url and id")

    @classmethod
    def from_pair(
        cls, url: Optional[str], asset_id: Optional[str], kind: AssetKind
    ) -> Optional["AssetRef"]:
        """Build a reference from stored columns, ``None`` when both are empty."""
        if not url and not asset_id:
            return None
        if not url or not asset_id:
            raise ValueError(
                f"Stored {kind.value} reference is half populated: url={url!r} id={asset_id!r}"
            )
        return cls(url=url, id=asset_id, kind=kind)


@dataclass
class UploadPayload:
    """Bytes received from a client, not yet stored anywhere."""

    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class ReleaseResult:
    """Outcome of a best-effort release; never raised, only inspected."""

    asset_id: str
    kind: AssetKind
    ok: bool
    error: Optional[str] = None
