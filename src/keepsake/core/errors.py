"""
Error taxonomy for archive generation and retrieval.

Every error carries whatever context was known where it was raised
(URL, bookmark id, encoder name) so callers can log without re-deriving
state.
"""

from __future__ import annotations

from typing import List, Optional, Sequence


class KeepsakeError(Exception):
    """Base class for all Keepsake errors."""

    def __init__(self,
                 message: str,
                 *,
                 url: Optional[str] = None,
                 bookmark_id: Optional[int] = None,
                 encoder: Optional[str] = None) -> None:
        super().__init__(message)
        self.url = url
        self.bookmark_id = bookmark_id
        self.encoder = encoder

    def context(self) -> dict:
        return {
            "url": self.url,
            "bookmark_id": self.bookmark_id,
            "encoder": self.encoder,
        }


class FetchFailed(KeepsakeError):
    """Network or transport failure while fetching a URL."""

    def __init__(self, message: str, *, status_code: Optional[int] = None, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.status_code = status_code


class FetchCancelled(FetchFailed):
    """The caller cancelled the fetch before the body was complete."""


class NoEncoderAvailable(KeepsakeError):
    """
    No registered encoder produced an archive.

    ``reason`` is ``"no_match"`` when no encoder claimed the content type
    and ``"encode_failed"`` when one or more encoders claimed it and every
    one of them failed.
    """

    NO_MATCH = "no_match"
    ENCODE_FAILED = "encode_failed"

    def __init__(self,
                 message: str,
                 *,
                 content_type: str = "",
                 attempted: Sequence[str] = (),
                 **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.content_type = content_type
        self.attempted: List[str] = list(attempted)
        self.reason = self.ENCODE_FAILED if self.attempted else self.NO_MATCH


class UnknownEncoder(KeepsakeError):
    """An encoder name is not present in the registry."""

    def __init__(self, name: str, **kwargs) -> None:
        super().__init__(f"archiver {name!r} not found", encoder=name, **kwargs)
        self.name = name


class ResourceNotFound(KeepsakeError):
    """The archive exists but does not contain the requested resource."""

    def __init__(self, message: str, *, resource_path: str = "", **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.resource_path = resource_path


class ArchiveCorrupt(KeepsakeError):
    """The persisted archive artifact cannot be parsed."""


class EncodeFailed(KeepsakeError):
    """An encoder could not turn a content stream into an archive."""


class ArchiveCancelled(KeepsakeError):
    """Archive generation was cancelled; nothing was persisted."""


class ExportFailed(KeepsakeError):
    """The long-form export document could not be written."""


class DuplicateEncoderError(KeepsakeError):
    """Two encoders were registered under the same name."""


class StoreError(KeepsakeError):
    """The bookmark store could not read or write a record."""


__all__ = [
    "KeepsakeError",
    "FetchFailed",
    "FetchCancelled",
    "NoEncoderAvailable",
    "UnknownEncoder",
    "ResourceNotFound",
    "ArchiveCorrupt",
    "EncodeFailed",
    "ArchiveCancelled",
    "ExportFailed",
    "DuplicateEncoderError",
    "StoreError",
]
