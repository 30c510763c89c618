"""
Data shapes shared by the fetcher, encoders and dispatcher.
"""

from __future__ import annotations

import io
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional


@dataclass
class BookmarkRecord:
    id: int
    url: str
    title: str = ""
    excerpt: str = ""
    archiver: str = ""  # name of the encoder that produced the stored archive
    modified_at: str = ""

    @property
    def has_archive(self) -> bool:
        return bool(self.archiver)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BookmarkRecord":
        return cls(
            id=int(data["id"]),
            url=data["url"],
            title=data.get("title") or "",
            excerpt=data.get("excerpt") or "",
            archiver=data.get("archiver") or "",
            modified_at=data.get("modified_at") or "",
        )


class ContentStream:
    """
    A fetched body plus its declared content type.

    The body is fully buffered, so ``rewind()`` lets a second encoder
    re-read it after a first one failed partway through.
    """

    def __init__(self, body: bytes, content_type: str, url: str = ""):
        self._buffer = io.BytesIO(body)
        self.content_type = content_type or "application/octet-stream"
        self.url = url
        self.closed = False

    @property
    def media_type(self) -> str:
        return normalize_media_type(self.content_type)

    @property
    def charset(self) -> Optional[str]:
        for param in self.content_type.split(";")[1:]:
            key, _, value = param.partition("=")
            if key.strip().lower() == "charset" and value.strip():
                return value.strip().strip('"\'')
        return None

    def read(self, size: int = -1) -> bytes:
        if self.closed:
            raise ValueError("read from a closed content stream")
        return self._buffer.read(size)

    def rewind(self) -> None:
        if self.closed:
            raise ValueError("rewind of a closed content stream")
        self._buffer.seek(0)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._buffer.close()

    def __enter__(self) -> "ContentStream":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def normalize_media_type(content_type: str) -> str:
    """Strip parameters and case: 'Text/HTML; charset=utf-8' -> 'text/html'."""
    return (content_type or "").split(";", 1)[0].strip().lower()


@dataclass
class ArchiveFile:
    name: str
    content: bytes
    content_type: str

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass
class EbookExportRequest:
    bookmark_ids: List[int]
    output_path: str
    title: str = "Keepsake reading list"
    skip_existing: bool = False


@dataclass
class EbookExportResult:
    output_path: str
    included: List[int] = field(default_factory=list)
    skipped: List[int] = field(default_factory=list)
