"""
Ordered, immutable registry of archive encoders.

Registration order is the dispatch priority: when several encoders
claim a content type, the earlier one is tried first.
"""

from __future__ import annotations

from typing import Dict, Iterable, Iterator, List, Tuple

from .encoders import ArchiveEncoder, DocumentExportEncoder, PageCaptureEncoder
from .errors import DuplicateEncoderError, UnknownEncoder
from ..utils.file_manager import FileManager


class EncoderRegistry:
    def __init__(self, encoders: Iterable[ArchiveEncoder]):
        ordered: Tuple[ArchiveEncoder, ...] = tuple(encoders)
        by_name: Dict[str, ArchiveEncoder] = {}
        for encoder in ordered:
            if not encoder.name:
                raise DuplicateEncoderError(f"encoder {encoder!r} has no name")
            if encoder.name in by_name:
                raise DuplicateEncoderError(f"encoder name {encoder.name!r} registered twice",
                                            encoder=encoder.name)
            by_name[encoder.name] = encoder
        self._encoders = ordered
        self._by_name = by_name

    @property
    def names(self) -> List[str]:
        return [encoder.name for encoder in self._encoders]

    def get(self, name: str) -> ArchiveEncoder:
        try:
            return self._by_name[name]
        except KeyError:
            raise UnknownEncoder(name) from None

    def match(self, content_type: str) -> List[ArchiveEncoder]:
        """All encoders claiming content_type, in registration order."""
        return [encoder for encoder in self._encoders if encoder.matches(content_type)]

    def __iter__(self) -> Iterator[ArchiveEncoder]:
        return iter(self._encoders)

    def __len__(self) -> int:
        return len(self._encoders)

    def __contains__(self, name) -> bool:
        return name in self._by_name


def build_default_registry(config, fetcher=None, file_manager: FileManager = None) -> EncoderRegistry:
    """page-capture first, then document-export."""
    files = file_manager or FileManager(config.archive_dir)
    return EncoderRegistry([
        PageCaptureEncoder(files, fetcher=fetcher,
                           download_assets=config.download_assets,
                           max_asset_bytes=config.max_asset_bytes),
        DocumentExportEncoder(files),
    ])
