from .base import ArchiveEncoder
from .page_capture import PageCaptureEncoder
from .document_export import DocumentExportEncoder

__all__ = ["ArchiveEncoder", "PageCaptureEncoder", "DocumentExportEncoder"]
