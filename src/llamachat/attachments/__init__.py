"""Attachment handling for llamachat.

Uploads images and documents, extracts document text and encodes images
for provider requests.
"""

from .base import AttachmentResolver
from .local import LocalAttachmentResolver, detect_file_type, format_file_size
from .models import ParsedDocument, UploadResult

__all__ = [
    "AttachmentResolver",
    "LocalAttachmentResolver",
    "ParsedDocument",
    "UploadResult",
    "detect_file_type",
    "format_file_size",
]
