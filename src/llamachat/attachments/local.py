"""Filesystem-backed attachment resolver.

Uploads are written to a single directory and referenced by
``/uploads/<stored name>`` URLs. Plain paths are accepted too, so the CLI
can attach a file without uploading it first.

Hidden design decisions:
- Stored-name scheme (millisecond timestamp plus random suffix)
- Using pypdf for PDF text extraction
- JSON documents are re-indented so the model sees readable structure
"""

import asyncio
import base64
import json
import logging
import mimetypes
import time
from pathlib import Path
from typing import Any
from uuid import uuid4

from pypdf import PdfReader
from pypdf.errors import PyPdfError

from ..errors import AttachmentProcessingError
from .base import AttachmentResolver
from .models import ParsedDocument, UploadResult

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp", ".bmp", ".svg"}
DOCUMENT_EXTENSIONS = {".txt", ".csv", ".md", ".json", ".pdf"}
UPLOAD_URL_PREFIX = "/uploads/"


def detect_file_type(filename: str) -> str:
    """Classify a file name as 'image', 'document' or 'unknown'."""
    ext = Path(filename).suffix.lower()
    if ext in IMAGE_EXTENSIONS:
        return "image"
    if ext in DOCUMENT_EXTENSIONS:
        return "document"
    return "unknown"


def format_file_size(size: int) -> str:
    """Human-readable size, e.g. 1536 -> '1.5 KB'."""
    if size == 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    value = float(size)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    return f"{round(value, 2):g} {units[index]}"


def _extract_pdf(path: Path) -> tuple[str, dict[str, Any]]:
    reader = PdfReader(path)
    pages = []
    for page_num, page in enumerate(reader.pages, start=1):
        try:
            pages.append(page.extract_text() or "")
        except (PyPdfError, ValueError, KeyError) as e:
            # One unreadable page should not sink the whole document
            logger.warning("Failed to extract page %d of %s: %s", page_num, path.name, e)
    info = reader.metadata or {}
    metadata = {
        "pages": len(reader.pages),
        "title": info.get("/Title", "") or path.stem,
        "author": info.get("/Author", ""),
    }
    return "\n\n".join(text for text in pages if text.strip()), metadata


class LocalAttachmentResolver(AttachmentResolver):
    """Attachment resolver storing uploads in a local directory."""

    def __init__(self, upload_dir: str | Path):
        self._upload_dir = Path(upload_dir)

    @property
    def upload_dir(self) -> Path:
        return self._upload_dir

    def path_for(self, url: str) -> Path:
        """Map an attachment URL to a file on disk."""
        if url.startswith(UPLOAD_URL_PREFIX):
            name = url[len(UPLOAD_URL_PREFIX):]
            # Stored names never contain separators
            if not name or Path(name).name != name:
                raise AttachmentProcessingError("Invalid upload URL", url)
            return self._upload_dir / name
        if url.startswith("file://"):
            return Path(url[len("file://"):])
        return Path(url).expanduser()

    async def _store(self, data: bytes, filename: str) -> UploadResult:
        ext = Path(filename).suffix.lower()
        stored_name = f"{int(time.time() * 1000)}-{uuid4().hex[:8]}{ext}"
        target = self._upload_dir / stored_name
        try:
            self._upload_dir.mkdir(parents=True, exist_ok=True)
            await asyncio.to_thread(target.write_bytes, data)
        except OSError as e:
            raise AttachmentProcessingError(f"Upload failed: {e}", filename) from e

        logger.debug("Stored upload %s as %s", filename, stored_name)
        return UploadResult(
            url=f"{UPLOAD_URL_PREFIX}{stored_name}",
            original_name=filename,
            mimetype=mimetypes.guess_type(filename)[0],
            size=len(data),
        )

    async def upload_image(self, data: bytes, filename: str) -> UploadResult:
        if detect_file_type(filename) != "image":
            raise AttachmentProcessingError("Unsupported image type", filename)
        return await self._store(data, filename)

    async def upload_document(self, data: bytes, filename: str) -> UploadResult:
        if detect_file_type(filename) != "document":
            raise AttachmentProcessingError("Unsupported document type", filename)
        return await self._store(data, filename)

    async def parse_document(self, url: str) -> ParsedDocument:
        """Extract text from a txt, md, csv, json or pdf document."""
        path = self.path_for(url)
        ext = path.suffix.lower()
        if ext not in DOCUMENT_EXTENSIONS:
            raise AttachmentProcessingError("Unsupported document type", url)

        try:
            if ext == ".pdf":
                content, metadata = await asyncio.to_thread(_extract_pdf, path)
            else:
                content = await asyncio.to_thread(path.read_text, encoding="utf-8", errors="replace")
                metadata = {}
                if ext == ".json":
                    content = json.dumps(json.loads(content), indent=2, ensure_ascii=False)
        except (OSError, PyPdfError) as e:
            raise AttachmentProcessingError(f"Document parsing failed: {e}", url) from e
        except json.JSONDecodeError as e:
            raise AttachmentProcessingError(f"Invalid JSON document: {e}", url) from e

        metadata.setdefault("characters", len(content))
        return ParsedDocument(content=content, file_type=ext.lstrip("."), metadata=metadata)

    async def image_to_base64(self, url: str) -> str:
        path = self.path_for(url)
        try:
            data = await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise AttachmentProcessingError(f"Base64 conversion failed: {e}", url) from e
        return base64.b64encode(data).decode("ascii")
