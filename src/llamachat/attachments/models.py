"""Data models for uploaded files."""

from typing import Any

from pydantic import BaseModel, Field


class UploadResult(BaseModel):
    """What an upload hands back to the caller."""

    url: str = Field(description="Location to reference the stored file by")
    original_name: str = Field(description="File name as uploaded")
    mimetype: str | None = Field(default=None, description="Detected MIME type")
    size: int = Field(ge=0, description="Stored size in bytes")


class ParsedDocument(BaseModel):
    """Text extracted from an uploaded document."""

    content: str = Field(description="Extracted plain text")
    file_type: str = Field(description="txt, md, csv, json or pdf")
    metadata: dict[str, Any] = Field(default_factory=dict)
