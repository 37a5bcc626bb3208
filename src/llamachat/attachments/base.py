"""Abstract base class for the upload/parse collaborator.

The chat core never touches raw file bytes after upload: it only consumes
base64 image text and extracted document text. This interface hides:
- Where uploaded files live
- How documents are turned into text
- How images are fetched and encoded
"""

import base64
import binascii
from abc import ABC, abstractmethod

from ..conversation.models import DocumentAttachment, ImageAttachment
from ..errors import AttachmentProcessingError
from .models import ParsedDocument, UploadResult


class AttachmentResolver(ABC):
    """Upload, fetch and parse attachments."""

    @abstractmethod
    async def upload_image(self, data: bytes, filename: str) -> UploadResult:
        """Store an image and return where it lives."""

    @abstractmethod
    async def upload_document(self, data: bytes, filename: str) -> UploadResult:
        """Store a document and return where it lives."""

    @abstractmethod
    async def parse_document(self, url: str) -> ParsedDocument:
        """Extract text from a stored document.

        Raises:
            AttachmentProcessingError: If the document cannot be read or parsed
        """

    @abstractmethod
    async def image_to_base64(self, url: str) -> str:
        """Fetch a stored image as base64 text.

        Raises:
            AttachmentProcessingError: If the image cannot be read
        """

    async def resolve(
        self,
        attachment: ImageAttachment | DocumentAttachment,
    ) -> ImageAttachment | DocumentAttachment:
        """Fill in the send-time context an attachment carries.

        Images get their base64 data, documents their extracted text.
        Already-resolved attachments are returned unchanged.

        Raises:
            AttachmentProcessingError: If the attachment cannot be read, or
                carries image data that is not valid base64
        """
        if isinstance(attachment, ImageAttachment):
            if attachment.data is not None:
                try:
                    base64.b64decode(attachment.data, validate=True)
                except (binascii.Error, ValueError) as e:
                    raise AttachmentProcessingError(f"Invalid base64 image data: {e}") from e
                return attachment
            return attachment.model_copy(update={"data": await self.image_to_base64(attachment.url)})

        if attachment.content is not None:
            return attachment
        parsed = await self.parse_document(attachment.url)
        return attachment.model_copy(update={
            "content": parsed.content,
            "file_type": parsed.file_type,
            "metadata": parsed.metadata,
        })
