"""Unit tests for the attachment resolver."""
import base64

import pytest
from pypdf import PdfWriter

from llamachat.attachments import (
    AttachmentResolver,
    LocalAttachmentResolver,
    detect_file_type,
    format_file_size,
)
from llamachat.conversation import DocumentAttachment, ImageAttachment
from llamachat.errors import AttachmentProcessingError


@pytest.fixture
def resolver(tmp_path):
    return LocalAttachmentResolver(tmp_path / "uploads")


class TestHelpers:
    """Tests for file classification and size formatting."""

    @pytest.mark.parametrize("name,expected", [
        ("photo.JPG", "image"),
        ("diagram.svg", "image"),
        ("notes.md", "document"),
        ("report.pdf", "document"),
        ("archive.zip", "unknown"),
    ])
    def test_detect_file_type(self, name, expected):
        """Test classification by extension."""
        assert detect_file_type(name) == expected

    @pytest.mark.parametrize("size,expected", [
        (0, "0 Bytes"),
        (512, "512 Bytes"),
        (1536, "1.5 KB"),
        (5 * 1024 * 1024, "5 MB"),
    ])
    def test_format_file_size(self, size, expected):
        """Test human-readable sizes."""
        assert format_file_size(size) == expected


class TestLocalAttachmentResolver:
    """Tests for LocalAttachmentResolver."""

    def test_resolver_is_abstract(self):
        """Test that AttachmentResolver cannot be instantiated directly."""
        with pytest.raises(TypeError):
            AttachmentResolver()  # type: ignore

    @pytest.mark.asyncio
    async def test_upload_and_encode_image(self, resolver):
        """Test storing an image and reading it back as base64."""
        upload = await resolver.upload_image(b"hello", "cat.png")

        assert upload.url.startswith("/uploads/")
        assert upload.original_name == "cat.png"
        assert upload.mimetype == "image/png"
        assert upload.size == 5
        assert await resolver.image_to_base64(upload.url) == base64.b64encode(b"hello").decode()

    @pytest.mark.asyncio
    async def test_upload_rejects_wrong_type(self, resolver):
        """Test that uploads are checked against their declared kind."""
        with pytest.raises(AttachmentProcessingError):
            await resolver.upload_image(b"text", "notes.txt")
        with pytest.raises(AttachmentProcessingError):
            await resolver.upload_document(b"bin", "tool.exe")

    @pytest.mark.asyncio
    async def test_parse_json_is_reindented(self, resolver):
        """Test that JSON documents are pretty-printed."""
        upload = await resolver.upload_document(b'{"a":1}', "data.json")

        parsed = await resolver.parse_document(upload.url)

        assert parsed.content == '{\n  "a": 1\n}'
        assert parsed.file_type == "json"
        assert parsed.metadata["characters"] == len(parsed.content)

    @pytest.mark.asyncio
    async def test_parse_invalid_json(self, resolver):
        """Test that malformed JSON is an attachment error."""
        upload = await resolver.upload_document(b"{nope", "data.json")
        with pytest.raises(AttachmentProcessingError, match="Invalid JSON"):
            await resolver.parse_document(upload.url)

    @pytest.mark.asyncio
    async def test_parse_pdf(self, resolver, tmp_path):
        """Test PDF parsing metadata for a blank document."""
        writer = PdfWriter()
        writer.add_blank_page(width=200, height=200)
        path = tmp_path / "blank.pdf"
        with open(path, "wb") as f:
            writer.write(f)

        parsed = await resolver.parse_document(str(path))

        assert parsed.file_type == "pdf"
        assert parsed.metadata["pages"] == 1

    @pytest.mark.asyncio
    async def test_missing_file(self, resolver):
        """Test that a missing upload is an attachment error."""
        with pytest.raises(AttachmentProcessingError):
            await resolver.image_to_base64("/uploads/missing.png")

    def test_path_traversal_rejected(self, resolver):
        """Test that upload URLs cannot escape the upload directory."""
        with pytest.raises(AttachmentProcessingError):
            resolver.path_for("/uploads/../secret.txt")

    @pytest.mark.asyncio
    async def test_resolve_is_idempotent(self, resolver):
        """Test that resolving fills context once and then returns as-is."""
        upload = await resolver.upload_document(b"plain text", "a.txt")
        document = DocumentAttachment(url=upload.url, original_name="a.txt")

        resolved = await resolver.resolve(document)
        assert resolved.content == "plain text"
        assert document.content is None
        assert await resolver.resolve(resolved) is resolved

        image = ImageAttachment(url=(await resolver.upload_image(b"x", "a.gif")).url)
        assert (await resolver.resolve(image)).data == "eA=="

    @pytest.mark.asyncio
    async def test_resolve_rejects_invalid_image_data(self, resolver):
        """Test that pre-filled image data must be valid base64."""
        image = ImageAttachment(url="/uploads/a.png", data="not base64!")
        with pytest.raises(AttachmentProcessingError, match="Invalid base64"):
            await resolver.resolve(image)
