"""
AutismCad Backend — Attachment Storage Unit Tests
==================================================

What:  Tests for FileService validation, key handling and disk operations.
How:   Each test gets a FileService rooted in its own temporary directory.
       libmagic is patched where the exact detected type matters.

Test Strategy:
    ✅ Size limits (Content-Length and received bytes, empty files)
    ✅ MIME allow-list and declared/detected mismatch
    ✅ Keys: sanitization, ownership, path traversal
    ✅ write → read → delete on disk, storage smoke test
"""

from unittest.mock import patch

import magic
import pytest

from autismcad.config import settings
from autismcad.exceptions import FileStorageError, NotFoundError, ValidationError
from autismcad.services.file_service import FileService, is_external_url, sanitize_filename


class TestFileValidation:
    @pytest.fixture(autouse=True)
    def _service(self, temp_storage):
        self.service = FileService(storage_root=temp_storage)

    # ── Size Validation ───────────────────────────────────────────────────

    def test_size_within_limit(self):
        self.service.validate_size(1000, 1000)

    def test_declared_size_over_limit(self):
        with pytest.raises(ValidationError) as exc_info:
            self.service.validate_size(settings.max_file_size + 1, 10)
        assert exc_info.value.code == "FILE_TOO_LARGE"

    def test_declared_size_checked_without_content(self):
        self.service.check_declared_size(None)
        self.service.check_declared_size(settings.max_file_size)
        with pytest.raises(ValidationError) as exc_info:
            self.service.check_declared_size(settings.max_file_size + 1)
        assert exc_info.value.context["reported_size"] == settings.max_file_size + 1

    def test_received_size_over_limit(self):
        with pytest.raises(ValidationError, match="excede o limite"):
            self.service.validate_size(None, settings.max_file_size + 1)

    def test_empty_file(self):
        with pytest.raises(ValidationError) as exc_info:
            self.service.validate_size(0, 0)
        assert exc_info.value.code == "EMPTY_FILE"

    # ── MIME Validation ───────────────────────────────────────────────────

    def test_png_detected(self, sample_png_bytes):
        with patch("autismcad.services.file_service.magic.from_buffer", return_value="image/png"):
            assert self.service.validate_mime_type(sample_png_bytes, "image/png") == "image/png"

    def test_declared_type_with_parameters(self):
        with patch("autismcad.services.file_service.magic.from_buffer", return_value="application/pdf"):
            assert self.service.validate_mime_type(b"%PDF-1.4", "Application/PDF; charset=binary") == "application/pdf"

    def test_unsupported_type(self):
        with patch("autismcad.services.file_service.magic.from_buffer", return_value="image/gif"):
            with pytest.raises(ValidationError) as exc_info:
                self.service.validate_mime_type(b"GIF89a")
        assert exc_info.value.code == "UNSUPPORTED_FILE_TYPE"

    def test_mismatch_with_signed_type(self):
        with patch("autismcad.services.file_service.magic.from_buffer", return_value="image/png"):
            with pytest.raises(ValidationError) as exc_info:
                self.service.validate_mime_type(b"png", "application/pdf")
        assert exc_info.value.code == "CONTENT_TYPE_MISMATCH"

    def test_libmagic_failure(self):
        with patch(
            "autismcad.services.file_service.magic.from_buffer",
            side_effect=magic.MagicException("boom"),
        ):
            with pytest.raises(FileStorageError):
                self.service.validate_mime_type(b"??")


class TestKeys:
    @pytest.fixture(autouse=True)
    def _service(self, temp_storage):
        self.service = FileService(storage_root=temp_storage)

    def test_sanitize_filename(self):
        assert sanitize_filename("laudo neuro (1).pdf") == "laudo_neuro__1_.pdf"
        assert sanitize_filename("../../etc/passwd") == ".._.._etc_passwd"

    def test_build_key_layout(self):
        key = self.service.build_key(42, "laudo", "laudo final.pdf")
        assert key.startswith("pacientes/42/laudo/")
        assert key.endswith("-laudo_final.pdf")
        assert self.service.key_belongs_to(key, 42, "laudo")
        assert not self.service.key_belongs_to(key, 4, "laudo")
        assert not self.service.key_belongs_to(key, 42, "foto")

    @pytest.mark.parametrize("key", ["", "/etc/passwd", "../outside.txt", "pacientes/../../x", "a\\b"])
    def test_resolve_path_refuses_escapes(self, key):
        with pytest.raises(ValidationError):
            self.service.resolve_path(key)

    def test_external_urls(self):
        assert is_external_url("https://cdn.example.com/a.png")
        assert is_external_url("HTTP://legacy/a.pdf")
        assert not is_external_url("pacientes/1/foto/a.png")
        assert not is_external_url(None)

    def test_presigned_urls_point_at_files_route(self):
        assert self.service.presign_get("pacientes/1/foto/a.png").startswith("/api/arquivos/")
        assert self.service.presign_put("pacientes/1/foto/a.png", "image/png").startswith("/api/arquivos/")


class TestObjectStorage:
    @pytest.fixture(autouse=True)
    def _service(self, temp_storage):
        self.service = FileService(storage_root=temp_storage)

    @pytest.mark.asyncio
    async def test_put_read_delete(self, sample_png_bytes):
        key = "pacientes/1/foto/abc-retrato.png"
        with patch("autismcad.services.file_service.magic.from_buffer", return_value="image/png"):
            mime_type = await self.service.put_object(
                key, sample_png_bytes, "image/png", len(sample_png_bytes)
            )

        assert mime_type == "image/png"
        assert self.service.exists(key)
        assert await self.service.read_object(key) == sample_png_bytes

        await self.service.delete_object(key)
        assert not self.service.exists(key)

    @pytest.mark.asyncio
    async def test_read_missing_object(self):
        with pytest.raises(NotFoundError):
            await self.service.read_object("pacientes/1/foto/missing.png")

    @pytest.mark.asyncio
    async def test_delete_missing_object_is_silent(self):
        await self.service.delete_object("pacientes/1/foto/missing.png")
        await self.service.delete_object("../escape.png")

    @pytest.mark.asyncio
    async def test_smoke_test(self):
        result = await self.service.smoke_test()

        assert result["ok"] is True
        assert result["step"] == "done"
        assert result["bytes"] > 0
        assert not self.service.exists(result["key"])
