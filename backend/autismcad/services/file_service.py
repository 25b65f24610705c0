"""
AutismCad Backend — Attachment Storage Service
===============================================

What:  Stores patient attachments (foto, laudo, documento) on the local
       storage volume and hands out short-lived signed URLs for them.
How:   Upload is two-step, like an object store:
         1. POST .../arquivos/presign  → key + signed PUT URL
         2. PUT  /api/arquivos/{token} → bytes validated and written here
         3. POST .../arquivos/commit   → key recorded on the patient row
       Reads go through GET /api/arquivos/{token} with a signed GET token.

Security Model:
    1. Keys are server-generated: pacientes/<id>/<kind>/<uuid>-<sanitized name>
    2. resolve_path() refuses any key that would escape storage_root
    3. Size limit is enforced on Content-Length and on the received bytes
    4. MIME type is detected from the content (libmagic), not trusted from the client
    5. Signed tokens bind operation, key and content type, and expire quickly

Directory Structure:
    storage/
    └── pacientes/
        └── 42/
            ├── foto/3f0c...-retrato.jpg
            └── laudo/9a71...-laudo_neuro.pdf
"""

import logging
import os
import re
import uuid
from pathlib import Path
from typing import Any, Dict, Optional

import aiofiles
import magic

from autismcad.auth.session import create_file_token
from autismcad.config import settings
from autismcad.exceptions import FileStorageError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

# ── Allowed File Types ────────────────────────────────────────────────────
ALLOWED_MIME_TYPES = {
    "image/png",
    "image/jpeg",
    "image/webp",
    "application/pdf",
}

ATTACHMENT_KINDS = ("foto", "laudo", "documento")

FILES_URL_PREFIX = "/api/arquivos"

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9._-]")


def sanitize_filename(filename: str) -> str:
    return _UNSAFE_FILENAME_CHARS.sub("_", filename)


def is_external_url(value: Optional[str]) -> bool:
    """Legacy rows store a full http(s) URL instead of a storage key."""
    return bool(value) and bool(re.match(r"^https?://", value, re.IGNORECASE))


class FileService:
    """
    Manages the attachment lifecycle on disk.

    Args:
        storage_root: Override the default storage path (used in tests).
    """

    def __init__(self, storage_root: Optional[str] = None):
        self.storage_root = Path(storage_root or settings.storage_root).resolve()
        self.storage_root.mkdir(parents=True, exist_ok=True)
        logger.info("FileService initialized with storage_root=%s", self.storage_root)

    # ── Keys & paths ──────────────────────────────────────────────────────

    def build_key(self, paciente_id: int, kind: str, filename: str) -> str:
        return f"pacientes/{paciente_id}/{kind}/{uuid.uuid4()}-{sanitize_filename(filename)}"

    def key_belongs_to(self, key: str, paciente_id: int, kind: str) -> bool:
        return key.startswith(f"pacientes/{paciente_id}/{kind}/")

    def resolve_path(self, key: str) -> Path:
        """
        Absolute path for a storage key.

        Raises:
            ValidationError: the key is empty, absolute or escapes storage_root
        """
        if not key or key.startswith("/") or "\\" in key:
            raise ValidationError("Chave de arquivo invalida", code="INVALID_KEY")
        path = (self.storage_root / key).resolve()
        if self.storage_root not in path.parents:
            raise ValidationError("Chave de arquivo invalida", code="INVALID_KEY")
        return path

    # ── Validation ────────────────────────────────────────────────────────

    def check_declared_size(self, content_length: Optional[int]) -> None:
        """Rejects an upload from its Content-Length alone, before any byte is read."""
        if content_length and content_length > settings.max_file_size:
            raise ValidationError(
                message=f"Arquivo excede o limite de {settings.max_file_size / (1024 * 1024):.0f}MB",
                code="FILE_TOO_LARGE",
                field="file",
                context={"reported_size": content_length},
            )

    def validate_size(self, content_length: Optional[int], actual_size: int) -> None:
        """Checks Content-Length first (cheap), then the bytes actually received."""
        self.check_declared_size(content_length)
        max_mb = settings.max_file_size / (1024 * 1024)
        if actual_size > settings.max_file_size:
            raise ValidationError(
                message=f"Arquivo excede o limite de {max_mb:.0f}MB",
                code="FILE_TOO_LARGE",
                field="file",
                context={"actual_size": actual_size},
            )
        if actual_size == 0:
            raise ValidationError("Arquivo vazio", code="EMPTY_FILE", field="file")

    def validate_mime_type(self, content: bytes, declared: Optional[str] = None) -> str:
        """
        Detect the real MIME type from the content's magic bytes.

        Raises:
            ValidationError:  type not allowed, or different from the type the
                              upload URL was signed for
            FileStorageError: libmagic failed
        """
        try:
            mime_type = magic.from_buffer(content[:4096], mime=True)
        except (magic.MagicException, OSError) as e:
            logger.error("MIME type detection failed: %s", str(e))
            raise FileStorageError(
                message="Nao foi possivel verificar o tipo do arquivo",
                context={"error": str(e)},
            )

        if mime_type not in ALLOWED_MIME_TYPES:
            raise ValidationError(
                message="Tipo de arquivo nao suportado. Envie PNG, JPEG, WEBP ou PDF.",
                code="UNSUPPORTED_FILE_TYPE",
                field="file",
                context={"detected_mime": mime_type},
            )
        if declared and declared.split(";")[0].strip().lower() != mime_type:
            raise ValidationError(
                message="Tipo do arquivo diferente do informado",
                code="CONTENT_TYPE_MISMATCH",
                field="file",
                context={"declared": declared, "detected_mime": mime_type},
            )
        return mime_type

    # ── Object operations ─────────────────────────────────────────────────

    async def put_object(
        self,
        key: str,
        content: bytes,
        content_type: Optional[str] = None,
        content_length: Optional[int] = None,
    ) -> str:
        """Validate and write an object. Returns the detected MIME type."""
        self.validate_size(content_length, len(content))
        mime_type = self.validate_mime_type(content, content_type)
        await self.write_bytes(key, content)
        return mime_type

    async def write_bytes(self, key: str, content: bytes) -> None:
        path = self.resolve_path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(path, "wb") as f:
                await f.write(content)
            logger.info("File stored: %s (%d bytes)", key, len(content))
        except OSError as e:
            logger.error("Failed to store file at %s: %s", path, str(e))
            raise FileStorageError(
                message="Falha ao salvar arquivo",
                context={"key": key, "os_error": str(e)},
            )

    async def read_object(self, key: str) -> bytes:
        path = self.resolve_path(key)
        if not path.is_file():
            raise NotFoundError("Arquivo nao encontrado", resource="arquivo", resource_id=key)
        try:
            async with aiofiles.open(path, "rb") as f:
                return await f.read()
        except OSError as e:
            logger.error("Failed to read file %s: %s", path, str(e))
            raise FileStorageError(
                message="Falha ao ler arquivo",
                context={"key": key, "os_error": str(e)},
            )

    def exists(self, key: str) -> bool:
        return self.resolve_path(key).is_file()

    def detect_mime(self, content: bytes) -> str:
        return magic.from_buffer(content[:4096], mime=True)

    async def delete_object(self, key: str) -> None:
        """
        Best-effort removal, used when an attachment is replaced.

        Failures are logged, not raised: the patient row already points at the
        new key, and an orphaned file is harmless.
        """
        try:
            path = self.resolve_path(key)
            if path.exists():
                os.remove(path)
                logger.info("Removed stored file: %s", key)
            else:
                logger.debug("Cleanup: file already gone: %s", key)
        except (OSError, ValidationError) as e:
            logger.warning("Failed to remove stored file %s: %s", key, str(e))

    # ── Signed URLs ───────────────────────────────────────────────────────

    def presign_put(self, key: str, content_type: str) -> str:
        token = create_file_token("put", key, content_type=content_type)
        return f"{FILES_URL_PREFIX}/{token}"

    def presign_get(self, key: str) -> str:
        token = create_file_token("get", key)
        return f"{FILES_URL_PREFIX}/{token}"

    # ── Health ────────────────────────────────────────────────────────────

    async def smoke_test(self) -> Dict[str, Any]:
        """
        Write, read back, compare and delete a scratch object.

        Returns {"ok": True, "step": "done", ...} or {"ok": False, "step": <failed step>, "error": ...}.
        """
        key = f"healthchecks/{uuid.uuid4()}.txt"
        body = f"storage-smoke-{uuid.uuid4()}".encode("utf-8")
        step = "put"
        try:
            await self.write_bytes(key, body)
            step = "get"
            read_back = await self.read_object(key)
            step = "verify"
            if read_back != body:
                return {"ok": False, "step": step, "key": key, "error": "Conteudo divergente"}
            step = "delete"
            os.remove(self.resolve_path(key))
            return {"ok": True, "step": "done", "key": key, "bytes": len(body)}
        except (FileStorageError, NotFoundError, OSError) as e:
            logger.error("Storage smoke test failed at step %s: %s", step, str(e))
            return {"ok": False, "step": step, "key": key, "error": str(e)}


file_service = FileService()
