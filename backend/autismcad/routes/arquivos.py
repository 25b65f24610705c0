"""
AutismCad Backend — Signed File Transfer Routes
================================================

What:  The targets of the URLs handed out by the presign and read-url
       endpoints. The JWT in the path is the only credential.
How:   PUT takes the raw request body (no multipart); GET answers the stored
       bytes with the MIME type detected from their content.
"""

import logging

from fastapi import APIRouter, Request, Response

from autismcad.auth.session import decode_file_token
from autismcad.config import settings
from autismcad.schemas.common import ErrorResponse
from autismcad.services.file_service import file_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/arquivos", tags=["Arquivos"])


@router.put(
    "/{token}",
    responses={
        400: {"description": "Too large, empty, or disallowed content type", "model": ErrorResponse},
        403: {"description": "Invalid or expired link", "model": ErrorResponse},
    },
    summary="Upload to a signed key",
)
async def put_arquivo(token: str, request: Request):
    claims = decode_file_token(token, "put")
    header = request.headers.get("content-length")
    content_length = int(header) if header and header.isdigit() else None
    file_service.check_declared_size(content_length)

    content = await _read_capped(request)
    await file_service.put_object(
        claims["key"],
        content,
        content_type=claims.get("ct") or request.headers.get("content-type"),
        content_length=content_length,
    )
    return {"ok": True, "key": claims["key"]}


@router.get(
    "/{token}",
    responses={
        403: {"description": "Invalid or expired link", "model": ErrorResponse},
        404: {"description": "File not found", "model": ErrorResponse},
    },
    summary="Download a signed key",
)
async def get_arquivo(token: str) -> Response:
    claims = decode_file_token(token, "get")
    content = await file_service.read_object(claims["key"])
    return Response(
        content=content,
        media_type=file_service.detect_mime(content),
        headers={"Cache-Control": "private, max-age=60"},
    )


async def _read_capped(request: Request) -> bytes:
    """Body bytes, giving up as soon as they pass max_file_size (chunked uploads carry no length)."""
    chunks = []
    received = 0
    async for chunk in request.stream():
        received += len(chunk)
        if received > settings.max_file_size:
            file_service.validate_size(None, received)
        chunks.append(chunk)
    return b"".join(chunks)
