"""
AutismCad Backend — Password & Token Tests
===========================================

What we test:
    ✅ bcrypt hashing and verification (72-byte truncation)
    ✅ legacy SHA-256 hashes still verify
    ✅ session tokens round-trip and reject tampering/expiry/wrong type
    ✅ file tokens are bound to their operation
    ✅ browser labels for access logs
"""

import hashlib
import time

import jwt
import pytest

from autismcad.auth.password import hash_password, is_legacy_hash, verify_password
from autismcad.auth.session import (
    ALGORITHM,
    create_file_token,
    create_session_token,
    decode_file_token,
    decode_session_token,
)
from autismcad.config import settings
from autismcad.exceptions import ForbiddenError, UnauthorizedError
from autismcad.services.auth_service import browser_label


class TestPasswords:
    def test_bcrypt_roundtrip(self):
        stored = hash_password("senha-segura-1")
        assert stored.startswith("$2")
        assert verify_password("senha-segura-1", stored)
        assert not verify_password("senha-errada", stored)

    def test_bytes_past_72_are_ignored(self):
        base = "a" * 72
        stored = hash_password(base + "tail-one")
        assert verify_password(base + "tail-two", stored)

    def test_legacy_sha256_hash(self):
        legacy = hashlib.sha256(b"antiga123").hexdigest()
        assert is_legacy_hash(legacy)
        assert verify_password("antiga123", legacy)
        assert verify_password("antiga123", legacy.upper())
        assert not verify_password("outra", legacy)

    def test_empty_or_malformed_hash_fails(self):
        assert not verify_password("x", "")
        assert not verify_password("x", "not-a-bcrypt-hash")


class TestSessionTokens:
    def test_roundtrip(self):
        token, expires_in = create_session_token(42, "recepcao")
        user = decode_session_token(token)
        assert user.id == 42
        assert user.role == "recepcao"
        assert expires_in == settings.session_max_age_seconds

    def test_missing_role_defaults_to_terapeuta(self):
        token, _ = create_session_token(7, None)
        assert decode_session_token(token).role == "terapeuta"

    def test_tampered_token_rejected(self):
        token, _ = create_session_token(1, "admin")
        with pytest.raises(UnauthorizedError):
            decode_session_token(token[:-2] + ("A" if token[-2] != "A" else "B") + token[-1])

    def test_expired_token_rejected(self):
        now = int(time.time())
        token = jwt.encode(
            {"sub": "1", "role": "admin", "typ": "session", "iat": now - 100, "exp": now - 10},
            settings.auth_secret,
            algorithm=ALGORITHM,
        )
        with pytest.raises(UnauthorizedError):
            decode_session_token(token)

    def test_file_token_is_not_a_session(self):
        token = create_file_token("get", "pacientes/1/foto/x.png")
        with pytest.raises(UnauthorizedError):
            decode_session_token(token)


class TestFileTokens:
    def test_put_token_carries_key_and_content_type(self):
        token = create_file_token("put", "pacientes/3/laudo/abc-laudo.pdf", content_type="application/pdf")
        claims = decode_file_token(token, "put")
        assert claims["key"] == "pacientes/3/laudo/abc-laudo.pdf"
        assert claims["ct"] == "application/pdf"

    def test_wrong_operation_is_forbidden(self):
        token = create_file_token("get", "pacientes/3/foto/a.png")
        with pytest.raises(ForbiddenError, match="Link invalido"):
            decode_file_token(token, "put")

    def test_expired_link(self):
        now = int(time.time())
        token = jwt.encode(
            {"typ": "file", "op": "get", "key": "k", "iat": now - 100, "exp": now - 1},
            settings.auth_secret,
            algorithm=ALGORITHM,
        )
        with pytest.raises(ForbiddenError, match="Link expirado"):
            decode_file_token(token, "get")


class TestBrowserLabel:
    @pytest.mark.parametrize(
        "user_agent, expected",
        [
            ("Mozilla/5.0 (Windows NT 10.0) AppleWebKit/537.36 Chrome/120.0 Safari/537.36 Edg/120.0", "Edge 120"),
            ("Mozilla/5.0 AppleWebKit/537.36 Chrome/120.0 Safari/537.36 OPR/105.0", "Opera 105"),
            ("Mozilla/5.0 (X11; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0", "Firefox 121"),
            ("Mozilla/5.0 AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0 Safari/537.36", "Chrome 120"),
            ("Mozilla/5.0 (Macintosh) AppleWebKit/605.1.15 Version/17.0 Safari/605.1.15", "Safari 17"),
            ("curl/8.4.0", "Outro"),
            (None, None),
        ],
    )
    def test_labels(self, user_agent, expected):
        assert browser_label(user_agent) == expected
