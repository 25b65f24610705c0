"""
AutismCad Backend — Login & Access Log Service
===============================================

What:  Credential check, session token issue and the login audit trail.

Audit trail:
    Every attempt, successful or not, writes one access_logs row with the
    client IP, user agent and a short browser label. Rows older than
    settings.access_log_retention_days are purged on each insert, so the
    table never needs a separate cleanup job.

Failure responses never reveal whether the email exists.
"""

import logging
import re
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from autismcad.auth.access import load_user_access
from autismcad.auth.password import verify_password
from autismcad.auth.session import create_session_token
from autismcad.config import settings
from autismcad.exceptions import UnauthorizedError
from autismcad.models.user import AccessLog
from autismcad.normalize import iso_datetime
from autismcad.services.users_service import users_service

logger = logging.getLogger(__name__)

MAX_ACCESS_LOGS = 300

# Order matters: Edge and Opera also announce "Chrome", Chrome announces "Safari".
_BROWSER_PATTERNS = (
    ("Edge", re.compile(r"Edg(?:e|A|iOS)?/([\d]+)")),
    ("Opera", re.compile(r"(?:OPR|Opera)/([\d]+)")),
    ("Firefox", re.compile(r"(?:Firefox|FxiOS)/([\d]+)")),
    ("Chrome", re.compile(r"(?:Chrome|CriOS)/([\d]+)")),
    ("Safari", re.compile(r"Version/([\d]+).*Safari/")),
)


def browser_label(user_agent: Optional[str]) -> Optional[str]:
    """'Mozilla/5.0 ... Chrome/120.0 Safari/537.36' → 'Chrome 120'."""
    if not user_agent:
        return None
    for name, pattern in _BROWSER_PATTERNS:
        match = pattern.search(user_agent)
        if match:
            return f"{name} {match.group(1)}"
    return "Outro"


class AuthService:
    async def record_access(
        self,
        db: AsyncSession,
        email: str,
        status: str,
        user_id: Optional[int] = None,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        cutoff = datetime.utcnow() - timedelta(days=settings.access_log_retention_days)
        await db.execute(delete(AccessLog).where(AccessLog.created_at < cutoff))
        db.add(
            AccessLog(
                user_id=user_id,
                user_email=email[:160],
                ip_origem=(ip or None) and ip[:64],
                user_agent=(user_agent or None) and user_agent[:512],
                browser=browser_label(user_agent),
                status=status,
            )
        )
        await db.flush()

    async def login(
        self,
        db: AsyncSession,
        email: str,
        password: str,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Check credentials and issue a session token.

        Raises:
            UnauthorizedError: unknown email, inactive account or wrong password
                               (the FALHA log row is still committed)
        """
        user = await users_service.get_active_by_email(db, email)
        if user is None or not verify_password(password, user.senha_hash):
            await self.record_access(
                db, email, "FALHA", user_id=user.id if user else None, ip=ip, user_agent=user_agent
            )
            await db.commit()
            logger.info("Login failed for %s from %s", email, ip)
            raise UnauthorizedError("Credenciais invalidas", code="INVALID_CREDENTIALS")

        await self.record_access(db, email, "SUCESSO", user_id=user.id, ip=ip, user_agent=user_agent)
        token, max_age = create_session_token(user.id, user.role)
        logger.info("Login succeeded: user=%s role=%s", user.id, user.role)
        return {
            "token": token,
            "token_type": "Bearer",
            "expiresIn": max_age,
            "user": {"id": user.id, "nome": user.nome, "email": user.email, "role": user.role},
        }

    async def me_permissions(self, db: AsyncSession, user_id: int) -> Dict[str, Any]:
        access = await load_user_access(db, user_id)
        if not access.exists or not access.user:
            raise UnauthorizedError("Usuario nao encontrado")
        return {
            "role": access.primary_role,
            "roles": access.roles,
            "permissions": sorted(access.permissions),
            "user": access.user,
        }

    async def list_access_logs(self, db: AsyncSession, limit: int = MAX_ACCESS_LOGS) -> List[Dict[str, Any]]:
        safe_limit = min(max(int(limit or MAX_ACCESS_LOGS), 1), MAX_ACCESS_LOGS)
        result = await db.execute(
            select(AccessLog).order_by(AccessLog.created_at.desc(), AccessLog.id.desc()).limit(safe_limit)
        )
        return [
            {
                "id": log.id,
                "user_id": log.user_id,
                "user_email": log.user_email,
                "ip_origem": log.ip_origem,
                "user_agent": log.user_agent,
                "browser": log.browser,
                "status": log.status,
                "created_at": iso_datetime(log.created_at),
            }
            for log in result.scalars().all()
        ]


auth_service = AuthService()
