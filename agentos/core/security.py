"""
Autenticación de la API mediante tokens de sesión firmados.

Los tokens son JWT HS256 firmados con SECRET_KEY que llevan el usuario
(``sub``) y su rol (``agent`` o ``admin``). Cada handler recibe un
``AuthContext`` explícito vía ``Depends``.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from agentos.core.config import Settings, get_settings
from agentos.utils.error_handler import AuthenticationError, AuthorizationError, ErrorCode

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
ROLE_ADMIN = "admin"
ROLE_AGENT = "agent"

_bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthContext:
    """Usuario autenticado del request."""

    user_id: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def can_access_agent(self, agent_id: str) -> bool:
        return self.is_admin or self.user_id == agent_id


ANONYMOUS_ADMIN = AuthContext(user_id="system", role=ROLE_ADMIN)


def create_session_token(
    user_id: str,
    role: str,
    settings: Optional[Settings] = None,
    now: Optional[datetime] = None,
) -> str:
    """Genera un token de sesión firmado."""
    if role not in (ROLE_ADMIN, ROLE_AGENT):
        raise ValueError(f"Unknown role: {role}")

    settings = settings or get_settings()
    now = now or datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "role": role,
        "iat": now,
        "exp": now + timedelta(hours=settings.SESSION_TOKEN_TTL_HOURS),
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=ALGORITHM)


def verify_session_token(token: str, settings: Optional[Settings] = None) -> AuthContext:
    """
    Valida un token de sesión.

    Raises:
        AuthenticationError: Token inválido, expirado o sin claims requeridos
    """
    settings = settings or get_settings()
    try:
        claims = jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as e:
        raise AuthenticationError("Invalid or expired session token", error_code=ErrorCode.INVALID_SESSION_TOKEN) from e

    user_id = claims.get("sub")
    role = claims.get("role")
    if not user_id or role not in (ROLE_ADMIN, ROLE_AGENT):
        raise AuthenticationError("Session token is missing required claims", error_code=ErrorCode.INVALID_SESSION_TOKEN)

    return AuthContext(user_id=user_id, role=role)


async def get_auth_context(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> AuthContext:
    """
    Dependencia FastAPI que resuelve el usuario del request.

    Con ENABLE_API_AUTH desactivado devuelve un contexto admin anónimo.
    """
    if not settings.ENABLE_API_AUTH:
        return ANONYMOUS_ADMIN

    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Missing bearer token", error_code=ErrorCode.INVALID_SESSION_TOKEN)

    return verify_session_token(credentials.credentials, settings)


def require_agent_access(auth: AuthContext, agent_id: str) -> None:
    """
    Raises:
        AuthorizationError: Si un agente intenta leer recursos de otro agente
    """
    if not auth.can_access_agent(agent_id):
        logger.warning(f"🚫 Acceso denegado: {auth.user_id} intentó acceder a recursos de {agent_id}")
        raise AuthorizationError(f"User {auth.user_id} cannot access resources of agent {agent_id}")


def require_admin(auth: AuthContext) -> None:
    if not auth.is_admin:
        raise AuthorizationError(f"User {auth.user_id} requires admin role")
