"""
Emisión de tokens de sesión.

Helper de desarrollo: entrega un token firmado para un agente registrado
o un administrador listado en ADMIN_USER_IDS. No maneja contraseñas.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends

from agentos.api.v1.dependencies import get_agent_repository
from agentos.api.v1.schemas.agentos_schemas import TokenRequest
from agentos.core.config import Settings, get_settings
from agentos.core.security import ROLE_ADMIN, ROLE_AGENT, create_session_token
from agentos.db.repositories import AgentRepository
from agentos.utils.error_handler import AuthenticationError, ErrorCode

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/token", summary="Issue a session token")
async def issue_token(
    body: TokenRequest,
    settings: Settings = Depends(get_settings),
    agent_repository: AgentRepository = Depends(get_agent_repository),
) -> Dict[str, Any]:
    """
    Emite un token para un administrador o un agente activo.

    Raises:
        AuthenticationError: Usuario desconocido o agente inactivo
    """
    if body.user_id in settings.ADMIN_USER_IDS:
        role = ROLE_ADMIN
    else:
        agent = await agent_repository.get(body.user_id)
        if agent is None or not agent.active:
            logger.warning(f"🚫 Token denegado para usuario desconocido o inactivo: {body.user_id}")
            raise AuthenticationError("Unknown or inactive user", error_code=ErrorCode.INVALID_SESSION_TOKEN)
        role = ROLE_AGENT

    token = create_session_token(body.user_id, role, settings)
    logger.info(f"🔑 Token emitido para {body.user_id} ({role})")
    return {
        "success": True,
        "data": {
            "accessToken": token,
            "tokenType": "bearer",
            "expiresInHours": settings.SESSION_TOKEN_TTL_HOURS,
            "userId": body.user_id,
            "role": role,
        },
    }
