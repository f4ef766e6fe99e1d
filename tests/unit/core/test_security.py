from datetime import UTC, datetime, timedelta

import pytest
from fastapi.security import HTTPAuthorizationCredentials

from agentos.core.security import (
    ANONYMOUS_ADMIN,
    ROLE_ADMIN,
    ROLE_AGENT,
    AuthContext,
    create_session_token,
    get_auth_context,
    require_admin,
    require_agent_access,
    verify_session_token,
)
from agentos.utils.error_handler import AuthenticationError, AuthorizationError, ErrorCode


class TestSessionTokens:
    def test_round_trip(self, settings):
        token = create_session_token("AGT-001", ROLE_AGENT, settings)

        auth = verify_session_token(token, settings)

        assert auth == AuthContext(user_id="AGT-001", role=ROLE_AGENT)
        assert not auth.is_admin

    def test_expired_token(self, settings):
        issued = datetime.now(UTC) - timedelta(hours=settings.SESSION_TOKEN_TTL_HOURS + 1)
        token = create_session_token("AGT-001", ROLE_AGENT, settings, now=issued)

        with pytest.raises(AuthenticationError) as exc_info:
            verify_session_token(token, settings)

        assert exc_info.value.error_code == ErrorCode.INVALID_SESSION_TOKEN

    def test_token_signed_with_other_key(self, settings):
        token = create_session_token("admin", ROLE_ADMIN, settings.model_copy(update={"SECRET_KEY": "other"}))

        with pytest.raises(AuthenticationError):
            verify_session_token(token, settings)

    def test_unknown_role(self, settings):
        with pytest.raises(ValueError):
            create_session_token("x", "superuser", settings)


class TestAuthContextDependency:
    @pytest.mark.asyncio
    async def test_auth_disabled_is_anonymous_admin(self, settings):
        assert await get_auth_context(credentials=None, settings=settings) == ANONYMOUS_ADMIN

    @pytest.mark.asyncio
    async def test_missing_token_when_enabled(self, settings):
        settings = settings.model_copy(update={"ENABLE_API_AUTH": True})

        with pytest.raises(AuthenticationError):
            await get_auth_context(credentials=None, settings=settings)

    @pytest.mark.asyncio
    async def test_bearer_token_when_enabled(self, settings):
        settings = settings.model_copy(update={"ENABLE_API_AUTH": True})
        token = create_session_token("AGT-002", ROLE_AGENT, settings)
        credentials = HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)

        auth = await get_auth_context(credentials=credentials, settings=settings)

        assert auth.user_id == "AGT-002"


class TestAccessRules:
    def test_agent_reads_only_own_resources(self):
        agent = AuthContext(user_id="AGT-001", role=ROLE_AGENT)

        require_agent_access(agent, "AGT-001")
        with pytest.raises(AuthorizationError) as exc_info:
            require_agent_access(agent, "AGT-002")
        assert exc_info.value.status_code == 403

    def test_admin_reads_everything(self):
        admin = AuthContext(user_id="boss", role=ROLE_ADMIN)

        require_agent_access(admin, "AGT-002")
        require_admin(admin)

    def test_agent_is_not_admin(self):
        with pytest.raises(AuthorizationError):
            require_admin(AuthContext(user_id="AGT-001", role=ROLE_AGENT))
