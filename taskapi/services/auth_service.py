from typing import Any, Optional

from taskapi.core import Config, TaskApiBase
from taskapi.errors import ConflictError, ForbiddenError, InvalidCredentialsError, UnauthorizedError, parse_as
from taskapi.repositories import UserRepository
from taskapi.security import hash_password, verify_password
from taskapi.services.token_service import TokenService
from taskapi.types import (
    AccessTokenResponse,
    AuthResponse,
    LoginPayload,
    LogoutPayload,
    MessageResponse,
    RefreshPayload,
    RegisterPayload,
    UserResponse,
)


class AuthService(TaskApiBase):
    """Register, login, refresh and logout on top of the user store and TokenService."""

    def __init__(self, users: UserRepository, tokens: TokenService, *, config: Optional[Config] = None, **kwargs):
        super().__init__(config=config, **kwargs)
        self.users = users
        self.tokens = tokens

    async def register(self, payload: RegisterPayload | dict[str, Any]) -> AuthResponse:
        """Create a user and sign them in with a fresh token pair."""
        payload = parse_as(RegisterPayload, payload)
        if await self.users.find_by_email(payload.email):
            self.logger.info("Registration rejected, email in use")
            raise ConflictError()

        user = await self.users.create_user(
            name=payload.name,
            email=payload.email,
            password_hash=hash_password(payload.password),
        )
        pair = await self.tokens.issue_token_pair(user.id, user.email)
        self.logger.info("User registered", user_id=user.id)
        return AuthResponse(
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
            user=UserResponse.from_user(user),
        )

    async def login(self, payload: LoginPayload | dict[str, Any]) -> AuthResponse:
        payload = parse_as(LoginPayload, payload)
        user = await self.users.find_by_email(payload.email)
        # Same error for unknown email and wrong password
        if user is None or not verify_password(payload.password, user.password_hash):
            self.logger.warning("Login failed")
            raise InvalidCredentialsError()

        pair = await self.tokens.issue_token_pair(user.id, user.email)
        self.logger.info("User logged in", user_id=user.id)
        return AuthResponse(
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
            user=UserResponse.from_user(user),
        )

    async def refresh(self, payload: RefreshPayload | dict[str, Any]) -> AccessTokenResponse:
        payload = parse_as(RefreshPayload, payload)
        if not payload.refresh_token:
            raise UnauthorizedError("Refresh token required")
        try:
            return await self.tokens.rotate(payload.refresh_token)
        except ForbiddenError:
            self.logger.warning("Refresh rejected")
            raise

    async def logout(self, payload: LogoutPayload | dict[str, Any]) -> MessageResponse:
        """Revoke the given refresh token, if any. Always succeeds."""
        payload = parse_as(LogoutPayload, payload)
        if payload.refresh_token:
            removed = await self.tokens.revoke(payload.refresh_token)
            self.logger.info("Refresh token revoked", removed=removed)
        return MessageResponse(message="Logged out successfully")
