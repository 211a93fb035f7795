import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

from taskapi.config import get_taskapi_config
from taskapi.core import Config, TaskApiBase
from taskapi.errors import InvalidOrExpiredTokenError, InvalidTokenError
from taskapi.repositories import RefreshTokenRepository
from taskapi.types import AccessTokenResponse, AuthenticatedUser, TokenPair


def _as_utc(value: datetime) -> datetime:
    # Stores without tz support hand back naive UTC datetimes
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


class TokenService(TaskApiBase):
    """Issues, verifies, rotates and revokes the two kinds of token.

    Access tokens are short-lived JWTs carrying ``{id, email}`` and are trusted on
    signature and expiry alone. Refresh tokens are JWTs signed with a separate secret
    whose literal value is also persisted, so they can be looked up and revoked.
    """

    def __init__(self, refresh_tokens: RefreshTokenRepository, *, config: Optional[Config] = None, **kwargs):
        config = config or get_taskapi_config()
        super().__init__(config=config, **kwargs)
        settings = config.TASKAPI
        self._refresh_tokens = refresh_tokens
        self._access_secret = config.get_secret("TASKAPI", "JWT_SECRET")
        self._refresh_secret = config.get_secret("TASKAPI", "JWT_REFRESH_SECRET")
        self._algorithm = settings.JWT_ALGORITHM
        self._access_ttl = timedelta(seconds=int(settings.ACCESS_TOKEN_EXPIRES_IN))
        self._refresh_ttl = timedelta(seconds=int(settings.REFRESH_TOKEN_EXPIRES_IN))

    # -------------------------------------------------------------------------
    # Signing
    # -------------------------------------------------------------------------

    def create_access_token(self, user_id: str, email: str) -> str:
        now = datetime.now(timezone.utc)
        payload: Dict[str, Any] = {"id": user_id, "email": email, "iat": now, "exp": now + self._access_ttl}
        return jwt.encode(payload, self._access_secret, algorithm=self._algorithm)

    def create_refresh_token(self, user_id: str) -> tuple[str, datetime]:
        """Sign a refresh token. Returns the token and the expiry to persist alongside it."""
        now = datetime.now(timezone.utc)
        expires_at = now + self._refresh_ttl
        payload: Dict[str, Any] = {
            "id": user_id,
            # Two tokens for one user within the same second must still differ
            "jti": secrets.token_hex(16),
            "iat": now,
            "exp": expires_at,
        }
        return jwt.encode(payload, self._refresh_secret, algorithm=self._algorithm), expires_at

    def verify_access(self, token: str) -> AuthenticatedUser:
        """Check an access token's signature and expiry and return the identity it carries."""
        try:
            payload = jwt.decode(token, self._access_secret, algorithms=[self._algorithm])
        except jwt.InvalidTokenError as e:
            raise InvalidTokenError() from e
        if "id" not in payload or "email" not in payload:
            raise InvalidTokenError()
        return AuthenticatedUser(id=str(payload["id"]), email=payload["email"])

    def _verify_refresh(self, token: str) -> Dict[str, Any]:
        try:
            return jwt.decode(token, self._refresh_secret, algorithms=[self._algorithm])
        except jwt.InvalidTokenError as e:
            raise InvalidTokenError("Invalid refresh token") from e

    # -------------------------------------------------------------------------
    # Refresh token lifecycle
    # -------------------------------------------------------------------------

    async def issue_token_pair(self, user_id: str, email: str) -> TokenPair:
        """Sign a new access/refresh pair and persist the refresh token.

        Earlier refresh tokens of the same user are left in place.
        """
        access_token = self.create_access_token(user_id, email)
        refresh_token, expires_at = self.create_refresh_token(user_id)
        await self._refresh_tokens.create(refresh_token, user_id, expires_at)
        return TokenPair(access_token=access_token, refresh_token=refresh_token)

    async def rotate(self, refresh_token: str) -> AccessTokenResponse:
        """Exchange a stored, unexpired refresh token for a new access token.

        The refresh token itself is not replaced. A stored row found past its expiry
        is deleted before the request is rejected.
        """
        stored = await self._refresh_tokens.find_by_value(refresh_token)
        if stored is None:
            raise InvalidOrExpiredTokenError()
        if _as_utc(stored.expires_at) < datetime.now(timezone.utc):
            await self._refresh_tokens.delete_by_id(stored.id)
            self.logger.info("Expired refresh token removed", user_id=stored.user_id)
            raise InvalidOrExpiredTokenError()

        payload = self._verify_refresh(refresh_token)
        if stored.user is None:
            raise InvalidTokenError("Invalid refresh token")
        user_id = str(payload.get("id", stored.user_id))
        return AccessTokenResponse(access_token=self.create_access_token(user_id, stored.user.email))

    async def revoke(self, refresh_token: str) -> int:
        """Delete every stored row holding this token value. Revoking twice is harmless."""
        return await self._refresh_tokens.delete_by_value(refresh_token)
