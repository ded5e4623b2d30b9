from datetime import datetime
from typing import Any, Dict

import bcrypt
import jwt
from fastapi import Depends, Request
from pydantic import BaseModel

from errors import AppError
from settings import Settings

ALGORITHM = "HS256"
REFRESH_COOKIE = "refreshToken"


def hash_password(password: str, rounds: int = 12) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


class TokenUser(BaseModel):
    """Claims carried by both token kinds."""
    id: str
    email: str
    is_admin: bool = False


class TokenService:
    def __init__(self, settings: Settings):
        self.settings = settings

    def _sign(self, user: TokenUser, secret: str, ttl) -> str:
        payload: Dict[str, Any] = user.model_dump()
        now = datetime.utcnow()
        payload["iat"] = now
        payload["exp"] = now + ttl
        return jwt.encode(payload, secret, algorithm=ALGORITHM)

    def access_token(self, user: TokenUser) -> str:
        return self._sign(user, self.settings.jwt_access_secret, self.settings.access_token_ttl)

    def refresh_token(self, user: TokenUser) -> str:
        return self._sign(user, self.settings.jwt_refresh_secret, self.settings.refresh_token_ttl)

    def decode_access(self, token: str) -> TokenUser:
        claims = jwt.decode(token, self.settings.jwt_access_secret, algorithms=[ALGORITHM])
        return TokenUser(**claims)

    def decode_refresh(self, token: str) -> TokenUser:
        claims = jwt.decode(token, self.settings.jwt_refresh_secret, algorithms=[ALGORITHM])
        return TokenUser(**claims)


def current_user(request: Request) -> TokenUser:
    header = request.headers.get("Authorization", "")
    token = header[7:].strip() if header.startswith("Bearer ") else ""
    if not token:
        raise AppError("Token not provided", 401)
    try:
        return request.app.state.tokens.decode_access(token)
    except (jwt.PyJWTError, ValueError):
        raise AppError("Invalid or expired token", 401)


def require_admin(user: TokenUser = Depends(current_user)) -> TokenUser:
    if not user.is_admin:
        raise AppError("Administrator permissions required", 403)
    return user
