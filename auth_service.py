import hashlib
import secrets
from datetime import datetime, timedelta
from typing import Tuple

import jwt
import structlog
from pymongo import ReturnDocument

from database import create_document, oid, to_dict
from errors import AppError
from notifications import Notifier
from payloads import ChangePasswordRequest, ForgotPasswordRequest, LoginRequest, RegisterRequest, ResetPasswordRequest
from schemas import PasswordReset, User
from security import TokenService, TokenUser, hash_password, verify_password

logger = structlog.get_logger(__name__)

PUBLIC_USER_FIELDS = ("id", "email", "first_name", "last_name", "phone", "is_admin", "is_active", "created_at")


def public_user(doc: dict) -> dict:
    d = to_dict(doc)
    return {k: d.get(k) for k in PUBLIC_USER_FIELDS}


def hash_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class AuthService:
    def __init__(self, db, tokens: TokenService, notifier: Notifier, bcrypt_rounds: int = 12,
                 reset_expiry_minutes: int = 30):
        self.db = db
        self.users = db["user"]
        self.resets = db["passwordreset"]
        self.tokens = tokens
        self.notifier = notifier
        self.bcrypt_rounds = bcrypt_rounds
        self.reset_expiry_minutes = reset_expiry_minutes

    def _issue(self, user: dict) -> Tuple[str, str]:
        claims = TokenUser(id=str(user["_id"]), email=user["email"], is_admin=user.get("is_admin", False))
        return self.tokens.access_token(claims), self.tokens.refresh_token(claims)

    def register(self, payload: RegisterRequest) -> Tuple[dict, str, str]:
        email = payload.email.lower()
        if self.users.find_one({"email": email}):
            raise AppError("Email already registered", 409)

        user = User(
            email=email,
            password_hash=hash_password(payload.password, self.bcrypt_rounds),
            first_name=payload.first_name,
            last_name=payload.last_name,
            phone=payload.phone,
            is_admin=False,
            is_active=True,
        )
        doc = create_document(self.db, "user", user)
        logger.info("auth.registered", user_id=str(doc["_id"]))
        access, refresh = self._issue(doc)
        return public_user(doc), access, refresh

    def login(self, payload: LoginRequest) -> Tuple[dict, str, str]:
        doc = self.users.find_one({"email": payload.email.lower()})
        if not doc:
            raise AppError("Invalid credentials", 401)
        if not doc.get("is_active", True):
            raise AppError("Inactive user", 403)
        if not verify_password(payload.password, doc.get("password_hash", "")):
            raise AppError("Invalid credentials", 401)
        access, refresh = self._issue(doc)
        return public_user(doc), access, refresh

    def refresh(self, token: str) -> str:
        try:
            claims = self.tokens.decode_refresh(token)
        except (jwt.PyJWTError, ValueError):
            raise AppError("Invalid or expired token", 401)

        doc = self.users.find_one({"_id": oid(claims.id)}) if claims.id else None
        if not doc or not doc.get("is_active", True):
            raise AppError("User not found or inactive", 401)
        access, _ = self._issue(doc)
        return access

    def me(self, user_id: str) -> dict:
        doc = self.users.find_one({"_id": oid(user_id)})
        if not doc:
            raise AppError("User not found", 404)
        return public_user(doc)

    def request_password_reset(self, payload: ForgotPasswordRequest) -> None:
        doc = self.users.find_one({"email": payload.email.lower()})
        if not doc:
            # Same outcome as a registered address
            return

        token = secrets.token_hex(32)
        reset = PasswordReset(
            user_id=str(doc["_id"]),
            token_hash=hash_reset_token(token),
            expires_at=datetime.utcnow() + timedelta(minutes=self.reset_expiry_minutes),
        )
        create_document(self.db, "passwordreset", reset)
        logger.info("auth.password_reset_requested", user_id=str(doc["_id"]))
        self.notifier.password_reset(doc["email"], token)

    def reset_password(self, payload: ResetPasswordRequest) -> None:
        now = datetime.utcnow()
        pending = {
            "token_hash": hash_reset_token(payload.token),
            "used_at": {"$exists": False},
            "expires_at": {"$gt": now},
        }
        reset = self.resets.find_one(pending)
        if not reset:
            raise AppError("Invalid or expired token", 400)
        user = self.users.find_one({"_id": oid(reset["user_id"])}, {"_id": 1})
        if not user:
            raise AppError("User not found", 404)

        # Consuming the token is the single-use guard against concurrent resets
        consumed = self.resets.find_one_and_update(
            {"_id": reset["_id"], **pending},
            {"$set": {"used_at": now, "updated_at": now}},
            return_document=ReturnDocument.AFTER,
        )
        if not consumed:
            raise AppError("Invalid or expired token", 400)

        self.users.update_one(
            {"_id": user["_id"]},
            {"$set": {"password_hash": hash_password(payload.password, self.bcrypt_rounds), "updated_at": now}},
        )
        logger.info("auth.password_reset", user_id=reset["user_id"])

    def change_password(self, user_id: str, payload: ChangePasswordRequest) -> None:
        doc = self.users.find_one({"_id": oid(user_id)})
        if not doc:
            raise AppError("User not found", 404)
        if not verify_password(payload.current_password, doc.get("password_hash", "")):
            raise AppError("Current password is incorrect", 400)
        self.users.update_one(
            {"_id": doc["_id"]},
            {"$set": {"password_hash": hash_password(payload.new_password, self.bcrypt_rounds),
                      "updated_at": datetime.utcnow()}},
        )
