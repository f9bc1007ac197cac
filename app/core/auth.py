"""
Authentication Utility - JWT and Password handling.

Provides:
- AuthService: password hashing with bcrypt, JWT creation/verification,
  built from an explicit Settings object
- FastAPI dependencies for protected routes. Every protected route goes
  through get_token_claims, which verifies the signature and expiry before
  any identity is trusted.
"""

import logging
from datetime import datetime, timedelta
from functools import lru_cache
from typing import Optional
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pymongo.database import Database

from app.core.config import Settings, get_settings
from app.core.errors import (
    ForbiddenError, InvalidTokenError, TokenExpiredError, UnauthorizedError
)
from app.db.mongodb import get_mongo_db
from app.services.mongo_service import AdminUserService, UserService

logger = logging.getLogger(__name__)

# Bearer token extractor (missing header is reported by us, as 401)
bearer_scheme = HTTPBearer(auto_error=False)


class AuthService:
    """Password hashing and token issuing/verification for one configuration."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.pwd_context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=settings.salt_rounds
        )

    def hash_password(self, password: str) -> str:
        """Hash password with bcrypt."""
        return self.pwd_context.hash(password)

    def verify_password(self, plain_password: str, hashed_password: str) -> bool:
        """Verify password against hash. Unknown or corrupt hashes never match."""
        try:
            return self.pwd_context.verify(plain_password, hashed_password)
        except (ValueError, TypeError):
            return False

    def create_access_token(self, data: dict, expires_delta: Optional[timedelta] = None) -> str:
        """Create JWT access token."""
        to_encode = data.copy()
        expire = datetime.utcnow() + (expires_delta or timedelta(minutes=self.settings.jwt_expire_minutes))
        to_encode.update({"exp": expire})
        return jwt.encode(to_encode, self.settings.jwt_secret, algorithm=self.settings.jwt_algorithm)

    def create_extended_token(self, data: dict) -> str:
        """Token for the dedicated student/parent logins."""
        return self.create_access_token(
            data, timedelta(minutes=self.settings.jwt_extended_expire_minutes)
        )

    def decode_token(self, token: str) -> dict:
        """
        Decode and verify JWT token.
        Raises TokenExpiredError for expired tokens and InvalidTokenError
        for everything else (bad signature, garbage, no subject).
        """
        try:
            payload = jwt.decode(token, self.settings.jwt_secret, algorithms=[self.settings.jwt_algorithm])
        except ExpiredSignatureError:
            raise TokenExpiredError()
        except JWTError:
            raise InvalidTokenError()
        if not payload.get("sub"):
            raise InvalidTokenError()
        return payload


@lru_cache()
def get_auth_service() -> AuthService:
    return AuthService(get_settings())


async def get_token_claims(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    auth: AuthService = Depends(get_auth_service)
) -> dict:
    """
    FastAPI dependency - verified claims of the bearer token.

    Usage:
        @router.get("/protected")
        async def route(claims: dict = Depends(get_token_claims)):
            return claims
    """
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError("Authentication required")
    return auth.decode_token(credentials.credentials)


async def get_current_user(
    claims: dict = Depends(get_token_claims),
    db: Database = Depends(get_mongo_db)
) -> dict:
    """
    Dependency - the student/parent account behind the token.
    A valid administrator token is known but not allowed here (403).
    """
    user = UserService(db).get_by_id(claims["sub"])
    if user:
        return user
    if claims.get("role") == "admin" or AdminUserService(db).get_by_id(claims["sub"]):
        raise ForbiddenError("Administrators cannot access this resource")
    raise UnauthorizedError("Invalid or expired token")


async def get_current_student(user: dict = Depends(get_current_user)) -> dict:
    """Dependency - Require student role."""
    if user.get("role") != "student":
        raise ForbiddenError("Only students can access this resource")
    return user


async def get_current_parent(user: dict = Depends(get_current_user)) -> dict:
    """Dependency - Require parent role."""
    if user.get("role") != "parent":
        raise ForbiddenError("Parent access required")
    return user


async def get_current_admin(
    claims: dict = Depends(get_token_claims),
    db: Database = Depends(get_mongo_db)
) -> dict:
    """
    Dependency - the administrator behind the token.

    Admin tokens issued by /admin/login carry no role claim, so identity is
    established by resolving the subject in admin_users. A role claim, when
    present, must still say admin.
    """
    role = claims.get("role")
    if role is not None and role != "admin":
        raise ForbiddenError("Admin access required")

    admin = AdminUserService(db).get_by_id(claims["sub"])
    if not admin:
        raise UnauthorizedError("Invalid teacher credentials")
    if not admin.get("active", True):
        raise ForbiddenError("Account deactivated")
    return admin
