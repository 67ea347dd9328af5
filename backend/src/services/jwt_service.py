"""
JWT Service for bearer token creation and validation.

Tokens identify the actor (``sub``) and its role; authentication itself is
handled upstream and only signed tokens reach the engine.
"""

import jwt
from datetime import datetime, timedelta, timezone
from typing import Optional
from pydantic import BaseModel

from core.config import JWT_SECRET_KEY, JWT_ACCESS_TOKEN_EXPIRE_MINUTES
from models.enums import ActorRole


class TokenPayload(BaseModel):
    """Payload structure for JWT tokens."""
    sub: str  # Actor ID (patient ID or admin user ID)
    role: ActorRole
    name: Optional[str] = None
    iat: Optional[int] = None  # Set by JWT service
    exp: Optional[int] = None  # Set by JWT service


class JWTService:
    """Service for JWT token operations."""

    ALGORITHM = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES = JWT_ACCESS_TOKEN_EXPIRE_MINUTES

    @classmethod
    def create_access_token(cls, payload: TokenPayload, expires_minutes: Optional[int] = None) -> str:
        """Create a JWT access token."""
        to_encode = payload.model_dump(mode="json", exclude={"iat", "exp"})
        now = datetime.now(timezone.utc)
        expire = now + timedelta(minutes=expires_minutes or cls.ACCESS_TOKEN_EXPIRE_MINUTES)
        to_encode.update({"exp": expire, "iat": now})
        return jwt.encode(to_encode, JWT_SECRET_KEY, algorithm=cls.ALGORITHM)

    @classmethod
    def verify_token(cls, token: str) -> Optional[TokenPayload]:
        """Verify and decode a JWT token. Returns None if invalid or expired."""
        try:
            payload = jwt.decode(token, JWT_SECRET_KEY, algorithms=[cls.ALGORITHM])
            return TokenPayload(**payload)
        except jwt.ExpiredSignatureError:
            return None
        except jwt.InvalidTokenError:
            return None
        except ValueError:
            # Signed but malformed payload (e.g. unknown role)
            return None


# Global instance
jwt_service = JWTService()
