"""
Authentication helpers

Password hashing with bcrypt and stateless JWT session tokens.
"""

import logging
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, Optional

import bcrypt
from jose import JWTError, jwt

logger = logging.getLogger(__name__)

BCRYPT_ROUNDS = 10
BCRYPT_MAX_BYTES = 72
JWT_ALGORITHM = "HS256"


class AuthError(Exception):
    pass


class TokenMissing(AuthError):
    """No credential was presented."""


class TokenRejected(AuthError):
    """A credential was presented but failed signature, format or expiry checks."""


@dataclass(frozen=True)
class Identity:
    id: str
    username: str


# Password hashing

def _secret_bytes(plain: str) -> bytes:
    # bcrypt only looks at the first 72 bytes; newer releases raise instead of truncating
    return plain.encode("utf-8")[:BCRYPT_MAX_BYTES]


def hash_password(plain: str) -> str:
    return bcrypt.hashpw(_secret_bytes(plain), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(plain: str, hashed: Optional[str]) -> bool:
    if not plain or not hashed:
        return False
    try:
        return bcrypt.checkpw(_secret_bytes(plain), hashed.encode("utf-8"))
    except ValueError:
        # malformed stored hash
        return False


# Session tokens

def bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Extract the credential from an 'Authorization: Bearer <token>' header value."""
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1]


class TokenService:
    def __init__(self, secret: str, ttl: timedelta = timedelta(hours=1)):
        if not secret:
            raise ValueError("token secret must not be empty")
        self._secret = secret
        self.ttl = ttl

    def issue(self, user: Dict[str, Any], issued_at: Optional[float] = None) -> str:
        iat = int(issued_at if issued_at is not None else time.time())
        claims = {
            "id": str(user["_id"]),
            "username": user["username"],
            "iat": iat,
            "exp": iat + int(self.ttl.total_seconds()),
        }
        return jwt.encode(claims, self._secret, algorithm=JWT_ALGORITHM)

    def verify(self, token: Optional[str]) -> Identity:
        if not token:
            raise TokenMissing("No token provided")
        try:
            claims = jwt.decode(token, self._secret, algorithms=[JWT_ALGORITHM])
        except JWTError as e:
            # covers bad signatures, malformed tokens and ExpiredSignatureError
            logger.info("Rejected session token: %s", e)
            raise TokenRejected(str(e)) from e
        if not claims.get("id") or not claims.get("username"):
            raise TokenRejected("Token is missing identity claims")
        return Identity(id=claims["id"], username=claims["username"])
