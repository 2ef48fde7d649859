"""
Credential hashing, one-time codes and session tokens.

Every primitive here is stateless: hashes carry their own salt, codes are
attached to the account row by the caller, tokens are verified from the
shared secret alone.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
import logging
import secrets

import bcrypt
from jose import ExpiredSignatureError, JOSEError, JWTError, jwt
from pydantic import BaseModel

from app.core.config import settings
from app.models.user import OTPPurpose, Role
from app.utils.errors import InternalError, InvalidTokenError, TokenExpiredError

logger = logging.getLogger(__name__)

# bcrypt only reads the first 72 bytes of its input
BCRYPT_MAX_BYTES = 72

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Naive UTC timestamp; the one clock used to issue and check OTP expiry."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class CredentialHasher:
    """Bcrypt password hashing."""

    # One throwaway digest per cost factor, compared against when there is no account
    _dummy_digests = {}

    def __init__(self, rounds: Optional[int] = None) -> None:
        self.rounds = rounds or settings.BCRYPT_ROUNDS

    @staticmethod
    def _encode(password: str) -> bytes:
        return password.encode("utf-8")[:BCRYPT_MAX_BYTES]

    def hash(self, password: str) -> str:
        try:
            salt = bcrypt.gensalt(rounds=self.rounds)
            return bcrypt.hashpw(self._encode(password), salt).decode("utf-8")
        except (ValueError, TypeError) as e:
            logger.exception("Password hashing failed")
            raise InternalError("Could not hash password") from e

    def verify(self, password: str, password_hash: str) -> bool:
        """True on match, False on mismatch; a malformed digest is a fault."""
        try:
            return bcrypt.checkpw(self._encode(password), password_hash.encode("utf-8"))
        except (ValueError, TypeError) as e:
            logger.exception("Password verification failed")
            raise InternalError("Could not verify password") from e

    def verify_dummy(self, password: str) -> bool:
        """Spend the same bcrypt work as `verify` when there is no digest to check."""
        digest = self._dummy_digests.get(self.rounds)
        if digest is None:
            digest = self._dummy_digests.setdefault(self.rounds, self.hash(secrets.token_urlsafe(16)))
        self.verify(password, digest)
        return False


class OTPGenerator:
    """Uniform fixed-length numeric codes from the OS CSPRNG."""

    def __init__(
        self,
        length: Optional[int] = None,
        ttl: Optional[timedelta] = None,
        clock: Clock = utc_now,
    ) -> None:
        self.length = length or settings.OTP_LENGTH
        self.ttl = ttl or timedelta(minutes=settings.OTP_EXPIRE_MINUTES)
        self.clock = clock

    def generate(self, previous: Optional[str] = None) -> str:
        code = self._draw()
        while code == previous:
            code = self._draw()
        return code

    def _draw(self) -> str:
        return str(secrets.randbelow(10 ** self.length)).zfill(self.length)

    def expiry_for(self, purpose: OTPPurpose) -> datetime:
        # Both purposes share one window for now
        return self.clock() + self.ttl


class TokenClaims(BaseModel):
    account_id: str
    email: str
    role: Role
    issued_at: datetime
    expires_at: datetime


class TokenIssuer:
    """Signs and verifies session tokens (JWT, HS256 by default)."""

    def __init__(
        self,
        secret_key: Optional[str] = None,
        algorithm: Optional[str] = None,
        ttl: Optional[timedelta] = None,
    ) -> None:
        self.secret_key = secret_key or settings.SECRET_KEY
        self.algorithm = algorithm or settings.ALGORITHM
        self.ttl = ttl or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    def issue(self, account_id: str, email: str, role: str, ttl: Optional[timedelta] = None) -> str:
        issued_at = datetime.now(timezone.utc)
        to_encode = {
            "sub": str(account_id),
            "email": email,
            "role": Role(role).value,
            "iat": issued_at,
            "exp": issued_at + (ttl or self.ttl),
        }
        try:
            return jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)
        except JOSEError as e:
            logger.exception("Token signing failed")
            raise InternalError("Could not issue token") from e

    def verify(self, token: str) -> TokenClaims:
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except ExpiredSignatureError as e:
            raise TokenExpiredError() from e
        except JWTError as e:
            raise InvalidTokenError() from e

        try:
            return TokenClaims(
                account_id=payload["sub"],
                email=payload["email"],
                role=payload["role"],
                issued_at=datetime.fromtimestamp(payload["iat"], timezone.utc),
                expires_at=datetime.fromtimestamp(payload["exp"], timezone.utc),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidTokenError("Malformed token claims") from e
