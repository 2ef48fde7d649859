"""
Account persistence.

The service only ever talks to the `AccountStore` protocol. Mutations go
through explicit dataclasses rather than free-form mappings, and every update
can carry a `ChallengeGuard` so a read-then-write on the OTP fields happens as
one conditional UPDATE.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol
import logging

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.user import OTPPurpose, Role, User
from app.utils.errors import ConflictError, InternalError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OTPChallenge:
    code: str
    expires_at: datetime
    purpose: OTPPurpose


@dataclass(frozen=True)
class NewAccount:
    name: str
    email: str
    password_hash: str
    role: Role
    challenge: OTPChallenge


@dataclass(frozen=True)
class AccountUpdate:
    verified: Optional[bool] = None
    password_hash: Optional[str] = None
    challenge: Optional[OTPChallenge] = None
    clear_challenge: bool = False


@dataclass(frozen=True)
class ChallengeGuard:
    """Values the row must still hold when the update lands."""
    otp_code: Optional[str]
    otp_purpose: Optional[OTPPurpose]
    verified: Optional[bool] = None


class AccountStore(Protocol):
    def create(self, account: NewAccount) -> User: ...

    def get(self, account_id: str) -> Optional[User]: ...

    def find_by_email(self, email: str) -> Optional[User]: ...

    def update(self, account_id: str, changes: AccountUpdate, guard: Optional[ChallengeGuard] = None) -> bool: ...


class SQLAlchemyAccountStore:
    def __init__(self, db: Session):
        self.db = db

    def create(self, account: NewAccount) -> User:
        db_user = User(
            name=account.name,
            email=account.email,
            password_hash=account.password_hash,
            role=Role(account.role).value,
            is_verified=False,
            otp_code=account.challenge.code,
            otp_expires_at=account.challenge.expires_at,
            otp_purpose=OTPPurpose(account.challenge.purpose).value,
        )
        try:
            self.db.add(db_user)
            self.db.commit()
            self.db.refresh(db_user)
        except IntegrityError as e:
            self.db.rollback()
            raise ConflictError("User already exists with this email") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Failed to create account")
            raise InternalError("Could not create account") from e
        return db_user

    def get(self, account_id: str) -> Optional[User]:
        return self._first(User.id == account_id)

    def find_by_email(self, email: str) -> Optional[User]:
        return self._first(User.email == email)

    def _first(self, criterion) -> Optional[User]:
        try:
            return self.db.query(User).filter(criterion).populate_existing().first()
        except SQLAlchemyError as e:
            logger.exception("Account lookup failed")
            raise InternalError("Could not load account") from e

    def update(self, account_id: str, changes: AccountUpdate, guard: Optional[ChallengeGuard] = None) -> bool:
        values = {}
        if changes.verified is not None:
            values[User.is_verified] = changes.verified
        if changes.password_hash is not None:
            values[User.password_hash] = changes.password_hash
        if changes.clear_challenge:
            values[User.otp_code] = None
            values[User.otp_expires_at] = None
            values[User.otp_purpose] = None
        elif changes.challenge is not None:
            values[User.otp_code] = changes.challenge.code
            values[User.otp_expires_at] = changes.challenge.expires_at
            values[User.otp_purpose] = OTPPurpose(changes.challenge.purpose).value
        if not values:
            raise ValueError("No fields to update")

        stmt = update(User).where(User.id == account_id)
        if guard is not None:
            stmt = stmt.where(self._matches(User.otp_code, guard.otp_code))
            stmt = stmt.where(self._matches(
                User.otp_purpose,
                OTPPurpose(guard.otp_purpose).value if guard.otp_purpose is not None else None,
            ))
            if guard.verified is not None:
                stmt = stmt.where(User.is_verified == guard.verified)

        try:
            result = self.db.execute(stmt.values(values).execution_options(synchronize_session=False))
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Failed to update account %s", account_id)
            raise InternalError("Could not update account") from e
        return result.rowcount == 1

    @staticmethod
    def _matches(column, value):
        return column.is_(None) if value is None else column == value
