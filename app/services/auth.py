"""
Account authentication state machine.

Each account is in one verification state (unverified / verified) and holds at
most one pending challenge (none / signup OTP / password reset OTP):

    signup          -> (unverified, signup OTP)
    verify_otp      -> (verified, none)            token issued
    resend_otp      -> (unverified, fresh signup OTP)
    forgot_password -> (unchanged, password reset OTP)
    reset_password  -> (unchanged, none)           password replaced

Writes that depend on the challenge read a moment earlier are guarded, so a
concurrent verify/resend/reset on the same account cannot both succeed.
"""

from typing import Optional
import logging
import secrets

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.security import (
    Clock,
    CredentialHasher,
    OTPGenerator,
    TokenClaims,
    TokenIssuer,
    utc_now,
)
from app.db.base import get_db
from app.models.user import OTPPurpose, Role, User
from app.schemas.user import AuthResult, MessageResult, SignupResult, UserProfile, UserPublic
from app.services.accounts import (
    AccountStore,
    AccountUpdate,
    ChallengeGuard,
    NewAccount,
    OTPChallenge,
    SQLAlchemyAccountStore,
)
from app.utils.email import EmailNotifier, Notifier
from app.utils.errors import (
    ConflictError,
    InvalidCredentialsError,
    InvalidOTPError,
    InvalidTokenError,
    NotFoundError,
    OTPExpiredError,
    UnverifiedError,
)

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_V1_STR}/auth/login", auto_error=False)


class AuthService:
    def __init__(
        self,
        store: AccountStore,
        notifier: Notifier,
        hasher: Optional[CredentialHasher] = None,
        tokens: Optional[TokenIssuer] = None,
        otp: Optional[OTPGenerator] = None,
        clock: Clock = utc_now,
    ):
        self.store = store
        self.notifier = notifier
        self.hasher = hasher or CredentialHasher()
        self.tokens = tokens or TokenIssuer()
        self.clock = clock
        self.otp = otp or OTPGenerator(clock=clock)

    # --- helpers ---

    def _new_challenge(self, purpose: OTPPurpose, previous: Optional[str] = None) -> OTPChallenge:
        return OTPChallenge(
            code=self.otp.generate(previous=previous),
            expires_at=self.otp.expiry_for(purpose),
            purpose=purpose,
        )

    async def _notify(self, email: str, challenge: OTPChallenge) -> None:
        delivered = await self.notifier.send_code(email, challenge.code, challenge.purpose)
        if not delivered:
            logger.warning("%s code for %s was not delivered", challenge.purpose.value, email)

    def _require(self, email: str) -> User:
        user = self.store.find_by_email(email)
        if not user:
            raise NotFoundError("User not found")
        return user

    def _check_challenge(self, user: User, code: str, purpose: OTPPurpose) -> None:
        """Code first, purpose second, expiry last: a wrong code never reveals expiry."""
        if not user.otp_code or not secrets.compare_digest(user.otp_code.encode(), code.encode()):
            raise InvalidOTPError()
        if user.otp_purpose != purpose.value:
            raise InvalidOTPError(f"Invalid OTP for {purpose.value.replace('_', ' ')}")
        if user.otp_expires_at is None or self.clock() > user.otp_expires_at:
            raise OTPExpiredError()

    def _session(self, user: User, message: str, token: Optional[str] = None) -> AuthResult:
        if token is None:
            token = self.tokens.issue(user.id, user.email, user.role)
        return AuthResult(token=token, user=UserPublic.model_validate(user), message=message)

    # --- operations ---

    async def signup(self, name: str, email: str, password: str, role: Role = Role.USER) -> SignupResult:
        if self.store.find_by_email(email):
            raise ConflictError("User already exists with this email")

        challenge = self._new_challenge(OTPPurpose.SIGNUP)
        user = self.store.create(NewAccount(
            name=name,
            email=email,
            password_hash=self.hasher.hash(password),
            role=Role(role),
            challenge=challenge,
        ))
        logger.info("Account %s registered, awaiting verification", user.id)

        await self._notify(user.email, challenge)
        return SignupResult(account_id=user.id, email=user.email, name=user.name)

    async def verify_otp(self, email: str, code: str) -> AuthResult:
        user = self._require(email)
        try:
            self._check_challenge(user, code, OTPPurpose.SIGNUP)
        except (InvalidOTPError, OTPExpiredError) as e:
            logger.warning("Verification rejected for account %s: %s", user.id, e.code)
            raise

        # Signed before the write so a signing fault leaves the challenge untouched
        token = self.tokens.issue(user.id, user.email, user.role)
        committed = self.store.update(
            user.id,
            AccountUpdate(verified=True, clear_challenge=True),
            guard=ChallengeGuard(otp_code=code, otp_purpose=OTPPurpose.SIGNUP),
        )
        if not committed:
            logger.warning("Verification for account %s lost a race", user.id)
            raise InvalidOTPError()

        logger.info("Account %s verified", user.id)
        return self._session(self.store.get(user.id) or user, "Account verified successfully", token=token)

    async def resend_otp(self, email: str) -> MessageResult:
        user = self._require(email)
        if user.is_verified:
            raise ConflictError("Account is already verified")

        challenge = self._new_challenge(OTPPurpose.SIGNUP, previous=user.otp_code)
        committed = self.store.update(
            user.id,
            AccountUpdate(challenge=challenge),
            guard=ChallengeGuard(
                otp_code=user.otp_code,
                otp_purpose=OTPPurpose(user.otp_purpose) if user.otp_purpose else None,
                verified=False,
            ),
        )
        if not committed:
            logger.warning("Resend for account %s lost a race", user.id)
            raise InvalidOTPError("Verification state changed, please retry")

        logger.info("Signup code reissued for account %s", user.id)
        await self._notify(user.email, challenge)
        return MessageResult(message="OTP resent successfully")

    async def login(self, email: str, password: str) -> AuthResult:
        user = self.store.find_by_email(email)
        if not user:
            self.hasher.verify_dummy(password)
            raise InvalidCredentialsError()
        if not user.is_verified:
            raise UnverifiedError()
        if not self.hasher.verify(password, user.password_hash):
            logger.warning("Failed login for account %s", user.id)
            raise InvalidCredentialsError()

        logger.info("Account %s logged in", user.id)
        return self._session(user, "Login successful")

    async def forgot_password(self, email: str) -> MessageResult:
        user = self._require(email)

        challenge = self._new_challenge(OTPPurpose.PASSWORD_RESET, previous=user.otp_code)
        if not self.store.update(user.id, AccountUpdate(challenge=challenge)):
            raise NotFoundError("User not found")

        logger.info("Password reset code issued for account %s", user.id)
        await self._notify(user.email, challenge)
        return MessageResult(message="Password reset OTP sent to your email")

    async def reset_password(self, email: str, code: str, new_password: str) -> MessageResult:
        user = self._require(email)
        try:
            self._check_challenge(user, code, OTPPurpose.PASSWORD_RESET)
        except (InvalidOTPError, OTPExpiredError) as e:
            logger.warning("Password reset rejected for account %s: %s", user.id, e.code)
            raise

        committed = self.store.update(
            user.id,
            AccountUpdate(password_hash=self.hasher.hash(new_password), clear_challenge=True),
            guard=ChallengeGuard(otp_code=code, otp_purpose=OTPPurpose.PASSWORD_RESET),
        )
        if not committed:
            logger.warning("Password reset for account %s lost a race", user.id)
            raise InvalidOTPError()

        logger.info("Password reset for account %s", user.id)
        return MessageResult(message="Password reset successfully")

    async def get_me(self, account_id: str) -> UserProfile:
        user = self.store.get(account_id)
        if not user:
            raise NotFoundError("User not found")
        return UserProfile.model_validate(user)

    async def logout(self, token: Optional[str] = None) -> MessageResult:
        # Tokens are stateless; nothing is revoked server-side
        return MessageResult(message="Logged out successfully")


def get_token_issuer() -> TokenIssuer:
    return TokenIssuer()


def get_notifier() -> Notifier:
    return EmailNotifier()


def get_auth_service(
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    tokens: TokenIssuer = Depends(get_token_issuer),
) -> AuthService:
    return AuthService(SQLAlchemyAccountStore(db), notifier, tokens=tokens)


async def get_current_claims(
    token: Optional[str] = Depends(oauth2_scheme),
    tokens: TokenIssuer = Depends(get_token_issuer),
) -> TokenClaims:
    if not token:
        raise InvalidTokenError("Access denied. No token provided.")
    return tokens.verify(token)
