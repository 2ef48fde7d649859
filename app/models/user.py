from sqlalchemy import Boolean, Column, String, DateTime
from sqlalchemy.sql import func
import enum
import uuid

from app.db.base import Base


class Role(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"


class OTPPurpose(str, enum.Enum):
    SIGNUP = "signup"
    PASSWORD_RESET = "password_reset"


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, index=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    role = Column(String, nullable=False, default=Role.USER.value)
    is_verified = Column(Boolean, nullable=False, default=False)

    # Pending challenge: all three set or all three NULL
    otp_code = Column(String, nullable=True)
    otp_expires_at = Column(DateTime, nullable=True)
    otp_purpose = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
