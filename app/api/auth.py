from fastapi import APIRouter, Depends, Response, status
from typing import Any, Optional

from app.core.security import TokenClaims
from app.schemas.user import (
    AuthResult, MessageResult, OTPVerify, PasswordReset, SignupResult,
    UserCreate, UserLogin, UserOTP, UserProfile,
)
from app.services.auth import AuthService, get_auth_service, get_current_claims, oauth2_scheme

router = APIRouter(prefix="/auth", tags=["auth"])

@router.post("/signup", response_model=SignupResult, status_code=status.HTTP_201_CREATED)
async def signup(user_data: UserCreate, auth: AuthService = Depends(get_auth_service)) -> Any:
    return await auth.signup(user_data.name, user_data.email, user_data.password, user_data.role)

@router.post("/verify-otp", response_model=AuthResult)
async def verify_otp(verify_data: OTPVerify, auth: AuthService = Depends(get_auth_service)) -> Any:
    return await auth.verify_otp(verify_data.email, verify_data.otp_code)

@router.post("/resend-otp", response_model=MessageResult)
async def resend_otp(user_data: UserOTP, auth: AuthService = Depends(get_auth_service)) -> Any:
    return await auth.resend_otp(user_data.email)

@router.post("/login", response_model=AuthResult)
async def login(login_data: UserLogin, auth: AuthService = Depends(get_auth_service)) -> Any:
    return await auth.login(login_data.email, login_data.password)

@router.post("/forgot-password", response_model=MessageResult)
async def forgot_password(user_data: UserOTP, auth: AuthService = Depends(get_auth_service)) -> Any:
    return await auth.forgot_password(user_data.email)

@router.post("/reset-password", response_model=MessageResult)
async def reset_password(reset_data: PasswordReset, auth: AuthService = Depends(get_auth_service)) -> Any:
    return await auth.reset_password(reset_data.email, reset_data.otp_code, reset_data.new_password)

@router.post("/logout", response_model=MessageResult)
async def logout(
    response: Response,
    claims: TokenClaims = Depends(get_current_claims),
    token: Optional[str] = Depends(oauth2_scheme),
    auth: AuthService = Depends(get_auth_service),
) -> Any:
    # Clear cookies if any
    response.delete_cookie(key="access_token")
    return await auth.logout(token)

@router.get("/me", response_model=UserProfile)
async def read_users_me(
    claims: TokenClaims = Depends(get_current_claims),
    auth: AuthService = Depends(get_auth_service),
) -> Any:
    return await auth.get_me(claims.account_id)
