from fastapi import APIRouter, Depends

from ..authentication import AuthService
from ..dependencies import get_auth_service
from ..schemas import (
    EmailRequest,
    MessageResponse,
    RefreshTokenRequest,
    ResendOtpResponse,
    ResetPasswordRequest,
    SignInRequest,
    TokenPair,
    VerifyOtpRequest,
    VerifyOtpResponse,
)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/sign-in", response_model=TokenPair)
def sign_in(credentials: SignInRequest, service: AuthService = Depends(get_auth_service)):
    return service.sign_in(credentials.email, credentials.password)


@router.post("/verify-otp", response_model=VerifyOtpResponse, response_model_exclude_none=True)
def verify_otp(payload: VerifyOtpRequest, service: AuthService = Depends(get_auth_service)):
    """
    Verify an emailed code.

    type=verify marks the email verified and signs the user in.
    type=reset returns the resetToken required by /auth/reset-password.
    """
    return service.verify_otp(payload.email, payload.otp_code, payload.type)


@router.post("/resend-otp", response_model=ResendOtpResponse)
def resend_otp(payload: EmailRequest, service: AuthService = Depends(get_auth_service)):
    return service.resend_otp(payload.email)


@router.post("/refresh-token", response_model=TokenPair)
def refresh_token(payload: RefreshTokenRequest, service: AuthService = Depends(get_auth_service)):
    return service.refresh_token(payload.refresh_token)


@router.post("/forget-password", response_model=MessageResponse)
def forget_password(payload: EmailRequest, service: AuthService = Depends(get_auth_service)):
    return service.forget_password(payload.email)


@router.post("/reset-password", response_model=MessageResponse)
def reset_password(payload: ResetPasswordRequest, service: AuthService = Depends(get_auth_service)):
    return service.reset_password(payload.email, payload.password, payload.reset_token)
