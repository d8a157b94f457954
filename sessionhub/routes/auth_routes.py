import logging
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from fastapi import APIRouter, Depends, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, EmailStr, field_validator

from sessionhub.auth import jwt_handler
from sessionhub.auth.dependencies import AuthServiceDep, CurrentUserDep, get_oauth_provider
from sessionhub.auth.oauth import OAuthProvider
from sessionhub.core import config
from sessionhub.core.exceptions import OAuthError
from sessionhub.core.responses import success

logger = logging.getLogger(__name__)

router = APIRouter(tags=['auth'])


def _strip_email(value):
    return value.strip() if isinstance(value, str) else value


def _validate_new_password(value: str) -> str:
    if len(value) < config.PASSWORD_MIN_LENGTH:
        raise ValueError(f'Password must be at least {config.PASSWORD_MIN_LENGTH} characters long.')
    return value


class SignupRequest(BaseModel):
    email: EmailStr
    password: str
    full_name: str | None = None
    department: str | None = None
    year_of_study: int | None = None
    student_id: str | None = None

    @field_validator('email', mode='before')
    @classmethod
    def strip_email(cls, value):
        return _strip_email(value)

    @field_validator('password')
    @classmethod
    def validate_password(cls, value: str) -> str:
        return _validate_new_password(value)

    @field_validator('full_name')
    @classmethod
    def validate_full_name(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None


class LoginRequest(BaseModel):
    email: str | None = None
    password: str | None = None


class ForgotPasswordRequest(BaseModel):
    email: EmailStr

    @field_validator('email', mode='before')
    @classmethod
    def strip_email(cls, value):
        return _strip_email(value)


class ResetPasswordRequest(BaseModel):
    password: str

    @field_validator('password')
    @classmethod
    def validate_password(cls, value: str) -> str:
        return _validate_new_password(value)


class UpdatePasswordRequest(BaseModel):
    current_password: str
    password: str

    @field_validator('password')
    @classmethod
    def validate_password(cls, value: str) -> str:
        return _validate_new_password(value)


def build_success_redirect(token: str) -> str:
    parsed = urlparse(f"{config.FRONTEND_URL.rstrip('/')}/auth/success")
    query = dict(parse_qsl(parsed.query))
    query.update({'token': token})
    return urlunparse(parsed._replace(query=urlencode(query)))


@router.post('/signup', status_code=status.HTTP_201_CREATED)
def signup(data: SignupRequest, auth: AuthServiceDep):
    token, user = auth.register(
        email=data.email,
        password=data.password,
        full_name=data.full_name,
        department=data.department,
        year_of_study=data.year_of_study,
        student_id=data.student_id,
    )
    return success(token=token, data={'user': user.to_public_dict()})


@router.post('/login')
def login(data: LoginRequest, auth: AuthServiceDep):
    token, user = auth.login(data.email, data.password)
    return success(token=token, data={'user': user.to_public_dict()})


@router.post('/forgot-password')
def forgot_password(data: ForgotPasswordRequest, auth: AuthServiceDep):
    auth.forgot_password(data.email)
    return success(message='Password reset link sent to email')


@router.patch('/reset-password/{token}')
def reset_password(token: str, data: ResetPasswordRequest, auth: AuthServiceDep):
    auth.reset_password(token, data.password)
    return success(message='Password reset successfully')


@router.get('/verify-email/{token}')
def verify_email(token: str, auth: AuthServiceDep):
    auth.verify_email(token)
    return success(message='Email verified successfully')


@router.get('/google')
def google_login(provider: OAuthProvider = Depends(get_oauth_provider)):
    state = jwt_handler.create_state_token()
    return RedirectResponse(url=provider.authorization_url(state))


@router.get('/google/callback')
async def google_callback(
    request: Request,
    auth: AuthServiceDep,
    provider: OAuthProvider = Depends(get_oauth_provider),
):
    error = request.query_params.get('error')
    if error:
        raise OAuthError(f'Google login failed: {error}')

    jwt_handler.verify_state_token(request.query_params.get('state'))
    code = request.query_params.get('code')
    if not code:
        raise OAuthError('Missing authorization code')

    profile = await provider.fetch_profile(code)
    token, _user = await run_in_threadpool(auth.oauth_login, profile)
    return RedirectResponse(url=build_success_redirect(token))


@router.get('/me')
def me(current_user: CurrentUserDep):
    return success(data={'user': current_user.to_public_dict()})


@router.patch('/update-password')
def update_password(data: UpdatePasswordRequest, current_user: CurrentUserDep, auth: AuthServiceDep):
    token = auth.update_password(current_user, data.current_password, data.password)
    return success(message='Password updated successfully', token=token)


@router.post('/resend-verification')
def resend_verification(current_user: CurrentUserDep, auth: AuthServiceDep):
    auth.resend_verification(current_user)
    return success(message='Verification email sent')
