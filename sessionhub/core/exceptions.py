"""Application error taxonomy.

Every error raised by the auth flow, the access guard or the sessions
routes derives from :class:`SessionHubError` and carries the HTTP status it
maps to. ``register_exception_handlers`` turns them into the standard
response envelope at the request boundary.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

logger = logging.getLogger(__name__)


class SessionHubError(Exception):
    """Base exception for all application errors."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = 'Request failed'

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(SessionHubError):
    """Raised when request input is malformed or missing."""

    default_message = 'Invalid input'


class MissingCredentialsError(ValidationError):
    default_message = 'Please provide email and password'


class DuplicateIdentityError(SessionHubError):
    status_code = status.HTTP_409_CONFLICT
    default_message = 'Email already registered'


class InvalidCredentialsError(SessionHubError):
    """Raised for a wrong email or a wrong password, without saying which."""

    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = 'Incorrect email or password'


class IdentityNotFoundError(SessionHubError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = 'No user found with that email address'


class InvalidOrExpiredTokenError(SessionHubError):
    """Raised when a reset or verification ticket is unknown, used or expired."""

    default_message = 'Invalid or expired token'


class UnauthenticatedError(SessionHubError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = 'You are not logged in! Please log in to get access.'


class InvalidTokenError(SessionHubError):
    """Raised when a bearer token is tampered with, malformed or expired."""

    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = 'Invalid token'


class StaleIdentityError(SessionHubError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = 'The user belonging to this token no longer exists.'


class OAuthError(SessionHubError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = 'Third-party authentication failed'


class ForbiddenError(SessionHubError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = 'You do not have permission to perform this action'


class ResourceNotFoundError(SessionHubError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = 'Resource not found'


class UpstreamNotificationError(SessionHubError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = 'Failed to send notification'


class ServiceUnavailableError(SessionHubError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = 'Database unavailable. Verify DATABASE_URL and database credentials.'


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={'status': 'error', 'message': message})


def _first_validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return ValidationError.default_message
    first = errors[0]
    location = '.'.join(str(part) for part in first.get('loc', ()) if part != 'body')
    message = str(first.get('msg', ValidationError.default_message))
    return f'{location}: {message}' if location else message


def register_exception_handlers(app: FastAPI) -> None:
    """Install handlers that convert every error into the response envelope."""

    @app.exception_handler(SessionHubError)
    async def handle_domain_error(request: Request, exc: SessionHubError):
        log_fn = logger.error if exc.status_code >= 500 else logger.info
        log_fn('%s %s -> %s %s', request.method, request.url.path, exc.status_code, type(exc).__name__)
        return error_response(exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        logger.info('%s %s -> 400 request validation failed', request.method, request.url.path)
        return error_response(status.HTTP_400_BAD_REQUEST, _first_validation_message(exc))

    @app.exception_handler(HTTPException)
    async def handle_http_exception(request: Request, exc: HTTPException):
        message = exc.detail if isinstance(exc.detail, str) else 'Request failed'
        return error_response(exc.status_code, message)

    @app.exception_handler(Exception)
    async def handle_uncaught(request: Request, exc: Exception):
        logger.exception('Unhandled error on %s %s', request.method, request.url.path)
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, 'Internal server error')
