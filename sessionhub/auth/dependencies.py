from typing import Annotated

from fastapi import BackgroundTasks, Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from sessionhub.auth import jwt_handler
from sessionhub.auth.notifications import NotificationSender
from sessionhub.auth.oauth import OAuthProvider
from sessionhub.auth.service import AuthService
from sessionhub.core.exceptions import ForbiddenError, StaleIdentityError, UnauthenticatedError
from sessionhub.database import get_db
from sessionhub.models.user import Role, User

security = HTTPBearer(auto_error=False)


def get_notifier(request: Request) -> NotificationSender:
    return request.app.state.notifier


def get_oauth_provider(request: Request) -> OAuthProvider:
    return request.app.state.oauth_provider


def get_auth_service(
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    notifier: NotificationSender = Depends(get_notifier),
) -> AuthService:
    return AuthService(db, notifier, background_tasks)


def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    if credentials is None or not credentials.credentials:
        raise UnauthenticatedError()

    identity_id = jwt_handler.verify_access_token(credentials.credentials)

    user = db.get(User, identity_id)
    if user is None:
        raise StaleIdentityError()

    request.state.user = user
    return user


def require_roles(*roles: Role):
    """Build a dependency that only lets the given roles through."""
    allowed = frozenset(roles)

    def check_role(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed:
            raise ForbiddenError()
        return current_user

    return check_role


AuthServiceDep = Annotated[AuthService, Depends(get_auth_service)]
CurrentUserDep = Annotated[User, Depends(get_current_user)]
