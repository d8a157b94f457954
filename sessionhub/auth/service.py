"""Registration, login, password reset, email verification and OAuth login.

Each public method of :class:`AuthService` is one request's worth of work
against the credential store. Reset and verification tickets are persisted
on the user row; nothing is kept in memory between requests.
"""

import logging

from fastapi import BackgroundTasks
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from sessionhub.auth import jwt_handler, tickets
from sessionhub.auth.notifications import NotificationKind, NotificationSender, redact_email
from sessionhub.auth.oauth import OAuthProfile
from sessionhub.auth.password import hash_password, verify_password
from sessionhub.core import config
from sessionhub.core.exceptions import (
    DuplicateIdentityError,
    IdentityNotFoundError,
    InvalidCredentialsError,
    InvalidOrExpiredTokenError,
    MissingCredentialsError,
    ServiceUnavailableError,
    UpstreamNotificationError,
    ValidationError,
)
from sessionhub.models.user import Role, User, utcnow

logger = logging.getLogger(__name__)


class AuthService:
    def __init__(
        self,
        db: Session,
        notifier: NotificationSender,
        background_tasks: BackgroundTasks | None = None,
    ) -> None:
        self.db = db
        self.notifier = notifier
        self.background_tasks = background_tasks

    def _commit(self) -> None:
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Database commit failed")
            raise ServiceUnavailableError() from exc

    def _deliver(self, kind: NotificationKind, recipient: str, token: str) -> None:
        try:
            self.notifier.send(kind, recipient, token)
        except UpstreamNotificationError:
            # The ticket is already committed; the user can ask for a new one.
            logger.exception("Could not deliver %s email to %s", kind.value, redact_email(recipient))

    def _notify(self, kind: NotificationKind, recipient: str, token: str) -> None:
        if self.background_tasks is not None:
            self.background_tasks.add_task(self._deliver, kind, recipient, token)
        else:
            self._deliver(kind, recipient, token)

    def get_by_email(self, email: str) -> User | None:
        return self.db.query(User).filter(User.email == email).first()

    def register(
        self,
        *,
        email: str,
        password: str,
        full_name: str | None = None,
        department: str | None = None,
        year_of_study: int | None = None,
        student_id: str | None = None,
    ) -> tuple[str, User]:
        if self.get_by_email(email) is not None:
            raise DuplicateIdentityError()

        user = User(
            email=email,
            hashed_password=hash_password(password),
            role=Role.STUDENT,
            full_name=full_name,
            department=department,
            year_of_study=year_of_study,
            student_id=student_id,
            is_email_verified=config.AUTO_VERIFY_NEW_USERS,
        )
        verification_token = None
        if not user.is_email_verified:
            verification_token = tickets.issue_email_verification(user)

        self.db.add(user)
        try:
            self._commit()
        except IntegrityError as exc:
            raise DuplicateIdentityError() from exc
        self.db.refresh(user)
        logger.info("Registered user %s", user.id)

        if verification_token:
            self._notify(NotificationKind.EMAIL_VERIFICATION, user.email, verification_token)
        return jwt_handler.create_access_token(user.id), user

    def login(self, email: str | None, password: str | None) -> tuple[str, User]:
        if not email or not password:
            raise MissingCredentialsError()

        user = self.get_by_email(email)
        if user is None or not verify_password(password, user.hashed_password):
            logger.warning("Failed login for %s", redact_email(email))
            raise InvalidCredentialsError()

        return jwt_handler.create_access_token(user.id), user

    def forgot_password(self, email: str) -> None:
        user = self.get_by_email(email)
        if user is None:
            raise IdentityNotFoundError()

        raw_token = tickets.issue_password_reset(user)
        self._commit()
        logger.info("Issued password reset ticket for user %s", user.id)
        self._notify(NotificationKind.PASSWORD_RESET, user.email, raw_token)

    def reset_password(self, raw_token: str, new_password: str) -> User:
        user = (
            self.db.query(User)
            .filter(
                User.password_reset_token == tickets.hash_ticket(raw_token),
                User.password_reset_expires > utcnow(),
            )
            .first()
        )
        if user is None:
            raise InvalidOrExpiredTokenError("Invalid or expired reset token")

        user.hashed_password = hash_password(new_password)
        tickets.clear_password_reset(user)
        self._commit()
        logger.info("Password reset for user %s", user.id)
        return user

    def verify_email(self, raw_token: str) -> User:
        user = (
            self.db.query(User)
            .filter(
                User.email_verification_token == tickets.hash_ticket(raw_token),
                User.email_verification_expires > utcnow(),
            )
            .first()
        )
        if user is None:
            raise InvalidOrExpiredTokenError("Invalid or expired verification token")

        user.is_email_verified = True
        tickets.clear_email_verification(user)
        self._commit()
        logger.info("Verified email for user %s", user.id)
        return user

    def resend_verification(self, user: User) -> None:
        if user.is_email_verified:
            raise ValidationError("Email is already verified")

        raw_token = tickets.issue_email_verification(user)
        self._commit()
        self._notify(NotificationKind.EMAIL_VERIFICATION, user.email, raw_token)

    def update_password(self, user: User, current_password: str, new_password: str) -> str:
        if not verify_password(current_password, user.hashed_password):
            raise InvalidCredentialsError("Your current password is wrong")

        user.hashed_password = hash_password(new_password)
        self._commit()
        logger.info("Password changed for user %s", user.id)
        return jwt_handler.create_access_token(user.id)

    def oauth_login(self, profile: OAuthProfile) -> tuple[str, User]:
        user = self.db.query(User).filter(User.google_id == profile.provider_id).first()

        if user is None:
            user = self.get_by_email(profile.email)
            if user is not None:
                if not user.is_email_verified:
                    # Nobody proved ownership of this address before Google did, so
                    # credentials set by whoever registered it must not survive.
                    user.hashed_password = None
                    tickets.clear_password_reset(user)
                    tickets.clear_email_verification(user)
                    logger.warning("Discarded unverified credentials for user %s on OAuth link", user.id)
                user.google_id = profile.provider_id
                user.is_email_verified = True
                user.profile_image = user.profile_image or profile.picture
            else:
                user = User(
                    email=profile.email,
                    google_id=profile.provider_id,
                    full_name=profile.full_name,
                    profile_image=profile.picture,
                    role=Role.STUDENT,
                    is_email_verified=True,
                )
                self.db.add(user)
            try:
                self._commit()
            except IntegrityError as exc:
                raise DuplicateIdentityError() from exc
            self.db.refresh(user)
            logger.info("OAuth login linked or created user %s", user.id)

        return jwt_handler.create_access_token(user.id), user
