"""User model definitions."""

import enum
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Enum, Integer, String
from sessionhub.database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp; SQLite drops tzinfo so everything is stored naive."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Role(str, enum.Enum):
    STUDENT = "student"
    ADMIN = "admin"


class User(Base):
    """Represents an application user."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=True)
    role = Column(Enum(Role, values_callable=lambda roles: [role.value for role in roles]),
                  nullable=False, default=Role.STUDENT)

    full_name = Column(String)
    department = Column(String)
    year_of_study = Column(Integer)
    student_id = Column(String)
    profile_image = Column(String)

    google_id = Column(String, unique=True, index=True, nullable=True)
    is_email_verified = Column(Boolean, nullable=False, default=False)

    password_reset_token = Column(String, index=True, nullable=True)
    password_reset_expires = Column(DateTime, nullable=True)
    email_verification_token = Column(String, index=True, nullable=True)
    email_verification_expires = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)

    def to_public_dict(self) -> dict:
        """Projection safe to return to clients: no password or ticket fields."""
        return {
            "id": self.id,
            "full_name": self.full_name,
            "email": self.email,
            "role": self.role.value if self.role else None,
            "is_email_verified": bool(self.is_email_verified),
        }
