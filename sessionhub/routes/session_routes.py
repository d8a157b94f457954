import logging
from datetime import date, datetime

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from sessionhub.auth.dependencies import get_current_user, require_roles
from sessionhub.core.exceptions import ResourceNotFoundError, ServiceUnavailableError, ValidationError
from sessionhub.core.responses import success
from sessionhub.database import get_db
from sessionhub.models.session import KnowledgeSession, SessionStatus
from sessionhub.models.user import Role, User

logger = logging.getLogger(__name__)

router = APIRouter(tags=['sessions'], dependencies=[Depends(get_current_user)])

VIEW_SESSIONS_ROLES = (Role.STUDENT, Role.ADMIN)
MANAGE_SESSIONS_ROLES = (Role.ADMIN,)

MAX_TITLE_LENGTH = 200


class CreateSessionRequest(BaseModel):
    title: str
    description: str | None = None
    date: date
    time: str = '00:00'
    venue: str | None = None
    status: SessionStatus = SessionStatus.UPCOMING
    session_head_id: int | None = None

    @field_validator('title')
    @classmethod
    def validate_title(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Title is required.')
        if len(normalized) > MAX_TITLE_LENGTH:
            raise ValueError(f'Title must be {MAX_TITLE_LENGTH} characters or fewer.')
        return normalized

    @field_validator('time')
    @classmethod
    def validate_time(cls, value: str) -> str:
        try:
            parsed = datetime.strptime(value.strip(), '%H:%M')
        except ValueError as exc:
            raise ValueError('Time must use the HH:MM format.') from exc
        return parsed.strftime('%H:%M')


def serialize_session(session: KnowledgeSession) -> dict:
    head = session.session_head
    return {
        'id': session.id,
        'title': session.title,
        'description': session.description,
        'date': session.date.isoformat(),
        'time': session.time,
        'venue': session.venue,
        'status': session.status.value,
        'session_head': {
            'id': head.id,
            'full_name': head.full_name,
            'profile_image': head.profile_image,
        } if head else None,
    }


def get_session_or_404(session_id: int, db: Session) -> KnowledgeSession:
    session = db.get(KnowledgeSession, session_id)
    if session is None:
        raise ResourceNotFoundError('Session not found')
    return session


@router.get('')
def list_sessions(
    db: Session = Depends(get_db),
    _user: User = Depends(require_roles(*VIEW_SESSIONS_ROLES)),
):
    try:
        sessions = db.query(KnowledgeSession).order_by(
            KnowledgeSession.date.asc(),
            KnowledgeSession.time.asc(),
        ).all()
    except SQLAlchemyError as exc:
        raise ServiceUnavailableError() from exc

    return {
        'status': 'success',
        'results': len(sessions),
        'data': {'sessions': [serialize_session(session) for session in sessions]},
    }


@router.get('/{session_id}')
def get_session(
    session_id: int,
    db: Session = Depends(get_db),
    _user: User = Depends(require_roles(*VIEW_SESSIONS_ROLES)),
):
    return success(data={'session': serialize_session(get_session_or_404(session_id, db))})


@router.post('', status_code=status.HTTP_201_CREATED)
def create_session(
    data: CreateSessionRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(*MANAGE_SESSIONS_ROLES)),
):
    if data.session_head_id is not None and db.get(User, data.session_head_id) is None:
        raise ValidationError('Session head does not exist')

    session = KnowledgeSession(
        title=data.title,
        description=data.description,
        date=data.date,
        time=data.time,
        venue=data.venue,
        status=data.status,
        session_head_id=data.session_head_id,
    )
    try:
        db.add(session)
        db.commit()
        db.refresh(session)
    except SQLAlchemyError as exc:
        db.rollback()
        raise ServiceUnavailableError() from exc

    logger.info('User %s created session %s', current_user.id, session.id)
    return success(data={'session': serialize_session(session)})


@router.delete('/{session_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_session(
    session_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(*MANAGE_SESSIONS_ROLES)),
):
    session = get_session_or_404(session_id, db)
    try:
        db.delete(session)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise ServiceUnavailableError() from exc

    logger.info('User %s deleted session %s', current_user.id, session_id)
