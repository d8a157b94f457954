import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from sessionhub.auth.notifications import NotificationSender, SmtpNotificationSender
from sessionhub.auth.oauth import GoogleOAuthProvider, OAuthProvider
from sessionhub.core import config
from sessionhub.core.exceptions import register_exception_handlers
from sessionhub.database import Base, engine
from sessionhub.models import session, user  # noqa: F401  registers tables on Base
from sessionhub.routes import auth_routes, session_routes

logger = logging.getLogger(__name__)


def create_app(
    *,
    oauth_provider: OAuthProvider | None = None,
    notifier: NotificationSender | None = None,
) -> FastAPI:
    config.validate_runtime_config()
    logging.basicConfig(level=config.LOG_LEVEL.upper())

    app = FastAPI(title='SessionHub API')
    app.state.oauth_provider = oauth_provider or GoogleOAuthProvider.from_config()
    app.state.notifier = notifier or SmtpNotificationSender.from_config()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=['*'],
        allow_headers=['*'],
    )
    register_exception_handlers(app)

    @app.on_event('startup')
    def initialize_database() -> None:
        try:
            Base.metadata.create_all(bind=engine)
        except SQLAlchemyError:
            logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')

    @app.get('/')
    def root():
        return {'status': 'SessionHub API Running'}

    app.include_router(auth_routes.router, prefix='/auth')
    app.include_router(session_routes.router, prefix='/sessions')
    return app


app = create_app()
