from flask import Flask
from werkzeug.exceptions import HTTPException
from flask_jwt_extended import JWTManager
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker, scoped_session
from dotenv import load_dotenv
from typing import Optional, Dict, Any
import os

load_dotenv()

db_engine = None
SessionLocal = None
jwt = JWTManager()


def create_app(config: Optional[Dict[str, Any]] = None):
    global db_engine, SessionLocal
    app = Flask(__name__)

    app.config['JWT_SECRET_KEY'] = os.getenv('JWT_SECRET_KEY', 'dev-secret')
    app.config['DATABASE_URL'] = os.getenv('DATABASE_URL', 'sqlite:///dev.db')
    app.config['ADVANCE_PAYMENT_AMOUNT'] = int(os.getenv('ADVANCE_PAYMENT_AMOUNT', '5000'))
    app.config['CANCELLATION_WINDOW_HOURS'] = int(os.getenv('CANCELLATION_WINDOW_HOURS', '72'))
    app.config['PAYMENT_CURRENCY'] = os.getenv('PAYMENT_CURRENCY', 'lkr')
    app.config['PAYMENT_MAX_ATTEMPTS'] = int(os.getenv('PAYMENT_MAX_ATTEMPTS', '3'))
    app.config['CALENDLY_API_URL'] = os.getenv('CALENDLY_API_URL', 'https://api.calendly.com')
    app.config['CALENDLY_API_TOKEN'] = os.getenv('CALENDLY_API_TOKEN')
    app.config['SCHEDULER_TIMEOUT_SECONDS'] = float(os.getenv('SCHEDULER_TIMEOUT_SECONDS', '10'))

    if config:
        # allow tests or callers to override default config values
        app.config.update(config)

    # Database
    db_url = app.config['DATABASE_URL']
    if db_url.endswith(':memory:'):
        # Ensure a single shared in-memory SQLite database across all sessions
        db_engine = create_engine(
            db_url,
            echo=False,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        db_engine = create_engine(db_url, echo=False, future=True)
    SessionLocal = scoped_session(sessionmaker(bind=db_engine, expire_on_commit=False, autoflush=False))

    jwt.init_app(app)

    from .services.notifications import DatabaseNotificationEmitter
    from .services.scheduler import CalendlyScheduler
    app.extensions['marina.notifier'] = DatabaseNotificationEmitter()
    app.extensions['marina.scheduler'] = CalendlyScheduler(
        base_url=app.config['CALENDLY_API_URL'],
        token=app.config['CALENDLY_API_TOKEN'],
        timeout=app.config['SCHEDULER_TIMEOUT_SECONDS'],
    )

    from .routes.repairs import rpr_bp
    app.register_blueprint(rpr_bp, url_prefix='/repairs')

    @app.route('/healthz')
    def health():
        return {'status': 'ok'}

    from .errors import RepairServiceError, error_payload

    @jwt.unauthorized_loader
    def missing_token(reason):
        return error_payload('Unauthorized', reason, 401), 401

    @jwt.invalid_token_loader
    def invalid_token(reason):
        return error_payload('Unauthorized', reason, 401), 401

    @jwt.expired_token_loader
    def expired_token(jwt_header, jwt_payload):
        return error_payload('Unauthorized', 'Token has expired', 401), 401

    # Unified error handler producing standardized JSON shape
    @app.errorhandler(Exception)
    def handle_errors(e):  # type: ignore
        if isinstance(e, RepairServiceError):
            # End the unit of work so row locks taken before the rejection are released
            if SessionLocal is not None:
                SessionLocal.rollback()
            return error_payload(e.kind, e.message, e.status), e.status
        if isinstance(e, HTTPException):
            return error_payload(e.name.replace(' ', ''), e.description, e.code), e.code
        # Unhandled exception: nothing half-written may survive
        if SessionLocal is not None:
            SessionLocal.rollback()
        app.logger.exception('Unhandled exception')
        return error_payload('InternalError', 'Unexpected error', 500), 500

    return app


def get_db():
    return SessionLocal()
