import os

from dotenv import load_dotenv
from flask import Flask, jsonify
from flask_cors import CORS
from sqlalchemy import select, text

from riskwatch.config import Config, RiskConfig, parse_operators
from riskwatch.db.session import engine, get_session
from riskwatch.logger import get_logger
from riskwatch.models import Base, Operator
from riskwatch.risk.constants import OperatorRole
from riskwatch.risk.errors import (
    AuthorizationError,
    EnforcementError,
    ImmutableRecordError,
    NotFoundError,
    RiskWatchError,
    ValidationError,
)
from riskwatch.risk.orchestrator import build_orchestrator
from riskwatch.routes import accounts_bp, alerts_bp, audit_bp, financial_requests_bp, scans_bp
from riskwatch.routes.context import EXTENSION_KEY

logger = get_logger(__name__)


def _error_response(exc: RiskWatchError):
    return jsonify({"status": "error", "message": exc.message or str(exc)}), exc.status_code


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ValidationError)
    def handle_validation(exc):
        logger.info("request_rejected", error=exc.message, status_code=exc.status_code)
        return _error_response(exc)

    @app.errorhandler(NotFoundError)
    def handle_not_found(exc):
        return _error_response(exc)

    @app.errorhandler(AuthorizationError)
    def handle_forbidden(exc):
        return _error_response(exc)

    @app.errorhandler(ImmutableRecordError)
    def handle_immutable(exc):
        logger.error("immutable_record_write", error=exc.message)
        return _error_response(exc)

    @app.errorhandler(EnforcementError)
    def handle_enforcement(exc):
        logger.error("enforcement_unavailable", error=exc.message)
        return _error_response(exc)


def create_app(orchestrator=None):
    load_dotenv()
    app = Flask(__name__)
    app.config.from_object(Config)
    CORS(app)

    verify_database_connection()

    app.extensions[EXTENSION_KEY] = orchestrator or build_orchestrator(RiskConfig.from_env())

    app.register_blueprint(scans_bp, url_prefix="/api")
    app.register_blueprint(financial_requests_bp, url_prefix="/api")
    app.register_blueprint(alerts_bp, url_prefix="/api")
    app.register_blueprint(accounts_bp, url_prefix="/api")
    app.register_blueprint(audit_bp, url_prefix="/api")
    register_error_handlers(app)

    @app.route("/api/health", methods=["GET"])
    def health():
        return jsonify({"status": "ok"})

    @app.route("/api/db-health", methods=["GET"])
    def db_health():
        try:
            verify_database_connection()
            return jsonify({"status": "ok"})
        except Exception as exc:
            return jsonify({"status": "error", "message": str(exc)}), 500

    with app.app_context():
        init_db()

    return app


def init_db():
    Base.metadata.create_all(bind=engine)
    seed_data()


def verify_database_connection():
    with engine.connect() as connection:
        connection.execute(text("SELECT 1"))


def seed_data(operators=None):
    """Bootstrap operators from ``RISKWATCH_OPERATORS``; existing rows are left alone."""
    operators = operators if operators is not None else parse_operators(Config.RISKWATCH_OPERATORS)
    session = get_session()
    try:
        existing = set(session.execute(select(Operator.username)).scalars().all())
        for username, role in operators.items():
            if username in existing:
                continue
            if role not in OperatorRole.__members__:
                logger.warning("operator_seed_skipped", username=username, role=role)
                continue
            session.add(Operator(username=username, role=role, active=True))
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


app = create_app()


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=int(os.getenv("PORT", 5000)), debug=True)
