import os
import logging
from datetime import timedelta
from decimal import Decimal
from flask import Flask, send_from_directory, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_jwt_extended import JWTManager, jwt_required
from flask_cors import CORS
from flask_compress import Compress
from sqlalchemy.orm import DeclarativeBase
from werkzeug.middleware.proxy_fix import ProxyFix
from timezone_utils import get_ist_time_naive

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


db = SQLAlchemy(model_class=Base)
jwt = JWTManager()
compress = Compress()

# Fixed payouts seeded into the service rate table in demo mode
DEMO_SERVICES = [
    {'name': 'Home Cleaning', 'base_price': Decimal('500.00'), 'cleaner_payout': Decimal('200.00')},
    {'name': 'Deep Cleaning', 'base_price': Decimal('1200.00'), 'cleaner_payout': Decimal('200.00')},
    {'name': 'Car Wash', 'base_price': Decimal('300.00'), 'cleaner_payout': Decimal('150.00')},
]


def _load_config(app, config_overrides=None):
    """Populate app.config from the environment, then apply explicit overrides."""
    app.config['SESSION_SECRET'] = os.environ.get('SESSION_SECRET')

    database_url = os.environ.get("DATABASE_URL") or "sqlite:///cleaning_bookings.db"
    app.config["SQLALCHEMY_DATABASE_URI"] = database_url

    app.config["UPLOAD_FOLDER"] = os.environ.get("UPLOAD_FOLDER", "uploads")
    app.config["PROOF_URL_PREFIX"] = os.environ.get("PROOF_URL_PREFIX", "/uploads/payment-proofs")
    app.config["MAX_CONTENT_LENGTH"] = int(os.environ.get("MAX_CONTENT_LENGTH", 16 * 1024 * 1024))

    app.config['DEFAULT_CLEANER_PAYOUT'] = Decimal(os.environ.get('DEFAULT_CLEANER_PAYOUT', '200.00'))
    app.config['WEEK_START_DAY'] = int(os.environ.get('WEEK_START_DAY', 0))
    app.config['APP_TIMEZONE'] = os.environ.get('APP_TIMEZONE', 'Asia/Kolkata')
    app.config['DB_MAX_RETRIES'] = int(os.environ.get('DB_MAX_RETRIES', 3))
    app.config['DB_RETRY_BACKOFF'] = float(os.environ.get('DB_RETRY_BACKOFF', 0.5))
    app.config['DEMO_SEED'] = os.environ.get('DEMO_SEED', 'false').lower() == 'true'

    app.config['JWT_ACCESS_TOKEN_EXPIRES'] = timedelta(hours=1)
    app.config['JWT_ALGORITHM'] = 'HS256'

    if config_overrides:
        app.config.update(config_overrides)

    app.secret_key = app.config['SESSION_SECRET']
    app.config.setdefault('JWT_SECRET_KEY', os.environ.get('JWT_SECRET_KEY') or app.secret_key)

    database_url = app.config["SQLALCHEMY_DATABASE_URI"]
    if database_url.startswith(("postgresql://", "postgres://")):
        # Ensure psycopg2 driver is specified
        if database_url.startswith("postgres://"):
            database_url = database_url.replace("postgres://", "postgresql://", 1)
        database_url = database_url.replace("postgresql://", "postgresql+psycopg2://", 1)
        app.config["SQLALCHEMY_DATABASE_URI"] = database_url
        app.config.setdefault("SQLALCHEMY_ENGINE_OPTIONS", {
            "pool_size": 10,
            "pool_recycle": 280,
            "pool_pre_ping": True,
            "max_overflow": 15,
            "pool_timeout": 20,
            "connect_args": {
                "connect_timeout": 10,
                "application_name": "cleaning_bookings",
            }
        })
    elif ":memory:" not in database_url:
        app.config.setdefault("SQLALCHEMY_ENGINE_OPTIONS", {
            "pool_recycle": 300,
            "pool_pre_ping": True,
        })


def seed_service_rates():
    """Insert the demo service rate table if no services exist yet."""
    from models import Service

    if Service.query.first():
        return 0

    for entry in DEMO_SERVICES:
        db.session.add(Service(**entry))
    db.session.commit()
    logger.info(f"Seeded {len(DEMO_SERVICES)} services into the rate table")
    return len(DEMO_SERVICES)


def create_app(config_overrides=None):
    # Create the app
    app = Flask(__name__)
    _load_config(app, config_overrides)

    from utils.config_validator import validate_app_config
    validate_app_config(app.config)

    if not app.config.get('TESTING'):
        from utils.logging_config import setup_logging
        setup_logging(app)

    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)

    production_origins = os.environ.get('ALLOWED_ORIGINS', '').split(',')
    allowed_origins = [origin.strip() for origin in production_origins if origin.strip()]
    if not allowed_origins:
        allowed_origins = ["http://localhost:3000", "http://127.0.0.1:3000"]

    CORS(app, origins=allowed_origins,
         supports_credentials=False,
         allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
         methods=["GET", "POST", "OPTIONS"])

    app.config['COMPRESS_MIMETYPES'] = ['application/json', 'text/plain']
    app.config['COMPRESS_MIN_SIZE'] = 500
    compress.init_app(app)

    # Initialize extensions
    db.init_app(app)
    jwt.init_app(app)

    from services.notification_service import ChangeFeed
    app.extensions['change_feed'] = ChangeFeed()

    @jwt.unauthorized_loader
    def missing_token(reason):
        return jsonify({
            'success': False,
            'error': 'NOT_AUTHENTICATED',
            'message': reason
        }), 401

    @jwt.invalid_token_loader
    def invalid_token(reason):
        return jsonify({
            'success': False,
            'error': 'NOT_AUTHENTICATED',
            'message': reason
        }), 401

    @jwt.expired_token_loader
    def expired_token(jwt_header, jwt_payload):
        return jsonify({
            'success': False,
            'error': 'NOT_AUTHENTICATED',
            'message': 'Token has expired'
        }), 401

    from utils.logging_config import log_request_start, log_request_end
    app.before_request(log_request_start)
    app.after_request(log_request_end)

    # Register blueprints
    from cleaner_api import cleaner_api_bp
    from customer_api import customer_api_bp
    from admin_api import admin_api_bp

    app.register_blueprint(cleaner_api_bp)
    app.register_blueprint(customer_api_bp)
    app.register_blueprint(admin_api_bp)

    with app.app_context():
        import models  # noqa: F401
        db.create_all()

        if app.config['DEMO_SEED']:
            seed_service_rates()

    @app.route('/health')
    def health():
        """Simple health check endpoint for deployment readiness"""
        return {'status': 'ok', 'timestamp': get_ist_time_naive().isoformat()}, 200

    @app.route('/uploads/payment-proofs/<path:filename>')
    @jwt_required()
    def uploaded_proof(filename):
        """Serve stored payment proof images to authenticated callers"""
        proof_folder = os.path.join(os.path.abspath(app.config['UPLOAD_FOLDER']), 'payment-proofs')
        return send_from_directory(proof_folder, filename)

    return app
