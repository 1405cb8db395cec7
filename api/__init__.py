import logging

from flasgger import Swagger
from flask import Flask, g, request
from flask_cors import CORS

from .config import get_config
from .errors import register_error_handlers
from .extensions import EXTENSION_KEY, Services
from .auth_service import AuthService
from models.db_storage import DBStorage
from models.ledger import LedgerRepository
from models.repository import UserRepository
from utils.dispatch import dispatcher_from_config
from utils.log import REQUEST_ID_HEADER, configure_logging, new_request_id
from utils.mailer import Mailer
from utils.rate_limit import RateLimiter
from utils.security import PasswordService
from utils.session_cache import SessionCache
from utils.tokens import TokenService

logger = logging.getLogger(__name__)

# Minimal Swagger config: exposes /swagger.json and UI at /apidocs
SWAGGER_TEMPLATE = {
    "swagger": "2.0",
    "info": {
        "title": "FinTrack API",
        "version": "1.0.0",
        "description": "FinTrack personal finance API: authentication, sessions, categories, transactions and activity history.",
    },
    "basePath": "/",  # blueprints are mounted under /api/v1
    "schemes": ["http", "https"],
    "securityDefinitions": {
        "Bearer": {
            "type": "apiKey",
            "name": "Authorization",
            "in": "header",
            "description": "Enter the token with the `Bearer ` prefix, e.g. \"Bearer abcde12345\"."
        }
    }
}

SWAGGER_CONFIG = {
    "headers": [],
    "specs": [
        {
            "endpoint": "apispec_1",
            "route": "/swagger.json",
            "rule_filter": lambda rule: True,   # include all endpoints
            "model_filter": lambda tag: True,   # include all models
        }
    ],
    "static_url_path": "/flasgger_static",
    "swagger_ui": True,
    "specs_route": "/apidocs/",
}


def build_services(
    app: Flask, *, mailer=None, session_backend=None, rate_limit_storage=None, dispatcher=None
) -> Services:
    config = app.config
    # fails fast on missing JWT secrets
    tokens = TokenService.from_config(config)

    storage = DBStorage(
        config["DATABASE_URL"],
        echo=config.get("SQL_ECHO", False),
        pool_timeout=config.get("DB_POOL_TIMEOUT", 10),
        connect_timeout=config.get("DB_CONNECT_TIMEOUT", 10),
    )
    storage.reload()

    users = UserRepository(storage)
    ledger = LedgerRepository(storage)
    passwords = PasswordService.from_config(config)
    if session_backend is not None:
        sessions = SessionCache(session_backend)
    else:
        sessions = SessionCache.from_config(config)
    limiter = RateLimiter.from_config(config, storage=rate_limit_storage)
    mailer = mailer or Mailer.from_config(config)
    dispatcher = dispatcher or dispatcher_from_config(config, on_done=storage.close)
    auth = AuthService(
        users,
        passwords,
        tokens,
        sessions,
        mailer,
        one_time_token_ttl=config["ONE_TIME_TOKEN_EXPIRES"],
        dispatcher=dispatcher,
    )
    return Services(
        storage=storage,
        users=users,
        ledger=ledger,
        passwords=passwords,
        tokens=tokens,
        sessions=sessions,
        limiter=limiter,
        mailer=mailer,
        dispatcher=dispatcher,
        auth=auth,
    )


def create_app(
    config_name: str | None = None,
    *,
    overrides: dict | None = None,
    mailer=None,
    session_backend=None,
    rate_limit_storage=None,
    dispatcher=None,
) -> Flask:
    """
    Application factory: creates and configures the Flask app.

    Collaborators that talk to the outside world (mailer, session store
    backend, rate limit storage, job dispatcher) can be passed in;
    otherwise they are built from configuration.
    """
    app = Flask(__name__)

    # Load configuration (reads .env via get_config)
    app.config.from_object(get_config(config_name))
    if overrides:
        app.config.update(overrides)

    configure_logging(app.config.get("LOG_LEVEL", "INFO"))

    svc = build_services(
        app,
        mailer=mailer,
        session_backend=session_backend,
        rate_limit_storage=rate_limit_storage,
        dispatcher=dispatcher,
    )
    app.extensions[EXTENSION_KEY] = svc
    if svc.sessions.degraded:
        logger.warning("Session cache degraded: %s", svc.sessions.status()["reason"])

    # Cross-Origin Resource Sharing; credentials are needed for the refresh cookie
    origins = app.config.get("CORS_ORIGINS", "*")
    if origins != "*":
        origins = [o.strip() for o in origins.split(",") if o.strip()]
    CORS(app, resources={r"/api/*": {"origins": origins}}, supports_credentials=origins != "*")

    # Swagger UI and JSON
    Swagger(app, template=SWAGGER_TEMPLATE, config=SWAGGER_CONFIG)

    @app.before_request
    def assign_request_id():
        g.request_id = new_request_id(request.headers.get(REQUEST_ID_HEADER))

    @app.after_request
    def echo_request_id(response):
        request_id = getattr(g, "request_id", None)
        if request_id:
            response.headers[REQUEST_ID_HEADER] = request_id
        return response

    # Register global error handlers that return the uniform error envelope
    register_error_handlers(app)

    from .health import bp as health_bp
    from .auth import bp as auth_bp
    from .users import bp as users_bp
    from .roles import bp as roles_bp
    from .categories import bp as categories_bp
    from .transactions import bp as transactions_bp
    from .activities import bp as activities_bp

    app.register_blueprint(health_bp, url_prefix="/api/v1")
    app.register_blueprint(auth_bp, url_prefix="/api/v1/auth")
    app.register_blueprint(users_bp, url_prefix="/api/v1")
    app.register_blueprint(roles_bp, url_prefix="/api/v1")
    app.register_blueprint(categories_bp, url_prefix="/api/v1")
    app.register_blueprint(transactions_bp, url_prefix="/api/v1")
    app.register_blueprint(activities_bp, url_prefix="/api/v1")

    from .cli import register_cli
    register_cli(app)

    # Ensure the DB session is removed at the end of each request/app context
    @app.teardown_appcontext
    def remove_session(exception=None):
        svc.storage.close()

    @app.route("/")
    def root():
        return {
            "message": "Welcome to FinTrack API",
            "docs": "/apidocs/",
            "health": "/api/v1/health",
        }, 200

    logger.info("FinTrack API created (env=%s)", app.config.get("APP_ENV"))
    return app
