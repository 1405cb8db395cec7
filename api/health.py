from flask import Blueprint, current_app

from api.extensions import services

bp = Blueprint("health", __name__)


@bp.get("/health")
def health():
    """
    Health check (not rate limited)
    ---
    tags:
      - Health
    responses:
      200:
        description: API is up; status is "degraded" when a shared store is unavailable
        schema:
          type: object
          properties:
            status:
              type: string
              example: ok
            version:
              type: string
              example: 1.0.0
            sessionStore:
              type: object
            rateLimiter:
              type: object
            database:
              type: object
    """
    svc = services()
    svc.sessions.ping()
    svc.limiter.ping()
    database_ok = svc.storage.ping()

    session_status = svc.sessions.status()
    limiter_status = svc.limiter.status()
    degraded = session_status["degraded"] or limiter_status["degraded"] or not database_ok
    return {
        "status": "degraded" if degraded else "ok",
        "version": current_app.config.get("VERSION", "1.0.0"),
        "sessionStore": session_status,
        "rateLimiter": limiter_status,
        "database": {"reachable": database_ok},
    }, 200
