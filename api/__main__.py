"""
Development server: `python -m api` or the `fintrack-api` script.
Production deployments serve `api:create_app()` from a WSGI server.
"""
import os

from . import create_app


def main() -> None:
    app = create_app(os.getenv("APP_ENV"))
    app.run(
        host=os.getenv("FLASK_RUN_HOST", "127.0.0.1"),
        port=int(os.getenv("FLASK_RUN_PORT", "8000")),
        debug=app.config["DEBUG"],
    )


if __name__ == "__main__":
    main()
