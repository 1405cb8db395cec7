from contextlib import contextmanager

from sqlalchemy import create_engine, event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import scoped_session, sessionmaker
from sqlalchemy.pool import StaticPool

from models.audit_log import AuditLog
from models.base_model import Base
from models.category import Category
from models.one_time_token import EmailVerification, PasswordReset
from models.role import Permission, Role
from models.transaction import Transaction
from models.user import User

# Map model names for easy querying
classes = {
    "User": User,
    "Role": Role,
    "Permission": Permission,
    "PasswordReset": PasswordReset,
    "EmailVerification": EmailVerification,
    "AuditLog": AuditLog,
    "Category": Category,
    "Transaction": Transaction,
}


class DBStorage:
    """Engine plus a thread-scoped session, built once per application."""

    def __init__(self, database_url: str, *, echo: bool = False, pool_timeout: int = 10, connect_timeout: int = 10):
        options = {"echo": echo, "future": True}
        if database_url.startswith("sqlite"):
            options["connect_args"] = {"check_same_thread": False}
            if database_url in ("sqlite://", "sqlite:///:memory:"):
                # one shared connection, otherwise every checkout sees an empty database
                options["poolclass"] = StaticPool
        else:
            options["pool_pre_ping"] = True
            options["pool_timeout"] = pool_timeout
            if database_url.startswith("postgresql"):
                options["connect_args"] = {"connect_timeout": connect_timeout}
        self.__engine = create_engine(database_url, **options)

        # Enable SQLite foreign keys (needed for ON DELETE CASCADE)
        if self.__engine.url.get_backend_name() == "sqlite":
            @event.listens_for(self.__engine, "connect")
            def _set_sqlite_pragma(dbapi_connection, connection_record):
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()
        self.__session = None

    def reload(self):
        """Create tables and start session"""
        Base.metadata.create_all(self.__engine)
        session_factory = sessionmaker(bind=self.__engine, expire_on_commit=False)
        self.__session = scoped_session(session_factory)

    def rollback(self):
        self.__session.rollback()

    @contextmanager
    def transaction(self):
        """Unit of work: commit when the block succeeds, roll back otherwise."""
        session = self.__session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise

    def get(self, cls, id):
        """Fetch one object by class and ID"""
        if cls in classes.values():
            return self.__session.get(cls, id)
        return None

    def count(self, cls):
        return self.__session.query(cls).count()

    def ping(self) -> bool:
        try:
            with self.__engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError:
            return False

    def close(self):
        """Remove session (for API teardown)"""
        if self.__session is not None:
            self.__session.remove()

    def dispose(self):
        self.close()
        self.__engine.dispose()

    # expose the SQLAlchemy session for advanced querying (joins, filters, etc.)
    def get_session(self):
        return self.__session
