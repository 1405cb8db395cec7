"""Per-application service container, kept in app.extensions."""
from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from api.auth_service import AuthService
from models.db_storage import DBStorage
from models.ledger import LedgerRepository
from models.repository import UserRepository
from utils.dispatch import BackgroundDispatcher, InlineDispatcher
from utils.mailer import Mailer
from utils.rate_limit import RateLimiter
from utils.security import PasswordService
from utils.session_cache import SessionCache
from utils.tokens import TokenService

EXTENSION_KEY = "fintrack"


@dataclass
class Services:
    storage: DBStorage
    users: UserRepository
    ledger: LedgerRepository
    passwords: PasswordService
    tokens: TokenService
    sessions: SessionCache
    limiter: RateLimiter
    mailer: Mailer
    dispatcher: InlineDispatcher | BackgroundDispatcher
    auth: AuthService


def services() -> Services:
    return current_app.extensions[EXTENSION_KEY]
