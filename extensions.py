"""Memocards: Flask extension singletons, bound to the app in `create_app`.

Import them from here (`from extensions import db, cache`) so models, services
and routes never import the application itself.

- `db` carries a naming convention so Alembic (through Flask-Migrate, run in
  batch mode for SQLite) emits the same constraint names on every machine.
- `csrf` guards the session-cookie JSON API; clients read a token from
  `/api/auth/csrf`. Only register and login are exempt.
- `cache` memoizes assisted format/tag answers keyed by a content hash. Its
  backend comes from the `CACHE_*` settings in `config.py`.
- `limiter` throttles the auth and assist endpoints per remote address.
- `login_manager` resolves the session user; its unauthorized handler answers
  with JSON rather than a redirect.
"""
from __future__ import annotations

from flask_caching import Cache
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_login import LoginManager
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from flask_wtf.csrf import CSRFProtect, generate_csrf
from sqlalchemy import MetaData

# Stable names for constraints/indexes so Alembic migrations are predictable
NAMING_CONVENTION = {
    "ix": "ix_%(table_name)s_%(column_0_name)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

# Attach the naming convention to SQLAlchemy's MetaData
metadata = MetaData(naming_convention=NAMING_CONVENTION)

# Core extensions (initialized in app factory)
db: SQLAlchemy = SQLAlchemy(metadata=metadata)
migrate: Migrate = Migrate()
csrf: CSRFProtect = CSRFProtect()

# Backend and timeout come from app.config (CACHE_TYPE, CACHE_DEFAULT_TIMEOUT)
cache: Cache = Cache()
limiter: Limiter = Limiter(key_func=get_remote_address)
login_manager: LoginManager = LoginManager()

__all__ = ["db", "migrate", "cache", "csrf", "limiter", "login_manager", "NAMING_CONVENTION", "metadata", "generate_csrf"]
