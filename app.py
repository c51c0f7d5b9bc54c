"""Flask application factory, CLI entry points, and database bootstrap."""

import json
import logging
import sqlite3
import uuid
from logging.handlers import RotatingFileHandler
from pathlib import Path

import click
from dotenv import load_dotenv; load_dotenv()
from flask import Flask, g, has_request_context, jsonify, request
from flask.cli import AppGroup, with_appcontext
from flask_compress import Compress
from flask_talisman import Talisman
from sqlalchemy import event
from sqlalchemy.engine import Engine

from config import Config, INSTANCE_DIR as CONFIG_INSTANCE_DIR
from extensions import cache, csrf, db, limiter, login_manager, migrate
from shared.error_handlers import register_error_handlers
from shared.exceptions import AppError


class RequestIdFilter(logging.Filter):
    """Inject request-scoped metadata into log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        if has_request_context():
            record.request_id = getattr(g, "request_id", "n/a")
            record.path = request.path
            record.method = request.method
        else:
            record.request_id = getattr(record, "request_id", "startup")
            record.path = getattr(record, "path", "")
            record.method = getattr(record, "method", "")
        return True


class JsonRequestFormatter(logging.Formatter):
    """Simple JSON formatter for logfmt-friendly ingestion."""

    def format(self, record: logging.LogRecord) -> str:
        base = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", "n/a"),
            "path": getattr(record, "path", ""),
            "method": getattr(record, "method", ""),
        }
        if record.exc_info:
            base["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(base, ensure_ascii=False)


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record):
    """SQLite ignores ON DELETE CASCADE unless foreign keys are switched on."""
    if not isinstance(dbapi_connection, sqlite3.Connection):
        return
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA foreign_keys=ON;")
    finally:
        cursor.close()


def _configure_logging(app: Flask) -> None:
    """Configure structured logging with request IDs."""
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    stream_handler = logging.StreamHandler()
    stream_handler.addFilter(RequestIdFilter())
    stream_handler.setFormatter(JsonRequestFormatter())
    stream_handler.setLevel(level)

    handlers = [stream_handler]

    try:
        logs_dir = Path(app.instance_path) / "logs"
        logs_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            logs_dir / "app.log",
            maxBytes=5 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.addFilter(RequestIdFilter())
        file_handler.setFormatter(JsonRequestFormatter())
        file_handler.setLevel(level)
        handlers.append(file_handler)
    except OSError as exc:
        app.logger.warning("Falling back to stream-only logging (file handler unavailable): %s", exc)

    app.logger.handlers = handlers
    app.logger.setLevel(level)
    # Service modules log through logging.getLogger(__name__).
    for name in ("services", "werkzeug"):
        logger = logging.getLogger(name)
        logger.handlers = handlers
        logger.setLevel(level)
        logger.propagate = False


def _configure_login_manager(app: Flask) -> None:
    """Bind Flask-Login; API callers get JSON 401s instead of redirects."""
    login_manager.init_app(app)
    login_manager.session_protection = "strong"

    @login_manager.user_loader
    def _load_user(user_id: str):
        from models import User

        try:
            return db.session.get(User, int(user_id))
        except (TypeError, ValueError):
            return None

    @login_manager.unauthorized_handler
    def _unauthorized():
        return jsonify({"error": "authentication_required", "detail": "Please sign in to continue."}), 401


def create_app(config_object=None):
    """Create, configure, and return a fully-initialised Flask app."""
    app = Flask(
        __name__,
        instance_path=str(CONFIG_INSTANCE_DIR),
        instance_relative_config=False,
    )
    app.config.from_object(config_object or Config)
    Path(app.instance_path).mkdir(parents=True, exist_ok=True)
    _configure_logging(app)

    # If no DB URI provided, store SQLite DB in instance/
    if not app.config.get("SQLALCHEMY_DATABASE_URI"):
        app.config["SQLALCHEMY_DATABASE_URI"] = f"sqlite:///{Path(app.instance_path) / 'memocards.db'}"

    # --- Core extensions ---
    db.init_app(app)
    migrate.init_app(app, db, render_as_batch=True)
    cache.init_app(app)
    _configure_login_manager(app)
    csrf.init_app(app)
    limiter.init_app(app)
    Compress(app)

    if app.config.get("ENABLE_TALISMAN", True):
        Talisman(
            app,
            content_security_policy=app.config.get("CONTENT_SECURITY_POLICY"),
            force_https=app.config.get("TALISMAN_FORCE_HTTPS", not app.debug),
            session_cookie_secure=app.config.get("SESSION_COOKIE_SECURE", True),
            session_cookie_samesite=app.config.get("SESSION_COOKIE_SAMESITE", "Lax"),
        )

    @app.before_request
    def _assign_request_id():
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:16]

    @app.after_request
    def _echo_request_id(response):
        response.headers.setdefault("X-Request-ID", getattr(g, "request_id", ""))
        return response

    register_error_handlers(app)

    with app.app_context():
        import models  # noqa: F401  (register mappers)
        if app.config.get("AUTO_CREATE_TABLES", True):
            db.create_all()

    from routes import api_bp
    app.register_blueprint(api_bp)

    app.cli.add_command(init_db)
    app.cli.add_command(cards_cli)
    app.cli.add_command(local_cli)
    return app


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

@click.command("init-db")
@with_appcontext
def init_db():
    """Create all tables (use `flask db upgrade` once migrations exist)."""
    db.create_all()
    click.echo("Database tables created.")


cards_cli = AppGroup("cards", help="Import/export a user's server-side cards.")


def _user_by_email(email: str):
    from models import User

    user = User.query.filter_by(email=email.strip().lower()).first()
    if user is None:
        raise click.ClickException(f"No user with email {email}.")
    return user


@cards_cli.command("export")
@click.argument("email")
@click.option("-o", "--output", type=click.Path(dir_okay=False, writable=True), default=None)
def cards_export(email: str, output):
    from flask import current_app

    from services.card_service import export_cards
    from services.import_export import export_filename, render_export

    user = _user_by_email(email)
    path = Path(output or export_filename(current_app.config["EXPORT_FILENAME_PREFIX"]))
    document = export_cards(user.id)
    path.write_text(render_export(document), encoding="utf-8")
    click.echo(f"Exported {len(document['cards'])} cards to {path}.")


@cards_cli.command("import")
@click.argument("email")
@click.argument("source", type=click.File("r", encoding="utf-8"))
@click.option("--strategy", type=click.Choice(["merge", "replace"]), default="merge", show_default=True)
def cards_import(email: str, source, strategy: str):
    from services.audit import record_audit_event
    from services.card_service import import_cards

    user = _user_by_email(email)
    try:
        payload = json.load(source)
    except ValueError as exc:
        raise click.ClickException(f"Import file is not valid JSON: {exc}")
    try:
        result = import_cards(user.id, payload, default_strategy=strategy)
    except AppError as exc:
        raise click.ClickException(exc.message)
    record_audit_event("cards_imported", {**result.counts(), "source": "cli"}, user_id=user.id)
    db.session.commit()
    counts = result.counts()
    click.echo(
        f"created={counts['createdCount']} updated={counts['updatedCount']} skipped={counts['skippedCount']}"
    )


local_cli = AppGroup("local", help="Work with the single-device card book (JSON file).")


def _local_book():
    from flask import current_app

    from services.assist import get_assistant
    from services.local_book import LocalCardBook

    return LocalCardBook.from_config(current_app.config, assistant=get_assistant())


def _flush_notices(book) -> None:
    for notice in book.drain_notices():
        click.echo(f"[{notice.level}] {notice.message}", err=notice.level != "success")


@local_cli.command("list")
@click.option("-q", "--query", "search", default="")
@click.option("-t", "--tag", "tags", multiple=True)
@click.option("--sort", type=click.Choice(["date-desc", "date-asc", "alpha-asc", "alpha-desc"]), default="date-desc")
def local_list(search: str, tags, sort: str):
    book = _local_book()
    for card in book.query(search, tags, sort):
        click.echo(f"{card.id}  {card.updated_at:%Y-%m-%d}  {card.title}  [{', '.join(card.tags)}]")
    click.echo(f"Tags: {', '.join(book.available_tags())}")
    _flush_notices(book)


@local_cli.command("add")
@click.argument("title")
@click.argument("source", type=click.File("r", encoding="utf-8"))
def local_add(title: str, source):
    book = _local_book()
    try:
        card = book.create_card(title, source.read())
    except AppError as exc:
        raise click.ClickException(exc.message)
    click.echo(card.id)
    _flush_notices(book)


@local_cli.command("delete")
@click.argument("card_id")
def local_delete(card_id: str):
    book = _local_book()
    try:
        book.delete_card(card_id)
    except AppError as exc:
        raise click.ClickException(exc.message)
    _flush_notices(book)


@local_cli.command("import")
@click.argument("source", type=click.File("rb"))
@click.option("--strategy", type=click.Choice(["merge", "replace"]), default="merge", show_default=True)
def local_import(source, strategy: str):
    book = _local_book()
    try:
        result = book.import_json(source.read(), strategy=strategy)
    except AppError as exc:
        raise click.ClickException(exc.message)
    counts = result.counts()
    click.echo(
        f"created={counts['createdCount']} updated={counts['updatedCount']} skipped={counts['skippedCount']}"
    )
    _flush_notices(book)


@local_cli.command("export")
@click.option("-o", "--output-dir", type=click.Path(file_okay=False), default=".")
def local_export(output_dir: str):
    book = _local_book()
    try:
        filename, text = book.export_json()
    except AppError as exc:
        raise click.ClickException(exc.message)
    path = Path(output_dir) / filename
    path.write_text(text, encoding="utf-8")
    click.echo(str(path))
    _flush_notices(book)


@local_cli.command("random")
@click.option("--exclude", "exclude_id", default=None, help="Card id to avoid when another exists.")
def local_random(exclude_id):
    book = _local_book()
    card = book.random_card(exclude_id=exclude_id)
    if card is not None:
        click.echo(f"{card.id}  {card.title}")
        click.echo(card.content)
    _flush_notices(book)
