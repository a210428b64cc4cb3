"""Shared application state: database connection, schema and templates."""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import jinja2

log = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS categories (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS equipment (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    brand TEXT NOT NULL,
    model TEXT NOT NULL,
    serial_number TEXT NOT NULL,
    acquisition_date TIMESTAMPTZ NOT NULL,
    category_id INTEGER NOT NULL REFERENCES categories(id),
    insurance_renewal TIMESTAMPTZ,
    next_maintenance TIMESTAMPTZ,
    fuel_capacity REAL,
    current_status TEXT NOT NULL DEFAULT 'active',
    created_at TIMESTAMPTZ NOT NULL
        DEFAULT (strftime('%Y-%m-%dT%H:%M:%f+00:00', 'now'))
);

CREATE TABLE IF NOT EXISTS staff (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    full_name TEXT NOT NULL,
    contact_info TEXT,
    license_number TEXT
);

CREATE TABLE IF NOT EXISTS equipment_operator (
    operator_id INTEGER NOT NULL REFERENCES staff(id) ON DELETE CASCADE,
    equipment_id INTEGER NOT NULL REFERENCES equipment(id) ON DELETE CASCADE,
    PRIMARY KEY (operator_id, equipment_id)
);

CREATE TABLE IF NOT EXISTS maintenance_history (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    equipment_id INTEGER NOT NULL REFERENCES equipment(id) ON DELETE CASCADE,
    maintenance_date TIMESTAMPTZ NOT NULL,
    description TEXT NOT NULL,
    cost REAL
);
"""


def _adapt_datetime(value: datetime) -> str:
    """Store timestamps as UTC ISO-8601 text; naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _convert_timestamptz(raw: bytes) -> datetime:
    value = datetime.fromisoformat(raw.decode())
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


sqlite3.register_adapter(datetime, _adapt_datetime)
sqlite3.register_converter("TIMESTAMPTZ", _convert_timestamptz)


class HandlerError(Exception):
    """A request handler failure, carrying the message shown to the client."""

    def __init__(self, message: str, status: int = 500) -> None:
        super().__init__(message)
        self.message = message
        self.status = status

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class Redirect:
    """A 303 See Other redirect returned by a handler."""

    location: str
    status: int = 303


@dataclass(frozen=True)
class AppState:
    """Everything handlers share: the database and the template environment."""

    db: sqlite3.Connection
    templates: jinja2.Environment

    def render(self, template_name: str, context: Mapping[str, Any] | None = None) -> str:
        """Render a template, raising HandlerError if it is missing or fails."""
        try:
            template = self.templates.get_template(template_name)
            return template.render(dict(context or {}))
        except jinja2.TemplateError as exc:
            log.error("Template %s failed: %s", template_name, exc)
            raise HandlerError(str(exc) or f"Template error in {template_name}") from exc

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block in one transaction: commit on success, roll back on error."""
        self.db.execute("BEGIN")
        try:
            yield self.db
        except BaseException:
            self.db.execute("ROLLBACK")
            raise
        else:
            self.db.execute("COMMIT")


def init_schema(connection: sqlite3.Connection) -> None:
    """Create every table the application needs, if it does not exist yet."""
    connection.executescript(SCHEMA)


def open_database(path: str | Path) -> sqlite3.Connection:
    """Open the database at *path*, enable constraints and ensure the schema."""
    connection = sqlite3.connect(
        str(path),
        detect_types=sqlite3.PARSE_DECLTYPES,
        isolation_level=None,
        check_same_thread=False,
    )
    connection.row_factory = sqlite3.Row
    connection.execute("PRAGMA foreign_keys = ON")
    init_schema(connection)
    return connection


def load_templates(directory: str | Path) -> jinja2.Environment:
    """Build a template environment over *directory*, autoescaping .html files."""
    return jinja2.Environment(
        loader=jinja2.FileSystemLoader(str(directory)),
        autoescape=jinja2.select_autoescape(
            enabled_extensions=("html",),
            disabled_extensions=(),
            default_for_string=False,
            default=False,
        ),
    )