"""The web application: routes, the dashboard and the command that serves it."""

from __future__ import annotations

import argparse
import logging
import os
import sqlite3
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import datetime, time, timedelta, timezone
from pathlib import Path

from dotenv import find_dotenv, load_dotenv
from flask import Flask, Response, redirect, request

from kfleet import categories, equipment, staff
from kfleet.state import AppState, HandlerError, Redirect, load_templates, open_database

log = logging.getLogger(__name__)

DEFAULT_PORT = 3000
ALERT_WINDOW = timedelta(days=30)
TEMPLATE_DIRECTORY = "templates"


@dataclass(frozen=True)
class StatusCounts:
    """How much equipment is in each status."""

    active: int
    maintenance: int
    retired: int


@dataclass(frozen=True)
class MaintenanceAlert:
    """Equipment whose maintenance falls due soon."""

    name: str
    next_maintenance: datetime | None


@dataclass(frozen=True)
class InsuranceAlert:
    """Equipment whose insurance is up for renewal soon."""

    name: str
    insurance_renewal: datetime | None


@dataclass(frozen=True)
class RecentEquipment:
    """A recently added piece of equipment."""

    name: str
    status: str
    acquisition_date: datetime
    next_maintenance: datetime | None
    category_name: str


@dataclass(frozen=True)
class RecentMaintenance:
    """A recent maintenance record."""

    maintenance_date: datetime
    equipment_name: str
    description: str
    cost: float | None


def _alert_window() -> tuple[datetime, datetime]:
    start = datetime.combine(datetime.now(timezone.utc).date(), time(), tzinfo=timezone.utc)
    return start, start + ALERT_WINDOW


def _fetch(state: AppState, what: str, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
    try:
        return state.db.execute(sql, params).fetchall()
    except sqlite3.Error as exc:
        log.error("Failed to fetch %s: %s", what, exc)
        raise HandlerError("Database error") from exc


def dashboard(state: AppState) -> str:
    """Render the dashboard: status counts, upcoming deadlines and recent activity."""
    log.info("Serving dashboard")

    (counts_row,) = _fetch(
        state,
        "status counts",
        """
        SELECT
            COALESCE(SUM(current_status = 'active'), 0) AS active,
            COALESCE(SUM(current_status = 'maintenance'), 0) AS maintenance,
            COALESCE(SUM(current_status = 'retired'), 0) AS retired
        FROM equipment
        """,
    )
    status_counts = StatusCounts(**dict(counts_row))

    start, end = _alert_window()
    maintenance_alerts = [
        MaintenanceAlert(**dict(row))
        for row in _fetch(
            state,
            "maintenance alerts",
            """
            SELECT name, next_maintenance
            FROM equipment
            WHERE next_maintenance BETWEEN ? AND ?
                AND current_status != 'retired'
            ORDER BY next_maintenance
            LIMIT 5
            """,
            (start, end),
        )
    ]
    insurance_alerts = [
        InsuranceAlert(**dict(row))
        for row in _fetch(
            state,
            "insurance alerts",
            """
            SELECT name, insurance_renewal
            FROM equipment
            WHERE insurance_renewal BETWEEN ? AND ?
                AND current_status != 'retired'
            ORDER BY insurance_renewal
            LIMIT 5
            """,
            (start, end),
        )
    ]
    recent_equipment = [
        RecentEquipment(**dict(row))
        for row in _fetch(
            state,
            "recent equipment",
            """
            SELECT
                e.name AS name,
                e.current_status AS status,
                e.acquisition_date AS acquisition_date,
                e.next_maintenance AS next_maintenance,
                c.name AS category_name
            FROM equipment e
            JOIN categories c ON e.category_id = c.id
            ORDER BY e.created_at DESC, e.id DESC
            LIMIT 6
            """,
        )
    ]
    recent_maintenance = [
        RecentMaintenance(**dict(row))
        for row in _fetch(
            state,
            "recent maintenance",
            """
            SELECT
                m.maintenance_date AS maintenance_date,
                e.name AS equipment_name,
                m.description AS description,
                m.cost AS cost
            FROM maintenance_history m
            JOIN equipment e ON m.equipment_id = e.id
            ORDER BY m.maintenance_date DESC
            LIMIT 5
            """,
        )
    ]

    context = {
        "status_counts": status_counts,
        "maintenance_alerts": maintenance_alerts,
        "insurance_alerts": insurance_alerts,
        "recent_equipment": recent_equipment,
        "recent_maintenance": recent_maintenance,
    }
    try:
        return state.render("index.html", context)
    except HandlerError as exc:
        log.error("Dashboard template error: %s", exc)
        raise HandlerError("Failed to render dashboard") from exc


def mobile(state: AppState) -> str:
    """Render the mobile application page."""
    log.info("serving mobile")
    return state.render("app.html", {})


def not_found() -> tuple[str, int, dict[str, str]]:
    """The response for any route that does not exist."""
    log.warning("404 - Page not found")
    return "Page not found", 404, {"Content-Type": "text/plain; charset=utf-8"}


def _respond(result: str | Redirect) -> Response | str:
    if isinstance(result, Redirect):
        return redirect(result.location, code=result.status)
    return result


def _register_crud(
    app: Flask,
    prefix: str,
    *,
    listing: Callable[[], str],
    create: Callable[[], Redirect],
    new_form: Callable[[], str],
    edit_form: Callable[[int], str],
    update: Callable[[int], Redirect],
    delete: Callable[[int], Redirect],
) -> None:
    name = prefix.strip("/")
    app.add_url_rule(prefix, f"{name}_list", lambda: _respond(listing()), methods=["GET"])
    app.add_url_rule(prefix, f"{name}_create", lambda: _respond(create()), methods=["POST"])
    app.add_url_rule(f"{prefix}/new", f"{name}_new", lambda: _respond(new_form()), methods=["GET"])
    app.add_url_rule(
        f"{prefix}/<int:item_id>/edit",
        f"{name}_edit",
        lambda item_id: _respond(edit_form(item_id)),
        methods=["GET"],
    )
    app.add_url_rule(
        f"{prefix}/<int:item_id>",
        f"{name}_update",
        lambda item_id: _respond(update(item_id)),
        methods=["POST"],
    )
    app.add_url_rule(
        f"{prefix}/<int:item_id>/delete",
        f"{name}_delete",
        lambda item_id: _respond(delete(item_id)),
        methods=["POST"],
    )


def create_app(state: AppState) -> Flask:
    """Build the web application with every route bound to *state*."""
    app = Flask(__name__)

    _register_crud(
        app,
        "/categories",
        listing=lambda: categories.list_categories(state),
        create=lambda: categories.create(state, categories.CategoryForm.from_form(request.form)),
        new_form=lambda: categories.new_form(state),
        edit_form=lambda item_id: categories.edit_form(state, item_id),
        update=lambda item_id: categories.update(
            state, item_id, categories.CategoryForm.from_form(request.form)
        ),
        delete=lambda item_id: categories.delete(state, item_id),
    )
    _register_crud(
        app,
        "/equipment",
        listing=lambda: equipment.list_equipment(state),
        create=lambda: equipment.create(state, equipment.EquipmentForm.from_form(request.form)),
        new_form=lambda: equipment.new_form(state),
        edit_form=lambda item_id: equipment.edit_form(state, item_id),
        update=lambda item_id: equipment.update(
            state, item_id, equipment.EquipmentForm.from_form(request.form)
        ),
        delete=lambda item_id: equipment.delete(state, item_id),
    )
    _register_crud(
        app,
        "/staff",
        listing=lambda: staff.list_staff(state),
        create=lambda: staff.create(state, staff.StaffForm.from_form(request.form)),
        new_form=lambda: staff.new_form(state),
        edit_form=lambda item_id: staff.edit_form(state, item_id),
        update=lambda item_id: staff.update(
            state, item_id, staff.StaffForm.from_form(request.form)
        ),
        delete=lambda item_id: staff.delete(state, item_id),
    )

    app.add_url_rule("/app", "mobile", lambda: mobile(state), methods=["GET"])
    app.add_url_rule("/", "dashboard", lambda: dashboard(state), methods=["GET"])

    @app.errorhandler(HandlerError)
    def _handler_error(exc: HandlerError) -> Response:
        return Response(exc.message, status=exc.status, mimetype="text/plain")

    app.register_error_handler(404, lambda _exc: not_found())
    return app


def _database_path(url: str) -> str:
    for scheme in ("sqlite:///", "sqlite://", "sqlite:"):
        if url.startswith(scheme):
            return url[len(scheme):] or ":memory:"
    return url


def _read_port() -> int:
    raw = os.environ.get("PORT", str(DEFAULT_PORT))
    try:
        port = int(raw)
    except ValueError:
        port = -1
    if not 0 <= port <= 65535:
        raise SystemExit(f"invalid PORT value: {raw!r}")
    return port


def main(argv: list[str] | None = None) -> int:
    """Load settings from the environment, open the database and serve the app."""
    parser = argparse.ArgumentParser(
        prog="kfleet",
        description="Fleet management web application. Configure with DATABASE_URL and PORT.",
    )
    parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="[%(levelname)s %(name)s] %(message)s")
    log.info("Starting fleet management system")

    load_dotenv(find_dotenv(usecwd=True))
    db_url = os.environ.get("DATABASE_URL")
    if not db_url:
        raise SystemExit("DATABASE_URL must be set in .env file")
    port = _read_port()

    log.info("Connecting to database...")
    db = open_database(_database_path(db_url))
    log.info("Database connection established")

    log.info("Loading templates")
    templates = load_templates(Path(TEMPLATE_DIRECTORY))
    log.info("%d templates loaded", len(templates.list_templates()))

    state = AppState(db=db, templates=templates)
    app = create_app(state)

    log.info("Server listening on http://0.0.0.0:%d", port)
    app.run(host="0.0.0.0", port=port)
    return 0


__all__ = [
    "InsuranceAlert",
    "MaintenanceAlert",
    "RecentEquipment",
    "RecentMaintenance",
    "StatusCounts",
    "asdict",
    "create_app",
    "dashboard",
    "main",
    "mobile",
    "not_found",
]