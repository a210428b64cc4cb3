"""Request handlers for equipment."""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from kfleet.state import AppState, HandlerError, Redirect
from kfleet.timeparse import parse_optional_timestamptz, parse_timestamptz

log = logging.getLogger(__name__)

ROW_NOT_FOUND = "no rows returned by a query that expected to return at least one row"

_SELECT_EQUIPMENT = """
    SELECT
        e.id AS id, e.name AS name, e.brand AS brand, e.model AS model,
        e.serial_number AS serial_number, e.acquisition_date AS acquisition_date,
        e.category_id AS category_id, c.name AS category_name,
        e.insurance_renewal AS insurance_renewal,
        e.next_maintenance AS next_maintenance,
        e.fuel_capacity AS fuel_capacity,
        e.current_status AS status
    FROM equipment e
    JOIN categories c ON e.category_id = c.id
"""


@dataclass(frozen=True)
class Equipment:
    """One piece of equipment with the name of its category."""

    id: int
    name: str
    brand: str
    model: str
    serial_number: str
    acquisition_date: datetime
    category_id: int
    category_name: str
    insurance_renewal: datetime | None
    next_maintenance: datetime | None
    fuel_capacity: float | None
    status: str


@dataclass(frozen=True)
class CategoryOption:
    """A category offered in the equipment forms."""

    id: int
    name: str


def _form_error(message: str) -> HandlerError:
    return HandlerError(f"Failed to deserialize form body: {message}", status=422)


def _first(data: Mapping[str, Any], key: str) -> Any:
    value = data.get(key)
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def _required(data: Mapping[str, Any], key: str) -> str:
    value = _first(data, key)
    if value is None:
        raise _form_error(f"missing field `{key}`")
    return str(value)


def _convert(raw: Any, key: str, kind: type) -> Any:
    try:
        return kind(raw)
    except (TypeError, ValueError) as exc:
        raise _form_error(f"{key}: invalid value {raw!r}") from exc


@dataclass(frozen=True)
class EquipmentForm:
    """The submitted fields of the equipment create and edit forms."""

    name: str
    brand: str
    model: str
    serial_number: str
    acquisition_date: str
    category_id: int
    insurance_renewal: str | None = None
    next_maintenance: str | None = None
    fuel_capacity: float | None = None
    status: str = "active"
    timezone_offset: int | None = None

    @classmethod
    def from_form(cls, data: Mapping[str, Any]) -> EquipmentForm:
        """Build the form from submitted data, rejecting missing or malformed fields."""
        fuel_raw = _first(data, "fuel_capacity")
        offset_raw = _first(data, "timezone_offset")
        insurance = _first(data, "insurance_renewal")
        maintenance = _first(data, "next_maintenance")
        return cls(
            name=_required(data, "name"),
            brand=_required(data, "brand"),
            model=_required(data, "model"),
            serial_number=_required(data, "serial_number"),
            acquisition_date=_required(data, "acquisition_date"),
            category_id=_convert(_required(data, "category_id"), "category_id", int),
            insurance_renewal=None if insurance is None else str(insurance),
            next_maintenance=None if maintenance is None else str(maintenance),
            fuel_capacity=None if fuel_raw is None else _convert(fuel_raw, "fuel_capacity", float),
            status=_required(data, "status"),
            timezone_offset=None if offset_raw is None else _convert(offset_raw, "timezone_offset", int),
        )

    def timestamps(self) -> tuple[datetime, datetime | None, datetime | None]:
        """The acquisition, insurance and maintenance dates in UTC."""
        offset = self.timezone_offset or 0
        return (
            parse_timestamptz(self.acquisition_date, offset),
            parse_optional_timestamptz(self.insurance_renewal, offset),
            parse_optional_timestamptz(self.next_maintenance, offset),
        )


def _get_categories(state: AppState) -> list[CategoryOption]:
    try:
        rows = state.db.execute("SELECT id, name FROM categories ORDER BY name").fetchall()
    except sqlite3.Error as exc:
        raise HandlerError(str(exc)) from exc
    return [CategoryOption(**dict(row)) for row in rows]


def create(state: AppState, form: EquipmentForm) -> Redirect:
    """Insert a new piece of equipment."""
    log.info("Creating new equipment: %s", form.name)
    acquisition, insurance, maintenance = form.timestamps()
    try:
        state.db.execute(
            """
            INSERT INTO equipment (
                name, brand, model, serial_number, acquisition_date,
                category_id, insurance_renewal,
                next_maintenance, fuel_capacity, current_status
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                form.name, form.brand, form.model, form.serial_number, acquisition,
                form.category_id, insurance, maintenance, form.fuel_capacity, form.status,
            ),
        )
    except sqlite3.Error as exc:
        log.error("Equipment creation failed: %s", exc)
        raise HandlerError(str(exc)) from exc
    log.info("Equipment '%s' created successfully", form.name)
    return Redirect("/equipment")


def list_equipment(state: AppState) -> str:
    """Render all equipment ordered by name, with the category choices."""
    log.info("Listing equipment")
    try:
        rows = state.db.execute(_SELECT_EQUIPMENT + " ORDER BY e.name").fetchall()
    except sqlite3.Error as exc:
        log.error("Failed to fetch equipment: %s", exc)
        raise HandlerError(str(exc)) from exc
    equipment = [Equipment(**dict(row)) for row in rows]
    return state.render(
        "equipment/index.html",
        {"equipment": equipment, "categories": _get_categories(state)},
    )


def new_form(state: AppState) -> str:
    """Render the empty equipment form."""
    log.info("Serving new equipment form")
    defaults = {"acquisition_date": None, "insurance_renewal": None, "next_maintenance": None}
    return state.render(
        "equipment/new.html",
        {"categories": _get_categories(state), "equipment": defaults},
    )


def edit_form(state: AppState, equipment_id: int) -> str:
    """Render the edit form for one piece of equipment."""
    log.info("Editing equipment ID: %s", equipment_id)
    try:
        row = state.db.execute(
            _SELECT_EQUIPMENT + " WHERE e.id = ?", (equipment_id,)
        ).fetchone()
    except sqlite3.Error as exc:
        log.warning("Equipment %s not found: %s", equipment_id, exc)
        raise HandlerError(str(exc)) from exc
    if row is None:
        log.warning("Equipment %s not found: %s", equipment_id, ROW_NOT_FOUND)
        raise HandlerError(ROW_NOT_FOUND)
    return state.render(
        "equipment/edit.html",
        {"equipment": Equipment(**dict(row)), "categories": _get_categories(state)},
    )


def update(state: AppState, equipment_id: int, form: EquipmentForm) -> Redirect:
    """Overwrite every field of a piece of equipment."""
    log.info("Updating equipment ID: %s", equipment_id)
    acquisition, insurance, maintenance = form.timestamps()
    try:
        state.db.execute(
            """
            UPDATE equipment SET
                name = ?, brand = ?, model = ?, serial_number = ?,
                acquisition_date = ?, category_id = ?, insurance_renewal = ?,
                next_maintenance = ?, fuel_capacity = ?, current_status = ?
            WHERE id = ?
            """,
            (
                form.name, form.brand, form.model, form.serial_number, acquisition,
                form.category_id, insurance, maintenance, form.fuel_capacity, form.status,
                equipment_id,
            ),
        )
    except sqlite3.Error as exc:
        log.error("Equipment update failed: %s", exc)
        raise HandlerError(str(exc)) from exc
    log.info("Equipment %s updated successfully", equipment_id)
    return Redirect("/equipment")


def delete(state: AppState, equipment_id: int) -> Redirect:
    """Delete a piece of equipment."""
    log.info("Deleting equipment ID: %s", equipment_id)
    try:
        state.db.execute("DELETE FROM equipment WHERE id = ?", (equipment_id,))
    except sqlite3.Error as exc:
        log.error("Equipment deletion failed: %s", exc)
        raise HandlerError(str(exc)) from exc
    log.info("Equipment %s deleted", equipment_id)
    return Redirect("/equipment")