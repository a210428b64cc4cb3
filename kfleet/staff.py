"""Request handlers for staff and their equipment assignments."""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from kfleet.state import AppState, HandlerError, Redirect

log = logging.getLogger(__name__)

ROW_NOT_FOUND = "no rows returned by a query that expected to return at least one row"

_SELECT_EQUIPMENT_SHORT = (
    "SELECT id, name, brand, model, current_status AS status FROM equipment ORDER BY name"
)


@dataclass(frozen=True)
class StaffMember:
    """A member of staff."""

    id: int
    full_name: str
    contact_info: str | None
    license_number: str | None


@dataclass(frozen=True)
class EquipmentShort:
    """Equipment summary offered for assignment."""

    id: int
    name: str
    brand: str
    model: str
    status: str


@dataclass(frozen=True)
class StaffListing:
    """A member of staff with the names of the equipment they operate."""

    id: int
    full_name: str
    contact_info: str | None
    license_number: str | None
    equipment_names: list[str] = field(default_factory=list)


def _values(data: Mapping[str, Any], key: str) -> list[Any]:
    if hasattr(data, "getlist"):
        return list(data.getlist(key))
    value = data.get(key)
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _optional(data: Mapping[str, Any], key: str) -> str | None:
    values = _values(data, key)
    return str(values[0]) if values else None


@dataclass(frozen=True)
class StaffForm:
    """The submitted fields of the staff create and edit forms."""

    full_name: str
    contact_info: str | None = None
    license_number: str | None = None
    assigned_equipment: list[int] = field(default_factory=list)

    @classmethod
    def from_form(cls, data: Mapping[str, Any]) -> StaffForm:
        """Build the form from submitted data; assigned_equipment may repeat."""
        full_name = _optional(data, "full_name")
        if full_name is None:
            raise HandlerError(
                "Failed to deserialize form body: missing field `full_name`", status=422
            )
        assigned = []
        for raw in _values(data, "assigned_equipment"):
            try:
                assigned.append(int(raw))
            except (TypeError, ValueError) as exc:
                raise HandlerError(
                    f"Failed to deserialize form body: assigned_equipment: invalid value {raw!r}",
                    status=422,
                ) from exc
        return cls(
            full_name=full_name,
            contact_info=_optional(data, "contact_info"),
            license_number=_optional(data, "license_number"),
            assigned_equipment=assigned,
        )


def _replace_assignments(
    db: sqlite3.Connection, staff_id: int, equipment_ids: Iterable[int]
) -> None:
    db.execute("DELETE FROM equipment_operator WHERE operator_id = ?", (staff_id,))
    db.executemany(
        "INSERT INTO equipment_operator (operator_id, equipment_id) VALUES (?, ?)",
        [(staff_id, equipment_id) for equipment_id in equipment_ids],
    )


def _equipment_choices(state: AppState) -> list[EquipmentShort]:
    try:
        rows = state.db.execute(_SELECT_EQUIPMENT_SHORT).fetchall()
    except sqlite3.Error as exc:
        raise HandlerError(str(exc)) from exc
    return [EquipmentShort(**dict(row)) for row in rows]


def create(state: AppState, form: StaffForm) -> Redirect:
    """Insert a member of staff and their assignments in one transaction."""
    log.info("Creating new staff: %s", form.full_name)
    try:
        with state.transaction() as db:
            cursor = db.execute(
                "INSERT INTO staff (full_name, contact_info, license_number) VALUES (?, ?, ?)",
                (form.full_name, form.contact_info, form.license_number),
            )
            _replace_assignments(db, cursor.lastrowid, form.assigned_equipment)
    except sqlite3.Error as exc:
        log.warning("Staff creation failed: %s", exc)
        raise HandlerError(str(exc)) from exc
    log.info("Staff '%s' created successfully", form.full_name)
    return Redirect("/staff")


def list_staff(state: AppState) -> str:
    """Render all staff ordered by name, each with their equipment names."""
    log.info("Listing staff")
    try:
        staff_rows = state.db.execute(
            "SELECT id, full_name, contact_info, license_number FROM staff"
            " ORDER BY full_name, id"
        ).fetchall()
        assignment_rows = state.db.execute(
            "SELECT eo.operator_id AS operator_id, e.name AS name"
            " FROM equipment_operator eo JOIN equipment e ON e.id = eo.equipment_id"
            " ORDER BY eo.operator_id, e.name"
        ).fetchall()
    except sqlite3.Error as exc:
        log.warning("Failed to fetch staff: %s", exc)
        raise HandlerError(str(exc)) from exc

    names: dict[int, list[str]] = {}
    for row in assignment_rows:
        names.setdefault(row["operator_id"], []).append(row["name"])
    staff = [
        StaffListing(**dict(row), equipment_names=names.get(row["id"], []))
        for row in staff_rows
    ]
    return state.render("staff/index.html", {"staff": staff})


def new_form(state: AppState) -> str:
    """Render the empty staff form with the equipment that can be assigned."""
    log.info("Serving new staff form")
    return state.render(
        "staff/new.html",
        {"equipment": _equipment_choices(state), "assigned_equipment_ids": []},
    )


def edit_form(state: AppState, staff_id: int) -> str:
    """Render the edit form for one member of staff."""
    log.info("Editing staff ID: %s", staff_id)
    try:
        row = state.db.execute(
            "SELECT id, full_name, contact_info, license_number FROM staff WHERE id = ?",
            (staff_id,),
        ).fetchone()
    except sqlite3.Error as exc:
        log.warning("Staff %s not found: %s", staff_id, exc)
        raise HandlerError(str(exc)) from exc
    if row is None:
        log.warning("Staff %s not found: %s", staff_id, ROW_NOT_FOUND)
        raise HandlerError(ROW_NOT_FOUND)

    equipment = _equipment_choices(state)
    try:
        assigned = [
            r["equipment_id"]
            for r in state.db.execute(
                "SELECT equipment_id FROM equipment_operator WHERE operator_id = ?",
                (staff_id,),
            )
        ]
    except sqlite3.Error as exc:
        raise HandlerError(str(exc)) from exc

    return state.render(
        "staff/edit.html",
        {
            "staff": StaffMember(**dict(row)),
            "equipment": equipment,
            "assigned_equipment_ids": assigned,
        },
    )


def update(state: AppState, staff_id: int, form: StaffForm) -> Redirect:
    """Overwrite a member of staff and replace their assignments."""
    log.info("Updating staff ID: %s", staff_id)
    try:
        with state.transaction() as db:
            db.execute(
                "UPDATE staff SET full_name = ?, contact_info = ?, license_number = ?"
                " WHERE id = ?",
                (form.full_name, form.contact_info, form.license_number, staff_id),
            )
            _replace_assignments(db, staff_id, form.assigned_equipment)
    except sqlite3.Error as exc:
        log.warning("Staff update failed: %s", exc)
        raise HandlerError(str(exc)) from exc
    log.info("Staff %s updated successfully", staff_id)
    return Redirect("/staff")


def delete(state: AppState, staff_id: int) -> Redirect:
    """Delete a member of staff, refusing while they hold assignments."""
    log.info("Deleting staff ID: %s", staff_id)
    try:
        (assignment_count,) = state.db.execute(
            "SELECT COUNT(*) FROM equipment_operator WHERE operator_id = ?", (staff_id,)
        ).fetchone()
    except sqlite3.Error as exc:
        raise HandlerError(str(exc)) from exc
    assignment_count = assignment_count or 0

    if assignment_count > 0:
        log.warning(
            "Cannot delete staff %s with %s equipment assignments", staff_id, assignment_count
        )
        raise HandlerError(f"Staff is assigned to {assignment_count} equipment items")

    try:
        state.db.execute("DELETE FROM staff WHERE id = ?", (staff_id,))
    except sqlite3.Error as exc:
        log.warning("Staff deletion failed: %s", exc)
        raise HandlerError(str(exc)) from exc
    log.info("Staff %s deleted", staff_id)
    return Redirect("/staff")