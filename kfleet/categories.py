"""Request handlers for equipment categories."""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from kfleet.state import AppState, HandlerError, Redirect

log = logging.getLogger(__name__)

ROW_NOT_FOUND = "no rows returned by a query that expected to return at least one row"


@dataclass(frozen=True)
class Category:
    """A category together with how much equipment belongs to it."""

    id: int
    name: str
    equipment_count: int


@dataclass(frozen=True)
class CategoryForm:
    """The submitted fields of the category create and edit forms."""

    name: str

    @classmethod
    def from_form(cls, data: Mapping[str, Any]) -> CategoryForm:
        """Build the form from submitted data, rejecting a missing name."""
        value = data.get("name")
        if isinstance(value, (list, tuple)):
            value = value[0] if value else None
        if value is None:
            raise HandlerError(
                "Failed to deserialize form body: missing field `name`", status=422
            )
        return cls(name=str(value))


def create(state: AppState, form: CategoryForm) -> Redirect:
    """Insert a new category."""
    log.info("Creating new category: %s", form.name)
    try:
        state.db.execute("INSERT INTO categories (name) VALUES (?)", (form.name,))
    except sqlite3.Error as exc:
        log.warning("Category creation failed: %s", exc)
        raise HandlerError(str(exc)) from exc
    log.info("Category '%s' created successfully", form.name)
    return Redirect("/categories")


def list_categories(state: AppState) -> str:
    """Render every category with its equipment count, ordered by name."""
    log.info("Listing categories")
    try:
        rows = state.db.execute(
            """
            SELECT c.id AS id, c.name AS name, COUNT(e.id) AS equipment_count
            FROM categories c
            LEFT JOIN equipment e ON e.category_id = c.id
            GROUP BY c.id, c.name
            ORDER BY c.name
            """
        ).fetchall()
    except sqlite3.Error as exc:
        log.warning("Failed to fetch categories: %s", exc)
        raise HandlerError(str(exc)) from exc
    categories = [Category(**dict(row)) for row in rows]
    return state.render("categories/index.html", {"categories": categories})


def new_form(state: AppState) -> str:
    """Render the empty category form."""
    log.info("Serving new category form")
    return state.render("categories/new.html", {})


def edit_form(state: AppState, category_id: int) -> str:
    """Render the edit form for one category."""
    log.info("Editing category ID: %s", category_id)
    try:
        row = state.db.execute(
            "SELECT id, name FROM categories WHERE id = ?", (category_id,)
        ).fetchone()
    except sqlite3.Error as exc:
        log.warning("Category %s not found: %s", category_id, exc)
        raise HandlerError(str(exc)) from exc
    if row is None:
        log.warning("Category %s not found: %s", category_id, ROW_NOT_FOUND)
        raise HandlerError(ROW_NOT_FOUND)
    return state.render("categories/edit.html", {"category": dict(row)})


def update(state: AppState, category_id: int, form: CategoryForm) -> Redirect:
    """Rename a category."""
    log.info("Updating category ID: %s", category_id)
    try:
        state.db.execute(
            "UPDATE categories SET name = ? WHERE id = ?", (form.name, category_id)
        )
    except sqlite3.Error as exc:
        log.warning("Category update failed: %s", exc)
        raise HandlerError(str(exc)) from exc
    log.info("Category %s updated to '%s'", category_id, form.name)
    return Redirect("/categories")


def delete(state: AppState, category_id: int) -> Redirect:
    """Delete a category, refusing while any equipment still uses it."""
    log.info("Deleting category ID: %s", category_id)
    try:
        (equipment_count,) = state.db.execute(
            "SELECT COUNT(*) FROM equipment WHERE category_id = ?", (category_id,)
        ).fetchone()
    except sqlite3.Error as exc:
        log.warning("Category deletion check failed: %s", exc)
        raise HandlerError(str(exc)) from exc
    equipment_count = equipment_count or 0

    if equipment_count > 0:
        log.warning(
            "Cannot delete category %s with %s equipment items", category_id, equipment_count
        )
        raise HandlerError(f"Category is in use by {equipment_count} equipment items")

    try:
        state.db.execute("DELETE FROM categories WHERE id = ?", (category_id,))
    except sqlite3.Error as exc:
        log.warning("Category deletion failed: %s", exc)
        raise HandlerError(str(exc)) from exc
    log.info("Category %s deleted", category_id)
    return Redirect("/categories")