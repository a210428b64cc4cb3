import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from kfleet.state import (
    AppState,
    HandlerError,
    Redirect,
    init_schema,
    load_templates,
    open_database,
)


@pytest.fixture
def state(tmp_path):
    templates_dir = tmp_path / "templates"
    templates_dir.mkdir()
    (templates_dir / "page.html").write_text("<p>{{ name }}</p>")
    (templates_dir / "plain.txt").write_text("{{ name }}")
    (templates_dir / "broken.html").write_text("{{ missing.attr.deep() }}")
    db = open_database(":memory:")
    yield AppState(db=db, templates=load_templates(templates_dir))
    db.close()


def _table_names(db):
    rows = db.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
    return {row["name"] for row in rows}


def test_open_database_creates_schema(state):
    names = _table_names(state.db)
    assert {
        "categories",
        "equipment",
        "staff",
        "equipment_operator",
        "maintenance_history",
    } <= names


def test_init_schema_is_idempotent(state):
    state.db.execute("INSERT INTO categories (name) VALUES ('Test Equipment Category')")
    init_schema(state.db)
    rows = state.db.execute("SELECT name FROM categories").fetchall()
    assert [row["name"] for row in rows] == ["Test Equipment Category"]


def test_render_html_is_autoescaped(state):
    assert state.render("page.html", {"name": "<b>CAT</b>"}) == "<p>&lt;b&gt;CAT&lt;/b&gt;</p>"


def test_render_non_html_is_not_escaped(state):
    assert state.render("plain.txt", {"name": "<b>CAT</b>"}) == "<b>CAT</b>"


def test_render_missing_template_raises(state):
    with pytest.raises(HandlerError) as info:
        state.render("nope.html", {})
    assert "nope.html" in str(info.value)
    assert info.value.status == 500


def test_render_failing_template_raises(state):
    with pytest.raises(HandlerError):
        state.render("broken.html", {})


def test_transaction_commits(state):
    with state.transaction() as db:
        db.execute("INSERT INTO staff (full_name) VALUES ('Test Operator')")
    count = state.db.execute("SELECT COUNT(*) FROM staff").fetchone()[0]
    assert count == 1


def test_transaction_rolls_back_on_error(state):
    with pytest.raises(RuntimeError):
        with state.transaction() as db:
            db.execute("INSERT INTO staff (full_name) VALUES ('Test Operator')")
            raise RuntimeError("fail")
    count = state.db.execute("SELECT COUNT(*) FROM staff").fetchone()[0]
    assert count == 0


def _insert_equipment(db, acquired):
    db.execute("INSERT INTO categories (name) VALUES ('Test Equipment Category')")
    category_id = db.execute("SELECT id FROM categories").fetchone()["id"]
    db.execute(
        "INSERT INTO equipment (name, brand, model, serial_number, acquisition_date,"
        " category_id, current_status) VALUES (?, ?, ?, ?, ?, ?, ?)",
        ("Test Excavator", "CAT", "320", "EXC-123", acquired, category_id, "active"),
    )
    return category_id


def test_timestamps_round_trip_as_utc(state):
    acquired = datetime(2023, 1, 1, 5, 0, tzinfo=timezone(timedelta(hours=2)))
    _insert_equipment(state.db, acquired)
    row = state.db.execute("SELECT acquisition_date, created_at FROM equipment").fetchone()
    assert row["acquisition_date"] == acquired
    assert row["acquisition_date"].utcoffset() == timedelta(0)
    assert row["created_at"].tzinfo is not None


def test_foreign_keys_are_enforced(state):
    category_id = _insert_equipment(state.db, datetime(2023, 1, 1, tzinfo=timezone.utc))
    with pytest.raises(sqlite3.IntegrityError):
        state.db.execute("DELETE FROM categories WHERE id = ?", (category_id,))


def test_redirect_is_see_other():
    redirect = Redirect("/categories")
    assert redirect.location == "/categories"
    assert redirect.status == 303


def test_handler_error_carries_message_and_status():
    error = HandlerError("Category is in use by 2 equipment items", status=400)
    assert str(error) == "Category is in use by 2 equipment items"
    assert error.status == 400