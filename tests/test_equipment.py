import jinja2
import pytest

from kfleet import equipment
from kfleet.equipment import Equipment, EquipmentForm
from kfleet.state import AppState, HandlerError, Redirect, open_database
from kfleet.timeparse import parse_timestamptz

TEMPLATES = {
    "equipment/index.html": (
        "{% for e in equipment %}{{ e.name }}/{{ e.category_name }};{% endfor %}"
        "|{% for c in categories %}{{ c.name }},{% endfor %}"
    ),
    "equipment/new.html": "{{ categories|length }}:{{ equipment.acquisition_date }}",
    "equipment/edit.html": "{{ equipment.name }}|{{ equipment.status }}|{{ categories|length }}",
}


@pytest.fixture
def state():
    db = open_database(":memory:")
    env = jinja2.Environment(loader=jinja2.DictLoader(TEMPLATES))
    db.execute("INSERT INTO categories (name) VALUES ('Heavy')")
    yield AppState(db=db, templates=env)
    db.close()


def _form(**overrides):
    data = {
        "name": "Test Excavator",
        "brand": "CAT",
        "model": "320",
        "serial_number": "EXC-123",
        "acquisition_date": "2023-01-01T08:30",
        "category_id": "1",
        "status": "active",
    }
    data.update(overrides)
    return EquipmentForm.from_form(data)


def _fetch(state, equipment_id=1):
    row = state.db.execute(
        "SELECT e.id, e.name, e.brand, e.model, e.serial_number, e.acquisition_date,"
        " e.category_id, c.name AS category_name, e.insurance_renewal,"
        " e.next_maintenance, e.fuel_capacity, e.current_status AS status"
        " FROM equipment e JOIN categories c ON c.id = e.category_id WHERE e.id = ?",
        (equipment_id,),
    ).fetchone()
    return Equipment(**dict(row))


def test_create_stores_utc_timestamp(state):
    result = equipment.create(state, _form(timezone_offset="2"))
    assert result == Redirect("/equipment")
    stored = _fetch(state)
    assert stored.acquisition_date == parse_timestamptz("2023-01-01T08:30", 2)
    assert stored.insurance_renewal is None
    assert stored.status == "active"


def test_blank_optional_dates_are_none(state):
    equipment.create(state, _form(insurance_renewal="  ", next_maintenance="2024-06-01T12:00"))
    stored = _fetch(state)
    assert stored.insurance_renewal is None
    assert stored.next_maintenance == parse_timestamptz("2024-06-01T12:00", 0)


def test_create_rejects_bad_date(state):
    with pytest.raises(HandlerError, match="Invalid datetime format"):
        equipment.create(state, _form(acquisition_date="2023-01-01T00:00:00Z"))
    assert state.db.execute("SELECT COUNT(*) FROM equipment").fetchone()[0] == 0


def test_create_rejects_unknown_category(state):
    with pytest.raises(HandlerError):
        equipment.create(state, _form(category_id="42"))
    assert state.db.execute("SELECT COUNT(*) FROM equipment").fetchone()[0] == 0


def test_list_orders_by_name(state):
    equipment.create(state, _form(name="Roller"))
    equipment.create(state, _form(name="Backhoe"))
    assert equipment.list_equipment(state) == "Backhoe/Heavy;Roller/Heavy;|Heavy,"


def test_new_form_has_empty_defaults(state):
    assert equipment.new_form(state) == "1:None"


def test_edit_form_and_update(state):
    equipment.create(state, _form())
    assert equipment.edit_form(state, 1) == "Test Excavator|active|1"
    result = equipment.update(state, 1, _form(name="Renamed", status="retired", fuel_capacity="120.5"))
    assert result == Redirect("/equipment")
    stored = _fetch(state)
    assert stored.name == "Renamed"
    assert stored.fuel_capacity == 120.5
    assert equipment.edit_form(state, 1) == "Renamed|retired|1"


def test_edit_form_missing_raises(state):
    with pytest.raises(HandlerError, match="no rows returned"):
        equipment.edit_form(state, 7)


def test_delete_removes_row(state):
    equipment.create(state, _form())
    assert equipment.delete(state, 1) == Redirect("/equipment")
    assert state.db.execute("SELECT COUNT(*) FROM equipment").fetchone()[0] == 0


def test_form_parses_numbers():
    form = _form(fuel_capacity="80", timezone_offset="-3")
    assert form.category_id == 1
    assert form.fuel_capacity == 80.0
    assert form.timezone_offset == -3


@pytest.mark.parametrize(
    "overrides",
    [{"category_id": "one"}, {"fuel_capacity": "lots"}, {"timezone_offset": "x"}],
)
def test_form_rejects_malformed_numbers(overrides):
    with pytest.raises(HandlerError) as info:
        _form(**overrides)
    assert info.value.status == 422


def test_form_missing_field_is_rejected():
    with pytest.raises(HandlerError, match="serial_number"):
        EquipmentForm.from_form({"name": "X", "brand": "B", "model": "M"})