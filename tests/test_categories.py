import jinja2
import pytest

from kfleet import categories
from kfleet.categories import CategoryForm
from kfleet.state import AppState, HandlerError, Redirect, open_database

TEMPLATES = {
    "categories/index.html": (
        "{% for c in categories %}{{ c.name }}={{ c.equipment_count }};{% endfor %}"
    ),
    "categories/new.html": "new category",
    "categories/edit.html": "{{ category.id }}:{{ category.name }}",
}


@pytest.fixture
def state():
    db = open_database(":memory:")
    env = jinja2.Environment(loader=jinja2.DictLoader(TEMPLATES))
    yield AppState(db=db, templates=env)
    db.close()


def _category_id(state, name):
    return state.db.execute("SELECT id FROM categories WHERE name = ?", (name,)).fetchone()[0]


def _add_equipment(state, category_id):
    state.db.execute(
        "INSERT INTO equipment (name, brand, model, serial_number, acquisition_date,"
        " category_id, current_status) VALUES ('Loader', 'B', 'M', 'SN-0000',"
        " '2024-01-01T00:00:00+00:00', ?, 'active')",
        (category_id,),
    )


def test_create_redirects_to_list(state):
    result = categories.create(state, CategoryForm(name="Excavators"))
    assert result == Redirect("/categories")
    assert result.status == 303
    assert _category_id(state, "Excavators") >= 1


def test_list_orders_by_name_and_counts_equipment(state):
    categories.create(state, CategoryForm(name="Trucks"))
    categories.create(state, CategoryForm(name="Cranes"))
    _add_equipment(state, _category_id(state, "Trucks"))
    html = categories.list_categories(state)
    assert html == "Cranes=0;Trucks=1;"


def test_new_form_renders_template(state):
    assert categories.new_form(state) == "new category"


def test_edit_form_shows_category(state):
    categories.create(state, CategoryForm(name="Graders"))
    cid = _category_id(state, "Graders")
    assert categories.edit_form(state, cid) == f"{cid}:Graders"


def test_edit_form_missing_category_raises(state):
    with pytest.raises(HandlerError, match="no rows returned"):
        categories.edit_form(state, 999)


def test_update_renames(state):
    categories.create(state, CategoryForm(name="Old"))
    cid = _category_id(state, "Old")
    assert categories.update(state, cid, CategoryForm(name="New")) == Redirect("/categories")
    assert categories.edit_form(state, cid) == f"{cid}:New"


def test_delete_unused_category(state):
    categories.create(state, CategoryForm(name="Spare"))
    cid = _category_id(state, "Spare")
    assert categories.delete(state, cid) == Redirect("/categories")
    count = state.db.execute("SELECT COUNT(*) FROM categories").fetchone()[0]
    assert count == 0


def test_delete_category_in_use_is_refused(state):
    categories.create(state, CategoryForm(name="Busy"))
    cid = _category_id(state, "Busy")
    _add_equipment(state, cid)
    with pytest.raises(HandlerError) as info:
        categories.delete(state, cid)
    assert info.value.message == "Category is in use by 1 equipment items"
    assert state.db.execute("SELECT COUNT(*) FROM categories").fetchone()[0] == 1


def test_form_from_data():
    assert CategoryForm.from_form({"name": "Pumps"}) == CategoryForm(name="Pumps")
    assert CategoryForm.from_form({"name": ["Pumps"]}).name == "Pumps"


def test_form_missing_name_is_rejected():
    with pytest.raises(HandlerError, match="name") as info:
        CategoryForm.from_form({})
    assert info.value.status == 422