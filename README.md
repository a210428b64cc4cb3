# kfleet

kfleet is a small Flask web application for keeping track of a fleet of
equipment, stored in an SQLite database. It records:

- **Categories** of equipment, with a count of how many items each holds.
  A category that still has equipment cannot be deleted.
- **Equipment**, with brand, model, serial number, acquisition date,
  insurance renewal, next maintenance date, fuel capacity and a status
  (the dashboard counts `active`, `maintenance` and `retired`). Dates are
  submitted as `YYYY-MM-DDTHH:MM` in local time; an optional
  `timezone_offset` field, in whole hours east of UTC (strictly between
  -24 and 24), turns them into UTC before they are stored. Without it the
  dates are taken as UTC.
- **Staff**, with contact details, licence number and the equipment each
  person is assigned to operate (`assigned_equipment` may be repeated in
  the form). Staff who still hold assignments cannot be deleted.

The start page is a dashboard showing how many items are active, in
maintenance or retired, the maintenance and insurance deadlines (of
equipment that is not retired) falling between the start of today, UTC,
and 30 days later, the six most recently added pieces of equipment and
the five latest maintenance records. A mobile page is served at `/app`.

## Installation

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Running

The package installs one command:

```
kfleet
```

It takes no options besides `--help`, and reads its settings from the
environment, and from a `.env` file found from the working directory if
there is one:

| Variable       | Meaning                                                         | Default        |
|----------------|-----------------------------------------------------------------|----------------|
| `DATABASE_URL` | SQLite database: a file path, optionally prefixed `sqlite:///`  | none; required |
| `PORT`         | port to listen on, on all interfaces (0 to 65535)               | `3000`         |

The command stops with a message if `DATABASE_URL` is unset or `PORT` is
not a valid port. The tables are created on start-up if they do not exist
yet, page templates are loaded from the `templates` directory under the
working directory, and the application is served with Flask's built-in
server. Then open `http://localhost:3000/` in a browser.

## Pages

| Path                          | Method | What it does                      |
|-------------------------------|--------|-----------------------------------|
| `/`                           | GET    | dashboard                         |
| `/app`                        | GET    | mobile page                       |
| `/categories`                 | GET    | list categories                   |
| `/categories`                 | POST   | create a category                 |
| `/categories/new`             | GET    | form for a new category           |
| `/categories/<id>/edit`       | GET    | form for editing a category       |
| `/categories/<id>`            | POST   | update a category                 |
| `/categories/<id>/delete`     | POST   | delete a category                 |
| `/equipment`                  | GET    | list equipment                    |
| `/equipment`                  | POST   | create equipment                  |
| `/equipment/new`              | GET    | form for new equipment            |
| `/equipment/<id>/edit`        | GET    | form for editing equipment        |
| `/equipment/<id>`             | POST   | update equipment                  |
| `/equipment/<id>/delete`      | POST   | delete equipment                  |
| `/staff`                      | GET    | list staff and their equipment    |
| `/staff`                      | POST   | create a staff member             |
| `/staff/new`                  | GET    | form for a new staff member       |
| `/staff/<id>/edit`            | GET    | form for editing a staff member   |
| `/staff/<id>`                 | POST   | update a staff member             |
| `/staff/<id>/delete`          | POST   | delete a staff member             |

Successful form submissions answer `303 See Other`, redirecting to the
matching list page. A form with a missing or malformed field answers 422;
other failures (a database error, a refused delete, a missing record or
template) answer 500, with the reason as plain text. Any other path
answers `404 Page not found`.

The pages render these templates: `index.html`, `app.html`, and
`index.html`, `new.html` and `edit.html` under each of `categories/`,
`equipment/` and `staff/`. Templates ending in `.html` are autoescaped.

## Using it from Python

The application can also be built in code, for example to serve it with a
different WSGI server or to drive it from tests:

```python
from kfleet.app import create_app
from kfleet.state import AppState, load_templates, open_database

connection = open_database("fleet.db")  # also creates the tables
state = AppState(connection, load_templates("templates"))
app = create_app(state)
```

The handler modules `kfleet.categories`, `kfleet.equipment` and
`kfleet.staff` can be called directly with an `AppState` and a form object
built with `CategoryForm.from_form`, `EquipmentForm.from_form` or
`StaffForm.from_form`; they return the rendered page or a `Redirect`, and
raise `HandlerError` when a request cannot be carried out.
`kfleet.app.dashboard` and `kfleet.app.mobile` render the other two pages.
`kfleet.timeparse.parse_timestamptz` and `parse_optional_timestamptz`
turn form dates into UTC datetimes.

## What it does not do

- No page templates come with the package; the `templates` directory must
  be supplied alongside it.
- The dashboard reads maintenance records from the `maintenance_history`
  table, but no page or function adds them; they have to be written to the
  database by other means.
- Only SQLite databases are supported.