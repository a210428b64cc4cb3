[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "kfleet"
version = "0.1.0"
description = "Web application for managing an equipment fleet: categories, equipment, staff assignments and a maintenance dashboard."
requires-python = ">=3.10"
keywords = ["fleet", "equipment", "maintenance", "inventory", "flask", "dashboard", "sqlite"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Web Environment",
    "Framework :: Flask",
    "Intended Audience :: End Users/Desktop",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: Dynamic Content",
    "Topic :: Office/Business",
]
dependencies = [
    "flask",
    "jinja2",
    "python-dotenv",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
kfleet = "kfleet.app:main"

[tool.hatch.build.targets.wheel]
packages = ["kfleet"]

[tool.hatch.build.targets.sdist]
include = ["kfleet", "tests"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
