"""Equipment fleet management web application built on Flask and SQLite."""

__version__ = "0.1.0"