"""Database helper utilities for ensuring schema consistency."""
from __future__ import annotations

from typing import Iterable

from sqlalchemy import inspect

from .extensions import db


def ensure_database_schema() -> None:
    """Create any tables the models define but the database is missing.

    Runs on every application start so that a fresh SQLite file is usable
    without running migrations first.
    """

    inspector = inspect(db.engine)
    table_names: Iterable[str] = inspector.get_table_names()

    if "users" not in table_names:
        db.create_all()
        return

    # Import locally to avoid circular import issues during application setup.
    from .models import CalibrationSession, Journal, Story, Vision

    required_tables = {
        "visions": Vision.__table__,
        "journals": Journal.__table__,
        "stories": Story.__table__,
        "calibration_sessions": CalibrationSession.__table__,
    }

    for table_name, table in required_tables.items():
        if table_name not in table_names:
            table.create(bind=db.engine)
