"""Postgres connection helper shared by the store implementations."""

from __future__ import annotations

import json
from typing import Any


def connect(database_url: str, *ddl: str):
    """Open an autocommit connection and run the given CREATE statements."""
    try:
        import psycopg
    except ImportError:
        raise ImportError(
            "psycopg required for Postgres stores. pip install 'psycopg[binary]'"
        )
    conn = psycopg.connect(database_url, autocommit=True)
    for statement in ddl:
        conn.execute(statement)
    return conn


def as_json(value: Any) -> Any:
    """JSONB columns come back as dicts from psycopg, or as text from older drivers."""
    if value is None or isinstance(value, (dict, list)):
        return value
    return json.loads(value)
