"""
Database connection management.

SQLite backs the durable price tier, assumption overrides and estimates.
"""
import sqlite3
from pathlib import Path


SCHEMA = """
CREATE TABLE IF NOT EXISTS price_cache (
    region TEXT NOT NULL,
    meter_key TEXT NOT NULL,
    unit_price REAL NOT NULL,
    unit_of_measure TEXT NOT NULL,
    currency TEXT NOT NULL,
    meter_name TEXT NOT NULL,
    fetched_at TEXT NOT NULL,
    expires_at TEXT NOT NULL,
    PRIMARY KEY (region, meter_key)
);

CREATE TABLE IF NOT EXISTS assumption_override (
    scope_key TEXT PRIMARY KEY,
    level TEXT NOT NULL,
    job_id TEXT,
    resource_id TEXT,
    cool_data_percent REAL,
    cool_data_retrieval_percent REAL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS cost_estimate (
    job_id TEXT NOT NULL,
    resource_id TEXT NOT NULL,
    payload TEXT NOT NULL,
    estimated_at TEXT NOT NULL,
    PRIMARY KEY (job_id, resource_id)
);
"""


def get_connection(db_path: str) -> sqlite3.Connection:
    """Create and return a SQLite connection.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLite connection that waits on locks held by other writers
    """
    path = Path(db_path)
    conn = sqlite3.connect(str(path), timeout=30)
    conn.execute("PRAGMA busy_timeout = 30000")
    return conn


def initialize_schema(db_path: str) -> None:
    """Create all engine tables if they do not exist."""
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = get_connection(db_path)
    try:
        conn.executescript(SCHEMA)
        conn.commit()
    finally:
        conn.close()
