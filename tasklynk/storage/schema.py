"""SQLite schema for marketplace storage."""

import logging
import sqlite3

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

SCHEMA = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS orders (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    display_id TEXT UNIQUE,
    client_id INTEGER NOT NULL,
    title TEXT NOT NULL,
    instructions TEXT NOT NULL,
    catalog_key TEXT NOT NULL,
    work_type TEXT NOT NULL,
    pages INTEGER,
    slides INTEGER,
    units INTEGER,
    amount TEXT NOT NULL,
    custom_amount INTEGER NOT NULL DEFAULT 0,
    deadline TEXT NOT NULL,
    freelancer_deadline TEXT NOT NULL,
    requires_reports INTEGER NOT NULL DEFAULT 1,
    status TEXT NOT NULL DEFAULT 'pending',
    assigned_freelancer_id INTEGER,
    admin_approved INTEGER NOT NULL DEFAULT 0,
    client_approved INTEGER NOT NULL DEFAULT 0,
    payment_confirmed INTEGER NOT NULL DEFAULT 0,
    created_at TEXT,
    updated_at TEXT,
    approved_at TEXT,
    assigned_at TEXT,
    submitted_at TEXT,
    delivered_at TEXT,
    completed_at TEXT,
    cancelled_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_orders_status ON orders(status);
CREATE INDEX IF NOT EXISTS idx_orders_client ON orders(client_id);

CREATE TABLE IF NOT EXISTS order_artifacts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    order_id INTEGER NOT NULL REFERENCES orders(id),
    uploaded_by INTEGER NOT NULL,
    artifact_type TEXT NOT NULL,
    file_name TEXT NOT NULL,
    file_url TEXT NOT NULL,
    version INTEGER NOT NULL DEFAULT 1,
    created_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_artifacts_order ON order_artifacts(order_id);

CREATE TABLE IF NOT EXISTS order_transitions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    order_id INTEGER NOT NULL REFERENCES orders(id),
    from_status TEXT,
    to_status TEXT NOT NULL,
    event TEXT NOT NULL,
    actor_id INTEGER NOT NULL,
    note TEXT,
    created_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_transitions_order ON order_transitions(order_id);

CREATE TABLE IF NOT EXISTS payments (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    order_id INTEGER NOT NULL REFERENCES orders(id),
    payer_id INTEGER NOT NULL,
    payee_id INTEGER,
    amount TEXT NOT NULL,
    method TEXT NOT NULL,
    payer_reference TEXT,
    provider_reference TEXT,
    checkout_url TEXT,
    receipt_id TEXT,
    status TEXT NOT NULL DEFAULT 'pending',
    failure_reason TEXT,
    failure_detail TEXT,
    provider_confirmed INTEGER NOT NULL DEFAULT 0,
    confirmed_by_admin INTEGER NOT NULL DEFAULT 0,
    created_at TEXT,
    updated_at TEXT,
    confirmed_at TEXT,
    failed_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_payments_order ON payments(order_id);
CREATE INDEX IF NOT EXISTS idx_payments_status ON payments(status);
CREATE INDEX IF NOT EXISTS idx_payments_provider_ref ON payments(provider_reference);
"""


def init_db(conn: sqlite3.Connection) -> None:
    """Create tables and record the schema version."""
    conn.executescript(SCHEMA)
    conn.execute("INSERT OR IGNORE INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
    logger.debug(f"Marketplace schema ready (version {SCHEMA_VERSION})")
