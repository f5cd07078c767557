"""Front desk schema: properties, users/roles, rooms, reservations, folio.

Revision ID: 001_frontdesk_schema
Revises:
Create Date: 2026-10-12
"""

from __future__ import annotations

from pathlib import Path

from alembic import op


revision = "001_frontdesk_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    sql_path = Path(__file__).resolve().parents[1] / "sql" / "001_frontdesk_schema.sql"
    sql = sql_path.read_text(encoding="utf-8")
    conn = op.get_bind()
    conn.exec_driver_sql(sql)


def downgrade() -> None:
    conn = op.get_bind()
    conn.exec_driver_sql("DROP TABLE IF EXISTS folio_payments;")
    conn.exec_driver_sql("DROP TABLE IF EXISTS folio_charges;")
    conn.exec_driver_sql("DROP TABLE IF EXISTS reservations;")
    conn.exec_driver_sql("DROP TYPE IF EXISTS reservation_status;")
    conn.exec_driver_sql("DROP TABLE IF EXISTS rooms;")
    conn.exec_driver_sql("DROP TABLE IF EXISTS user_property_roles;")
    conn.exec_driver_sql("DROP TABLE IF EXISTS users;")
    conn.exec_driver_sql("DROP TABLE IF EXISTS properties;")
