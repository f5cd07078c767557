"""Room do-not-disturb flag (replaces the "[DND]" notes marker).

Revision ID: 002_room_dnd_flag
Revises: 001_frontdesk_schema
Create Date: 2026-10-14
"""

from __future__ import annotations

from pathlib import Path

from alembic import op


revision = "002_room_dnd_flag"
down_revision = "001_frontdesk_schema"
branch_labels = None
depends_on = None


def upgrade() -> None:
    sql_path = Path(__file__).resolve().parents[1] / "sql" / "002_room_dnd_flag.sql"
    sql = sql_path.read_text(encoding="utf-8")
    conn = op.get_bind()
    conn.exec_driver_sql(sql)


def downgrade() -> None:
    conn = op.get_bind()
    conn.exec_driver_sql(
        """
        UPDATE rooms
        SET notes = concat_ws(' ', '[DND]', notes)
        WHERE do_not_disturb
        """
    )
    conn.exec_driver_sql("ALTER TABLE rooms DROP COLUMN IF EXISTS do_not_disturb;")
