"""
Reset Preview - read-only counts of what an academic-year reset would touch.

All counts come from ONE transaction so they are mutually consistent
(REPEATABLE READ on PostgreSQL; a SQLite transaction is already a snapshot).
The numbers are advisory: the executor acts on whatever rows exist when it
runs, not on these counts.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import text
from sqlalchemy.orm import sessionmaker

from portal.db.postgres import get_db_session, dialect_name
from portal.models.domain import DELETE_CATEGORIES, ResetPreview

logger = logging.getLogger(__name__)


# category -> (table, filter); table names are fixed here, never user input
DISABLE_CATEGORIES = {
    "active_prn_ranges": ("prn_ranges", "is_enabled = TRUE"),
    "active_students": ("users", "role = 'student' AND is_active = TRUE"),
    "student_photos": ("students", "photo_storage_key IS NOT NULL"),
}


class ResetPreviewCalculator:

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self.session_factory = session_factory

    def calculate(self) -> ResetPreview:
        counts = {}
        with get_db_session(self.session_factory) as db:
            if dialect_name(db) == "postgresql":
                db.execute(text("SET TRANSACTION ISOLATION LEVEL REPEATABLE READ, READ ONLY"))

            for table in DELETE_CATEGORIES:
                counts[table] = db.execute(text(f"SELECT COUNT(*) FROM {table}")).scalar_one()

            for category, (table, where) in DISABLE_CATEGORIES.items():
                counts[category] = db.execute(
                    text(f"SELECT COUNT(*) FROM {table} WHERE {where}")
                ).scalar_one()

        preview = ResetPreview(generated_at=datetime.now(timezone.utc), **counts)
        logger.info(
            "Reset preview: %d rows to delete, %d ranges to disable, %d students to deactivate, %d photos",
            sum(preview.delete_counts.values()),
            preview.active_prn_ranges,
            preview.active_students,
            preview.student_photos,
        )
        return preview
