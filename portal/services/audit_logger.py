"""
Audit Logger - append-only activity log.

Every PRN range mutation and every academic-year reset invocation
(attempted and completed) is written here as an AuditLogEntry.

Write failures are NOT swallowed: they surface as AuditWriteError so the
triggering operation fails with them. When `record` is used inside the
caller's transaction, that failure rolls the operation back too.

There is deliberately no update/delete API on this class.
"""

import json
import logging
from typing import List, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from portal.core.errors import AuditWriteError
from portal.db.postgres import get_db_session
from portal.models.domain import AuditLogEntry

logger = logging.getLogger(__name__)


class AuditLogger:
    """Writes and reads rows of the activity_logs table."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self.session_factory = session_factory

    def record(self, db: Session, entry: AuditLogEntry) -> int:
        """
        Insert an entry using the caller's session (same transaction).

        Returns:
            id of the new activity_logs row
        """
        try:
            result = db.execute(
                text("""
                    INSERT INTO activity_logs
                        (user_id, action_type, action_description, entity_type, entity_id, metadata)
                    VALUES (:user_id, :action_type, :description, :entity_type, :entity_id, :metadata)
                    RETURNING id
                """),
                {
                    "user_id": entry.actor,
                    "action_type": entry.action_kind,
                    "description": entry.description,
                    "entity_type": entry.target_type,
                    "entity_id": entry.target_id,
                    "metadata": json.dumps(entry.metadata, default=str) if entry.metadata is not None else None,
                },
            )
            log_id = result.scalar_one()
        except SQLAlchemyError as exc:
            logger.error("Audit write failed for %s: %s", entry.action_kind, exc)
            raise AuditWriteError(f"Could not record audit entry {entry.action_kind}") from exc

        logger.info("audit %s by user %s: %s", entry.action_kind, entry.actor, entry.description)
        return log_id

    def record_standalone(self, entry: AuditLogEntry) -> int:
        """Insert an entry in its own transaction (used outside a larger unit of work)."""
        try:
            with get_db_session(self.session_factory) as db:
                return self.record(db, entry)
        except SQLAlchemyError as exc:
            # commit itself failed
            raise AuditWriteError(f"Could not record audit entry {entry.action_kind}") from exc

    def list_entries(
        self,
        action_kind: Optional[str] = None,
        actor: Optional[int] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[AuditLogEntry]:
        """Newest first; ties broken by id so pagination is stable."""
        sql = """
            SELECT id, user_id, action_type, action_description, entity_type, entity_id, metadata, created_at
            FROM activity_logs
            WHERE 1 = 1
        """
        params = {"limit": limit, "offset": offset}

        if action_kind:
            sql += " AND action_type = :action_type"
            params["action_type"] = action_kind
        if actor is not None:
            sql += " AND user_id = :user_id"
            params["user_id"] = actor

        sql += " ORDER BY created_at DESC, id DESC LIMIT :limit OFFSET :offset"

        with get_db_session(self.session_factory) as db:
            rows = db.execute(text(sql), params).mappings().fetchall()

        return [
            AuditLogEntry(
                id=r["id"],
                actor=r["user_id"],
                action_kind=r["action_type"],
                target_type=r["entity_type"],
                target_id=r["entity_id"],
                description=r["action_description"],
                metadata=json.loads(r["metadata"]) if r["metadata"] else None,
                timestamp=r["created_at"],
            )
            for r in rows
        ]

    def count(self, action_kind: Optional[str] = None, actor: Optional[int] = None) -> int:
        """Number of entries matching the same filters as list_entries."""
        sql = "SELECT COUNT(*) FROM activity_logs WHERE 1 = 1"
        params = {}
        if action_kind:
            sql += " AND action_type = :action_type"
            params["action_type"] = action_kind
        if actor is not None:
            sql += " AND user_id = :user_id"
            params["user_id"] = actor
        with get_db_session(self.session_factory) as db:
            return db.execute(text(sql), params).scalar_one()
