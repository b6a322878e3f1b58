"""
PRN Range Registry - authoritative store of PRN ranges.

A range is either an interval [range_start, range_end] or a single PRN,
bound to one college (institution scope) or to none (global scope), and
owned by the authority class that created it.

AUTHORITY RULES:
- super_admin > placement_officer (see Authority.rank)
- A placement officer may only create ranges for their own college
- A placement officer may only edit/delete placement-officer ranges of their
  own college; super_admin ranges are read-only to them
- A super admin may create global or college-targeted ranges and may edit
  or delete any range

CONCURRENCY:
Writes re-check authority inside the writing transaction and guard the
UPDATE/DELETE with the ownership values just read, so a row whose owner or
scope changed in between is never written on stale authority. Concurrent
edits to the same row otherwise resolve last-write-wins.

Every mutation writes an AuditLogEntry in the same transaction.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import text
from sqlalchemy.orm import Session, sessionmaker

from portal.core.errors import AuthorityError, RangeNotFoundError, ValidationError
from portal.db.postgres import get_db_session, dialect_name
from portal.models.domain import (
    Actor,
    AuditAction,
    AuditLogEntry,
    Authority,
    PRNRange,
    PRNRangeSpec,
    optional_prn,
    validate_range_shape,
)
from portal.services.audit_logger import AuditLogger
from portal.services.eligibility import EligibilityResolver

logger = logging.getLogger(__name__)


RANGE_COLUMNS = """
    id, range_start, range_end, single_prn, description, college_id,
    created_by_authority, added_by, is_enabled, disabled_reason, disabled_date,
    disabled_by, academic_year_tag, created_at, updated_at
"""

# Fields a patch may carry; ownership and scope are fixed at creation
PATCHABLE_FIELDS = ("range_start", "range_end", "single_prn", "description", "is_enabled", "disabled_reason")


def can_manage(actor: Actor, prn_range: PRNRange) -> bool:
    """True if `actor` may edit, disable or delete `prn_range`."""
    if not actor.authority.at_least(prn_range.created_by_authority):
        return False
    if actor.authority == Authority.super_admin:
        return True
    # scoped officers only reach ranges of their own college
    return prn_range.institution_id is not None and prn_range.institution_id == actor.institution_id


class SessionRangeSource:
    """Range source bound to an open session, for checks inside a transaction."""

    def __init__(self, db: Session):
        self.db = db

    def enabled_ranges(self) -> List[PRNRange]:
        return _fetch_ranges(self.db, enabled_only=True)


def hold_enabled_range(db: Session, range_id: int) -> bool:
    """
    Re-read a range inside the caller's transaction; False if it is gone or disabled.

    On PostgreSQL the row is locked FOR SHARE, so a disable, delete or reset of
    it waits until the caller commits.
    """
    sql = "SELECT id FROM prn_ranges WHERE id = :id AND is_enabled = TRUE"
    if dialect_name(db) == "postgresql":
        sql += " FOR SHARE"
    return db.execute(text(sql), {"id": range_id}).fetchone() is not None


def _fetch_ranges(db: Session, enabled_only: bool = False, institution_id: Optional[int] = None) -> List[PRNRange]:
    sql = f"SELECT {RANGE_COLUMNS} FROM prn_ranges WHERE 1 = 1"
    params: Dict[str, Any] = {}
    if enabled_only:
        sql += " AND is_enabled = TRUE"
    if institution_id is not None:
        sql += " AND (college_id IS NULL OR college_id = :college_id)"
        params["college_id"] = institution_id
    sql += " ORDER BY created_at DESC, id DESC"
    rows = db.execute(text(sql), params).mappings().fetchall()
    return [PRNRange.from_row(r) for r in rows]


def _fetch_range(db: Session, range_id: int) -> PRNRange:
    row = db.execute(
        text(f"SELECT {RANGE_COLUMNS} FROM prn_ranges WHERE id = :id"),
        {"id": range_id},
    ).mappings().fetchone()
    if not row:
        raise RangeNotFoundError(range_id)
    return PRNRange.from_row(row)


def _ownership_guard(prn_range: PRNRange, params: Dict[str, Any]) -> str:
    """WHERE fragment pinning the owner/scope values read earlier."""
    params["guard_authority"] = prn_range.created_by_authority.value
    if prn_range.institution_id is None:
        return "created_by_authority = :guard_authority AND college_id IS NULL"
    params["guard_college_id"] = prn_range.institution_id
    return "created_by_authority = :guard_authority AND college_id = :guard_college_id"


class RangeRegistry:
    """
    Handles PRN range storage and the authority/scope rules around it.
    """

    def __init__(self, session_factory: Optional[sessionmaker] = None, audit: Optional[AuditLogger] = None):
        self.session_factory = session_factory
        self.audit = audit or AuditLogger(session_factory)

    # ------------------------------------------------------------
    # READS
    # ------------------------------------------------------------

    def list_ranges(self, institution_id: Optional[int] = None) -> List[PRNRange]:
        """
        All ranges, newest first. With `institution_id`, only global ranges
        and ranges bound to that college.
        """
        with get_db_session(self.session_factory) as db:
            return _fetch_ranges(db, institution_id=institution_id)

    def get_range(self, range_id: int) -> PRNRange:
        with get_db_session(self.session_factory) as db:
            return _fetch_range(db, range_id)

    def enabled_ranges(self) -> List[PRNRange]:
        """Read API for the eligibility resolver. Always hits the store."""
        with get_db_session(self.session_factory) as db:
            return _fetch_ranges(db, enabled_only=True)

    def students_in_range(self, range_id: int) -> List[Dict[str, Any]]:
        """Students whose PRN falls in the range (scoped to its college when bound)."""
        with get_db_session(self.session_factory) as db:
            prn_range = _fetch_range(db, range_id)
            return _students_matching(db, prn_range)

    # ------------------------------------------------------------
    # MUTATIONS
    # ------------------------------------------------------------

    def add_range(self, spec: PRNRangeSpec, actor: Actor) -> PRNRange:
        """
        Create a range owned by the actor's authority class.

        Raises:
            ValidationError: malformed bounds, unknown college
            AuthorityError: actor may not create a range in the requested scope
        """
        spec = spec.validated()

        if actor.authority == Authority.placement_officer:
            if spec.institution_id is None:
                raise AuthorityError("Placement officers cannot create global PRN ranges")
            if spec.institution_id != actor.institution_id:
                raise AuthorityError("Placement officers can only add PRN ranges for their own college")

        with get_db_session(self.session_factory) as db:
            if spec.institution_id is not None:
                college = db.execute(
                    text("SELECT id FROM colleges WHERE id = :id"),
                    {"id": spec.institution_id},
                ).fetchone()
                if not college:
                    raise ValidationError(f"College {spec.institution_id} does not exist")

            new_id = db.execute(
                text("""
                    INSERT INTO prn_ranges
                        (range_start, range_end, single_prn, description, college_id,
                         created_by_authority, added_by, is_enabled)
                    VALUES (:range_start, :range_end, :single_prn, :description, :college_id,
                            :authority, :added_by, TRUE)
                    RETURNING id
                """),
                {
                    "range_start": spec.range_start,
                    "range_end": spec.range_end,
                    "single_prn": spec.single_prn,
                    "description": spec.description,
                    "college_id": spec.institution_id,
                    "authority": actor.authority.value,
                    "added_by": actor.user_id,
                },
            ).scalar_one()

            created = _fetch_range(db, new_id)
            self.audit.record(db, AuditLogEntry(
                actor=actor.user_id,
                action_kind=AuditAction.add_prn_range.value,
                target_type="prn_range",
                target_id=str(new_id),
                description=f"Added {created.label()}",
                metadata={
                    "range_start": created.range_start,
                    "range_end": created.range_end,
                    "single_prn": created.single_prn,
                    "scope": created.scope.value,
                    "college_id": created.institution_id,
                    "authority": actor.authority.value,
                },
            ))

        logger.info("PRN range %s added by user %s (%s)", new_id, actor.user_id, actor.authority.value)
        return created

    def update_range(self, range_id: int, patch: Dict[str, Any], actor: Actor) -> PRNRange:
        """
        Apply a partial update.

        Disabling (is_enabled = False) requires a non-empty disabled_reason;
        enabling clears the disabled fields. Students whose PRN is covered
        only by a range being disabled are deactivated; enabling a range
        reactivates its students.

        Raises:
            RangeNotFoundError, AuthorityError, ValidationError
        """
        patch = {k: v for k, v in patch.items() if k in PATCHABLE_FIELDS}
        if not patch:
            raise ValidationError("No fields to update")

        with get_db_session(self.session_factory) as db:
            current = _fetch_range(db, range_id)
            self._require_authority(actor, current, "update")

            merged = {
                "range_start": current.range_start,
                "range_end": current.range_end,
                "single_prn": current.single_prn,
            }
            for field in ("range_start", "range_end", "single_prn"):
                if field in patch:
                    merged[field] = optional_prn(patch[field])
            validate_range_shape(merged["range_start"], merged["range_end"], merged["single_prn"])

            updates = [
                "range_start = :range_start",
                "range_end = :range_end",
                "single_prn = :single_prn",
                "updated_at = CURRENT_TIMESTAMP",
            ]
            params: Dict[str, Any] = {"id": range_id, **merged}

            if "description" in patch:
                updates.append("description = :description")
                params["description"] = patch["description"]

            enabling = disabling = False
            if "is_enabled" in patch and patch["is_enabled"] is not None:
                if patch["is_enabled"]:
                    enabling = not current.is_enabled
                    updates.append(
                        "is_enabled = TRUE, disabled_reason = NULL, disabled_date = NULL, disabled_by = NULL"
                    )
                else:
                    reason = (patch.get("disabled_reason") or "").strip()
                    if not reason:
                        raise ValidationError("A reason is required to disable a PRN range")
                    disabling = current.is_enabled
                    updates.append(
                        "is_enabled = FALSE, disabled_reason = :disabled_reason, "
                        "disabled_date = CURRENT_TIMESTAMP, disabled_by = :disabled_by"
                    )
                    params["disabled_reason"] = reason
                    params["disabled_by"] = actor.user_id

            guard = _ownership_guard(current, params)
            result = db.execute(
                text(f"UPDATE prn_ranges SET {', '.join(updates)} WHERE id = :id AND {guard}"),
                params,
            )
            if result.rowcount == 0:
                self._raise_lost_write(db, range_id, actor, "update")

            updated = _fetch_range(db, range_id)

            affected_students = 0
            student_action = None
            if disabling:
                affected_students = _deactivate_students(db, updated)
                student_action = "deactivated"
            elif enabling:
                affected_students = _reactivate_students(db, updated)
                student_action = "reactivated"

            state = ""
            if "is_enabled" in patch and patch["is_enabled"] is not None:
                state = " (Enabled)" if patch["is_enabled"] else " (Disabled)"
            students_note = f" - {affected_students} students {student_action}" if affected_students else ""

            self.audit.record(db, AuditLogEntry(
                actor=actor.user_id,
                action_kind=AuditAction.update_prn_range.value,
                target_type="prn_range",
                target_id=str(range_id),
                description=f"Updated PRN range ID: {range_id}{state}{students_note}",
                metadata={
                    "changes": dict(patch),
                    "previous": {
                        "range_start": current.range_start,
                        "range_end": current.range_end,
                        "single_prn": current.single_prn,
                        "is_enabled": current.is_enabled,
                    },
                    "affected_students": affected_students,
                    "student_action": student_action,
                },
            ))

        logger.info("PRN range %s updated by user %s%s%s", range_id, actor.user_id, state, students_note)
        return updated

    def delete_range(self, range_id: int, actor: Actor) -> PRNRange:
        """
        Hard-delete a range outside a reset. Student records are kept.

        Raises:
            RangeNotFoundError, AuthorityError
        """
        with get_db_session(self.session_factory) as db:
            current = _fetch_range(db, range_id)
            self._require_authority(actor, current, "delete")

            params: Dict[str, Any] = {"id": range_id}
            guard = _ownership_guard(current, params)
            result = db.execute(text(f"DELETE FROM prn_ranges WHERE id = :id AND {guard}"), params)
            if result.rowcount == 0:
                self._raise_lost_write(db, range_id, actor, "delete")

            self.audit.record(db, AuditLogEntry(
                actor=actor.user_id,
                action_kind=AuditAction.delete_prn_range.value,
                target_type="prn_range",
                target_id=str(range_id),
                description=f"Deleted PRN range ID: {range_id} ({current.label()})",
                metadata=current.model_dump(mode="json"),
            ))

        logger.info("PRN range %s deleted by user %s", range_id, actor.user_id)
        return current

    # ------------------------------------------------------------
    # HELPERS
    # ------------------------------------------------------------

    @staticmethod
    def _require_authority(actor: Actor, prn_range: PRNRange, verb: str) -> None:
        if can_manage(actor, prn_range):
            return
        if prn_range.created_by_authority.outranks(actor.authority):
            raise AuthorityError(f"Super admin PRN ranges are read-only; you cannot {verb} range {prn_range.id}")
        raise AuthorityError(f"You can only {verb} PRN ranges of your own college")

    def _raise_lost_write(self, db: Session, range_id: int, actor: Actor, verb: str) -> None:
        """The guarded write matched no row: the range vanished or changed owner meanwhile."""
        latest = _fetch_range(db, range_id)
        self._require_authority(actor, latest, verb)
        raise AuthorityError(f"PRN range {range_id} changed while being modified; reload and retry")


# ============================================================
# STUDENT ACCOUNT SIDE EFFECTS
# Disabling a range locks out the students it admitted; enabling
# lets them back in. Scoped to the range's college when bound.
# ============================================================

def _students_matching(db: Session, prn_range: PRNRange, active: Optional[bool] = None) -> List[Dict[str, Any]]:
    sql = """
        SELECT s.id, s.prn, s.user_id, s.college_id, s.student_name, s.email, u.is_active
        FROM students s JOIN users u ON s.user_id = u.id
        WHERE 1 = 1
    """
    params: Dict[str, Any] = {}
    if prn_range.institution_id is not None:
        sql += " AND s.college_id = :college_id"
        params["college_id"] = prn_range.institution_id
    if prn_range.is_single:
        sql += " AND s.prn = :prn"
        params["prn"] = prn_range.single_prn
    if active is not None:
        sql += " AND u.is_active = :active"
        params["active"] = active
    sql += " ORDER BY s.prn"

    rows = db.execute(text(sql), params).mappings().fetchall()
    # interval membership uses PRN ordering, which SQL string comparison can't express
    return [dict(r) for r in rows if prn_range.contains(r["prn"])]


def _set_user_active(db: Session, user_ids: List[int], active: bool) -> int:
    changed = 0
    for user_id in user_ids:
        result = db.execute(
            text("UPDATE users SET is_active = :active, updated_at = CURRENT_TIMESTAMP WHERE id = :id"),
            {"active": active, "id": user_id},
        )
        changed += result.rowcount
    return changed


def _deactivate_students(db: Session, disabled_range: PRNRange) -> int:
    resolver = EligibilityResolver(SessionRangeSource(db))
    to_lock = [
        s["user_id"]
        for s in _students_matching(db, disabled_range, active=True)
        if not resolver.resolve(s["prn"], s["college_id"]).matched
    ]
    return _set_user_active(db, to_lock, False)


def _reactivate_students(db: Session, enabled_range: PRNRange) -> int:
    to_unlock = [s["user_id"] for s in _students_matching(db, enabled_range, active=False)]
    return _set_user_active(db, to_unlock, True)
