"""
Academic Year Reset - the irreversible end-of-cycle operation.

WHAT IT DOES (one transaction):
1. Deletes transactional data: job applications, job drives, jobs, job
   requests, notifications, admin notifications, whitelist requests, CGPA
   and backlog unlock windows, deleted-jobs history, activity logs
2. Disables every enabled PRN range (kept for history, tagged with the year)
3. Deactivates every active student account (profile data untouched)
4. Clears student photo references
5. Writes the ACADEMIC_YEAR_RESET audit entry with the counts
Any failure rolls everything back. Colleges, regions, branches, officers,
super admins and student records are never touched.

After COMMIT the photo binaries are removed from the media host by the
ExternalAssetCleaner; failures there are reported, never rolled back.

GATES (AcademicYearReset wizard):
    REVIEW --review(year)--> CONFIRMING --confirm(text)--> VERIFYING
    --verify(password)--> EXECUTING --execute()--> COMPLETED | ROLLED_BACK

Only the wizard can mint the ResetAuthorization the executor requires,
so execution is unreachable without passing all three gates.

CONCURRENCY:
A second reset while one runs is rejected with ResetInProgressError:
in-process by a non-blocking lock, across processes (PostgreSQL) by a
transaction-scoped advisory lock.
"""

import logging
import threading
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from sqlalchemy import bindparam, text
from sqlalchemy.orm import Session, sessionmaker

from portal.core.auth import PasswordVerifier
from portal.core.config import get_settings
from portal.core.errors import (
    AuditWriteError,
    AuthenticationError,
    AuthorityError,
    InvalidTransitionError,
    ResetInProgressError,
    TransactionError,
    ValidationError,
)
from portal.db.postgres import get_db_session, dialect_name
from portal.models.domain import (
    ACADEMIC_YEAR_PATTERN,
    DELETE_CATEGORIES,
    Actor,
    AuditAction,
    AuditLogEntry,
    Authority,
    CleanupSummary,
    ResetCounts,
    ResetPreview,
    ResetResult,
)
from portal.services.asset_cleaner import ExternalAssetCleaner
from portal.services.audit_logger import AuditLogger
from portal.services.reset_preview import ResetPreviewCalculator

logger = logging.getLogger(__name__)

# pg_try_advisory_xact_lock key reserved for the academic-year reset
RESET_ADVISORY_LOCK_KEY = 7_202_601


class ResetPhase(str, Enum):
    review = "review"
    confirming = "confirming"
    verifying = "verifying"
    executing = "executing"
    completed = "completed"
    rolled_back = "rolled_back"


TERMINAL_PHASES = (ResetPhase.completed, ResetPhase.rolled_back)

_ISSUER = object()


class ResetAuthorization:
    """Proof that all three gates passed. Created only by AcademicYearReset."""

    __slots__ = ("academic_year", "actor", "verified_at", "_issuer")

    def __init__(self, academic_year: str, actor: Actor, issuer: object):
        self.academic_year = academic_year
        self.actor = actor
        self.verified_at = datetime.now(timezone.utc)
        self._issuer = issuer

    @property
    def is_valid(self) -> bool:
        return self._issuer is _ISSUER


def disabled_reason_for(academic_year: str) -> str:
    return f"Academic Year Reset {academic_year}"


def confirmation_phrase(academic_year: str) -> str:
    return f"RESET {academic_year}"


# ============================================================
# EXECUTOR
# ============================================================

class ResetExecutor:
    """Runs the reset transaction and the post-commit cleanup."""

    _lock = threading.Lock()

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        audit: Optional[AuditLogger] = None,
        cleaner: Optional[ExternalAssetCleaner] = None,
        statement_timeout_ms: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.audit = audit or AuditLogger(session_factory)
        self.cleaner = cleaner or ExternalAssetCleaner()
        self.statement_timeout_ms = statement_timeout_ms or get_settings().reset_statement_timeout_ms

    def execute(self, authorization: ResetAuthorization) -> ResetResult:
        """
        Raises:
            InvalidTransitionError: authorization not issued by the wizard
            ResetInProgressError: another reset is running
            TransactionError: the transaction rolled back; nothing changed
        """
        if not isinstance(authorization, ResetAuthorization) or not authorization.is_valid:
            raise InvalidTransitionError("Reset can only run after review, confirmation and password verification")

        if not self._lock.acquire(blocking=False):
            logger.warning("Rejected reset %s: another reset is in progress", authorization.academic_year)
            raise ResetInProgressError()
        try:
            counts, photo_keys = self._run_transaction(authorization)
        finally:
            self._lock.release()

        cleanup = self._cleanup_assets(authorization, photo_keys)

        result = ResetResult(
            academic_year=authorization.academic_year,
            executed_by=authorization.actor.user_id,
            completed_at=datetime.now(timezone.utc),
            db_reset=counts,
            external_cleanup=cleanup,
        )
        logger.info("Academic year reset completed for %s: %s", result.academic_year, counts.model_dump())
        return result

    # ------------------------------------------------------------
    # TRANSACTION
    # ------------------------------------------------------------

    def _run_transaction(self, authorization: ResetAuthorization):
        academic_year = authorization.academic_year
        actor = authorization.actor
        try:
            with get_db_session(self.session_factory) as db:
                if dialect_name(db) == "postgresql":
                    self._acquire_db_lock(db)
                    db.execute(text(f"SET LOCAL statement_timeout = {int(self.statement_timeout_ms)}"))

                counts: Dict[str, int] = self._delete_transactional(db)
                counts["prn_ranges_disabled"] = self._disable_ranges(db, academic_year, actor)
                counts["students_deactivated"] = self._deactivate_students(db)
                photo_keys = self._clear_photo_references(db, actor)
                counts["student_photos_cleared"] = len(photo_keys)

                reset_counts = ResetCounts(**counts)
                self.audit.record(db, AuditLogEntry(
                    actor=actor.user_id,
                    action_kind=AuditAction.reset_completed.value,
                    target_type="system",
                    description=f"Academic year reset completed for {academic_year}",
                    metadata={
                        "academic_year": academic_year,
                        "counts": reset_counts.model_dump(),
                        "assets_queued": len(photo_keys),
                        "completed_at": datetime.now(timezone.utc).isoformat(),
                    },
                ))
        except ResetInProgressError:
            raise
        except Exception as e:
            logger.exception("Academic year reset %s rolled back", academic_year)
            self._record_failure(actor, academic_year, e)
            raise TransactionError(str(e)) from e

        return reset_counts, photo_keys

    def _acquire_db_lock(self, db: Session) -> None:
        locked = db.execute(
            text("SELECT pg_try_advisory_xact_lock(:key)"), {"key": RESET_ADVISORY_LOCK_KEY}
        ).scalar_one()
        if not locked:
            raise ResetInProgressError()

    def _delete_transactional(self, db: Session) -> Dict[str, int]:
        counts = {}
        for table in DELETE_CATEGORIES:
            result = db.execute(text(f"DELETE FROM {table}"))
            counts[f"{table}_deleted"] = result.rowcount
        return counts

    def _disable_ranges(self, db: Session, academic_year: str, actor: Actor) -> int:
        result = db.execute(
            text("""
                UPDATE prn_ranges
                SET is_enabled = FALSE,
                    disabled_reason = :reason,
                    disabled_date = CURRENT_TIMESTAMP,
                    disabled_by = :actor,
                    academic_year_tag = :academic_year,
                    updated_at = CURRENT_TIMESTAMP
                WHERE is_enabled = TRUE
            """),
            {"reason": disabled_reason_for(academic_year), "actor": actor.user_id, "academic_year": academic_year},
        )
        return result.rowcount

    def _deactivate_students(self, db: Session) -> int:
        result = db.execute(
            text("""
                UPDATE users SET is_active = FALSE, updated_at = CURRENT_TIMESTAMP
                WHERE role = 'student' AND is_active = TRUE
            """)
        )
        return result.rowcount

    def _clear_photo_references(self, db: Session, actor: Actor) -> List[str]:
        """Null out photo references; returns the storage keys for post-commit cleanup."""
        select_sql = "SELECT id, photo_storage_key FROM students WHERE photo_storage_key IS NOT NULL"
        if dialect_name(db) == "postgresql":
            select_sql += " FOR UPDATE"
        rows = db.execute(text(select_sql)).fetchall()
        if not rows:
            return []

        db.execute(
            text("""
                UPDATE students
                SET photo_url = NULL,
                    photo_storage_key = NULL,
                    photo_deleted_at = CURRENT_TIMESTAMP,
                    photo_deleted_by = :actor
                WHERE id IN :ids
            """).bindparams(bindparam("ids", expanding=True)),
            {"actor": actor.user_id, "ids": [r[0] for r in rows]},
        )
        return [r[1] for r in rows]

    def _record_failure(self, actor: Actor, academic_year: str, error: Exception) -> None:
        try:
            self.audit.record_standalone(AuditLogEntry(
                actor=actor.user_id,
                action_kind=AuditAction.reset_failed.value,
                target_type="system",
                description=f"Academic year reset failed for {academic_year}; all changes rolled back",
                metadata={"academic_year": academic_year, "error": str(error)},
            ))
        except AuditWriteError:
            logger.exception("Could not record failed reset attempt for %s", academic_year)

    # ------------------------------------------------------------
    # POST-COMMIT
    # ------------------------------------------------------------

    def _cleanup_assets(self, authorization: ResetAuthorization, photo_keys: List[str]) -> CleanupSummary:
        if not photo_keys:
            return CleanupSummary()

        cleanup = self.cleaner.run_post_commit(photo_keys)
        if cleanup.failed:
            logger.warning(
                "Reset %s: %d assets could not be deleted and need manual cleanup",
                authorization.academic_year, cleanup.failed,
            )
        try:
            self.audit.record_standalone(AuditLogEntry(
                actor=authorization.actor.user_id,
                action_kind=AuditAction.reset_cleanup.value,
                target_type="system",
                description=(
                    f"Asset cleanup for academic year reset {authorization.academic_year}: "
                    f"{cleanup.deleted} deleted, {cleanup.failed} failed"
                ),
                metadata={"academic_year": authorization.academic_year, **cleanup.model_dump()},
            ))
        except AuditWriteError:
            # the reset is committed; the cleanup outcome is still returned to the caller
            logger.exception("Could not record asset cleanup outcome for %s", authorization.academic_year)
        return cleanup


# ============================================================
# WIZARD (GATES + STATE MACHINE)
# ============================================================

class AcademicYearReset:
    """
    One reset attempt by one super admin, walked through its gates.

    Gate 1 review(year)      - YYYY-YY tag, fresh preview, something to reset
    Gate 2 confirm(text)     - exact "RESET {year}"
    Gate 3 verify(password)  - re-checked against the stored hash now
    Then execute().
    """

    def __init__(
        self,
        actor: Actor,
        preview_calculator: ResetPreviewCalculator,
        password_verifier: PasswordVerifier,
        executor: ResetExecutor,
        audit: Optional[AuditLogger] = None,
    ):
        if actor.authority != Authority.super_admin:
            raise AuthorityError("Only super admins can perform an academic year reset")
        self.actor = actor
        self.preview_calculator = preview_calculator
        self.password_verifier = password_verifier
        self.executor = executor
        self.audit = audit or executor.audit

        self.phase = ResetPhase.review
        self.academic_year: Optional[str] = None
        self.preview: Optional[ResetPreview] = None
        self.result: Optional[ResetResult] = None
        self._authorization: Optional[ResetAuthorization] = None

    def _expect(self, phase: ResetPhase, action: str) -> None:
        if self.phase != phase:
            raise InvalidTransitionError(f"Cannot {action} while reset is in phase '{self.phase.value}'")

    # Gate 1
    def review(self, academic_year: str) -> ResetPreview:
        self._expect(ResetPhase.review, "review")
        academic_year = (academic_year or "").strip()
        if not ACADEMIC_YEAR_PATTERN.match(academic_year):
            raise ValidationError("Academic year must be in format YYYY-YY (e.g., 2025-26)")

        preview = self.preview_calculator.calculate()
        if preview.is_nothing_to_reset:
            raise ValidationError("Nothing to reset: no transactional data, active PRN ranges or photos found")

        self.academic_year = academic_year
        self.preview = preview
        self.phase = ResetPhase.confirming
        return preview

    # Gate 2
    def confirm(self, confirmation_text: str) -> None:
        self._expect(ResetPhase.confirming, "confirm")
        expected = confirmation_phrase(self.academic_year)
        if confirmation_text != expected:
            logger.warning("Reset confirmation mismatch by user %s", self.actor.user_id)
            raise ValidationError(f'Confirmation text must be exactly "{expected}"')
        self.phase = ResetPhase.verifying

    # Gate 3
    def verify(self, password: str) -> None:
        self._expect(ResetPhase.verifying, "verify password")
        if not self.password_verifier.verify(self.actor.user_id, password):
            logger.warning("Reset password verification failed for user %s", self.actor.user_id)
            try:
                self.audit.record_standalone(AuditLogEntry(
                    actor=self.actor.user_id,
                    action_kind=AuditAction.reset_auth_failed.value,
                    target_type="system",
                    description=f"Academic year reset {self.academic_year} aborted: password verification failed",
                    metadata={"academic_year": self.academic_year},
                ))
            except AuditWriteError:
                logger.exception("Could not record failed reset verification")
            raise AuthenticationError("Invalid password. Reset aborted.")

        self._authorization = ResetAuthorization(self.academic_year, self.actor, _ISSUER)
        self.phase = ResetPhase.executing

    def execute(self) -> ResetResult:
        self._expect(ResetPhase.executing, "execute")
        try:
            self.result = self.executor.execute(self._authorization)
        except (TransactionError, ResetInProgressError):
            self.phase = ResetPhase.rolled_back
            raise
        finally:
            self._authorization = None
        self.phase = ResetPhase.completed
        return self.result

    def cancel(self) -> None:
        """Abandon the attempt before Gate 3 passes. No side effects."""
        if self.phase in TERMINAL_PHASES or self.phase == ResetPhase.executing:
            raise InvalidTransitionError(f"Cannot cancel a reset in phase '{self.phase.value}'")
        self.phase = ResetPhase.review
        self.academic_year = None
        self.preview = None

    def run(self, academic_year: str, confirmation_text: str, password: str) -> ResetResult:
        """All gates then execution, for callers that submit everything at once."""
        self.review(academic_year)
        self.confirm(confirmation_text)
        self.verify(password)
        return self.execute()
