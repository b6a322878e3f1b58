"""
Relational schema - SQLAlchemy Core table definitions.

Queries elsewhere are written as plain SQL (sqlalchemy.text); these tables
exist so the schema can be created on PostgreSQL (scripts/init_db.py) or on
SQLite for the test suite from a single definition.

Table groups:
- Structural (never touched by a reset): regions, colleges, college_branches,
  users, placement_officers, students (profile data)
- PRN registry: prn_ranges
- Transactional (wiped by a reset): jobs, job_applications, job_drives,
  job_requests, notifications, admin_notifications, activity_logs,
  whitelist_requests, cgpa_unlock_windows, backlog_unlock_windows,
  deleted_jobs_history
"""

from sqlalchemy import (
    MetaData, Table, Column, Integer, String, Text, Boolean, DateTime, Numeric,
    ForeignKey, CheckConstraint, Index, func,
)
from sqlalchemy.engine import Engine

metadata = MetaData()


def _timestamps():
    return [
        Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.current_timestamp()),
        Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.current_timestamp()),
    ]


# ============================================================
# STRUCTURAL TABLES
# ============================================================

regions = Table(
    "regions", metadata,
    Column("id", Integer, primary_key=True),
    Column("region_name", String(100), nullable=False, unique=True),
)

colleges = Table(
    "colleges", metadata,
    Column("id", Integer, primary_key=True),
    Column("region_id", Integer, ForeignKey("regions.id")),
    Column("college_name", String(200), nullable=False),
    Column("college_code", String(20), unique=True),
)

college_branches = Table(
    "college_branches", metadata,
    Column("id", Integer, primary_key=True),
    Column("college_id", Integer, ForeignKey("colleges.id"), nullable=False),
    Column("branch_name", String(100), nullable=False),
)

users = Table(
    "users", metadata,
    Column("id", Integer, primary_key=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", String(255), nullable=False),
    Column("role", String(32), nullable=False),
    Column("is_active", Boolean, nullable=False, server_default="1"),
    Column("last_login", DateTime(timezone=True)),
    *_timestamps(),
    CheckConstraint("role IN ('student', 'placement_officer', 'super_admin')", name="ck_users_role"),
)

placement_officers = Table(
    "placement_officers", metadata,
    Column("id", Integer, primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False, unique=True),
    Column("college_id", Integer, ForeignKey("colleges.id"), nullable=False),
    Column("officer_name", String(100)),
)

students = Table(
    "students", metadata,
    Column("id", Integer, primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False, unique=True),
    Column("prn", String(50), nullable=False, unique=True),
    Column("college_id", Integer, ForeignKey("colleges.id"), nullable=False),
    Column("student_name", String(150), nullable=False),
    Column("email", String(255), nullable=False),
    Column("branch", String(100)),
    Column("programme_cgpa", Numeric(4, 2)),
    Column("backlog_count", Integer, server_default="0"),
    Column("photo_url", Text),
    Column("photo_storage_key", Text),
    Column("photo_deleted_at", DateTime(timezone=True)),
    Column("photo_deleted_by", Integer, ForeignKey("users.id")),
    *_timestamps(),
)

# ============================================================
# PRN REGISTRY
# ============================================================

prn_ranges = Table(
    "prn_ranges", metadata,
    Column("id", Integer, primary_key=True),
    Column("range_start", String(50)),
    Column("range_end", String(50)),
    Column("single_prn", String(50)),
    Column("description", Text),
    # NULL means the range applies to every college
    Column("college_id", Integer, ForeignKey("colleges.id")),
    Column("created_by_authority", String(32), nullable=False),
    Column("added_by", Integer, ForeignKey("users.id")),
    Column("is_enabled", Boolean, nullable=False, server_default="1"),
    Column("disabled_reason", Text),
    Column("disabled_date", DateTime(timezone=True)),
    Column("disabled_by", Integer, ForeignKey("users.id")),
    Column("academic_year_tag", String(10)),
    *_timestamps(),
    CheckConstraint(
        "(single_prn IS NOT NULL AND range_start IS NULL AND range_end IS NULL)"
        " OR (single_prn IS NULL AND range_start IS NOT NULL AND range_end IS NOT NULL)",
        name="ck_prn_ranges_interval_xor_single",
    ),
    CheckConstraint(
        "created_by_authority IN ('super_admin', 'placement_officer')",
        name="ck_prn_ranges_authority",
    ),
    Index("ix_prn_ranges_enabled", "is_enabled"),
)

# ============================================================
# TRANSACTIONAL TABLES (wiped by an academic-year reset)
# ============================================================

jobs = Table(
    "jobs", metadata,
    Column("id", Integer, primary_key=True),
    Column("company_name", String(200), nullable=False),
    Column("job_title", String(200), nullable=False),
    Column("created_by", Integer, ForeignKey("users.id")),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.current_timestamp()),
)

job_applications = Table(
    "job_applications", metadata,
    Column("id", Integer, primary_key=True),
    Column("job_id", Integer, ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False),
    Column("student_id", Integer, ForeignKey("students.id"), nullable=False),
    Column("application_status", String(30), nullable=False, server_default="submitted"),
    Column("applied_at", DateTime(timezone=True), nullable=False, server_default=func.current_timestamp()),
)

job_drives = Table(
    "job_drives", metadata,
    Column("id", Integer, primary_key=True),
    Column("job_id", Integer, ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False),
    Column("drive_date", DateTime(timezone=True)),
    Column("venue", String(200)),
)

job_requests = Table(
    "job_requests", metadata,
    Column("id", Integer, primary_key=True),
    Column("placement_officer_id", Integer, ForeignKey("placement_officers.id")),
    Column("company_name", String(200), nullable=False),
    Column("status", String(30), nullable=False, server_default="pending"),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.current_timestamp()),
)

notifications = Table(
    "notifications", metadata,
    Column("id", Integer, primary_key=True),
    Column("title", String(200), nullable=False),
    Column("message", Text),
    Column("created_by", Integer, ForeignKey("users.id")),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.current_timestamp()),
)

admin_notifications = Table(
    "admin_notifications", metadata,
    Column("id", Integer, primary_key=True),
    Column("message", Text, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.current_timestamp()),
)

activity_logs = Table(
    "activity_logs", metadata,
    Column("id", Integer, primary_key=True),
    Column("user_id", Integer),
    Column("action_type", String(64), nullable=False),
    Column("action_description", Text, nullable=False),
    Column("entity_type", String(64)),
    Column("entity_id", String(64)),
    Column("metadata", Text),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.current_timestamp()),
    Index("ix_activity_logs_action_type", "action_type"),
)

whitelist_requests = Table(
    "whitelist_requests", metadata,
    Column("id", Integer, primary_key=True),
    Column("student_id", Integer, ForeignKey("students.id")),
    Column("reason", Text),
    Column("status", String(30), nullable=False, server_default="pending"),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.current_timestamp()),
)

cgpa_unlock_windows = Table(
    "cgpa_unlock_windows", metadata,
    Column("id", Integer, primary_key=True),
    Column("college_id", Integer, ForeignKey("colleges.id")),
    Column("opens_at", DateTime(timezone=True)),
    Column("closes_at", DateTime(timezone=True)),
)

backlog_unlock_windows = Table(
    "backlog_unlock_windows", metadata,
    Column("id", Integer, primary_key=True),
    Column("college_id", Integer, ForeignKey("colleges.id")),
    Column("opens_at", DateTime(timezone=True)),
    Column("closes_at", DateTime(timezone=True)),
)

deleted_jobs_history = Table(
    "deleted_jobs_history", metadata,
    Column("id", Integer, primary_key=True),
    Column("job_id", Integer),
    Column("job_title", String(200)),
    Column("deleted_by", Integer, ForeignKey("users.id")),
    Column("deleted_at", DateTime(timezone=True), nullable=False, server_default=func.current_timestamp()),
)


def create_schema(engine: Engine) -> None:
    """Create every table that does not exist yet."""
    metadata.create_all(bind=engine)
